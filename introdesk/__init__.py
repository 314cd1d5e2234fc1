"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import os
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from introdesk.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')

    # Register blueprints
    from introdesk.routes.dashboard import bp as dashboard_bp
    from introdesk.routes.followups import bp as followups_bp
    from introdesk.routes.attribution import bp as attribution_bp
    from introdesk.routes.audit import bp as audit_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(followups_bp)
    app.register_blueprint(attribution_bp)
    app.register_blueprint(audit_bp)

    # Schema is managed by Alembic; the models only need registering on Base.metadata
    from introdesk.database import import_models
    import_models()

    return app
