"""
Request helpers shared by the API blueprints.
"""
import logging
from datetime import date

from flask import jsonify, request

from introdesk.config import DEFAULT_EDITOR
from introdesk.reconcile.base import ValidationError, RecordNotFound
from introdesk.services.store import StoreError, StoreReadError

logger = logging.getLogger('routes.helpers')


def request_data():
    """JSON body as a dict; empty for bodiless POSTs."""
    return request.get_json(silent=True) or {}


def editor_from_request(data=None):
    """Acting staff member: body 'editor', else X-Staff-Name header."""
    data = data if data is not None else request_data()
    editor = (data.get('editor') or request.headers.get('X-Staff-Name') or '').strip()
    return editor or DEFAULT_EDITOR


def parse_date(value, field_name):
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field_name} must be YYYY-MM-DD")


def error_response(e):
    """Map engine and store failures to JSON errors."""
    if isinstance(e, ValidationError):
        return jsonify({'error': str(e)}), 400
    if isinstance(e, RecordNotFound):
        return jsonify({'error': str(e)}), 404
    if isinstance(e, StoreReadError):
        return jsonify({'error': 'Records unavailable, try again'}), 503
    if isinstance(e, StoreError):
        return jsonify({'error': 'Could not save changes'}), 500
    logger.error("Unhandled API error", exc_info=e)
    return jsonify({'error': str(e)}), 500
