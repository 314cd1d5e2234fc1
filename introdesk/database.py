"""
Database engine + session factory for the intro tables.

Production schema comes from Alembic. create_schema() exists for local SQLite
and the test suite, where there is no migration run.
"""
import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from introdesk.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


MODEL_MODULES = (
    'introdesk.models.booking',
    'introdesk.models.intro_run',
    'introdesk.models.followup_touch',
)


def normalize_url(url: str) -> str:
    # SQLAlchemy 2.x rejects the postgres:// scheme hosted Postgres hands out
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def build_engine(url: str):
    """Engine for bookings/runs/touches. In-memory SQLite keeps one shared connection."""
    url = normalize_url(url)
    if url in ('sqlite://', 'sqlite:///:memory:'):
        return create_engine(url, connect_args={'check_same_thread': False},
                             poolclass=StaticPool)
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def import_models():
    """Register the intro tables on Base.metadata."""
    for name in MODEL_MODULES:
        importlib.import_module(name)


def create_schema(bind):
    import_models()
    Base.metadata.create_all(bind)


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()
