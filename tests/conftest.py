"""Shared test fixtures."""
import uuid
from datetime import date

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy.orm import sessionmaker

from introdesk.database import build_engine, create_schema


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = build_engine('sqlite://')
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that code calling session.close() in its finally
    blocks doesn't invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('introdesk.database.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def patch_store_session(db_engine):
    """
    Route get_session() inside the record store to fresh sessions on the
    in-memory engine.

    The store does `from introdesk.database import get_session` at import time,
    so the patch above doesn't reach its local binding. Each call gets its own
    session so the store's close() doesn't destroy the test DB connection.
    """
    TestSession = sessionmaker(bind=db_engine)
    with patch('introdesk.services.store.get_session', side_effect=lambda: TestSession()):
        yield TestSession


@pytest.fixture
def mock_redis():
    """Mock Redis client for the touch throttle. set() succeeds (not a duplicate) by default."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.set.return_value = True
    with patch('introdesk.services.touches.r', mock):
        yield mock


@pytest.fixture
def app():
    """Flask test app."""
    from introdesk import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def store():
    from introdesk.services.store import RecordStore
    return RecordStore()


@pytest.fixture
def add_booking(db_session):
    """Factory fixture — inserts a Booking row and returns its id."""
    from introdesk.models.booking import Booking

    def _add(**overrides):
        fields = dict(
            id=str(uuid.uuid4()),
            member_name='Jane Doe',
            class_date=date(2026, 3, 1),
            intro_time='09:00',
            booking_status='Active',
            booking_type='Standard',
            lead_source='Instagram DMs',
            coach_name='Nathan',
            booked_by='Grace',
        )
        fields.update(overrides)
        db_session.add(Booking(**fields))
        db_session.commit()
        return fields['id']
    return _add


@pytest.fixture
def add_run(db_session):
    """Factory fixture — inserts an IntroRun row and returns its id."""
    from introdesk.models.intro_run import IntroRun

    def _add(**overrides):
        fields = dict(
            id=str(uuid.uuid4()),
            member_name='Jane Doe',
            run_date=date(2026, 3, 1),
            class_time='09:00',
            result='Follow-up needed',
            ran_by='Kayla',
        )
        fields.update(overrides)
        db_session.add(IntroRun(**fields))
        db_session.commit()
        return fields['id']
    return _add
