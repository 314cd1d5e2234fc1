"""
Record store — SQLAlchemy-backed reads and single-record writes for bookings,
runs and follow-up touches.

Every call opens its own short session. Reads return immutable records from
introdesk.reconcile.base; rows never leak out of this module. Failures are
logged and re-raised as StoreReadError / StoreWriteError so callers can decide
whether to abort (classification) or count and continue (bulk fixes).
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, or_

from introdesk.database import get_session
from introdesk.models.booking import Booking
from introdesk.models.intro_run import IntroRun
from introdesk.models.followup_touch import FollowupTouch
from introdesk.reconcile.base import (
    BookingRecord, RunRecord, TouchRecord, RecordNotFound,
    RECORD_BOOKING, RECORD_RUN,
)
from introdesk.reconcile.outcomes import normalize_booking_status

logger = logging.getLogger('services.store')


class StoreError(Exception):
    """Base class for record-store failures."""


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


# Columns each update path may touch. Anything else is a programming error.
BOOKING_UPDATABLE = {
    'member_name', 'class_date', 'intro_time', 'booking_status', 'booking_type',
    'intro_owner', 'intro_owner_locked', 'originating_booking_id',
    'lead_source', 'coach_name', 'booked_by', 'phone', 'email',
    'reschedule_contact_date', 'followup_dismissed_at', 'ignore_from_metrics',
    'deleted_at', 'last_edited_at', 'last_edited_by', 'edit_reason',
}

RUN_UPDATABLE = {
    'member_name', 'run_date', 'class_time', 'result', 'linked_booking_id',
    'intro_owner', 'intro_owner_locked', 'ran_by', 'lead_source',
    'commission_amount', 'is_vip', 'ignore_from_metrics', 'deleted_at',
    'last_edited_at', 'last_edited_by', 'edit_reason',
}

TOUCH_FIELDS = {
    'booking_id', 'run_id', 'member_name', 'touch_type', 'channel',
    'script_category', 'notes', 'created_by', 'created_at',
}


def utcnow():
    return datetime.now(timezone.utc)


# ── Row → record ──────────────────────────────────────────────────────────────

def booking_to_record(row: Booking) -> BookingRecord:
    return BookingRecord(
        id=row.id,
        member_name=row.member_name,
        class_date=row.class_date,
        intro_time=row.intro_time,
        status=normalize_booking_status(row.booking_status),
        booking_type=row.booking_type or 'Standard',
        intro_owner=row.intro_owner,
        intro_owner_locked=bool(row.intro_owner_locked),
        originating_booking_id=row.originating_booking_id,
        lead_source=row.lead_source,
        coach_name=row.coach_name,
        booked_by=row.booked_by,
        phone=row.phone,
        email=row.email,
        reschedule_contact_date=row.reschedule_contact_date,
        followup_dismissed_at=row.followup_dismissed_at,
        ignore_from_metrics=bool(row.ignore_from_metrics),
        deleted_at=row.deleted_at,
        last_edited_at=row.last_edited_at,
        last_edited_by=row.last_edited_by,
        edit_reason=row.edit_reason,
        created_at=row.created_at,
    )


def run_to_record(row: IntroRun) -> RunRecord:
    return RunRecord(
        id=row.id,
        member_name=row.member_name,
        run_date=row.run_date,
        class_time=row.class_time,
        result=row.result,
        linked_booking_id=row.linked_booking_id,
        intro_owner=row.intro_owner,
        intro_owner_locked=bool(row.intro_owner_locked),
        ran_by=row.ran_by,
        lead_source=row.lead_source,
        commission_amount=row.commission_amount,
        is_vip=bool(row.is_vip),
        ignore_from_metrics=bool(row.ignore_from_metrics),
        deleted_at=row.deleted_at,
        last_edited_at=row.last_edited_at,
        last_edited_by=row.last_edited_by,
        edit_reason=row.edit_reason,
        created_at=row.created_at,
    )


def touch_to_record(row: FollowupTouch) -> TouchRecord:
    return TouchRecord(
        id=row.id,
        touch_type=row.touch_type,
        booking_id=row.booking_id,
        run_id=row.run_id,
        member_name=row.member_name,
        channel=row.channel,
        script_category=row.script_category,
        notes=row.notes,
        created_by=row.created_by,
        created_at=row.created_at,
    )


class RecordStore:
    """Thin adapter over the three intro tables."""

    # ── Reads ─────────────────────────────────────────────────────────────────

    def list_bookings(
        self,
        since: Optional[date] = None,
        until: Optional[date] = None,
        include_deleted: bool = True,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[BookingRecord]:
        """Bookings with class_date in [since, until], oldest first."""
        stmt = select(Booking)
        if statuses is not None:
            stmt = stmt.where(Booking.booking_status.in_(list(statuses)))
        if since is not None:
            stmt = stmt.where(Booking.class_date >= since)
        if until is not None:
            stmt = stmt.where(Booking.class_date <= until)
        if not include_deleted:
            stmt = stmt.where(Booking.deleted_at.is_(None))
        stmt = stmt.order_by(Booking.class_date, Booking.id)
        return self._read(stmt, booking_to_record, 'bookings')

    def list_runs(
        self,
        since: Optional[date] = None,
        linked_booking_ids: Optional[Iterable[str]] = None,
        include_vip: bool = True,
        include_deleted: bool = True,
    ) -> List[RunRecord]:
        """Runs with run_date >= since (or linked to the given bookings), oldest first."""
        stmt = select(IntroRun)
        if since is not None:
            stmt = stmt.where(IntroRun.run_date >= since)
        if linked_booking_ids is not None:
            stmt = stmt.where(IntroRun.linked_booking_id.in_(list(linked_booking_ids)))
        if not include_vip:
            stmt = stmt.where(or_(IntroRun.is_vip.is_(False), IntroRun.is_vip.is_(None)))
        if not include_deleted:
            stmt = stmt.where(IntroRun.deleted_at.is_(None))
        stmt = stmt.order_by(IntroRun.run_date, IntroRun.created_at, IntroRun.id)
        return self._read(stmt, run_to_record, 'runs')

    def list_touches(
        self,
        since: Optional[datetime] = None,
        booking_id: Optional[str] = None,
        limit: Optional[int] = 500,
    ) -> List[TouchRecord]:
        """Most recent touches first. limit=None returns them all."""
        stmt = select(FollowupTouch)
        if since is not None:
            stmt = stmt.where(FollowupTouch.created_at >= since)
        if booking_id is not None:
            stmt = stmt.where(FollowupTouch.booking_id == booking_id)
        stmt = stmt.order_by(FollowupTouch.created_at.desc(), FollowupTouch.id).limit(limit)
        return self._read(stmt, touch_to_record, 'touches')

    def get_booking(self, booking_id: str) -> Optional[BookingRecord]:
        return self._get(Booking, booking_id, booking_to_record)

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        return self._get(IntroRun, run_id, run_to_record)

    def _read(self, stmt, convert, label):
        session = get_session()
        try:
            return [convert(row) for row in session.scalars(stmt).all()]
        except Exception as e:
            logger.error("Failed to read %s", label, exc_info=True)
            raise StoreReadError(f"Could not read {label}: {e}") from e
        finally:
            session.close()

    def _get(self, model, record_id, convert):
        session = get_session()
        try:
            row = session.get(model, record_id)
            return convert(row) if row is not None else None
        except Exception as e:
            logger.error("Failed to read %s %s", model.__tablename__, record_id, exc_info=True)
            raise StoreReadError(f"Could not read {model.__tablename__} {record_id}: {e}") from e
        finally:
            session.close()

    # ── Writes ────────────────────────────────────────────────────────────────

    def update_booking(self, booking_id: str, **fields) -> BookingRecord:
        return self._update(Booking, RECORD_BOOKING, booking_id, fields,
                            BOOKING_UPDATABLE, booking_to_record)

    def update_run(self, run_id: str, **fields) -> RunRecord:
        return self._update(IntroRun, RECORD_RUN, run_id, fields,
                            RUN_UPDATABLE, run_to_record)

    def insert_booking(self, **fields) -> BookingRecord:
        unknown = set(fields) - BOOKING_UPDATABLE - {'id'}
        if unknown:
            raise ValueError(f"Unknown booking fields: {sorted(unknown)}")
        fields.setdefault('id', str(uuid.uuid4()))
        fields.setdefault('booking_status', 'Active')
        fields['created_at'] = utcnow()
        return self._insert(Booking(**fields), booking_to_record)

    def insert_run(self, **fields) -> RunRecord:
        unknown = set(fields) - RUN_UPDATABLE - {'id'}
        if unknown:
            raise ValueError(f"Unknown run fields: {sorted(unknown)}")
        fields.setdefault('id', str(uuid.uuid4()))
        fields['created_at'] = utcnow()
        return self._insert(IntroRun(**fields), run_to_record)

    def insert_touch(self, **fields) -> TouchRecord:
        unknown = set(fields) - TOUCH_FIELDS
        if unknown:
            raise ValueError(f"Unknown touch fields: {sorted(unknown)}")
        fields['id'] = str(uuid.uuid4())
        fields.setdefault('created_at', utcnow())
        return self._insert(FollowupTouch(**fields), touch_to_record)

    def delete_booking(self, booking_id: str) -> None:
        self._delete(Booking, RECORD_BOOKING, booking_id)

    def delete_run(self, run_id: str) -> None:
        self._delete(IntroRun, RECORD_RUN, run_id)

    def _update(self, model, record_type, record_id, fields, allowed, convert):
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown {record_type} fields: {sorted(unknown)}")
        session = get_session()
        try:
            row = session.get(model, record_id)
            if row is None:
                raise RecordNotFound(record_type, record_id)
            for key, value in fields.items():
                setattr(row, key, value)
            session.commit()
            return convert(row)
        except RecordNotFound:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error("Failed to update %s %s", record_type, record_id, exc_info=True)
            raise StoreWriteError(f"Could not update {record_type} {record_id}: {e}") from e
        finally:
            session.close()

    def _insert(self, row, convert):
        session = get_session()
        try:
            session.add(row)
            session.commit()
            return convert(row)
        except Exception as e:
            session.rollback()
            logger.error("Failed to insert into %s", row.__tablename__, exc_info=True)
            raise StoreWriteError(f"Could not insert into {row.__tablename__}: {e}") from e
        finally:
            session.close()

    def _delete(self, model, record_type, record_id):
        session = get_session()
        try:
            row = session.get(model, record_id)
            if row is None:
                raise RecordNotFound(record_type, record_id)
            session.delete(row)
            session.commit()
        except RecordNotFound:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error("Failed to delete %s %s", record_type, record_id, exc_info=True)
            raise StoreWriteError(f"Could not delete {record_type} {record_id}: {e}") from e
        finally:
            session.close()
