"""
Reconciliation contracts.

Bookings and runs are written independently by different screens. Everything
in this package reads them as immutable records (BookingRecord, RunRecord,
TouchRecord) produced by the record store, and reports failures through the
exception classes below. Helpers here are the only place the "same prospect"
heuristic and the effective-owner rule live.
"""
import re
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Dict, List, Any, Optional


# ── Booking status values (normalized) ────────────────────────────────────────
ACTIVE = 'Active'
NO_SHOW = 'No-show'
NOT_INTERESTED = 'Not interested'
CLOSED_PURCHASED = 'Closed (Purchased)'
DELETED_SOFT = 'Deleted (soft)'
UNSCHEDULED = 'Unscheduled'
CANCELLED = 'Cancelled'
PLANNING_RESCHEDULE = 'Planning to reschedule'

BOOKING_STATUSES = [
    ACTIVE,
    NO_SHOW,
    NOT_INTERESTED,
    CLOSED_PURCHASED,
    DELETED_SOFT,
    UNSCHEDULED,
    CANCELLED,
    PLANNING_RESCHEDULE,
]

# Bookings in these states can no longer receive a run
CLOSED_BOOKING_STATUSES = (CLOSED_PURCHASED, NOT_INTERESTED, DELETED_SOFT, CANCELLED)

# ── Record types accepted by the audit actions ────────────────────────────────
RECORD_BOOKING = 'booking'
RECORD_RUN = 'run'
RECORD_TYPES = (RECORD_BOOKING, RECORD_RUN)


# ── Errors ────────────────────────────────────────────────────────────────────

class ReconcileError(Exception):
    """Base class for failures surfaced to the caller by name."""


class ValidationError(ReconcileError):
    """Rejected before any write took place."""


class OverrideReasonRequired(ValidationError):
    """Changing or clearing a locked intro owner without saying why."""
    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} has a locked intro owner; a reason is required")


class ConfirmationMismatch(ValidationError):
    """Hard delete attempted without the typed confirmation phrase."""
    def __init__(self, expected):
        self.expected = expected
        super().__init__(f"Type {expected} to confirm permanent deletion")


class RecordNotFound(ReconcileError):
    def __init__(self, record_type, record_id):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")


# ── Records ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BookingRecord:
    """A scheduled intro, as read from the store. `status` is always normalized."""
    id: str
    member_name: str
    class_date: Optional[date]
    intro_time: Optional[str] = None
    status: str = ACTIVE
    booking_type: str = 'Standard'
    intro_owner: Optional[str] = None
    intro_owner_locked: bool = False
    originating_booking_id: Optional[str] = None
    lead_source: Optional[str] = None
    coach_name: Optional[str] = None
    booked_by: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    reschedule_contact_date: Optional[date] = None
    followup_dismissed_at: Optional[datetime] = None
    ignore_from_metrics: bool = False
    deleted_at: Optional[datetime] = None
    last_edited_at: Optional[datetime] = None
    last_edited_by: Optional[str] = None
    edit_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def identity_key(self) -> str:
        return identity_key_of(self.member_name)

    @property
    def is_second_intro(self) -> bool:
        return bool(self.originating_booking_id)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None or self.status == DELETED_SOFT

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class RunRecord:
    """The outcome of an intro class that took place."""
    id: str
    member_name: str
    run_date: Optional[date] = None
    class_time: Optional[str] = None
    result: Optional[str] = None
    linked_booking_id: Optional[str] = None
    intro_owner: Optional[str] = None
    intro_owner_locked: bool = False
    ran_by: Optional[str] = None
    lead_source: Optional[str] = None
    commission_amount: Optional[float] = None
    is_vip: bool = False
    ignore_from_metrics: bool = False
    deleted_at: Optional[datetime] = None
    last_edited_at: Optional[datetime] = None
    last_edited_by: Optional[str] = None
    edit_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def identity_key(self) -> str:
        return identity_key_of(self.member_name)

    @property
    def effective_owner(self) -> Optional[str]:
        return effective_owner(self)

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class TouchRecord:
    id: str
    touch_type: str
    booking_id: Optional[str] = None
    run_id: Optional[str] = None
    member_name: Optional[str] = None
    channel: Optional[str] = None
    script_category: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def summary(self) -> str:
        """Short label for the last-contact column, e.g. 'text (no_show)'."""
        if self.script_category:
            return f'{self.touch_type} ({self.script_category})'
        return self.touch_type

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class BatchResult:
    """Per-record outcome of a bulk action. Partial success is normal."""
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'succeeded': len(self.succeeded),
            'failed': len(self.failed),
            'succeeded_ids': list(self.succeeded),
            'failed_ids': list(self.failed),
            'errors': list(self.errors),
        }


# ── Shared helpers ────────────────────────────────────────────────────────────

def identity_key_of(name: Optional[str]) -> str:
    """
    Collapse a member name into the key used to treat records as one prospect.

    Case and all whitespace are ignored, so "Jane  Doe" and "jane doe" match.
    Two different people with the same name collide; swap this function out
    if a stronger key (phone, email) becomes available.
    """
    return ''.join((name or '').lower().split())


# A date part (2024-01-05, 1/5/2024) followed somewhere by a clock part (10:00)
_TIMESTAMP_RE = re.compile(r'\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}.*\d{1,2}:\d{2}')


def is_timestamp_like(value: Optional[str]) -> bool:
    """True when a staff-name field actually holds a date-time string."""
    if not value:
        return False
    return bool(_TIMESTAMP_RE.search(value.strip()))


def effective_owner(run: RunRecord) -> Optional[str]:
    """The run's credited staff member: its intro_owner, else whoever ran it."""
    for candidate in (run.intro_owner, run.ran_by):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime)):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out
