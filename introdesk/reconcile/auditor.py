"""
Consistency auditor — finds drift between bookings and runs and repairs it.

Bookings and runs are written independently, so partial writes, legacy
imports and hand edits leave them disagreeing. audit_snapshot() is a pure scan
over a snapshot and reports five kinds of issue:

  owner_mismatch     linked, non-no-show run credits someone else
  corrupted_owner    booking owner holds a timestamp instead of a name
  unlinked_run       run points at no booking
  missing_booked_by  first intro with no usable booked-by value
  invalid_outcome    run result outside the controlled vocabulary

run_auto_fix() repairs the mechanical ones in a fixed order: corrupted
owners are cleared before owners are re-derived from runs, so a bad value is
never read back as the authoritative one.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Any, Optional, Iterable

from introdesk.config import (
    HARD_DELETE_CONFIRMATION, PLACEHOLDER_STAFF, SELF_BOOKED_LEAD_SOURCES,
)
from introdesk.reconcile.base import (
    BookingRecord, RunRecord, BatchResult, ValidationError, ConfirmationMismatch,
    RecordNotFound, RECORD_BOOKING, RECORD_RUN, RECORD_TYPES,
    ACTIVE, CLOSED_BOOKING_STATUSES, DELETED_SOFT, is_timestamp_like,
)
from introdesk.reconcile.attribution import (
    set_owner_from_run, get_run_or_raise, UPDATED,
)
from introdesk.reconcile.outcomes import (
    is_no_show_result, is_valid_outcome, normalize_outcome, controlled_outcomes,
    booking_status_for_result,
)
from introdesk.services.store import StoreError, utcnow

logger = logging.getLogger('reconcile.auditor')

OWNER_MISMATCH = 'owner_mismatch'
CORRUPTED_OWNER = 'corrupted_owner'
UNLINKED_RUN = 'unlinked_run'
MISSING_BOOKED_BY = 'missing_booked_by'
INVALID_OUTCOME = 'invalid_outcome'

ISSUE_KINDS = [
    OWNER_MISMATCH,
    CORRUPTED_OWNER,
    UNLINKED_RUN,
    MISSING_BOOKED_BY,
    INVALID_OUTCOME,
]

CORRUPTED_VALUE_REASON = 'corrupted value'


@dataclass
class AuditIssue:
    kind: str
    record_type: str
    record_id: str
    member_name: str
    date: Optional[date] = None
    description: str = ''
    current_value: Optional[str] = None
    suggested_value: Optional[str] = None
    auto_fixable: bool = False
    booking_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'record_type': self.record_type,
            'record_id': self.record_id,
            'member_name': self.member_name,
            'date': self.date.isoformat() if self.date else None,
            'description': self.description,
            'current_value': self.current_value,
            'suggested_value': self.suggested_value,
            'auto_fixable': self.auto_fixable,
            'booking_id': self.booking_id,
        }


@dataclass
class AuditReport:
    issues: List[AuditIssue] = field(default_factory=list)

    def of_kind(self, kind: str) -> List[AuditIssue]:
        return [i for i in self.issues if i.kind == kind]

    def counts(self) -> Dict[str, int]:
        counts = {kind: 0 for kind in ISSUE_KINDS}
        for issue in self.issues:
            counts[issue.kind] += 1
        return counts

    @property
    def auto_fixable(self) -> int:
        return sum(1 for i in self.issues if i.auto_fixable)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': len(self.issues),
            'auto_fixable': self.auto_fixable,
            'counts': self.counts(),
            'issues': [i.to_dict() for i in self.issues],
        }


@dataclass
class AutoFixResult:
    """Outcome of one auto-fix pass, counted per logical unit of work."""
    cleared: int = 0
    synced: int = 0
    normalized: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return self.cleared + self.synced + self.normalized

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cleared': self.cleared,
            'synced': self.synced,
            'normalized': self.normalized,
            'skipped': self.skipped,
            'failed': self.failed,
            'fixed': self.writes,
            'errors': list(self.errors),
        }


@dataclass
class LinkSuggestion:
    run_id: str
    best: Optional[BookingRecord]
    candidates: List[BookingRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'suggested_booking_id': self.best.id if self.best else None,
            'candidates': [b.to_dict() for b in self.candidates],
        }


# ── Detection (pure) ──────────────────────────────────────────────────────────

def _in_scope_bookings(bookings: Iterable[BookingRecord]) -> List[BookingRecord]:
    return [b for b in bookings if not b.ignore_from_metrics and not b.is_deleted]


def _in_scope_runs(runs: Iterable[RunRecord]) -> List[RunRecord]:
    return [r for r in runs if not r.ignore_from_metrics and r.deleted_at is None]


def _run_order(run: RunRecord):
    return (run.run_date or date.max, str(run.created_at or ''), run.id)


def first_valid_run(runs: Iterable[RunRecord]) -> Optional[RunRecord]:
    """Earliest non-no-show run with a usable conductor."""
    valid = [
        r for r in runs
        if not is_no_show_result(r.result)
        and r.effective_owner
        and not is_timestamp_like(r.effective_owner)
    ]
    return min(valid, key=_run_order) if valid else None


def needs_booked_by(booking: BookingRecord) -> bool:
    if booking.is_second_intro:
        return False
    if (booking.lead_source or '').strip() in SELF_BOOKED_LEAD_SOURCES:
        return False
    value = (booking.booked_by or '').strip()
    if not value:
        return True
    return value.lower() in {p.lower() for p in PLACEHOLDER_STAFF}


def is_open_booking(booking: BookingRecord) -> bool:
    return not booking.is_deleted and booking.status not in CLOSED_BOOKING_STATUSES


def link_candidates(run: RunRecord, bookings: Iterable[BookingRecord]) -> List[BookingRecord]:
    """
    Open bookings for the run's prospect, best first: exact date match, then
    nearest class date. Ties go to the earlier date, then the lower id.
    """
    key = run.identity_key
    candidates = [b for b in bookings if b.identity_key == key and is_open_booking(b)]
    if run.run_date is None:
        return sorted(candidates, key=lambda b: (b.class_date or date.min, b.id))

    def distance(b):
        if b.class_date is None:
            return (1, 0, date.max, b.id)
        gap = abs((b.class_date - run.run_date).days)
        return (0, gap, b.class_date, b.id)

    return sorted(candidates, key=distance)


def suggest_booking_for_run(run: RunRecord, bookings: Iterable[BookingRecord]) -> LinkSuggestion:
    candidates = link_candidates(run, bookings)
    return LinkSuggestion(run.id, candidates[0] if candidates else None, candidates)


def audit_snapshot(bookings: Iterable[BookingRecord], runs: Iterable[RunRecord]) -> AuditReport:
    """Scan a snapshot for all five issue kinds. Ignored and archived records are skipped."""
    bookings = _in_scope_bookings(bookings)
    runs = _in_scope_runs(runs)
    by_id = {b.id: b for b in bookings}
    runs_by_booking = defaultdict(list)
    for r in runs:
        if r.linked_booking_id:
            runs_by_booking[r.linked_booking_id].append(r)

    report = AuditReport()

    for r in sorted(runs, key=_run_order):
        booking = by_id.get(r.linked_booking_id) if r.linked_booking_id else None
        owner = r.effective_owner
        if booking is not None and owner and not is_no_show_result(r.result) \
                and owner != (booking.intro_owner or '').strip():
            report.issues.append(AuditIssue(
                kind=OWNER_MISMATCH,
                record_type=RECORD_RUN,
                record_id=r.id,
                member_name=r.member_name,
                date=r.run_date,
                description=f"Run credits {owner} but booking owner is {booking.intro_owner or 'empty'}",
                current_value=booking.intro_owner,
                suggested_value=owner,
                auto_fixable=True,
                booking_id=booking.id,
            ))

        if not r.linked_booking_id:
            suggestion = suggest_booking_for_run(r, bookings)
            report.issues.append(AuditIssue(
                kind=UNLINKED_RUN,
                record_type=RECORD_RUN,
                record_id=r.id,
                member_name=r.member_name,
                date=r.run_date,
                description=(f"Run not linked; {len(suggestion.candidates)} candidate booking(s)"
                             if suggestion.candidates else "Run not linked; no matching booking"),
                suggested_value=suggestion.best.id if suggestion.best else None,
            ))

        if not is_valid_outcome(r.result):
            report.issues.append(AuditIssue(
                kind=INVALID_OUTCOME,
                record_type=RECORD_RUN,
                record_id=r.id,
                member_name=r.member_name,
                date=r.run_date,
                description=f"Result {r.result!r} is not a recognized outcome",
                current_value=r.result,
                suggested_value=normalize_outcome(r.result),
                auto_fixable=True,
            ))

    for b in sorted(bookings, key=lambda b: (b.class_date or date.min, b.id)):
        if is_timestamp_like(b.intro_owner):
            first = first_valid_run(runs_by_booking.get(b.id, []))
            report.issues.append(AuditIssue(
                kind=CORRUPTED_OWNER,
                record_type=RECORD_BOOKING,
                record_id=b.id,
                member_name=b.member_name,
                date=b.class_date,
                description="Intro owner holds a timestamp, not a staff name",
                current_value=b.intro_owner,
                suggested_value=first.effective_owner if first else None,
                auto_fixable=True,
                booking_id=b.id,
            ))

        if needs_booked_by(b):
            report.issues.append(AuditIssue(
                kind=MISSING_BOOKED_BY,
                record_type=RECORD_BOOKING,
                record_id=b.id,
                member_name=b.member_name,
                date=b.class_date,
                description="First intro has no booked-by staff member",
                current_value=b.booked_by,
                booking_id=b.id,
            ))

    return report


# ── Auto-fix ──────────────────────────────────────────────────────────────────

def _audit_fields(editor, reason):
    return {
        'last_edited_at': utcnow(),
        'last_edited_by': editor,
        'edit_reason': reason,
    }


def run_auto_fix(store, editor: str) -> AutoFixResult:
    """
    Repair every auto-fixable issue, one record at a time.

    Phase 1 clears and unlocks corrupted owners. Phase 2 normalizes invalid
    outcome literals, so a misspelled no-show is seen as one before any
    owner is credited. Phase 3 re-reads the store and credits each
    mismatched booking from its first valid run (locked owners are left
    alone). A second call on the same data performs no writes.
    """
    result = AutoFixResult()

    report = audit_snapshot(store.list_bookings(), store.list_runs())
    for issue in report.of_kind(CORRUPTED_OWNER):
        try:
            store.update_booking(issue.record_id, intro_owner=None, intro_owner_locked=False,
                                 **_audit_fields(editor, CORRUPTED_VALUE_REASON))
            result.cleared += 1
        except StoreError as e:
            result.failed += 1
            result.errors.append(f"booking {issue.record_id}: {e}")

    for issue in report.of_kind(INVALID_OUTCOME):
        try:
            store.update_run(issue.record_id, result=issue.suggested_value,
                             **_audit_fields(editor, f'Normalized outcome from {issue.current_value!r}'))
            result.normalized += 1
        except StoreError as e:
            result.failed += 1
            result.errors.append(f"run {issue.record_id}: {e}")

    bookings = store.list_bookings()
    runs = store.list_runs()
    report = audit_snapshot(bookings, runs)
    by_id = {b.id: b for b in bookings}
    linked = defaultdict(list)
    for r in _in_scope_runs(runs):
        if r.linked_booking_id:
            linked[r.linked_booking_id].append(r)

    mismatched = sorted({i.booking_id for i in report.of_kind(OWNER_MISMATCH)})
    for booking_id in mismatched:
        first = first_valid_run(linked[booking_id])
        if first is None:
            result.skipped += 1
            continue
        try:
            change = set_owner_from_run(store, first, editor, booking=by_id[booking_id])
        except StoreError as e:
            result.failed += 1
            result.errors.append(f"booking {booking_id}: {e}")
            continue
        if change.status == UPDATED:
            result.synced += 1
        else:
            result.skipped += 1

    logger.info("Auto-fix by %s: cleared=%d synced=%d normalized=%d skipped=%d failed=%d",
                editor, result.cleared, result.synced, result.normalized,
                result.skipped, result.failed)
    return result


# ── Operator remediation ──────────────────────────────────────────────────────

def candidates_for_run(store, run_id: str) -> LinkSuggestion:
    run = get_run_or_raise(store, run_id)
    return suggest_booking_for_run(run, store.list_bookings(include_deleted=False))


def link_run(store, run_id: str, booking_id: str, editor: str):
    """Attach an unlinked run to a booking, then credit its conductor."""
    run = get_run_or_raise(store, run_id)
    booking = store.get_booking(booking_id)
    if booking is None:
        raise RecordNotFound(RECORD_BOOKING, booking_id)
    if booking.is_deleted:
        raise ValidationError(f"Booking {booking_id} is archived")

    run = store.update_run(run.id, linked_booking_id=booking.id,
                           **_audit_fields(editor, 'Linked to booking'))
    logger.info("Run %s linked to booking %s by %s", run.id, booking.id, editor)
    return set_owner_from_run(store, run, editor, booking=booking)


def create_booking_from_run(store, run_id: str, editor: str) -> BookingRecord:
    """Create a booking pre-filled from an unlinked run and link the run to it."""
    run = get_run_or_raise(store, run_id)
    if run.linked_booking_id:
        raise ValidationError(f"Run {run_id} is already linked to {run.linked_booking_id}")

    owner = run.effective_owner
    if owner and is_timestamp_like(owner):
        owner = None
    booking = store.insert_booking(
        member_name=run.member_name,
        class_date=run.run_date or date.today(),
        intro_time=run.class_time,
        booking_status=booking_status_for_result(run.result) or ACTIVE,
        lead_source=run.lead_source or '',
        coach_name=run.ran_by or '',
        intro_owner=owner,
        intro_owner_locked=bool(owner) and not is_no_show_result(run.result),
        **_audit_fields(editor, f'Created from run {run.id}'),
    )
    store.update_run(run.id, linked_booking_id=booking.id,
                     **_audit_fields(editor, 'Linked to new booking'))
    logger.info("Booking %s created from run %s by %s", booking.id, run.id, editor)
    return booking


def assign_booked_by(store, booking_ids: Iterable[str], staff: str, editor: str) -> BatchResult:
    """Set booked_by on each selected booking, counting successes and failures."""
    staff = (staff or '').strip()
    if not staff or staff.lower() in {p.lower() for p in PLACEHOLDER_STAFF}:
        raise ValidationError("A staff member is required")

    batch = BatchResult()
    for booking_id in booking_ids:
        try:
            store.update_booking(booking_id, booked_by=staff,
                                 **_audit_fields(editor, 'Assigned booked-by'))
            batch.succeeded.append(booking_id)
        except (StoreError, RecordNotFound) as e:
            batch.failed.append(booking_id)
            batch.errors.append(f"{booking_id}: {e}")
    logger.info("Booked-by %r assigned by %s: %d ok, %d failed",
                staff, editor, len(batch.succeeded), len(batch.failed))
    return batch


def normalize_run_outcome(store, run_id: str, editor: str, value: Optional[str] = None) -> RunRecord:
    """Replace a run's result with `value` (must be controlled) or its nearest match."""
    run = get_run_or_raise(store, run_id)
    if value is not None:
        value = value.strip()
        if value not in controlled_outcomes():
            raise ValidationError(f"{value!r} is not a controlled outcome")
    else:
        value = normalize_outcome(run.result)
    return store.update_run(run.id, result=value,
                            **_audit_fields(editor, f'Normalized outcome from {run.result!r}'))


def _check_record_type(record_type):
    if record_type not in RECORD_TYPES:
        raise ValidationError(f"Unknown record type {record_type!r}")


def ignore_record(store, record_type: str, record_id: str, editor: str, ignore: bool = True):
    """Exclude a record from audits and queues without touching its data."""
    _check_record_type(record_type)
    fields = dict(ignore_from_metrics=ignore,
                  **_audit_fields(editor, 'Ignored from metrics' if ignore else 'Included in metrics'))
    if record_type == RECORD_BOOKING:
        return store.update_booking(record_id, **fields)
    return store.update_run(record_id, **fields)


def archive_record(store, record_type: str, record_id: str, editor: str):
    """Soft delete. Archived records drop out of audits and queues but stay restorable."""
    _check_record_type(record_type)
    fields = dict(deleted_at=utcnow(), **_audit_fields(editor, 'Archived'))
    if record_type == RECORD_BOOKING:
        return store.update_booking(record_id, booking_status=DELETED_SOFT, **fields)
    return store.update_run(record_id, **fields)


def hard_delete_record(store, record_type: str, record_id: str, confirmation: Optional[str],
                       editor: str) -> None:
    """
    Permanently delete a record. Requires the typed confirmation phrase.
    Runs linked to a deleted booking are unlinked so they resurface as
    unlinked-run issues.
    """
    _check_record_type(record_type)
    if confirmation != HARD_DELETE_CONFIRMATION:
        raise ConfirmationMismatch(HARD_DELETE_CONFIRMATION)

    if record_type == RECORD_RUN:
        store.delete_run(record_id)
    else:
        for r in store.list_runs(linked_booking_ids=[record_id]):
            store.update_run(r.id, linked_booking_id=None,
                             **_audit_fields(editor, f'Booking {record_id} deleted'))
        store.delete_booking(record_id)
    logger.warning("%s %s permanently deleted by %s", record_type, record_id, editor)
