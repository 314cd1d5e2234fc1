"""
Intro ownership — who gets credit for a prospect, and the lock that keeps that
credit from silently moving.

Three entry points:
  set_owner_from_run       — copy a run's conductor onto its linked booking
  override_owner           — staff edit; changing a locked owner needs a reason
  first_run_becomes_owner  — on run intake, the first conductor claims the booking

A No-show run never credits or locks anybody. Once a booking's owner is
locked, only override_owner (with a reason) or an explicit clear can move it.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from introdesk.reconcile.base import (
    BookingRecord, RunRecord, ValidationError, OverrideReasonRequired,
    RecordNotFound, RECORD_BOOKING, RECORD_RUN, is_timestamp_like,
)
from introdesk.reconcile.outcomes import is_no_show_result, booking_status_for_result
from introdesk.services.store import StoreWriteError, utcnow

logger = logging.getLogger('reconcile.attribution')

# OwnerChange.status values
UPDATED = 'updated'
UNCHANGED = 'unchanged'
REFUSED = 'refused'
SKIPPED = 'skipped'

# OwnerSync.state values for the two-write ownership saga
SYNC_COMPLETE = 'complete'
SYNC_RUN_ONLY = 'run_only'     # run locked, booking write failed; auditor repairs
SYNC_NOOP = 'noop'
SYNC_FAILED = 'failed'

SET_OWNER_REASON = 'Set intro owner'
CLEAR_OWNER_REASON = 'Cleared intro owner (unlocked)'
SYNC_FROM_RUN_REASON = 'Synced intro owner from run'


@dataclass
class OwnerChange:
    status: str
    booking_id: Optional[str] = None
    previous_owner: Optional[str] = None
    new_owner: Optional[str] = None
    detail: str = ''

    @property
    def wrote(self) -> bool:
        return self.status == UPDATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'booking_id': self.booking_id,
            'previous_owner': self.previous_owner,
            'new_owner': self.new_owner,
            'detail': self.detail,
        }


@dataclass
class OwnerSync:
    state: str
    run: Optional[RunRecord] = None
    booking: Optional[BookingRecord] = None
    detail: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'run_id': self.run.id if self.run else None,
            'booking_id': self.booking.id if self.booking else None,
            'intro_owner': self.booking.intro_owner if self.booking else None,
            'detail': self.detail,
        }


def _audit_fields(editor, reason):
    return {
        'last_edited_at': utcnow(),
        'last_edited_by': editor,
        'edit_reason': reason,
    }


def _conductor(run: RunRecord) -> Optional[str]:
    owner = run.effective_owner
    if owner and is_timestamp_like(owner):
        return None
    return owner


# ── setOwnerFromRun ───────────────────────────────────────────────────────────

def set_owner_from_run(store, run: RunRecord, editor: str,
                       booking: Optional[BookingRecord] = None) -> OwnerChange:
    """
    Credit the run's conductor on its linked booking and lock it.

    Never overwrites a locked owner with a different name: that case is
    reported as REFUSED and nothing is written.
    """
    if is_no_show_result(run.result):
        return OwnerChange(SKIPPED, run.linked_booking_id, detail='no-show run')
    if not run.linked_booking_id:
        return OwnerChange(SKIPPED, detail='run not linked to a booking')
    owner = _conductor(run)
    if not owner:
        return OwnerChange(SKIPPED, run.linked_booking_id, detail='run has no conductor')

    if booking is None:
        booking = store.get_booking(run.linked_booking_id)
    if booking is None:
        return OwnerChange(SKIPPED, run.linked_booking_id, detail='linked booking missing')

    previous = booking.intro_owner
    if (previous or '').strip() == owner:
        if booking.intro_owner_locked:
            return OwnerChange(UNCHANGED, booking.id, previous, owner)
        store.update_booking(booking.id, intro_owner_locked=True,
                             **_audit_fields(editor, SYNC_FROM_RUN_REASON))
        return OwnerChange(UPDATED, booking.id, previous, owner, detail='locked')

    if booking.intro_owner_locked:
        logger.info("Owner of booking %s locked to %r; not moving credit to %r (run %s)",
                    booking.id, previous, owner, run.id,
                    extra={'booking_id': booking.id, 'run_id': run.id, 'editor': editor})
        return OwnerChange(REFUSED, booking.id, previous, owner, detail='owner locked')

    store.update_booking(booking.id, intro_owner=owner, intro_owner_locked=True,
                         **_audit_fields(editor, SYNC_FROM_RUN_REASON))
    logger.info("Booking %s owner %r -> %r from run %s", booking.id, previous, owner, run.id,
                extra={'booking_id': booking.id, 'run_id': run.id, 'editor': editor})
    return OwnerChange(UPDATED, booking.id, previous, owner)


# ── overrideOwner ─────────────────────────────────────────────────────────────

def override_owner(store, booking_id: str, new_owner: Optional[str],
                   reason: Optional[str], editor: str) -> BookingRecord:
    """
    Staff-initiated owner edit.

    Setting a value locks the owner; clearing it unlocks. When the booking is
    locked, a non-empty reason is required to change or clear the owner.
    Raises OverrideReasonRequired before any write.
    """
    booking = store.get_booking(booking_id)
    if booking is None:
        raise RecordNotFound(RECORD_BOOKING, booking_id)

    new_owner = (new_owner or '').strip() or None
    reason = (reason or '').strip()

    if booking.intro_owner_locked and not reason:
        clearing = new_owner is None and booking.intro_owner is not None
        changing = new_owner is not None and new_owner != (booking.intro_owner or '').strip()
        if clearing or changing:
            raise OverrideReasonRequired(booking_id)

    if new_owner is None:
        updated = store.update_booking(
            booking_id, intro_owner=None, intro_owner_locked=False,
            **_audit_fields(editor, reason or CLEAR_OWNER_REASON),
        )
    else:
        updated = store.update_booking(
            booking_id, intro_owner=new_owner, intro_owner_locked=True,
            **_audit_fields(editor, reason or SET_OWNER_REASON),
        )
    logger.info("Owner override on booking %s by %s: %r -> %r",
                booking_id, editor, booking.intro_owner, new_owner,
                extra={'booking_id': booking_id, 'editor': editor})
    return updated


# ── firstRunBecomesOwner ──────────────────────────────────────────────────────

def first_run_becomes_owner(store, run: RunRecord, editor: str) -> OwnerSync:
    """
    Lock the run's conductor as owner on both the run and its booking.

    Two independent writes: run first, then booking. If the booking write
    fails the result is SYNC_RUN_ONLY, which the consistency auditor reports
    as an owner mismatch on its next pass.
    """
    if is_no_show_result(run.result):
        return OwnerSync(SYNC_NOOP, run, detail='no-show run')
    owner = _conductor(run)
    if not owner or not run.linked_booking_id:
        return OwnerSync(SYNC_NOOP, run, detail='nothing to credit')

    booking = store.get_booking(run.linked_booking_id)
    if booking is None:
        return OwnerSync(SYNC_NOOP, run, detail='linked booking missing')
    if booking.intro_owner_locked:
        return OwnerSync(SYNC_NOOP, run, booking, detail='booking already has a locked owner')

    try:
        run = store.update_run(run.id, intro_owner=owner, intro_owner_locked=True,
                               **_audit_fields(editor, SET_OWNER_REASON))
    except StoreWriteError as e:
        logger.warning("First-run ownership: run %s write failed: %s", run.id, e)
        return OwnerSync(SYNC_FAILED, run, booking, detail=str(e))

    try:
        booking = store.update_booking(booking.id, intro_owner=owner, intro_owner_locked=True,
                                       **_audit_fields(editor, SET_OWNER_REASON))
    except StoreWriteError as e:
        logger.warning("First-run ownership: run %s locked but booking %s write failed: %s",
                       run.id, booking.id, e)
        return OwnerSync(SYNC_RUN_ONLY, run, booking, detail=str(e))

    return OwnerSync(SYNC_COMPLETE, run, booking)


# ── Run intake ────────────────────────────────────────────────────────────────

def record_run(store, editor: str, **fields) -> OwnerSync:
    """
    Log a run by hand: insert it, move the linked booking's status to match
    the result, then apply first-run ownership.
    """
    name = (fields.get('member_name') or '').strip()
    if not name:
        raise ValidationError("member_name is required")
    commission = fields.get('commission_amount')
    if commission is not None and commission < 0:
        raise ValidationError("commission_amount cannot be negative")

    linked_id = fields.get('linked_booking_id')
    if linked_id and store.get_booking(linked_id) is None:
        raise RecordNotFound(RECORD_BOOKING, linked_id)

    fields['member_name'] = name
    run = store.insert_run(last_edited_by=editor, **fields)
    logger.info("Run %s logged for %s by %s (result=%r)", run.id, name, editor, run.result)

    new_status = booking_status_for_result(run.result)
    if linked_id and new_status:
        try:
            store.update_booking(linked_id, booking_status=new_status,
                                 **_audit_fields(editor, f'Run logged: {run.result}'))
        except StoreWriteError as e:
            logger.warning("Run %s logged but booking %s status not updated: %s",
                           run.id, linked_id, e)

    return first_run_becomes_owner(store, run, editor)


def get_run_or_raise(store, run_id: str) -> RunRecord:
    run = store.get_run(run_id)
    if run is None:
        raise RecordNotFound(RECORD_RUN, run_id)
    return run
