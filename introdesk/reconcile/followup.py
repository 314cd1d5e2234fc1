"""
Follow-up classification — turns a snapshot of bookings, runs and touches into
the four follow-up queues staff work through each shift:

    no_show               ran as a no-show, nothing rebooked
    missed_guest          needs a follow-up (badge A, B or no-outcome)
    second_intro          second intro booked but not run yet
    plans_to_reschedule   said they'd rebook, nothing rebooked

Every prospect (identity key) lands in at most one queue. A prospect who has
bought or said they're not interested is terminal and appears nowhere, no
matter how many older unresolved records they have.

The module is pure apart from build_follow_up_queue(), which does the reads.
classify_prospect() produces a ProspectState per identity key and
bucket_for_state() maps that state to a queue, so precedence can be tested
without a database.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Any, Optional, Iterable, Union

from introdesk.config import FOLLOWUP_LOOKBACK_DAYS
from introdesk.reconcile.base import (
    BookingRecord, RunRecord, TouchRecord,
    CLOSED_PURCHASED, NOT_INTERESTED, CANCELLED, PLANNING_RESCHEDULE, identity_key_of,
)
from introdesk.reconcile.outcomes import (
    load_rules, next_contact_days, canonicalize_result,
    is_sale_result, is_terminal_result, is_no_show_result, is_follow_up_result,
    is_reschedule_result, RESULT_NOT_INTERESTED,
)
from introdesk.services.store import StoreReadError

logger = logging.getLogger('reconcile.followup')

# ── Queues ────────────────────────────────────────────────────────────────────
NO_SHOW_BUCKET = 'no_show'
MISSED_GUEST_BUCKET = 'missed_guest'
SECOND_INTRO_BUCKET = 'second_intro'
PLANS_BUCKET = 'plans_to_reschedule'

BUCKETS = [NO_SHOW_BUCKET, MISSED_GUEST_BUCKET, SECOND_INTRO_BUCKET, PLANS_BUCKET]

# ── Unresolved sub-states ─────────────────────────────────────────────────────
NO_SHOW = 'no_show'
FOLLOW_UP_A = 'follow_up_a'            # first intro ran, undecided, no 2nd booked
FOLLOW_UP_B = 'follow_up_b'            # second intro ran, still undecided
NO_OUTCOME = 'no_outcome'              # class date passed, nothing logged
SECOND_INTRO_PENDING = 'second_intro_pending'
PLANNING_TO_RESCHEDULE = 'planning_reschedule'

SUBSTATE_BUCKETS = {
    NO_SHOW: NO_SHOW_BUCKET,
    FOLLOW_UP_A: MISSED_GUEST_BUCKET,
    FOLLOW_UP_B: MISSED_GUEST_BUCKET,
    NO_OUTCOME: MISSED_GUEST_BUCKET,
    SECOND_INTRO_PENDING: SECOND_INTRO_BUCKET,
    PLANNING_TO_RESCHEDULE: PLANS_BUCKET,
}

SUBSTATE_BADGES = {
    FOLLOW_UP_A: 'A',
    FOLLOW_UP_B: 'B',
    NO_OUTCOME: 'no-outcome',
}

# ── Terminal reasons ──────────────────────────────────────────────────────────
PURCHASED = 'purchased'
NOT_INTERESTED_REASON = 'not_interested'


@dataclass(frozen=True)
class FollowUpItem:
    identity_key: str
    booking_id: str
    member_name: str
    substate: str
    run_id: Optional[str] = None
    class_date: Optional[date] = None
    intro_time: Optional[str] = None
    coach_name: Optional[str] = None
    lead_source: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    result: Optional[str] = None
    originating_booking_id: Optional[str] = None
    last_contact_at: Optional[datetime] = None
    last_contact_summary: Optional[str] = None
    next_contact_date: Optional[date] = None

    @property
    def dedup_key(self) -> str:
        return f'{self.identity_key}:{self.booking_id}'

    @property
    def badge(self) -> Optional[str]:
        return SUBSTATE_BADGES.get(self.substate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dedup_key': self.dedup_key,
            'booking_id': self.booking_id,
            'run_id': self.run_id,
            'member_name': self.member_name,
            'class_date': self.class_date.isoformat() if self.class_date else None,
            'intro_time': self.intro_time,
            'coach_name': self.coach_name,
            'lead_source': self.lead_source,
            'phone': self.phone,
            'email': self.email,
            'result': self.result,
            'substate': self.substate,
            'badge': self.badge,
            'is_second_intro': bool(self.originating_booking_id),
            'originating_booking_id': self.originating_booking_id,
            'last_contact_at': self.last_contact_at.isoformat() if self.last_contact_at else None,
            'last_contact_summary': self.last_contact_summary,
            'next_contact_date': self.next_contact_date.isoformat() if self.next_contact_date else None,
        }


# ── Prospect state ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Unresolved:
    """Prospect has open business. `substate` is what placed it in its queue."""
    substate: str
    items: tuple = ()


@dataclass(frozen=True)
class Terminal:
    """Bought or declined. A sink: suppresses every queue for the prospect."""
    reason: str


ProspectState = Union[Unresolved, Terminal, None]


def bucket_for_state(state: ProspectState) -> Optional[str]:
    """Queue a prospect belongs to, or None for terminal / nothing outstanding."""
    if isinstance(state, Unresolved):
        return SUBSTATE_BUCKETS[state.substate]
    return None


@dataclass
class Snapshot:
    """Everything classification needs, with the cross-prospect lookups precomputed."""
    today: date
    bookings: List[BookingRecord]
    runs: List[RunRecord]
    bookings_by_id: Dict[str, BookingRecord]
    runs_by_booking: Dict[str, List[RunRecord]]
    future_unrun_by_key: Dict[str, List[BookingRecord]]
    second_intro_by_origin: Dict[str, BookingRecord]
    pending_second_intro_keys: set
    terminal_keys: Dict[str, str]
    last_touch: Dict[str, TouchRecord]


@dataclass
class FollowUpQueue:
    no_show: List[FollowUpItem] = field(default_factory=list)
    missed_guest: List[FollowUpItem] = field(default_factory=list)
    second_intro: List[FollowUpItem] = field(default_factory=list)
    plans_to_reschedule: List[FollowUpItem] = field(default_factory=list)

    def bucket(self, name: str) -> List[FollowUpItem]:
        return getattr(self, name)

    def counts(self) -> Dict[str, int]:
        return {name: len(self.bucket(name)) for name in BUCKETS}

    @property
    def total(self) -> int:
        return sum(self.counts().values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'counts': self.counts(),
            'total': self.total,
            'buckets': {name: [i.to_dict() for i in self.bucket(name)] for name in BUCKETS},
        }


# ── Snapshot lookups ──────────────────────────────────────────────────────────

def _excluded_booking(b: BookingRecord, excluded_types) -> bool:
    return (
        b.is_deleted
        or b.ignore_from_metrics
        or b.followup_dismissed_at is not None
        or (b.booking_type or '').upper() in excluded_types
    )


def terminal_reason(bookings: Iterable[BookingRecord], runs: Iterable[RunRecord]) -> Optional[str]:
    """Purchased wins over not-interested when a prospect has both."""
    reason = None
    for r in runs:
        if is_sale_result(r.result):
            return PURCHASED
        if canonicalize_result(r.result) == RESULT_NOT_INTERESTED:
            reason = NOT_INTERESTED_REASON
    for b in bookings:
        if b.status == CLOSED_PURCHASED:
            return PURCHASED
        if b.status == NOT_INTERESTED:
            reason = NOT_INTERESTED_REASON
    return reason


def build_snapshot(bookings: Iterable[BookingRecord], runs: Iterable[RunRecord],
                   touches: Iterable[TouchRecord], today: date) -> Snapshot:
    """
    Apply exclusions and precompute lookups.

    Terminal status is computed before dismissals and exclusions are applied,
    so dismissing a booking never resurrects a prospect who already bought.
    """
    rules = load_rules()
    excluded_types = {t.upper() for t in rules.get('excluded_booking_types', [])}
    all_bookings = list(bookings)
    all_runs = [r for r in runs if not r.is_vip and r.deleted_at is None]

    by_key_bookings = defaultdict(list)
    by_key_runs = defaultdict(list)
    for b in all_bookings:
        if not b.is_deleted:
            by_key_bookings[b.identity_key].append(b)
    for r in all_runs:
        by_key_runs[r.identity_key].append(r)
    terminal_keys = {}
    for key in set(by_key_bookings) | set(by_key_runs):
        reason = terminal_reason(by_key_bookings[key], by_key_runs[key])
        if reason:
            terminal_keys[key] = reason

    excluded_ids = {b.id for b in all_bookings if _excluded_booking(b, excluded_types)}
    kept_bookings = [b for b in all_bookings if b.id not in excluded_ids]
    kept_runs = [
        r for r in all_runs
        if not r.ignore_from_metrics and r.linked_booking_id not in excluded_ids
    ]

    runs_by_booking = defaultdict(list)
    for r in kept_runs:
        if r.linked_booking_id:
            runs_by_booking[r.linked_booking_id].append(r)

    future_unrun_by_key = defaultdict(list)
    second_intro_by_origin = {}
    pending_second_intro_keys = set()
    for b in kept_bookings:
        if b.id in runs_by_booking or b.status == CANCELLED:
            continue
        if b.is_second_intro:
            pending_second_intro_keys.add(b.identity_key)
        if b.class_date is not None and b.class_date >= today:
            future_unrun_by_key[b.identity_key].append(b)
            if b.is_second_intro:
                second_intro_by_origin[b.originating_booking_id] = b

    last_touch = {}
    for t in touches:
        if not t.booking_id:
            continue
        current = last_touch.get(t.booking_id)
        if current is None or _touch_order(t) > _touch_order(current):
            last_touch[t.booking_id] = t

    return Snapshot(
        today=today,
        bookings=kept_bookings,
        runs=kept_runs,
        bookings_by_id={b.id: b for b in kept_bookings},
        runs_by_booking=dict(runs_by_booking),
        future_unrun_by_key=dict(future_unrun_by_key),
        second_intro_by_origin=second_intro_by_origin,
        pending_second_intro_keys=pending_second_intro_keys,
        terminal_keys=terminal_keys,
        last_touch=last_touch,
    )


def _touch_order(t: TouchRecord):
    return (t.created_at or datetime.min, t.id)


# ── Item construction ─────────────────────────────────────────────────────────

def _add_days(d: Optional[date], days: int) -> Optional[date]:
    return d + timedelta(days=days) if d is not None else None


def _make_item(snap: Snapshot, substate: str, booking: Optional[BookingRecord],
               run: Optional[RunRecord], booking_id: str, next_contact: Optional[date]) -> FollowUpItem:
    touch = snap.last_touch.get(booking_id)
    name = run.member_name if run is not None else booking.member_name
    return FollowUpItem(
        identity_key=identity_key_of(name),
        booking_id=booking_id,
        member_name=name,
        substate=substate,
        run_id=run.id if run is not None else None,
        class_date=(run.run_date if run is not None and run.run_date else None)
        or (booking.class_date if booking is not None else None),
        intro_time=(run.class_time if run is not None else None)
        or (booking.intro_time if booking is not None else None),
        coach_name=(booking.coach_name if booking is not None else None)
        or (run.ran_by if run is not None else None),
        lead_source=(run.lead_source if run is not None else None)
        or (booking.lead_source if booking is not None else None),
        phone=booking.phone if booking is not None else None,
        email=booking.email if booking is not None else None,
        result=run.result if run is not None else None,
        originating_booking_id=booking.originating_booking_id if booking is not None else None,
        last_contact_at=touch.created_at if touch else None,
        last_contact_summary=touch.summary if touch else None,
        next_contact_date=next_contact,
    )


def _stored_or(booking: Optional[BookingRecord], default: Optional[date]) -> Optional[date]:
    """A stored reschedule-contact date always wins over the computed default."""
    if booking is not None and booking.reschedule_contact_date:
        return booking.reschedule_contact_date
    return default


def _run_sort_key(run: RunRecord, snap: Snapshot):
    booking = snap.bookings_by_id.get(run.linked_booking_id)
    d = run.run_date or (booking.class_date if booking else None) or date.min
    return (d, str(run.created_at or ''), run.id)


# ── Classification ────────────────────────────────────────────────────────────

class _Placement:
    """Collects items for one prospect; the first queue used is the only queue."""

    def __init__(self):
        self.substate = None
        self.items = []
        self.booking_ids = set()
        self.follow_up_added = False

    def add(self, item: FollowUpItem) -> bool:
        if self.substate is None:
            self.substate = item.substate
        elif SUBSTATE_BUCKETS[item.substate] != SUBSTATE_BUCKETS[self.substate]:
            return False
        if item.booking_id in self.booking_ids:
            return False
        self.items.append(item)
        self.booking_ids.add(item.booking_id)
        if item.substate in (FOLLOW_UP_A, FOLLOW_UP_B):
            self.follow_up_added = True
        return True

    def state(self) -> ProspectState:
        if self.substate is None:
            return None
        return Unresolved(self.substate, tuple(self.items))


def classify_prospect(key: str, runs: List[RunRecord], bookings: List[BookingRecord],
                      snap: Snapshot) -> ProspectState:
    """
    Decide one prospect's state from its own runs and bookings plus the
    snapshot-wide lookups.

    Pass 1 walks linked runs newest first; pass 2 walks bookings that never
    got a run. Within each pass the rules are tried in precedence order and
    the first queue a prospect lands in is final.
    """
    if key in snap.terminal_keys:
        return Terminal(snap.terminal_keys[key])

    has_future_unrun = bool(snap.future_unrun_by_key.get(key))
    placement = _Placement()

    linked_runs = [r for r in runs if r.linked_booking_id]
    for run in sorted(linked_runs, key=lambda r: _run_sort_key(r, snap), reverse=True):
        booking_id = run.linked_booking_id
        booking = snap.bookings_by_id.get(booking_id)
        anchor = run.run_date or (booking.class_date if booking else None)

        # A rebooked no-show falls through to the second-intro rule
        if is_no_show_result(run.result) and not has_future_unrun:
            placement.add(_make_item(
                snap, NO_SHOW, booking, run, booking_id,
                _stored_or(booking, _add_days(anchor, next_contact_days('no_show'))),
            ))
            continue

        if is_follow_up_result(run.result):
            if booking_id in snap.second_intro_by_origin:
                continue
            if not placement.follow_up_added:
                placement.add(_make_item(
                    snap, FOLLOW_UP_A, booking, run, booking_id,
                    _stored_or(booking, _add_days(anchor, next_contact_days('follow_up'))),
                ))
            continue

        if booking is not None and booking.is_second_intro and not is_terminal_result(run.result):
            if not placement.follow_up_added:
                placement.add(_make_item(
                    snap, FOLLOW_UP_B, booking, run, booking_id,
                    _stored_or(booking, _add_days(anchor, next_contact_days('second_intro_ran'))),
                ))
            continue

        if is_reschedule_result(run.result):
            if not has_future_unrun:
                placement.add(_make_item(
                    snap, PLANNING_TO_RESCHEDULE, booking, run, booking_id,
                    _stored_or(booking, _add_days(anchor, next_contact_days('plans_to_reschedule'))),
                ))
            continue

    unrun = [b for b in bookings if b.id not in snap.runs_by_booking]
    for b in sorted(unrun, key=lambda b: (b.class_date or date.min, b.id), reverse=True):
        if b.id in placement.booking_ids or b.status == CANCELLED:
            continue
        is_past = b.class_date is not None and b.class_date < snap.today

        if b.is_second_intro:
            next_contact = None
            if is_past:
                next_contact = _stored_or(b, _add_days(b.class_date, next_contact_days('second_intro_missed')))
            placement.add(_make_item(snap, SECOND_INTRO_PENDING, b, None, b.id, next_contact))
            continue

        if b.status == PLANNING_RESCHEDULE:
            if not has_future_unrun:
                placement.add(_make_item(
                    snap, PLANNING_TO_RESCHEDULE, b, None, b.id,
                    _stored_or(b, _add_days(b.class_date, next_contact_days('plans_to_reschedule'))),
                ))
            continue

        if is_past and not has_future_unrun and key not in snap.pending_second_intro_keys:
            placement.add(_make_item(
                snap, NO_OUTCOME, b, None, b.id,
                _add_days(b.class_date, next_contact_days('no_outcome')),
            ))

    return placement.state()


def _sorted_bucket(items: List[FollowUpItem]) -> List[FollowUpItem]:
    """Most recent first; name then booking id break ties so output is stable."""
    items = sorted(items, key=lambda i: (i.member_name.lower(), i.booking_id))
    return sorted(items, key=lambda i: i.class_date or date.min, reverse=True)


def classify_snapshot(bookings: Iterable[BookingRecord], runs: Iterable[RunRecord],
                      touches: Iterable[TouchRecord], today: date) -> FollowUpQueue:
    """Pure: same inputs always produce the same queues in the same order."""
    snap = build_snapshot(bookings, runs, touches, today)

    runs_by_key = defaultdict(list)
    bookings_by_key = defaultdict(list)
    for r in snap.runs:
        runs_by_key[r.identity_key].append(r)
    for b in snap.bookings:
        bookings_by_key[b.identity_key].append(b)

    queue = FollowUpQueue()
    for key in sorted(set(runs_by_key) | set(bookings_by_key)):
        state = classify_prospect(key, runs_by_key[key], bookings_by_key[key], snap)
        bucket = bucket_for_state(state)
        if bucket is not None:
            queue.bucket(bucket).extend(state.items)

    for name in BUCKETS:
        setattr(queue, name, _sorted_bucket(queue.bucket(name)))
    return queue


def build_follow_up_queue(store, today: Optional[date] = None,
                          lookback_days: Optional[int] = None) -> Optional[FollowUpQueue]:
    """
    Read the lookback window from the store and classify it.

    Returns None if any read fails; a partial snapshot would produce
    misleading queues, so callers retry the whole thing.
    """
    today = today or date.today()
    if lookback_days is None:
        lookback_days = int(load_rules().get('lookback_days', FOLLOWUP_LOOKBACK_DAYS))
    since = today - timedelta(days=lookback_days)

    try:
        bookings = store.list_bookings(since=since)
        runs = store.list_runs(since=since, include_vip=False)
        touches = store.list_touches(since=datetime.combine(since, datetime.min.time()), limit=None)
    except StoreReadError as e:
        logger.error("Follow-up queue unavailable: %s", e)
        return None

    queue = classify_snapshot(bookings, runs, touches, today)
    logger.info("Follow-up queue built for %s: %s", today.isoformat(), queue.counts())
    return queue
