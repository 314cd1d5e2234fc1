"""Tests for introdesk.reconcile.auditor — detection, auto-fix, operator actions."""
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from introdesk.reconcile.auditor import (
    audit_snapshot, run_auto_fix, first_valid_run, needs_booked_by, link_candidates,
    candidates_for_run, link_run, create_booking_from_run, assign_booked_by,
    normalize_run_outcome, ignore_record, archive_record, hard_delete_record,
    OWNER_MISMATCH, CORRUPTED_OWNER, UNLINKED_RUN, MISSING_BOOKED_BY, INVALID_OUTCOME,
)
from introdesk.reconcile.attribution import UPDATED
from introdesk.reconcile.base import (
    BookingRecord, RunRecord, ValidationError, ConfirmationMismatch, RecordNotFound,
    DELETED_SOFT, CLOSED_PURCHASED, NOT_INTERESTED,
)
from introdesk.services.store import StoreWriteError


def booking(id, name='Jane Doe', class_date=date(2026, 3, 1), **kw):
    kw.setdefault('booked_by', 'Grace')
    return BookingRecord(id=id, member_name=name, class_date=class_date, **kw)


def run(id, booking_id=None, name='Jane Doe', run_date=date(2026, 3, 1), **kw):
    kw.setdefault('ran_by', 'Kayla')
    kw.setdefault('result', 'Follow-up needed')
    return RunRecord(id=id, member_name=name, linked_booking_id=booking_id, run_date=run_date, **kw)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class TestDetection:

    def test_clean_snapshot_has_no_issues(self):
        report = audit_snapshot([booking('b1', intro_owner='Kayla')], [run('r1', 'b1')])
        assert report.issues == []
        assert report.to_dict()['total'] == 0

    def test_owner_mismatch(self):
        report = audit_snapshot([booking('b1', intro_owner='Lauren')], [run('r1', 'b1')])
        [issue] = report.of_kind(OWNER_MISMATCH)
        assert issue.record_id == 'r1'
        assert issue.booking_id == 'b1'
        assert issue.current_value == 'Lauren'
        assert issue.suggested_value == 'Kayla'
        assert issue.auto_fixable is True

    def test_no_show_run_never_mismatches(self):
        report = audit_snapshot([booking('b1')], [run('r1', 'b1', result='No-show')])
        assert report.of_kind(OWNER_MISMATCH) == []

    def test_corrupted_owner_suggests_first_valid_run(self):
        report = audit_snapshot(
            [booking('b1', intro_owner='1/5/2026, 10:00 AM', intro_owner_locked=True)],
            [
                run('r2', 'b1', ran_by='Lauren', run_date=date(2026, 3, 8)),
                run('r1', 'b1', ran_by='Dana', run_date=date(2026, 3, 1)),
            ],
        )
        [issue] = report.of_kind(CORRUPTED_OWNER)
        assert issue.suggested_value == 'Dana'
        assert issue.auto_fixable is True

    def test_unlinked_run_not_auto_fixable(self):
        report = audit_snapshot(
            [booking('b1', class_date=date(2026, 3, 2))],
            [run('r1', None, run_date=date(2026, 3, 1))],
        )
        [issue] = report.of_kind(UNLINKED_RUN)
        assert issue.auto_fixable is False
        assert issue.suggested_value == 'b1'

    def test_missing_booked_by(self):
        report = audit_snapshot(
            [booking('b1', booked_by=None), booking('b2', name='Jamie Fox', booked_by='tbd')],
            [],
        )
        assert {i.record_id for i in report.of_kind(MISSING_BOOKED_BY)} == {'b1', 'b2'}
        assert report.counts()[MISSING_BOOKED_BY] == 2

    def test_invalid_outcome(self):
        report = audit_snapshot([booking('b1', intro_owner='Kayla')],
                                [run('r1', 'b1', result='folow up neded')])
        [issue] = report.of_kind(INVALID_OUTCOME)
        assert issue.suggested_value == 'Follow-up needed'
        assert issue.auto_fixable is True

    def test_padded_locked_owner_is_not_a_mismatch(self):
        report = audit_snapshot([booking('b1', intro_owner='Dana ', intro_owner_locked=True)],
                                [run('r1', 'b1', ran_by='Dana')])
        assert report.of_kind(OWNER_MISMATCH) == []

    def test_ignored_and_archived_records_skipped(self):
        report = audit_snapshot(
            [
                booking('b1', booked_by=None, ignore_from_metrics=True),
                booking('b2', booked_by=None, deleted_at=datetime(2026, 3, 9)),
            ],
            [run('r1', None, ignore_from_metrics=True), run('r2', None, deleted_at=datetime(2026, 3, 9))],
        )
        assert report.issues == []

    def test_auto_fixable_count(self):
        report = audit_snapshot(
            [booking('b1', intro_owner='Lauren', booked_by='')],
            [run('r1', 'b1', result='???'), run('r2', None)],
        )
        assert report.counts() == {
            OWNER_MISMATCH: 1, CORRUPTED_OWNER: 0, UNLINKED_RUN: 1,
            MISSING_BOOKED_BY: 1, INVALID_OUTCOME: 1,
        }
        assert report.auto_fixable == 2


class TestNeedsBookedBy:

    def test_self_booked_exempt(self):
        assert needs_booked_by(booking('b1', booked_by=None, lead_source='Online Intro Offer')) is False

    def test_second_intro_exempt(self):
        assert needs_booked_by(booking('b2', booked_by=None, originating_booking_id='b1')) is False

    @pytest.mark.parametrize('value', [None, '', '  ', 'TBD', 'unknown'])
    def test_placeholders(self, value):
        assert needs_booked_by(booking('b1', booked_by=value)) is True

    def test_real_name(self):
        assert needs_booked_by(booking('b1', booked_by='Grace')) is False


class TestFirstValidRun:

    def test_skips_no_show_and_timestamp(self):
        runs = [
            run('r1', 'b1', run_date=date(2026, 3, 1), result='No-show'),
            run('r2', 'b1', run_date=date(2026, 3, 2), ran_by='2026-03-02 09:00'),
            run('r3', 'b1', run_date=date(2026, 3, 3), ran_by='Dana'),
        ]
        assert first_valid_run(runs).id == 'r3'

    def test_none_when_empty(self):
        assert first_valid_run([]) is None


class TestLinkCandidates:

    def test_exact_then_nearest(self):
        r = run('r1', None, run_date=date(2026, 3, 10))
        bookings = [
            booking('far', class_date=date(2026, 3, 1)),
            booking('near', class_date=date(2026, 3, 12)),
            booking('exact', class_date=date(2026, 3, 10)),
            booking('other', name='Someone Else', class_date=date(2026, 3, 10)),
        ]
        assert [b.id for b in link_candidates(r, bookings)] == ['exact', 'near', 'far']

    def test_tie_prefers_earlier_date(self):
        r = run('r1', None, run_date=date(2026, 3, 10))
        bookings = [booking('after', class_date=date(2026, 3, 12)),
                    booking('before', class_date=date(2026, 3, 8))]
        assert [b.id for b in link_candidates(r, bookings)] == ['before', 'after']

    def test_closed_bookings_excluded(self):
        r = run('r1', None)
        bookings = [booking('b1', status=CLOSED_PURCHASED), booking('b2', status=NOT_INTERESTED),
                    booking('b3', status=DELETED_SOFT)]
        assert link_candidates(r, bookings) == []


# ---------------------------------------------------------------------------
# Auto-fix
# ---------------------------------------------------------------------------

class TestAutoFix:

    def test_corrupted_owner_cleared_then_synced(self, store, add_booking, add_run):
        bid = add_booking(member_name='Sam Ortiz', intro_owner='2026-01-05T10:00:00',
                          intro_owner_locked=True)
        add_run(member_name='Sam Ortiz', linked_booking_id=bid, ran_by='Dana')

        result = run_auto_fix(store, 'Grace')

        assert result.cleared == 1
        assert result.synced == 1
        assert result.failed == 0
        booking = store.get_booking(bid)
        assert booking.intro_owner == 'Dana'
        assert booking.intro_owner_locked is True

    def test_misspelled_no_show_normalized_before_owner_sync(self, store, add_booking, add_run):
        bid = add_booking()
        rid = add_run(linked_booking_id=bid, ran_by='Dana', result='noshw')

        result = run_auto_fix(store, 'Grace')

        assert result.normalized == 1
        assert result.synced == 0
        assert store.get_run(rid).result == 'No-show'
        booking = store.get_booking(bid)
        assert booking.intro_owner is None
        assert booking.intro_owner_locked is False

    def test_second_pass_writes_nothing(self, store, add_booking, add_run):
        bid = add_booking(intro_owner='2026-01-05T10:00:00', intro_owner_locked=True)
        add_run(linked_booking_id=bid, ran_by='Dana')
        other = add_booking(member_name='Drew Hale', intro_owner='Lauren', intro_owner_locked=True)
        add_run(member_name='Drew Hale', linked_booking_id=other, ran_by='Kayla', result='folow up neded')

        first = run_auto_fix(store, 'Grace')
        second = run_auto_fix(store, 'Grace')

        assert first.writes == 3
        assert second.writes == 0
        assert store.get_booking(other).intro_owner == 'Lauren'

    def test_unlocked_mismatch_synced(self, store, add_booking, add_run):
        bid = add_booking(intro_owner='Lauren')
        add_run(linked_booking_id=bid, ran_by='Dana')
        result = run_auto_fix(store, 'Grace')
        assert result.synced == 1
        assert store.get_booking(bid).intro_owner == 'Dana'

    def test_invalid_outcome_normalized(self, store, add_booking, add_run):
        bid = add_booking(intro_owner='Kayla', intro_owner_locked=True)
        add_run(linked_booking_id=bid, result='no  show')
        result = run_auto_fix(store, 'Grace')
        assert result.normalized == 0
        rid = add_run(linked_booking_id=bid, result='NOSHOW!!')
        result = run_auto_fix(store, 'Grace')
        assert result.normalized == 1
        assert store.get_run(rid).last_edited_by == 'Grace'

    def test_write_failures_counted(self):
        store = MagicMock()
        store.list_bookings.return_value = [
            booking('b1', intro_owner='2026-01-05 10:00', intro_owner_locked=True),
            booking('b2', intro_owner='2026-01-06 10:00', intro_owner_locked=True),
        ]
        store.list_runs.return_value = []
        store.update_booking.side_effect = [StoreWriteError('boom'), None]

        result = run_auto_fix(store, 'Grace')

        assert result.cleared == 1
        assert result.failed == 1
        assert len(result.errors) == 1
        assert result.to_dict()['fixed'] == 1


# ---------------------------------------------------------------------------
# Operator actions
# ---------------------------------------------------------------------------

class TestLinking:

    def test_candidates_for_run(self, store, add_booking, add_run):
        bid = add_booking(class_date=date(2026, 3, 1))
        rid = add_run(run_date=date(2026, 3, 1))
        suggestion = candidates_for_run(store, rid)
        assert suggestion.best.id == bid
        assert suggestion.to_dict()['suggested_booking_id'] == bid

    def test_link_run_credits_conductor(self, store, add_booking, add_run):
        bid = add_booking()
        rid = add_run(ran_by='Dana')

        change = link_run(store, rid, bid, 'Grace')

        assert change.status == UPDATED
        assert store.get_run(rid).linked_booking_id == bid
        assert store.get_booking(bid).intro_owner == 'Dana'

    def test_link_to_missing_booking(self, store, add_run):
        rid = add_run()
        with pytest.raises(RecordNotFound):
            link_run(store, rid, 'nope', 'Grace')

    def test_create_booking_from_run(self, store, add_run):
        rid = add_run(member_name='Walk In', ran_by='Dana', run_date=date(2026, 3, 4),
                      result='Elite + OTBeat', lead_source='Referral')

        created = create_booking_from_run(store, rid, 'Grace')

        assert created.member_name == 'Walk In'
        assert created.class_date == date(2026, 3, 4)
        assert created.status == CLOSED_PURCHASED
        assert created.intro_owner == 'Dana'
        assert created.intro_owner_locked is True
        assert store.get_run(rid).linked_booking_id == created.id

    def test_create_booking_for_linked_run_rejected(self, store, add_booking, add_run):
        rid = add_run(linked_booking_id=add_booking())
        with pytest.raises(ValidationError):
            create_booking_from_run(store, rid, 'Grace')


class TestAssignBookedBy:

    def test_partial_success(self, store, add_booking):
        good = add_booking(booked_by=None)

        batch = assign_booked_by(store, [good, 'missing'], 'Grace', 'Nora')

        assert batch.succeeded == [good]
        assert batch.failed == ['missing']
        assert store.get_booking(good).booked_by == 'Grace'
        assert batch.to_dict()['failed'] == 1

    @pytest.mark.parametrize('staff', ['', '  ', 'TBD'])
    def test_placeholder_rejected(self, store, staff):
        with pytest.raises(ValidationError):
            assign_booked_by(store, ['b1'], staff, 'Nora')


class TestNormalizeRunOutcome:

    def test_explicit_value(self, store, add_run):
        rid = add_run(result='???')
        assert normalize_run_outcome(store, rid, 'Grace', 'Not Interested').result == 'Not Interested'

    def test_uncontrolled_value_rejected(self, store, add_run):
        rid = add_run(result='???')
        with pytest.raises(ValidationError):
            normalize_run_outcome(store, rid, 'Grace', 'Maybe')

    def test_nearest_match(self, store, add_run):
        rid = add_run(result='booked second intro')
        assert normalize_run_outcome(store, rid, 'Grace').result == 'Booked 2nd intro'


class TestIgnoreArchiveDelete:

    def test_ignore_and_restore(self, store, add_booking):
        bid = add_booking()
        assert ignore_record(store, 'booking', bid, 'Grace').ignore_from_metrics is True
        assert ignore_record(store, 'booking', bid, 'Grace', ignore=False).ignore_from_metrics is False

    def test_archive_booking(self, store, add_booking):
        bid = add_booking()
        archived = archive_record(store, 'booking', bid, 'Grace')
        assert archived.status == DELETED_SOFT
        assert archived.deleted_at is not None

    def test_archive_run(self, store, add_run):
        rid = add_run()
        assert archive_record(store, 'run', rid, 'Grace').deleted_at is not None

    def test_unknown_record_type(self, store):
        with pytest.raises(ValidationError):
            ignore_record(store, 'touch', 'x', 'Grace')

    @pytest.mark.parametrize('confirmation', [None, '', 'delete', 'DELETE ', 'yes'])
    def test_hard_delete_requires_exact_phrase(self, store, add_run, confirmation):
        rid = add_run()
        with pytest.raises(ConfirmationMismatch):
            hard_delete_record(store, 'run', rid, confirmation, 'Grace')
        assert store.get_run(rid) is not None

    def test_hard_delete_booking_unlinks_runs(self, store, add_booking, add_run):
        bid = add_booking()
        rid = add_run(linked_booking_id=bid)

        hard_delete_record(store, 'booking', bid, 'DELETE', 'Grace')

        assert store.get_booking(bid) is None
        assert store.get_run(rid).linked_booking_id is None

    def test_hard_delete_missing(self, store):
        with pytest.raises(RecordNotFound):
            hard_delete_record(store, 'run', 'nope', 'DELETE', 'Grace')
