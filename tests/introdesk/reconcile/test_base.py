"""Tests for introdesk.reconcile.base — records and shared helpers."""
from datetime import date, datetime

import pytest

from introdesk.reconcile.base import (
    BookingRecord, RunRecord, TouchRecord, BatchResult,
    identity_key_of, is_timestamp_like, effective_owner,
    DELETED_SOFT, ACTIVE,
)


# ---------------------------------------------------------------------------
# identity_key_of
# ---------------------------------------------------------------------------

class TestIdentityKey:

    def test_case_insensitive(self):
        assert identity_key_of('Jane Doe') == identity_key_of('JANE DOE')

    def test_ignores_all_whitespace(self):
        assert identity_key_of('  Jane   Doe ') == 'janedoe'
        assert identity_key_of('Jane\tDoe') == 'janedoe'

    def test_none_and_empty(self):
        assert identity_key_of(None) == ''
        assert identity_key_of('') == ''

    def test_record_properties_use_same_key(self):
        b = BookingRecord(id='b1', member_name='Jane Doe', class_date=date(2026, 3, 1))
        r = RunRecord(id='r1', member_name='jane  doe')
        assert b.identity_key == r.identity_key


# ---------------------------------------------------------------------------
# is_timestamp_like
# ---------------------------------------------------------------------------

class TestIsTimestampLike:

    @pytest.mark.parametrize('value', [
        '2024-01-05T10:00:00',
        '2024-01-05 10:00',
        '1/5/2024, 10:00 AM',
        '2024-01-05T10:00:00.000Z',
    ])
    def test_timestamps_detected(self, value):
        assert is_timestamp_like(value) is True

    @pytest.mark.parametrize('value', ['Dana', 'Kaitlyn H', '', None, '2024-01-05', '10:00'])
    def test_names_and_partial_values_not_detected(self, value):
        assert is_timestamp_like(value) is False


# ---------------------------------------------------------------------------
# effective_owner
# ---------------------------------------------------------------------------

class TestEffectiveOwner:

    def test_prefers_intro_owner(self):
        run = RunRecord(id='r1', member_name='X', intro_owner='Grace', ran_by='Kayla')
        assert effective_owner(run) == 'Grace'

    def test_falls_back_to_ran_by(self):
        run = RunRecord(id='r1', member_name='X', intro_owner=None, ran_by='Kayla')
        assert effective_owner(run) == 'Kayla'

    def test_blank_owner_falls_back(self):
        run = RunRecord(id='r1', member_name='X', intro_owner='  ', ran_by='Kayla')
        assert run.effective_owner == 'Kayla'

    def test_nobody(self):
        assert effective_owner(RunRecord(id='r1', member_name='X')) is None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestRecords:

    def test_booking_deleted_by_status_or_timestamp(self):
        assert BookingRecord(id='b', member_name='X', class_date=None, status=DELETED_SOFT).is_deleted
        assert BookingRecord(id='b', member_name='X', class_date=None,
                             deleted_at=datetime(2026, 1, 1)).is_deleted
        assert not BookingRecord(id='b', member_name='X', class_date=None, status=ACTIVE).is_deleted

    def test_booking_to_dict_serializes_dates(self):
        b = BookingRecord(id='b1', member_name='X', class_date=date(2026, 3, 1))
        assert b.to_dict()['class_date'] == '2026-03-01'

    def test_touch_summary_with_category(self):
        t = TouchRecord(id='t1', touch_type='text', script_category='no_show')
        assert t.summary == 'text (no_show)'

    def test_touch_summary_without_category(self):
        assert TouchRecord(id='t1', touch_type='call').summary == 'call'

    def test_batch_result_counts(self):
        batch = BatchResult(succeeded=['a', 'b'], failed=['c'], errors=['c: boom'])
        out = batch.to_dict()
        assert out['succeeded'] == 2
        assert out['failed'] == 1
        assert out['failed_ids'] == ['c']
