"""Tests for introdesk.services.touches -- logging outreach with the Redis throttle."""
import pytest
import redis

from introdesk.reconcile.base import ValidationError
from introdesk.services.touches import log_touch


class TestLogTouch:

    def test_inserts_touch(self, store, mock_redis):
        touch = log_touch(store, 'text', 'Grace', booking_id='b1', member_name='Jane Doe',
                          channel='sms', script_category='no_show')

        assert touch.touch_type == 'text'
        assert touch.created_by == 'Grace'
        assert touch.summary == 'text (no_show)'
        assert [t.id for t in store.list_touches(booking_id='b1')] == [touch.id]

    def test_throttle_key_set_with_nx_and_ttl(self, store, mock_redis):
        log_touch(store, 'call', 'Grace', booking_id='b1')
        mock_redis.set.assert_called_once_with('touch:throttle:b1:call', '1', nx=True, ex=30)

    def test_duplicate_within_window_skipped(self, store, mock_redis):
        mock_redis.set.return_value = None

        assert log_touch(store, 'text', 'Grace', booking_id='b1') is None
        assert store.list_touches() == []

    def test_redis_down_still_logs(self, store, mock_redis):
        mock_redis.set.side_effect = redis.ConnectionError('refused')
        touch = log_touch(store, 'text', 'Grace', booking_id='b1')
        assert touch is not None

    def test_member_only_touch_skips_throttle(self, store, mock_redis):
        touch = log_touch(store, 'text', 'Grace', member_name='Walk In')
        assert touch.booking_id is None
        mock_redis.set.assert_not_called()

    @pytest.mark.parametrize('touch_type', [None, '', '   '])
    def test_touch_type_required(self, store, mock_redis, touch_type):
        with pytest.raises(ValidationError):
            log_touch(store, touch_type, 'Grace', booking_id='b1')

    def test_target_required(self, store, mock_redis):
        with pytest.raises(ValidationError):
            log_touch(store, 'text', 'Grace')
