"""
Outreach touches — "log as sent" for a follow-up message or call.

Staff double-tap the button a lot. A Redis SET NX with a short TTL collapses
repeats for the same booking and touch type; if Redis is unreachable the
touch is logged anyway.
"""
import logging
from typing import Optional

import redis

from introdesk.config import TOUCH_THROTTLE_SECONDS
from introdesk.extensions import redis_client as r
from introdesk.reconcile.base import TouchRecord, ValidationError

logger = logging.getLogger('services.touches')


def _throttle_key(booking_id, touch_type):
    return f'touch:throttle:{booking_id}:{touch_type}'


def _is_duplicate(booking_id, touch_type) -> bool:
    if not booking_id:
        return False
    try:
        acquired = r.set(_throttle_key(booking_id, touch_type), '1',
                         nx=True, ex=TOUCH_THROTTLE_SECONDS)
        return not acquired
    except redis.RedisError as e:
        logger.warning("Touch throttle unavailable, logging without it: %s", e)
        return False


def log_touch(store, touch_type: str, editor: str, booking_id: Optional[str] = None,
              run_id: Optional[str] = None, member_name: Optional[str] = None,
              channel: Optional[str] = None, script_category: Optional[str] = None,
              notes: Optional[str] = None) -> Optional[TouchRecord]:
    """Insert a touch row. Returns None when it duplicates one from the last few seconds."""
    touch_type = (touch_type or '').strip()
    if not touch_type:
        raise ValidationError("touch_type is required")
    if not booking_id and not member_name:
        raise ValidationError("booking_id or member_name is required")

    if _is_duplicate(booking_id, touch_type):
        logger.info("Duplicate %s touch for booking %s within %ss, skipped",
                    touch_type, booking_id, TOUCH_THROTTLE_SECONDS)
        return None

    touch = store.insert_touch(
        booking_id=booking_id,
        run_id=run_id,
        member_name=member_name,
        touch_type=touch_type,
        channel=channel,
        script_category=script_category,
        notes=notes,
        created_by=editor,
    )
    logger.info("Touch %s logged for booking %s by %s", touch_type, booking_id, editor)
    return touch
