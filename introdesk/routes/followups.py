"""
Follow-up routes — the four follow-up queues plus the single-record actions
staff take from them (dismiss, set next contact date, change status, log a touch).
"""
import logging
from flask import Blueprint, jsonify, request

from introdesk.reconcile.base import BOOKING_STATUSES, ValidationError
from introdesk.reconcile.followup import build_follow_up_queue
from introdesk.routes.helpers import request_data, editor_from_request, parse_date, error_response
from introdesk.services.store import RecordStore, utcnow
from introdesk.services.touches import log_touch

logger = logging.getLogger('routes.followups')

bp = Blueprint('followups', __name__)

store = RecordStore()


def _queue_or_503():
    today = parse_date(request.args.get('today'), 'today')
    return build_follow_up_queue(store, today=today)


@bp.route('/api/follow-ups')
def list_follow_ups():
    """All four queues with per-queue counts."""
    try:
        queue = _queue_or_503()
    except ValidationError as e:
        return error_response(e)
    if queue is None:
        return jsonify({'error': 'Follow-up data unavailable, try again'}), 503
    return jsonify(queue.to_dict())


@bp.route('/api/follow-ups/counts')
def follow_up_counts():
    """Badge counts only."""
    try:
        queue = _queue_or_503()
    except ValidationError as e:
        return error_response(e)
    if queue is None:
        return jsonify({'error': 'Follow-up data unavailable, try again'}), 503
    return jsonify({'counts': queue.counts(), 'total': queue.total})


@bp.route('/api/bookings/<booking_id>/dismiss', methods=['POST'])
def dismiss_booking(booking_id):
    """Remove a booking from the follow-up queues."""
    data = request_data()
    editor = editor_from_request(data)
    try:
        booking = store.update_booking(
            booking_id, followup_dismissed_at=utcnow(),
            last_edited_at=utcnow(), last_edited_by=editor,
            edit_reason='Dismissed from follow-up',
        )
    except Exception as e:
        return error_response(e)
    return jsonify(booking.to_dict())


@bp.route('/api/bookings/<booking_id>/contact-date', methods=['PUT'])
def set_contact_date(booking_id):
    """Store (or clear) the explicit next-contact date for a booking."""
    data = request_data()
    editor = editor_from_request(data)
    try:
        contact_date = parse_date(data.get('date'), 'date')
        booking = store.update_booking(
            booking_id, reschedule_contact_date=contact_date,
            last_edited_at=utcnow(), last_edited_by=editor,
            edit_reason='Set next contact date',
        )
    except Exception as e:
        return error_response(e)
    return jsonify(booking.to_dict())


@bp.route('/api/bookings/<booking_id>/status', methods=['PUT'])
def set_booking_status(booking_id):
    """Status transition, e.g. mark purchased / not interested / planning to reschedule."""
    data = request_data()
    editor = editor_from_request(data)
    status = (data.get('status') or '').strip()
    if status not in BOOKING_STATUSES:
        return jsonify({'error': f'Status must be one of {BOOKING_STATUSES}'}), 400
    try:
        booking = store.update_booking(
            booking_id, booking_status=status,
            last_edited_at=utcnow(), last_edited_by=editor,
            edit_reason=(data.get('reason') or f'Status set to {status}'),
        )
    except Exception as e:
        return error_response(e)
    return jsonify(booking.to_dict())


@bp.route('/api/touches', methods=['POST'])
def create_touch():
    """Log an outbound contact ("log as sent")."""
    data = request_data()
    editor = editor_from_request(data)
    try:
        touch = log_touch(
            store,
            touch_type=data.get('touch_type'),
            editor=editor,
            booking_id=data.get('booking_id'),
            run_id=data.get('run_id'),
            member_name=data.get('member_name'),
            channel=data.get('channel'),
            script_category=data.get('script_category'),
            notes=data.get('notes'),
        )
    except Exception as e:
        return error_response(e)
    if touch is None:
        return jsonify({'logged': False, 'duplicate': True}), 200
    return jsonify({'logged': True, 'touch': touch.to_dict()}), 201
