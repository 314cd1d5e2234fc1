"""
Attribution routes — owner overrides, manual run logging, owner sync.
"""
import logging
from flask import Blueprint, jsonify

from introdesk.reconcile.attribution import (
    override_owner, record_run, set_owner_from_run, get_run_or_raise, REFUSED,
)
from introdesk.reconcile.base import ValidationError
from introdesk.routes.helpers import request_data, editor_from_request, parse_date, error_response
from introdesk.services.store import RecordStore

logger = logging.getLogger('routes.attribution')

bp = Blueprint('attribution', __name__)

store = RecordStore()

RUN_INPUT_FIELDS = (
    'member_name', 'linked_booking_id', 'class_time', 'result',
    'intro_owner', 'ran_by', 'lead_source', 'is_vip',
)


@bp.route('/api/bookings/<booking_id>/owner', methods=['POST'])
def change_owner(booking_id):
    """
    Set or clear a booking's intro owner.

    Body: {"owner": "Dana" | null, "reason": "...", "editor": "..."}
    A locked owner can only be changed or cleared with a reason.
    """
    data = request_data()
    editor = editor_from_request(data)
    try:
        booking = override_owner(store, booking_id, data.get('owner'), data.get('reason'), editor)
    except Exception as e:
        return error_response(e)
    return jsonify(booking.to_dict())


@bp.route('/api/runs', methods=['POST'])
def create_run():
    """Log a run by hand. The first conductor of a booking becomes its owner."""
    data = request_data()
    editor = editor_from_request(data)
    fields = {k: data[k] for k in RUN_INPUT_FIELDS if k in data}
    try:
        fields['run_date'] = parse_date(data.get('run_date'), 'run_date')
        if data.get('commission_amount') is not None:
            try:
                fields['commission_amount'] = float(data['commission_amount'])
            except (TypeError, ValueError):
                raise ValidationError("commission_amount must be a number")
        sync = record_run(store, editor, **fields)
    except Exception as e:
        return error_response(e)
    return jsonify({'run': sync.run.to_dict(), 'ownership': sync.to_dict()}), 201


@bp.route('/api/runs/<run_id>/sync-owner', methods=['POST'])
def sync_owner(run_id):
    """Copy the run's conductor onto its linked booking (refused if locked to someone else)."""
    editor = editor_from_request()
    try:
        run = get_run_or_raise(store, run_id)
        change = set_owner_from_run(store, run, editor)
    except Exception as e:
        return error_response(e)
    status = 409 if change.status == REFUSED else 200
    return jsonify(change.to_dict()), status
