"""
Data audit routes — issue list, auto-fix, and per-issue remediation.
"""
import logging
from flask import Blueprint, jsonify

from introdesk.reconcile import auditor
from introdesk.reconcile.base import RECORD_BOOKING, RECORD_RUN, ValidationError
from introdesk.routes.helpers import request_data, editor_from_request, error_response
from introdesk.services.store import RecordStore

logger = logging.getLogger('routes.audit')

bp = Blueprint('audit', __name__)

store = RecordStore()

# URL segment → record type
RECORD_SEGMENTS = {'bookings': RECORD_BOOKING, 'runs': RECORD_RUN}


def _record_type(segment):
    record_type = RECORD_SEGMENTS.get(segment)
    if record_type is None:
        raise ValidationError(f"Unknown record collection {segment!r}")
    return record_type


@bp.route('/api/audit')
def get_audit():
    """Current issues across all bookings and runs."""
    try:
        report = auditor.audit_snapshot(store.list_bookings(), store.list_runs())
    except Exception as e:
        return error_response(e)
    return jsonify(report.to_dict())


@bp.route('/api/audit/fix', methods=['POST'])
def auto_fix():
    """Run every auto-fixable repair; reports counts per unit of work."""
    editor = editor_from_request()
    try:
        result = auditor.run_auto_fix(store, editor)
    except Exception as e:
        return error_response(e)
    return jsonify(result.to_dict())


@bp.route('/api/runs/<run_id>/link-candidates')
def link_candidates(run_id):
    try:
        suggestion = auditor.candidates_for_run(store, run_id)
    except Exception as e:
        return error_response(e)
    return jsonify(suggestion.to_dict())


@bp.route('/api/runs/<run_id>/link', methods=['POST'])
def link_run(run_id):
    data = request_data()
    editor = editor_from_request(data)
    booking_id = (data.get('booking_id') or '').strip()
    if not booking_id:
        return jsonify({'error': 'booking_id is required'}), 400
    try:
        change = auditor.link_run(store, run_id, booking_id, editor)
    except Exception as e:
        return error_response(e)
    return jsonify({'linked': True, 'ownership': change.to_dict()})


@bp.route('/api/runs/<run_id>/create-booking', methods=['POST'])
def create_booking(run_id):
    """No matching booking: create one from the run and link it."""
    editor = editor_from_request()
    try:
        booking = auditor.create_booking_from_run(store, run_id, editor)
    except Exception as e:
        return error_response(e)
    return jsonify(booking.to_dict()), 201


@bp.route('/api/runs/<run_id>/normalize-outcome', methods=['POST'])
def normalize_outcome(run_id):
    data = request_data()
    editor = editor_from_request(data)
    try:
        run = auditor.normalize_run_outcome(store, run_id, editor, data.get('result'))
    except Exception as e:
        return error_response(e)
    return jsonify(run.to_dict())


@bp.route('/api/bookings/booked-by', methods=['POST'])
def bulk_booked_by():
    """Body: {"booking_ids": [...], "booked_by": "Grace"}."""
    data = request_data()
    editor = editor_from_request(data)
    booking_ids = data.get('booking_ids') or []
    if not isinstance(booking_ids, list) or not booking_ids:
        return jsonify({'error': 'booking_ids must be a non-empty list'}), 400
    try:
        batch = auditor.assign_booked_by(store, booking_ids, data.get('booked_by'), editor)
    except Exception as e:
        return error_response(e)
    return jsonify(batch.to_dict())


@bp.route('/api/<collection>/<record_id>/ignore', methods=['POST'])
def ignore(collection, record_id):
    data = request_data()
    editor = editor_from_request(data)
    try:
        record = auditor.ignore_record(store, _record_type(collection), record_id, editor,
                                       ignore=bool(data.get('ignore', True)))
    except Exception as e:
        return error_response(e)
    return jsonify(record.to_dict())


@bp.route('/api/<collection>/<record_id>/archive', methods=['POST'])
def archive(collection, record_id):
    editor = editor_from_request()
    try:
        record = auditor.archive_record(store, _record_type(collection), record_id, editor)
    except Exception as e:
        return error_response(e)
    return jsonify(record.to_dict())


@bp.route('/api/<collection>/<record_id>', methods=['DELETE'])
def hard_delete(collection, record_id):
    """Permanent delete. Body must carry {"confirm": "DELETE"}."""
    data = request_data()
    editor = editor_from_request(data)
    try:
        auditor.hard_delete_record(store, _record_type(collection), record_id,
                                   data.get('confirm'), editor)
    except Exception as e:
        return error_response(e)
    return jsonify({'deleted': True, 'id': record_id})
