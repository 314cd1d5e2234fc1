"""
Dashboard routes — health check and the staff roster for pick lists.
"""
import logging
from flask import Blueprint, jsonify

from introdesk.config import SALES_ASSOCIATES, COACHES, ALL_STAFF

logger = logging.getLogger('routes.dashboard')

bp = Blueprint('dashboard', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/staff')
def staff_roster():
    """Names offered for booked-by, ran-by and owner fields."""
    return jsonify({
        'sales_associates': SALES_ASSOCIATES,
        'coaches': COACHES,
        'all': ALL_STAFF,
    })
