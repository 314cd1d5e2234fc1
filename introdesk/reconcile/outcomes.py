"""
Outcome vocabulary — canonical result codes, booking-status normalization,
and the controlled list staff pick run results from.

Free-text results arrive in many spellings ("No Show", "noshow", "Premier +
OTBeat"). Classification never compares raw strings; it compares the
canonical code from canonicalize_result().
"""
import difflib
import logging
import os
from typing import Dict, Any, Optional

import yaml

from introdesk.reconcile.base import (
    ACTIVE, NO_SHOW, NOT_INTERESTED, CLOSED_PURCHASED, DELETED_SOFT,
    UNSCHEDULED, CANCELLED, PLANNING_RESCHEDULE,
)

logger = logging.getLogger('reconcile.outcomes')


# ── Rules config (YAML with hardcoded fallback) ──────────────────────────────

_rules = None


def _default_rules():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'lookback_days': 90,
        'excluded_booking_types': ['VIP', 'COMP'],
        'next_contact_days': {
            'no_show': 1,
            'follow_up': 2,
            'second_intro_ran': 2,
            'no_outcome': 3,
            'second_intro_missed': 1,
            'plans_to_reschedule': 2,
        },
        'outcome_vocabulary': [
            'Closed',
            'Follow-up needed',
            'Booked 2nd intro',
            'No-show',
            'Plans to Reschedule',
            'Not Interested',
            "Didn't Buy",
        ],
        'membership_tiers': [
            'Premier + OTBeat',
            'Premier w/o OTBeat',
            'Elite + OTBeat',
            'Elite w/o OTBeat',
            'Basic + OTBeat',
            'Basic w/o OTBeat',
        ],
        'outcome_normalization': {
            'no show': 'No-show',
            'noshow': 'No-show',
            'no-show': 'No-show',
            'closed': 'Closed',
            'follow-up needed': 'Follow-up needed',
            'follow up needed': 'Follow-up needed',
            'followup needed': 'Follow-up needed',
            'booked 2nd intro': 'Booked 2nd intro',
            'booked second intro': 'Booked 2nd intro',
        },
        'default_outcome': 'Follow-up needed',
        'outcome_match_cutoff': 0.75,
    }


def load_rules() -> Dict[str, Any]:
    """Load rules from YAML, with in-memory cache and hardcoded fallback."""
    global _rules
    if _rules is not None:
        return _rules

    config_path = os.path.join(os.path.dirname(__file__), 'rules.yaml')
    try:
        with open(config_path, 'r') as f:
            _rules = yaml.safe_load(f)
        logger.info("Rules loaded from YAML (version=%s)", _rules.get('version', '?'))
    except Exception as e:
        logger.warning("YAML rules not found (%s), using defaults", e)
        _rules = _default_rules()

    return _rules


def next_contact_days(kind: str) -> int:
    cfg = load_rules().get('next_contact_days', {})
    return int(cfg.get(kind, _default_rules()['next_contact_days'][kind]))


# ── Canonical result codes ────────────────────────────────────────────────────

PURCHASED = 'PURCHASED'
DIDNT_BUY = 'DIDNT_BUY'
RESULT_NO_SHOW = 'NO_SHOW'
RESULT_NOT_INTERESTED = 'NOT_INTERESTED'
FOLLOW_UP_NEEDED = 'FOLLOW_UP_NEEDED'
SECOND_INTRO_SCHEDULED = 'SECOND_INTRO_SCHEDULED'
RESULT_PLANNING_RESCHEDULE = 'PLANNING_RESCHEDULE'
UNRESOLVED = 'UNRESOLVED'

RESULT_CANON_MAP = {
    # Sale variants
    'closed': PURCHASED,
    'purchased': PURCHASED,
    'premier': PURCHASED,
    'elite': PURCHASED,
    'basic': PURCHASED,
    'sold - unlimited': PURCHASED,
    # Non-sale
    "didn't buy": DIDNT_BUY,
    'didnt buy': DIDNT_BUY,
    'didnt_buy': DIDNT_BUY,
    'no-show': RESULT_NO_SHOW,
    'no show': RESULT_NO_SHOW,
    'no_show': RESULT_NO_SHOW,
    'noshow': RESULT_NO_SHOW,
    "no-show (didn't attend)": RESULT_NO_SHOW,
    'not interested': RESULT_NOT_INTERESTED,
    'not_interested': RESULT_NOT_INTERESTED,
    'follow-up needed': FOLLOW_UP_NEEDED,
    'follow up needed': FOLLOW_UP_NEEDED,
    'followup needed': FOLLOW_UP_NEEDED,
    'follow-up needed (no sale yet)': FOLLOW_UP_NEEDED,
    'booked 2nd intro': SECOND_INTRO_SCHEDULED,
    'booked second intro': SECOND_INTRO_SCHEDULED,
    'second intro scheduled': SECOND_INTRO_SCHEDULED,
    'plans to reschedule': RESULT_PLANNING_RESCHEDULE,
    'planning to reschedule': RESULT_PLANNING_RESCHEDULE,
    'planning_reschedule': RESULT_PLANNING_RESCHEDULE,
}

# Substrings that mark a membership sale ("Premier w/o OTBeat", "Sold - Elite")
_SALE_KEYWORDS = ('premier', 'elite', 'basic')


def canonicalize_result(raw: Optional[str]) -> str:
    """Map a free-text run result to its canonical code. Blank → UNRESOLVED."""
    if not raw or not raw.strip():
        return UNRESOLVED
    key = ' '.join(raw.lower().split())
    if key in RESULT_CANON_MAP:
        return RESULT_CANON_MAP[key]
    if any(word in key for word in _SALE_KEYWORDS):
        return PURCHASED
    return UNRESOLVED


def is_sale_result(raw: Optional[str]) -> bool:
    return canonicalize_result(raw) == PURCHASED


def is_terminal_result(raw: Optional[str]) -> bool:
    """Sales and explicit 'not interested' end the follow-up cadence."""
    return canonicalize_result(raw) in (PURCHASED, RESULT_NOT_INTERESTED)


def is_no_show_result(raw: Optional[str]) -> bool:
    return canonicalize_result(raw) == RESULT_NO_SHOW


def is_follow_up_result(raw: Optional[str]) -> bool:
    if raw == 'Follow-up needed':
        return True
    return canonicalize_result(raw) in (FOLLOW_UP_NEEDED, DIDNT_BUY)


def is_reschedule_result(raw: Optional[str]) -> bool:
    return canonicalize_result(raw) == RESULT_PLANNING_RESCHEDULE


# ── Booking status normalization ──────────────────────────────────────────────

STATUS_MAP = {
    'active': ACTIVE,
    'no-show': NO_SHOW,
    'no show': NO_SHOW,
    'no_show': NO_SHOW,
    'not interested': NOT_INTERESTED,
    'not_interested': NOT_INTERESTED,
    'closed (purchased)': CLOSED_PURCHASED,
    'closed – bought': CLOSED_PURCHASED,
    'closed - bought': CLOSED_PURCHASED,
    'closed bought': CLOSED_PURCHASED,
    'closed_purchased': CLOSED_PURCHASED,
    'deleted (soft)': DELETED_SOFT,
    'deleted_soft': DELETED_SOFT,
    'unscheduled': UNSCHEDULED,
    'cancelled': CANCELLED,
    'canceled': CANCELLED,
    'planning to reschedule': PLANNING_RESCHEDULE,
    'planning_reschedule': PLANNING_RESCHEDULE,
    'plans to reschedule': PLANNING_RESCHEDULE,
    '2nd intro scheduled': ACTIVE,
    'second_intro_scheduled': ACTIVE,
}


def normalize_booking_status(raw: Optional[str]) -> str:
    """Legacy free-text status → one of BOOKING_STATUSES. Unknown → Active."""
    if not raw:
        return ACTIVE
    return STATUS_MAP.get(raw.strip().lower(), ACTIVE)


def booking_status_for_result(raw: Optional[str]) -> Optional[str]:
    """Status a booking moves to once its run is logged, or None to leave it."""
    canon = canonicalize_result(raw)
    return {
        PURCHASED: CLOSED_PURCHASED,
        RESULT_NOT_INTERESTED: NOT_INTERESTED,
        RESULT_NO_SHOW: NO_SHOW,
        RESULT_PLANNING_RESCHEDULE: PLANNING_RESCHEDULE,
    }.get(canon)


# ── Controlled vocabulary ─────────────────────────────────────────────────────

def controlled_outcomes():
    rules = load_rules()
    return list(rules.get('outcome_vocabulary', [])) + list(rules.get('membership_tiers', []))


def is_valid_outcome(raw: Optional[str]) -> bool:
    """
    Blank results are "not yet resolved", not invalid. Anything else must be a
    controlled value, a known misspelling, or recognizably a membership sale.
    """
    if not raw or not raw.strip():
        return True
    value = raw.strip()
    if value in controlled_outcomes():
        return True
    if value.lower() in load_rules().get('outcome_normalization', {}):
        return True
    return canonicalize_result(value) != UNRESOLVED


def normalize_outcome(raw: Optional[str]) -> str:
    """Nearest controlled value for a free-text result, else the default."""
    rules = load_rules()
    default = rules.get('default_outcome', 'Follow-up needed')
    if not raw or not raw.strip():
        return default

    key = ' '.join(raw.lower().split())
    table = rules.get('outcome_normalization', {})
    if key in table:
        return table[key]

    choices = controlled_outcomes()
    by_lower = {c.lower(): c for c in choices}
    if key in by_lower:
        return by_lower[key]

    cutoff = float(rules.get('outcome_match_cutoff', 0.75))
    match = difflib.get_close_matches(key, list(by_lower) + list(table), n=1, cutoff=cutoff)
    if match:
        return by_lower.get(match[0]) or table[match[0]]
    return default
