"""
Centralized configuration — env vars, staff roster, follow-up constants.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Follow-up queue ───────────────────────────────────────────────────────────
FOLLOWUP_LOOKBACK_DAYS = int(os.getenv('FOLLOWUP_LOOKBACK_DAYS', '90'))

# Repeated "log as sent" clicks for the same booking + touch type inside this
# window are collapsed into one touch row
TOUCH_THROTTLE_SECONDS = int(os.getenv('TOUCH_THROTTLE_SECONDS', '30'))

# ── Data audit ────────────────────────────────────────────────────────────────
HARD_DELETE_CONFIRMATION = 'DELETE'
DEFAULT_EDITOR = 'System'

# Placeholder values staff type into booked-by when they don't know who booked
PLACEHOLDER_STAFF = ('TBD', 'Unknown')

# Lead sources where the prospect booked themselves online
SELF_BOOKED_LEAD_SOURCES = (
    'Online Intro Offer (self-booked)',
    'Online Intro Offer',
)

# ── Staff roster ──────────────────────────────────────────────────────────────
SALES_ASSOCIATES = [
    'Bre', 'Elizabeth', 'Grace', 'Katie', 'Kayla', 'Lauren', 'Nora', 'Sophie',
]

COACHES = [
    'Bre', 'Elizabeth', 'James', 'Kaitlyn H', 'Nathan', 'Natalya',
]

ALL_STAFF = sorted(set(SALES_ASSOCIATES) | set(COACHES))
