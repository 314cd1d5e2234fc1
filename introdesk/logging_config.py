"""
Logging setup for introdesk.

Owner edits, auto-fix passes and store failures log the record they touched
through ``extra={'booking_id': ..., 'run_id': ..., 'editor': ...}``. Both
formats carry those fields so an edit trail can be grepped out of the logs.
"""
import json
import logging
import sys
from datetime import datetime, timezone

from introdesk import config

# Record context passed via extra=
CONTEXT_FIELDS = ('editor', 'booking_id', 'run_id')

_NOISY_LOGGERS = [
    'werkzeug',
    'sqlalchemy.engine',
    'alembic',
    'urllib3',
]


def _context(record) -> dict:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, record context included."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain lines with the record context appended as key=value pairs."""

    def __init__(self):
        super().__init__('[%(asctime)s] %(levelname)s %(name)s: %(message)s',
                         datefmt='%Y-%m-%d %H:%M:%S')

    def format(self, record):
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        pairs = ' '.join(f'{k}={v}' for k, v in context.items())
        head, sep, tail = line.partition('\n')
        return f'{head} [{pairs}]{sep}{tail}'


def configure_logging(app=None):
    """Root handler on stderr, level and format from LOG_LEVEL / LOG_FORMAT."""
    level = getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # create_app() runs once per test; keep a single handler
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if str(config.LOG_FORMAT).lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.setLevel(level)
