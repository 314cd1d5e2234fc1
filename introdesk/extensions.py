"""
Shared client instances.

The Redis client connects lazily on first command, so importing this module is
always safe (even when Redis is down during tests).
"""
import logging
import redis

from introdesk.config import REDIS_URL

logger = logging.getLogger('introdesk.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)
