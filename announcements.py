"""Outbound announcements for the monitor display.

The engine never talks to the display directly.  When a student should be
called, or warned, it publishes a small JSON event here and the display picks
it up through ``GET /api/announcements`` on its next poll.

With ``REDIS_URL`` set, events go onto a Redis list so that several app
workers share one queue.  Without it, events are kept in process memory,
which is enough for a single worker and for tests.  A configured Redis that
cannot be reached loses the event (logged); it is never parked in memory,
because the next drain would only look at Redis again.
"""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL")
ANNOUNCEMENT_KEY = "viva:announcements"
MAX_PENDING = 100
REDIS_TIMEOUT_SECONDS = 2

STUDENT = "student"
WARNING = "warning"

_redis_client: Optional[redis.Redis] = None
_local_queue: Deque[str] = deque(maxlen=MAX_PENDING)


def get_redis() -> Optional[redis.Redis]:
    """Get Redis client if configured.

    The client connects lazily, so a Redis that is down only shows up as a
    ``RedisError`` on the first command, bounded by ``REDIS_TIMEOUT_SECONDS``.
    """
    global _redis_client
    if not REDIS_URL:
        return None

    if _redis_client is None:
        _redis_client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
            socket_timeout=REDIS_TIMEOUT_SECONDS,
        )

    return _redis_client


def redis_status() -> str:
    redis_client = get_redis()
    if redis_client is None:
        return "not configured"
    try:
        redis_client.ping()
        return "connected"
    except redis.RedisError as e:
        logger.warning("Redis ping failed: %s", e)
        return "unavailable"


def student_event(enrollment_number: str) -> Dict[str, Any]:
    return {
        "type": STUDENT,
        "enrollment_number": enrollment_number,
        "message": f"Enrollment number {enrollment_number}, please proceed for viva",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def warning_event(enrollment_number: str) -> Dict[str, Any]:
    return {
        "type": WARNING,
        "enrollment_number": enrollment_number,
        "message": (
            f"Student {enrollment_number} report immediately "
            f"or you will be moved to the end of viva queue"
        ),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def publish(event: Dict[str, Any]) -> bool:
    """Queue an announcement.  Returns False if it was dropped; never raises."""
    payload = json.dumps(event)
    redis_client = get_redis()
    if redis_client is None:
        _local_queue.append(payload)
        logger.info("Queued %s announcement for %s", event["type"], event["enrollment_number"])
        return True

    try:
        redis_client.lpush(ANNOUNCEMENT_KEY, payload)
        redis_client.ltrim(ANNOUNCEMENT_KEY, 0, MAX_PENDING - 1)
    except redis.RedisError as e:
        logger.warning(
            "Dropped %s announcement for %s, Redis unavailable: %s",
            event["type"],
            event["enrollment_number"],
            e,
        )
        return False

    logger.info("Queued %s announcement for %s", event["type"], event["enrollment_number"])
    return True


def drain(limit: int = 20) -> List[Dict[str, Any]]:
    """Pop up to ``limit`` pending announcements, oldest first."""
    events: List[Dict[str, Any]] = []
    redis_client = get_redis()

    if redis_client is None:
        while _local_queue and len(events) < limit:
            events.append(json.loads(_local_queue.popleft()))
        return events

    try:
        while len(events) < limit:
            raw = redis_client.rpop(ANNOUNCEMENT_KEY)
            if raw is None:
                break
            events.append(json.loads(raw))
    except redis.RedisError as e:
        logger.warning("Failed to read announcements: %s", e)
    return events


def pending_count() -> Optional[int]:
    """Number of undelivered announcements, None when Redis cannot be reached."""
    redis_client = get_redis()
    if redis_client is None:
        return len(_local_queue)
    try:
        return int(redis_client.llen(ANNOUNCEMENT_KEY))
    except redis.RedisError as e:
        logger.warning("Failed to count announcements: %s", e)
        return None


def clear() -> None:
    redis_client = get_redis()
    if redis_client is None:
        _local_queue.clear()
        return
    try:
        redis_client.delete(ANNOUNCEMENT_KEY)
    except redis.RedisError as e:
        logger.warning("Failed to clear announcements: %s", e)
