import logging
from typing import List, Optional

from prometheus_client import Counter, Gauge, Histogram
from redis.exceptions import RedisError

from seatlock.redis_client import redis_client

logger = logging.getLogger(__name__)

# Notification DLQ depth
NOTIF_DLQ_DEPTH = Gauge("seatlock_notification_dlq_depth", "Redis DLQ list length for notifications")

# Seat hold metrics
SEAT_HOLD_LATENCY = Histogram("seatlock_seat_hold_latency_seconds", "Latency for seat hold operations")
SEAT_HOLD_ATTEMPTS = Counter("seatlock_seat_hold_attempts_total", "Total seat hold attempts", ["result"])
SEAT_RELEASES = Counter("seatlock_seat_releases_total", "Seat releases requested by holders", ["result"])

# Booking metrics
BOOKING_ATTEMPTS = Counter("seatlock_booking_attempts_total", "Booking confirmation attempts", ["result"])
CONFIRMATION_DISPATCH_FAILURES = Counter("seatlock_confirmation_dispatch_failures_total", "Booking confirmation emails that could not be queued")

# Expiry sweep
SWEEP_RELEASED = Counter("seatlock_sweep_released_total", "Expired holds released by the sweeper")
SWEEP_SKIPPED = Counter("seatlock_sweep_skipped_total", "Expired holds skipped because the seat changed first")

# Change feed
FEED_EVENTS = Counter("seatlock_feed_events_total", "Change feed events applied to local seat maps", ["kind"])
FEED_RECONNECTS = Counter("seatlock_feed_reconnects_total", "Change feed resubscriptions after a disconnect")


async def update_queue_depth(keys: Optional[List[str]] = None):
    """Refresh the DLQ gauge from the Redis list lengths; an unreachable Redis reads as empty."""
    keys = keys or ["notification_dlq"]
    depth = 0
    for key in keys:
        try:
            depth += await redis_client.llen(key)
        except (RedisError, OSError):
            logger.debug("DLQ length unavailable for %s", key)
    NOTIF_DLQ_DEPTH.set(depth)
