"""Human-readable sequential identifiers such as ``CR26100001``.

The sequence for each prefix and month lives in a Redis counter, so two
concurrent requests can never be handed the same number. Numbers burned by a
failed transaction leave gaps; they are never reused.
"""
import logging
from datetime import datetime
from typing import Optional

from redis.exceptions import RedisError

from .db import utcnow
from .errors import StoreUnavailable
from .redis_client import get_redis

_logger = logging.getLogger(__name__)

ORDER_PREFIX = "ORD"
CUSTOM_REQUEST_PREFIX = "CR"


def period_of(moment: datetime) -> str:
    return moment.strftime("%y%m")


def counter_key(prefix: str, period: str) -> str:
    return f"seq:{prefix}:{period}"


def format_number(prefix: str, period: str, sequence: int) -> str:
    return f"{prefix}{period}{sequence:04d}"


async def next_number(prefix: str, now: Optional[datetime] = None) -> str:
    period = period_of(now or utcnow())
    try:
        r = await get_redis()
        sequence = int(await r.incr(counter_key(prefix, period)))
    except (RedisError, OSError) as e:
        _logger.error("Sequence allocation failed | prefix=%s period=%s err=%s", prefix, period, e)
        raise StoreUnavailable("Could not allocate a reference number") from e
    return format_number(prefix, period, sequence)
