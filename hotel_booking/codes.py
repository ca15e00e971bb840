import random
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from loguru import logger

MAX_ATTEMPTS = 10


def _candidate(now: datetime) -> str:
    return f"BOOK-{now:%Y%m%d}-{now:%H%M%S}-{random.randint(1000, 9999)}"


def _fallback() -> str:
    return f"BOOK-{time.time_ns() // 1_000_000}-{random.randint(0, 9999)}"


async def generate_booking_code(
    exists: Callable[[str], Awaitable[bool]],
    now: Callable[[], datetime] = datetime.now,
) -> str:
    """
    Human-readable booking code: BOOK-<YYYYMMDD>-<HHMMSS>-<4 digits>.

    Each candidate is checked with `exists`; after MAX_ATTEMPTS collisions a
    millisecond-timestamp code is returned without further checks.
    """
    for _ in range(MAX_ATTEMPTS):
        code = _candidate(now())
        if not await exists(code):
            return code

    code = _fallback()
    logger.warning(
        "Booking code collided {} times, using fallback {}", MAX_ATTEMPTS, code
    )
    return code
