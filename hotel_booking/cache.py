"""
Shared Redis connection and the public room-schedule cache.

Schedule entries live under `schedule:<room_id>` and expire after
SCHEDULE_CACHE_TTL seconds; every booking write on a room drops its entry.
Redis being down never fails a request: reads fall through to the database
and writes are skipped.
"""

from uuid import UUID

from loguru import logger
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis

from hotel_booking.schemas import ScheduleSlot
from hotel_booking.settings import REDIS_URL, SCHEDULE_CACHE_TTL

_redis: Redis | None = None

_schedule_adapter = TypeAdapter(list[ScheduleSlot])


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def schedule_key(room_id: UUID) -> str:
    return f"schedule:{room_id}"


async def get_schedule_cache(room_id: UUID) -> list[ScheduleSlot] | None:
    key = schedule_key(room_id)
    try:
        raw = await get_redis().get(key)
    except Exception:
        logger.warning("Redis get failed, reading schedule of room {} from DB", room_id, exc_info=True)
        return None
    if not raw:
        return None
    try:
        return _schedule_adapter.validate_json(raw)
    except ValidationError:
        # written by an older schema; treat as a miss
        logger.warning("Dropping unreadable schedule cache entry {}", key)
        await invalidate_schedule_cache(room_id)
        return None


async def set_schedule_cache(room_id: UUID, slots: list[ScheduleSlot]) -> None:
    try:
        await get_redis().setex(
            schedule_key(room_id),
            SCHEDULE_CACHE_TTL,
            _schedule_adapter.dump_json(slots).decode(),
        )
    except Exception:
        logger.warning("Redis set failed, schedule of room {} not cached", room_id, exc_info=True)


async def invalidate_schedule_cache(*room_ids: UUID) -> None:
    """Drop the cached schedule of every given room in one round trip."""
    if not room_ids:
        return
    try:
        await get_redis().delete(*(schedule_key(r) for r in room_ids))
    except Exception:
        logger.warning("Redis delete failed for schedules of rooms {}", room_ids, exc_info=True)
