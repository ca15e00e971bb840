"""Schedule cache behaviour against the fake Redis from conftest."""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import AsyncMock

from hotel_booking.cache import (
    get_schedule_cache,
    invalidate_schedule_cache,
    schedule_key,
    set_schedule_cache,
)
from hotel_booking.schemas import ScheduleSlot

from .factories import ROOM_ID, schedule_slot


class TestScheduleCache:
    async def test_hit_returns_typed_slots(self, fake_redis):
        fake_redis.get = AsyncMock(return_value=json.dumps([schedule_slot()]))
        slots = await get_schedule_cache(ROOM_ID)
        assert isinstance(slots[0], ScheduleSlot)
        assert slots[0].check_in_date == date(2025, 1, 10)

    async def test_empty_entry_is_a_miss(self, fake_redis):
        assert await get_schedule_cache(ROOM_ID) is None
        fake_redis.get.assert_awaited_once_with(schedule_key(ROOM_ID))

    async def test_unreadable_entry_dropped(self, fake_redis):
        fake_redis.get = AsyncMock(return_value=json.dumps([{"booking_code": "X"}]))
        assert await get_schedule_cache(ROOM_ID) is None
        fake_redis.delete.assert_awaited_once_with(schedule_key(ROOM_ID))

    async def test_redis_down_is_a_miss(self, fake_redis):
        fake_redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
        assert await get_schedule_cache(ROOM_ID) is None

    async def test_set_writes_json_with_ttl(self, fake_redis):
        await set_schedule_cache(ROOM_ID, [ScheduleSlot(**schedule_slot())])
        key, ttl, raw = fake_redis.setex.call_args.args
        assert key == f"schedule:{ROOM_ID}"
        assert ttl > 0
        assert json.loads(raw)[0]["booking_code"] == "BOOK-20250101-120000-1234"

    async def test_set_failure_is_swallowed(self, fake_redis):
        fake_redis.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        await set_schedule_cache(ROOM_ID, [])

    async def test_invalidate_without_rooms_skips_redis(self, fake_redis):
        await invalidate_schedule_cache()
        fake_redis.delete.assert_not_called()
