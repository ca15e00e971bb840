"""
Real-time booking notifications.

Events are published on Redis pub/sub channels after the booking mutation
has been committed. Delivery is best-effort: a failing publish is logged and
never surfaces to the caller.

Channels:
    user-<id>   : private channel of a registered customer
    admin-room  : shared front-desk channel
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from loguru import logger
from redis.asyncio import Redis

from hotel_booking.cache import get_redis
from hotel_booking.lifecycle import BookingStatus, PaymentMethod
from hotel_booking.schemas import BookingResponse

ADMIN_CHANNEL = "admin-room"


def user_channel(user_id: UUID | str) -> str:
    return f"user-{user_id}"


class Notifier(Protocol):
    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> bool: ...

    def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]: ...


class RedisNotifier:
    """Notifier backed by Redis pub/sub."""

    def __init__(self, redis: Redis | None = None) -> None:
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis if self._redis is not None else get_redis()

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> bool:
        try:
            message = json.dumps({"event": event, **payload}, default=str)
            await self.redis.publish(channel, message)
            return True
        except Exception:
            logger.warning(
                "Publishing '{}' to {} failed, notification dropped",
                event,
                channel,
                exc_info=True,
            )
            return False

    async def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("Skipping malformed message on {}", channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


_notifier = RedisNotifier()


def get_notifier() -> Notifier:
    return _notifier


# ---------------------------------------------------------------------------
# Booking event messages
# ---------------------------------------------------------------------------

_STATUS_MESSAGES: dict[BookingStatus, str] = {
    BookingStatus.CONFIRMED: "Your booking {code} has been confirmed. We look forward to your stay!",
    BookingStatus.CHECKED_IN: "You have checked in to room {room}. Enjoy your stay!",
    BookingStatus.CHECKED_OUT: "You have checked out of room {room}. Thank you for staying with us.",
    BookingStatus.COMPLETED: "Your booking {code} is complete. Thank you!",
    BookingStatus.CANCELLED: "Your booking {code} has been cancelled.",
}


def _money(value: Decimal) -> str:
    return f"{value:,.0f}"


class BookingEvents:
    """Builds and routes the notification for each lifecycle transition."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    async def _emit(
        self,
        booking: BookingResponse,
        event: str,
        message: str,
        *,
        admin_message: str | None = None,
        **extra: Any,
    ) -> None:
        body = {"booking": booking.model_dump(mode="json"), **extra}
        if booking.user_id is not None:
            await self.notifier.publish(
                user_channel(booking.user_id), event, {"message": message, **body}
            )
        elif admin_message is None:
            # walk-in guests have no channel; the front desk hears about everything
            admin_message = f"Booking {booking.booking_code}: {message}"
        if admin_message is not None:
            await self.notifier.publish(
                ADMIN_CHANNEL, "new-booking" if event == "booking-created" else event,
                {"message": admin_message, **body},
            )

    async def created(self, booking: BookingResponse, *, by_admin: bool = False) -> None:
        who = booking.guest.full_name if booking.guest else booking.booking_code
        if by_admin:
            admin_message = f"Front desk created booking {booking.booking_code} for {who}"
        elif booking.guest is not None:
            admin_message = f"New walk-in booking from {who}"
        else:
            admin_message = f"New booking {booking.booking_code} for room {booking.room_number}"
        await self._emit(
            booking,
            "booking-created",
            "Your booking has been created successfully!",
            admin_message=admin_message,
        )

    async def status_changed(self, booking: BookingResponse) -> None:
        template = _STATUS_MESSAGES.get(booking.status)
        if template is None:
            return
        await self._emit(
            booking,
            "booking-updated",
            template.format(code=booking.booking_code, room=booking.room_number),
            status=booking.status,
        )

    async def online_payment_confirmed(self, booking: BookingResponse) -> None:
        await self._emit(
            booking,
            "booking-updated",
            f"We received your deposit of {_money(booking.paid_amount)} "
            f"for booking {booking.booking_code}.",
            status=booking.status,
        )

    async def payment_recorded(self, booking: BookingResponse, amount: Decimal) -> None:
        if booking.remaining_amount <= 0:
            message = f"Payment of {_money(amount)} received. Booking {booking.booking_code} is fully paid."
        else:
            message = (
                f"Payment of {_money(amount)} received. "
                f"Remaining balance: {_money(booking.remaining_amount)}."
            )
        await self._emit(booking, "booking-updated", message, status=booking.status)

    async def cancelled(
        self, booking: BookingResponse, previous_status: BookingStatus, *, by_owner: bool
    ) -> None:
        refund_required = (
            previous_status == BookingStatus.CONFIRMED
            and booking.payment_method == PaymentMethod.ONLINE
            and booking.paid_amount > 0
        )
        if by_owner:
            message = f"You cancelled booking {booking.booking_code}."
        elif previous_status == BookingStatus.PENDING:
            message = f"Your pending booking {booking.booking_code} was cancelled by the front desk."
        else:
            message = f"The front desk cancelled your confirmed booking {booking.booking_code}."
        await self._emit(
            booking,
            "booking-updated",
            message,
            admin_message=(
                f"Booking {booking.booking_code} was cancelled by the customer"
                if by_owner
                else None
            ),
            status=booking.status,
            cancelled=True,
            refund_required=refund_required,
        )

    async def room_changed(
        self, booking: BookingResponse, old_room_number: str, refund: Decimal
    ) -> None:
        message = f"Your room was changed from {old_room_number} to {booking.room_number}."
        if refund > 0:
            message += f" The new room is cheaper; {_money(refund)} will be refunded."
        elif booking.remaining_amount > 0:
            message += (
                f" New total: {_money(booking.total_price)}. "
                f"Remaining: {_money(booking.remaining_amount)}."
            )
        else:
            message += f" New total: {_money(booking.total_price)}."
        await self._emit(
            booking, "booking-updated", message, type="room-change", refund=refund
        )
