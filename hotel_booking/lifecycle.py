"""
Booking lifecycle rules: statuses, allowed transitions, room projections and
payment bookkeeping. Pure functions only, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from hotel_booking import settings


class BookingStatus(StrEnum):
    PENDING = "pending"  # just created, awaiting front desk
    CONFIRMED = "confirmed"  # deposit received / accepted
    CHECKED_IN = "checked-in"  # guest is in the room
    CHECKED_OUT = "checked-out"  # guest left, balance may still be open
    COMPLETED = "completed"  # checked out and fully paid
    CANCELLED = "cancelled"


class RoomStatus(StrEnum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    DIRTY = "Dirty"
    MAINTENANCE = "Maintenance"


class BookingType(StrEnum):
    HOURLY = "hourly"
    OVERNIGHT = "overnight"
    DAILY = "daily"


class PaymentMethod(StrEnum):
    CASH = "cash"
    ONLINE = "online"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class CustomerKind(StrEnum):
    USER = "user"
    GUEST = "guest"


# Statuses that hold a room and block overlapping bookings
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)

NON_CANCELLABLE: frozenset[BookingStatus] = frozenset(
    {BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT, BookingStatus.COMPLETED}
)

# Front-desk status updates only move forward; terminal states have no exits
VALID_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {
            BookingStatus.CONFIRMED,
            BookingStatus.CHECKED_IN,
            BookingStatus.CHECKED_OUT,
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.CONFIRMED: frozenset(
        {
            BookingStatus.CHECKED_IN,
            BookingStatus.CHECKED_OUT,
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.CHECKED_IN: frozenset(
        {BookingStatus.CHECKED_OUT, BookingStatus.COMPLETED}
    ),
    BookingStatus.CHECKED_OUT: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class TransitionError(ValueError):
    """Raised when a booking cannot move to the requested status."""


def assert_transition(old: BookingStatus, new: BookingStatus) -> None:
    if new == BookingStatus.CANCELLED and old in NON_CANCELLABLE:
        raise TransitionError(
            "Cannot cancel a booking that has already checked in, "
            "checked out or completed"
        )
    allowed = VALID_TRANSITIONS.get(old, frozenset())
    if new not in allowed:
        raise TransitionError(
            f"Cannot transition from '{old}' to '{new}'. "
            f"Allowed: {sorted(s.value for s in allowed)}"
        )


def room_status_after(
    new_status: BookingStatus, room_status: RoomStatus
) -> RoomStatus:
    """Room status implied by a booking entering `new_status`."""
    if new_status == BookingStatus.CHECKED_IN:
        return RoomStatus.OCCUPIED
    if new_status == BookingStatus.CHECKED_OUT:
        return RoomStatus.DIRTY
    if new_status == BookingStatus.COMPLETED:
        return RoomStatus.AVAILABLE
    if new_status == BookingStatus.CANCELLED and room_status == RoomStatus.OCCUPIED:
        return RoomStatus.AVAILABLE
    return room_status


def round_money(value: Decimal) -> Decimal:
    """Round to whole currency units, halves away from zero."""
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def deposit_for(total: Decimal, method: PaymentMethod) -> Decimal:
    if method == PaymentMethod.ONLINE:
        return round_money(total * settings.DEPOSIT_RATE)
    return Decimal("0")


@dataclass(frozen=True)
class PaymentState:
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus


def initial_payment_state(total: Decimal, method: PaymentMethod) -> PaymentState:
    paid = deposit_for(total, method)
    return PaymentState(
        paid_amount=paid,
        remaining_amount=total - paid,
        payment_status=PaymentStatus.PARTIAL if paid > 0 else PaymentStatus.PENDING,
    )


def apply_payment(
    paid: Decimal, remaining: Decimal, amount: Decimal
) -> PaymentState:
    new_paid = paid + amount
    new_remaining = remaining - amount
    return PaymentState(
        paid_amount=new_paid,
        remaining_amount=new_remaining,
        payment_status=(
            PaymentStatus.PAID if new_remaining <= 0 else PaymentStatus.PARTIAL
        ),
    )


def reprice_payment_state(total: Decimal, paid: Decimal) -> tuple[PaymentState, Decimal]:
    """
    Recompute payment figures after the total changed.
    Returns the new state and the amount to refund (0 when nothing is owed back).
    """
    if paid <= 0:
        return PaymentState(Decimal("0"), total, PaymentStatus.PENDING), Decimal("0")
    if total < paid:
        return PaymentState(total, Decimal("0"), PaymentStatus.PAID), paid - total
    remaining = total - paid
    return (
        PaymentState(
            paid,
            remaining,
            PaymentStatus.PARTIAL if remaining > 0 else PaymentStatus.PAID,
        ),
        Decimal("0"),
    )


def room_price_for(
    booking_type: BookingType,
    *,
    first_hour: Decimal,
    next_hour: Decimal,
    overnight: Decimal,
    daily: Decimal,
    hours: int,
    check_in_date: date,
    check_out_date: date,
) -> Decimal:
    """List price of a stay according to a room's price tiers."""
    if booking_type == BookingType.HOURLY:
        return first_hour + next_hour * max(0, hours - 1)
    if booking_type == BookingType.OVERNIGHT:
        return overnight
    nights = max(1, (check_out_date - check_in_date).days)
    return daily * nights
