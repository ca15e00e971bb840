from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from fastapi import HTTPException, status
from loguru import logger
from tortoise.exceptions import IntegrityError
from tortoise.models import Model
from tortoise.transactions import in_transaction

from hotel_booking.codes import generate_booking_code
from hotel_booking.lifecycle import (
    ACTIVE_STATUSES,
    BookingStatus,
    CustomerKind,
    PaymentMethod,
    PaymentStatus,
    RoomStatus,
    TransitionError,
    apply_payment,
    assert_transition,
    initial_payment_state,
    reprice_payment_state,
    room_price_for,
    room_status_after,
)
from hotel_booking.models import (
    Amenity,
    Booking,
    GuestProfile,
    Room,
    RoomCategory,
    RoomType,
    Service,
)
from hotel_booking.schemas import (
    BookingFilters,
    BookingResponse,
    BookingStatusUpdate,
    GuestInfo,
    GuestResponse,
    PricedRef,
    RoomCandidate,
    RoomCreate,
    RoomDetail,
    RoomResponse,
    ScheduleSlot,
    StayDetails,
)

M = TypeVar("M", bound=Model)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]

_SCALAR_FIELDS = (
    "id",
    "booking_code",
    "user_id",
    "room_id",
    "booking_type",
    "check_in_date",
    "check_in_time",
    "check_out_date",
    "check_out_time",
    "hours",
    "adults",
    "children",
    "room_price",
    "amenities_price",
    "services_price",
    "total_price",
    "payment_method",
    "paid_amount",
    "remaining_amount",
    "refund_amount",
    "payment_status",
    "payment_date",
    "status",
    "note",
    "created_at",
    "updated_at",
)


async def to_response(inst: Booking) -> BookingResponse:
    """Serialize a booking with its room, guest, amenities and services."""
    await inst.fetch_related("room", "guest", "amenities", "services")
    return BookingResponse(
        **{f: getattr(inst, f) for f in _SCALAR_FIELDS},
        customer_kind=CustomerKind.GUEST if inst.guest_id else CustomerKind.USER,
        guest=(
            GuestResponse.model_validate(inst.guest, from_attributes=True)
            if inst.guest
            else None
        ),
        room_number=inst.room.room_number,
        amenities=[
            PricedRef.model_validate(a, from_attributes=True) for a in inst.amenities
        ],
        services=[
            PricedRef.model_validate(s, from_attributes=True) for s in inst.services
        ],
    )


def _hold_room(room: Room, booking: Booking) -> None:
    """Mark the room occupied; the holder only changes when nobody holds it."""
    room.status = RoomStatus.OCCUPIED
    if room.current_booking_id is None:
        room.current_booking_id = booking.id


def _project_room(room: Room, booking: Booking, new_status: BookingStatus) -> None:
    """
    Apply the room side effect of `booking` entering `new_status`.
    A room held by a different booking is never released.
    """
    target = room_status_after(new_status, room.status)
    if new_status == BookingStatus.CHECKED_IN:
        # the guest in the room always holds it
        room.status = target
        room.current_booking_id = booking.id
    elif target == RoomStatus.OCCUPIED:
        _hold_room(room, booking)
    elif target != room.status and room.current_booking_id in (None, booking.id):
        room.status = target
        room.current_booking_id = None


def _price_in(room: Room, booking: Booking) -> Decimal:
    """Room price of `booking`'s stay at `room`'s tariff."""
    return room_price_for(
        booking.booking_type,
        first_hour=room.price_first_hour,
        next_hour=room.price_next_hour,
        overnight=room.price_overnight,
        daily=room.price_daily,
        hours=booking.hours,
        check_in_date=booking.check_in_date,
        check_out_date=booking.check_out_date,
    )


def _candidate_score(room: Room, current: Room, booking: Booking, price: Decimal) -> int:
    """
    Rank a room-change target: same type first, then same floor, then same
    category, then the closest price; clean rooms beat dirty ones.
    """
    score = 0
    if room.type_id == current.type_id:
        score += 1000
    if room.floor == current.floor:
        score += 500
    if room.category_id == current.category_id:
        score += 200
    if booking.room_price > 0:
        diff_pct = abs(price - booking.room_price) / booking.room_price * 100
        score += max(0, int(300 - diff_pct * 3))
    if room.status == RoomStatus.AVAILABLE:
        score += 100
    elif room.status == RoomStatus.DIRTY:
        score += 50
    return score


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


@dataclass
class TransitionResult:
    booking: BookingResponse
    previous_status: BookingStatus


@dataclass
class RoomChangeResult:
    booking: BookingResponse
    old_room_id: UUID
    old_room_number: str
    refund: Decimal


class BookingCRUD:
    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def _overlapping(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_id: UUID | None = None,
    ):
        """Active bookings on the room whose dates touch [check_in, check_out]."""
        qs = Booking.filter(
            room_id=room_id,
            status__in=_ACTIVE,
            check_in_date__lte=check_out,
            check_out_date__gte=check_in,
        )
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        return qs

    async def has_conflict(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_id: UUID | None = None,
    ) -> bool:
        """Return True if an active booking overlaps the given dates."""
        return await self._overlapping(room_id, check_in, check_out, exclude_id).exists()

    async def list_conflicts(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_id: UUID | None = None,
    ) -> list[ScheduleSlot]:
        rows = await self._overlapping(room_id, check_in, check_out, exclude_id).order_by(
            "check_in_date", "check_in_time"
        )
        return [ScheduleSlot.model_validate(b, from_attributes=True) for b in rows]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def _resolve_many(self, model: type[M], ids: list[UUID], label: str) -> list[M]:
        if not ids:
            return []
        wanted = set(ids)
        found = await model.filter(id__in=list(wanted))
        missing = wanted - {obj.pk for obj in found}
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{label} not found: {', '.join(sorted(str(m) for m in missing))}",
            )
        return found

    async def create_booking(
        self,
        stay: StayDetails,
        *,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        user_id: UUID | None = None,
        guest_info: GuestInfo | None = None,
    ) -> BookingResponse:
        """
        Persist a new pending booking after validating:
          - the room exists
          - no active booking on the room touches the requested dates
        The room row is locked for the whole check-then-insert so concurrent
        requests for the same room serialize.
        """
        if (user_id is None) == (guest_info is None):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A booking needs exactly one customer: a user or a guest",
            )

        async with in_transaction():
            room = await Room.select_for_update().get_or_none(id=stay.room_id)
            if room is None:
                raise _not_found("Room")

            conflicts = await self.list_conflicts(
                room.id, stay.check_in_date, stay.check_out_date
            )
            if conflicts:
                windows = "; ".join(
                    f"{c.check_in_date} {c.check_in_time} - {c.check_out_date} {c.check_out_time}"
                    for c in conflicts
                )
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=(
                        "Room is already booked for the requested dates. "
                        f"Conflicting windows: {windows}"
                    ),
                )

            amenities = await self._resolve_many(Amenity, stay.amenity_ids, "Amenity")
            services = await self._resolve_many(Service, stay.service_ids, "Service")

            guest = None
            if guest_info is not None:
                guest = await GuestProfile.create(**guest_info.model_dump())

            code = await generate_booking_code(
                lambda c: Booking.filter(booking_code=c).exists()
            )
            payment = initial_payment_state(stay.total_price, payment_method)

            inst = await Booking.create(
                booking_code=code,
                user_id=user_id,
                guest=guest,
                room=room,
                booking_type=stay.booking_type,
                check_in_date=stay.check_in_date,
                check_in_time=stay.check_in_time,
                check_out_date=stay.check_out_date,
                check_out_time=stay.check_out_time,
                hours=stay.hours,
                adults=stay.adults,
                children=stay.children,
                room_price=stay.room_price,
                amenities_price=stay.amenities_price,
                services_price=stay.services_price,
                total_price=stay.total_price,
                payment_method=payment_method,
                paid_amount=payment.paid_amount,
                remaining_amount=payment.remaining_amount,
                payment_status=payment.payment_status,
                status=BookingStatus.PENDING,
                note=stay.note,
            )
            if amenities:
                await inst.amenities.add(*amenities)
            if services:
                await inst.services.add(*services)

        logger.info(
            "Booking {} created for room {} ({} - {}), method={}",
            code,
            room.room_number,
            stay.check_in_date,
            stay.check_out_date,
            payment_method,
        )
        return await to_response(inst)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(
        self, booking_id: UUID, user_id: UUID | None = None
    ) -> BookingResponse | None:
        if user_id is not None:
            inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        else:
            inst = await Booking.get_or_none(id=booking_id)

        if not inst:
            return None
        return await to_response(inst)

    async def list_bookings(
        self,
        filters: BookingFilters,
        user_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if filters.room_id is not None:
            qs = qs.filter(room_id=filters.room_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size)

        return [await to_response(b) for b in await qs]

    def _window(
        self, room_id: UUID, start_date: date | None, end_date: date | None
    ):
        qs = Booking.filter(room_id=room_id, status__in=_ACTIVE)
        if end_date is not None:
            qs = qs.filter(check_in_date__lte=end_date)
        if start_date is not None:
            qs = qs.filter(check_out_date__gte=start_date)
        return qs.order_by("check_in_date", "check_in_time")

    async def list_schedule(
        self,
        room_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[ScheduleSlot]:
        """Active booking windows for a room, without customer info."""
        rows = await self._window(room_id, start_date, end_date)
        return [ScheduleSlot.model_validate(b, from_attributes=True) for b in rows]

    async def list_room_bookings(
        self,
        room_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[BookingResponse]:
        rows = await self._window(room_id, start_date, end_date)
        return [await to_response(b) for b in rows]

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def _guard_check_in(self, inst: Booking, force: bool) -> None:
        occupant = (
            await Booking.filter(room_id=inst.room_id, status=BookingStatus.CHECKED_IN)
            .exclude(id=inst.id)
            .first()
        )
        if occupant is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    f"Room is still in use by booking {occupant.booking_code}. "
                    "Check that guest out before checking in another booking."
                ),
            )
        if force:
            return

        waiting = (
            await Booking.filter(
                room_id=inst.room_id,
                status__in=[BookingStatus.PENDING, BookingStatus.CONFIRMED],
            )
            .exclude(id=inst.id)
            .order_by("check_in_date", "check_in_time")
        )
        ours = (inst.check_in_date, inst.check_in_time)
        for earlier in waiting:
            if (earlier.check_in_date, earlier.check_in_time) < ours:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=(
                        f"Booking {earlier.booking_code} on this room checks in earlier "
                        f"({earlier.check_in_date} {earlier.check_in_time}) and has not "
                        "checked in yet. Resend with force=true to proceed anyway."
                    ),
                )

    async def update_booking_status(
        self, booking_id: UUID, payload: BookingStatusUpdate
    ) -> TransitionResult | None:
        async with in_transaction():
            inst = await Booking.select_for_update().get_or_none(id=booking_id)
            if not inst:
                return None
            previous = BookingStatus(inst.status)
            try:
                assert_transition(previous, payload.status)
            except TransitionError as exc:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
                ) from None

            if payload.status == BookingStatus.CHECKED_IN:
                await self._guard_check_in(inst, payload.force)

            new_status = payload.status
            # nothing left to collect: checking out closes the booking
            if (
                new_status == BookingStatus.CHECKED_OUT
                and inst.payment_status == PaymentStatus.PAID
            ):
                new_status = BookingStatus.COMPLETED

            room = await Room.select_for_update().get(id=inst.room_id)
            inst.status = new_status
            _project_room(room, inst, new_status)
            await room.save()
            await inst.save()

        logger.info(
            "Booking {}: {} -> {} (room {} now {})",
            inst.booking_code,
            previous,
            new_status,
            room.room_number,
            room.status,
        )
        return TransitionResult(await to_response(inst), previous)

    async def confirm_online_payment(self, booking_id: UUID) -> TransitionResult | None:
        """Front desk saw the online deposit arrive: confirm and hold the room."""
        async with in_transaction():
            inst = await Booking.select_for_update().get_or_none(id=booking_id)
            if not inst:
                return None
            if inst.payment_method != PaymentMethod.ONLINE:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="This booking is not paid online",
                )
            previous = BookingStatus(inst.status)
            if previous != BookingStatus.PENDING:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Only pending bookings can be confirmed (status: {previous})",
                )

            room = await Room.select_for_update().get(id=inst.room_id)
            inst.status = BookingStatus.CONFIRMED
            _hold_room(room, inst)
            await room.save()
            await inst.save()

        logger.info(
            "Booking {}: online deposit confirmed, room {} held",
            inst.booking_code,
            room.room_number,
        )
        return TransitionResult(await to_response(inst), previous)

    async def confirm_payment(
        self, booking_id: UUID, amount: Decimal | None = None
    ) -> tuple[TransitionResult, Decimal] | None:
        """
        Record a (partial) payment. Defaults to the full remaining balance.
        A checked-out booking that becomes fully paid is completed and its
        room released.
        """
        async with in_transaction():
            inst = await Booking.select_for_update().get_or_none(id=booking_id)
            if not inst:
                return None
            previous = BookingStatus(inst.status)
            if previous == BookingStatus.CANCELLED:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Cannot record a payment on a cancelled booking",
                )

            paid_now = amount if amount is not None else inst.remaining_amount
            if paid_now <= 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Booking is already fully paid",
                )
            if paid_now > inst.remaining_amount:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=(
                        f"Payment of {paid_now} exceeds the remaining balance "
                        f"of {inst.remaining_amount}"
                    ),
                )

            state = apply_payment(inst.paid_amount, inst.remaining_amount, paid_now)
            inst.paid_amount = state.paid_amount
            inst.remaining_amount = state.remaining_amount
            inst.payment_status = state.payment_status

            if state.payment_status == PaymentStatus.PAID:
                inst.payment_date = datetime.now(timezone.utc)
                if previous == BookingStatus.CHECKED_OUT:
                    inst.status = BookingStatus.COMPLETED
                    room = await Room.select_for_update().get(id=inst.room_id)
                    _project_room(room, inst, BookingStatus.COMPLETED)
                    await room.save()
            await inst.save()

        logger.info(
            "Booking {}: payment {} recorded, remaining {} ({})",
            inst.booking_code,
            paid_now,
            inst.remaining_amount,
            inst.payment_status,
        )
        return TransitionResult(await to_response(inst), previous), paid_now

    async def cancel_booking(self, booking_id: UUID) -> TransitionResult | None:
        async with in_transaction():
            inst = await Booking.select_for_update().get_or_none(id=booking_id)
            if not inst:
                return None
            previous = BookingStatus(inst.status)
            try:
                assert_transition(previous, BookingStatus.CANCELLED)
            except TransitionError as exc:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
                ) from None

            room = await Room.select_for_update().get(id=inst.room_id)
            inst.status = BookingStatus.CANCELLED
            _project_room(room, inst, BookingStatus.CANCELLED)
            await room.save()
            await inst.save()

        logger.info(
            "Booking {} cancelled (was {}), room {} now {}",
            inst.booking_code,
            previous,
            room.room_number,
            room.status,
        )
        return TransitionResult(await to_response(inst), previous)

    async def _has_guest_in(self, room_id: UUID) -> bool:
        return await Booking.filter(
            room_id=room_id, status=BookingStatus.CHECKED_IN
        ).exists()

    async def list_room_change_candidates(
        self, booking_id: UUID
    ) -> list[RoomCandidate] | None:
        """
        Rooms an active booking can be moved to, best match first. Applies
        the same date and occupancy checks as `change_room`.
        """
        inst = await Booking.get_or_none(id=booking_id).prefetch_related("room")
        if not inst:
            return None
        if inst.status not in ACTIVE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot change the room of a {inst.status} booking",
            )

        candidates = []
        for room in await Room.exclude(id=inst.room_id):
            if await self.has_conflict(
                room.id, inst.check_in_date, inst.check_out_date, exclude_id=inst.id
            ):
                continue
            if inst.status == BookingStatus.CHECKED_IN and await self._has_guest_in(
                room.id
            ):
                continue
            price = _price_in(room, inst)
            candidates.append(
                RoomCandidate(
                    **RoomResponse.model_validate(room, from_attributes=True).model_dump(),
                    estimated_price=price,
                    score=_candidate_score(room, inst.room, inst, price),
                )
            )
        candidates.sort(key=lambda c: (-c.score, c.room_number))
        return candidates

    async def change_room(self, booking_id: UUID, room_id: UUID) -> RoomChangeResult | None:
        """
        Move an active booking to another room, re-pricing the stay from the
        new room's tiers.
        """
        async with in_transaction():
            inst = await Booking.select_for_update().get_or_none(id=booking_id)
            if not inst:
                return None
            if inst.status not in ACTIVE_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Cannot change the room of a {inst.status} booking",
                )
            if inst.room_id == room_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Booking is already assigned to this room",
                )

            new_room = await Room.select_for_update().get_or_none(id=room_id)
            if new_room is None:
                raise _not_found("Room")
            old_room = await Room.select_for_update().get(id=inst.room_id)

            if await self.has_conflict(
                new_room.id, inst.check_in_date, inst.check_out_date, exclude_id=inst.id
            ):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="The new room is already booked for these dates",
                )
            if inst.status == BookingStatus.CHECKED_IN and await self._has_guest_in(
                new_room.id
            ):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="The new room is currently occupied",
                )

            room_price = _price_in(new_room, inst)
            total = room_price + inst.amenities_price + inst.services_price
            payment, refund = reprice_payment_state(total, inst.paid_amount)

            inst.room = new_room
            inst.room_price = room_price
            inst.total_price = total
            inst.paid_amount = payment.paid_amount
            inst.remaining_amount = payment.remaining_amount
            inst.payment_status = payment.payment_status
            inst.refund_amount = refund

            if old_room.current_booking_id == inst.id:
                old_room.status = (
                    RoomStatus.DIRTY
                    if inst.status == BookingStatus.CHECKED_IN
                    else RoomStatus.AVAILABLE
                )
                old_room.current_booking_id = None
            if inst.status == BookingStatus.CHECKED_IN:
                new_room.status = RoomStatus.OCCUPIED
                new_room.current_booking_id = inst.id
            elif inst.status == BookingStatus.CONFIRMED:
                _hold_room(new_room, inst)

            await old_room.save()
            await new_room.save()
            await inst.save()

        logger.info(
            "Booking {} moved from room {} to {} (total {}, refund {})",
            inst.booking_code,
            old_room.room_number,
            new_room.room_number,
            total,
            refund,
        )
        return RoomChangeResult(
            booking=await to_response(inst),
            old_room_id=old_room.id,
            old_room_number=old_room.room_number,
            refund=refund,
        )


class RoomCRUD:
    async def list_rooms(self, room_status: RoomStatus | None = None) -> list[RoomResponse]:
        qs = Room.all()
        if room_status is not None:
            qs = qs.filter(status=room_status)
        return [RoomResponse.model_validate(r, from_attributes=True) for r in await qs]

    async def get_room(self, room_id: UUID) -> RoomDetail | None:
        inst = await Room.get_or_none(id=room_id).prefetch_related("category", "type")
        if not inst:
            return None
        return RoomDetail.model_validate(inst, from_attributes=True)

    async def create_room(self, payload: RoomCreate) -> RoomDetail:
        if await Room.filter(room_number=payload.room_number).exists():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Room number {payload.room_number} already exists",
            )
        category = await RoomCategory.get_or_none(id=payload.category_id)
        if category is None:
            raise _not_found("Room category")
        room_type = await RoomType.get_or_none(id=payload.type_id)
        if room_type is None:
            raise _not_found("Room type")

        data = payload.model_dump(exclude={"category_id", "type_id"})
        try:
            inst = await Room.create(category=category, type=room_type, **data)
        except IntegrityError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Room number {payload.room_number} already exists",
            ) from None
        return RoomDetail.model_validate(inst, from_attributes=True)

    async def update_room_status(
        self, room_id: UUID, room_status: RoomStatus
    ) -> RoomResponse | None:
        async with in_transaction():
            inst = await Room.select_for_update().get_or_none(id=room_id)
            if not inst:
                return None
            inst.status = room_status
            if room_status == RoomStatus.AVAILABLE:
                inst.current_booking_id = None
            await inst.save()
        logger.info("Room {} marked {}", inst.room_number, room_status)
        return RoomResponse.model_validate(inst, from_attributes=True)


booking_crud = BookingCRUD()
room_crud = RoomCRUD()
