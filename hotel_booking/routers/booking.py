from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from hotel_booking.cache import (
    get_schedule_cache,
    invalidate_schedule_cache,
    set_schedule_cache,
)
from hotel_booking.crud import booking_crud
from hotel_booking.deps import (
    CurrentUser,
    UsersClient,
    can_admin_bookings,
    can_cancel_any_booking,
    can_read_any_booking,
    can_write_booking,
    get_users_client,
)
from hotel_booking.lifecycle import BookingStatus, PaymentMethod
from hotel_booking.notifications import BookingEvents, Notifier, get_notifier
from hotel_booking.schemas import (
    AdminBookingCreate,
    BookingCreate,
    BookingEnriched,
    BookingFilters,
    BookingResponse,
    BookingStatusUpdate,
    GuestBookingCreate,
    PaymentCreate,
    RoomCandidate,
    RoomChange,
    ScheduleSlot,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_events(notifier: Notifier = Depends(get_notifier)) -> BookingEvents:
    return BookingEvents(notifier)


# ---------------------------------------------------------------------------
# Enrichment helper
# ---------------------------------------------------------------------------


async def _enrich(
    bookings: list,
    current_user: CurrentUser,
    users_client: UsersClient,
) -> list[BookingEnriched]:
    """
    Attach customer names: walk-in guests from their profile, registered
    customers from users-ms. The upstream call degrades gracefully: enriched
    fields become None on error.
    """
    if not bookings:
        return []

    parsed = [BookingResponse.model_validate(b, from_attributes=True) for b in bookings]

    user_ids = {b.user_id for b in parsed if b.user_id is not None}
    users_raw = await users_client.get_by_ids(user_ids, current_user)
    user_map: dict[str, dict] = {
        u["id"]: {
            "username": u.get("username"),
            "full_name": u.get("full_name"),
            "phone": u.get("phone"),
        }
        for u in users_raw
    }

    result = []
    for b in parsed:
        if b.guest is not None:
            customer = {"full_name": b.guest.full_name, "phone": b.guest.phone}
        else:
            customer = user_map.get(str(b.user_id), {})
        result.append(
            BookingEnriched(
                **b.model_dump(),
                customer_username=customer.get("username"),
                customer_full_name=customer.get("full_name"),
                customer_phone=customer.get("phone"),
            )
        )
    return result


def _check_window(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )


def _assert_owner_or_admin(booking: BookingResponse, current_user: CurrentUser, action: str) -> None:
    if current_user.is_admin:
        return
    if booking.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not allowed to {action} this booking",
        )


# ---------------------------------------------------------------------------
# Public endpoints (walk-in / guest flows)
# ---------------------------------------------------------------------------


@router.get("/schedule", response_model=list[ScheduleSlot])
async def get_room_schedule(
    room_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[ScheduleSlot]:
    """
    Returns active booking windows for a room.
    No authentication required; the response contains NO customer identity.
    """
    _check_window(start_date, end_date)
    unbounded = start_date is None and end_date is None

    if unbounded:
        cached = await get_schedule_cache(room_id)
        if cached is not None:
            logger.debug("Cache hit for schedule: room_id={}", room_id)
            return cached
        logger.debug("Cache miss for schedule: room_id={}", room_id)

    slots = await booking_crud.list_schedule(room_id, start_date, end_date)
    if unbounded:
        await set_schedule_cache(room_id, slots)
    return slots


@router.post(
    "/guest", response_model=BookingResponse, status_code=status.HTTP_201_CREATED
)
async def create_guest_booking(
    payload: GuestBookingCreate,
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    """Walk-in booking without an account. Always paid in cash at the desk."""
    booking = await booking_crud.create_booking(
        payload,
        payment_method=PaymentMethod.CASH,
        guest_info=payload.guest_info,
    )
    await events.created(booking)
    await invalidate_schedule_cache(booking.room_id)
    return booking


@router.get("/public/{booking_id}", response_model=BookingResponse)
async def get_public_booking(booking_id: UUID) -> BookingResponse:
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


# ---------------------------------------------------------------------------
# Customer endpoints
# ---------------------------------------------------------------------------


@router.get("/", response_model=list[BookingEnriched])
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_any_booking),
    users_client: UsersClient = Depends(get_users_client),
) -> list[BookingEnriched]:
    if current_user.is_admin:
        bookings = await booking_crud.list_bookings(filters=filters)
    else:
        bookings = await booking_crud.list_bookings(
            filters=filters, user_id=current_user.id
        )

    return await _enrich(bookings, current_user, users_client)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    booking = await booking_crud.create_booking(
        payload,
        payment_method=payload.payment_method,
        user_id=current_user.id,
    )
    await events.created(booking)
    await invalidate_schedule_cache(booking.room_id)
    return booking


# ---------------------------------------------------------------------------
# Front-desk endpoints (declared before /{booking_id})
# ---------------------------------------------------------------------------


@router.post(
    "/admin", response_model=BookingResponse, status_code=status.HTTP_201_CREATED
)
async def create_booking_for_customer(
    payload: AdminBookingCreate,
    current_user: CurrentUser = Depends(can_admin_bookings),
    users_client: UsersClient = Depends(get_users_client),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    """
    Book on behalf of a registered customer (user_id) or a walk-in guest
    (guest_info). Payment method is always cash.
    """
    if payload.user_id is not None:
        user = await users_client.get_user(payload.user_id, current_user)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
            )
        booking = await booking_crud.create_booking(
            payload, payment_method=PaymentMethod.CASH, user_id=payload.user_id
        )
    else:
        booking = await booking_crud.create_booking(
            payload, payment_method=PaymentMethod.CASH, guest_info=payload.guest_info
        )

    await events.created(booking, by_admin=True)
    await invalidate_schedule_cache(booking.room_id)
    return booking


@router.get("/rooms/{room_id}", response_model=list[BookingEnriched])
async def list_room_bookings(
    room_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    current_user: CurrentUser = Depends(can_admin_bookings),
    users_client: UsersClient = Depends(get_users_client),
) -> list[BookingEnriched]:
    """Active bookings on a room with customer details, for the front-desk calendar."""
    _check_window(start_date, end_date)
    bookings = await booking_crud.list_room_bookings(room_id, start_date, end_date)
    return await _enrich(bookings, current_user, users_client)


@router.get("/{booking_id}", response_model=BookingEnriched)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_any_booking),
    users_client: UsersClient = Depends(get_users_client),
) -> BookingEnriched:
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    _assert_owner_or_admin(booking, current_user, "view")

    results = await _enrich([booking], current_user, users_client)
    return results[0]


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    _: CurrentUser = Depends(can_admin_bookings),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    result = await booking_crud.update_booking_status(booking_id, payload)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )

    if result.booking.status == BookingStatus.CANCELLED:
        await events.cancelled(result.booking, result.previous_status, by_owner=False)
    else:
        await events.status_changed(result.booking)
    await invalidate_schedule_cache(result.booking.room_id)
    return result.booking


@router.post("/{booking_id}/online-payment", response_model=BookingResponse)
async def confirm_online_payment(
    booking_id: UUID,
    _: CurrentUser = Depends(can_admin_bookings),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    result = await booking_crud.confirm_online_payment(booking_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )

    await events.online_payment_confirmed(result.booking)
    await invalidate_schedule_cache(result.booking.room_id)
    return result.booking


@router.post("/{booking_id}/payments", response_model=BookingResponse)
async def confirm_payment(
    booking_id: UUID,
    payload: PaymentCreate,
    _: CurrentUser = Depends(can_admin_bookings),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    recorded = await booking_crud.confirm_payment(booking_id, payload.amount)
    if not recorded:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )

    result, amount = recorded
    await events.payment_recorded(result.booking, amount)
    if result.booking.status != result.previous_status:
        await invalidate_schedule_cache(result.booking.room_id)
    return result.booking


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_cancel_any_booking),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    _assert_owner_or_admin(booking, current_user, "cancel")

    result = await booking_crud.cancel_booking(booking_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )

    await events.cancelled(
        result.booking,
        result.previous_status,
        by_owner=result.booking.user_id == current_user.id,
    )
    await invalidate_schedule_cache(result.booking.room_id)
    return result.booking


@router.get("/{booking_id}/available-rooms", response_model=list[RoomCandidate])
async def list_room_change_candidates(
    booking_id: UUID,
    _: CurrentUser = Depends(can_admin_bookings),
) -> list[RoomCandidate]:
    candidates = await booking_crud.list_room_change_candidates(booking_id)
    if candidates is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return candidates


@router.patch("/{booking_id}/room", response_model=BookingResponse)
async def change_room(
    booking_id: UUID,
    payload: RoomChange,
    _: CurrentUser = Depends(can_admin_bookings),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingResponse:
    result = await booking_crud.change_room(booking_id, payload.room_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )

    await events.room_changed(result.booking, result.old_room_number, result.refund)
    await invalidate_schedule_cache(result.old_room_id, result.booking.room_id)
    return result.booking
