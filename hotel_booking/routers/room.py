from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from hotel_booking.crud import room_crud
from hotel_booking.deps import CurrentUser, can_manage_rooms
from hotel_booking.lifecycle import RoomStatus
from hotel_booking.schemas import RoomCreate, RoomDetail, RoomResponse, RoomStatusUpdate

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("/", response_model=list[RoomResponse])
async def list_rooms(room_status: RoomStatus | None = None) -> list[RoomResponse]:
    """Public room board. Filter with ?room_status=Available."""
    return await room_crud.list_rooms(room_status)


@router.get("/{room_id}", response_model=RoomDetail)
async def get_room(room_id: UUID) -> RoomDetail:
    room = await room_crud.get_room(room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@router.post("/", response_model=RoomDetail, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    _: CurrentUser = Depends(can_manage_rooms),
) -> RoomDetail:
    return await room_crud.create_room(payload)


@router.patch("/{room_id}/status", response_model=RoomResponse)
async def update_room_status(
    room_id: UUID,
    payload: RoomStatusUpdate,
    _: CurrentUser = Depends(can_manage_rooms),
) -> RoomResponse:
    """Housekeeping: mark a room cleaned, under maintenance, etc."""
    room = await room_crud.update_room_status(room_id, payload.status)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room
