"""Endpoint tests for /rooms."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi import HTTPException
from fastapi.testclient import TestClient

from hotel_booking.deps import get_current_user
from hotel_booking.lifecycle import RoomStatus

from .factories import ROOM_ID, make_customer, room_create_payload, room_response

CRUD_PATH = "hotel_booking.routers.room.room_crud"


def room_detail(**overrides) -> dict:
    base = room_response(**overrides)
    base["category"] = {"id": base["category_id"], "name": "Standard"}
    base["type"] = {"id": base["type_id"], "name": "Double"}
    return base


class TestListRooms:
    def test_public_listing(self, anon_app):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_rooms = AsyncMock(return_value=[room_response()])
            with TestClient(anon_app) as c:
                resp = c.get("/rooms")
        assert resp.status_code == 200
        assert resp.json()[0]["room_number"] == "101"

    def test_status_filter_forwarded(self, anon_app):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_rooms = AsyncMock(return_value=[])
            with TestClient(anon_app) as c:
                c.get("/rooms", params={"room_status": "Dirty"})
        assert mock_crud.list_rooms.call_args.args[0] == RoomStatus.DIRTY


class TestGetRoom:
    def test_found(self, anon_app):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_room = AsyncMock(return_value=room_detail())
            with TestClient(anon_app) as c:
                resp = c.get(f"/rooms/{ROOM_ID}")
        assert resp.status_code == 200
        assert resp.json()["category"]["name"] == "Standard"

    def test_not_found(self, anon_app):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_room = AsyncMock(return_value=None)
            with TestClient(anon_app) as c:
                resp = c.get(f"/rooms/{uuid4()}")
        assert resp.status_code == 404


class TestCreateRoom:
    def test_admin_creates(self, admin_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_room = AsyncMock(return_value=room_detail())
            resp = admin_client.post(
                "/rooms", json=room_create_payload(uuid4(), uuid4())
            )
        assert resp.status_code == 201

    def test_duplicate_number_returns_409(self, admin_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_room = AsyncMock(
                side_effect=HTTPException(status_code=409, detail="exists")
            )
            resp = admin_client.post(
                "/rooms", json=room_create_payload(uuid4(), uuid4())
            )
        assert resp.status_code == 409

    def test_customer_gets_403(self, anon_app):
        async def _customer():
            return make_customer()

        anon_app.dependency_overrides[get_current_user] = _customer
        with TestClient(anon_app) as c:
            resp = c.post("/rooms", json=room_create_payload(uuid4(), uuid4()))
        assert resp.status_code == 403


class TestUpdateRoomStatus:
    def test_housekeeping_marks_clean(self, admin_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.update_room_status = AsyncMock(
                return_value=room_response(status="Available")
            )
            resp = admin_client.patch(
                f"/rooms/{ROOM_ID}/status", json={"status": "Available"}
            )
        assert resp.status_code == 200
        assert mock_crud.update_room_status.call_args.args == (
            ROOM_ID,
            RoomStatus.AVAILABLE,
        )

    def test_unknown_status_returns_422(self, admin_client):
        resp = admin_client.patch(f"/rooms/{ROOM_ID}/status", json={"status": "Clean"})
        assert resp.status_code == 422

    def test_not_found(self, admin_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.update_room_status = AsyncMock(return_value=None)
            resp = admin_client.patch(
                f"/rooms/{uuid4()}/status", json={"status": "Maintenance"}
            )
        assert resp.status_code == 404
