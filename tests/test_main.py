"""Smoke tests for the assembled application."""

from hotel_booking.main import app, create_app
from hotel_booking.scopes import HotelScope


class TestAppAssembly:
    def test_all_routers_mounted(self):
        paths = {route.path for route in create_app().routes}
        assert "/bookings/" in paths
        assert "/bookings/schedule" in paths
        assert "/bookings/{booking_id}/room" in paths
        assert "/rooms/{room_id}/status" in paths
        assert "/ws/admin" in paths

    def test_scopes_documented_in_openapi(self):
        description = app.openapi()["info"]["description"]
        for scope in HotelScope:
            assert scope.value in description
