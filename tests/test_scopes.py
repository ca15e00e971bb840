"""Tests for HotelScope values and descriptions."""

from hotel_booking.scopes import ADMIN_SCOPE, HOTEL_SCOPE_DESCRIPTIONS, HotelScope


class TestHotelScopeValues:
    def test_customer_read_scope(self):
        assert HotelScope.READ == "bookings:read"

    def test_customer_write_scope(self):
        assert HotelScope.WRITE == "bookings:write"

    def test_customer_cancel_scope(self):
        assert HotelScope.CANCEL == "bookings:cancel"

    def test_front_desk_scope(self):
        assert HotelScope.ADMIN == "admin:bookings"

    def test_rooms_manage_scope(self):
        assert HotelScope.ROOMS_MANAGE == "rooms:manage"

    def test_admin_marker_scope(self):
        assert ADMIN_SCOPE == "admin:scopes"

    def test_all_scopes_are_strings(self):
        for scope in HotelScope:
            assert isinstance(scope, str)


class TestHotelScopeDescriptions:
    def test_every_scope_has_a_description(self):
        assert set(HOTEL_SCOPE_DESCRIPTIONS) == set(HotelScope)

    def test_all_description_values_are_non_empty_strings(self):
        for key, value in HOTEL_SCOPE_DESCRIPTIONS.items():
            assert isinstance(key, str)
            assert isinstance(value, str)
            assert len(value) > 0
