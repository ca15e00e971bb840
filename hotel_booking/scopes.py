from enum import StrEnum

ADMIN_SCOPE = "admin:scopes"


class HotelScope(StrEnum):
    # Guest scopes
    READ = "bookings:read"  # view own bookings
    WRITE = "bookings:write"  # create a booking
    CANCEL = "bookings:cancel"  # cancel own booking

    # Front-desk / admin scopes
    ADMIN = "admin:bookings"  # drive the booking lifecycle
    ROOMS_MANAGE = "rooms:manage"  # create rooms, change housekeeping status


HOTEL_SCOPE_DESCRIPTIONS: dict[str, str] = {
    HotelScope.READ: "View your own bookings.",
    HotelScope.WRITE: "Create a new room booking.",
    HotelScope.CANCEL: "Cancel your own booking before check-in.",
    HotelScope.ADMIN: "Read and update any booking (front desk).",
    HotelScope.ROOMS_MANAGE: "Create rooms and change their operational status.",
}
