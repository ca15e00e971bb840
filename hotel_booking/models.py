from tortoise import fields
from tortoise.models import Model

from hotel_booking.lifecycle import (
    BookingStatus,
    BookingType,
    PaymentMethod,
    PaymentStatus,
    RoomStatus,
)


class TimestampedModel(Model):
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        abstract = True


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class RoomCategory(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    name = fields.CharField(max_length=100, unique=True)

    class Meta:  # type: ignore
        table = "room_categories"


class RoomType(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    name = fields.CharField(max_length=100, unique=True)
    max_adults = fields.IntField(default=2)
    max_children = fields.IntField(default=0)

    class Meta:  # type: ignore
        table = "room_types"


class Amenity(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    name = fields.CharField(max_length=100, unique=True)
    price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:  # type: ignore
        table = "amenities"


class Service(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    name = fields.CharField(max_length=100, unique=True)
    price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:  # type: ignore
        table = "services"


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


class Room(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    room_number = fields.CharField(max_length=20, unique=True)
    floor = fields.CharField(max_length=20, default="1")

    category: fields.ForeignKeyRelation[RoomCategory] = fields.ForeignKeyField(
        "models.RoomCategory", related_name="rooms", on_delete=fields.RESTRICT
    )
    type: fields.ForeignKeyRelation[RoomType] = fields.ForeignKeyField(
        "models.RoomType", related_name="rooms", on_delete=fields.RESTRICT
    )

    price_first_hour = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    price_next_hour = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    price_overnight = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    price_daily = fields.DecimalField(max_digits=12, decimal_places=2, default=0)

    status = fields.CharEnumField(RoomStatus, default=RoomStatus.AVAILABLE)
    note = fields.TextField(default="")

    # booking currently holding the room (plain column, not a FK)
    current_booking_id = fields.UUIDField(null=True)

    class Meta:  # type: ignore
        table = "rooms"
        ordering = ["room_number"]


# ---------------------------------------------------------------------------
# Customers & bookings
# ---------------------------------------------------------------------------


class GuestProfile(TimestampedModel):
    """Walk-in customer without an account in the users service."""

    id = fields.UUIDField(primary_key=True)
    full_name = fields.CharField(max_length=200)
    phone = fields.CharField(max_length=32)
    email = fields.CharField(max_length=254, null=True)

    class Meta:  # type: ignore
        table = "guest_profiles"


class Booking(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    booking_code = fields.CharField(max_length=40, unique=True)

    # exactly one of user_id / guest is set
    user_id = fields.UUIDField(null=True, db_index=True)  # users-ms account
    guest: fields.ForeignKeyNullableRelation[GuestProfile] = fields.ForeignKeyField(
        "models.GuestProfile",
        related_name="bookings",
        null=True,
        on_delete=fields.RESTRICT,
    )

    room: fields.ForeignKeyRelation[Room] = fields.ForeignKeyField(
        "models.Room", related_name="bookings", on_delete=fields.RESTRICT
    )
    amenities: fields.ManyToManyRelation[Amenity] = fields.ManyToManyField(
        "models.Amenity", related_name="bookings", through="booking_amenities"
    )
    services: fields.ManyToManyRelation[Service] = fields.ManyToManyField(
        "models.Service", related_name="bookings", through="booking_services"
    )

    booking_type = fields.CharEnumField(BookingType)
    check_in_date = fields.DateField()
    check_in_time = fields.CharField(max_length=5)  # "HH:MM"
    check_out_date = fields.DateField()
    check_out_time = fields.CharField(max_length=5)
    hours = fields.IntField(default=1)  # only meaningful for hourly stays
    adults = fields.IntField(default=1)
    children = fields.IntField(default=0)

    # prices are snapshots sent by the client at booking time
    room_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    amenities_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    services_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)

    payment_method = fields.CharEnumField(PaymentMethod, default=PaymentMethod.CASH)
    paid_amount = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    remaining_amount = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    refund_amount = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    payment_date = fields.DatetimeField(null=True)

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)
    note = fields.TextField(default="")

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]
