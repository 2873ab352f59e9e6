"""Event model for vendor-serviced events.

This module defines the Event model, the single record that tracks an event
from scheduling through vendor check-in, customer-verified start, setup
documentation and customer-verified close. Check-in, both OTP challenges and
setup progress are stored as flattened column groups on the event row;
setup photos live in their own table.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from vendor_tracker.models.setup_photo import SetupPhoto


class EventStatus(str, Enum):
    """Lifecycle states, in forward order.

    CANCELLED is declared for completeness but no transition produces it.
    """
    PENDING = "pending"
    CHECKED_IN = "checked-in"
    STARTED = "started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Event(SQLModel, table=True):
    """A vendor-serviced event.

    Attributes:
        id: Unique identifier (UUID), immutable.
        vendor_id: Owning vendor, taken from the caller's token at creation.
            Every lifecycle operation checks it against the caller.
        event_name, customer_name, customer_email, customer_phone: Descriptive
            fields supplied at creation.
        event_date: When the event is scheduled.
        location: Resolved, non-blank location string.
        location_address, location_city, location_state: Optional structured
            location, kept when the caller supplied one.
        arrival_photo_url, arrival_photo_id: Image store result for the
            vendor's arrival photo.
        check_in_latitude, check_in_longitude: Where the vendor checked in.
        checked_in_at: When the check-in was recorded.
        is_checked_in: Whether the vendor has checked in.
        start_otp_*, closing_otp_*: The two independent OTP challenges. Issuing
            a new code overwrites the previous one.
        setup_notes: Free-form notes from the latest setup photo upload.
        setup_completed_at: Set when post-setup photos are uploaded.
        status: Derived from the column groups above on every transition.
        is_deleted, deleted_at: Soft-deletion marker.
        completed_at: Set once, when the closing OTP is verified.
        photos: Pre- and post-setup photos in upload order.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    vendor_id: str = Field(index=True)

    event_name: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_date: datetime
    location: str
    location_address: str | None = None
    location_city: str | None = None
    location_state: str | None = None

    # Vendor check-in
    arrival_photo_url: str | None = None
    arrival_photo_id: str | None = None
    check_in_latitude: float | None = None
    check_in_longitude: float | None = None
    checked_in_at: datetime | None = None
    is_checked_in: bool = Field(default=False)

    # Customer OTP for event start
    start_otp_code: str | None = None
    start_otp_sent_at: datetime | None = None
    start_otp_verified_at: datetime | None = None
    start_otp_is_verified: bool = Field(default=False)

    # Setup progress
    setup_notes: str | None = None
    setup_completed_at: datetime | None = None

    # Customer OTP for event closing
    closing_otp_code: str | None = None
    closing_otp_sent_at: datetime | None = None
    closing_otp_verified_at: datetime | None = None
    closing_otp_is_verified: bool = Field(default=False)

    status: EventStatus = Field(default=EventStatus.PENDING, index=True)
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = None
    completed_at: datetime | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationships
    photos: list["SetupPhoto"] = Relationship(
        back_populates="event",
        sa_relationship_kwargs={"order_by": "SetupPhoto.position"},
    )

    @property
    def pre_setup_photos(self) -> list["SetupPhoto"]:
        return [photo for photo in self.photos if photo.kind == "pre"]

    @property
    def post_setup_photos(self) -> list["SetupPhoto"]:
        return [photo for photo in self.photos if photo.kind == "post"]
