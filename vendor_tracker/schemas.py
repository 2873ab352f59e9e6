"""Request and response shapes for the events API.

Requests accept both snake_case and the camelCase field names used by the
web and mobile clients. Responses are snake_case.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vendor_tracker.lifecycle.engine import NewEvent
from vendor_tracker.lifecycle.errors import ValidationFailure
from vendor_tracker.lifecycle.state import as_utc
from vendor_tracker.models import Event, SetupPhoto


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationInput(RequestModel):
    address: str | None = None
    city: str | None = None
    state: str | None = None


class EventCreate(RequestModel):
    event_name: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_date: datetime
    location: str | None = None
    event_location: str | LocationInput | None = None

    def resolve_location(self) -> str:
        """
        Resolve the event location to a single string.

        Tried in order: location, event_location when given as a string, then
        event_location.address.

        Raises:
            ValidationFailure: If none of them is a non-blank string.
        """
        candidates = [self.location]
        if isinstance(self.event_location, str):
            candidates.append(self.event_location)
        elif isinstance(self.event_location, LocationInput):
            candidates.append(self.event_location.address)

        for candidate in candidates:
            if candidate:
                # First present value wins, matching the web client's fallback
                if not candidate.strip():
                    break
                return candidate.strip()
        raise ValidationFailure("Please provide event location")

    def to_new_event(self) -> NewEvent:
        structured = self.event_location if isinstance(self.event_location, LocationInput) else None
        return NewEvent(
            event_name=self.event_name,
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone,
            event_date=self.event_date,
            location=self.resolve_location(),
            location_address=structured.address if structured else None,
            location_city=structured.city if structured else None,
            location_state=structured.state if structured else None,
        )


class OTPVerify(RequestModel):
    otp: str = Field(min_length=1)


class LocationRead(BaseModel):
    address: str | None = None
    city: str | None = None
    state: str | None = None


class CheckInRead(BaseModel):
    arrival_photo_url: str | None
    arrival_photo_id: str | None
    latitude: float | None
    longitude: float | None
    timestamp: datetime | None
    is_checked_in: bool


class OTPRead(BaseModel):
    code: str | None = None
    sent_at: datetime | None
    verified_at: datetime | None
    is_verified: bool


class PhotoRead(BaseModel):
    url: str
    id: str
    uploaded_at: datetime


class EventSetupRead(BaseModel):
    pre_setup_photos: list[PhotoRead]
    post_setup_photos: list[PhotoRead]
    notes: str | None
    setup_completed_at: datetime | None


class EventRead(BaseModel):
    id: UUID
    vendor_id: str
    event_name: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_date: datetime
    location: str
    event_location: LocationRead | None
    check_in: CheckInRead | None
    start_otp: OTPRead | None
    closing_otp: OTPRead | None
    event_setup: EventSetupRead
    status: str
    is_deleted: bool
    deleted_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class AnalyticsRead(BaseModel):
    total_events: int
    active_events: int
    deleted_events: int
    status_counts: dict[str, int]
    avg_check_in_to_start_ms: int | None
    avg_start_to_close_ms: int | None
    avg_check_in_to_close_ms: int | None


def _photo(photo: SetupPhoto) -> PhotoRead:
    return PhotoRead(url=photo.url, id=photo.public_id, uploaded_at=as_utc(photo.uploaded_at))


def _otp(event: Event, prefix: str) -> OTPRead | None:
    sent_at = getattr(event, f"{prefix}_sent_at")
    if sent_at is None:
        return None
    return OTPRead(
        code=getattr(event, f"{prefix}_code"),
        sent_at=as_utc(sent_at),
        verified_at=as_utc(getattr(event, f"{prefix}_verified_at")),
        is_verified=getattr(event, f"{prefix}_is_verified"),
    )


def to_event_read(event: Event) -> EventRead:
    """Nest the flattened event columns into the public event shape."""
    has_location = any([event.location_address, event.location_city, event.location_state])
    return EventRead(
        id=event.id,
        vendor_id=event.vendor_id,
        event_name=event.event_name,
        customer_name=event.customer_name,
        customer_email=event.customer_email,
        customer_phone=event.customer_phone,
        event_date=as_utc(event.event_date),
        location=event.location,
        event_location=(
            LocationRead(
                address=event.location_address,
                city=event.location_city,
                state=event.location_state,
            )
            if has_location
            else None
        ),
        check_in=(
            CheckInRead(
                arrival_photo_url=event.arrival_photo_url,
                arrival_photo_id=event.arrival_photo_id,
                latitude=event.check_in_latitude,
                longitude=event.check_in_longitude,
                timestamp=as_utc(event.checked_in_at),
                is_checked_in=event.is_checked_in,
            )
            if event.checked_in_at is not None
            else None
        ),
        start_otp=_otp(event, "start_otp"),
        closing_otp=_otp(event, "closing_otp"),
        event_setup=EventSetupRead(
            pre_setup_photos=[_photo(p) for p in event.pre_setup_photos],
            post_setup_photos=[_photo(p) for p in event.post_setup_photos],
            notes=event.setup_notes,
            setup_completed_at=as_utc(event.setup_completed_at),
        ),
        status=event.status.value,
        is_deleted=event.is_deleted,
        deleted_at=as_utc(event.deleted_at),
        completed_at=as_utc(event.completed_at),
        created_at=as_utc(event.created_at),
        updated_at=as_utc(event.updated_at),
    )


def sanitize_event(event: Event, expose_codes: bool = False) -> dict:
    """
    Serialize an event for a caller.

    OTP codes are removed unless expose_codes is set (development mode);
    sent/verified timestamps and verification flags are always kept.
    """
    payload = to_event_read(event).model_dump(mode="json")
    if not expose_codes:
        for key in ("start_otp", "closing_otp"):
            if payload[key] is not None:
                payload[key].pop("code", None)
    return payload
