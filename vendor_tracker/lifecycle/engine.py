"""Event lifecycle engine.

Every operation follows the same shape: load the event, check ownership and
transition guards, perform any external I/O (image uploads, OTP delivery),
then apply all field changes and recompute the status in a single save. If
the external step fails nothing is written, so an event never records a
milestone whose side effect did not happen.
"""
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from vendor_tracker.integrations.image_store import (
    ImageConstraints,
    ImageStore,
    ImageUploadError,
    UploadedImage,
)
from vendor_tracker.integrations.notifier import Notifier, NotifierError
from vendor_tracker.lifecycle.analytics import VendorAnalytics, compute_vendor_analytics
from vendor_tracker.lifecycle.errors import (
    DependencyFailure,
    EventGone,
    EventNotFound,
    Forbidden,
    PreconditionFailed,
    ValidationFailure,
)
from vendor_tracker.lifecycle.otp import (
    OTPPurpose,
    OTPRecord,
    check_otp,
    generate_otp,
    read_otp,
    write_otp,
)
from vendor_tracker.lifecycle.state import derive_status
from vendor_tracker.lifecycle.store import DeletedFilter, EventStore
from vendor_tracker.models import Event, SetupPhoto

logger = logging.getLogger(__name__)

SETUP_PHOTO_KINDS = ("pre", "post")
REQUIRED_FIELDS = ("event_name", "customer_name", "customer_email", "customer_phone", "location")


@dataclass(frozen=True)
class NewEvent:
    """Validated input for creating an event. location is already resolved."""

    event_name: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_date: datetime
    location: str
    location_address: str | None = None
    location_city: str | None = None
    location_state: str | None = None


def utc_now() -> datetime:
    return datetime.now(UTC)


class LifecycleEngine:
    """Owns the event state machine for one request's store."""

    def __init__(
        self,
        store: EventStore,
        image_store: ImageStore,
        notifier: Notifier,
        *,
        otp_ttl: timedelta = timedelta(minutes=10),
        image_folder_root: str = "zappy",
        image_constraints: ImageConstraints = ImageConstraints(),
        max_upload_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.image_store = image_store
        self.notifier = notifier
        self.otp_ttl = otp_ttl
        self.image_folder_root = image_folder_root
        self.image_constraints = image_constraints
        self.max_upload_workers = max_upload_workers
        self.clock = clock

    # Loading and guards

    def _load(self, vendor_id: str, event_id: UUID) -> Event:
        event = self.store.get(event_id)
        if event is None:
            logger.warning(f"Event {event_id} not found for vendor {vendor_id}")
            raise EventNotFound(event_id)
        if event.vendor_id != vendor_id:
            logger.warning(f"Vendor {vendor_id} denied access to event {event_id}")
            raise Forbidden()
        return event

    def _load_mutable(self, vendor_id: str, event_id: UUID) -> Event:
        event = self._load(vendor_id, event_id)
        if event.is_deleted:
            raise EventGone(event_id)
        return event

    def _apply(self, event: Event, action: str) -> Event:
        """Recompute status and persist all pending changes at once."""
        event.status = derive_status(event)
        event = self.store.save(event)
        logger.info(f"Event {event.id} {action}, status={event.status.value}")
        return event

    # External I/O

    def _upload(self, payload: bytes, folder: str) -> UploadedImage:
        try:
            return self.image_store.upload(payload, folder, self.image_constraints)
        except ImageUploadError as e:
            logger.error(f"Image upload to {folder} failed: {e.message}")
            raise DependencyFailure(
                e.message,
                hint=e.hint or "Retry the upload.",
                misconfigured=e.misconfigured,
            ) from e

    def _upload_all(self, payloads: list[bytes], folder: str) -> list[UploadedImage]:
        """Upload files concurrently, returning results in input order."""
        if len(payloads) == 1:
            return [self._upload(payloads[0], folder)]
        workers = min(len(payloads), self.max_upload_workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda payload: self._upload(payload, folder), payloads))

    def _deliver(self, event: Event, code: str, purpose: OTPPurpose) -> None:
        try:
            self.notifier.send(
                event.customer_phone,
                event.customer_email,
                code,
                purpose=purpose.value,
                customer_name=event.customer_name,
                event_name=event.event_name,
            )
        except NotifierError as e:
            logger.error(f"OTP delivery for event {event.id} failed: {e.message}")
            if e.misconfigured:
                hint = "Check the notifier settings (NOTIFIER_BACKEND, SMTP_*) and restart the service."
            else:
                hint = "Request the OTP again in a moment."
            raise DependencyFailure(
                "Failed to send OTP to customer", hint=hint, misconfigured=e.misconfigured
            ) from e

    # Operations

    def create_event(self, vendor_id: str, data: NewEvent) -> Event:
        """
        Create a pending event owned by the vendor.

        Raises:
            ValidationFailure: If a required field is missing or blank.
        """
        for name in REQUIRED_FIELDS:
            value = getattr(data, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationFailure(f"Please provide {name.replace('_', ' ')}")
        if data.event_date is None:
            raise ValidationFailure("Please provide event date")

        event = Event(
            vendor_id=vendor_id,
            event_name=data.event_name.strip(),
            customer_name=data.customer_name.strip(),
            customer_email=data.customer_email.strip(),
            customer_phone=data.customer_phone.strip(),
            event_date=data.event_date,
            location=data.location.strip(),
            location_address=data.location_address,
            location_city=data.location_city,
            location_state=data.location_state,
            created_at=self.clock(),
        )
        return self._apply(event, "created")

    def get_event(self, vendor_id: str, event_id: UUID, include_deleted: bool = False) -> Event:
        """
        Return one of the vendor's events.

        Raises:
            EventNotFound, Forbidden: If the event is missing or not the caller's.
            EventGone: If the event is deleted and include_deleted is False.
        """
        event = self._load(vendor_id, event_id)
        if event.is_deleted and not include_deleted:
            raise EventGone(event_id)
        return event

    def list_events(
        self, vendor_id: str, deleted: DeletedFilter = DeletedFilter.EXCLUDE
    ) -> list[Event]:
        return self.store.find_by_vendor(vendor_id, deleted)

    def check_in(
        self,
        vendor_id: str,
        event_id: UUID,
        photo: bytes | None,
        latitude: float | None,
        longitude: float | None,
    ) -> Event:
        """
        Record the vendor's arrival with a photo and coordinates.

        Raises:
            ValidationFailure: If no arrival photo is supplied.
            PreconditionFailed: If the event has already started.
            DependencyFailure: If the photo could not be stored.
        """
        if not photo:
            raise ValidationFailure("Please upload arrival photo")
        event = self._load_mutable(vendor_id, event_id)
        if event.start_otp_is_verified:
            raise PreconditionFailed("Event has already started")

        uploaded = self._upload(photo, f"{self.image_folder_root}/vendor-checkins")

        event.arrival_photo_url = uploaded.url
        event.arrival_photo_id = uploaded.public_id
        event.check_in_latitude = latitude
        event.check_in_longitude = longitude
        event.checked_in_at = self.clock()
        event.is_checked_in = True
        return self._apply(event, "checked in")

    def issue_otp(self, vendor_id: str, event_id: UUID, purpose: OTPPurpose) -> tuple[Event, str]:
        """
        Generate a fresh OTP, deliver it to the customer, then store it.

        Any previously issued code for the same purpose is replaced. The code
        is stored only after the notifier accepted it.

        Returns:
            The updated event and the raw code (for development responses).

        Raises:
            PreconditionFailed: If the gate is not reachable yet or already passed.
            DependencyFailure: If the notifier could not deliver the code.
        """
        event = self._load_mutable(vendor_id, event_id)
        if purpose == OTPPurpose.START:
            if not event.is_checked_in:
                raise PreconditionFailed("Please check-in first")
        elif not event.post_setup_photos:
            raise PreconditionFailed("Please upload post-setup photos first")
        if read_otp(event, purpose).is_verified:
            raise PreconditionFailed(f"{purpose.value.capitalize()} OTP has already been verified")

        code = generate_otp()
        self._deliver(event, code, purpose)

        write_otp(
            event,
            purpose,
            OTPRecord(code=code, sent_at=self.clock(), verified_at=None, is_verified=False),
        )
        return self._apply(event, f"{purpose.value} OTP issued"), code

    def issue_start_otp(self, vendor_id: str, event_id: UUID) -> tuple[Event, str]:
        return self.issue_otp(vendor_id, event_id, OTPPurpose.START)

    def issue_closing_otp(self, vendor_id: str, event_id: UUID) -> tuple[Event, str]:
        return self.issue_otp(vendor_id, event_id, OTPPurpose.CLOSING)

    def verify_otp(self, vendor_id: str, event_id: UUID, purpose: OTPPurpose, code: str) -> Event:
        """
        Verify a customer's OTP and pass the corresponding gate.

        Raises:
            PreconditionFailed: If no code was issued or the gate is not reachable.
            OTPExpired: If the code is past its time-to-live.
            OTPMismatch: If the code differs from the last issued one.
        """
        event = self._load_mutable(vendor_id, event_id)
        if purpose == OTPPurpose.START and not event.is_checked_in:
            raise PreconditionFailed("Please check-in first")

        now = self.clock()
        record = read_otp(event, purpose)
        check_otp(record, code, now, self.otp_ttl)

        write_otp(
            event,
            purpose,
            OTPRecord(code=record.code, sent_at=record.sent_at, verified_at=now, is_verified=True),
        )
        if purpose == OTPPurpose.CLOSING:
            event.completed_at = now
            return self._apply(event, "completed")
        return self._apply(event, "started")

    def verify_start_otp(self, vendor_id: str, event_id: UUID, code: str) -> Event:
        return self.verify_otp(vendor_id, event_id, OTPPurpose.START, code)

    def verify_closing_otp(self, vendor_id: str, event_id: UUID, code: str) -> Event:
        return self.verify_otp(vendor_id, event_id, OTPPurpose.CLOSING, code)

    def upload_setup_photos(
        self,
        vendor_id: str,
        event_id: UUID,
        kind: str,
        photos: list[bytes],
        notes: str | None = None,
    ) -> Event:
        """
        Append pre- or post-setup photos in one update.

        Post-setup photos mark the setup complete and move the event into progress.

        Raises:
            ValidationFailure: If kind is unknown or no photos are supplied.
            PreconditionFailed: If the start OTP is not verified or the event is completed.
            DependencyFailure: If any photo could not be stored.
        """
        if kind not in SETUP_PHOTO_KINDS:
            raise ValidationFailure("Photo type must be 'pre' or 'post'")
        photos = [payload for payload in photos or [] if payload]
        if not photos:
            raise ValidationFailure("Please upload at least one photo")

        event = self._load_mutable(vendor_id, event_id)
        if not event.start_otp_is_verified:
            raise PreconditionFailed("Please verify start OTP first")
        if event.closing_otp_is_verified:
            raise PreconditionFailed("Event is already completed")

        uploaded = self._upload_all(photos, f"{self.image_folder_root}/event-setup/{kind}")

        now = self.clock()
        position = len(event.photos)
        for offset, image in enumerate(uploaded):
            event.photos.append(
                SetupPhoto(
                    event_id=event.id,
                    kind=kind,
                    url=image.url,
                    public_id=image.public_id,
                    position=position + offset,
                    uploaded_at=now,
                )
            )
        if kind == "post":
            event.setup_completed_at = now
        if notes:
            event.setup_notes = notes
        return self._apply(event, f"{kind}-setup photos uploaded ({len(uploaded)})")

    def delete_event(self, vendor_id: str, event_id: UUID) -> Event:
        """Soft-delete an event. Deleting an already deleted event changes nothing."""
        event = self._load(vendor_id, event_id)
        if event.is_deleted:
            return event
        event.is_deleted = True
        event.deleted_at = self.clock()
        return self._apply(event, "deleted")

    def analytics(self, vendor_id: str) -> VendorAnalytics:
        return compute_vendor_analytics(self.store, vendor_id)
