"""Derive an event's lifecycle status from its recorded milestones."""
from datetime import UTC, datetime

from vendor_tracker.models import Event, EventStatus


def derive_status(event: Event) -> EventStatus:
    """
    Compute the status implied by an event's sub-records.

    The furthest milestone reached wins:
        closing OTP verified   -> completed
        post-setup photos      -> in-progress
        start OTP verified     -> started
        checked in             -> checked-in
        otherwise              -> pending

    CANCELLED is never derived.
    """
    if event.closing_otp_is_verified:
        return EventStatus.COMPLETED
    if event.setup_completed_at is not None and event.post_setup_photos:
        return EventStatus.IN_PROGRESS
    if event.start_otp_is_verified:
        return EventStatus.STARTED
    if event.is_checked_in:
        return EventStatus.CHECKED_IN
    return EventStatus.PENDING


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
