"""Event routes: the vendor-facing lifecycle API."""
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from vendor_tracker.core.config import settings
from vendor_tracker.core.database import get_session
from vendor_tracker.core.security import VendorIdentity, get_current_vendor
from vendor_tracker.integrations.image_store import ImageConstraints
from vendor_tracker.lifecycle.engine import LifecycleEngine, utc_now
from vendor_tracker.lifecycle.errors import ValidationFailure
from vendor_tracker.lifecycle.store import DeletedFilter, EventStore
from vendor_tracker.schemas import AnalyticsRead, EventCreate, OTPVerify, sanitize_event

router = APIRouter(prefix="/api/events", tags=["events"])


def get_engine(request: Request, session: Session = Depends(get_session)) -> LifecycleEngine:
    """Dependency building a lifecycle engine around the request's session."""
    state = request.app.state
    return LifecycleEngine(
        EventStore(session),
        state.image_store,
        state.notifier,
        otp_ttl=timedelta(minutes=settings.otp_ttl_minutes),
        image_folder_root=settings.image_folder_root,
        image_constraints=ImageConstraints(
            max_width=settings.image_max_dimension,
            max_height=settings.image_max_dimension,
        ),
        clock=getattr(state, "clock", utc_now),
    )


def event_response(event, message: str | None = None) -> dict:
    body = {"success": True, "event": sanitize_event(event, settings.is_development)}
    if message:
        body["message"] = message
    return body


@router.post("", status_code=201)
async def create_event(
    payload: EventCreate,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Create a new event for the calling vendor.

    The location may be sent as a plain string in location, or inside
    event_location (either a string or an object with an address). The
    event starts out pending.
    """
    event = engine.create_event(vendor.vendor_id, payload.to_new_event())
    return event_response(event, "Event created")


@router.get("")
async def list_events(
    include_deleted: bool = False,
    only_deleted: bool = False,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    List the calling vendor's events, newest first.

    Deleted events are left out unless include_deleted (all events) or
    only_deleted (deleted events only) is set.
    """
    if only_deleted:
        deleted = DeletedFilter.ONLY
    elif include_deleted:
        deleted = DeletedFilter.INCLUDE
    else:
        deleted = DeletedFilter.EXCLUDE

    events = engine.list_events(vendor.vendor_id, deleted)
    return {
        "success": True,
        "count": len(events),
        "events": [sanitize_event(e, settings.is_development) for e in events],
    }


@router.get("/analytics")
async def event_analytics(
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Summarize the calling vendor's events.

    Returns counts (total, active, deleted, per status) and average
    milestone durations in milliseconds over completed events. Averages are
    null when no completed event has the timestamps needed.
    """
    analytics = engine.analytics(vendor.vendor_id)
    return {
        "success": True,
        "analytics": AnalyticsRead.model_validate(analytics, from_attributes=True).model_dump(),
    }


@router.get("/{event_id}")
async def get_event(
    event_id: UUID,
    include_deleted: bool = False,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Get a single event.

    Returns 410 for a deleted event unless include_deleted is set.
    """
    event = engine.get_event(vendor.vendor_id, event_id, include_deleted=include_deleted)
    return event_response(event)


@router.delete("/{event_id}")
async def delete_event(
    event_id: UUID,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Soft-delete an event.

    The event stays addressable with include_deleted for audit. Deleting an
    already deleted event succeeds without changing it.
    """
    event = engine.delete_event(vendor.vendor_id, event_id)
    return event_response(event, "Event deleted")


@router.post("/{event_id}/checkin")
async def check_in(
    event_id: UUID,
    arrival_photo: UploadFile | None = File(None),
    arrival_photo_camel: UploadFile | None = File(None, alias="arrivalPhoto"),
    latitude: float = Form(..., ge=-90, le=90),
    longitude: float = Form(..., ge=-180, le=180),
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Vendor check-in on arrival.

    The photo is accepted as either arrival_photo or arrivalPhoto. Uploads
    the arrival photo, then records the coordinates and time. If the upload
    fails the event is left unchanged.
    """
    upload = arrival_photo or arrival_photo_camel
    photo = await upload.read() if upload else None
    event = await run_in_threadpool(
        engine.check_in, vendor.vendor_id, event_id, photo, latitude, longitude
    )
    return event_response(event, "Check-in successful")


def otp_response(event, code: str, message: str) -> dict:
    body = event_response(event, message)
    if settings.is_development:
        body["otp"] = code
    return body


@router.post("/{event_id}/start-otp")
async def trigger_start_otp(
    event_id: UUID,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Send the customer a fresh OTP to confirm the event start."""
    event, code = await run_in_threadpool(engine.issue_start_otp, vendor.vendor_id, event_id)
    return otp_response(event, code, "OTP sent to customer successfully")


@router.post("/{event_id}/verify-start-otp")
async def verify_start_otp(
    event_id: UUID,
    payload: OTPVerify,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Verify the customer's start OTP and mark the event started."""
    event = engine.verify_start_otp(vendor.vendor_id, event_id, payload.otp)
    return event_response(event, "Event started successfully")


@router.post("/{event_id}/setup-photos")
async def upload_setup_photos(
    event_id: UUID,
    photos: list[UploadFile] = File(default=[]),
    photo_type: str = Form(..., alias="type"),
    notes: str | None = Form(None),
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Upload pre- or post-setup photos.

    type is "pre" or "post". Post-setup photos mark the setup complete and
    move the event into progress. All photos are stored before the event is
    updated; if any upload fails, none are recorded.
    """
    if len(photos) > settings.max_setup_photos:
        raise ValidationFailure(f"At most {settings.max_setup_photos} photos per upload")

    payloads = [await photo.read() for photo in photos]
    event = await run_in_threadpool(
        engine.upload_setup_photos, vendor.vendor_id, event_id, photo_type, payloads, notes
    )
    return event_response(event, f"{photo_type}-setup photos uploaded successfully")


@router.post("/{event_id}/closing-otp")
async def trigger_closing_otp(
    event_id: UUID,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Send the customer a fresh OTP to confirm the event close."""
    event, code = await run_in_threadpool(engine.issue_closing_otp, vendor.vendor_id, event_id)
    return otp_response(event, code, "Closing OTP sent to customer successfully")


@router.post("/{event_id}/verify-closing-otp")
async def verify_closing_otp(
    event_id: UUID,
    payload: OTPVerify,
    vendor: VendorIdentity = Depends(get_current_vendor),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Verify the customer's closing OTP and complete the event."""
    event = engine.verify_closing_otp(vendor.vendor_id, event_id, payload.otp)
    return event_response(event, "Event completed successfully")
