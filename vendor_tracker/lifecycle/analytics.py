"""Per-vendor lifecycle analytics."""
import math
from dataclasses import dataclass, field
from datetime import datetime

from vendor_tracker.lifecycle.state import as_utc
from vendor_tracker.lifecycle.store import EventStore
from vendor_tracker.models import Event, EventStatus


@dataclass(frozen=True)
class VendorAnalytics:
    """Aggregate counts and milestone durations for one vendor.

    Durations are arithmetic means in milliseconds over completed events,
    or None when no event contributed a usable pair of timestamps.
    """

    total_events: int
    active_events: int
    deleted_events: int
    status_counts: dict[str, int] = field(default_factory=dict)
    avg_check_in_to_start_ms: int | None = None
    avg_start_to_close_ms: int | None = None
    avg_check_in_to_close_ms: int | None = None


def duration_ms(earlier: datetime | None, later: datetime | None) -> int | None:
    """
    Milliseconds between two timestamps.

    Returns None when either end is missing or the later timestamp precedes
    the earlier one, so skewed or inconsistent records never contribute.
    """
    earlier, later = as_utc(earlier), as_utc(later)
    if earlier is None or later is None or later < earlier:
        return None
    return round((later - earlier).total_seconds() * 1000)


def average(values: list[int | None]) -> int | None:
    """Mean of the defined values, rounded half up; None when there are none."""
    usable = [v for v in values if v is not None]
    if not usable:
        return None
    return math.floor(sum(usable) / len(usable) + 0.5)


def close_time(event: Event) -> datetime | None:
    return event.closing_otp_verified_at or event.completed_at


def summarize_durations(events: list[Event]) -> dict[str, int | None]:
    """Average milestone durations across completed events."""
    completed = [e for e in events if e.status == EventStatus.COMPLETED]
    return {
        "avg_check_in_to_start_ms": average(
            [duration_ms(e.checked_in_at, e.start_otp_verified_at) for e in completed]
        ),
        "avg_start_to_close_ms": average(
            [duration_ms(e.start_otp_verified_at, close_time(e)) for e in completed]
        ),
        "avg_check_in_to_close_ms": average(
            [duration_ms(e.checked_in_at, close_time(e)) for e in completed]
        ),
    }


def compute_vendor_analytics(store: EventStore, vendor_id: str) -> VendorAnalytics:
    """Build the analytics summary for a vendor's events."""
    status_counts = store.count_by_status(vendor_id)
    active = sum(status_counts.values())
    deleted = store.count_deleted(vendor_id)

    return VendorAnalytics(
        total_events=active + deleted,
        active_events=active,
        deleted_events=deleted,
        status_counts={status.value: count for status, count in status_counts.items()},
        **summarize_durations(store.completed_for_vendor(vendor_id)),
    )
