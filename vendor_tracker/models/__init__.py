from vendor_tracker.models.event import Event, EventStatus
from vendor_tracker.models.setup_photo import SetupPhoto

__all__ = ["Event", "EventStatus", "SetupPhoto"]
