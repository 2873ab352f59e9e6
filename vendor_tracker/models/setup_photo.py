"""Setup photo model for event setup documentation.

Vendors document an event's setup with photos taken before ("pre") and
after ("post") the setup work. Uploading post-setup photos is what moves an
event into progress and unlocks the closing OTP.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from vendor_tracker.models.event import Event


class SetupPhoto(SQLModel, table=True):
    """A photo documenting event setup.

    Attributes:
        id: Unique identifier (UUID).
        event_id: Foreign key to the parent Event.
        kind: Either "pre" (before setup) or "post" (after setup).
        url: Durable URL returned by the image store.
        public_id: Image store identifier, kept for later management.
        position: Order of the photo within its event, across both kinds.
        uploaded_at: When the upload request was applied.
        event: Reference to the parent Event object.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="event.id", index=True)
    kind: str  # "pre" or "post"
    url: str
    public_id: str
    position: int = Field(default=0)
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="photos")
