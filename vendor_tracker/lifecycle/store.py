"""Event persistence for the lifecycle engine.

The engine only talks to the database through EventStore so that every
transition is one read followed by one committed write.
"""
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from vendor_tracker.models import Event, EventStatus


class DeletedFilter(str, Enum):
    """How soft-deleted events are treated in vendor listings."""

    EXCLUDE = "exclude"
    INCLUDE = "include"
    ONLY = "only"


class EventStore:
    """SQLModel-backed store for Event records."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, event_id: UUID) -> Event | None:
        """Return an event by ID, or None if not found."""
        return self._session.get(Event, event_id)

    def find_by_vendor(
        self, vendor_id: str, deleted: DeletedFilter = DeletedFilter.EXCLUDE
    ) -> list[Event]:
        """Return a vendor's events, newest first."""
        statement = select(Event).where(Event.vendor_id == vendor_id)
        if deleted == DeletedFilter.EXCLUDE:
            statement = statement.where(Event.is_deleted == False)  # noqa: E712
        elif deleted == DeletedFilter.ONLY:
            statement = statement.where(Event.is_deleted == True)  # noqa: E712
        statement = statement.order_by(Event.created_at.desc())
        return list(self._session.exec(statement).all())

    def save(self, event: Event) -> Event:
        """Persist the event and its photos in a single commit."""
        event.updated_at = datetime.now(UTC)
        self._session.add(event)
        self._session.commit()
        self._session.refresh(event)
        return event

    def count_by_status(self, vendor_id: str) -> dict[EventStatus, int]:
        """Count a vendor's active events per status, with every status present."""
        statement = (
            select(Event.status, func.count())
            .where(Event.vendor_id == vendor_id)
            .where(Event.is_deleted == False)  # noqa: E712
            .group_by(Event.status)
        )
        counts = {status: 0 for status in EventStatus}
        for status, count in self._session.exec(statement).all():
            counts[EventStatus(status)] = count
        return counts

    def count_deleted(self, vendor_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(Event)
            .where(Event.vendor_id == vendor_id)
            .where(Event.is_deleted == True)  # noqa: E712
        )
        return self._session.exec(statement).one()

    def completed_for_vendor(self, vendor_id: str) -> list[Event]:
        """Return a vendor's active completed events."""
        statement = (
            select(Event)
            .where(Event.vendor_id == vendor_id)
            .where(Event.is_deleted == False)  # noqa: E712
            .where(Event.status == EventStatus.COMPLETED)
        )
        return list(self._session.exec(statement).all())
