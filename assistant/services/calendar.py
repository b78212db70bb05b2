"""Calendar service interface and implementations."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol

from cuid2 import cuid_wrapper

from assistant.services.mutex import MutationSerializer
from assistant.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


@dataclass
class CalendarEvent:
    """Calendar event data model."""

    id: str
    user_id: str
    summary: str
    start: datetime
    end: datetime
    location: str | None = None
    description: str | None = None
    attendees: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "summary": self.summary,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "location": self.location,
            "description": self.description,
            "attendees": list(self.attendees),
        }


class CalendarService(Protocol):
    """Interface for calendar access. Every mutation must be serialized per user."""

    async def list_events(
        self, user_id: str, time_min: datetime | None = None, time_max: datetime | None = None
    ) -> list[CalendarEvent]:
        """List a user's events ordered by start time.

        Args:
            user_id: Owner of the calendar
            time_min: Only include events ending after this time
            time_max: Only include events starting before this time

        Returns:
            Matching events
        """
        ...

    async def create_event(
        self,
        user_id: str,
        summary: str,
        start: datetime,
        end: datetime,
        location: str | None = None,
        description: str | None = None,
        attendees: list[str] | None = None,
    ) -> CalendarEvent:
        """Create an event and return it."""
        ...

    async def update_event(self, user_id: str, event_id: str, **changes: Any) -> CalendarEvent | None:
        """Apply field changes to an event. Returns None if the event does not exist."""
        ...

    async def delete_event(self, user_id: str, event_id: str) -> bool:
        """Delete an event. Returns False if the event does not exist."""
        ...


class InMemoryCalendarService:
    """In-memory calendar service

    Events are kept per user in memory. Writes are queued through the mutation
    serializer so that concurrent callers see them applied one at a time.
    """

    def __init__(self, serializer: MutationSerializer, events: list[CalendarEvent] | None = None):
        self.serializer = serializer
        self.events: dict[str, CalendarEvent] = {event.id: event for event in events or []}

    async def list_events(
        self, user_id: str, time_min: datetime | None = None, time_max: datetime | None = None
    ) -> list[CalendarEvent]:
        events = [
            event
            for event in self.events.values()
            if event.user_id == user_id
            and (time_min is None or event.end > time_min)
            and (time_max is None or event.start < time_max)
        ]
        return sorted(events, key=lambda event: event.start)

    async def create_event(
        self,
        user_id: str,
        summary: str,
        start: datetime,
        end: datetime,
        location: str | None = None,
        description: str | None = None,
        attendees: list[str] | None = None,
    ) -> CalendarEvent:
        if end <= start:
            raise ValueError("Event end must be after its start")

        async def create() -> CalendarEvent:
            event = CalendarEvent(
                id=f"evt_{cuid()}",
                user_id=user_id,
                summary=summary,
                start=start,
                end=end,
                location=location,
                description=description,
                attendees=list(attendees or []),
            )
            self.events[event.id] = event
            logger.info(f"Created event {event.id} for user {user_id}")
            return event

        return await self.serializer.run(user_id, create)

    async def update_event(self, user_id: str, event_id: str, **changes: Any) -> CalendarEvent | None:
        async def update() -> CalendarEvent | None:
            event = self._find_event(user_id, event_id)
            if event is None:
                return None

            updated = replace(event, **{key: value for key, value in changes.items() if value is not None})
            if updated.end <= updated.start:
                raise ValueError("Event end must be after its start")

            self.events[event_id] = updated
            logger.info(f"Updated event {event_id} for user {user_id}: {sorted(changes)}")
            return updated

        return await self.serializer.run(user_id, update)

    async def delete_event(self, user_id: str, event_id: str) -> bool:
        async def delete() -> bool:
            if self._find_event(user_id, event_id) is None:
                return False
            del self.events[event_id]
            logger.info(f"Deleted event {event_id} for user {user_id}")
            return True

        return await self.serializer.run(user_id, delete)

    def _find_event(self, user_id: str, event_id: str) -> CalendarEvent | None:
        """Find a specific event owned by the user."""
        event = self.events.get(event_id)
        if event is None or event.user_id != user_id:
            return None
        return event
