"""Calendar event tools: list, create, update and delete."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from assistant.services.calendar import CalendarEvent, CalendarService
from assistant.tools.base import ToolDefinition


class GetEventsInput(BaseModel):
    """Input schema for listing calendar events."""

    time_min: datetime | None = Field(
        default=None,
        description="Only return events that end after this ISO 8601 timestamp",
        examples=["2025-03-01T00:00:00-05:00"],
    )
    time_max: datetime | None = Field(
        default=None,
        description="Only return events that start before this ISO 8601 timestamp",
        examples=["2025-03-08T00:00:00-05:00"],
    )


class CreateEventInput(BaseModel):
    """Input schema for creating a calendar event."""

    summary: str = Field(..., description="Event title", min_length=1, max_length=200)
    start: datetime = Field(..., description="Start time as an ISO 8601 timestamp with offset")
    end: datetime = Field(..., description="End time as an ISO 8601 timestamp with offset")
    location: str | None = Field(default=None, description="Where the event takes place")
    description: str | None = Field(default=None, description="Free-form notes")
    attendees: list[str] = Field(default_factory=list, description="Attendee email addresses")

    @model_validator(mode="after")
    def check_time_range(self) -> "CreateEventInput":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class UpdateEventInput(BaseModel):
    """Input schema for updating a calendar event. Omitted fields stay unchanged."""

    event_id: str = Field(..., description="The exact event ID from get_calendar_events", min_length=1)
    summary: str | None = Field(default=None, description="New event title", max_length=200)
    start: datetime | None = Field(default=None, description="New start time (ISO 8601)")
    end: datetime | None = Field(default=None, description="New end time (ISO 8601)")
    location: str | None = Field(default=None, description="New location")
    description: str | None = Field(default=None, description="New notes")


class DeleteEventInput(BaseModel):
    """Input schema for deleting a calendar event."""

    event_id: str = Field(..., description="The exact event ID from get_calendar_events", min_length=1)


def format_event(event: CalendarEvent) -> str:
    """Render one event for the model."""
    line = f"📅 **{event.id}** - {event.summary}\n"
    line += f"   When: {event.start.strftime('%A, %B %d, %Y at %I:%M %p')} - {event.end.strftime('%I:%M %p')}\n"
    if event.location:
        line += f"   Location: {event.location}\n"
    if event.attendees:
        line += f"   Attendees: {', '.join(event.attendees)}\n"
    return line


def create_get_events_tool(calendar_service: CalendarService) -> ToolDefinition:
    async def get_events_handler(params: GetEventsInput, user_id: str) -> str:
        events = await calendar_service.list_events(user_id, time_min=params.time_min, time_max=params.time_max)

        if not events:
            return "No calendar events found in that time range."

        result = "Here are the user's calendar events:\n\n"
        for event in events:
            result += format_event(event) + "\n"
        return result.strip()

    return ToolDefinition(
        name="get_calendar_events",
        description=(
            "List the user's calendar events in chronological order, optionally limited to a time range. "
            "Use this to look up event IDs before updating or deleting an event."
        ),
        input_schema_class=GetEventsInput,
        handler=get_events_handler,
    )


def create_create_event_tool(calendar_service: CalendarService) -> ToolDefinition:
    async def create_event_handler(params: CreateEventInput, user_id: str) -> str:
        event = await calendar_service.create_event(
            user_id,
            summary=params.summary,
            start=params.start,
            end=params.end,
            location=params.location,
            description=params.description,
            attendees=params.attendees,
        )
        return f"Created event {event.id}:\n{format_event(event)}".strip()

    return ToolDefinition(
        name="create_calendar_event",
        description="Create a new event on the user's calendar. Start and end must include a UTC offset.",
        input_schema_class=CreateEventInput,
        handler=create_event_handler,
    )


def create_update_event_tool(calendar_service: CalendarService) -> ToolDefinition:
    async def update_event_handler(params: UpdateEventInput, user_id: str) -> str:
        changes = params.model_dump(exclude={"event_id"}, exclude_none=True)
        if not changes:
            return "No changes were provided for the event."

        event = await calendar_service.update_event(user_id, params.event_id, **changes)
        if event is None:
            return f"Unable to update event {params.event_id}. It may not exist."

        return f"Updated event {event.id}:\n{format_event(event)}".strip()

    return ToolDefinition(
        name="update_calendar_event",
        description="Change the title, time, location or notes of an existing event by its ID.",
        input_schema_class=UpdateEventInput,
        handler=update_event_handler,
    )


def create_delete_event_tool(calendar_service: CalendarService) -> ToolDefinition:
    async def delete_event_handler(params: DeleteEventInput, user_id: str) -> str:
        deleted = await calendar_service.delete_event(user_id, params.event_id)
        if deleted:
            return f"Event {params.event_id} has been deleted."
        return f"Unable to delete event {params.event_id}. It may not exist."

    return ToolDefinition(
        name="delete_calendar_event",
        description=(
            "Permanently delete an event by its ID. The user is asked to approve this action in the app; "
            "if they decline, the event is kept."
        ),
        input_schema_class=DeleteEventInput,
        handler=delete_event_handler,
        requires_approval=True,
    )
