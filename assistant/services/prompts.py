"""System prompt construction."""

from datetime import datetime
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/New_York"

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant with access to the user's calendar.

You can help with:
- Viewing upcoming events and schedule
- Creating new calendar events
- Updating existing events
- Deleting events

When working with calendars:
- Always look up an event with get_calendar_events before changing it
- Confirm details before making changes
- Deleting an event requires the user's explicit approval in the app; if they decline, tell them the event was kept"""


async def build_enhanced_system_prompt(
    user_id: str,
    base_prompt: str | None = None,
    now: datetime | None = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> str:
    """Add current date and time context to a base system prompt.

    Args:
        user_id: User the prompt is built for
        base_prompt: Conversation-specific prompt, defaults to DEFAULT_SYSTEM_PROMPT
        now: Reference time, defaults to the current time
        timezone: IANA timezone used to render the date

    Returns:
        System prompt string
    """
    current = (now or datetime.now(ZoneInfo(timezone))).astimezone(ZoneInfo(timezone))
    date_string = current.strftime("%A, %B %d, %Y")
    time_string = current.strftime("%I:%M %p %Z").lstrip("0")

    prompt = base_prompt or DEFAULT_SYSTEM_PROMPT
    prompt += "\n\n## Current Date & Time\n"
    prompt += f"Today is {date_string} at {time_string}.\n"
    prompt += (
        'Use this information when the user mentions relative dates like "today", "tomorrow", '
        '"next Monday", "last week", etc.'
    )
    prompt += f"\n\nAll calendar data shown to you belongs to user {user_id}."

    return prompt
