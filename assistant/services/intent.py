"""Keyword-based intent detection used to route turns.

This is a fast local heuristic, not a trained classifier. The first keyword in
list order that appears anywhere in the lower-cased message wins; there is no
confidence threshold. A learned classifier can replace ``classify`` as long as
it keeps the same signature.
"""

from enum import StrEnum

from assistant.utils.logging import get_logger

logger = get_logger(__name__)


class Intent(StrEnum):
    """Execution path for a turn."""

    CALENDAR = "calendar"
    QA = "qa"


CALENDAR_KEYWORDS: tuple[str, ...] = (
    # Action verbs
    "schedule", "reschedule", "cancel", "delete", "create", "add", "remove", "update", "modify", "move",
    # Calendar nouns
    "event", "meeting", "appointment", "reminder", "calendar",
    # Time references in calendar context
    "tomorrow", "next week", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    # Calendar queries
    "what's on", "what do i have", "am i free", "do i have", "show me",
    "when is", "when am i", "my schedule", "upcoming",
    # Common event types
    "dentist", "doctor", "gym", "dinner", "lunch", "breakfast", "call", "zoom", "meet",
)  # fmt: skip


def matched_keyword(message: str) -> str | None:
    """Return the first calendar keyword (in list order) found in the message."""
    lower_message = message.lower()
    for keyword in CALENDAR_KEYWORDS:
        if keyword in lower_message:
            return keyword
    return None


def classify(message: str) -> Intent:
    """Classify a user message as a calendar request or a general question."""
    keyword = matched_keyword(message)
    if keyword is not None:
        logger.debug(f"Detected calendar intent via keyword: {keyword!r}")
        return Intent.CALENDAR

    logger.debug("Detected Q&A intent (no calendar keywords)")
    return Intent.QA
