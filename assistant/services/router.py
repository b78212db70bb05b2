"""Routes a turn to the calendar or QA path based on message intent."""

from typing import Any

from fastapi.responses import StreamingResponse

from assistant.errors import InvalidRequestError
from assistant.services.intent import Intent, classify, matched_keyword
from assistant.services.turns import TurnService, parse_turn_request
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


class TurnRouter:
    """Classifies a turn and hands the original body to the selected path."""

    def __init__(self, calendar: TurnService, qa: TurnService):
        self.handlers: dict[Intent, TurnService] = {
            Intent.CALENDAR: calendar,
            Intent.QA: qa,
        }

    async def route(self, user_id: str, body: Any) -> StreamingResponse:
        """Forward a turn to its path and return that path's response unchanged.

        Args:
            user_id: Authenticated caller
            body: Raw JSON request body

        Returns:
            The selected path's streaming response

        Raises:
            InvalidRequestError: Malformed body or empty message
        """
        request = parse_turn_request(body)
        if not request.message.strip():
            raise InvalidRequestError("Message is required")

        intent = classify(request.message)
        logger.info(
            f"Routing turn for user {user_id} to {intent} path "
            f"(keyword: {matched_keyword(request.message)!r}, conversation: {request.conversation_id or 'NEW'})"
        )
        return await self.handlers[intent].handle(user_id, body)
