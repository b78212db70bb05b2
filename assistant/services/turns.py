"""Streaming turn handlers for the calendar and QA paths.

A turn validates the request, records the user message, then runs the agent in
a background task whose callbacks push thread events onto a queue. The SSE
generator drains the queue, so the agent never writes to the response
directly. Event order per turn:

1. ``thread.created`` (new conversations only)
2. ``thread.item.added`` for the user message
3. ``thread.item.added`` for an empty assistant message shell
4. ``progress_update`` / tool call items / ``tool_approval_requested`` /
   ``thread.item.updated`` as the agent works
5. ``thread.item.done`` with the final assistant content
6. ``thread.item.added`` for ``end_of_turn``
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from cuid2 import cuid_wrapper
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from assistant.errors import InvalidRequestError, NotFoundError, UpstreamAgentError
from assistant.models.conversation import Conversation, Message, TextContent, TurnRequest
from assistant.models.thread import (
    AssistantMessageItem,
    ClientToolCallItem,
    EndOfTurnItem,
    ErrorEvent,
    ItemContentUpdate,
    OutputText,
    ProgressUpdateEvent,
    ThreadCreatedEvent,
    ThreadItemAddedEvent,
    ThreadItemDoneEvent,
    ThreadItemUpdatedEvent,
    ThreadStreamEvent,
)
from assistant.services.agent_runner import AgentCallbacks, AgentRunner
from assistant.services.approvals import ApprovalBroker
from assistant.services.conversation_store import ConversationStore
from assistant.services.prompts import build_enhanced_system_prompt
from assistant.services.protocol import conversation_to_thread, encode_sse, message_to_thread_item
from assistant.utils.logging import get_logger
from assistant.utils.redaction import redact_pii_from_object

logger = get_logger(__name__)

cuid = cuid_wrapper()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

DEFAULT_MAX_MESSAGE_CHARS = 4000


def parse_turn_request(body: Any) -> TurnRequest:
    """Validate a raw turn body, raising InvalidRequestError on malformed input."""
    try:
        return TurnRequest.model_validate(body)
    except ValidationError as e:
        errors = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in e.errors()]
        raise InvalidRequestError("Invalid request body", details=errors) from e


@dataclass
class PreparedTurn:
    """Conversation state captured before streaming starts."""

    conversation: Conversation
    user_message: Message
    is_new: bool
    system_prompt: str


class TurnService:
    """Runs one path (calendar or QA) and streams it as thread events."""

    def __init__(
        self,
        name: str,
        conversations: ConversationStore,
        runner: AgentRunner,
        approvals: ApprovalBroker | None = None,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
        progress_icon: str = "📅",
    ):
        """Initialize the turn service.

        Args:
            name: Path name used in logs
            conversations: Conversation store
            runner: Agent runner for this path
            approvals: Approval broker for tools that need consent, None if the
                path has no such tools
            max_message_chars: Longest accepted user message
            progress_icon: Icon shown on tool progress updates
        """
        self.name = name
        self.conversations = conversations
        self.runner = runner
        self.approvals = approvals
        self.max_message_chars = max_message_chars
        self.progress_icon = progress_icon
        self._tasks: set[asyncio.Task] = set()

    async def handle(self, user_id: str, body: Any) -> StreamingResponse:
        """Validate and prepare the turn, then return its SSE response.

        Raises:
            InvalidRequestError: Malformed, empty or oversized message
            NotFoundError: Unknown conversation, or one owned by another user
        """
        request = parse_turn_request(body)
        turn = await self.prepare_turn(user_id, request)

        logger.info(
            f"[{self.name}] Starting stream for conversation {turn.conversation.id} "
            f"(new: {turn.is_new}, messages: {len(turn.conversation.messages)})"
        )
        return StreamingResponse(
            self.stream_turn(user_id, turn),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def prepare_turn(self, user_id: str, request: TurnRequest) -> PreparedTurn:
        """Load or create the conversation and append the new user message."""
        if not request.message.strip():
            raise InvalidRequestError("Message is required")
        if len(request.message) > self.max_message_chars:
            raise InvalidRequestError(
                f"Message is too long. Maximum {self.max_message_chars} characters allowed.",
                max_chars=self.max_message_chars,
            )

        user_message = request.to_user_message()
        logger.info(
            f"[{self.name}] Request - conversation: {request.conversation_id or 'NEW'}, "
            f"message length: {len(request.message)}, images: {len(request.images or [])}"
        )

        if request.conversation_id:
            conversation = await self.conversations.get(request.conversation_id)
            if conversation is None or conversation.user_id != user_id:
                logger.warning(f"[{self.name}] Conversation not found: {request.conversation_id}")
                raise NotFoundError("Conversation not found")

            conversation = await self.conversations.append(conversation.id, [user_message])
            if conversation is None:
                raise NotFoundError("Conversation not found")
            is_new = False
        else:
            conversation = await self.conversations.create(
                user_message, user_id, model=request.model, system_prompt=request.system_prompt
            )
            logger.info(f"[{self.name}] New conversation created: {conversation.id}")
            is_new = True

        system_prompt = await build_enhanced_system_prompt(user_id, conversation.system_prompt)
        return PreparedTurn(
            conversation=conversation,
            user_message=user_message,
            is_new=is_new,
            system_prompt=system_prompt,
        )

    async def stream_turn(self, user_id: str, turn: PreparedTurn) -> AsyncIterator[str]:
        """Yield SSE frames for the turn until it completes or fails.

        Closing the generator (client disconnect) sets the turn's cancellation
        event so the agent stops at its next safe point.
        """
        queue: asyncio.Queue[ThreadStreamEvent | None] = asyncio.Queue()
        cancel_event = asyncio.Event()

        task = asyncio.create_task(self._run_turn(user_id, turn, queue.put_nowait, cancel_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield encode_sse(event)
        finally:
            if not task.done():
                logger.info(f"[{self.name}] Client disconnected, cancelling turn for {turn.conversation.id}")
            cancel_event.set()

    async def _run_turn(
        self,
        user_id: str,
        turn: PreparedTurn,
        emit: Callable[[ThreadStreamEvent], None],
        cancel_event: asyncio.Event,
    ) -> None:
        conversation = turn.conversation
        thread_id = conversation.id

        try:
            if turn.is_new:
                emit(ThreadCreatedEvent(thread=conversation_to_thread(conversation)))

            emit(ThreadItemAddedEvent(item=message_to_thread_item(turn.user_message, thread_id)))

            assistant_item = AssistantMessageItem(id=f"msg_{cuid()}", thread_id=thread_id)
            emit(ThreadItemAddedEvent(item=assistant_item))

            callbacks = self._build_callbacks(assistant_item, emit)
            await self.runner.run(
                user_id,
                turn.system_prompt,
                conversation.messages,
                callbacks,
                cancel_event=cancel_event,
            )
        except Exception as e:
            logger.error(f"[{self.name}] Stream setup error: {e}", exc_info=True)
            emit(ErrorEvent(message=str(e) or "Unknown error"))

    def _build_callbacks(
        self, assistant_item: AssistantMessageItem, emit: Callable[[ThreadStreamEvent], None]
    ) -> AgentCallbacks:
        thread_id = assistant_item.thread_id
        accumulated: list[str] = []

        def on_text(delta: str) -> None:
            accumulated.append(delta)
            emit(
                ThreadItemUpdatedEvent(
                    item_id=assistant_item.id,
                    update=ItemContentUpdate(content=[OutputText(text="".join(accumulated))]),
                )
            )

        def on_tool_use(name: str, tool_input: dict[str, Any]) -> None:
            redacted_input = redact_pii_from_object(tool_input)
            logger.info(f"[{self.name}] Tool execution: {name}, input: {redacted_input}")

            emit(ProgressUpdateEvent(icon=self.progress_icon, text=f"Executing {name}..."))
            emit(
                ThreadItemAddedEvent(
                    item=ClientToolCallItem(
                        id=f"tool_{cuid()}",
                        thread_id=thread_id,
                        call_id=f"call_{cuid()}",
                        name=name,
                        arguments=redacted_input,
                    )
                )
            )

        async def on_tool_approval(name: str, tool_input: dict[str, Any]) -> bool:
            return await self.approvals.request_approval(name, tool_input, emit)

        async def on_complete(final_text: str) -> None:
            text = final_text or "".join(accumulated)
            done_item = assistant_item.model_copy(update={"content": [OutputText(text=text)]})
            emit(ThreadItemDoneEvent(item=done_item))

            message = Message(id=assistant_item.id, role="assistant", content=[TextContent(text=text)])
            try:
                saved = await self.conversations.append(thread_id, [message])
            except Exception as e:
                logger.error(f"[{self.name}] Failed to save assistant message: {e}", exc_info=True)
                saved = None

            if saved is None:
                emit(ErrorEvent(message="Failed to save the assistant response"))
                return

            emit(ThreadItemAddedEvent(item=EndOfTurnItem(id=f"eot_{cuid()}", thread_id=thread_id)))
            logger.info(f"[{self.name}] Turn completed for conversation {thread_id}")

        async def on_error(error: UpstreamAgentError) -> None:
            logger.error(f"[{self.name}] Agent execution error: {error.message}")
            emit(ErrorEvent(message=error.message or "An error occurred while running the agent"))

        return AgentCallbacks(
            on_text=on_text,
            on_tool_use=on_tool_use,
            on_complete=on_complete,
            on_error=on_error,
            on_tool_approval=on_tool_approval if self.approvals is not None else None,
        )
