"""API endpoints for the assistant service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from assistant import __version__
from assistant.api.dependencies import JsonBody, Services, UserId
from assistant.errors import InvalidRequestError, NotFoundError
from assistant.models.conversation import (
    ApprovalDecisionRequest,
    ApprovalStatusResponse,
    HealthResponse,
    SuccessResponse,
)
from assistant.models.thread import ThreadResponse
from assistant.services.protocol import conversation_to_thread
from assistant.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/turn", response_class=StreamingResponse, tags=["Turns"])
async def handle_turn(user_id: UserId, body: JsonBody, services: Services) -> StreamingResponse:
    """Classify a user message and stream the selected path's response.

    The response is the calendar or QA path's SSE stream, passed through unchanged.
    """
    return await services.router().route(user_id, body)


@router.post("/runs/calendar", response_class=StreamingResponse, tags=["Turns"])
async def run_calendar(user_id: UserId, body: JsonBody, services: Services) -> StreamingResponse:
    """Run the calendar agent, with tools and approval prompts, as an SSE stream."""
    return await services.calendar_turns().handle(user_id, body)


@router.post("/runs/qa", response_class=StreamingResponse, tags=["Turns"])
async def run_qa(user_id: UserId, body: JsonBody, services: Services) -> StreamingResponse:
    """Answer a general question without tools as an SSE stream."""
    return await services.qa_turns().handle(user_id, body)


@router.get("/approvals", response_model=ApprovalStatusResponse, tags=["Approvals"])
async def get_approval(
    user_id: UserId,
    services: Services,
    approval_id: str | None = Query(default=None),
) -> ApprovalStatusResponse:
    """Return the stored decision for an approval, or null while it is pending."""
    if not approval_id:
        raise InvalidRequestError("approval_id is required")

    approved = await services.approval_store.get(approval_id)
    return ApprovalStatusResponse(approved=approved)


@router.post("/approvals", response_model=SuccessResponse, tags=["Approvals"])
async def post_approval(decision: ApprovalDecisionRequest, user_id: UserId, services: Services) -> SuccessResponse:
    """Record the user's decision for a pending tool approval."""
    await services.approval_store.set(decision.approval_id, decision.approved)

    logger.info(f"Approval decision stored by {user_id}: {decision.approval_id} -> {decision.approved}")
    return SuccessResponse()


@router.get("/threads/{thread_id}", response_model=ThreadResponse, tags=["Threads"])
async def get_thread(thread_id: str, user_id: UserId, services: Services) -> ThreadResponse:
    """Return a conversation with all of its items."""
    conversation = await services.conversations.get(thread_id)
    if conversation is None or conversation.user_id != user_id:
        raise NotFoundError("Thread not found")

    return ThreadResponse(thread=conversation_to_thread(conversation))


@router.delete("/threads/{thread_id}", response_model=SuccessResponse, tags=["Threads"])
async def delete_thread(thread_id: str, user_id: UserId, services: Services) -> SuccessResponse:
    """Delete a conversation owned by the caller."""
    conversation = await services.conversations.get(thread_id)
    if conversation is None or conversation.user_id != user_id:
        raise NotFoundError("Thread not found")

    await services.conversations.delete(thread_id)
    logger.info(f"Deleted thread {thread_id} for user {user_id}")
    return SuccessResponse()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
