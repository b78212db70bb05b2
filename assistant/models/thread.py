"""Wire types for the thread streaming protocol.

Every SSE frame carries exactly one ``ThreadStreamEvent``, discriminated by its
``type`` field. Items inside a thread are ``ThreadItem`` values, also
discriminated by ``type``.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from assistant.models.conversation import utc_now


class InputText(BaseModel):
    """User-authored text."""

    type: Literal["input_text"] = "input_text"
    text: str


class OutputText(BaseModel):
    """Assistant-authored text."""

    type: Literal["output_text"] = "output_text"
    text: str
    annotations: list[Any] = Field(default_factory=list)


class ImageAttachmentItem(BaseModel):
    """Image attached to a user message, inlined as a data URL."""

    type: Literal["image"] = "image"
    id: str
    name: str
    mime_type: str
    url: str


class ThreadItemBase(BaseModel):
    """Fields shared by every thread item."""

    id: str
    thread_id: str
    created_at: datetime = Field(default_factory=utc_now)


class UserMessageItem(ThreadItemBase):
    type: Literal["user_message"] = "user_message"
    content: list[InputText] = Field(default_factory=list)
    attachments: list[ImageAttachmentItem] = Field(default_factory=list)
    quoted_text: str | None = None


class AssistantMessageItem(ThreadItemBase):
    type: Literal["assistant_message"] = "assistant_message"
    content: list[OutputText] = Field(default_factory=list)


class ClientToolCallItem(ThreadItemBase):
    type: Literal["client_tool_call"] = "client_tool_call"
    status: Literal["pending", "completed"] = "pending"
    call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    output: Any | None = None


class EndOfTurnItem(ThreadItemBase):
    type: Literal["end_of_turn"] = "end_of_turn"


ThreadItem = Annotated[
    UserMessageItem | AssistantMessageItem | ClientToolCallItem | EndOfTurnItem,
    Field(discriminator="type"),
]


class ThreadStatus(BaseModel):
    type: Literal["active", "locked", "closed"] = "active"
    reason: str | None = None


class ThreadItemsPage(BaseModel):
    data: list[ThreadItem] = Field(default_factory=list)
    has_more: bool = False
    after: str | None = None


class Thread(BaseModel):
    """Wire projection of a conversation."""

    id: str
    title: str | None
    created_at: datetime
    status: ThreadStatus = Field(default_factory=ThreadStatus)
    metadata: dict[str, Any] = Field(default_factory=dict)
    items: ThreadItemsPage = Field(default_factory=ThreadItemsPage)


class ThreadCreatedEvent(BaseModel):
    type: Literal["thread.created"] = "thread.created"
    thread: Thread


class ThreadItemAddedEvent(BaseModel):
    type: Literal["thread.item.added"] = "thread.item.added"
    item: ThreadItem


class ItemContentUpdate(BaseModel):
    """Wholesale replacement of an assistant item's content."""

    content: list[OutputText]


class ThreadItemUpdatedEvent(BaseModel):
    type: Literal["thread.item.updated"] = "thread.item.updated"
    item_id: str
    update: ItemContentUpdate


class ThreadItemDoneEvent(BaseModel):
    type: Literal["thread.item.done"] = "thread.item.done"
    item: ThreadItem


class ProgressUpdateEvent(BaseModel):
    type: Literal["progress_update"] = "progress_update"
    icon: str | None = None
    text: str


class ToolApprovalRequestedEvent(BaseModel):
    type: Literal["tool_approval_requested"] = "tool_approval_requested"
    approval_id: str
    tool_name: str
    tool_arguments: dict[str, Any] = Field(default_factory=dict)
    timeout_ms: int


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    code: str = "custom"
    message: str | None = None
    allow_retry: bool = True


ThreadStreamEvent = Annotated[
    ThreadCreatedEvent
    | ThreadItemAddedEvent
    | ThreadItemUpdatedEvent
    | ThreadItemDoneEvent
    | ProgressUpdateEvent
    | ToolApprovalRequestedEvent
    | ErrorEvent,
    Field(discriminator="type"),
]

STREAM_EVENT_TYPES = frozenset(
    {
        "thread.created",
        "thread.item.added",
        "thread.item.updated",
        "thread.item.done",
        "progress_update",
        "tool_approval_requested",
        "error",
    }
)


class ThreadResponse(BaseModel):
    """Response body for GET /threads/{thread_id}."""

    thread: Thread
