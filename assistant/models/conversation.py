"""Conversation, message and request/response models."""

from datetime import UTC, datetime
from typing import Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, ConfigDict, Field, StrictBool

cuid = cuid_wrapper()

ImageMediaType = Literal["image/jpeg", "image/png", "image/gif", "image/webp"]


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


class TextContent(BaseModel):
    """Text content block of a stored message."""

    type: Literal["text"] = "text"
    text: str


class ImageSource(BaseModel):
    """Inline base64 image payload."""

    type: Literal["base64"] = "base64"
    media_type: ImageMediaType
    data: str


class ImageContent(BaseModel):
    """Image content block of a stored message."""

    type: Literal["image"] = "image"
    source: ImageSource


MessageContent = TextContent | ImageContent


class Message(BaseModel):
    """A single message in a conversation. Never mutated once appended."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=cuid)
    role: Literal["user", "assistant"]
    content: list[MessageContent]
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return " ".join(block.text for block in self.content if isinstance(block, TextContent))


class Conversation(BaseModel):
    """A stored conversation owned by one user."""

    id: str
    user_id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    model: str
    system_prompt: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ImageAttachment(BaseModel):
    """Image uploaded alongside a turn request."""

    model_config = ConfigDict(populate_by_name=True)

    data: str
    media_type: ImageMediaType = Field(alias="mediaType")


class TurnRequest(BaseModel):
    """Request body for /turn and the /runs/* endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    images: list[ImageAttachment] | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    model: str | None = None
    system_prompt: str | None = Field(default=None, alias="systemPrompt")

    def to_user_message(self) -> Message:
        """Build the user message for this turn."""
        content: list[MessageContent] = [TextContent(text=self.message)]
        for image in self.images or []:
            content.append(ImageContent(source=ImageSource(media_type=image.media_type, data=image.data)))
        return Message(role="user", content=content)


class ApprovalDecisionRequest(BaseModel):
    """Request body for POST /approvals."""

    approval_id: str = Field(..., min_length=1)
    approved: StrictBool


class ApprovalStatusResponse(BaseModel):
    """Response body for GET /approvals."""

    approved: bool | None


class SuccessResponse(BaseModel):
    """Generic acknowledgement body."""

    success: bool = True


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
