"""Mapping between stored conversations and the thread wire protocol."""

import json
import re
from typing import Any

from pydantic import TypeAdapter, ValidationError

from assistant.models.conversation import Conversation, ImageContent, ImageSource, Message, TextContent
from assistant.models.thread import (
    STREAM_EVENT_TYPES,
    AssistantMessageItem,
    ImageAttachmentItem,
    InputText,
    OutputText,
    Thread,
    ThreadItemsPage,
    ThreadStreamEvent,
    UserMessageItem,
)
from assistant.utils.logging import get_logger

logger = get_logger(__name__)

_stream_event_adapter: TypeAdapter[ThreadStreamEvent] = TypeAdapter(ThreadStreamEvent)

DATA_URL_PATTERN = re.compile(r"^data:(?P<media_type>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)

IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def conversation_to_thread(conversation: Conversation) -> Thread:
    """Project a conversation onto the wire as a thread with all of its items."""
    return Thread(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        metadata={"model": conversation.model, "message_count": len(conversation.messages)},
        items=ThreadItemsPage(
            data=[message_to_thread_item(message, conversation.id) for message in conversation.messages],
        ),
    )


def message_to_thread_item(message: Message, thread_id: str) -> UserMessageItem | AssistantMessageItem:
    """Convert a stored message into a user or assistant thread item.

    Image blocks become attachments whose ids are derived from the message id
    and the image's index, so they are never shared across messages.
    """
    texts = [block.text for block in message.content if isinstance(block, TextContent)]

    if message.role == "user":
        images = [block for block in message.content if isinstance(block, ImageContent)]
        return UserMessageItem(
            id=message.id,
            thread_id=thread_id,
            created_at=message.timestamp,
            content=[InputText(text=text) for text in texts],
            attachments=[
                ImageAttachmentItem(
                    id=f"img-{message.id}-{index}",
                    name=f"image-{index}.{IMAGE_EXTENSIONS.get(image.source.media_type, 'bin')}",
                    mime_type=image.source.media_type,
                    url=f"data:{image.source.media_type};base64,{image.source.data}",
                )
                for index, image in enumerate(images)
            ],
        )

    return AssistantMessageItem(
        id=message.id,
        thread_id=thread_id,
        created_at=message.timestamp,
        content=[OutputText(text=text) for text in texts],
    )


def thread_item_to_message(item: UserMessageItem | AssistantMessageItem) -> Message:
    """Rebuild a stored message from a user or assistant thread item.

    Text blocks come first, followed by image attachments in order.
    """
    if isinstance(item, AssistantMessageItem):
        return Message(
            id=item.id,
            role="assistant",
            content=[TextContent(text=part.text) for part in item.content],
            timestamp=item.created_at,
        )

    content: list[TextContent | ImageContent] = [TextContent(text=part.text) for part in item.content]
    for attachment in item.attachments:
        match = DATA_URL_PATTERN.match(attachment.url)
        if match is None:
            raise ValueError(f"Attachment {attachment.id} is not a base64 data URL")
        content.append(
            ImageContent(source=ImageSource(media_type=match.group("media_type"), data=match.group("data")))
        )

    return Message(id=item.id, role="user", content=content, timestamp=item.created_at)


def encode_sse(event: ThreadStreamEvent) -> str:
    """Serialize one event as a single SSE frame."""
    return f"data: {event.model_dump_json()}\n\n"


def parse_stream_event(payload: str | dict[str, Any]) -> ThreadStreamEvent | None:
    """Parse a frame payload, returning None for event types this client does not know."""
    data = json.loads(payload) if isinstance(payload, str) else payload
    if data.get("type") not in STREAM_EVENT_TYPES:
        logger.debug(f"Ignoring unknown stream event type: {data.get('type')}")
        return None

    try:
        return _stream_event_adapter.validate_python(data)
    except ValidationError as e:
        logger.warning(f"Malformed {data.get('type')} event: {e}")
        return None


def decode_sse(body: str) -> list[ThreadStreamEvent]:
    """Split an SSE body into frames and parse each known event."""
    events = []
    for frame in body.split("\n\n"):
        frame = frame.strip()
        if not frame.startswith("data:"):
            continue
        event = parse_stream_event(frame[len("data:") :].strip())
        if event is not None:
            events.append(event)
    return events
