"""Conversation storage interface and in-memory implementation."""

from typing import Protocol

from cuid2 import cuid_wrapper

from assistant.models.conversation import Conversation, Message, utc_now

cuid = cuid_wrapper()

DEFAULT_MODEL = "claude-sonnet-4-20250514"
TITLE_MAX_LENGTH = 50


def generate_title(first_message: str) -> str:
    """Generate a conversation title from the first user message."""
    cleaned = first_message.strip().replace("\n", " ")
    if not cleaned:
        return "New conversation"
    return cleaned[:TITLE_MAX_LENGTH] + "..." if len(cleaned) > TITLE_MAX_LENGTH else cleaned


class ConversationStore(Protocol):
    """Interface for conversation persistence. Messages are append-only."""

    async def get(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by id.

        Args:
            conversation_id: Conversation identifier

        Returns:
            The conversation, or None if it does not exist
        """
        ...

    async def create(
        self,
        first_message: Message,
        user_id: str,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> Conversation:
        """Create a conversation whose history starts with ``first_message``."""
        ...

    async def append(self, conversation_id: str, messages: list[Message]) -> Conversation | None:
        """Append messages to a conversation.

        Returns:
            The updated conversation, or None if it does not exist
        """
        ...

    async def delete(self, conversation_id: str) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        ...


class InMemoryConversationStore:
    """In-memory conversation store for development and tests."""

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}

    async def get(self, conversation_id: str) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        # Hand out copies so callers cannot mutate stored history
        return conversation.model_copy(deep=True) if conversation else None

    async def create(
        self,
        first_message: Message,
        user_id: str,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> Conversation:
        now = utc_now()
        conversation = Conversation(
            id=cuid(),
            user_id=user_id,
            title=generate_title(first_message.text),
            messages=[first_message],
            model=model or DEFAULT_MODEL,
            system_prompt=system_prompt,
            created_at=now,
            updated_at=now,
        )
        self.conversations[conversation.id] = conversation
        return conversation.model_copy(deep=True)

    async def append(self, conversation_id: str, messages: list[Message]) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None

        conversation.messages.extend(messages)
        conversation.updated_at = utc_now()
        return conversation.model_copy(deep=True)

    async def delete(self, conversation_id: str) -> bool:
        return self.conversations.pop(conversation_id, None) is not None
