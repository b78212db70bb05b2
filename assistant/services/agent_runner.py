"""Streaming tool-calling agent loop with callbacks."""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from assistant.errors import UpstreamAgentError
from assistant.models.conversation import ImageContent, Message, TextContent
from assistant.models.llm import (
    AgentModel,
    ContentBlock,
    ImageBlock,
    ImageBlockSource,
    LLMMessage,
    LLMTool,
    LLMToolDefinition,
    LLMUsage,
    StreamMessageComplete,
    StreamTextDelta,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from assistant.tools.registry import ToolsRegistry
from assistant.utils.logging import get_logger
from assistant.utils.redaction import redact_pii_from_object

logger = get_logger(__name__)

DEFAULT_MAX_TURNS = 5


@dataclass
class AgentCallbacks:
    """Hooks the runner calls while a turn progresses.

    ``on_text`` and ``on_tool_use`` are synchronous and must not block.
    ``on_complete`` and ``on_error`` are terminal; exactly one of them is called
    unless the run is cancelled.
    """

    on_text: Callable[[str], None]
    on_tool_use: Callable[[str, dict[str, Any]], None]
    on_complete: Callable[[str], Awaitable[None]]
    on_error: Callable[[UpstreamAgentError], Awaitable[None]]
    on_tool_approval: Callable[[str, dict[str, Any]], Awaitable[bool]] | None = None


def to_llm_messages(history: list[Message], text_only: bool = False) -> list[LLMMessage]:
    """Convert stored conversation history into model messages.

    Args:
        history: Conversation messages, oldest first
        text_only: Drop image blocks and send plain text content

    Returns:
        Messages for the model, skipping any left with no content
    """
    messages = []
    for message in history:
        if text_only:
            text = message.text
            if text:
                messages.append(LLMMessage(role=message.role, content=text))
            continue

        blocks: list[ContentBlock] = []
        for block in message.content:
            if isinstance(block, TextContent):
                blocks.append(TextBlock(text=block.text))
            elif isinstance(block, ImageContent):
                blocks.append(
                    ImageBlock(
                        source=ImageBlockSource(media_type=block.source.media_type, data=block.source.data),
                    )
                )
        if blocks:
            messages.append(LLMMessage(role=message.role, content=blocks))
    return messages


class AgentRunner:
    """Runs the agent loop for one turn and reports progress through callbacks."""

    def __init__(
        self,
        model: AgentModel,
        registry: ToolsRegistry | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
        text_only: bool = False,
    ):
        """Initialize the runner.

        Args:
            model: Streaming model primitive
            registry: Tools offered to the model, None for a tool-less runner
            max_turns: Maximum model calls per run
            text_only: Send history as plain text (images dropped)
        """
        self.model = model
        self.registry = registry
        self.max_turns = max_turns
        self.text_only = text_only

    async def run(
        self,
        user_id: str,
        system_prompt: str,
        history: list[Message],
        callbacks: AgentCallbacks,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Execute the agent loop until the model stops calling tools.

        Args:
            user_id: User the tools act on behalf of
            system_prompt: System prompt for the model
            history: Conversation so far, including the new user message
            callbacks: Progress hooks
            cancel_event: When set, the loop stops at its next safe point without
                calling any further callbacks
        """
        tools = self.registry.get_llm_tools(user_id) if self.registry else {}
        tool_definitions = [
            LLMToolDefinition(name=tool.name, description=tool.description, input_schema=tool.input_schema)
            for tool in tools.values()
        ]
        messages = to_llm_messages(history, text_only=self.text_only)
        usage = LLMUsage()

        logger.info(
            f"Starting agent run for user {user_id} with {len(messages)} messages, {len(tools)} tools, "
            f"max_turns: {self.max_turns}"
        )

        try:
            final_text = None
            for turn in range(1, self.max_turns + 1):
                logger.debug(f"Agent loop turn {turn}/{self.max_turns}")

                response = None
                stream = self.model.stream_message(messages, system_prompt, tool_definitions or None)
                async with aclosing(stream):
                    async for event in stream:
                        if _is_cancelled(cancel_event):
                            logger.info(f"Agent run for user {user_id} cancelled during streaming")
                            return
                        if isinstance(event, StreamTextDelta):
                            callbacks.on_text(event.text)
                        elif isinstance(event, StreamMessageComplete):
                            response = event

                if response is None:
                    raise UpstreamAgentError("Agent stream ended without a final message")
                if response.usage:
                    usage.add(response.usage)

                tool_use_blocks = [block for block in response.content if isinstance(block, ToolUseBlock)]
                if response.stop_reason != "tool_use" or not tool_use_blocks:
                    final_text = "".join(block.text for block in response.content if isinstance(block, TextBlock))
                    logger.info(f"Agent run completed in {turn} turns")
                    break

                logger.info(f"Agent wants to use {len(tool_use_blocks)} tools")
                messages.append(LLMMessage(role="assistant", content=response.content))

                tool_results: list[ContentBlock] = []
                for block in tool_use_blocks:
                    if _is_cancelled(cancel_event):
                        logger.info(f"Agent run for user {user_id} cancelled before tool {block.name}")
                        return
                    result = await self._execute_tool(block, tools, callbacks, cancel_event)
                    if result is None:
                        return
                    tool_results.append(result)

                messages.append(LLMMessage(role="user", content=tool_results))
            else:
                logger.warning(f"Agent loop reached max turns ({self.max_turns})")
                raise UpstreamAgentError("Agent exceeded maximum conversation turns")

        except UpstreamAgentError as e:
            logger.error(f"Agent run failed: {e.message}")
            await callbacks.on_error(e)
            return
        except Exception as e:
            logger.error(f"Agent run failed: {e}", exc_info=True)
            await callbacks.on_error(UpstreamAgentError(str(e) or "An error occurred during the agent run"))
            return
        finally:
            logger.info(
                f"Agent usage - input: {usage.input_tokens}, output: {usage.output_tokens}, "
                f"cache hit rate: {usage.cache_hit_rate:.1f}%"
            )

        await callbacks.on_complete(final_text or "")

    async def _execute_tool(
        self,
        block: ToolUseBlock,
        tools: dict[str, LLMTool],
        callbacks: AgentCallbacks,
        cancel_event: asyncio.Event | None,
    ) -> ToolResultBlock | None:
        """Run one tool call, returning its result or None if the run was cancelled."""
        callbacks.on_tool_use(block.name, block.input)
        logger.debug(f"Executing tool: {block.name} with input: {redact_pii_from_object(block.input)}")

        tool = tools.get(block.name)
        if tool is None:
            logger.error(f"Unknown tool requested: {block.name}")
            return ToolResultBlock(tool_use_id=block.id, content=f"Error: Unknown tool {block.name}", is_error=True)

        if tool.requires_approval:
            approved = await self._request_approval(block, callbacks)
            if _is_cancelled(cancel_event):
                logger.info(f"Agent run cancelled while waiting for approval of {block.name}")
                return None
            if not approved:
                logger.info(f"Tool {block.name} was not approved")
                return ToolResultBlock(
                    tool_use_id=block.id,
                    content=f"Error: The user declined to approve {block.name}. The action was not performed.",
                    is_error=True,
                )

        try:
            result = await tool.callable(block.input)
            logger.debug(f"Tool {block.name} succeeded: {str(result)[:100]}...")
            return ToolResultBlock(tool_use_id=block.id, content=str(result), is_error=False)
        except Exception as e:
            logger.error(f"Tool {block.name} failed: {e}")
            return ToolResultBlock(tool_use_id=block.id, content=f"Error: {e!s}", is_error=True)

    async def _request_approval(self, block: ToolUseBlock, callbacks: AgentCallbacks) -> bool:
        if callbacks.on_tool_approval is None:
            logger.warning(f"No approval handler for {block.name}, rejecting")
            return False

        try:
            return await callbacks.on_tool_approval(block.name, block.input)
        except Exception as e:
            logger.error(f"Approval request for {block.name} failed: {e}")
            return False


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()
