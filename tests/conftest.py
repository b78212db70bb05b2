"""Shared fixtures: a scripted agent model and app factory."""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi.testclient import TestClient

from assistant.config import Settings
from assistant.main import create_app
from assistant.models.llm import (
    LLMMessage,
    LLMToolDefinition,
    LLMUsage,
    StreamEvent,
    StreamMessageComplete,
    StreamTextDelta,
    TextBlock,
    ToolUseBlock,
)
from assistant.services.container import AppServices, build_services


def text_response(*chunks: str) -> list[StreamEvent]:
    """Script a final answer streamed as the given text chunks."""
    return [
        *(StreamTextDelta(text=chunk) for chunk in chunks),
        StreamMessageComplete(
            content=[TextBlock(text="".join(chunks))],
            stop_reason="end_turn",
            usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        ),
    ]


def tool_response(name: str, tool_input: dict[str, Any], tool_id: str = "toolu_1", text: str = "") -> list[StreamEvent]:
    """Script a response that calls one tool, optionally preceded by text."""
    content = [TextBlock(text=text)] if text else []
    content.append(ToolUseBlock(id=tool_id, name=name, input=tool_input))
    events: list[StreamEvent] = [StreamTextDelta(text=text)] if text else []
    events.append(
        StreamMessageComplete(
            content=content,
            stop_reason="tool_use",
            usage=LLMUsage(input_tokens=20, output_tokens=8, total_tokens=28),
        )
    )
    return events


@dataclass
class ModelCall:
    messages: list[LLMMessage]
    system_prompt: str
    tools: list[LLMToolDefinition] | None


@dataclass
class FakeAgentModel:
    """AgentModel that replays scripted responses, one per call."""

    responses: list[list[StreamEvent] | Exception]
    calls: list[ModelCall] = field(default_factory=list)

    async def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(ModelCall(messages=list(messages), system_prompt=system_prompt, tools=tools))
        if not self.responses:
            raise AssertionError("FakeAgentModel ran out of scripted responses")

        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        for event in response:
            yield event


@pytest.fixture
def settings() -> Settings:
    """Settings with short approval timings for tests."""
    return Settings(
        anthropic_api_key=None,
        approval_timeout_ms=200,
        approval_poll_interval_ms=20,
        approval_ttl_ms=60_000,
    )


@dataclass
class AppHarness:
    client: TestClient
    services: AppServices
    model: FakeAgentModel


@pytest.fixture
def make_app(settings):
    """Build a test client around a FakeAgentModel scripted with ``responses``."""

    def factory(*responses: list[StreamEvent] | Exception, user_id: str | None = "user-1") -> AppHarness:
        model = FakeAgentModel(responses=list(responses))
        services = build_services(settings, model=model)
        headers = {"X-User-Id": user_id} if user_id else {}
        client = TestClient(create_app(settings, services=services), headers=headers)
        return AppHarness(client=client, services=services, model=model)

    return factory
