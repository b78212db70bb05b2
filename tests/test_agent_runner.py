"""Tests for the agent runner callback contract."""

import asyncio

import pytest
from conftest import FakeAgentModel, text_response, tool_response

from assistant.errors import UpstreamAgentError
from assistant.models.conversation import ImageContent, ImageSource, Message, TextContent
from assistant.models.llm import (
    ImageBlock,
    LLMTool,
    StreamMessageComplete,
    StreamTextDelta,
    ToolResultBlock,
    ToolUseBlock,
)
from assistant.services.agent_runner import AgentCallbacks, AgentRunner, to_llm_messages


class Recorder:
    """Collects callback invocations in order."""

    def __init__(self, approve: bool | None = None):
        self.events: list[tuple] = []
        self.approve = approve

    def callbacks(self) -> AgentCallbacks:
        async def on_complete(final_text):
            self.events.append(("complete", final_text))

        async def on_error(error):
            self.events.append(("error", error))

        async def on_tool_approval(name, tool_input):
            self.events.append(("approval", name, tool_input))
            return self.approve

        return AgentCallbacks(
            on_text=lambda delta: self.events.append(("text", delta)),
            on_tool_use=lambda name, tool_input: self.events.append(("tool_use", name, tool_input)),
            on_complete=on_complete,
            on_error=on_error,
            on_tool_approval=on_tool_approval if self.approve is not None else None,
        )

    def of_kind(self, kind: str) -> list[tuple]:
        return [event for event in self.events if event[0] == kind]


class StubRegistry:
    """Registry double exposing a fixed set of tools."""

    def __init__(self, *tools: LLMTool):
        self.tools = {tool.name: tool for tool in tools}
        self.user_ids: list[str] = []

    def get_llm_tools(self, user_id):
        self.user_ids.append(user_id)
        return self.tools


def make_tool(name: str, result: str = "ok", requires_approval: bool = False, error: Exception | None = None):
    calls = []

    async def tool_callable(params):
        calls.append(params)
        if error is not None:
            raise error
        return result

    tool = LLMTool(
        name=name,
        description=f"{name} tool",
        input_schema={"type": "object", "properties": {}},
        callable=tool_callable,
        requires_approval=requires_approval,
    )
    return tool, calls


HISTORY = [Message(role="user", content=[TextContent(text="What's on my calendar today?")])]
RANGE_INPUT = {"time_min": "2025-03-01T00:00:00Z"}


class TestAgentRunnerText:
    """Tests for plain text runs."""

    @pytest.mark.asyncio
    async def test_text_deltas_in_order_then_complete(self):
        """Test that each fragment is reported in arrival order before completion."""
        model = FakeAgentModel(responses=[text_response("You have ", "two ", "meetings.")])
        recorder = Recorder()

        await AgentRunner(model).run("user-1", "system", HISTORY, recorder.callbacks())

        assert recorder.events == [
            ("text", "You have "),
            ("text", "two "),
            ("text", "meetings."),
            ("complete", "You have two meetings."),
        ]

    @pytest.mark.asyncio
    async def test_system_prompt_and_history_are_passed(self):
        """Test that the model receives the prompt and converted history."""
        model = FakeAgentModel(responses=[text_response("Hi")])

        await AgentRunner(model).run("user-1", "be helpful", HISTORY, Recorder().callbacks())

        [call] = model.calls
        assert call.system_prompt == "be helpful"
        assert call.tools is None
        assert call.messages[0].role == "user"
        assert call.messages[0].content[0].text == "What's on my calendar today?"

    @pytest.mark.asyncio
    async def test_final_text_is_last_response_only(self):
        """Test that on_complete receives the final model response's text."""
        tool, _ = make_tool("get_calendar_events")
        model = FakeAgentModel(
            responses=[
                tool_response("get_calendar_events", {}, text="Let me check. "),
                text_response("You are free."),
            ]
        )
        recorder = Recorder()

        await AgentRunner(model, StubRegistry(tool)).run("user-1", "system", HISTORY, recorder.callbacks())

        assert recorder.of_kind("text") == [("text", "Let me check. "), ("text", "You are free.")]
        assert recorder.events[-1] == ("complete", "You are free.")


class TestAgentRunnerTools:
    """Tests for tool execution."""

    @pytest.mark.asyncio
    async def test_tool_use_reported_before_execution(self):
        """Test that on_tool_use fires, the tool runs and its result goes back to the model."""
        tool, calls = make_tool("get_calendar_events", result="No events.")
        model = FakeAgentModel(
            responses=[tool_response("get_calendar_events", RANGE_INPUT), text_response("Done")]
        )
        registry = StubRegistry(tool)
        recorder = Recorder()

        await AgentRunner(model, registry).run("user-1", "system", HISTORY, recorder.callbacks())

        assert recorder.of_kind("tool_use") == [("tool_use", "get_calendar_events", RANGE_INPUT)]
        assert calls == [RANGE_INPUT]
        assert registry.user_ids == ["user-1"]

        second_call = model.calls[1]
        assert [tool.name for tool in model.calls[0].tools] == ["get_calendar_events"]
        assert second_call.messages[-2].role == "assistant"
        result = second_call.messages[-1].content[0]
        assert isinstance(result, ToolResultBlock)
        assert result.tool_use_id == "toolu_1"
        assert result.content == "No events."
        assert result.is_error is False

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_error_result(self):
        """Test that a tool the registry does not know becomes an error result."""
        model = FakeAgentModel(responses=[tool_response("send_email", {}), text_response("Sorry")])
        recorder = Recorder()

        await AgentRunner(model, StubRegistry()).run("user-1", "system", HISTORY, recorder.callbacks())

        result = model.calls[1].messages[-1].content[0]
        assert result.is_error is True
        assert "Unknown tool send_email" in result.content
        assert recorder.events[-1] == ("complete", "Sorry")

    @pytest.mark.asyncio
    async def test_tool_exception_returns_error_result(self):
        """Test that a failing tool is reported to the model and the loop continues."""
        tool, _ = make_tool("create_calendar_event", error=RuntimeError("quota exceeded"))
        model = FakeAgentModel(responses=[tool_response("create_calendar_event", {}), text_response("It failed")])
        recorder = Recorder()

        await AgentRunner(model, StubRegistry(tool)).run("user-1", "system", HISTORY, recorder.callbacks())

        result = model.calls[1].messages[-1].content[0]
        assert result.is_error is True
        assert result.content == "Error: quota exceeded"
        assert recorder.of_kind("error") == []


class TestAgentRunnerApproval:
    """Tests for tools that need the user's consent."""

    @pytest.mark.asyncio
    async def test_approved_tool_runs(self):
        """Test that an approved tool is executed."""
        tool, calls = make_tool("delete_calendar_event", result="Deleted", requires_approval=True)
        model = FakeAgentModel(
            responses=[tool_response("delete_calendar_event", {"event_id": "evt_1"}), text_response("Gone")]
        )
        recorder = Recorder(approve=True)

        await AgentRunner(model, StubRegistry(tool)).run("user-1", "system", HISTORY, recorder.callbacks())

        kinds = [event[0] for event in recorder.events]
        assert kinds.index("tool_use") < kinds.index("approval")
        assert calls == [{"event_id": "evt_1"}]
        assert model.calls[1].messages[-1].content[0].content == "Deleted"

    @pytest.mark.asyncio
    async def test_denied_tool_is_not_executed(self):
        """Test that a rejected tool never runs and the model is told the user declined."""
        tool, calls = make_tool("delete_calendar_event", requires_approval=True)
        model = FakeAgentModel(
            responses=[tool_response("delete_calendar_event", {"event_id": "evt_1"}), text_response("Kept it")]
        )
        recorder = Recorder(approve=False)

        await AgentRunner(model, StubRegistry(tool)).run("user-1", "system", HISTORY, recorder.callbacks())

        assert calls == []
        result = model.calls[1].messages[-1].content[0]
        assert result.is_error is True
        assert "declined" in result.content
        assert recorder.events[-1] == ("complete", "Kept it")

    @pytest.mark.asyncio
    async def test_missing_approval_callback_denies(self):
        """Test that a tool needing approval is refused when nobody can approve it."""
        tool, calls = make_tool("delete_calendar_event", requires_approval=True)
        model = FakeAgentModel(responses=[tool_response("delete_calendar_event", {}), text_response("Kept it")])

        await AgentRunner(model, StubRegistry(tool)).run("user-1", "system", HISTORY, Recorder().callbacks())

        assert calls == []
        assert model.calls[1].messages[-1].content[0].is_error is True

    @pytest.mark.asyncio
    async def test_failing_approval_callback_denies(self):
        """Test that an approval handler error counts as a rejection."""
        tool, calls = make_tool("delete_calendar_event", requires_approval=True)
        model = FakeAgentModel(responses=[tool_response("delete_calendar_event", {}), text_response("Kept it")])
        recorder = Recorder(approve=True)
        callbacks = recorder.callbacks()

        async def broken_approval(name, tool_input):
            raise ConnectionError("store unavailable")

        callbacks.on_tool_approval = broken_approval

        await AgentRunner(model, StubRegistry(tool)).run("user-1", "system", HISTORY, callbacks)

        assert calls == []
        assert recorder.events[-1] == ("complete", "Kept it")


class TestAgentRunnerErrors:
    """Tests for terminal failures."""

    @pytest.mark.asyncio
    async def test_model_failure_reports_error_once(self):
        """Test that a model exception becomes a single on_error call."""
        model = FakeAgentModel(responses=[RuntimeError("overloaded")])
        recorder = Recorder()

        await AgentRunner(model).run("user-1", "system", HISTORY, recorder.callbacks())

        [error_event] = recorder.of_kind("error")
        assert isinstance(error_event[1], UpstreamAgentError)
        assert error_event[1].message == "overloaded"
        assert recorder.of_kind("complete") == []

    @pytest.mark.asyncio
    async def test_max_turns_exceeded(self):
        """Test that a model that keeps calling tools is stopped."""
        tool, _ = make_tool("get_calendar_events")
        model = FakeAgentModel(
            responses=[tool_response("get_calendar_events", {}, tool_id=f"toolu_{i}") for i in range(2)]
        )
        recorder = Recorder()

        await AgentRunner(model, StubRegistry(tool), max_turns=2).run("user-1", "system", HISTORY, recorder.callbacks())

        [error_event] = recorder.of_kind("error")
        assert error_event[1].message == "Agent exceeded maximum conversation turns"
        assert recorder.of_kind("complete") == []

    @pytest.mark.asyncio
    async def test_stream_without_final_message(self):
        """Test that a stream ending without a final message is an error."""
        model = FakeAgentModel(responses=[[StreamTextDelta(text="partial")]])
        recorder = Recorder()

        await AgentRunner(model).run("user-1", "system", HISTORY, recorder.callbacks())

        assert recorder.events[0] == ("text", "partial")
        assert recorder.of_kind("error")[0][1].message == "Agent stream ended without a final message"


class TestAgentRunnerCancellation:
    """Tests for stopping a run after the client goes away."""

    @pytest.mark.asyncio
    async def test_cancel_during_streaming_stops_silently(self):
        """Test that setting the cancel event stops the run with no terminal callback."""
        cancel_event = asyncio.Event()
        model = FakeAgentModel(responses=[text_response("one ", "two ", "three")])
        recorder = Recorder()
        callbacks = recorder.callbacks()

        def on_text(delta):
            recorder.events.append(("text", delta))
            cancel_event.set()

        callbacks.on_text = on_text

        await AgentRunner(model).run("user-1", "system", HISTORY, callbacks, cancel_event=cancel_event)

        assert recorder.events == [("text", "one ")]

    @pytest.mark.asyncio
    async def test_cancel_before_next_tool(self):
        """Test that remaining tool calls are skipped once the turn is cancelled."""
        cancel_event = asyncio.Event()
        first, first_calls = make_tool("get_calendar_events")
        second, second_calls = make_tool("create_calendar_event")
        model = FakeAgentModel(
            responses=[
                [
                    StreamMessageComplete(
                        content=[
                            ToolUseBlock(id="toolu_1", name="get_calendar_events", input={}),
                            ToolUseBlock(id="toolu_2", name="create_calendar_event", input={}),
                        ],
                        stop_reason="tool_use",
                    )
                ]
            ]
        )
        recorder = Recorder()
        callbacks = recorder.callbacks()

        def on_tool_use(name, tool_input):
            recorder.events.append(("tool_use", name, tool_input))
            cancel_event.set()

        callbacks.on_tool_use = on_tool_use

        runner = AgentRunner(model, StubRegistry(first, second))
        await runner.run("user-1", "system", HISTORY, callbacks, cancel_event=cancel_event)

        assert first_calls == [{}]
        assert second_calls == []
        assert len(model.calls) == 1
        assert recorder.of_kind("complete") == []
        assert recorder.of_kind("error") == []

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_approval(self):
        """Test that a tool approved after the client left is not executed."""
        cancel_event = asyncio.Event()
        tool, calls = make_tool("delete_calendar_event", requires_approval=True)
        model = FakeAgentModel(responses=[tool_response("delete_calendar_event", {"event_id": "evt_1"})])
        recorder = Recorder(approve=True)
        callbacks = recorder.callbacks()

        async def approve_after_disconnect(name, tool_input):
            cancel_event.set()
            return True

        callbacks.on_tool_approval = approve_after_disconnect

        runner = AgentRunner(model, StubRegistry(tool))
        await runner.run("user-1", "system", HISTORY, callbacks, cancel_event=cancel_event)

        assert calls == []
        assert recorder.of_kind("complete") == []

class TestToLLMMessages:
    """Tests for history conversion."""

    def test_images_are_kept_by_default(self):
        """Test that image blocks are passed to tool-using runs."""
        history = [
            Message(
                role="user",
                content=[
                    TextContent(text="Add this flyer's event"),
                    ImageContent(source=ImageSource(media_type="image/jpeg", data="abc")),
                ],
            )
        ]

        [message] = to_llm_messages(history)

        assert isinstance(message.content[1], ImageBlock)
        assert message.content[1].source.media_type == "image/jpeg"

    def test_text_only_drops_images_and_empty_messages(self):
        """Test that the text-only history keeps plain text and skips image-only messages."""
        history = [
            Message(role="user", content=[ImageContent(source=ImageSource(media_type="image/png", data="abc"))]),
            Message(role="assistant", content=[TextContent(text="Nice picture")]),
        ]

        messages = to_llm_messages(history, text_only=True)

        assert [(message.role, message.content) for message in messages] == [("assistant", "Nice picture")]
