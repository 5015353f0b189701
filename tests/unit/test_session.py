"""Unit tests for Session.send against the mock provider."""

from contextlib import aclosing

import pytest

from ai_coder.errors import (
    MalformedToolCallError,
    ToolImplementationError,
    TransportError,
    UnknownToolError,
)
from ai_coder.events import TextEvent, ToolResultEvent
from ai_coder.message import Message, MessageRole
from ai_coder.session import Session
from ai_coder.streaming import StreamChunk, ToolCallFragment
from ai_coder.tools import ToolDefinition
from tests.conftest import (
    ECHO_TOOL,
    text_chunks,
    tool_call_chunks,
    usage_chunk,
)


def _echo(arguments):
    return arguments["value"]


def _tool(name):
    return ToolDefinition(name=name, description=f"The {name} tool.")


async def _collect(session, *texts):
    return [event async for event in session.send(*texts)]


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------

class TestTranscript:
    @pytest.mark.asyncio
    async def test_history_append_order(self, mock_provider):
        mock_provider.responses = [text_chunks("one"), text_chunks("two")]
        session = Session(mock_provider, "mock-model")

        session.add_system_messages("a")
        await _collect(session, "b")
        session.add_assistant_messages("c")
        await _collect(session, "d")

        assert session.history() == (
            Message.system("a"),
            Message.user("b"),
            Message.assistant("c"),
            Message.user("d"),
        )

    @pytest.mark.asyncio
    async def test_request_carries_serialised_transcript(self, mock_provider):
        mock_provider.responses = [text_chunks("ok")]
        session = Session(mock_provider, "mock-model")
        session.add_system_messages("sys")

        await _collect(session, "first", "second")

        call = mock_provider.call_log[0]
        assert call["model"] == "mock-model"
        assert call["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "first"},
            {"role": "user", "content": "second"},
        ]
        assert call["tools"] is None

    @pytest.mark.asyncio
    async def test_registered_tools_are_offered(self, mock_provider):
        mock_provider.responses = [text_chunks("ok")]
        session = Session(mock_provider, "mock-model")
        session.register_tool(ECHO_TOOL, _echo)

        await _collect(session, "hi")

        tools = mock_provider.call_log[0]["tools"]
        assert [t["function"]["name"] for t in tools] == ["echo"]

    @pytest.mark.asyncio
    async def test_nothing_happens_until_first_pull(self, mock_provider):
        session = Session(mock_provider, "mock-model")
        session.send("hello")

        assert session.history() == ()
        assert mock_provider.call_log == []

    def test_history_is_a_snapshot(self, mock_provider):
        session = Session(mock_provider, "mock-model")
        session.add_system_messages("a")
        history = session.history()
        session.add_system_messages("b")

        assert len(history) == 1
        assert history[0].role == MessageRole.SYSTEM


# ---------------------------------------------------------------------------
# Event sequence
# ---------------------------------------------------------------------------

class TestSend:
    @pytest.mark.asyncio
    async def test_text_deltas_stream_as_events(self, mock_provider):
        mock_provider.responses = [text_chunks("Hel", "lo", " world")]
        session = Session(mock_provider, "mock-model")

        events = await _collect(session, "hi")

        assert events == [
            TextEvent(text="Hel"), TextEvent(text="lo"), TextEvent(text=" world"),
        ]

    @pytest.mark.asyncio
    async def test_single_echo_call_yields_one_result(self, mock_provider):
        mock_provider.responses = [tool_call_chunks("echo", {"value": "hi"})]
        session = Session(mock_provider, "mock-model")
        session.register_tool(ECHO_TOOL, _echo)

        events = await _collect(session, "say hi")

        assert events == [ToolResultEvent(tool_name="echo", result="hi")]

    @pytest.mark.asyncio
    async def test_text_precedes_tool_results(self, mock_provider):
        chunks = (
            text_chunks("Thinking")
            + tool_call_chunks("echo", {"value": "x"})
            + text_chunks(" done")
        )
        mock_provider.responses = [chunks]
        session = Session(mock_provider, "mock-model")
        session.register_tool(ECHO_TOOL, _echo)

        events = await _collect(session, "go")

        assert events == [
            TextEvent(text="Thinking"),
            TextEvent(text=" done"),
            ToolResultEvent(tool_name="echo", result="x"),
        ]

    @pytest.mark.asyncio
    async def test_tools_run_after_stream_is_released(self, mock_provider):
        mock_provider.responses = [tool_call_chunks("probe", {})]
        session = Session(mock_provider, "mock-model")
        seen = []
        session.register_tool(_tool("probe"), lambda args: seen.append(mock_provider.releases))

        await _collect(session, "go")

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_dispatch_in_ascending_slot_order(self, mock_provider):
        chunks = (
            tool_call_chunks("c", {}, index=2)
            + tool_call_chunks("a", {}, index=0)
            + tool_call_chunks("b", {}, index=1)
        )
        mock_provider.responses = [chunks]
        session = Session(mock_provider, "mock-model")
        calls = []
        for name in "abc":
            session.register_tool(_tool(name), lambda args, n=name: calls.append(n) or n)

        events = await _collect(session, "go")

        assert calls == ["a", "b", "c"]
        assert [e.tool_name for e in events] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_interleaved_fragments_reassembled(self, mock_provider):
        mock_provider.responses = [[
            StreamChunk(tool_call_fragments=[
                ToolCallFragment(index=0, name="echo", arguments_delta='{"val'),
                ToolCallFragment(index=1, name="echo", arguments_delta='{"value"'),
            ]),
            StreamChunk(tool_call_fragments=[
                ToolCallFragment(index=1, arguments_delta=': "two"}'),
            ]),
            StreamChunk(tool_call_fragments=[
                ToolCallFragment(index=0, arguments_delta='ue": "one"}'),
            ]),
        ]]
        session = Session(mock_provider, "mock-model")
        session.register_tool(ECHO_TOOL, _echo)

        events = await _collect(session, "go")

        assert [e.result for e in events] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_async_tool_implementation(self, mock_provider):
        mock_provider.responses = [tool_call_chunks("echo", {"value": "later"})]
        session = Session(mock_provider, "mock-model")

        async def echo(arguments):
            return arguments["value"].upper()

        session.register_tool(ECHO_TOOL, echo)

        events = await _collect(session, "go")

        assert events == [ToolResultEvent(tool_name="echo", result="LATER")]

    @pytest.mark.asyncio
    async def test_empty_response_yields_nothing(self, mock_provider):
        mock_provider.responses = [[]]
        session = Session(mock_provider, "mock-model")

        assert await _collect(session, "hi") == []
        assert mock_provider.releases == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestSendFailures:
    @pytest.mark.asyncio
    async def test_malformed_arguments_stop_the_turn(self, mock_provider):
        chunks = (
            tool_call_chunks("echo", {"value": "ok"}, index=0)
            + tool_call_chunks("echo", '{"value": ', index=1)
        )
        mock_provider.responses = [chunks]
        session = Session(mock_provider, "mock-model")
        calls = []

        def echo(arguments):
            calls.append(arguments)
            return arguments["value"]

        session.register_tool(ECHO_TOOL, echo)

        events = []
        with pytest.raises(MalformedToolCallError) as exc_info:
            async for event in session.send("go"):
                events.append(event)

        assert events == [ToolResultEvent(tool_name="echo", result="ok")]
        assert exc_info.value.index == 1
        assert calls == [{"value": "ok"}]

    @pytest.mark.asyncio
    async def test_unknown_tool_keeps_earlier_events(self, mock_provider):
        chunks = (
            text_chunks("Sure")
            + tool_call_chunks("echo", {"value": "first"}, index=0)
            + tool_call_chunks("missing", {}, index=1)
        )
        mock_provider.responses = [chunks]
        session = Session(mock_provider, "mock-model")
        session.register_tool(ECHO_TOOL, _echo)

        events = []
        with pytest.raises(UnknownToolError, match="missing"):
            async for event in session.send("go"):
                events.append(event)

        assert events == [
            TextEvent(text="Sure"),
            ToolResultEvent(tool_name="echo", result="first"),
        ]

    @pytest.mark.asyncio
    async def test_tool_exception_is_wrapped(self, mock_provider):
        chunks = (
            tool_call_chunks("boom", {}, index=0)
            + tool_call_chunks("echo", {"value": "never"}, index=1)
        )
        mock_provider.responses = [chunks]
        session = Session(mock_provider, "mock-model")
        calls = []

        def boom(arguments):
            raise ValueError("bad input")

        session.register_tool(_tool("boom"), boom)
        session.register_tool(ECHO_TOOL, lambda args: calls.append(args))

        with pytest.raises(ToolImplementationError) as exc_info:
            await _collect(session, "go")

        assert exc_info.value.name == "boom"
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert calls == []

    @pytest.mark.asyncio
    async def test_stream_failure_raises_transport_error(self, mock_provider):
        mock_provider.responses = [text_chunks("partial") + [ConnectionError("reset")]]
        session = Session(mock_provider, "mock-model")

        events = []
        with pytest.raises(TransportError):
            async for event in session.send("go"):
                events.append(event)

        assert events == [TextEvent(text="partial")]
        assert mock_provider.releases == 1

    @pytest.mark.asyncio
    async def test_send_from_inside_a_tool_rejected(self, mock_provider):
        mock_provider.responses = [tool_call_chunks("nested", {})]
        session = Session(mock_provider, "mock-model")

        async def nested(arguments):
            async with aclosing(session.send("inner")) as inner:
                await inner.__anext__()

        session.register_tool(_tool("nested"), nested)

        with pytest.raises(ToolImplementationError) as exc_info:
            await _collect(session, "go")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "in progress" in str(exc_info.value.__cause__)
        assert len(mock_provider.call_log) == 1

    @pytest.mark.asyncio
    async def test_new_send_closes_suspended_turn(self, mock_provider):
        mock_provider.responses = [text_chunks("a", "b"), text_chunks("two")]
        session = Session(mock_provider, "mock-model")

        async with aclosing(session.send("one")) as first:
            assert await first.__anext__() == TextEvent(text="a")
            assert await _collect(session, "two") == [TextEvent(text="two")]
            assert mock_provider.releases == 2
            with pytest.raises(StopAsyncIteration):
                await first.__anext__()

        assert mock_provider.releases == 2

    @pytest.mark.asyncio
    async def test_session_usable_after_failure(self, mock_provider):
        mock_provider.responses = [[ConnectionError("reset")], text_chunks("ok")]
        session = Session(mock_provider, "mock-model")

        with pytest.raises(TransportError):
            await _collect(session, "first")

        assert await _collect(session, "second") == [TextEvent(text="ok")]


# ---------------------------------------------------------------------------
# Early abandonment
# ---------------------------------------------------------------------------

class TestEarlyAbandonment:
    @pytest.mark.asyncio
    async def test_release_once_after_first_event(self, mock_provider):
        mock_provider.responses = [text_chunks("a", "b", "c", "d")]
        session = Session(mock_provider, "mock-model")

        async with aclosing(session.send("go")) as events:
            async for event in events:
                assert event == TextEvent(text="a")
                break

        assert mock_provider.releases == 1

    @pytest.mark.asyncio
    async def test_abandoned_turn_does_not_dispatch_tools(self, mock_provider):
        chunks = text_chunks("a", "b") + tool_call_chunks("echo", {"value": "x"})
        mock_provider.responses = [chunks, text_chunks("next")]
        session = Session(mock_provider, "mock-model")
        calls = []
        session.register_tool(ECHO_TOOL, lambda args: calls.append(args))

        async with aclosing(session.send("go")) as events:
            async for _ in events:
                break

        assert calls == []
        assert mock_provider.releases == 1
        assert await _collect(session, "again") == [TextEvent(text="next")]

    @pytest.mark.asyncio
    async def test_break_without_closing_then_send_again(self, mock_provider):
        mock_provider.responses = [text_chunks("a", "b", "c"), text_chunks("next")]
        session = Session(mock_provider, "mock-model")

        async for event in session.send("go"):
            break
        assert mock_provider.releases == 0

        events = []
        async for event in session.send("again"):
            assert mock_provider.releases == 1
            events.append(event)

        assert events == [TextEvent(text="next")]
        assert mock_provider.releases == 2
        assert session.history()[-1] == Message.user("again")

    @pytest.mark.asyncio
    async def test_consumer_exception_releases_stream(self, mock_provider):
        mock_provider.responses = [text_chunks("a", "b", "c")]
        session = Session(mock_provider, "mock-model")

        with pytest.raises(ValueError, match="consumer"):
            async with aclosing(session.send("go")) as events:
                async for event in events:
                    raise ValueError("consumer failed")

        assert mock_provider.releases == 1

    @pytest.mark.asyncio
    async def test_consumer_exception_without_closing(self, mock_provider):
        mock_provider.responses = [text_chunks("a", "b"), text_chunks("ok")]
        session = Session(mock_provider, "mock-model")

        with pytest.raises(ValueError):
            async for event in session.send("go"):
                raise ValueError("consumer failed")

        assert await _collect(session, "again") == [TextEvent(text="ok")]
        assert mock_provider.releases == 2


# ---------------------------------------------------------------------------
# Usage accounting
# ---------------------------------------------------------------------------

class TestUsage:
    @pytest.mark.asyncio
    async def test_usage_recorded_per_turn(self, mock_provider):
        mock_provider.responses = [
            text_chunks("a") + [usage_chunk(10, 5)],
            text_chunks("b") + [usage_chunk(20, 7)],
        ]
        session = Session(mock_provider, "mock-model")

        await _collect(session, "one")
        await _collect(session, "two")

        assert session.usage.requests == 2
        assert session.usage.prompt_tokens == 30
        assert session.usage.completion_tokens == 12
