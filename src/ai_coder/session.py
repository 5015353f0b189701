import logging
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from typing import Any

from ai_coder.config import Settings
from ai_coder.errors import AICoderError, ToolImplementationError
from ai_coder.events import TextEvent, ToolResultEvent, TurnEvent
from ai_coder.instrumentation import (
    completion_span,
    record_error,
    record_usage,
    tool_span,
)
from ai_coder.message import Message
from ai_coder.provider import ModelProvider, OpenAIProvider
from ai_coder.streaming import ToolCallAccumulator
from ai_coder.tools import ToolDefinition, ToolRegistry
from ai_coder.usage import UsageTracker

logger = logging.getLogger(__name__)


class Session:
    """A conversation with the model plus the tools it may call.

    The session owns the transcript, the tool registry and the provider
    handle. The transcript only grows: system messages at setup, user
    messages on every :meth:`send`, assistant messages when the caller
    records a reply with :meth:`add_assistant_messages` before
    continuing.

    One turn runs at a time. Starting a new :meth:`send` closes a
    previous turn that was left suspended; calling it from inside a
    running turn is an error.

    Args:
        provider: Model provider used for every turn.
        model: Chat model name.
        session_id: Identifier used in logs. Random if omitted.
    """

    def __init__(
        self,
        provider: ModelProvider,
        model: str,
        session_id: str | None = None,
    ):
        self.provider = provider
        self.model = model
        self.session_id = session_id or str(uuid.uuid4())
        self.transcript: list[Message] = []
        self.tools = ToolRegistry()
        self.usage = UsageTracker(model)
        self._active: AsyncGenerator[TurnEvent, None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Session":
        """Build a session on an :class:`OpenAIProvider`.

        Raises:
            MissingCredentialError: If *settings* has no API key.
        """
        return cls(OpenAIProvider.from_settings(settings), settings.model)

    def history(self) -> tuple[Message, ...]:
        return tuple(self.transcript)

    def add_system_messages(self, *texts: str) -> None:
        self.transcript.extend(Message.system(t) for t in texts)

    def add_assistant_messages(self, *texts: str) -> None:
        self.transcript.extend(Message.assistant(t) for t in texts)

    def register_tool(
        self,
        definition: ToolDefinition,
        implementation: Callable[[Any], Any],
    ) -> None:
        self.tools.register(definition, implementation)

    async def send(self, *texts: str) -> AsyncIterator[TurnEvent]:
        """Append *texts* as user messages and run one model turn.

        Yields a :class:`TextEvent` for every text delta as it streams
        in. Once the stream has ended, completed tool calls are
        dispatched one at a time in slot order and each resolved value
        is yielded as a :class:`ToolResultEvent`. A call whose arguments
        do not decode stops the turn after the earlier calls have run.

        The iterator is lazy: nothing (including appending *texts*)
        happens until the first pull. Closing it early closes the
        underlying response stream. A turn that was abandoned without
        being closed is closed when the next turn starts.

        Raises:
            TransportError: The request or the stream failed.
            MalformedToolCallError: Tool-call arguments are not JSON.
            UnknownToolError: The model called an unregistered tool.
            ToolImplementationError: A tool implementation raised. The
                original exception is its ``__cause__``; ai-coder
                errors raised by a tool propagate unwrapped.
            RuntimeError: Called while another turn of this session is
                still running (e.g. from inside a tool).
        """
        previous = self._active
        if previous is not None:
            if previous.ag_running:
                raise RuntimeError(
                    f"Session {self.session_id} already has a turn in progress"
                )
            # Whoever clears _active owns closing that turn.
            self._active = None
            logger.debug(f"Closing abandoned turn of session {self.session_id}")
            await previous.aclose()

        self.transcript.extend(Message.user(t) for t in texts)
        turn = self._turn()
        self._active = turn
        try:
            async for event in turn:
                yield event
        finally:
            if self._active is turn:
                self._active = None
                await turn.aclose()

    async def _turn(self) -> AsyncIterator[TurnEvent]:
        messages = [m.model_dump() for m in self.transcript]
        async with completion_span(self.provider.system, self.model) as span:
            try:
                acc = ToolCallAccumulator()
                usage = None
                stream = await self.provider.stream_complete(
                    model=self.model,
                    messages=messages,
                    tools=self.tools.schemas(),
                )
                async with stream:
                    async for chunk in stream:
                        if chunk.content_delta:
                            yield TextEvent(text=chunk.content_delta)
                        for frag in chunk.tool_call_fragments or []:
                            acc.feed(frag)
                        if chunk.usage is not None:
                            usage = chunk.usage

                self.usage.record(usage)
                record_usage(span, usage)

                for call in acc.finalize():
                    tool = self.tools.get(call.name)
                    logger.debug(f"Calling {call.name} with {call.arguments}")
                    async with tool_span(call.name, call.index) as tspan:
                        try:
                            result = await tool(call.arguments)
                        except AICoderError as e:
                            record_error(tspan, e)
                            raise
                        except Exception as e:
                            record_error(tspan, e)
                            raise ToolImplementationError(
                                call.name, f"Tool '{call.name}' failed: {e}",
                            ) from e
                    yield ToolResultEvent(tool_name=call.name, result=result)
            except Exception as e:
                record_error(span, e)
                raise
