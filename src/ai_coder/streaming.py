"""Streaming primitives for provider responses.

Providers push normalised :class:`StreamChunk` objects into a
:class:`ChunkStream`, which the session pulls from as an ordered async
iterator. The :class:`ToolCallAccumulator` reassembles tool calls whose
arguments arrive in fragments across multiple chunks.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import AsyncIterable, Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

from ai_coder.errors import MalformedToolCallError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class StreamChunk:
    """Normalised streaming chunk from any provider."""

    content_delta: str | None = None
    tool_call_fragments: list[ToolCallFragment] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None


@dataclass
class ToolCall:
    """A completed tool call with decoded arguments."""

    index: int
    name: str
    arguments: Any
    raw_arguments: str = ""
    call_id: str | None = None


# ----------------------------------------------------------------------
# Push-to-pull transport
# ----------------------------------------------------------------------

_END = object()


@dataclass
class _Failure:
    error: BaseException


class ChunkChannel:
    """Unbounded channel between a pushing producer and a pulling consumer.

    ``push``/``close``/``fail`` never suspend. Iterating the channel
    suspends until the next item is available and yields items in push
    order. After ``close`` the iterator ends; after ``fail`` it raises
    :class:`TransportError`.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, chunk: Any) -> None:
        if self._closed:
            raise RuntimeError("push() on a closed channel")
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    def fail(self, error: BaseException) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_Failure(error))

    def __aiter__(self) -> "ChunkChannel":
        return self

    async def __anext__(self) -> Any:
        if self._drained:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._drained = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._drained = True
            if isinstance(item.error, TransportError):
                raise item.error
            raise TransportError(
                f"Model stream ended abnormally: {item.error}"
            ) from item.error
        return item


class ChunkStream:
    """Ordered, single-pass async iterator over an upstream chunk source.

    A pump task reads *source* and pushes every element into a
    :class:`ChunkChannel`; consumers pull from the channel. The pump is
    started on the first pull.

    *release* (sync or async callable, e.g. closing an HTTP response) is
    called exactly once: when the stream ends, when it fails, or when
    :meth:`aclose` is called by a consumer that stops early. Use the
    stream as an async context manager to get the early-exit path for
    free::

        async with provider.stream_complete(...) as stream:
            async for chunk in stream:
                ...
    """

    def __init__(
        self,
        source: AsyncIterable,
        release: Callable[[], Awaitable[None] | None] | None = None,
    ):
        self._source = source
        self._release = release
        self._channel = ChunkChannel()
        self._pump: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _run_pump(self) -> None:
        try:
            async for chunk in self._source:
                self._channel.push(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Upstream stream failed: {e!r}")
            self._channel.fail(e)
        else:
            self._channel.close()

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        if self._pump is None:
            self._pump = asyncio.get_running_loop().create_task(
                self._run_pump()
            )
        try:
            return await self._channel.__anext__()
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._pump is not None and not self._pump.done():
                self._pump.cancel()
                await asyncio.gather(self._pump, return_exceptions=True)
        finally:
            if self._release is not None:
                result = self._release()
                if inspect.isawaitable(result):
                    await result

    async def __aenter__(self) -> "ChunkStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


# ----------------------------------------------------------------------
# Tool call reassembly
# ----------------------------------------------------------------------


@dataclass
class _PartialToolCall:
    name: str | None = None
    call_id: str | None = None
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Fragments are addressed by slot index and may interleave across
    slots; within a slot, argument text is appended in arrival order.
    Only slots that received a name are finalised.
    """

    def __init__(self) -> None:
        self._pending: dict[int, _PartialToolCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def feed(self, fragment: ToolCallFragment) -> None:
        slot = self._pending.get(fragment.index)
        if slot is None:
            slot = self._pending[fragment.index] = _PartialToolCall()
        if fragment.name and slot.name is None:
            slot.name = fragment.name
        if fragment.call_id and slot.call_id is None:
            slot.call_id = fragment.call_id
        if fragment.arguments_delta:
            slot.arguments += fragment.arguments_delta

    def finalize(self) -> Iterator[ToolCall]:
        """Hand over the completed tool calls in ascending slot order.

        The pending slots are taken immediately; each slot's arguments
        are decoded only when the iterator reaches it, so a caller that
        dispatches as it iterates runs every call before a malformed one.

        Raises:
            MalformedToolCallError: While iterating, at the first slot
                whose arguments do not decode as JSON. Later slots are
                not decoded.
        """
        pending, self._pending = self._pending, {}
        return self._decode(pending)

    @staticmethod
    def _decode(pending: dict[int, _PartialToolCall]) -> Iterator[ToolCall]:
        for index in sorted(pending):
            slot = pending[index]
            if slot.name is None:
                logger.debug(f"Dropping unnamed tool call slot {index}")
                continue
            raw = slot.arguments
            # Parameterless calls can arrive with no argument text at all.
            if not raw.strip():
                arguments: Any = {}
            else:
                try:
                    arguments = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise MalformedToolCallError(index, raw) from e
            yield ToolCall(
                index=index, name=slot.name, arguments=arguments,
                raw_arguments=raw, call_id=slot.call_id,
            )
