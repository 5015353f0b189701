import io
import json

import pytest
from rich.console import Console

from ai_coder.config import Settings
from ai_coder.context import WorkflowContext
from ai_coder.provider import ModelProvider
from ai_coder.streaming import ChunkStream, StreamChunk, ToolCallFragment, Usage
from ai_coder.tools import ToolDefinition


# ---------------------------------------------------------------------------
# Chunk builders (mirror what OpenAIProvider normalises a stream into)
# ---------------------------------------------------------------------------

def text_chunks(*deltas: str) -> list[StreamChunk]:
    """One chunk per text delta."""
    return [StreamChunk(content_delta=d) for d in deltas]


def tool_call_chunks(
    name: str,
    args: dict | str,
    index: int = 0,
    pieces: int = 3,
) -> list[StreamChunk]:
    """Split a tool call's JSON arguments across *pieces* chunks.

    Only the first chunk carries the name, like the real protocol.
    """
    raw = args if isinstance(args, str) else json.dumps(args)
    size = max(1, -(-len(raw) // pieces))
    parts = [raw[i:i + size] for i in range(0, len(raw), size)] or [""]
    chunks = [StreamChunk(tool_call_fragments=[ToolCallFragment(
        index=index, call_id=f"call_{index}", name=name,
        arguments_delta=parts[0],
    )])]
    for part in parts[1:]:
        chunks.append(StreamChunk(tool_call_fragments=[ToolCallFragment(
            index=index, arguments_delta=part,
        )]))
    return chunks


def usage_chunk(prompt: int = 10, completion: int = 5) -> StreamChunk:
    return StreamChunk(usage=Usage(prompt_tokens=prompt, completion_tokens=completion))


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued chunk lists. No network calls.

    Each entry of ``responses`` is a list of StreamChunks; an exception
    inside the list is raised by the upstream source at that point.
    Every stream goes through a real :class:`ChunkStream`, and
    ``releases`` counts how often a stream's release hook ran.
    """

    system = "mock"

    def __init__(self):
        self.responses: list[list] = []
        self.call_log: list[dict] = []
        self.releases = 0
        self.embeddings: dict[str, list[float]] = {}
        self.embed_log: list[str] = []

    async def stream_complete(self, model, messages, tools=None):
        self.call_log.append({"model": model, "messages": messages, "tools": tools})
        chunks = self.responses.pop(0)

        async def source():
            for chunk in chunks:
                if isinstance(chunk, BaseException):
                    raise chunk
                yield chunk

        def release():
            self.releases += 1

        return ChunkStream(source(), release=release)

    async def embed(self, text, model):
        self.embed_log.append(text)
        return self.embeddings.get(text, [1.0, 0.0, 0.0])


# ---------------------------------------------------------------------------
# Scripted prompter
# ---------------------------------------------------------------------------

class ScriptedPrompter:
    """Prompter that answers from queues and records every question."""

    def __init__(self, confirms=(), answers=()):
        self.confirms = list(confirms)
        self.answers = list(answers)
        self.log: list[tuple[str, str]] = []

    async def confirm(self, message: str) -> bool:
        self.log.append(("confirm", message))
        return self.confirms.pop(0)

    async def ask(self, message: str, multiline: bool = False) -> str | None:
        self.log.append(("ask", message))
        return self.answers.pop(0)


ECHO_TOOL = ToolDefinition(
    name="echo",
    description="Echo a value back.",
    parameters={
        "type": "object",
        "properties": {"value": {"type": "string"}},
        "required": ["value"],
    },
)


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_key="test-key",
        model="mock-model",
        catalog_dir=tmp_path / "catalog",
    )


@pytest.fixture
def make_context(mock_provider, settings):
    """Factory for a WorkflowContext on the mock provider.

    The console writes to ``ctx.console.file`` (a StringIO).
    """
    def _make(prompter, provider=None, settings_=None):
        return WorkflowContext(
            settings=settings_ or settings,
            provider=provider or mock_provider,
            prompter=prompter,
            console=Console(file=io.StringIO(), width=120),
        )
    return _make
