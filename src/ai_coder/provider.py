import logging
from collections.abc import AsyncIterator

import openai
from openai import AsyncOpenAI

from ai_coder.config import Settings
from ai_coder.errors import MissingCredentialError, TransportError
from ai_coder.streaming import ChunkStream, StreamChunk, ToolCallFragment, Usage

logger = logging.getLogger(__name__)


class ModelProvider:
    """Interface the session and workflows use to reach a model service."""

    system = "unknown"

    async def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
    ) -> ChunkStream:
        """Start a streaming chat completion.

        Returns a :class:`ChunkStream` of normalised chunks. Raises
        :class:`TransportError` when the request cannot be issued.
        """
        raise NotImplementedError

    async def embed(self, text: str, model: str) -> list[float]:
        raise NotImplementedError


async def normalize_chunks(raw_stream) -> AsyncIterator[StreamChunk]:
    """Translate OpenAI ``ChatCompletionChunk`` objects to StreamChunks."""
    async for raw in raw_stream:
        content = []
        fragments = []
        finish_reason = None
        for choice in raw.choices or []:
            delta = choice.delta
            if delta is not None and delta.content:
                content.append(delta.content)
            for tc in (delta.tool_calls if delta is not None else None) or []:
                function = tc.function
                fragments.append(ToolCallFragment(
                    index=tc.index,
                    call_id=tc.id,
                    name=function.name if function else None,
                    arguments_delta=function.arguments if function else None,
                ))
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        usage = None
        raw_usage = getattr(raw, "usage", None)
        if raw_usage is not None:
            usage = Usage(
                prompt_tokens=raw_usage.prompt_tokens or 0,
                completion_tokens=raw_usage.completion_tokens or 0,
            )

        yield StreamChunk(
            content_delta="".join(content) or None,
            tool_call_fragments=fragments or None,
            finish_reason=finish_reason,
            usage=usage,
        )


class OpenAIProvider(ModelProvider):
    """Streaming chat completions and embeddings through ``AsyncOpenAI``.

    The client is created with ``max_retries=0``: a failed request is
    surfaced as :class:`TransportError` and retrying is up to the caller.

    Args:
        api_key: OpenAI credential. Required.
        base_url: Optional OpenAI-compatible endpoint.
        timeout: Request timeout in seconds.

    Raises:
        MissingCredentialError: If *api_key* is empty.
    """

    system = "openai"

    def __init__(
            self,
            api_key: str | None = None,
            base_url: str | None = None,
            timeout: float = 600.0,
    ):
        if not api_key:
            raise MissingCredentialError(
                "OpenAI API key not found. Set OPENAI_API_KEY."
            )
        self.base_url = base_url.rstrip("/") if base_url else None
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            max_retries=0,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIProvider":
        return cls(api_key=settings.api_key, base_url=settings.base_url)

    async def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
    ) -> ChunkStream:
        kwargs = dict(
            model=model,
            messages=messages,
            stream=True,
            stream_options={"include_usage": True},
        )
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise TransportError(f"Chat completion request failed: {e}") from e
        return ChunkStream(normalize_chunks(response), release=response.close)

    async def embed(self, text: str, model: str) -> list[float]:
        try:
            response = await self.client.embeddings.create(
                model=model, input=text,
            )
        except openai.APIError as e:
            raise TransportError(f"Embedding request failed: {e}") from e
        if not response.data:
            raise TransportError("Embedding response contained no vectors")
        return list(response.data[0].embedding)
