"""Optional OpenTelemetry instrumentation for ai-coder.

Call ``instrument()`` once at startup to enable tracing. Requires
``opentelemetry-api``; without it every span helper is a no-op and the
tool behaves the same.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "ai_coder") -> None:
    """Enable OpenTelemetry tracing for workflows, completions and tools.

    Call once at startup, after configuring a TracerProvider. The CLI
    calls it when ``OTEL_SERVICE_NAME`` is set, so the usual
    ``opentelemetry-instrument ai-coder commit`` setup works.

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install ai-coder[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be discarded."
        )
    else:
        logger.info("ai-coder instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def workflow_span(workflow: str, model: str):
    """Wrap one CLI workflow invocation."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"workflow {workflow}",
        attributes={
            "ai_coder.workflow": workflow,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


@asynccontextmanager
async def completion_span(system: str, model: str):
    """Wrap one streamed completion (a session turn)."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


@asynccontextmanager
async def tool_span(tool_name: str, slot: int):
    """Wrap one local tool dispatch."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"execute_tool {tool_name}",
        attributes={
            "gen_ai.operation.name": "execute_tool",
            "gen_ai.tool.name": tool_name,
            "ai_coder.tool.slot": slot,
        },
    ) as span:
        yield span


def record_usage(span, usage) -> None:
    """Set token-usage attributes on a span."""
    if span is None or usage is None:
        return
    span.set_attribute("gen_ai.usage.input_tokens", usage.prompt_tokens)
    span.set_attribute("gen_ai.usage.output_tokens", usage.completion_tokens)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__qualname__)
