"""Events yielded by :meth:`ai_coder.session.Session.send`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TurnEvent:
    """Base for all turn events."""


@dataclass(frozen=True)
class TextEvent(TurnEvent):
    """Token-level text delta, emitted as soon as it arrives."""

    text: str = ""


@dataclass(frozen=True)
class ToolResultEvent(TurnEvent):
    """Resolved value of a tool call.

    Emitted only after the response stream has ended, in ascending slot
    order.
    """

    tool_name: str = ""
    result: Any = None
