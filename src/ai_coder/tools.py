import inspect
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ai_coder.errors import UnknownToolError

logger = logging.getLogger(__name__)


class ToolDefinition(BaseModel):
    """What the model is told about a tool.

    Args:
        name: Unique tool name; the registry lookup key.
        description: Shown to the model.
        parameters: JSON schema for the arguments object.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: dict = Field(default_factory=lambda: {
        "type": "object",
        "properties": {},
    })

    def tool_schema(self) -> dict:
        """Return an OpenAI-compatible function tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class Tool(BaseModel):
    """A definition paired with the local function that implements it.

    The implementation receives the decoded arguments object and may be
    a plain function or a coroutine function.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    definition: ToolDefinition
    func: Callable[[Any], Any] = Field(exclude=True)

    @property
    def name(self) -> str:
        return self.definition.name

    def model_dump(self, **kwargs):
        """Override to return the tool schema instead of internal attributes"""
        return self.definition.tool_schema()

    async def __call__(self, arguments: Any) -> Any:
        result = self.func(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


class ToolRegistry:
    """Name-keyed tools for one session. Later registrations win."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, definition: ToolDefinition, func: Callable[[Any], Any]) -> Tool:
        if definition.name in self._tools:
            logger.debug(f"Replacing tool '{definition.name}'")
        tool = Tool(definition=definition, func=func)
        self._tools[definition.name] = tool
        return tool

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def schemas(self) -> list[dict] | None:
        """Tool schemas for the request, or ``None`` when there are none."""
        if not self._tools:
            return None
        return [t.model_dump() for t in self._tools.values()]
