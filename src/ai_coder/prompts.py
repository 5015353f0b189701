"""Interactive prompts.

Workflows only see the :class:`Prompter` protocol, so tests can script
the answers. Every method may report "no answer" (``None`` or
``False``), which the workflows treat as the user declining.
"""

import asyncio
from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm, Prompt


class Prompter(Protocol):
    async def confirm(self, message: str) -> bool:
        ...

    async def ask(self, message: str, multiline: bool = False) -> str | None:
        ...


class ConsolePrompter:
    """Terminal prompts built on ``rich.prompt``.

    Input is read in a worker thread so the event loop is never blocked.
    EOF, Ctrl-C and blank answers all count as no answer. Multiline
    answers end on an empty line.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def confirm(self, message: str) -> bool:
        return await asyncio.to_thread(self._confirm, message)

    async def ask(self, message: str, multiline: bool = False) -> str | None:
        return await asyncio.to_thread(self._ask, message, multiline)

    def _confirm(self, message: str) -> bool:
        try:
            return Confirm.ask(message, console=self.console, default=False)
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            return False

    def _ask(self, message: str, multiline: bool) -> str | None:
        try:
            if not multiline:
                answer = Prompt.ask(message, console=self.console, default="")
                return answer.strip() or None
            self.console.print(
                f"[prompt.default]?[/] {message} [dim](finish with an empty line)[/]"
            )
            lines = []
            while True:
                line = self.console.input("")
                if not line.strip():
                    break
                lines.append(line)
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            return None
        return "\n".join(lines).strip() or None
