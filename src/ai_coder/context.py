from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.console import Console

from ai_coder.session import Session

if TYPE_CHECKING:
    from ai_coder.config import Settings
    from ai_coder.prompts import Prompter
    from ai_coder.provider import ModelProvider


@dataclass
class WorkflowContext:
    """Everything a workflow driver needs from the outside world.

    The CLI builds one per invocation. Workflows create their own
    sessions through :meth:`new_session` so each conversation gets a
    fresh transcript and tool registry on the shared provider.

    Args:
        settings: Runtime settings (model names, catalog directory).
        provider: Model provider shared by all sessions of the run.
        prompter: Interactive prompt UI.
        console: Where streamed model output and summaries are printed.
    """

    settings: Settings
    provider: ModelProvider
    prompter: Prompter
    console: Console = field(default_factory=Console)

    def new_session(self) -> Session:
        return Session(self.provider, self.settings.model)
