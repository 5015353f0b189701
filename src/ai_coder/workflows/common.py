"""Helpers shared by the workflow drivers."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console

from ai_coder.errors import NoResultError, UserCancelled
from ai_coder.events import TextEvent, ToolResultEvent, TurnEvent
from ai_coder.prompts import Prompter
from ai_coder.session import Session

logger = logging.getLogger(__name__)

MAX_ROUNDS = 5


@dataclass
class TurnResult:
    """Everything one ``Session.send`` produced."""

    text: str = ""
    results: dict[str, Any] = field(default_factory=dict)


async def collect_turn(
    events: AsyncIterator[TurnEvent],
    console: Console | None = None,
    progress: bool = False,
) -> TurnResult:
    """Drain a turn, echoing text to *console* as it streams.

    With *progress* a dot is printed per event instead of the text.
    Tool results are keyed by tool name; a later call to the same tool
    replaces an earlier one.
    """
    turn = TurnResult()
    async with aclosing(events):
        async for event in events:
            if console is not None and progress:
                console.print(".", end="")
            if isinstance(event, TextEvent):
                if console is not None and not progress:
                    if not turn.text:
                        console.print()
                    console.print(
                        event.text, end="", markup=False, highlight=False,
                    )
                turn.text += event.text
            elif isinstance(event, ToolResultEvent):
                logger.debug(f"Tool result from {event.tool_name}")
                turn.results[event.tool_name] = event.result
    if console is not None and (progress or turn.text):
        console.print()
    return turn


async def propose(
    session: Session,
    prompter: Prompter,
    console: Console,
    *,
    tool_name: str,
    opening: tuple[str, ...],
    question: str,
    summarize: Callable[[Any], str],
    what: str,
    max_rounds: int = MAX_ROUNDS,
) -> Any:
    """Run the ask / propose / confirm loop until the user accepts.

    Each round sends the pending user texts and looks at the turn:

    * a *tool_name* result is a proposal: the user confirms it (done) or
      says what to change, which is sent next round;
    * text alone is a question from the model: the user's reply is sent
      next round;
    * neither ends the loop with :class:`NoResultError`. It is not
      retried since resending the same history rarely helps.

    Raises:
        UserCancelled: The user gave no answer when one was needed.
        NoResultError: Nothing usable came back, or *max_rounds* passed
            without an accepted proposal.
    """
    texts = opening
    for _ in range(max_rounds):
        turn = await collect_turn(session.send(*texts), console)
        proposal = turn.results.get(tool_name)

        if proposal is not None:
            summary = summarize(proposal)
            if await prompter.confirm(f"{question}\n\n{summary}\n"):
                return proposal
            feedback = await prompter.ask("What should be changed?")
            if not feedback:
                raise UserCancelled(f"No {what} accepted.")
            recorded = [turn.text] if turn.text else []
            session.add_assistant_messages(*recorded, summary)
            texts = (feedback,)
        elif turn.text:
            reply = await prompter.ask("Response")
            if not reply:
                raise UserCancelled(f"No {what} generated.")
            session.add_assistant_messages(turn.text)
            texts = (reply,)
        else:
            raise NoResultError(
                f"The model produced neither a {what} nor a question."
            )

    raise NoResultError(f"No {what} accepted after {max_rounds} rounds.")
