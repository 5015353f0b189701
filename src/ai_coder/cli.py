"""Command-line entry point: ``ai-coder <command>``."""

import argparse
import asyncio
import logging
import os
import sys

from rich.console import Console

from ai_coder.config import Settings
from ai_coder.context import WorkflowContext
from ai_coder.instrumentation import instrument, workflow_span
from ai_coder.prompts import ConsolePrompter
from ai_coder.provider import OpenAIProvider
from ai_coder.workflows import commit, pr, remix_route

logger = logging.getLogger(__name__)

WORKFLOWS = {
    "commit": (commit.run, "Draft a commit message for the staged changes"),
    "pr": (pr.run, "Draft a pull request for the current branch"),
    "remix-route": (remix_route.run, "Scaffold a new Remix route module"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-coder",
        description="LLM assistant for commits, pull requests and Remix routes.",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Show debug logs and full error details",
    )
    parser.add_argument("--model", help="Chat model to use")
    sub = parser.add_subparsers(dest="command", metavar="<command>")
    for name, (_, help_text) in WORKFLOWS.items():
        sub.add_parser(name, help=help_text, description=help_text)
    return parser


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # Keep HTTP client chatter out of --debug output.
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def run_workflow(command: str, settings: Settings, console: Console):
    workflow, _ = WORKFLOWS[command]
    provider = OpenAIProvider.from_settings(settings)
    ctx = WorkflowContext(
        settings=settings,
        provider=provider,
        prompter=ConsolePrompter(console),
        console=console,
    )
    async with workflow_span(command, settings.model):
        return await workflow(ctx)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = Settings.from_env(model=args.model, debug=args.debug or None)
    configure_logging(settings.debug)
    if os.environ.get("OTEL_SERVICE_NAME"):
        try:
            instrument()
        except ImportError as e:
            logger.warning(str(e))

    console = Console()
    err_console = Console(stderr=True)
    try:
        asyncio.run(run_workflow(args.command, settings, console))
    except KeyboardInterrupt:
        err_console.print("[red]Interrupted.[/red]")
        return 130
    except Exception as e:
        err_console.print(str(e) or type(e).__name__, style="red", markup=False, highlight=False)
        if settings.debug:
            err_console.print_exception(show_locals=False)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
