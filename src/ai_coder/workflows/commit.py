"""``ai-coder commit``: draft a conventional commit message for staged changes."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field

from ai_coder import gitops
from ai_coder.config import ProjectConfig
from ai_coder.context import WorkflowContext
from ai_coder.errors import WorkflowError
from ai_coder.tools import ToolDefinition
from ai_coder.workflows.common import propose

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "Your task is to write a commit message for the current working "
    "repository according to the staged changes. "
    "The commit message should be in the conventional commit format. "
    "The subject line should be no longer than 72 characters. "
    "The subject line can be followed by a longer description if needed. "
    "Call the commit_message tool with the finished message. "
    "If more context is needed you can ask the user a question instead "
    "of generating a commit message."
)

COMMIT_MESSAGE_TOOL = ToolDefinition(
    name="commit_message",
    description="Propose the commit message for the staged changes",
    parameters={
        "type": "object",
        "properties": {
            "commit_message": {
                "type": "string",
                "description": "The commit message",
            },
        },
        "required": ["commit_message"],
    },
)


class CommitProposal(BaseModel):
    commit_message: str = Field(min_length=1)


def commit_message_tool(arguments: dict) -> str:
    return CommitProposal.model_validate(arguments).commit_message.strip()


@dataclass
class CommitContext:
    diff: str
    commit_count: int
    project: ProjectConfig


async def gather_context(
    gitignore: Path | str = ".gitignore",
    package_json: Path | str = "package.json",
) -> CommitContext:
    diff, count = await asyncio.gather(
        gitops.staged_diff(gitops.diff_excludes(gitignore)),
        gitops.commit_count(),
    )
    return CommitContext(
        diff=diff, commit_count=count, project=ProjectConfig.load(package_json),
    )


def context_message(ctx: CommitContext) -> str:
    parts = ["Contextual Information:\n", f"Commit Count: {ctx.commit_count}\n"]
    if ctx.project.name:
        parts.append(f"Project name: {ctx.project.name}\n")
    if ctx.project.description:
        parts.append(f"Project description: {ctx.project.description}\n")
    parts.append(f"`git diff --staged` output:\n```\n{ctx.diff}\n```")
    return "\n".join(parts)


async def run(ctx: WorkflowContext) -> str:
    """Propose, refine and finally ``git commit`` a message.

    Returns the committed message.
    """
    commit_ctx = await gather_context()
    if not commit_ctx.diff.strip():
        raise WorkflowError("Nothing staged to commit.")

    session = ctx.new_session()
    session.register_tool(COMMIT_MESSAGE_TOOL, commit_message_tool)
    session.add_system_messages(SYSTEM_PROMPT)

    ctx.console.print("generating commit message...")
    message = await propose(
        session, ctx.prompter, ctx.console,
        tool_name=COMMIT_MESSAGE_TOOL.name,
        opening=(context_message(commit_ctx), "Generate a commit message"),
        question="Would you like to commit with this message?",
        summarize=lambda m: m,
        what="commit message",
    )
    logger.info(f"Committing with a {len(message)} character message")
    await gitops.commit(message)
    return message
