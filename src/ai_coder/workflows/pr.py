"""``ai-coder pr``: draft a pull request and open GitHub's compare page."""

import logging
from pathlib import Path
from urllib.parse import quote, urlencode

from pydantic import BaseModel, Field

from ai_coder import gitops
from ai_coder.config import ProjectConfig
from ai_coder.context import WorkflowContext
from ai_coder.errors import WorkflowError
from ai_coder.tools import ToolDefinition
from ai_coder.workflows.common import propose

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "Your task is to write a pull request for the current working repository. "
    "The pull request title should be in the conventional commit format. "
    "The pull request title should be no longer than 72 characters. "
    "The pull request title should be followed by a longer body describing more detail. "
    "Do not be vague in the pull request title and body. "
    "Call the new_pull_request tool with the result. "
    "If more context is needed you can ask a question to the user."
)

NEW_PULL_REQUEST_TOOL = ToolDefinition(
    name="new_pull_request",
    description="Generate a new pull request",
    parameters={
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "The pull request title",
            },
            "body": {
                "type": "string",
                "description": "The pull request body",
            },
        },
        "required": ["title", "body"],
    },
)


class PullRequest(BaseModel):
    title: str = Field(min_length=1)
    body: str = ""


def new_pull_request_tool(arguments: dict) -> PullRequest:
    return PullRequest.model_validate(arguments)


def pull_request_url(
    owner: str, repo: str, base: str, branch: str, pr: PullRequest,
) -> str:
    path = "/".join(quote(p, safe="") for p in (owner, repo))
    compare = f"{quote(base, safe='/')}...{quote(branch, safe='/')}"
    query = urlencode({"quick_pull": "1", "title": pr.title, "body": pr.body})
    return f"https://github.com/{path}/compare/{compare}?{query}"


def context_message(branch: str, base: str, commits: str) -> str:
    return (
        "Contextual Information:\n\n"
        f"Branch Name: {branch}\n\n"
        f"Base Branch: {base}\n\n"
        f"Commits:\n```\n{commits}\n```"
    )


async def run(ctx: WorkflowContext, package_json: Path | str = "package.json") -> str:
    """Draft the pull request and open it in the browser.

    Returns the compare URL that was opened.
    """
    project = ProjectConfig.load(package_json)
    owner, repo = project.require_repo()
    base = project.repo.base_branch

    branch = await gitops.active_branch()
    if not branch:
        raise WorkflowError("Not on a branch (detached HEAD).")
    if branch == base:
        raise WorkflowError(f"Already on the base branch '{base}'.")
    commits = await gitops.commits_since(base, branch)
    if not commits.strip():
        raise WorkflowError(f"No commits on '{branch}' since '{base}'.")

    session = ctx.new_session()
    session.register_tool(NEW_PULL_REQUEST_TOOL, new_pull_request_tool)
    session.add_system_messages(SYSTEM_PROMPT)

    ctx.console.print("generating pull request...")
    pr = await propose(
        session, ctx.prompter, ctx.console,
        tool_name=NEW_PULL_REQUEST_TOOL.name,
        opening=(context_message(branch, base, commits), "Generate a pull request"),
        question="Would you like to create the following pull request?",
        summarize=lambda p: f"{p.title}\n\n{p.body}",
        what="pull request",
    )

    if await ctx.prompter.confirm(f"Push '{branch}' to origin first?"):
        await gitops.push_branch(branch)

    url = pull_request_url(owner, repo, base, branch, pr)
    logger.info(f"Opening {url}")
    await gitops.open_url(url)
    ctx.console.print(url, markup=False, highlight=False)
    return url
