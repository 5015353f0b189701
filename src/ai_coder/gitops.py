"""Git and OS commands used by the workflows.

Every command runs as an awaited subprocess. A non-zero exit raises
:class:`CommandError`.
"""

import asyncio
import logging
import sys
from pathlib import Path

from ai_coder.errors import CommandError

logger = logging.getLogger(__name__)

LOCKFILES = ("pnpm-lock.yaml", "yarn.lock", "package-lock.json")


async def run(*args: str, inherit: bool = False, cwd: Path | str | None = None) -> str:
    """Run a command and return its stdout.

    With *inherit* the command shares the terminal (so editors and hooks
    can interact with the user) and an empty string is returned.
    """
    logger.debug(f"Running {' '.join(args)}")
    pipe = None if inherit else asyncio.subprocess.PIPE
    try:
        proc = await asyncio.create_subprocess_exec(
            *args, stdout=pipe, stderr=pipe, cwd=cwd,
        )
    except FileNotFoundError as e:
        raise CommandError(list(args), 127, str(e)) from e
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise CommandError(
            list(args), proc.returncode,
            stderr.decode(errors="replace") if stderr else "",
        )
    return stdout.decode(errors="replace") if stdout else ""


def diff_excludes(gitignore: Path | str = ".gitignore") -> list[str]:
    """Turn ``.gitignore`` lines and lockfiles into git pathspecs.

    A negated pattern ``!foo`` yields both ``:(include)foo`` and
    ``:(exclude)!foo``, matching how git treats the raw line.
    """
    try:
        lines = Path(gitignore).read_text(encoding="utf8").splitlines()
    except FileNotFoundError:
        lines = []
    lines.extend(LOCKFILES)

    excludes = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            excludes.append(f":(include){line[1:]}")
        excludes.append(f":(exclude){line}")
    return excludes


async def staged_diff(excludes: list[str] | None = None) -> str:
    return await run(
        "git", "--no-pager", "diff", "--staged", "--", ".", *(excludes or []),
    )


async def commit_count() -> int:
    out = await run("git", "rev-list", "--count", "--all")
    return int(out.strip() or 0)


async def active_branch() -> str:
    return (await run("git", "branch", "--show-current")).strip()


async def commits_since(base_branch: str, branch: str) -> str:
    return await run("git", "log", f"{base_branch}..{branch}", "--no-color")


async def commit(message: str) -> None:
    await run("git", "commit", "-m", message, inherit=True)


async def push_branch(branch: str) -> None:
    await run("git", "push", "-u", "origin", branch, inherit=True)


def open_command(url: str, platform: str | None = None) -> list[str]:
    platform = platform or sys.platform
    if platform == "darwin":
        return ["open", url]
    if platform.startswith("win"):
        return ["cmd", "/c", "start", "", url]
    return ["xdg-open", url]


async def open_url(url: str) -> None:
    await run(*open_command(url))
