# git.py
# Small wrapper around the Git CLI, used to build a default event
# ("push of whatever branch is checked out") when the caller gives none.

from __future__ import annotations

import subprocess
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str] = None) -> str:
    """
    Return the checked-out branch name.

    On a detached HEAD git prints "HEAD"; that is returned as-is and will
    simply not match any branch trigger.
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
