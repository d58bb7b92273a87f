"""Repository facts consumed by the release gate.

This module wraps the handful of git queries the release tooling needs.
Commands are run with structured argument lists, never through a shell.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

RELEASE_BRANCH_PATTERN = re.compile(r"^release_(\d+)$")


class Repository(Protocol):
    """Read-only repository facts."""

    def is_git_dir(self) -> bool: ...

    def is_working_tree_clean(self) -> bool: ...

    def current_branch(self) -> str: ...

    def branch_names(self) -> list[str]: ...


class GitCommandError(Exception):
    """Raised when a git query fails."""

    def __init__(self, message: str, code: str = "git_error") -> None:
        super().__init__(message)
        self.code = code


class GitRepository:
    """Repository facts read with the git command line."""

    def __init__(self, root: Path, git: str = "git") -> None:
        self.root = root
        self.git = git

    def _run(self, *args: str) -> str:
        cmd = [self.git, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=self.root,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise GitCommandError(
                f"{' '.join(cmd)} failed: {e.stderr.strip()}",
                code="git_failed",
            ) from e
        except OSError as e:
            raise GitCommandError(f"Failed to run git: {e}", code="git_missing") from e
        return result.stdout

    def is_git_dir(self) -> bool:
        if not self.root.is_dir():
            return False
        try:
            toplevel = self._run("rev-parse", "--show-toplevel").strip()
        except GitCommandError:
            return False
        return Path(toplevel).resolve() == self.root.resolve()

    def is_working_tree_clean(self) -> bool:
        return self._run("status", "--porcelain").strip() == ""

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").strip()

    def branch_names(self) -> list[str]:
        output = self._run("branch", "--list", "--format=%(refname:short)")
        return [line.strip() for line in output.splitlines() if line.strip()]


def last_release_name(repo: Repository) -> str | None:
    """Return the release_NN branch with the highest NN, if any."""
    best: tuple[int, str] | None = None
    for name in repo.branch_names():
        # Remote-tracking names look like origin/release_NN
        match = RELEASE_BRANCH_PATTERN.match(name.rsplit("/", 1)[-1])
        if match is None:
            continue
        number = int(match.group(1))
        if best is None or number > best[0]:
            best = (number, match.group(0))
    return best[1] if best else None


def next_dev_release(last_release: str | None) -> str | None:
    """Return the release identifier of the next development release.

    'release_77' -> '78.0'.
    """
    if last_release is None:
        return None
    match = RELEASE_BRANCH_PATTERN.match(last_release)
    if match is None:
        return None
    return f"{int(match.group(1)) + 1}.0"


__all__ = [
    "GitCommandError",
    "GitRepository",
    "Repository",
    "last_release_name",
    "next_dev_release",
]
