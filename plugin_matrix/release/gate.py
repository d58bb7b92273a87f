"""Release gate.

A release-mode build, deploy or generate only proceeds from a clean,
correctly named and up-to-date repository. The checks run in a fixed order
and stop at the first failure; cheap structural checks come before the
git queries.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plugin_matrix.context import RunConfig
    from plugin_matrix.release.vcs import Repository

logger = logging.getLogger(__name__)

# '00.0' with an optional '-dev.0'
RELEASE_PATTERN = re.compile(r"^\d+\.\d(-dev\.\d)?$")


class GateRejection(Exception):
    """Raised when a release check fails."""

    def __init__(self, reason: str, code: str = "release_rejected") -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code


def normalize_release(release: str | None) -> str | None:
    """Normalize a release identifier: '=13' -> '13.0'."""
    if release is None:
        return None
    if release.startswith("="):
        release = release[1:]
    if "." not in release:
        release = f"{release}.0"
    return release


def release_major(release: str | None) -> str | None:
    """Return the major component of a release identifier."""
    if release is None:
        return None
    idx = release.find(".")
    return release[:idx] if idx > 0 else release


def is_release_valid(release: str | None) -> bool:
    return release is not None and RELEASE_PATTERN.fullmatch(release) is not None


def is_release_branch(branch: str, major: str) -> bool:
    """Check a branch is release_<major> or a point-release branch of it."""
    expected = f"release_{major}"
    if branch == expected:
        return True
    return re.fullmatch(re.escape(expected) + r"\.\d", branch) is not None


def check_release(
    config: RunConfig,
    repo: Repository,
    ci_fresh: Callable[[], bool],
) -> None:
    """Run the release checks in order.

    Args:
        config: Run configuration (release, channel, test mode).
        repo: Repository facts.
        ci_fresh: Returns True if the CI workflow is newer than the matrix.

    Raises:
        GateRejection: With the reason of the first failing check.
    """
    if not repo.is_git_dir():
        raise GateRejection(
            "the current working directory is not managed by git",
            code="not_git",
        )
    if config.test_mode:
        return
    if config.is_dev_channel:
        raise GateRejection(
            "release mode is incompatible with the dev channel",
            code="dev_channel",
        )
    if not is_release_valid(config.release):
        raise GateRejection(
            f'the release identifier ("{config.release}") must be of the form '
            "xx.x (major.minor)",
            code="invalid_release",
        )
    if not repo.is_working_tree_clean():
        raise GateRejection(
            "the current git branch has uncommitted changes",
            code="dirty_tree",
        )
    major = release_major(config.release) or ""
    branch = repo.current_branch()
    if not is_release_branch(branch, major):
        raise GateRejection(
            f'the current git branch must be named "release_{major}" '
            f'(found "{branch}")',
            code="branch_mismatch",
        )
    if not ci_fresh():
        raise GateRejection(
            "the presubmit.yaml file needs updating: plugin-matrix generate",
            code="stale_ci",
        )


def is_release_ready(
    config: RunConfig,
    repo: Repository,
    ci_fresh: Callable[[], bool],
) -> bool:
    """Return True if a release may be cut; log the reason otherwise."""
    try:
        check_release(config, repo, ci_fresh)
    except GateRejection as e:
        logger.error("Release check failed: %s", e.reason)
        return False
    return True


__all__ = [
    "GateRejection",
    "RELEASE_PATTERN",
    "check_release",
    "is_release_branch",
    "is_release_ready",
    "is_release_valid",
    "normalize_release",
    "release_major",
]
