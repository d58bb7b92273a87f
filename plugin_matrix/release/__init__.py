"""Release gate module.

This module handles:
- Release identifier normalization and validation
- Repository facts (git) consumed by the gate
- The ordered release checks
"""

from plugin_matrix.release.gate import (
    GateRejection,
    check_release,
    is_release_ready,
    normalize_release,
    release_major,
)
from plugin_matrix.release.vcs import (
    GitCommandError,
    GitRepository,
    Repository,
    last_release_name,
    next_dev_release,
)

__all__ = [
    "GateRejection",
    "GitCommandError",
    "GitRepository",
    "Repository",
    "check_release",
    "is_release_ready",
    "last_release_name",
    "next_dev_release",
    "normalize_release",
    "release_major",
]
