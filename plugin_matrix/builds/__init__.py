"""Build module.

This module handles:
- Version-scoped source edits applied around external builds
- Running Gradle and capturing its output

The orchestrator lives in plugin_matrix.builds.service.
"""

from plugin_matrix.builds.edits import (
    EditApplicationError,
    EditCommand,
    EditStateError,
    EditTracker,
    edit_scope,
    with_edits,
)
from plugin_matrix.builds.runner import (
    BuildExecutionError,
    BuildResult,
    GradleBuilder,
)

__all__ = [
    "BuildExecutionError",
    "BuildResult",
    "EditApplicationError",
    "EditCommand",
    "EditStateError",
    "EditTracker",
    "GradleBuilder",
    "edit_scope",
    "with_edits",
]
