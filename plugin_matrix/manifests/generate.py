"""Generation of checked-in manifests and CI configuration.

This module handles:
- The CI workflow listing every stable, released target version
- The live-template library assembled from per-snippet text files
- The generate driver, which also regenerates the merged plugin manifest
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from plugin_matrix.manifests.template import generate_plugin_files
from plugin_matrix.matrix.io import create_synthetic_spec
from plugin_matrix.matrix.models import ParseError
from plugin_matrix.release.gate import is_release_ready

if TYPE_CHECKING:
    from plugin_matrix.context import RunConfig, RunContext
    from plugin_matrix.matrix.models import BuildSpec

logger = logging.getLogger(__name__)

CI_WORKFLOW_PATH = Path(".github") / "workflows" / "presubmit.yaml"
CI_TEMPLATE_SUFFIX = ".template"
VERSIONS_PLACEHOLDER = "@VERSIONS@"

LIVE_TEMPLATES_DIR = Path("resources") / "liveTemplates"
LIVE_TEMPLATES_LIBRARY = "flutter_miscellaneous.xml"


class LiveTemplateNotFoundError(Exception):
    """Raised when a snippet has no named entry in the live-template library."""

    def __init__(
        self, name: str, library: Path, code: str = "live_template_not_found"
    ) -> None:
        super().__init__(f'No entry found for "{name}" live template in {library}')
        self.name = name
        self.library = library
        self.code = code


def ci_versions(specs: list[BuildSpec]) -> list[str]:
    """Return versions listed in CI: stable channel, no snapshot bound."""
    return [s.version for s in specs if s.is_stable_channel and not s.is_snapshot]


def generate_ci_workflow(specs: list[BuildSpec], root: Path) -> Path:
    """Write the CI workflow from its template.

    Args:
        specs: All build specs of the matrix.
        root: Working root.

    Returns:
        Path to the written workflow.
    """
    workflow = root / CI_WORKFLOW_PATH
    template = workflow.with_name(workflow.name + CI_TEMPLATE_SUFFIX)
    contents = template.read_text(encoding="utf-8")
    contents = contents.replace(VERSIONS_PLACEHOLDER, ", ".join(ci_versions(specs)), 1)
    header = (
        f"# Do not edit; instead, modify {template.name}, "
        "and run 'plugin-matrix generate'.\n\n"
    )
    logger.info("Writing %s", workflow)
    workflow.write_text(header + contents, encoding="utf-8")
    return workflow


def is_ci_workflow_fresh(root: Path, matrix_path: Path) -> bool:
    """Check the CI workflow was generated after the last matrix change.

    Raises:
        ParseError: If the product matrix is missing.
    """
    workflow = root / CI_WORKFLOW_PATH
    if not workflow.exists():
        return False
    if not matrix_path.exists():
        raise ParseError(f"{matrix_path.name} is missing", code="file_not_found")
    return workflow.stat().st_mtime >= matrix_path.stat().st_mtime


def escape_snippet(text: str) -> str:
    """Escape a snippet for use inside an XML attribute value."""
    return text.replace("\n", "&#10;").replace("<", "&lt;").replace(">", "&gt;")


def generate_live_templates(
    root: Path,
    library_name: str = LIVE_TEMPLATES_LIBRARY,
) -> Path:
    """Copy every snippet file into the live-template library.

    Each resources/liveTemplates/NAME.txt replaces the value attribute of
    the <template name="NAME" ...> entry in the library verbatim.

    Returns:
        Path to the updated library.

    Raises:
        LiveTemplateNotFoundError: If a snippet has no entry in the library.
    """
    templates_dir = root / LIVE_TEMPLATES_DIR
    library = templates_dir / library_name
    contents = library.read_text(encoding="utf-8")

    logger.info("Writing %s", library)
    for snippet in sorted(templates_dir.glob("*.txt")):
        name = snippet.stem
        replacement = escape_snippet(snippet.read_text(encoding="utf-8"))
        match = re.search(
            f'<template name="{re.escape(name)}" value="([^"]+)"', contents
        )
        if match is None:
            raise LiveTemplateNotFoundError(name, library)
        contents = (
            contents[: match.start(1)] + replacement + contents[match.end(1) :]
        )

    library.write_text(contents, encoding="utf-8")
    return library


def run_generate(config: RunConfig, context: RunContext, specs: list[BuildSpec]) -> int:
    """Regenerate the merged manifest, the CI workflow and live templates.

    In release mode the release gate is checked afterwards.

    Returns:
        Process exit status.
    """
    spec = create_synthetic_spec(
        context.matrix_path, config.release, specs, context.root
    )
    generate_plugin_files(spec, context.root, "resources")
    generate_ci_workflow(specs, context.root)
    generate_live_templates(context.root)
    if config.is_release_mode and not is_release_ready(
        config,
        context.repository,
        lambda: is_ci_workflow_fresh(context.root, context.matrix_path),
    ):
        return 1
    return 0


__all__ = [
    "CI_WORKFLOW_PATH",
    "LiveTemplateNotFoundError",
    "ci_versions",
    "escape_snippet",
    "generate_ci_workflow",
    "generate_live_templates",
    "is_ci_workflow_fresh",
    "run_generate",
]
