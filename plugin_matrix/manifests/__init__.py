"""Manifest generation module.

This module handles:
- @NAME@ placeholder substitution from build specs
- Plugin manifest generation from templates
- CI workflow and live-template library generation
"""

from plugin_matrix.manifests.generate import (
    LiveTemplateNotFoundError,
    generate_ci_workflow,
    generate_live_templates,
    is_ci_workflow_fresh,
    run_generate,
)
from plugin_matrix.manifests.template import (
    UnknownPlaceholderError,
    generate_manifest,
    generate_plugin_files,
    substitute_template_variables,
)

__all__ = [
    "LiveTemplateNotFoundError",
    "UnknownPlaceholderError",
    "generate_ci_workflow",
    "generate_live_templates",
    "generate_manifest",
    "generate_plugin_files",
    "is_ci_workflow_fresh",
    "run_generate",
    "substitute_template_variables",
]
