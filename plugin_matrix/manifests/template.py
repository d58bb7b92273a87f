"""Template substitution for plugin manifests.

This module handles:
- Replacing @NAME@ placeholders with values derived from a BuildSpec
- Generating manifest files line by line from their templates
- Snapshotting generated manifests so a build can restore them afterwards
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plugin_matrix.matrix.models import BuildSpec

logger = logging.getLogger(__name__)

DELIMITER = "@"

# Manifests generated for every spec, relative to the resources directory
PLUGIN_MANIFESTS = ("META-INF/plugin.xml", "META-INF/studio-contribs.xml")

# Module that triggers loading the Android Studio support
STUDIO_MODULE_SYNTHETIC = "com.intellij.modules.androidstudio"
STUDIO_MODULE_PUBLIC = "com.android.tools.apk"


class UnknownPlaceholderError(Exception):
    """Raised when a template references an unrecognized placeholder."""

    def __init__(self, name: str, code: str = "unknown_placeholder") -> None:
        super().__init__(f"unknown template variable: {name}")
        self.name = name
        self.code = code


def placeholder_value(name: str, spec: BuildSpec) -> str:
    """Return the value substituted for a placeholder name.

    Args:
        name: Placeholder name without delimiters.
        spec: Spec the value is derived from.

    Returns:
        Substitution text.

    Raises:
        UnknownPlaceholderError: If the name is not recognized.
    """
    if name == "PLUGINID":
        return spec.plugin_id
    if name == "SINCE":
        return spec.since_build
    if name == "UNTIL":
        return spec.until_build
    if name == "VERSION":
        return f"<version>{spec.version_number}</version>"
    if name == "CHANGELOG":
        return spec.change_log
    if name == "DEPEND":
        # The public sources and the installable plugin use different modules
        return STUDIO_MODULE_SYNTHETIC if spec.is_synthetic else STUDIO_MODULE_PUBLIC
    raise UnknownPlaceholderError(name)


def substitute_template_variables(line: str, spec: BuildSpec) -> str:
    """Substitute every @NAME@ placeholder in a line.

    A delimiter without a closing partner is literal text. Scanning resumes
    after each inserted value, so values are never rescanned.

    Args:
        line: Template line.
        spec: Spec the values are derived from.

    Returns:
        Line with placeholders replaced.

    Raises:
        UnknownPlaceholderError: If a well-formed placeholder is not recognized.
    """
    parts: list[str] = []
    pos = 0
    while True:
        start = line.find(DELIMITER, pos)
        if start < 0:
            break
        end = line.find(DELIMITER, start + 1)
        if end < 0:
            # Some commit messages have a lone '@' in them
            break
        parts.append(line[pos:start])
        parts.append(placeholder_value(line[start + 1 : end], spec))
        pos = end + 1
    parts.append(line[pos:])
    return "".join(parts)


def generated_header(template_name: str) -> str:
    """Return the header written at the top of generated XML files."""
    return (
        f"<!-- Do not edit; instead, modify {template_name}, "
        "and run 'plugin-matrix generate'. -->"
    )


def template_path_for(manifest: str) -> str:
    """Return the template path for a manifest ('a/plugin.xml' -> 'a/plugin_template.xml')."""
    stem, _, suffix = manifest.rpartition(".")
    return f"{stem}_template.{suffix}"


def generate_manifest(spec: BuildSpec, template_path: Path, output_path: Path) -> Path:
    """Generate a manifest from its template.

    Args:
        spec: Spec the values are derived from.
        template_path: Template file with @NAME@ placeholders.
        output_path: File to write.

    Returns:
        The written output path.

    Raises:
        UnknownPlaceholderError: If the template uses an unknown placeholder.
        FileNotFoundError: If the template does not exist.
    """
    lines = template_path.read_text(encoding="utf-8").splitlines()
    out = [generated_header(template_path.name), ""]
    out.extend(substitute_template_variables(line, spec) for line in lines)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Writing %s", output_path)
    output_path.write_text("\n".join(out) + "\n", encoding="utf-8")
    return output_path


def generate_plugin_files(
    spec: BuildSpec,
    root: Path,
    dest_dir: str = "resources",
) -> list[Path]:
    """Generate every plugin manifest for a spec.

    Templates are read from root/resources, outputs are written under
    root/dest_dir.

    Returns:
        List of written manifest paths.
    """
    written: list[Path] = []
    for manifest in PLUGIN_MANIFESTS:
        template = root / "resources" / template_path_for(manifest)
        written.append(generate_manifest(spec, template, root / dest_dir / manifest))
    return written


@contextmanager
def preserved_files(paths: list[Path]) -> Iterator[None]:
    """Restore the given files to their current content on exit.

    Files that do not exist on entry are removed on exit.
    """
    snapshots = {p: p.read_bytes() if p.exists() else None for p in paths}
    try:
        yield
    finally:
        for path, content in snapshots.items():
            if content is None:
                path.unlink(missing_ok=True)
            else:
                path.write_bytes(content)


__all__ = [
    "PLUGIN_MANIFESTS",
    "UnknownPlaceholderError",
    "generate_manifest",
    "generate_plugin_files",
    "generated_header",
    "placeholder_value",
    "preserved_files",
    "substitute_template_variables",
    "template_path_for",
]
