"""Build spec data model.

A BuildSpec is one row of the product matrix. Specs are created once per
run from the parsed matrix, may be rebased between the stable and dev
channels before any build step, and are discarded at process exit.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING

from plugin_matrix.types import SNAPSHOT, Channel, Product

if TYPE_CHECKING:
    from plugin_matrix.artifacts.service import ArtifactCache
    from plugin_matrix.matrix.schema import MatrixEntrySchema

logger = logging.getLogger(__name__)

CHANGELOG_FILENAME = "CHANGELOG.md"


class ParseError(Exception):
    """Raised when the matrix, edit set or another structured input is malformed."""

    def __init__(self, message: str, code: str = "parse_error") -> None:
        super().__init__(message)
        self.code = code


def version_key(version: str) -> tuple[int, ...]:
    """Return a comparable key for a dotted version string.

    Non-numeric components (such as a trailing '*') end the key, so
    '213.*' compares as (213,).
    """
    parts: list[int] = []
    for part in version.split("."):
        match = re.match(r"\d+", part)
        if match is None:
            break
        parts.append(int(match.group()))
    return tuple(parts)


def render_change_log(text: str) -> str:
    """Render the newest section of a Markdown changelog as manifest HTML.

    Args:
        text: Full changelog content.

    Returns:
        HTML with the section title as <h2> and bullets as a <ul> list.
    """
    title: str | None = None
    items: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("## "):
            if title is not None:
                break
            title = line[3:].strip()
        elif title is not None and line.startswith(("- ", "* ")):
            items.append(html.escape(line[2:].strip(), quote=False))
        elif title is not None and line and items:
            # Continuation of the previous bullet
            items[-1] = f"{items[-1]} {html.escape(line, quote=False)}"

    if title is None:
        return ""
    out = [f"<h2>{html.escape(title, quote=False)}</h2>"]
    if items:
        out.append("<ul>")
        out.extend(f"  <li>{item}</li>" for item in items)
        out.append("</ul>")
    return "\n".join(out)


@dataclass
class BuildSpec:
    """One concrete (version, channel, product) build target.

    Attributes:
        name: Human-readable target name.
        version: Target-platform version, unique within a channel.
        channel: Distribution channel; mutable via build_for_dev/build_for_master.
        plugin_id: Plugin identifier for the manifest.
        since_build: Lower compatibility bound.
        until_build: Upper compatibility bound, may contain SNAPSHOT.
        idea_product: SDK product archive name.
        idea_version: SDK product version.
        base_version: Platform build number of the SDK.
        dart_plugin_version: Dart plugin archive version.
        android_plugin_version: Android plugin version.
        is_android_studio: Target is Android Studio.
        is_unit_test_target: Target is used for unit tests and setup.
        files_to_skip: Sources excluded from this target's compile.
        release: Normalized release identifier of the run.
        build_number: Patch counter assigned by the orchestrator.
        root: Working root, used to load the changelog.
        artifacts: Artifact cache handle, attached before provisioning.
    """

    name: str
    version: str
    channel: Channel
    plugin_id: str
    since_build: str
    until_build: str
    idea_product: str = "ideaIC"
    idea_version: str | None = None
    base_version: str | None = None
    dart_plugin_version: str | None = None
    android_plugin_version: str | None = None
    is_android_studio: bool = False
    is_unit_test_target: bool = False
    files_to_skip: list[str] = field(default_factory=list)
    release: str | None = None
    build_number: int = 0
    root: Path | None = None
    artifacts: ArtifactCache | None = field(default=None, repr=False)
    _change_log: str | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_schema(
        cls,
        entry: MatrixEntrySchema,
        release: str | None,
        root: Path | None = None,
    ) -> BuildSpec:
        """Create a spec from a validated matrix entry."""
        return cls(
            name=entry.name or entry.version,
            version=entry.version,
            channel=entry.channel,
            plugin_id=entry.plugin_id,
            since_build=entry.since_build,
            until_build=entry.until_build,
            idea_product=entry.idea_product,
            idea_version=entry.idea_version or entry.version,
            base_version=entry.base_version,
            dart_plugin_version=entry.dart_plugin_version,
            android_plugin_version=entry.android_plugin_version,
            is_android_studio=entry.is_android_studio,
            is_unit_test_target=entry.is_unit_test_target,
            files_to_skip=list(entry.files_to_skip),
            release=release,
            root=root,
        )

    @property
    def is_synthetic(self) -> bool:
        return False

    @property
    def is_dev_channel(self) -> bool:
        return self.channel == Channel.DEV

    @property
    def is_stable_channel(self) -> bool:
        return self.channel == Channel.STABLE

    @property
    def product(self) -> Product:
        return Product.ANDROID_STUDIO if self.is_android_studio else Product.INTELLIJ

    @property
    def is_snapshot(self) -> bool:
        """True when the target tracks an unreleased (EAP) platform."""
        return SNAPSHOT in self.until_build

    @property
    def version_number(self) -> str:
        """Plugin version number written into the manifest."""
        if self.release is None:
            return SNAPSHOT
        if self.is_dev_channel:
            return f"{self.release}-dev.{self.build_number}"
        return f"{self.release}.{self.build_number}"

    @property
    def change_log(self) -> str:
        """Rendered changelog, loaded from the root on first access."""
        if self._change_log is None:
            self._change_log = self._load_change_log()
        return self._change_log

    @change_log.setter
    def change_log(self, value: str) -> None:
        self._change_log = value

    def _load_change_log(self) -> str:
        if self.root is None:
            return ""
        path = self.root / CHANGELOG_FILENAME
        if not path.exists():
            logger.warning("No %s found at %s", CHANGELOG_FILENAME, self.root)
            return ""
        return render_change_log(path.read_text(encoding="utf-8"))

    def build_for_dev(self, dev_release: str | None = None) -> None:
        """Rebase this spec onto the development channel.

        Args:
            dev_release: Release identifier of the next development release.
        """
        if self.channel == Channel.STABLE:
            self.channel = Channel.DEV
        if dev_release is not None:
            self.release = dev_release

    def build_for_master(self) -> None:
        """Store dev-only targets with the stable (master) outputs."""
        if self.channel == Channel.DEV:
            self.channel = Channel.STABLE

    def __str__(self) -> str:
        return f"{self.name} ({self.version}, {self.channel.value})"


@dataclass
class SyntheticBuildSpec(BuildSpec):
    """Spec for the merged manifest checked into the sources.

    Created from the first matrix row. The upper compatibility bound is
    taken from the unit-test target so the merged manifest covers the whole
    supported range. Only used for generation, never for an external build.
    """

    specs: list[BuildSpec] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        try:
            self.alternate = next(s for s in self.specs if s.is_unit_test_target)
        except StopIteration:
            raise ParseError(
                "No build spec defines isUnitTestTarget",
                code="missing_unit_test_target",
            ) from None
        self.until_build = self.alternate.until_build

    @classmethod
    def from_first_entry(
        cls,
        entry: MatrixEntrySchema,
        release: str | None,
        specs: list[BuildSpec],
        root: Path | None = None,
    ) -> SyntheticBuildSpec:
        """Create the synthetic spec from the first matrix entry."""
        base = BuildSpec.from_schema(entry, release, root)
        values = {
            f.name: getattr(base, f.name) for f in fields(BuildSpec) if f.init
        }
        return cls(specs=specs, **values)

    @property
    def is_synthetic(self) -> bool:
        return True


__all__ = [
    "BuildSpec",
    "ParseError",
    "SyntheticBuildSpec",
    "render_change_log",
    "version_key",
]
