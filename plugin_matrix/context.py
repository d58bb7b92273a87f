"""Run configuration and run context.

RunConfig is the immutable description of what the operator asked for.
RunContext holds the state shared by every command of one process: the
working root, settings, the edit set and its tracker, repository facts and
the build number counter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from plugin_matrix.artifacts.service import ArtifactCache
from plugin_matrix.builds.edits import EditCommand, EditTracker
from plugin_matrix.config import Settings
from plugin_matrix.matrix.io import create_build_specs, load_edits
from plugin_matrix.matrix.models import BuildSpec
from plugin_matrix.release.gate import normalize_release, release_major
from plugin_matrix.release.vcs import (
    GitCommandError,
    GitRepository,
    Repository,
    last_release_name,
    next_dev_release,
)
from plugin_matrix.types import Channel, CommandKind, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildCommand:
    """Build every selected matrix row."""

    only_version: str | None = None
    unpack: bool = False
    minor: int | None = None
    setup: bool = True


@dataclass(frozen=True)
class TestCommand:
    """Run the tests against the unit-test target."""

    __test__ = False

    unit: bool = False
    integration: bool = False
    skip: bool = False
    setup: bool = True


@dataclass(frozen=True)
class DeployCommand:
    """Upload built archives to the marketplace."""


@dataclass(frozen=True)
class GenerateCommand:
    """Regenerate checked-in manifests and CI configuration."""


@dataclass(frozen=True)
class SetupCommand:
    """Provision the unit-test target for local development."""


Command = BuildCommand | TestCommand | DeployCommand | GenerateCommand | SetupCommand

_COMMAND_KINDS: dict[type, CommandKind] = {
    BuildCommand: CommandKind.BUILD,
    TestCommand: CommandKind.TEST,
    DeployCommand: CommandKind.DEPLOY,
    GenerateCommand: CommandKind.GENERATE,
    SetupCommand: CommandKind.SETUP,
}


@dataclass(frozen=True)
class RunConfig:
    """Immutable options of one run.

    Attributes:
        command: Requested command and its options.
        channel: Active channel.
        release: Normalized release identifier, None outside release mode.
        ij: Select IntelliJ rows.
        android_studio: Select Android Studio rows.
        test_mode: Working root was overridden; release checks pass.
    """

    command: Command
    channel: Channel = Channel.STABLE
    release: str | None = None
    ij: bool = True
    android_studio: bool = True
    test_mode: bool = False

    @classmethod
    def create(
        cls,
        command: Command,
        channel: Channel = Channel.STABLE,
        release: str | None = None,
        ij: bool = True,
        android_studio: bool = True,
        test_mode: bool = False,
    ) -> RunConfig:
        """Create a config with the release identifier normalized."""
        return cls(
            command=command,
            channel=channel,
            release=normalize_release(release),
            ij=ij,
            android_studio=android_studio,
            test_mode=test_mode,
        )

    @property
    def kind(self) -> CommandKind:
        return _COMMAND_KINDS[type(self.command)]

    @property
    def is_release_mode(self) -> bool:
        return self.release is not None

    @property
    def is_dev_channel(self) -> bool:
        return self.channel == Channel.DEV

    @property
    def release_major(self) -> str | None:
        return release_major(self.release)

    def selects_product(self, spec: BuildSpec) -> bool:
        """Check the product flags select a spec; no flag means both."""
        if self.ij == self.android_studio:
            return True
        wanted = Product.ANDROID_STUDIO if self.android_studio else Product.INTELLIJ
        return spec.product == wanted

    def selects_channel(self, spec: BuildSpec) -> bool:
        """Check a spec belongs to the active channel; setup accepts any."""
        return self.channel == Channel.SETUP or spec.channel == self.channel


@dataclass
class RunContext:
    """State shared by the commands of one process."""

    root: Path
    settings: Settings
    repository: Repository
    edit_commands: list[EditCommand] = field(default_factory=list)
    tracker: EditTracker = field(default_factory=EditTracker)
    build_number: int = 0
    _dev_release: str | None = field(default=None, init=False, repr=False)
    _dev_release_loaded: bool = field(default=False, init=False, repr=False)

    @property
    def matrix_path(self) -> Path:
        return self.settings.resolve(self.root, self.settings.matrix_file)

    @property
    def build_dir(self) -> Path:
        return self.settings.resolve(self.root, self.settings.build_dir)

    @property
    def releases_dir(self) -> Path:
        return self.settings.resolve(self.root, self.settings.releases_dir)

    @property
    def dev_release(self) -> str | None:
        """Release identifier of the next development release, if known."""
        if not self._dev_release_loaded:
            self._dev_release_loaded = True
            try:
                self._dev_release = next_dev_release(last_release_name(self.repository))
            except GitCommandError as e:
                logger.warning("Cannot determine the last release: %s", e)
        return self._dev_release

    def load_specs(self, config: RunConfig) -> list[BuildSpec]:
        """Load the matrix and attach an artifact cache to every spec.

        In a dev-channel run every row is rebased onto the dev channel.
        """
        specs = create_build_specs(self.matrix_path, config.release, self.root)
        for spec in specs:
            if config.is_dev_channel:
                spec.build_for_dev(self.dev_release if spec.release is None else None)
            spec.artifacts = ArtifactCache.from_settings(spec, self.settings, self.root)
        return specs


def create_run_context(settings: Settings, root: Path | None = None) -> RunContext:
    """Create the run context for a working root.

    Args:
        settings: Effective settings.
        root: Working root; defaults to the configured root or the cwd.

    Raises:
        ParseError: If the edit set is malformed.
    """
    root = (root or settings.root_dir or Path.cwd()).resolve()
    commands = [
        EditCommand.from_schema(edit)
        for edit in load_edits(settings.resolve(root, settings.edits_file))
    ]
    return RunContext(
        root=root,
        settings=settings,
        repository=GitRepository(root),
        edit_commands=commands,
        tracker=EditTracker(commands),
    )


__all__ = [
    "BuildCommand",
    "Command",
    "DeployCommand",
    "GenerateCommand",
    "RunConfig",
    "RunContext",
    "SetupCommand",
    "TestCommand",
    "create_run_context",
]
