"""Tests for builds/service.py module.

Exercises the orchestrator end to end over the project fixture with
provisioning patched out and a recording build collaborator.
"""

from unittest.mock import MagicMock, patch

import pytest

from plugin_matrix.artifacts.service import ArtifactCache
from plugin_matrix.builds.edits import EditCommand, EditTracker, edit_scope
from plugin_matrix.builds.service import (
    purge_build_dir,
    releases_file_path,
    run_matrix,
    run_setup,
    run_tests,
)
from plugin_matrix.config import Settings
from plugin_matrix.context import BuildCommand, RunConfig, TestCommand
from plugin_matrix.types import Channel

from conftest import FakeBuilder


@pytest.fixture
def provision():
    """Patch provisioning to succeed without touching the network."""
    with patch.object(
        ArtifactCache, "provision", autospec=True, return_value=0
    ) as mock_provision:
        yield mock_provision


def provisioned(mock_provision) -> list[tuple[str, bool]]:
    return [
        (c.args[0].spec.version, c.kwargs["rebuild_cache"])
        for c in mock_provision.call_args_list
    ]


class TestRunMatrix:
    """Tests for run_matrix function."""

    def test_stable_filter_builds_only_stable_row(
        self, project, run_context, builder, provision
    ):
        """A two-row matrix with a stable filter processes only the stable row."""
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 0

        assert builder.built == ["2023.1"]
        assert provisioned(provision) == [("2023.1", True)]
        saved = project / "releases" / "release_master" / "2023.1" / "flutter-intellij.zip"
        assert saved.read_bytes() == b"PK2023.1"
        assert builder.stopped == 1

    def test_returns_exact_build_status(self, run_context, builder, provision):
        """A failing build stops the run and its status is returned unchanged."""
        builder.status = 7
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 7

        assert builder.built == ["2023.1"]
        assert builder.stopped == 0

    def test_generated_manifest_used_and_restored(
        self, project, run_context, builder, provision
    ):
        """The build sees the spec's manifest; it is removed afterwards."""
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        run_matrix(config, run_context, specs, builder)

        assert "<version>SNAPSHOT</version>" in builder.manifests[0]
        assert 'until-build="231.*"' in builder.manifests[0]
        assert not (project / "resources" / "META-INF" / "plugin.xml").exists()

    def test_only_version_not_found(self, run_context, builder, provision):
        config = RunConfig.create(BuildCommand(only_version="1999.1", setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 1
        assert builder.built == []

    def test_provisioning_failure_stops_run(self, run_context, builder, provision):
        """A provisioning failure is returned before anything is built."""
        provision.return_value = 1
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 1
        assert builder.built == []

    def test_release_mode_uses_minor_and_release_scope(
        self, project, run_context, builder, provision
    ):
        """In release mode the minor number seeds the build number."""
        config = RunConfig.create(
            BuildCommand(minor=5, setup=False), release="77", test_mode=True
        )
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 0

        assert "<version>77.0.5</version>" in builder.manifests[0]
        saved = project / "releases" / "release_77" / "2023.1" / "flutter-intellij.zip"
        assert saved.exists()

    def test_release_gate_failure(self, run_context, builder, provision, repo):
        """A failing release check stops the run before provisioning."""
        repo.branch = "main"
        config = RunConfig.create(BuildCommand(setup=False), release="77.0")
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 1
        assert provision.call_count == 0

    def test_dev_run_builds_rebased_rows(
        self, project, run_context, builder, provision, repo
    ):
        """A dev run rebases every row and uses the next development release."""
        repo.branches = ["release_76", "release_77", "main"]
        config = RunConfig.create(BuildCommand(setup=False), channel=Channel.DEV)
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 0

        assert builder.built == ["2023.1", "2023.2"]
        assert "<version>78.0-dev.1</version>" in builder.manifests[0]
        assert "<version>78.0-dev.2</version>" in builder.manifests[1]
        assert (project / "releases" / "release_dev" / "2023.2").is_dir()

    def test_packaging_failure_returns_one(self, run_context, provision):
        """A build without an archive to save ends with status 1."""
        mock_builder = MagicMock()
        mock_builder.build.return_value = 0
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, mock_builder) == 1
        mock_builder.stop_daemon.assert_not_called()

    def test_edits_applied_during_build_only(
        self, project, run_context, provision
    ):
        """Source edits are visible to the build and reverted afterwards."""
        source = project / "src" / "Main.java"
        source.parent.mkdir()
        source.write_bytes(b"int api = OLD;\n")
        command = EditCommand("src/Main.java", "OLD", "NEW", versions=("2023.1",))
        run_context.edit_commands = [command]
        run_context.tracker = EditTracker([command])
        seen = []

        def build(spec):
            seen.append(source.read_bytes())
            return 5

        mock_builder = MagicMock()
        mock_builder.build.side_effect = build
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, mock_builder) == 5

        assert seen == [b"int api = NEW;\n"]
        assert source.read_bytes() == b"int api = OLD;\n"

    def test_setup_runs_after_build(self, run_context, builder, provision):
        """With setup enabled the unit-test target is unpacked last."""
        config = RunConfig.create(BuildCommand(setup=True))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 0

        assert provisioned(provision) == [("2023.1", True), ("2023.1", True)]
        assert builder.built == ["2023.1"]

    def test_setup_runs_after_failure(self, run_context, builder, provision):
        """The setup pass also runs when the build fails."""
        builder.status = 2
        config = RunConfig.create(BuildCommand(setup=True))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 2
        assert provision.call_count == 2

    def test_product_filter(self, run_context, builder, provision):
        """--as alone skips IntelliJ rows."""
        config = RunConfig.create(
            BuildCommand(setup=False), ij=False, android_studio=True
        )
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 0
        assert builder.built == []


class LeakingBuilder(FakeBuilder):
    """Enters an edit scope after the build and never leaves it."""

    def __init__(self, root, tracker) -> None:
        super().__init__(root)
        self.tracker = tracker
        self.last_spec = None

    def build(self, spec) -> int:
        self.last_spec = spec
        return super().build(spec)

    def stop_daemon(self) -> int:
        edit_scope(self.last_spec, [], self.root, self.tracker).__enter__()
        return super().stop_daemon()


class TestRunLevelCheck:
    """Tests for the edit tracker check at the end of a full run."""

    def test_unexited_scope_fails_full_run(
        self, project, run_context, provision, caplog
    ):
        """A scope left open during the run fails the final check."""
        builder = LeakingBuilder(project, run_context.tracker)
        config = RunConfig.create(BuildCommand(setup=False))
        specs = run_context.load_specs(config)

        with caplog.at_level("ERROR"):
            assert run_matrix(config, run_context, specs, builder) == 1

        assert builder.built == ["2023.1"]
        assert "applied edit commands not cleared" in caplog.text
        assert run_context.tracker.outstanding is None

    def test_check_skipped_for_single_version(self, project, run_context, provision):
        builder = LeakingBuilder(project, run_context.tracker)
        config = RunConfig.create(BuildCommand(only_version="2023.1", setup=False))
        specs = run_context.load_specs(config)

        assert run_matrix(config, run_context, specs, builder) == 0
        assert run_context.tracker.outstanding == []


class TestRunSetup:
    """Tests for run_setup function."""

    def test_provisions_unit_test_target_only(self, run_context, builder, provision):
        config = RunConfig.create(BuildCommand())
        specs = run_context.load_specs(config)

        assert run_setup(config, run_context, specs, builder) == 0

        assert provisioned(provision) == [("2023.1", True)]
        assert builder.built == []


class TestRunTests:
    """Tests for run_tests function."""

    def test_requires_java_home(self, run_context, builder, provision):
        config = RunConfig.create(TestCommand(setup=False))
        specs = run_context.load_specs(config)

        assert run_tests(config, run_context, specs, builder) == 1
        assert provision.call_count == 0

    def test_runs_unit_tests(self, monkeypatch, project, run_context, builder, provision):
        monkeypatch.setenv("JAVA_HOME", "/opt/jdk")
        run_context.settings = Settings(_env_file=None, root_dir=project)
        builder.test_status = 3
        config = RunConfig.create(TestCommand(unit=True, setup=False))
        specs = run_context.load_specs(config)

        assert run_tests(config, run_context, specs, builder) == 3

        assert builder.tested == ["2023.1"]
        assert provisioned(provision) == [("2023.1", True)]

    def test_skip_only_provisions(
        self, monkeypatch, project, run_context, builder, provision
    ):
        monkeypatch.setenv("JAVA_HOME", "/opt/jdk")
        run_context.settings = Settings(_env_file=None, root_dir=project)
        config = RunConfig.create(TestCommand(skip=True, setup=False))
        specs = run_context.load_specs(config)

        assert run_tests(config, run_context, specs, builder) == 0
        assert builder.tested == []

    def test_integration_not_supported(
        self, monkeypatch, project, run_context, builder, provision
    ):
        monkeypatch.setenv("JAVA_HOME", "/opt/jdk")
        run_context.settings = Settings(_env_file=None, root_dir=project)
        config = RunConfig.create(TestCommand(integration=True, setup=False))
        specs = run_context.load_specs(config)

        assert run_tests(config, run_context, specs, builder) == 1
        assert builder.tested == []


class TestPaths:
    """Tests for releases_file_path and purge_build_dir."""

    def test_releases_scopes(self, project, run_context):
        config = RunConfig.create(BuildCommand())
        stable, dev = run_context.load_specs(config)

        assert releases_file_path(config, run_context, stable) == (
            project / "releases" / "release_master" / "2023.1" / "flutter-intellij.zip"
        )
        assert releases_file_path(config, run_context, dev).parent.parent.name == (
            "release_dev"
        )

        release_config = RunConfig.create(BuildCommand(), release="=77")
        assert releases_file_path(release_config, run_context, dev).parts[-3] == (
            "release_77"
        )

    def test_purge_keeps_directory(self, tmp_path):
        build = tmp_path / "build"
        (build / "classes").mkdir(parents=True)
        (build / "out.txt").write_text("x")

        purge_build_dir(build)

        assert build.is_dir()
        assert list(build.iterdir()) == []
