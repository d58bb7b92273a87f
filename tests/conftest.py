"""Shared fixtures for plugin_matrix tests.

Provides a minimal working root (product matrix, manifest templates,
changelog), in-memory repository facts and a recording build collaborator.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from plugin_matrix.config import Settings
from plugin_matrix.context import RunContext
from plugin_matrix.matrix.models import BuildSpec

PLUGIN_TEMPLATE = """<idea-plugin>
  <id>@PLUGINID@</id>
  @VERSION@
  <idea-version since-build="@SINCE@" until-build="@UNTIL@"/>
  <change-notes>@CHANGELOG@</change-notes>
</idea-plugin>
"""

STUDIO_TEMPLATE = """<idea-plugin>
  <depends>@DEPEND@</depends>
</idea-plugin>
"""

CHANGELOG = """# Changelog

## 77.0
- Added a matrix build.
- Fixed <escaping>.

## 76.0
- Older entry.
"""


def matrix_row(version: str, channel: str = "stable", **extra: object) -> dict:
    """Return one product-matrix row in the on-disk camelCase format."""
    row = {
        "name": f"IntelliJ {version}",
        "version": version,
        "channel": channel,
        "ideaProduct": "ideaIC",
        "ideaVersion": version,
        "dartPluginVersion": f"{version}.1",
        "sinceBuild": "231",
        "untilBuild": "231.*",
    }
    row.update(extra)
    return row


def write_matrix(root: Path, rows: list[dict]) -> Path:
    path = root / "product-matrix.json"
    path.write_text(json.dumps({"list": rows}, indent=2), encoding="utf-8")
    return path


@dataclass
class FakeRepository:
    """Repository facts held in memory."""

    git_dir: bool = True
    clean: bool = True
    branch: str = "main"
    branches: list[str] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)

    def is_git_dir(self) -> bool:
        self.calls.append("is_git_dir")
        return self.git_dir

    def is_working_tree_clean(self) -> bool:
        self.calls.append("is_working_tree_clean")
        return self.clean

    def current_branch(self) -> str:
        self.calls.append("current_branch")
        return self.branch

    def branch_names(self) -> list[str]:
        self.calls.append("branch_names")
        return list(self.branches)


class FakeBuilder:
    """Build collaborator that records calls and writes a distribution."""

    def __init__(self, root: Path, status: int = 0, test_status: int = 0) -> None:
        self.root = root
        self.status = status
        self.test_status = test_status
        self.built: list[str] = []
        self.tested: list[str] = []
        self.manifests: list[str] = []
        self.stopped = 0

    def build(self, spec: BuildSpec) -> int:
        self.built.append(spec.version)
        manifest = self.root / "resources" / "META-INF" / "plugin.xml"
        if manifest.exists():
            self.manifests.append(manifest.read_text(encoding="utf-8"))
        if self.status == 0:
            dist = self.root / "build" / "distributions"
            dist.mkdir(parents=True, exist_ok=True)
            (dist / f"flutter-intellij-{spec.version_number}.zip").write_bytes(
                b"PK" + spec.version.encode()
            )
        return self.status

    def test(self, spec: BuildSpec) -> int:
        self.tested.append(spec.version)
        return self.test_status

    def stop_daemon(self) -> int:
        self.stopped += 1
        return 0


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep host environment variables and .env files out of Settings."""
    for name in list(os.environ):
        if name.startswith("PLUGIN_MATRIX_") or name == "JAVA_HOME":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def project(tmp_path) -> Path:
    """Create a working root with a two-row matrix and manifest templates."""
    root = tmp_path / "project"
    meta = root / "resources" / "META-INF"
    meta.mkdir(parents=True)
    (meta / "plugin_template.xml").write_text(PLUGIN_TEMPLATE, encoding="utf-8")
    (meta / "studio-contribs_template.xml").write_text(STUDIO_TEMPLATE, encoding="utf-8")
    (root / "CHANGELOG.md").write_text(CHANGELOG, encoding="utf-8")
    write_matrix(
        root,
        [
            matrix_row("2023.1", isUnitTestTarget=True),
            matrix_row("2023.2", "dev", untilBuild="232.SNAPSHOT"),
        ],
    )
    return root


@pytest.fixture
def settings(project) -> Settings:
    """Settings rooted at the project fixture."""
    return Settings(_env_file=None, root_dir=project, artifact_base_url="https://dl.test")


@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def run_context(project, settings, repo) -> RunContext:
    """Run context over the project fixture with in-memory repository facts."""
    return RunContext(root=project, settings=settings, repository=repo)


@pytest.fixture
def builder(project) -> FakeBuilder:
    return FakeBuilder(project)
