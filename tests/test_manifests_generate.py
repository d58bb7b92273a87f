"""Tests for manifests/generate.py module."""

import os

import pytest

from conftest import matrix_row, write_matrix
from plugin_matrix.context import GenerateCommand, RunConfig
from plugin_matrix.manifests.generate import (
    CI_WORKFLOW_PATH,
    LiveTemplateNotFoundError,
    ci_versions,
    escape_snippet,
    generate_ci_workflow,
    generate_live_templates,
    is_ci_workflow_fresh,
    run_generate,
)
from plugin_matrix.matrix.io import create_build_specs
from plugin_matrix.matrix.models import ParseError

CI_TEMPLATE = "jobs:\n  build:\n    strategy:\n      matrix:\n        version: [@VERSIONS@]\n"

LIBRARY = """<templateSet group="Flutter">
  <template name="stless" value="old" description="New Stateless widget"/>
  <template name="stful" value="old" description="New Stateful widget"/>
</templateSet>
"""


def write_ci_template(root):
    template = root / CI_WORKFLOW_PATH
    template = template.with_name(template.name + ".template")
    template.parent.mkdir(parents=True, exist_ok=True)
    template.write_text(CI_TEMPLATE)
    return template


def write_live_templates(root, snippets):
    templates_dir = root / "resources" / "liveTemplates"
    templates_dir.mkdir(parents=True, exist_ok=True)
    (templates_dir / "flutter_miscellaneous.xml").write_text(LIBRARY)
    for name, text in snippets.items():
        (templates_dir / f"{name}.txt").write_text(text)
    return templates_dir / "flutter_miscellaneous.xml"


class TestCiWorkflow:
    """Tests for CI workflow generation."""

    def test_ci_versions_skip_dev_and_snapshot(self, tmp_path):
        """Only stable, released versions are listed."""
        path = write_matrix(
            tmp_path,
            [
                matrix_row("2023.1"),
                matrix_row("2023.2", "dev"),
                matrix_row("2023.3", untilBuild="233.SNAPSHOT"),
                matrix_row("2022.3"),
            ],
        )
        specs = create_build_specs(path, None)

        assert ci_versions(specs) == ["2023.1", "2022.3"]

    def test_generate_ci_workflow(self, tmp_path):
        """The workflow has a header and the joined version list."""
        write_ci_template(tmp_path)
        path = write_matrix(tmp_path, [matrix_row("2023.1"), matrix_row("2022.3")])

        workflow = generate_ci_workflow(create_build_specs(path, None), tmp_path)

        text = workflow.read_text()
        assert text.startswith("# Do not edit; instead, modify presubmit.yaml.template")
        assert "version: [2023.1, 2022.3]" in text

    def test_fresh_when_newer_than_matrix(self, tmp_path):
        matrix = write_matrix(tmp_path, [matrix_row("2023.1")])
        workflow = tmp_path / CI_WORKFLOW_PATH
        workflow.parent.mkdir(parents=True)
        workflow.write_text("x")
        os.utime(matrix, (1000, 1000))
        os.utime(workflow, (2000, 2000))

        assert is_ci_workflow_fresh(tmp_path, matrix) is True

    def test_stale_when_older_than_matrix(self, tmp_path):
        matrix = write_matrix(tmp_path, [matrix_row("2023.1")])
        workflow = tmp_path / CI_WORKFLOW_PATH
        workflow.parent.mkdir(parents=True)
        workflow.write_text("x")
        os.utime(workflow, (1000, 1000))
        os.utime(matrix, (2000, 2000))

        assert is_ci_workflow_fresh(tmp_path, matrix) is False

    def test_missing_workflow_is_stale(self, tmp_path):
        matrix = write_matrix(tmp_path, [matrix_row("2023.1")])
        assert is_ci_workflow_fresh(tmp_path, matrix) is False

    def test_missing_matrix(self, tmp_path):
        """A workflow without a matrix cannot be judged."""
        workflow = tmp_path / CI_WORKFLOW_PATH
        workflow.parent.mkdir(parents=True)
        workflow.write_text("x")

        with pytest.raises(ParseError):
            is_ci_workflow_fresh(tmp_path, tmp_path / "product-matrix.json")


class TestLiveTemplates:
    """Tests for live-template library generation."""

    def test_escape_snippet(self):
        assert escape_snippet("a<b>\nc") == "a&lt;b&gt;&#10;c"

    def test_replaces_named_entries(self, tmp_path):
        """Each snippet replaces the value of its named entry only."""
        library = write_live_templates(
            tmp_path, {"stless": "class $NAME$ extends <X> {\n}"}
        )

        generate_live_templates(tmp_path)

        text = library.read_text()
        assert (
            'name="stless" value="class $NAME$ extends &lt;X&gt; {&#10;}"' in text
        )
        assert 'name="stful" value="old"' in text

    def test_missing_entry(self, tmp_path):
        """A snippet without a library entry is an error."""
        write_live_templates(tmp_path, {"unknown": "x"})

        with pytest.raises(LiveTemplateNotFoundError) as exc_info:
            generate_live_templates(tmp_path)
        assert exc_info.value.name == "unknown"


class TestRunGenerate:
    """Tests for run_generate function."""

    def test_generates_everything(self, project, run_context):
        """Manifests, workflow and live templates are all written."""
        write_ci_template(project)
        library = write_live_templates(project, {"stless": "x"})
        config = RunConfig.create(GenerateCommand())
        specs = run_context.load_specs(config)

        assert run_generate(config, run_context, specs) == 0

        plugin_xml = project / "resources" / "META-INF" / "plugin.xml"
        studio_xml = project / "resources" / "META-INF" / "studio-contribs.xml"
        assert "<version>SNAPSHOT</version>" in plugin_xml.read_text()
        assert "com.intellij.modules.androidstudio" in studio_xml.read_text()
        assert (project / CI_WORKFLOW_PATH).exists()
        assert 'value="x"' in library.read_text()

    def test_release_mode_runs_gate(self, project, run_context, repo):
        """In release mode a failing gate makes generate fail."""
        write_ci_template(project)
        write_live_templates(project, {})
        repo.branch = "main"
        config = RunConfig.create(GenerateCommand(), release="77.0")
        specs = run_context.load_specs(config)

        assert run_generate(config, run_context, specs) == 1
