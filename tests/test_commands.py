"""Tests for commands.py module."""

from unittest.mock import MagicMock, patch

import pytest

from plugin_matrix.artifacts.service import ArtifactCache
from plugin_matrix.commands import dispatch
from plugin_matrix.context import (
    BuildCommand,
    DeployCommand,
    GenerateCommand,
    RunConfig,
    SetupCommand,
    TestCommand,
)
from plugin_matrix.types import Channel


@pytest.fixture
def provision():
    with patch.object(
        ArtifactCache, "provision", autospec=True, return_value=0
    ) as mock_provision:
        yield mock_provision


class TestDispatch:
    """Tests for dispatch routing and failure handling."""

    def test_build_routes_to_matrix(self, run_context, builder, provision):
        config = RunConfig.create(BuildCommand(setup=False))

        assert dispatch(config, run_context, builder) == 0
        assert builder.built == ["2023.1"]

    def test_setup_routes_to_setup(self, run_context, builder, provision):
        config = RunConfig.create(SetupCommand(), channel=Channel.SETUP)

        assert dispatch(config, run_context, builder) == 0
        assert provision.call_count == 1
        assert builder.built == []

    def test_test_without_java_home(self, run_context, builder, provision):
        config = RunConfig.create(TestCommand(setup=False))

        assert dispatch(config, run_context, builder) == 1
        assert builder.tested == []

    def test_deploy_uses_given_uploader(self, run_context, builder):
        """A non-dev deploy without a release is refused before uploading."""
        uploader = MagicMock()
        config = RunConfig.create(DeployCommand())

        assert dispatch(config, run_context, builder, uploader) == 1
        uploader.upload.assert_not_called()

    def test_unexpected_exception_becomes_status_one(
        self, run_context, builder, caplog
    ):
        """An exception escaping a driver is logged with its traceback."""
        config = RunConfig.create(GenerateCommand())

        with caplog.at_level("ERROR"):
            assert dispatch(config, run_context, builder) == 1

        assert "Command generate failed" in caplog.text
        assert any(record.exc_info for record in caplog.records)

    def test_driver_exception_from_builder(self, run_context, provision):
        mock_builder = MagicMock()
        mock_builder.build.side_effect = RuntimeError("daemon died")
        config = RunConfig.create(BuildCommand(setup=False))

        assert dispatch(config, run_context, mock_builder) == 1
