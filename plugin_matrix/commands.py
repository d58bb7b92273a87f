"""Command dispatch.

Each command descriptor maps to one driver. Any unexpected exception
escaping a driver is logged with its traceback and becomes exit status 1.
"""

from __future__ import annotations

import logging

from plugin_matrix.builds.runner import Builder, GradleBuilder
from plugin_matrix.builds.service import run_matrix, run_setup, run_tests
from plugin_matrix.context import (
    BuildCommand,
    DeployCommand,
    GenerateCommand,
    RunConfig,
    RunContext,
    SetupCommand,
    TestCommand,
)
from plugin_matrix.manifests.generate import run_generate
from plugin_matrix.release.deploy import CurlUploader, Uploader, run_deploy

logger = logging.getLogger(__name__)


def dispatch(
    config: RunConfig,
    context: RunContext,
    builder: Builder | None = None,
    uploader: Uploader | None = None,
) -> int:
    """Run the command of a configuration.

    Args:
        config: Run configuration.
        context: Run context.
        builder: External build collaborator; Gradle in the root by default.
        uploader: Upload collaborator; curl by default.

    Returns:
        Process exit status.
    """
    try:
        return _dispatch(config, context, builder, uploader)
    except Exception:
        logger.exception("Command %s failed", config.kind.value)
        return 1


def _dispatch(
    config: RunConfig,
    context: RunContext,
    builder: Builder | None,
    uploader: Uploader | None,
) -> int:
    command = config.command
    specs = context.load_specs(config)
    if builder is None:
        builder = GradleBuilder(context.root, java_home=context.settings.java_home)

    if isinstance(command, BuildCommand):
        return run_matrix(config, context, specs, builder)
    if isinstance(command, TestCommand):
        return run_tests(config, context, specs, builder)
    if isinstance(command, DeployCommand):
        if uploader is None:
            uploader = CurlUploader(context.settings.upload_url)
        return run_deploy(config, context, specs, uploader)
    if isinstance(command, GenerateCommand):
        return run_generate(config, context, specs)
    if isinstance(command, SetupCommand):
        return run_setup(config, context, specs, builder)
    raise TypeError(f"Unknown command: {command!r}")


__all__ = ["dispatch"]
