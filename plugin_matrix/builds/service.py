"""Build orchestrator.

This module provides the matrix-wide operations:
- run_matrix(): provision, edit, build and save every selected spec
- run_setup(): provision the unit-test target for local development
- run_tests(): run the unit tests against the unit-test target

Specs are processed sequentially in matrix order. The first failing step
stops the run and its status is returned unchanged.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from plugin_matrix.artifacts.service import ArtifactCache
from plugin_matrix.builds.edits import EditStateError, with_edits
from plugin_matrix.context import BuildCommand, TestCommand
from plugin_matrix.manifests.generate import is_ci_workflow_fresh
from plugin_matrix.manifests.template import (
    PLUGIN_MANIFESTS,
    generate_plugin_files,
    preserved_files,
)
from plugin_matrix.release.gate import is_release_ready
from plugin_matrix.types import Channel

if TYPE_CHECKING:
    from plugin_matrix.builds.runner import Builder
    from plugin_matrix.context import RunConfig, RunContext
    from plugin_matrix.matrix.models import BuildSpec

logger = logging.getLogger(__name__)

DISTRIBUTIONS_DIRNAME = "distributions"
# Resources directory the build reads the generated manifests from
MANIFEST_DEST_DIR = "resources"


def separator(title: str) -> None:
    logger.info("")
    logger.info("%s:", title)


def releases_file_path(config: RunConfig, context: RunContext, spec: BuildSpec) -> Path:
    """Return where the built archive of a spec is stored.

    releases/release_<major>/<version>/ in release mode, otherwise
    releases/release_master/ or releases/release_dev/ by channel.
    """
    if config.is_release_mode:
        scope = f"release_{config.release_major}"
    elif spec.is_dev_channel:
        scope = "release_dev"
    else:
        scope = "release_master"
    return context.releases_dir / scope / spec.version / context.settings.artifact_name


def purge_build_dir(build_dir: Path) -> None:
    """Remove everything below the build directory."""
    if not build_dir.exists():
        return
    for entry in build_dir.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def distribution_path(context: RunContext, spec: BuildSpec) -> Path:
    """Return the archive Gradle produced for a spec.

    Raises:
        FileNotFoundError: If neither the local nor the CI archive name exists.
    """
    dist_dir = context.build_dir / DISTRIBUTIONS_DIRNAME
    name = context.settings.distribution_name
    candidates = [
        dist_dir / f"{name}-{spec.version_number}.zip",
        dist_dir / f"{name}-kokoro-{spec.version_number}.zip",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    raise FileNotFoundError(f"No plugin archive found in {dist_dir}")


def save_plugin_artifact(config: RunConfig, context: RunContext, spec: BuildSpec) -> Path:
    """Copy the built archive to its releases path.

    Returns:
        The releases path.

    Raises:
        FileNotFoundError: If the build produced no archive.
        OSError: If the archive cannot be copied.
    """
    source = distribution_path(context, spec)
    dest = releases_file_path(config, context, spec)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, dest)
    return dest


def _build_spec(context: RunContext, spec: BuildSpec, builder: Builder) -> int:
    manifests = [context.root / MANIFEST_DEST_DIR / m for m in PLUGIN_MANIFESTS]
    with preserved_files(manifests):
        generate_plugin_files(spec, context.root, MANIFEST_DEST_DIR)
        return builder.build(spec)


def _artifacts(context: RunContext, spec: BuildSpec) -> ArtifactCache:
    if spec.artifacts is None:
        spec.artifacts = ArtifactCache.from_settings(spec, context.settings, context.root)
    return spec.artifacts


def _release_checks_pass(config: RunConfig, context: RunContext) -> bool:
    return is_release_ready(
        config,
        context.repository,
        lambda: is_ci_workflow_fresh(context.root, context.matrix_path),
    )


def run_matrix(
    config: RunConfig,
    context: RunContext,
    specs: list[BuildSpec],
    builder: Builder,
) -> int:
    """Build every spec selected by the run configuration.

    Args:
        config: Run configuration; config.command is a BuildCommand.
        context: Run context.
        specs: All specs of the matrix in matrix order.
        builder: External build collaborator.

    Returns:
        Process exit status; the first non-zero step status is returned as is.
    """
    command = config.command
    if not isinstance(command, BuildCommand):
        raise TypeError(f"run_matrix needs a BuildCommand, got {command!r}")

    try:
        if config.is_release_mode:
            if command.unpack:
                separator("Release mode (--release) implies --unpack")
            if not _release_checks_pass(config, context):
                return 1

        build_specs = specs
        if command.only_version:
            build_specs = [s for s in specs if s.version == command.only_version]
            if not build_specs:
                logger.error("No spec found for version '%s'", command.only_version)
                return 1

        if command.minor is not None:
            context.build_number = command.minor - 1

        rebuild_cache = config.is_release_mode or command.unpack or len(build_specs) > 1
        for spec in build_specs:
            if not config.selects_channel(spec) or not config.selects_product(spec):
                continue

            context.build_number += 1
            spec.build_number = context.build_number
            if spec.is_dev_channel and not config.is_dev_channel:
                spec.build_for_master()
            elif config.is_dev_channel:
                spec.build_for_dev()

            result = _artifacts(context, spec).provision(rebuild_cache=rebuild_cache)
            if result != 0:
                return result
            if config.channel == Channel.SETUP:
                return 0

            separator(f"Building {context.settings.artifact_name}")
            purge_build_dir(context.build_dir)
            logger.info("spec.version: %s", spec.version)

            result = with_edits(
                spec,
                context.edit_commands,
                context.root,
                context.tracker,
                lambda spec=spec: _build_spec(context, spec, builder),
            )
            if result != 0:
                logger.error("Build of %s returned %d", spec, result)
                return result

            try:
                dest = save_plugin_artifact(config, context, spec)
            except Exception as e:
                logger.error("Cannot save the plugin archive of %s: %s", spec, e)
                return 1
            builder.stop_daemon()

            separator("Built artifact")
            logger.info("%s", dest)

        if command.only_version is None:
            try:
                context.tracker.check_and_clear()
            except EditStateError as e:
                logger.error("%s", e)
                return 1

        return 0
    finally:
        if command.setup:
            run_setup(config, context, specs, builder)


def unit_test_target(specs: list[BuildSpec]) -> BuildSpec | None:
    return next((s for s in specs if s.is_unit_test_target), None)


def run_setup(
    config: RunConfig,
    context: RunContext,
    specs: list[BuildSpec],
    builder: Builder,
) -> int:
    """Unpack the artifacts of the unit-test target.

    Runs the matrix in the setup channel restricted to the unit-test target,
    which provisions it with a forced unpack and stops before building.
    """
    target = unit_test_target(specs)
    if target is None:
        logger.error("No spec is marked as the unit-test target")
        return 1
    setup_config = replace(
        config,
        command=BuildCommand(only_version=target.version, unpack=True, setup=False),
        channel=Channel.SETUP,
        release=None,
    )
    separator(f"Setting up {target.version}")
    return run_matrix(setup_config, context, specs, builder)


def run_tests(
    config: RunConfig,
    context: RunContext,
    specs: list[BuildSpec],
    builder: Builder,
) -> int:
    """Provision the unit-test target and run the tests against it.

    Returns:
        Process exit status.
    """
    command = config.command
    if not isinstance(command, TestCommand):
        raise TypeError(f"run_tests needs a TestCommand, got {command!r}")

    try:
        java_home = context.settings.java_home
        if java_home is None:
            logger.error(
                "JAVA_HOME environment variable not set - this is needed by gradle."
            )
            return 1
        logger.info("JAVA_HOME=%s", java_home)

        spec = unit_test_target(specs)
        if spec is None:
            logger.error("No spec is marked as the unit-test target")
            return 1

        result = _artifacts(context, spec).provision(rebuild_cache=True)
        if result != 0:
            return result
        if command.skip:
            return 0
        if command.integration:
            logger.error("Integration test execution is not implemented")
            return 1
        return with_edits(
            spec,
            context.edit_commands,
            context.root,
            context.tracker,
            lambda: builder.test(spec),
        )
    finally:
        if command.setup:
            run_setup(config, context, specs, builder)


__all__ = [
    "distribution_path",
    "purge_build_dir",
    "releases_file_path",
    "run_matrix",
    "run_setup",
    "run_tests",
    "save_plugin_artifact",
    "separator",
    "unit_test_target",
]
