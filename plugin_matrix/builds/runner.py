"""Build runner for executing Gradle.

This module handles:
- Composing gradlew commands for a build spec
- Executing them with subprocess
- Capturing stdout/stderr to log files
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from plugin_matrix.matrix.models import BuildSpec

logger = logging.getLogger(__name__)

GRADLEW = Path("third_party") / "gradlew"
LOG_DIRNAME = "logs"


class BuildExecutionError(Exception):
    """Raised when the external build tool cannot be run."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


@dataclass
class BuildResult:
    """Result of a Gradle invocation.

    Attributes:
        exit_code: Process exit code.
        log_path: Path to the log file.
        started_at: Start time.
        finished_at: Finish time.
        command: The command that was executed.
    """

    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class Builder(Protocol):
    """External build collaborator used by the orchestrator."""

    def build(self, spec: BuildSpec) -> int: ...

    def test(self, spec: BuildSpec) -> int: ...

    def stop_daemon(self) -> int: ...


def gradle_properties(spec: BuildSpec) -> list[str]:
    """Return the -P project properties describing a spec."""
    props = {
        "name": spec.name,
        "buildSpec": spec.version,
        "version": spec.version_number,
        "ideaProduct": spec.idea_product,
        "ideaVersion": spec.idea_version or spec.version,
        "baseVersion": spec.base_version or "",
        "dartPluginVersion": spec.dart_plugin_version or "",
        "androidPluginVersion": spec.android_plugin_version or "",
        "sinceBuild": spec.since_build,
        "untilBuild": spec.until_build,
        "singleTarget": "true",
    }
    args = [f"-P{key}={value}" for key, value in props.items()]
    if spec.files_to_skip:
        args.append(f"-PfilesToSkip={','.join(spec.files_to_skip)}")
    return args


def compose_gradle_command(
    task: str,
    spec: BuildSpec | None = None,
    gradlew: Path = GRADLEW,
) -> list[str]:
    """Compose a gradlew command.

    Args:
        task: Gradle task (buildPlugin, test, --stop).
        spec: Spec whose properties are passed, if any.
        gradlew: Wrapper script relative to the working root.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [f"./{gradlew.as_posix()}", task]
    if spec is not None:
        cmd.extend(gradle_properties(spec))
    return cmd


class GradleBuilder:
    """Runs Gradle in the working root and logs output to build/logs."""

    def __init__(
        self,
        root: Path,
        log_dir: Path | None = None,
        java_home: Path | None = None,
        timeout: int | None = None,
    ) -> None:
        self.root = root
        self.log_dir = log_dir or root / LOG_DIRNAME
        self.java_home = java_home
        self.timeout = timeout

    def build(self, spec: BuildSpec) -> int:
        return self.run(compose_gradle_command("buildPlugin", spec), "build").exit_code

    def test(self, spec: BuildSpec) -> int:
        return self.run(compose_gradle_command("test", spec), "test").exit_code

    def stop_daemon(self) -> int:
        return self.run(compose_gradle_command("--stop"), "stop").exit_code

    def run(self, cmd: list[str], log_name: str) -> BuildResult:
        """Execute a Gradle command.

        Args:
            cmd: Command to run in the working root.
            log_name: Log file stem.

        Returns:
            BuildResult with execution details.

        Raises:
            BuildExecutionError: If the command cannot be started or times out.
        """
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.log_dir / f"{log_name}.log"

        cmd_str = shlex.join(cmd)
        logger.info("Executing: %s", cmd_str)

        env: dict[str, str] | None = None
        if self.java_home is not None:
            env = dict(os.environ)
            env["JAVA_HOME"] = str(self.java_home)

        started_at = datetime.now(timezone.utc)
        try:
            with log_path.open("w") as log_file:
                log_file.write(f"# Command: {cmd_str}\n")
                log_file.write(f"# Started: {started_at.isoformat()}\n")
                log_file.write(f"# CWD: {self.root}\n\n")
                log_file.flush()

                result = subprocess.run(
                    cmd,
                    cwd=self.root,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    timeout=self.timeout,
                    env=env,
                    check=False,
                )
        except subprocess.TimeoutExpired as e:
            message = f"{cmd_str} timed out after {self.timeout} seconds"
            logger.error("%s. See log: %s", message, log_path)
            raise BuildExecutionError(message, exit_code=-1, code="build_timeout") from e
        except OSError as e:
            message = f"Failed to execute {cmd_str}: {e}"
            logger.error(message)
            raise BuildExecutionError(message, code="execution_error") from e

        finished_at = datetime.now(timezone.utc)
        with log_path.open("a") as log_file:
            log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
            log_file.write(f"# Exit code: {result.returncode}\n")

        if result.returncode != 0:
            logger.error(
                "%s failed with exit code %d. See log: %s",
                cmd_str,
                result.returncode,
                log_path,
            )
        return BuildResult(
            exit_code=result.returncode,
            log_path=log_path,
            started_at=started_at,
            finished_at=finished_at,
            command=cmd_str,
        )


__all__ = [
    "BuildExecutionError",
    "BuildResult",
    "Builder",
    "GradleBuilder",
    "compose_gradle_command",
    "gradle_properties",
]
