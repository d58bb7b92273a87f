"""Deploy driver.

Uploads the archives built for the active channel to the plugin
marketplace. Release-mode deploys must pass the release gate; outside
release mode only the dev channel may be deployed.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from plugin_matrix.builds.service import releases_file_path
from plugin_matrix.manifests.generate import is_ci_workflow_fresh
from plugin_matrix.release.gate import is_release_ready
from plugin_matrix.types import OperationResult

if TYPE_CHECKING:
    from plugin_matrix.context import RunConfig, RunContext
    from plugin_matrix.matrix.models import BuildSpec

logger = logging.getLogger(__name__)


class Uploader(Protocol):
    """Upload collaborator used by the deploy driver."""

    def upload(
        self, path: Path, registry_id: str, token: str, channel: str
    ) -> OperationResult: ...


def compose_upload_command(
    url: str, path: Path, registry_id: str, token: str, channel: str
) -> list[str]:
    """Compose the curl command uploading one archive.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [
        "curl",
        "-i",
        "--header",
        f"Authorization: Bearer {token}",
        "-F",
        f"pluginId={registry_id}",
        "-F",
        f"file=@{path}",
        "-F",
        f"channel={channel}",
        url,
    ]


class CurlUploader:
    """Uploads archives with curl."""

    def __init__(self, url: str, timeout: int | None = None) -> None:
        self.url = url
        self.timeout = timeout

    def upload(
        self, path: Path, registry_id: str, token: str, channel: str
    ) -> OperationResult:
        cmd = compose_upload_command(self.url, path, registry_id, token, channel)
        logger.info("Uploading %s to %s (channel %s)", path, self.url, channel)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.error("Upload of %s timed out after %s seconds", path, self.timeout)
            return OperationResult(
                success=False,
                message=f"Upload of {path} timed out",
                code="upload_timeout",
                exit_code=1,
            )
        except OSError as e:
            logger.error("Failed to run curl: %s", e)
            return OperationResult(
                success=False,
                message=str(e),
                code="upload_error",
                exit_code=1,
            )

        lines = result.stdout.strip().splitlines()
        last_line = lines[-1] if lines else ""
        if result.returncode != 0:
            logger.error("Upload failed: %s", result.stderr.strip())
        logger.info("Upload response: %s", last_line)
        return OperationResult(
            success=result.returncode == 0,
            message=last_line,
            code=None if result.returncode == 0 else "upload_failed",
            exit_code=result.returncode,
        )


def run_deploy(
    config: RunConfig,
    context: RunContext,
    specs: list[BuildSpec],
    uploader: Uploader,
) -> int:
    """Upload the archive of every spec in the active channel.

    Returns:
        Process exit status.
    """
    if config.is_release_mode:
        if not is_release_ready(
            config,
            context.repository,
            lambda: is_ci_workflow_fresh(context.root, context.matrix_path),
        ):
            return 1
    elif not config.is_dev_channel:
        logger.error("Deploy must have a --release or --channel=dev argument")
        return 1

    token = context.settings.read_upload_token()
    if not token:
        logger.error("No upload token configured (PLUGIN_MATRIX_UPLOAD_TOKEN)")
        return 1

    for spec in specs:
        if not config.selects_channel(spec) or not config.selects_product(spec):
            continue
        path = releases_file_path(config, context, spec)
        if not path.exists():
            logger.error("Plugin archive for %s not found: %s", spec, path)
            return 1
        registry_id = context.settings.plugin_registry_ids.get(spec.plugin_id)
        if registry_id is None:
            logger.error("No marketplace id configured for %s", spec.plugin_id)
            return 1
        result = uploader.upload(path, registry_id, token, spec.channel.value)
        if not result.success:
            return result.exit_code or 1
    return 0


__all__ = [
    "CurlUploader",
    "Uploader",
    "compose_upload_command",
    "run_deploy",
]
