"""Artifact cache service.

This module provides provisioning of the SDK archives a build spec needs:
- ArtifactCache.required_artifacts(): archives derived from the spec
- ArtifactCache.is_fresh(): stamp newer than the product matrix
- ArtifactCache.provision(): download if missing, always re-unpack, stamp

Each spec version owns its own cache directory. Provisioning holds a
per-version file lock so concurrent runs never unpack the same version twice.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from plugin_matrix.artifacts.fetch import (
    DOWNLOAD_TIMEOUT,
    DownloadError,
    ExtractionError,
    compute_file_sha256,
    download_file,
    extract_archive,
)

if TYPE_CHECKING:
    from plugin_matrix.config import Settings
    from plugin_matrix.matrix.models import BuildSpec

logger = logging.getLogger(__name__)

STAMP_FILENAME = ".provisioned.json"
LOCK_DIRNAME = ".locks"
ANDROID_STUDIO_DIRNAME = "android-studio"
DART_PLUGIN_DIRNAME = "Dart"


@dataclass(frozen=True)
class Artifact:
    """One archive required by a spec.

    Attributes:
        file: Archive file name, also its name below the base URL.
        output: Directory the archive is unpacked into.
    """

    file: str
    output: str

    def url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/{self.file}"


@contextmanager
def cache_lock(
    artifacts_dir: Path,
    version: str,
    timeout: float | None = None,
) -> Iterator[None]:
    """Acquire the provisioning lock for one spec version.

    Args:
        artifacts_dir: Root artifacts directory.
        version: Spec version whose cache is locked.
        timeout: Lock acquisition timeout in seconds (None = blocking).

    Yields:
        None when lock is acquired.

    Raises:
        TimeoutError: If lock cannot be acquired within timeout.
    """
    lock_dir = artifacts_dir / LOCK_DIRNAME
    lock_dir.mkdir(parents=True, exist_ok=True)
    lock_file = lock_dir / f"{version.replace('/', '_')}.lock"

    logger.debug("Acquiring artifact lock for %s", version)
    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    try:
        if timeout is not None:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError as e:
                    if time.monotonic() - start >= timeout:
                        raise TimeoutError(
                            f"Timeout waiting for artifact lock on {version}"
                        ) from e
                    time.sleep(0.1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
        logger.debug("Artifact lock released for %s", version)


class ArtifactCache:
    """SDK archives of one build spec, cached under artifacts/<version>/."""

    def __init__(
        self,
        spec: BuildSpec,
        artifacts_dir: Path,
        matrix_path: Path,
        base_url: str,
        offline: bool = False,
        timeout: float = DOWNLOAD_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        self.spec = spec
        self.artifacts_dir = artifacts_dir
        self.matrix_path = matrix_path
        self.base_url = base_url
        self.offline = offline
        self.timeout = timeout
        self.client = client

    @classmethod
    def from_settings(
        cls, spec: BuildSpec, settings: Settings, root: Path
    ) -> ArtifactCache:
        """Create the cache of a spec from the effective settings."""
        return cls(
            spec,
            artifacts_dir=settings.resolve(root, settings.artifacts_dir),
            matrix_path=settings.resolve(root, settings.matrix_file),
            base_url=settings.artifact_base_url,
            offline=settings.offline,
            timeout=settings.download_timeout,
        )

    @property
    def cache_dir(self) -> Path:
        return self.artifacts_dir / self.spec.version

    @property
    def stamp_path(self) -> Path:
        return self.cache_dir / STAMP_FILENAME

    def required_artifacts(self) -> list[Artifact]:
        """Return the archives this spec needs, IDE first."""
        spec = self.spec
        version = spec.idea_version or spec.version
        if spec.is_android_studio:
            ide = Artifact(
                file=f"android-studio-{version}-linux.tar.gz",
                output=ANDROID_STUDIO_DIRNAME,
            )
        else:
            ide = Artifact(
                file=f"{spec.idea_product}-{version}.tar.gz",
                output=spec.idea_product,
            )
        artifacts = [ide]
        if spec.dart_plugin_version:
            artifacts.append(
                Artifact(
                    file=f"Dart-{spec.dart_plugin_version}.zip",
                    output=DART_PLUGIN_DIRNAME,
                )
            )
        return artifacts

    def is_fresh(self) -> bool:
        """Check the cache was provisioned after the last matrix change."""
        if not self.stamp_path.exists() or not self.matrix_path.exists():
            return False
        return self.stamp_path.stat().st_mtime > self.matrix_path.stat().st_mtime

    def provision(self, rebuild_cache: bool = False) -> int:
        """Make the spec's artifacts available on disk.

        Args:
            rebuild_cache: Unpack again even if the cache is fresh.

        Returns:
            0 on success, 1 if any artifact could not be provisioned.
        """
        if not rebuild_cache and self.is_fresh():
            logger.info("Using cached artifacts for %s", self.spec.version)
            return 0

        try:
            with cache_lock(self.artifacts_dir, self.spec.version):
                self._provision_locked()
        except DownloadError as e:
            logger.error("Cannot download artifacts for %s: %s", self.spec, e)
            return 1
        except ExtractionError as e:
            logger.error("Cannot unpack artifacts for %s: %s", self.spec, e)
            return 1
        except OSError as e:
            logger.error("Cannot provision artifacts for %s: %s", self.spec, e)
            return 1
        return 0

    def _provision_locked(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        # Only a completed pass may leave a stamp behind
        self.stamp_path.unlink(missing_ok=True)
        checksums: dict[str, str] = {}

        client = self.client
        owns_client = client is None
        if client is None:
            client = httpx.Client(follow_redirects=True)
        try:
            for artifact in self.required_artifacts():
                checksums[artifact.file] = self._fetch(client, artifact)
                self._unpack(artifact)
        finally:
            if owns_client:
                client.close()

        self._write_stamp(checksums)

    def _fetch(self, client: httpx.Client, artifact: Artifact) -> str:
        archive = self.cache_dir / artifact.file
        if archive.exists():
            logger.debug("Archive %s already present", archive)
            return compute_file_sha256(archive)
        if self.offline:
            raise DownloadError(
                f"Cannot download {artifact.file} in offline mode",
                code="offline_mode",
            )
        result = download_file(
            client, artifact.url(self.base_url), archive, timeout=self.timeout
        )
        return result.checksum

    def _unpack(self, artifact: Artifact) -> None:
        output = self.cache_dir / artifact.output
        if output.exists():
            logger.debug("Removing %s", output)
            shutil.rmtree(output)
        extract_archive(self.cache_dir / artifact.file, output)

    def _write_stamp(self, checksums: dict[str, str]) -> None:
        stamp = {
            "version": self.spec.version,
            "files": checksums,
            "provisioned_at": datetime.now(timezone.utc).isoformat(),
        }
        self.stamp_path.write_text(json.dumps(stamp, indent=2), encoding="utf-8")
        logger.info("Provisioned artifacts for %s", self.spec.version)


__all__ = [
    "Artifact",
    "ArtifactCache",
    "STAMP_FILENAME",
    "cache_lock",
]
