"""Artifact fetch module.

This module handles:
- Download of SDK archives with SHA-256 computation
- Extraction of tar and zip archives with a path-traversal guard
"""

from __future__ import annotations

import hashlib
import logging
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import httpx

logger = logging.getLogger(__name__)

# SDK archives run to several hundred megabytes
DOWNLOAD_TIMEOUT = 3600
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class DownloadError(Exception):
    """Raised when an artifact cannot be fetched."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        super().__init__(message)
        self.code = code


class ExtractionError(Exception):
    """Raised when an archive cannot be unpacked."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class DownloadResult:
    """A completed download and the digest of its bytes."""

    archive_path: Path
    checksum: str
    size_bytes: int


def compute_file_sha256(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Return the SHA-256 hex digest of a file on disk."""
    digest = hashlib.sha256()
    with file_path.open("rb") as f:
        for block in iter(lambda: f.read(chunk_size), b""):
            digest.update(block)
    return digest.hexdigest()


def _stream_to(
    client: httpx.Client, url: str, target: Path, timeout: float, chunk_size: int
) -> tuple[str, int]:
    digest = hashlib.sha256()
    written = 0
    with client.stream("GET", url, timeout=timeout) as response:
        response.raise_for_status()
        with target.open("wb") as out:
            for block in response.iter_bytes(chunk_size):
                out.write(block)
                digest.update(block)
                written += len(block)
    return digest.hexdigest(), written


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Fetch url into dest_path.

    The body goes to ``<dest>.part`` first and is renamed once complete, so
    an interrupted transfer never leaves a truncated archive under the
    final name.

    Raises:
        DownloadError: With code http_error, timeout or network_error.
    """
    partial = dest_path.with_name(dest_path.name + ".part")
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Fetching %s", url)

    try:
        checksum, size = _stream_to(client, url, partial, timeout, chunk_size)
    except httpx.HTTPStatusError as e:
        partial.unlink(missing_ok=True)
        status = e.response.status_code
        raise DownloadError(f"{url} answered {status}", code="http_error") from e
    except httpx.TimeoutException as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Timed out fetching {url}", code="timeout") from e
    except httpx.RequestError as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Cannot reach {url}: {e}", code="network_error") from e

    partial.replace(dest_path)
    logger.info("Saved %s (%d bytes, sha256 %s)", dest_path.name, size, checksum)
    return DownloadResult(archive_path=dest_path, checksum=checksum, size_bytes=size)


def _check_member_name(name: str, archive_path: Path) -> None:
    member_path = PurePosixPath(name)
    if member_path.is_absolute() or ".." in member_path.parts:
        raise ExtractionError(
            f"Refusing to extract {name}: path traversal detected",
            code="path_traversal",
        )
    if not name:
        raise ExtractionError(
            f"Archive {archive_path} contains an unnamed member",
            code="bad_member",
        )


def extract_archive(archive_path: Path, dest_dir: Path) -> Path:
    """Extract a tar (optionally compressed) or zip archive.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory for extraction.

    Returns:
        The destination directory.

    Raises:
        ExtractionError: If the archive is empty, unsupported, unsafe or corrupt.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    suffixes = "".join(archive_path.suffixes).lower()
    try:
        if suffixes.endswith(".zip"):
            with zipfile.ZipFile(archive_path) as zf:
                names = zf.namelist()
                if not names:
                    raise ExtractionError(
                        f"Archive {archive_path} is empty", code="empty_archive"
                    )
                for name in names:
                    _check_member_name(name, archive_path)
                zf.extractall(dest_dir)
        elif suffixes.endswith((".tar.gz", ".tgz", ".tar.xz", ".tar")):
            with tarfile.open(archive_path, "r:*") as tar:
                members = tar.getmembers()
                if not members:
                    raise ExtractionError(
                        f"Archive {archive_path} is empty", code="empty_archive"
                    )
                for member in members:
                    _check_member_name(member.name, archive_path)
                tar.extractall(dest_dir, filter="data")
        else:
            raise ExtractionError(
                f"Unsupported archive format: {archive_path.name}",
                code="unsupported_format",
            )
    except (tarfile.TarError, zipfile.BadZipFile) as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="archive_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    logger.info("Extracted %s", archive_path.name)
    return dest_dir


__all__ = [
    "DownloadError",
    "DownloadResult",
    "ExtractionError",
    "compute_file_sha256",
    "download_file",
    "extract_archive",
]
