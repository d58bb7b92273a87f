"""Artifact cache module.

This module handles:
- SDK archive download and extraction
- Per-version cache directories with a freshness stamp
- Locking so one version is provisioned by one process at a time
"""

from plugin_matrix.artifacts.fetch import (
    DownloadError,
    ExtractionError,
    download_file,
    extract_archive,
)
from plugin_matrix.artifacts.service import Artifact, ArtifactCache, cache_lock

__all__ = [
    "Artifact",
    "ArtifactCache",
    "DownloadError",
    "ExtractionError",
    "cache_lock",
    "download_file",
    "extract_archive",
]
