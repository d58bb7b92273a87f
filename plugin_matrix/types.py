"""Shared type definitions for plugin_matrix.

This module contains enums and small dataclasses shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class Channel(str, Enum):
    """Distribution channel a matrix row or a run targets."""

    STABLE = "stable"
    DEV = "dev"
    # Provision-only pass; accepts any row and stops before building
    SETUP = "setup"


class Product(str, Enum):
    """IDE product a matrix row targets."""

    INTELLIJ = "ij"
    ANDROID_STUDIO = "as"


class CommandKind(str, Enum):
    """Top-level operation requested by the operator."""

    BUILD = "build"
    TEST = "test"
    DEPLOY = "deploy"
    GENERATE = "generate"
    SETUP = "setup"


# Sentinel marking an unreleased (EAP) upper compatibility bound
SNAPSHOT = "SNAPSHOT"


@dataclass
class OperationResult:
    """Result of an operation (build, upload, etc.)."""

    success: bool
    message: str
    code: str | None = None
    exit_code: int = 0
    details: dict[str, object] = field(default_factory=dict)


__all__ = [
    "SNAPSHOT",
    "Channel",
    "CommandKind",
    "OperationResult",
    "Product",
]
