"""Configuration settings for plugin_matrix.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Public artifact mirror used by the Flutter plugin builds
DEFAULT_ARTIFACT_BASE_URL = "https://storage.googleapis.com/flutter_infra_release/flutter/intellij"

# JetBrains Marketplace upload endpoint
DEFAULT_UPLOAD_URL = "https://plugins.jetbrains.com/plugin/uploadPlugin"


def _default_registry_ids() -> dict[str, str]:
    """Return the default plugin id -> marketplace id mapping."""
    return {"io.flutter": "9212", "io.flutter.as": "10139"}


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the PLUGIN_MATRIX_
    prefix. CLI flags can override these at runtime. Relative paths are
    resolved against the working root of the run.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLUGIN_MATRIX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Working root
    root_dir: Path | None = Field(
        default=None,
        description="Working-directory override (enables test mode)",
    )
    release: str | None = Field(
        default=None,
        description="Release identifier (major.minor)",
    )

    # Inputs and outputs (relative to the root)
    matrix_file: Path = Field(
        default=Path("product-matrix.json"),
        description="Product matrix describing every build target",
    )
    edits_file: Path = Field(
        default=Path("tool/edits.yaml"),
        description="Version-scoped source edits applied around builds",
    )
    artifacts_dir: Path = Field(
        default=Path("artifacts"),
        description="Root directory for provisioned SDK artifacts",
    )
    releases_dir: Path = Field(
        default=Path("releases"),
        description="Root directory for built plugin archives",
    )
    build_dir: Path = Field(
        default=Path("build"),
        description="Build output directory purged before every build",
    )

    # Naming
    artifact_name: str = Field(
        default="flutter-intellij.zip",
        description="File name of the archive placed under releases/",
    )
    distribution_name: str = Field(
        default="flutter-intellij",
        description="Base name of the archive produced by Gradle",
    )
    plugin_registry_ids: dict[str, str] = Field(
        default_factory=_default_registry_ids,
        description="Plugin id to marketplace plugin number",
    )

    # Remote endpoints
    artifact_base_url: str = Field(
        default=DEFAULT_ARTIFACT_BASE_URL,
        description="Base URL for SDK artifact downloads",
    )
    upload_url: str = Field(
        default=DEFAULT_UPLOAD_URL,
        description="Marketplace upload endpoint",
    )
    upload_token: SecretStr | None = Field(
        default=None,
        description="Bearer token for marketplace uploads",
    )
    upload_token_file: Path | None = Field(
        default=None,
        description="File holding the bearer token (used if token unset)",
    )

    # Toolchain
    java_home: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("JAVA_HOME", "PLUGIN_MATRIX_JAVA_HOME"),
        description="JDK used by Gradle",
    )

    # Operational modes
    offline: bool = Field(
        default=False,
        description="Offline mode - do not download artifacts",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for artifact downloads",
    )

    def resolve(self, root: Path, path: Path) -> Path:
        """Resolve a configured path against the working root."""
        return path if path.is_absolute() else root / path

    def read_upload_token(self) -> str | None:
        """Return the upload token from the setting or the token file."""
        if self.upload_token is not None:
            return self.upload_token.get_secret_value()
        if self.upload_token_file is not None and self.upload_token_file.exists():
            token = self.upload_token_file.read_text(encoding="utf-8").strip()
            return token or None
        return None


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secrets are rendered masked by pydantic.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
