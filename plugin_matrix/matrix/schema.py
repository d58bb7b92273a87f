"""Pydantic models for product matrix and edit set validation.

This module defines the Pydantic models for validating the product matrix
and the edit set before they are turned into build specs and edit commands.
Matrix files use camelCase keys; both camelCase and snake_case are accepted.
"""

import re
from typing import Annotated

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from plugin_matrix.types import Channel

VERSION_PATTERN = re.compile(r"^[0-9A-Za-z_.\-]+$")


def _alias(snake: str, camel: str) -> AliasChoices:
    return AliasChoices(snake, camel)


class MatrixEntrySchema(BaseModel):
    """Schema for one target descriptor of the product matrix.

    Attributes:
        name: Human-readable name of the target.
        version: Target-platform version, unique within a channel.
        channel: Distribution channel (stable or dev).
        plugin_id: Plugin identifier written to the manifest.
        since_build: Lower compatibility bound.
        until_build: Upper compatibility bound, may contain SNAPSHOT.
        idea_product: SDK product archive name (ideaIC, android-studio).
        idea_version: SDK product version.
        base_version: Platform build the SDK corresponds to.
        dart_plugin_version: Dart plugin archive version, if any.
        android_plugin_version: Android plugin version, if any.
        is_android_studio: Row targets Android Studio.
        is_unit_test_target: Row is used for unit tests and setup.
        files_to_skip: Sources excluded from this target's compile.
        comments: Free-form notes kept in the matrix.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(default="", description="Target name")
    version: Annotated[
        str, Field(description="Target-platform version", min_length=1, max_length=50)
    ]
    channel: Channel = Field(default=Channel.STABLE, description="Channel")
    plugin_id: str = Field(
        default="io.flutter",
        validation_alias=_alias("plugin_id", "pluginId"),
    )
    since_build: Annotated[
        str,
        Field(min_length=1, validation_alias=_alias("since_build", "sinceBuild")),
    ]
    until_build: Annotated[
        str,
        Field(min_length=1, validation_alias=_alias("until_build", "untilBuild")),
    ]
    idea_product: str = Field(
        default="ideaIC",
        validation_alias=_alias("idea_product", "ideaProduct"),
    )
    idea_version: str | None = Field(
        default=None,
        validation_alias=_alias("idea_version", "ideaVersion"),
    )
    base_version: str | None = Field(
        default=None,
        validation_alias=_alias("base_version", "baseVersion"),
    )
    dart_plugin_version: str | None = Field(
        default=None,
        validation_alias=_alias("dart_plugin_version", "dartPluginVersion"),
    )
    android_plugin_version: str | None = Field(
        default=None,
        validation_alias=_alias("android_plugin_version", "androidPluginVersion"),
    )
    is_android_studio: bool = Field(
        default=False,
        validation_alias=_alias("is_android_studio", "isAndroidStudio"),
    )
    is_unit_test_target: bool = Field(
        default=False,
        validation_alias=_alias("is_unit_test_target", "isUnitTestTarget"),
    )
    files_to_skip: list[str] = Field(
        default_factory=list,
        validation_alias=_alias("files_to_skip", "filesToSkip"),
    )
    comments: str | None = Field(default=None)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version is usable as a directory name."""
        if not VERSION_PATTERN.match(v):
            raise ValueError(
                f"version must match pattern {VERSION_PATTERN.pattern}, got '{v}'"
            )
        return v

    @field_validator("channel", mode="before")
    @classmethod
    def validate_channel(cls, v: object) -> object:
        """Reject the setup pseudo-channel in matrix rows."""
        if v == Channel.SETUP.value:
            raise ValueError("channel must be 'stable' or 'dev'")
        return v


class MatrixFileSchema(BaseModel):
    """Schema for the whole product matrix file."""

    model_config = ConfigDict(extra="ignore")

    entries: list[MatrixEntrySchema] = Field(
        validation_alias=AliasChoices("list", "entries"),
        description="Target descriptors in build order",
    )

    @field_validator("entries")
    @classmethod
    def validate_unique_versions(
        cls, v: list[MatrixEntrySchema]
    ) -> list[MatrixEntrySchema]:
        """Validate each version appears at most once per channel."""
        seen: set[tuple[str, str]] = set()
        for entry in v:
            key = (entry.channel.value, entry.version)
            if key in seen:
                raise ValueError(
                    f"duplicate version '{entry.version}' in channel "
                    f"'{entry.channel.value}'"
                )
            seen.add(key)
        return v


class EditSchema(BaseModel):
    """Schema for one version-scoped source edit.

    Attributes:
        path: File to edit, relative to the working root.
        matcher: Literal text (or regular expression) to replace.
        replacement: Replacement text.
        regex: Treat matcher as a regular expression.
        versions: Exact versions the edit applies to.
        since: Inclusive lower version bound.
        until: Inclusive upper version bound.
    """

    model_config = ConfigDict(extra="forbid")

    path: Annotated[str, Field(min_length=1)]
    matcher: Annotated[str, Field(min_length=1)]
    replacement: str
    regex: bool = False
    versions: list[str] = Field(default_factory=list)
    since: str | None = None
    until: str | None = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate path is relative and stays inside the root."""
        if v.startswith("/") or ".." in v.replace("\\", "/").split("/"):
            raise ValueError(f"path must be relative to the root, got '{v}'")
        return v

    @model_validator(mode="after")
    def validate_selector(self) -> "EditSchema":
        """Validate the matcher compiles and a version selector is present."""
        if self.regex:
            try:
                re.compile(self.matcher)
            except re.error as e:
                raise ValueError(f"invalid matcher expression: {e}") from e
        if not (self.versions or self.since or self.until):
            raise ValueError(
                f"edit for '{self.path}' must name versions or a since/until range"
            )
        return self


class EditFileSchema(BaseModel):
    """Schema for the edit set file."""

    model_config = ConfigDict(extra="forbid")

    edits: list[EditSchema] = Field(default_factory=list)


__all__ = [
    "EditFileSchema",
    "EditSchema",
    "MatrixEntrySchema",
    "MatrixFileSchema",
]
