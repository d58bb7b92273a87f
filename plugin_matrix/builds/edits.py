"""Version-scoped source edits.

This module handles:
- Edit commands selected by target-platform version
- Scoped application with byte-exact restoration of every edited file
- Tracking of outstanding applications across a run

Edits are applied immediately before an external build and reverted
immediately after it, on success, failure and exception alike.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from plugin_matrix.matrix.models import version_key

if TYPE_CHECKING:
    from plugin_matrix.matrix.models import BuildSpec
    from plugin_matrix.matrix.schema import EditSchema

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EditApplicationError(Exception):
    """Raised when an edit cannot be applied to its file."""

    def __init__(self, message: str, code: str = "edit_not_applied") -> None:
        super().__init__(message)
        self.code = code


class EditStateError(Exception):
    """Raised when edit applications are not balanced by restorations."""

    def __init__(self, message: str, code: str = "edit_state_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class EditCommand:
    """One textual edit applied to one file for selected versions.

    Attributes:
        path: File to edit, relative to the working root.
        matcher: Literal text, or a regular expression when regex is set.
        replacement: Replacement text.
        regex: Treat matcher as a regular expression.
        versions: Exact versions the edit applies to.
        since: Inclusive lower version bound.
        until: Inclusive upper version bound.
    """

    path: str
    matcher: str
    replacement: str
    regex: bool = False
    versions: tuple[str, ...] = ()
    since: str | None = None
    until: str | None = None

    @classmethod
    def from_schema(cls, edit: EditSchema) -> EditCommand:
        return cls(
            path=edit.path,
            matcher=edit.matcher,
            replacement=edit.replacement,
            regex=edit.regex,
            versions=tuple(edit.versions),
            since=edit.since,
            until=edit.until,
        )

    def applies_to(self, version: str) -> bool:
        """Check whether the edit is selected for a target version."""
        if version in self.versions:
            return True
        if self.since is None and self.until is None:
            return False
        key = version_key(version)
        if self.since is not None and key < version_key(self.since):
            return False
        if self.until is not None and key > version_key(self.until):
            return False
        return True

    def apply(self, root: Path) -> bytes:
        """Apply the edit in place.

        Args:
            root: Working root the path is relative to.

        Returns:
            The file content before the edit.

        Raises:
            EditApplicationError: If the file is missing or the matcher is not found.
        """
        target = root / self.path
        try:
            original = target.read_bytes()
        except FileNotFoundError:
            raise EditApplicationError(
                f"Cannot edit {self.path}: file not found", code="edit_file_missing"
            ) from None
        text = original.decode("utf-8")

        if self.regex:
            edited, count = re.subn(self.matcher, self.replacement, text)
        else:
            count = text.count(self.matcher)
            edited = text.replace(self.matcher, self.replacement)
        if count == 0:
            raise EditApplicationError(
                f"Edit of {self.path} failed: {self.matcher!r} not found"
            )

        target.write_bytes(edited.encode("utf-8"))
        logger.debug("Edited %s (%d replacement(s))", self.path, count)
        return original

    def __str__(self) -> str:
        return f"{self.path}: {self.matcher!r}"


class EditTracker:
    """Tracks outstanding edit applications for the whole run."""

    def __init__(self, commands: list[EditCommand] | None = None) -> None:
        self.commands = list(commands or [])
        self._outstanding: list[EditCommand] | None = None
        self._used: set[EditCommand] = set()

    @property
    def outstanding(self) -> list[EditCommand] | None:
        return self._outstanding

    def acquire(self, commands: list[EditCommand]) -> None:
        """Register an application that has not been restored yet.

        Raises:
            EditStateError: If an earlier application is still outstanding.
        """
        if self._outstanding is not None:
            raise EditStateError(
                "edit commands already applied: "
                + ", ".join(str(c) for c in self._outstanding)
            )
        self._outstanding = list(commands)

    def release(self) -> None:
        """Mark the outstanding application as restored."""
        if self._outstanding is not None:
            self._used.update(self._outstanding)
        self._outstanding = None

    def check_and_clear(self) -> None:
        """Verify every application was restored, then reset the tracker.

        Raises:
            EditStateError: If an application is still outstanding.
        """
        try:
            if self._outstanding is not None:
                raise EditStateError(
                    "applied edit commands not cleared: "
                    + ", ".join(str(c) for c in self._outstanding)
                )
            for command in self.commands:
                if command not in self._used:
                    logger.warning("Edit command never used: %s", command)
        finally:
            self._outstanding = None
            self._used.clear()


@contextmanager
def edit_scope(
    spec: BuildSpec,
    commands: list[EditCommand],
    root: Path,
    tracker: EditTracker,
) -> Iterator[list[EditCommand]]:
    """Apply the edits selected for a spec and restore them on exit.

    Every edited file is restored to the bytes it had before the first edit
    of this scope touched it.

    Yields:
        The applied commands.

    Raises:
        EditApplicationError: If an edit cannot be applied; files already
            edited are restored before the error propagates.
        EditStateError: If another scope is still outstanding.
    """
    selected = [c for c in commands if c.applies_to(spec.version)]
    tracker.acquire(selected)
    pre_images: dict[Path, bytes] = {}
    try:
        for command in selected:
            original = command.apply(root)
            pre_images.setdefault(root / command.path, original)
        if selected:
            logger.info("Applied %d edit(s) for %s", len(selected), spec.version)
        yield selected
    finally:
        for path, content in pre_images.items():
            path.write_bytes(content)
        if pre_images:
            logger.info("Restored %d edited file(s)", len(pre_images))
        tracker.release()


def with_edits(
    spec: BuildSpec,
    commands: list[EditCommand],
    root: Path,
    tracker: EditTracker,
    body: Callable[[], T],
) -> T:
    """Run body with the spec's edits applied and return its result."""
    with edit_scope(spec, commands, root, tracker):
        return body()


__all__ = [
    "EditApplicationError",
    "EditCommand",
    "EditStateError",
    "EditTracker",
    "edit_scope",
    "with_edits",
]
