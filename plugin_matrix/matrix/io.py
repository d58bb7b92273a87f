"""Product matrix and edit set loading.

This module reads the product matrix (JSON or YAML) and the edit set
(YAML or JSON) and turns them into validated build specs and edit records.
Any malformed input surfaces as ParseError.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from plugin_matrix.matrix.models import BuildSpec, ParseError, SyntheticBuildSpec
from plugin_matrix.matrix.schema import (
    EditFileSchema,
    EditSchema,
    MatrixEntrySchema,
    MatrixFileSchema,
)

logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed JSON content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the document is not an object.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_document(path: Path) -> dict[str, Any]:
    """Load a YAML or JSON document, chosen by file extension.

    Raises:
        ParseError: If the file is missing, unreadable or not a mapping.
    """
    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            return load_yaml(path)
        elif suffix == ".json":
            return load_json(path)
    except FileNotFoundError:
        raise ParseError(f"File not found: {path}", code="file_not_found") from None
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ParseError(f"Cannot parse {path}: {e}") from e
    except ValueError as e:
        raise ParseError(f"Cannot parse {path}: {e}") from e
    raise ParseError(
        f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json",
        code="unsupported_format",
    )


def parse_matrix_data(data: dict[str, Any]) -> list[MatrixEntrySchema]:
    """Validate raw matrix data.

    Args:
        data: Mapping with a 'list' of target descriptors.

    Returns:
        Validated entries in input order.

    Raises:
        ParseError: If the data does not match the schema.
    """
    try:
        matrix = MatrixFileSchema.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Invalid product matrix: {e}") from e
    return matrix.entries


def load_matrix(path: Path) -> list[MatrixEntrySchema]:
    """Load and validate the product matrix file."""
    return parse_matrix_data(load_document(path))


def create_build_specs(
    path: Path,
    release: str | None,
    root: Path | None = None,
) -> list[BuildSpec]:
    """Create build specs for every row of the product matrix.

    Order of the returned list equals the order of the matrix rows.

    Args:
        path: Path to the product matrix.
        release: Normalized release identifier of the run.
        root: Working root used to load the changelog.

    Returns:
        List of BuildSpec.

    Raises:
        ParseError: If the matrix is malformed.
    """
    entries = load_matrix(path)
    specs = [BuildSpec.from_schema(entry, release, root) for entry in entries]
    logger.debug("Loaded %d build spec(s) from %s", len(specs), path)
    return specs


def create_synthetic_spec(
    path: Path,
    release: str | None,
    specs: list[BuildSpec],
    root: Path | None = None,
) -> SyntheticBuildSpec:
    """Create the synthetic spec from the first row of the matrix.

    Raises:
        ParseError: If the matrix is empty or has no unit-test target.
    """
    entries = load_matrix(path)
    if not entries:
        raise ParseError(f"Product matrix is empty: {path}", code="empty_matrix")
    return SyntheticBuildSpec.from_first_entry(entries[0], release, specs, root)


def load_edits(path: Path) -> list[EditSchema]:
    """Load the edit set.

    A missing edit file means there are no edits.

    Raises:
        ParseError: If the edit file is malformed.
    """
    if not path.exists():
        logger.debug("No edit file at %s", path)
        return []
    try:
        edit_file = EditFileSchema.model_validate(load_document(path))
    except ValidationError as e:
        raise ParseError(f"Invalid edit file {path}: {e}") from e
    return edit_file.edits


__all__ = [
    "create_build_specs",
    "create_synthetic_spec",
    "load_document",
    "load_edits",
    "load_json",
    "load_matrix",
    "load_yaml",
    "parse_matrix_data",
]
