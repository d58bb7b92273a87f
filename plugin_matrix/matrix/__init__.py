"""Product matrix module.

This module handles:
- Validation of the product matrix and the edit set
- BuildSpec and SyntheticBuildSpec data model
- Loading specs in matrix order
"""

from plugin_matrix.matrix.io import (
    create_build_specs,
    create_synthetic_spec,
    load_edits,
    load_matrix,
)
from plugin_matrix.matrix.models import (
    BuildSpec,
    ParseError,
    SyntheticBuildSpec,
    version_key,
)
from plugin_matrix.matrix.schema import (
    EditFileSchema,
    EditSchema,
    MatrixEntrySchema,
    MatrixFileSchema,
)

__all__ = [
    # Models
    "BuildSpec",
    "ParseError",
    "SyntheticBuildSpec",
    "version_key",
    # Schema
    "EditFileSchema",
    "EditSchema",
    "MatrixEntrySchema",
    "MatrixFileSchema",
    # IO functions
    "create_build_specs",
    "create_synthetic_spec",
    "load_edits",
    "load_matrix",
]
