"""Plugin Matrix - build, test and release an IDE plugin across a product matrix.

This package orchestrates provisioning of SDK artifacts, manifest generation,
version-scoped source edits and the external Gradle build for every row of
the product matrix, plus the release gate and deploy drivers.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
