"""Package descriptor module.

This module handles:
- Parsing package specifiers
- Loading and validating package manifests
- Enumerating a package's build variants
"""

from rez_build.package.io import (
    ManifestError,
    find_manifest,
    load_package,
    load_project_package,
)
from rez_build.package.schema import (
    NO_VARIANT,
    PackageDescriptor,
    Variant,
    VariantNotFoundError,
)
from rez_build.package.specifier import Specifier, parse_specifiers

__all__ = [
    "NO_VARIANT",
    "ManifestError",
    "PackageDescriptor",
    "Specifier",
    "Variant",
    "VariantNotFoundError",
    "find_manifest",
    "load_package",
    "load_project_package",
    "parse_specifiers",
]
