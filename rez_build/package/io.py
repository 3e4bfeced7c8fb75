"""Package manifest loading.

This module locates a project's package manifest and turns it into a
validated PackageDescriptor. YAML and JSON manifests are supported.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from rez_build.package.schema import PackageDescriptor

# Searched in order in the project root
MANIFEST_NAMES = ("package.yaml", "package.yml", "package.json")


class ManifestError(Exception):
    """Raised when a package manifest is missing or unusable."""

    def __init__(self, message: str, code: str = "manifest") -> None:
        super().__init__(message)
        self.code = code


def find_manifest(project_root: Path) -> Path:
    """Find the package manifest in a project root.

    Args:
        project_root: Project directory.

    Returns:
        Path to the first manifest found.

    Raises:
        ManifestError: If no manifest exists.
    """
    for name in MANIFEST_NAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    raise ManifestError(
        f"no package manifest in {project_root} "
        f"(looked for {', '.join(MANIFEST_NAMES)})"
    )


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


def _describe_validation_error(path: Path, error: ValidationError) -> str:
    """Summarise a pydantic error as a one-line message."""
    problems = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "(root)"
        problems.append(f"{location}: {err['msg']}")
    return f"invalid package manifest {path}: {'; '.join(problems)}"


def load_package(path: Path) -> PackageDescriptor:
    """Load and validate a package descriptor from a manifest file.

    File format is determined by extension (.yaml, .yml for YAML,
    .json for JSON).

    Args:
        path: Path to the manifest.

    Returns:
        Validated PackageDescriptor.

    Raises:
        ManifestError: If the file is missing, unreadable, or invalid.
    """
    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = load_yaml(path)
        elif suffix == ".json":
            data = load_json(path)
        else:
            raise ManifestError(
                f"Unsupported manifest extension '{suffix}'. Use .yaml, .yml, or .json"
            )
    except FileNotFoundError:
        raise ManifestError(f"package manifest not found: {path}") from None
    except (yaml.YAMLError, json.JSONDecodeError, ValueError, OSError) as e:
        raise ManifestError(f"cannot parse package manifest {path}: {e}") from e

    try:
        return PackageDescriptor.model_validate(data)
    except ValidationError as e:
        raise ManifestError(_describe_validation_error(path, e)) from e


def load_project_package(project_root: Path) -> PackageDescriptor:
    """Find and load the package manifest of a project.

    Args:
        project_root: Project directory.

    Returns:
        Validated PackageDescriptor.

    Raises:
        ManifestError: If no manifest exists or it is invalid.
    """
    return load_package(find_manifest(project_root))


__all__ = [
    "MANIFEST_NAMES",
    "ManifestError",
    "find_manifest",
    "load_json",
    "load_package",
    "load_project_package",
    "load_yaml",
]
