"""Build directory management.

This module handles:
- Computing the per-variant build directory layout
- Creating build directories and their human-readable aliases
- Marking build trees as orchestrator-owned
- Predicting install paths
- Writing artifacts atomically

Layout of a project with variants::

    <root>/build/.rez-build         ownership marker
    <root>/build/0/                 variant 0 artifacts
    <root>/build/dep-1 -> 0         alias keyed by the variant's specifiers
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rez_build.package.schema import PackageDescriptor, Variant

logger = logging.getLogger(__name__)

BUILD_DIR_NAME = "build"
MARKER_FILENAME = ".rez-build"

# Generated scripts may be regenerated and re-run by anyone on the team
SCRIPT_MODE = 0o777
DEFAULT_FILE_MODE = 0o644


class BuildDirectoryError(Exception):
    """A build directory or one of its artifacts could not be written."""

    def __init__(
        self, message: str, path: Path | None = None, code: str = "filesystem"
    ) -> None:
        super().__init__(message)
        self.path = path
        self.code = code


@dataclass(frozen=True)
class BuildLayout:
    """Paths of every artifact kept in one build directory.

    Attributes:
        build_dir: The variant's build directory.
    """

    build_dir: Path

    SCRIPT_NAME = "build-env.sh"

    @property
    def script(self) -> Path:
        """Generated activation script."""
        return self.build_dir / self.SCRIPT_NAME

    @property
    def context(self) -> Path:
        """Resolved environment bindings, as dumped by the resolver."""
        return self.build_dir / "build-env.context"

    @property
    def actual_env(self) -> Path:
        """Snapshot of the full environment after activation."""
        return self.build_dir / "build-env.actual"

    @property
    def graph(self) -> Path:
        """Dependency graph of the resolved environment."""
        return self.build_dir / "build-env.dot"

    @property
    def rcfile(self) -> Path:
        """Startup file for the interactive build shell."""
        return self.build_dir / "build-env.bashrc"

    @property
    def changelog(self) -> Path:
        """Changelog capture."""
        return self.build_dir / "changelog.txt"

    @property
    def metadata(self) -> Path:
        """Build metadata record."""
        return self.build_dir / "info.txt"


def get_build_root(project_root: Path) -> Path:
    """Return the top-level build directory of a project."""
    return project_root / BUILD_DIR_NAME


def get_build_dir(project_root: Path, variant: Variant) -> Path:
    """Compute the build directory of a variant without creating it.

    Args:
        project_root: Project directory.
        variant: Variant being built (or the no-variant sentinel).

    Returns:
        ``<root>/build`` for the sentinel, ``<root>/build/<index>`` otherwise.
    """
    build_root = get_build_root(project_root)
    if variant.is_default:
        return build_root
    return build_root / str(variant.index)


def create_build_dir(project_root: Path, variant: Variant) -> BuildLayout:
    """Create a variant's build directory and its alias symlink.

    Existing directories are reused. The alias symlink is created only if
    nothing exists at its path; an existing entry is left untouched. Aliases
    that look like a variant index are never created.

    Args:
        project_root: Project directory.
        variant: Variant being built (or the no-variant sentinel).

    Returns:
        BuildLayout of the created directory.

    Raises:
        BuildDirectoryError: If the build directory is a symlink.
        OSError: If the directory cannot be created.
    """
    build_dir = get_build_dir(project_root, variant)
    if build_dir.is_symlink():
        raise BuildDirectoryError(
            f"{build_dir} is a symlink, not a build directory", path=build_dir
        )
    build_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Using build directory %s", build_dir)

    if not variant.is_default and variant.specifiers:
        alias = build_dir.parent / variant.alias
        if variant.alias.isdecimal():
            # Would shadow the build directory of another variant
            logger.warning("Not creating build alias %s: name is a variant index", alias)
        # lexists: a dangling symlink still counts as present
        elif not os.path.lexists(alias):
            try:
                alias.symlink_to(str(variant.index), target_is_directory=True)
                logger.debug("Created alias %s -> %s", alias, variant.index)
            except OSError as e:
                logger.warning("Could not create build alias %s: %s", alias, e)

    return BuildLayout(build_dir=build_dir)


def write_ownership_marker(project_root: Path) -> Path:
    """Mark a project's build tree as owned by rez-build.

    The marker is written once and left alone afterwards.

    Args:
        project_root: Project directory.

    Returns:
        Path to the marker file.
    """
    build_root = get_build_root(project_root)
    build_root.mkdir(parents=True, exist_ok=True)
    marker = build_root / MARKER_FILENAME
    if not marker.exists():
        marker.touch()
    return marker


def get_install_path(
    release_root: Path,
    package: PackageDescriptor,
    variant: Variant,
) -> Path:
    """Predict where a variant of a package is installed.

    Args:
        release_root: Release packages root.
        package: Package descriptor.
        variant: Variant being built (or the no-variant sentinel).

    Returns:
        ``<release-root>/<name>/<version>[/<variant-subdir>]``.
    """
    path = release_root / package.name / package.version
    if variant.is_default or not variant.specifiers:
        return path
    return path / variant.subdir


def write_text_atomic(path: Path, text: str, mode: int = DEFAULT_FILE_MODE) -> Path:
    """Write a text file so readers never observe a partial file.

    The content goes to a temporary file in the same directory, which is
    then given its final mode and renamed over the destination.

    Args:
        path: Destination path.
        text: File content.
        mode: Permission bits of the final file.

    Returns:
        The destination path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        encoding="utf-8",
        delete=False,
    ) as tmp_file:
        tmp_path = Path(tmp_file.name)
        tmp_file.write(text)

    try:
        # chmod is not subject to the umask
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return path


__all__ = [
    "BUILD_DIR_NAME",
    "MARKER_FILENAME",
    "SCRIPT_MODE",
    "BuildDirectoryError",
    "BuildLayout",
    "create_build_dir",
    "get_build_dir",
    "get_build_root",
    "get_install_path",
    "write_ownership_marker",
    "write_text_atomic",
]
