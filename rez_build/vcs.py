"""Version control introspection.

This module handles:
- Detecting which version control system a project is checked out from
- Querying the source URL of the working copy
- Producing a changelog for the working copy

Only git and subversion working copies are recognised; anything else is
reported as not under version control.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from rez_build.types import VcsKind

logger = logging.getLogger(__name__)

NOT_UNDER_VCS = "not under version control"

# Marker directory for each supported system, checked in order
VCS_MARKERS: tuple[tuple[str, VcsKind], ...] = (
    (".git", VcsKind.GIT),
    (".svn", VcsKind.SVN),
)


class VcsError(Exception):
    """Raised when a version control query fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "vcs",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


def detect_vcs(project_root: Path) -> VcsKind:
    """Detect the version control system of a project.

    Args:
        project_root: Project directory.

    Returns:
        VcsKind of the working copy, VcsKind.NONE if none is found.
    """
    for marker, kind in VCS_MARKERS:
        if (project_root / marker).exists():
            return kind
    return VcsKind.NONE


def _run(cmd: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    """Run a VCS command and capture its output.

    Raises:
        VcsError: If the command cannot be started.
    """
    logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise VcsError(f"failed to run {cmd[0]}: {e}") from e


def _checked(cmd: list[str], cwd: Path) -> str:
    """Run a VCS command and return stdout, raising on nonzero exit."""
    result = _run(cmd, cwd)
    if result.returncode != 0:
        raise VcsError(
            f"{' '.join(cmd)} failed: {result.stderr.strip()}",
            exit_code=result.returncode,
        )
    return result.stdout


def _git_source_url(project_root: Path) -> str:
    commit = _checked(["git", "rev-parse", "HEAD"], project_root).strip()
    # A repository without an origin remote is still identified by its commit
    remote = _run(["git", "config", "--get", "remote.origin.url"], project_root)
    url = remote.stdout.strip() if remote.returncode == 0 else ""
    return f"{url}#{commit}" if url else commit


def _git_changelog(project_root: Path) -> str:
    # Log since the most recent tag, or the whole history when untagged
    tag = _run(["git", "describe", "--tags", "--abbrev=0"], project_root)
    cmd = ["git", "log", "--no-color", "--no-merges"]
    if tag.returncode == 0 and tag.stdout.strip():
        cmd.append(f"{tag.stdout.strip()}..HEAD")
    return _checked(cmd, project_root)


def _svn_source_url(project_root: Path) -> str:
    return _checked(["svn", "info", "--show-item", "url"], project_root).strip()


def _svn_changelog(project_root: Path) -> str:
    return _checked(["svn", "log", "--stop-on-copy"], project_root)


def get_source_url(kind: VcsKind, project_root: Path) -> str:
    """Return the source URL of a working copy.

    Args:
        kind: Version control system of the working copy.
        project_root: Project directory.

    Returns:
        Source URL, or NOT_UNDER_VCS for VcsKind.NONE.

    Raises:
        VcsError: If the VCS query fails.
    """
    if kind == VcsKind.GIT:
        return _git_source_url(project_root)
    if kind == VcsKind.SVN:
        return _svn_source_url(project_root)
    return NOT_UNDER_VCS


def get_changelog(kind: VcsKind, project_root: Path) -> str:
    """Return the changelog of a working copy.

    Args:
        kind: Version control system of the working copy.
        project_root: Project directory.

    Returns:
        Changelog text, or NOT_UNDER_VCS for VcsKind.NONE.

    Raises:
        VcsError: If the VCS query fails.
    """
    if kind == VcsKind.GIT:
        return _git_changelog(project_root)
    if kind == VcsKind.SVN:
        return _svn_changelog(project_root)
    return NOT_UNDER_VCS


__all__ = [
    "NOT_UNDER_VCS",
    "VCS_MARKERS",
    "VcsError",
    "detect_vcs",
    "get_changelog",
    "get_source_url",
]
