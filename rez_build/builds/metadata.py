"""Build provenance capture.

This module writes the two provenance artifacts of each build directory:
- ``info.txt``: when the build happened, which cutoff it resolved against,
  who ran it and where the source came from
- ``changelog.txt``: the changelog of the source being built

Both files are fully overwritten on every run.
"""

from __future__ import annotations

import getpass
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from rez_build.builds.directory import write_text_atomic
from rez_build.vcs import NOT_UNDER_VCS, detect_vcs, get_changelog, get_source_url

if TYPE_CHECKING:
    from rez_build.builds.directory import BuildLayout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildMetadataRecord:
    """Provenance of one variant build.

    Attributes:
        actual_time: When the build was invoked (seconds since the epoch).
        build_time: Resolution cutoff the build was pinned to.
        user: Invoking user.
        source_url: Source URL, or NOT_UNDER_VCS.
    """

    actual_time: int
    build_time: int
    user: str
    source_url: str

    def to_text(self) -> str:
        """Render the record as four ``key: value`` lines."""
        return (
            f"actual_build_time: {self.actual_time}\n"
            f"build_time: {self.build_time}\n"
            f"user: {self.user}\n"
            f"source_url: {self.source_url}\n"
        )

    @classmethod
    def from_text(cls, text: str) -> BuildMetadataRecord:
        """Parse a record written by to_text().

        Raises:
            ValueError: If the text is not a metadata record.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"metadata record is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("metadata record is not a mapping")
        try:
            return cls(
                actual_time=int(data["actual_build_time"]),
                build_time=int(data["build_time"]),
                user=str(data["user"]),
                source_url=str(data["source_url"]),
            )
        except KeyError as e:
            raise ValueError(f"metadata record is missing {e}") from None


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        # No login name and no passwd entry for the uid
        return "unknown"


def resolve_source_url(project_root: Path, override: str | None = None) -> str:
    """Return the source URL to record for a project.

    Args:
        project_root: Project directory.
        override: Explicit source URL; skips the VCS query when set.

    Returns:
        Source URL, or NOT_UNDER_VCS.

    Raises:
        VcsError: If the VCS query fails.
    """
    if override:
        return override
    return get_source_url(detect_vcs(project_root), project_root)


def create_metadata_record(
    build_time: int,
    source_url: str,
    actual_time: int | None = None,
    user: str | None = None,
) -> BuildMetadataRecord:
    """Create a metadata record for the current invocation.

    Args:
        build_time: Resolution cutoff of the run.
        source_url: Source URL of the project.
        actual_time: Invocation time, defaults to now.
        user: Invoking user, defaults to the login name.

    Returns:
        BuildMetadataRecord instance.
    """
    return BuildMetadataRecord(
        actual_time=int(time.time()) if actual_time is None else actual_time,
        build_time=build_time,
        user=user or _current_user(),
        source_url=source_url,
    )


def record_metadata(layout: BuildLayout, record: BuildMetadataRecord) -> Path:
    """Write a metadata record into a build directory.

    Args:
        layout: Build directory layout.
        record: Record to write.

    Returns:
        Path to the written file.
    """
    path = write_text_atomic(layout.metadata, record.to_text())
    logger.info("Wrote build metadata to %s", path)
    return path


def capture_changelog(
    layout: BuildLayout,
    project_root: Path,
    changelog_path: Path | None = None,
) -> Path:
    """Capture the project's changelog into a build directory.

    A supplied changelog file is copied verbatim if it exists. Otherwise the
    changelog is taken from version control, or NOT_UNDER_VCS when there is none.

    Args:
        layout: Build directory layout.
        project_root: Project directory.
        changelog_path: Optional changelog file to copy.

    Returns:
        Path to the written file.

    Raises:
        VcsError: If the VCS query fails.
        OSError: If the supplied changelog cannot be copied.
    """
    if changelog_path is not None:
        if changelog_path.is_file():
            shutil.copyfile(changelog_path, layout.changelog)
            logger.info("Copied changelog from %s", changelog_path)
            return layout.changelog
        logger.warning("Changelog %s not found, using version control", changelog_path)

    kind = detect_vcs(project_root)
    text = get_changelog(kind, project_root)
    if text == NOT_UNDER_VCS:
        text += "\n"
    layout.changelog.write_text(text, encoding="utf-8")
    logger.info("Captured %s changelog to %s", kind.value, layout.changelog)
    return layout.changelog


__all__ = [
    "BuildMetadataRecord",
    "capture_changelog",
    "create_metadata_record",
    "record_metadata",
    "resolve_source_url",
]
