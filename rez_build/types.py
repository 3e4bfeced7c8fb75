"""Shared type definitions for rez_build.

This module contains enums shared across subpackages to avoid circular
imports.
"""

from enum import Enum


class BuildStatus(str, Enum):
    """Status of a variant build."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ResolveMode(str, Enum):
    """Which end of each version range the resolver prefers."""

    EARLIEST = "earliest"
    LATEST = "latest"


class VcsKind(str, Enum):
    """Version control system a working copy belongs to."""

    GIT = "git"
    SVN = "svn"
    NONE = "none"


__all__ = [
    "BuildStatus",
    "ResolveMode",
    "VcsKind",
]
