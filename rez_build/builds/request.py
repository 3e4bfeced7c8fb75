"""Build request model.

A BuildRequest gathers every input of one orchestrator run: resolution
mode and cutoff, variant selection, policy flags, provenance overrides and
the pass-through arguments for the configure and compile steps.
"""

from __future__ import annotations

import time
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from rez_build.types import ResolveMode

# Separates configure-step arguments from compile-step arguments
ARGS_SEPARATOR = "--"


class UsageError(Exception):
    """Raised for invalid or disallowed combinations of options."""

    def __init__(self, message: str, code: str = "usage") -> None:
        super().__init__(message)
        self.code = code


def _now_epoch() -> int:
    return int(time.time())


def split_passthrough_args(args: list[str]) -> tuple[list[str], list[str] | None]:
    """Split pass-through arguments into configure and compile arguments.

    The first ``--`` on the command line is consumed by the option parser;
    this splits what follows it at the second ``--``. The presence of that
    second separator is what requests a build.

    Args:
        args: Positional arguments following the first separator.

    Returns:
        Tuple of (configure_args, build_args); build_args is None when no
        build was requested.
    """
    if ARGS_SEPARATOR not in args:
        return list(args), None
    idx = args.index(ARGS_SEPARATOR)
    return list(args[:idx]), list(args[idx + 1 :])


class BuildRequest(BaseModel):
    """Inputs of one orchestrator run.

    Attributes:
        mode: Resolution mode (earliest or latest).
        variant_index: Build only this variant when set.
        epoch: Resolution cutoff in seconds since the epoch.
        no_clean: Skip the clean step before compiling.
        include_blacklisted: Let the resolver use blacklisted packages.
        include_archived: Let the resolver use archived packages.
        assume_transitive: Let the resolver assume transitive closure.
        changelog_path: Changelog file copied instead of querying VCS.
        source_url: Source URL recorded instead of querying VCS.
        print_install_path: Only print install paths.
        configure_args: Extra arguments for the configure step.
        build_args: Arguments for the compile step, None to skip building.
    """

    model_config = ConfigDict(frozen=True)

    mode: ResolveMode = ResolveMode.LATEST
    variant_index: int | None = None
    epoch: int = Field(default_factory=_now_epoch)
    no_clean: bool = False
    include_blacklisted: bool = False
    include_archived: bool = False
    assume_transitive: bool = True
    changelog_path: Path | None = None
    source_url: str | None = None
    print_install_path: bool = False
    configure_args: list[str] = Field(default_factory=list)
    build_args: list[str] | None = None

    @property
    def build_now(self) -> bool:
        """Whether the compile step was requested."""
        return self.build_args is not None

    def validate_usage(self, denied_configure_flags: list[str] | None = None) -> None:
        """Check option combinations that are not allowed.

        Args:
            denied_configure_flags: Configure argument prefixes to refuse.

        Raises:
            UsageError: If a disallowed combination is found.
        """
        if self.no_clean and not self.build_now:
            raise UsageError(
                "--no-clean is only valid when building "
                f"(pass a second '{ARGS_SEPARATOR}' to build)"
            )
        for arg in self.configure_args:
            for flag in denied_configure_flags or []:
                if arg.startswith(flag):
                    raise UsageError(f"configure flag not allowed: {arg}")


__all__ = [
    "ARGS_SEPARATOR",
    "BuildRequest",
    "UsageError",
    "split_passthrough_args",
]
