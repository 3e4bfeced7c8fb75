"""Build runner for activation scripts.

This module handles:
- Executing an action list in-process with an explicit environment
- Executing a generated script from its own directory
- Timing each run

Neither path imposes a timeout; a hung toolchain blocks the run.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from rez_build.builds.actions import ExecutionContext, ToolchainError

if TYPE_CHECKING:
    from rez_build.builds.actions import EnvAction

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result of running an activation script.

    Attributes:
        cwd: Directory the script ran in.
        env: Final environment (in-process runs only).
        started_at: Start time.
        finished_at: Finish time.
    """

    cwd: Path
    env: dict[str, str] | None
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> float:
        """Return the run time in seconds."""
        return (self.finished_at - self.started_at).total_seconds()


def execute_actions(
    actions: list[EnvAction],
    cwd: Path,
    base_env: dict[str, str] | None = None,
) -> ExecutionResult:
    """Execute an action list in-process.

    Every subprocess receives the explicitly built environment; the
    environment of the calling process is never modified.

    Args:
        actions: Actions in execution order.
        cwd: Build directory to run in.
        base_env: Starting environment; a copy of os.environ if not provided.

    Returns:
        ExecutionResult with the final environment.

    Raises:
        ToolchainError: If a step fails.
    """
    ctx = ExecutionContext(
        cwd=cwd,
        env=dict(os.environ if base_env is None else base_env),
    )
    started_at = datetime.now(timezone.utc)
    logger.info("Executing %d action(s) in %s", len(actions), cwd)

    for action in actions:
        action.apply(ctx)

    finished_at = datetime.now(timezone.utc)
    return ExecutionResult(
        cwd=cwd,
        env=ctx.env,
        started_at=started_at,
        finished_at=finished_at,
    )


def run_script(
    script_path: Path,
    env_override: dict[str, str] | None = None,
) -> ExecutionResult:
    """Execute a generated script from its own directory.

    Args:
        script_path: Path to the activation script.
        env_override: Optional environment variable overrides.

    Returns:
        ExecutionResult (without environment).

    Raises:
        ToolchainError: If the script exits nonzero or cannot be started.
    """
    cwd = script_path.parent
    cmd = [f"./{script_path.name}"]
    logger.info("Executing %s in %s", cmd[0], cwd)

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    started_at = datetime.now(timezone.utc)
    try:
        result = subprocess.run(cmd, cwd=cwd, env=env, check=False)
    except OSError as e:
        raise ToolchainError(
            f"failed to execute {script_path}: {e}",
            step="script",
        ) from e

    if result.returncode != 0:
        raise ToolchainError(
            f"{script_path} failed with exit code {result.returncode}",
            step="script",
            exit_code=result.returncode,
        )

    return ExecutionResult(
        cwd=cwd,
        env=None,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
    )


__all__ = [
    "ExecutionResult",
    "execute_actions",
    "run_script",
]
