"""Typed environment actions.

An activation script is modelled as an ordered list of actions. Every
action can be rendered to bash, for the generated ``build-env.sh`` that
users run by hand, and applied in-process against an explicit environment
mapping, which is how rez-build runs builds itself. Both paths execute the
same list, so the script on disk always describes what was run.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Prefix of diagnostics printed by generated scripts
DIAGNOSTIC_PREFIX = "rez-build"

CONTEXT_FILE_VAR = "REZ_CONTEXT_FILE"
ENV_PROMPT_VAR = "REZ_ENV_PROMPT"
BUILD_PROMPT_VAR = "REZ_BUILD_PROMPT"


class ToolchainError(Exception):
    """Raised when a step of an activation script fails."""

    def __init__(
        self,
        message: str,
        step: str,
        exit_code: int | None = None,
        code: str = "build",
    ) -> None:
        super().__init__(message)
        self.step = step
        self.exit_code = exit_code
        self.code = code


@dataclass
class ExecutionContext:
    """State threaded through in-process action execution.

    Attributes:
        cwd: Working directory of the script (its build directory).
        env: Environment handed to every subprocess.
    """

    cwd: Path
    env: dict[str, str] = field(default_factory=dict)


class EnvAction:
    """Base class for environment actions."""

    def render(self) -> list[str]:
        """Return the bash lines implementing this action."""
        raise NotImplementedError

    def apply(self, ctx: ExecutionContext) -> None:
        """Perform this action in-process."""
        raise NotImplementedError


@dataclass(frozen=True)
class Comment(EnvAction):
    """A comment line; does nothing when applied."""

    text: str

    def render(self) -> list[str]:
        return [f"# {line}" if line else "#" for line in self.text.splitlines()]

    def apply(self, ctx: ExecutionContext) -> None:
        return None


@dataclass(frozen=True)
class RequireScriptDir(EnvAction):
    """Refuse to continue unless running from the script's own directory."""

    script_name: str

    def render(self) -> list[str]:
        name = shlex.quote(f"./{self.script_name}")
        return [
            f'if [ ! "$0" -ef {name} ]; then',
            f'    echo "{DIAGNOSTIC_PREFIX}: {self.script_name} must be run '
            f'from its own directory" >&2',
            "    exit 1",
            "fi",
        ]

    def apply(self, ctx: ExecutionContext) -> None:
        if not (ctx.cwd / self.script_name).is_file():
            raise ToolchainError(
                f"{self.script_name} must be run from its own directory "
                f"(not found in {ctx.cwd})",
                step="guard",
            )


@dataclass(frozen=True)
class SourceContext(EnvAction):
    """Load a resolved environment.

    The script sources the persisted context file with auto-export on, so
    every assignment in it is exported; in-process execution applies the
    bindings carried by the action itself.
    """

    path: str
    bindings: tuple[tuple[str, str], ...] = ()

    def render(self) -> list[str]:
        # Plain NAME=value lines in the dump must reach child processes too
        return ["set -a", f"source {shlex.quote(self.path)}", "set +a"]

    def apply(self, ctx: ExecutionContext) -> None:
        ctx.env.update(dict(self.bindings))


@dataclass(frozen=True)
class SetEnv(EnvAction):
    """Export a variable, replacing any previous value."""

    name: str
    value: str

    def render(self) -> list[str]:
        return [f"export {self.name}={shlex.quote(self.value)}"]

    def apply(self, ctx: ExecutionContext) -> None:
        ctx.env[self.name] = self.value


@dataclass(frozen=True)
class AppendEnv(EnvAction):
    """Append to a variable, keeping any value it already has."""

    name: str
    value: str
    separator: str = ":"

    def render(self) -> list[str]:
        sep = self.separator
        for char in ("\\", '"', "$", "`"):
            sep = sep.replace(char, f"\\{char}")
        existing = f'"${{{self.name}:+${{{self.name}}}{sep}}}"'
        return [f"export {self.name}={existing}{shlex.quote(self.value)}"]

    def apply(self, ctx: ExecutionContext) -> None:
        existing = ctx.env.get(self.name)
        if existing:
            ctx.env[self.name] = f"{existing}{self.separator}{self.value}"
        else:
            ctx.env[self.name] = self.value


@dataclass(frozen=True)
class SnapshotEnv(EnvAction):
    """Save the complete current environment to a file."""

    path: str

    def render(self) -> list[str]:
        return [f"env > {shlex.quote(self.path)}"]

    def apply(self, ctx: ExecutionContext) -> None:
        lines = [f"{name}={value}\n" for name, value in sorted(ctx.env.items())]
        (ctx.cwd / self.path).write_text("".join(lines), encoding="utf-8")


@dataclass(frozen=True)
class RunStep(EnvAction):
    """Run a toolchain command, aborting the script if it fails."""

    label: str
    argv: tuple[str, ...]

    def render(self) -> list[str]:
        return [
            f"if ! {shlex.join(self.argv)}; then",
            f'    echo "{DIAGNOSTIC_PREFIX}: {self.label} step failed" >&2',
            "    exit 1",
            "fi",
        ]

    def apply(self, ctx: ExecutionContext) -> None:
        cmd_str = shlex.join(self.argv)
        logger.info("Running %s step: %s", self.label, cmd_str)
        try:
            result = subprocess.run(
                list(self.argv),
                cwd=ctx.cwd,
                env=ctx.env,
                check=False,
            )
        except OSError as e:
            raise ToolchainError(
                f"failed to run {self.label} step ({cmd_str}): {e}",
                step=self.label,
            ) from e

        if result.returncode != 0:
            raise ToolchainError(
                f"{self.label} step failed with exit code {result.returncode}",
                step=self.label,
                exit_code=result.returncode,
            )


@dataclass(frozen=True)
class InteractiveShell(EnvAction):
    """Drop the user into an interactive shell inside the build environment.

    Two prompt tiers are exported: a nesting marker appended to
    REZ_ENV_PROMPT and a label naming the build in REZ_BUILD_PROMPT.
    """

    shell: str
    rcfile: str
    prompt_label: str

    def _prompt_actions(self) -> list[EnvAction]:
        return [
            AppendEnv(ENV_PROMPT_VAR, ">", separator=""),
            SetEnv(BUILD_PROMPT_VAR, self.prompt_label),
        ]

    def render(self) -> list[str]:
        lines: list[str] = []
        for action in self._prompt_actions():
            lines.extend(action.render())
        lines.append(shlex.join([self.shell, "--rcfile", self.rcfile]))
        return lines

    def apply(self, ctx: ExecutionContext) -> None:
        for action in self._prompt_actions():
            action.apply(ctx)
        subprocess.run(
            [self.shell, "--rcfile", self.rcfile],
            cwd=ctx.cwd,
            env=ctx.env,
            check=False,
        )


__all__ = [
    "BUILD_PROMPT_VAR",
    "CONTEXT_FILE_VAR",
    "DIAGNOSTIC_PREFIX",
    "ENV_PROMPT_VAR",
    "AppendEnv",
    "Comment",
    "EnvAction",
    "ExecutionContext",
    "InteractiveShell",
    "RequireScriptDir",
    "RunStep",
    "SetEnv",
    "SnapshotEnv",
    "SourceContext",
    "ToolchainError",
]
