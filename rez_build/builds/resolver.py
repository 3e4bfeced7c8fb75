"""Environment resolution client.

This module handles:
- Composing the resolver command for one variant
- Running the external resolver and parsing its environment dump
- Persisting the resolved environment and dependency graph

The resolver turns a set of requirements and a time cutoff into a
concrete environment. Its search algorithm is not part of rez-build; any
object implementing the Resolver protocol can be used in place of the
command-line resolver.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from rez_build.types import ResolveMode

if TYPE_CHECKING:
    from rez_build.builds.directory import BuildLayout
    from rez_build.package.specifier import Specifier

logger = logging.getLogger(__name__)

# Version suffix asking the resolver for the latest available release
LATEST_SUFFIX = "=l"


class ResolutionError(Exception):
    """Raised when the resolver cannot produce an environment."""

    def __init__(
        self,
        message: str,
        requirements: list[str] | None = None,
        exit_code: int | None = None,
        code: str = "resolve",
    ) -> None:
        super().__init__(message)
        self.requirements = requirements or []
        self.exit_code = exit_code
        self.code = code


@dataclass(frozen=True)
class ResolveRequest:
    """Everything the resolver is asked for one variant.

    Attributes:
        requires: The package's build and runtime requirements.
        variant: The variant's specifiers (empty for no variant).
        epoch: Cutoff; packages released later are ignored.
        mode: Resolution mode.
        toolchain_package: Build toolchain package pulled in at its latest.
        include_blacklisted: Allow blacklisted packages.
        include_archived: Allow archived packages.
        assume_transitive: Allow the resolver to assume transitive closure.
    """

    requires: tuple[Specifier, ...]
    variant: tuple[Specifier, ...]
    epoch: int
    mode: ResolveMode = ResolveMode.LATEST
    toolchain_package: str | None = "cmake"
    include_blacklisted: bool = False
    include_archived: bool = False
    assume_transitive: bool = True

    @property
    def requirements(self) -> list[str]:
        """Return the full requirement list passed to the resolver."""
        reqs = [str(s) for s in self.requires]
        reqs.extend(str(s) for s in self.variant)
        if self.toolchain_package:
            reqs.append(f"{self.toolchain_package}{LATEST_SUFFIX}")
        return reqs


@dataclass
class ResolvedEnvironment:
    """A resolved environment for one variant.

    Attributes:
        bindings: Environment variables, in the order the resolver set them.
        graph: Dependency graph description (dot format).
        dump: Raw environment dump as produced by the resolver, if any.
    """

    bindings: dict[str, str] = field(default_factory=dict)
    graph: str = ""
    dump: str | None = None

    @property
    def context_text(self) -> str:
        """Return the text persisted as the environment context file.

        The resolver's own dump is kept verbatim; environments built in
        memory are rendered as ``export`` lines.
        """
        if self.dump is not None:
            return self.dump
        return render_env_dump(self.bindings)


class Resolver(Protocol):
    """Anything able to resolve a ResolveRequest."""

    def resolve(self, request: ResolveRequest, graph_path: Path) -> ResolvedEnvironment:
        """Resolve a request, writing the dependency graph to graph_path.

        Raises:
            ResolutionError: If no consistent environment exists.
        """
        ...


def render_env_dump(bindings: dict[str, str]) -> str:
    """Render bindings as sourceable ``export NAME=value`` lines."""
    return "".join(
        f"export {name}={shlex.quote(value)}\n" for name, value in bindings.items()
    )


def parse_env_dump(text: str) -> dict[str, str]:
    """Parse an environment dump into bindings.

    Accepts ``export NAME=value`` and ``NAME=value`` lines with shell
    quoting. Blank lines and comments are skipped.

    Args:
        text: Environment dump.

    Returns:
        Mapping of variable name to value, in dump order.

    Raises:
        ValueError: If a line is not an assignment.
    """
    bindings: dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        tokens = shlex.split(line, comments=True)
        if not tokens:
            continue
        if tokens[0] == "export":
            tokens = tokens[1:]
        if len(tokens) != 1 or "=" not in tokens[0]:
            raise ValueError(f"line {lineno} is not an assignment: {line!r}")
        name, _, value = tokens[0].partition("=")
        if not name:
            raise ValueError(f"line {lineno} has no variable name: {line!r}")
        bindings[name] = value
    return bindings


def compose_resolve_command(
    base_command: list[str],
    request: ResolveRequest,
    graph_path: Path,
) -> list[str]:
    """Compose the resolver command line.

    Args:
        base_command: Resolver executable and fixed arguments.
        request: Resolve request.
        graph_path: Where the resolver writes the dependency graph.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = list(base_command)
    cmd.append("--print-env")
    cmd.append(f"--time={request.epoch}")
    cmd.append(f"--mode={request.mode.value}")
    cmd.append(f"--dot-file={graph_path}")

    if request.include_blacklisted:
        cmd.append("--ignore-blacklist")
    if request.include_archived:
        cmd.append("--ignore-archiving")
    if not request.assume_transitive:
        cmd.append("--no-assume-dt")

    cmd.extend(request.requirements)
    return cmd


class CommandResolver:
    """Resolver backed by an external command.

    The command prints the resolved environment on stdout and writes the
    dependency graph to the file named by ``--dot-file``.
    """

    def __init__(self, command: list[str] | None = None) -> None:
        self.command = command or ["rez-config"]

    def resolve(self, request: ResolveRequest, graph_path: Path) -> ResolvedEnvironment:
        """Run the resolver for a request.

        Args:
            request: Resolve request.
            graph_path: Where the resolver writes the dependency graph.

        Returns:
            ResolvedEnvironment parsed from the resolver's output.

        Raises:
            ResolutionError: If the resolver fails or its output is unusable.
        """
        cmd = compose_resolve_command(self.command, request, graph_path)
        logger.info("Resolving: %s", shlex.join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise ResolutionError(
                f"failed to run resolver: {e}",
                requirements=request.requirements,
            ) from e

        if result.returncode != 0:
            detail = result.stderr.strip().splitlines()
            reason = detail[-1] if detail else f"exit code {result.returncode}"
            raise ResolutionError(
                f"failed to resolve {' '.join(request.requirements)}: {reason}",
                requirements=request.requirements,
                exit_code=result.returncode,
            )

        try:
            bindings = parse_env_dump(result.stdout)
        except ValueError as e:
            raise ResolutionError(
                f"unreadable resolver output: {e}",
                requirements=request.requirements,
            ) from e

        graph = graph_path.read_text(encoding="utf-8") if graph_path.exists() else ""
        return ResolvedEnvironment(bindings=bindings, graph=graph, dump=result.stdout)


def _discard(*paths: Path) -> None:
    for path in paths:
        path.unlink(missing_ok=True)


def resolve_environment(
    resolver: Resolver,
    request: ResolveRequest,
    layout: BuildLayout,
) -> ResolvedEnvironment:
    """Resolve a variant's environment and persist it in its build directory.

    On success the context and graph files hold the resolved environment.
    On failure neither file is left behind.

    Args:
        resolver: Resolver to use.
        request: Resolve request.
        layout: Build directory layout.

    Returns:
        The resolved environment.

    Raises:
        ResolutionError: If resolution fails.
    """
    # Context left by a previous run is removed before resolving
    _discard(layout.context)

    try:
        env = resolver.resolve(request, layout.graph)
        layout.context.write_text(env.context_text, encoding="utf-8")
        layout.graph.write_text(env.graph, encoding="utf-8")
    except ResolutionError:
        _discard(layout.context, layout.graph)
        raise
    except OSError as e:
        _discard(layout.context, layout.graph)
        raise ResolutionError(
            f"failed to persist resolved environment: {e}",
            requirements=request.requirements,
        ) from e

    logger.info(
        "Resolved %d variable(s) into %s", len(env.bindings), layout.context
    )
    return env


__all__ = [
    "LATEST_SUFFIX",
    "CommandResolver",
    "ResolutionError",
    "ResolveRequest",
    "ResolvedEnvironment",
    "Resolver",
    "compose_resolve_command",
    "parse_env_dump",
    "render_env_dump",
    "resolve_environment",
]
