"""Shared fixtures for rez_build tests."""

import sys
from pathlib import Path

import pytest
import yaml

from rez_build.builds.resolver import (
    ResolutionError,
    ResolvedEnvironment,
    ResolveRequest,
)
from rez_build.builds.script import ToolchainCommands


class FakeResolver:
    """Resolver that records requests and fails on chosen variant specifiers."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls: list[ResolveRequest] = []

    def resolve(self, request: ResolveRequest, graph_path: Path) -> ResolvedEnvironment:
        self.calls.append(request)
        # Leave a partial artifact behind, like a resolver dying mid-write
        graph_path.write_text("digraph partial {\n")
        if any(str(s) in self.fail_on for s in request.variant):
            raise ResolutionError(
                f"failed to resolve {' '.join(request.requirements)}: conflict",
                requirements=request.requirements,
                exit_code=1,
            )
        return ResolvedEnvironment(
            bindings={
                "REZ_RESOLVE": " ".join(request.requirements),
                "REZ_REQUEST_TIME": str(request.epoch),
            },
            graph='digraph g { "foo" -> "bar" }\n',
        )


def recording_command(output_name: str) -> tuple[str, ...]:
    """Return a command that writes its arguments to a file in its cwd."""
    script = (
        "import sys\n"
        f"with open({output_name!r}, 'a') as f:\n"
        "    f.write(' '.join(sys.argv[1:]) + '\\n')\n"
    )
    return (sys.executable, "-c", script)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path_factory, monkeypatch):
    """Keep settings-driven paths out of the user's home directory."""
    state = tmp_path_factory.mktemp("state")
    monkeypatch.setenv("REZBUILD_DB_URL", f"sqlite:///{state / 'history.sqlite'}")
    monkeypatch.setenv("REZBUILD_RELEASE_PACKAGES_PATH", str(state / "release"))
    return state


@pytest.fixture
def write_package():
    """Return a helper writing a package.yaml into a directory."""

    def _write(root: Path, **fields) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        data = {"name": "foo", "version": "1.0"}
        data.update(fields)
        path = root / "package.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture
def fake_resolver() -> FakeResolver:
    """A resolver that always succeeds."""
    return FakeResolver()


@pytest.fixture
def recording_commands() -> ToolchainCommands:
    """Toolchain commands that log their invocations to files."""
    return ToolchainCommands(
        configure=recording_command("configure.log"),
        clean=recording_command("clean.log"),
        build=recording_command("build.log"),
        bin_dir=Path("/opt/rez-build/bin"),
        module_dir=Path("/opt/rez-build/cmake"),
    )


@pytest.fixture
def resolver_factory():
    """Return the FakeResolver class for tests that configure failures."""
    return FakeResolver
