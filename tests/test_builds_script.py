"""Tests for builds/script.py module.

Tests the action list of an activation script, its rendering, and the
generated script's behaviour when run by bash.
"""

import shutil
import stat
import subprocess
import sys
from pathlib import Path

import pytest

from rez_build.builds.actions import (
    AppendEnv,
    Comment,
    InteractiveShell,
    RequireScriptDir,
    RunStep,
    SetEnv,
    SnapshotEnv,
    SourceContext,
)
from rez_build.builds.directory import create_build_dir
from rez_build.builds.request import BuildRequest
from rez_build.builds.resolver import (
    ResolvedEnvironment,
    ResolveRequest,
    parse_env_dump,
    resolve_environment,
)
from rez_build.builds.runner import execute_actions
from rez_build.builds.script import (
    SHEBANG,
    ToolchainCommands,
    build_variables,
    configure_source_dir,
    generate_actions,
    render_script,
    write_activation_script,
)
from rez_build.package.schema import PackageDescriptor, Variant

requires_bash = pytest.mark.skipif(
    shutil.which("bash") is None or not Path("/bin/bash").exists(),
    reason="bash not available",
)


@pytest.fixture
def package() -> PackageDescriptor:
    """foo-1.0 requiring bar-2, with variants dep-1 and dep-2."""
    return PackageDescriptor(
        name="foo",
        version="1.0",
        requires=["bar-2"],
        variants=[["dep-1"], ["dep-2"]],
    )


@pytest.fixture
def env() -> ResolvedEnvironment:
    """A small resolved environment."""
    return ResolvedEnvironment(bindings={"REZ_RESOLVE": "bar-2 dep-1 cmake-3.1"})


def set_vars(actions) -> dict[str, str]:
    return {a.name: a.value for a in actions if isinstance(a, SetEnv)}


def steps(actions) -> list[str]:
    return [a.label for a in actions if isinstance(a, RunStep)]


class TestBuildVariables:
    """Tests for build_variables."""

    def test_variant(self, package) -> None:
        """Should export project and variant variables."""
        variables = dict(
            build_variables(package, package.get_variant(1), Path("/rel/foo/1.0/dep-2"))
        )
        assert variables == {
            "REZ_BUILD_ENV": "1",
            "REZ_BUILD_PROJECT_NAME": "foo",
            "REZ_BUILD_PROJECT_VERSION": "1.0",
            "REZ_BUILD_REQUIRES_UNVER": "bar",
            "REZ_BUILD_INSTALL_PATH": "/rel/foo/1.0/dep-2",
            "REZ_BUILD_VARIANT": "dep-2",
            "REZ_BUILD_VARIANT_UNVER": "dep",
            "REZ_BUILD_VARIANT_SUBDIR": "dep-2",
        }

    def test_no_variant(self, package) -> None:
        """Should omit variant variables for the sentinel."""
        names = [name for name, _ in build_variables(package, Variant.default(), Path("/x"))]
        assert "REZ_BUILD_VARIANT" not in names
        assert "REZ_BUILD_PROJECT_NAME" in names

    def test_configure_source_dir(self, package) -> None:
        """Should point one level up without variants, two with."""
        assert configure_source_dir(Variant.default()) == ".."
        assert configure_source_dir(package.get_variant(0)) == "../.."


class TestGenerateActions:
    """Tests for generate_actions."""

    def _generate(self, package, env, tmp_path, request, variant=None):
        if variant is None:
            variant = package.get_variant(0)
        layout = create_build_dir(tmp_path, variant)
        return generate_actions(
            package=package,
            variant=variant,
            request=request,
            layout=layout,
            env=env,
            install_path=Path("/rel/foo/1.0/dep-1"),
            commands=ToolchainCommands(
                bin_dir=Path("/opt/bin"), module_dir=Path("/opt/cmake")
            ),
        )

    def test_section_order(self, package, env, tmp_path) -> None:
        """Should emit sections in a fixed order."""
        actions = self._generate(package, env, tmp_path, BuildRequest(build_args=[]))
        kinds = [type(a) for a in actions]

        assert kinds[:5] == [Comment, RequireScriptDir, SourceContext, SetEnv, SnapshotEnv]
        assert kinds[5:7] == [AppendEnv, AppendEnv]
        assert steps(actions) == ["configure", "clean", "build"]
        assert isinstance(actions[-1], RunStep)

    def test_context_bindings_carried(self, package, env, tmp_path) -> None:
        """Should carry the resolved bindings into the source action."""
        actions = self._generate(package, env, tmp_path, BuildRequest())
        source = next(a for a in actions if isinstance(a, SourceContext))
        assert dict(source.bindings) == env.bindings
        assert source.path == "./build-env.context"

    def test_tooling_paths(self, package, env, tmp_path) -> None:
        """Should append the module dir with ';' and the bin dir to PATH."""
        actions = self._generate(package, env, tmp_path, BuildRequest())
        appends = [a for a in actions if isinstance(a, AppendEnv)]
        assert appends[0] == AppendEnv("CMAKE_MODULE_PATH", "/opt/cmake", ";")
        assert appends[1].name == "PATH"
        assert appends[1].value == "/opt/bin"

    def test_script_only_has_no_build(self, package, env, tmp_path) -> None:
        """Should configure and then start a shell without a build request."""
        actions = self._generate(package, env, tmp_path, BuildRequest())
        assert steps(actions) == ["configure"]
        shell = actions[-1]
        assert isinstance(shell, InteractiveShell)
        assert shell.rcfile == "./build-env.bashrc"
        assert shell.prompt_label == "foo-1.0 [dep-1]"

    def test_no_clean(self, package, env, tmp_path) -> None:
        """Should skip the clean step."""
        request = BuildRequest(no_clean=True, build_args=["-j4"])
        actions = self._generate(package, env, tmp_path, request)
        assert steps(actions) == ["configure", "build"]
        assert actions[-1].argv == ("make", "-j4")

    def test_configure_arguments(self, package, env, tmp_path) -> None:
        """Should pass configure arguments before the source directory."""
        request = BuildRequest(configure_args=["-DFOO=1", "-G", "Ninja"])
        actions = self._generate(package, env, tmp_path, request)
        configure = next(a for a in actions if isinstance(a, RunStep))
        assert configure.argv == ("cmake", "-DFOO=1", "-G", "Ninja", "../..")

    def test_no_variant_configures_parent(self, env, tmp_path) -> None:
        """Should configure '..' from the flat build directory."""
        package = PackageDescriptor(name="foo", version="1.0")
        actions = self._generate(
            package, env, tmp_path, BuildRequest(), variant=Variant.default()
        )
        configure = next(a for a in actions if isinstance(a, RunStep))
        assert configure.argv == ("cmake", "..")
        assert "REZ_BUILD_VARIANT" not in set_vars(actions)


class TestRenderScript:
    """Tests for render_script and write_activation_script."""

    def _actions(self, package, env, tmp_path, index=0, request=None):
        variant = package.get_variant(index)
        layout = create_build_dir(tmp_path, variant)
        actions = generate_actions(
            package=package,
            variant=variant,
            request=request or BuildRequest(),
            layout=layout,
            env=env,
            install_path=Path("/rel"),
        )
        return layout, actions

    def test_variant_scripts(self, package, env, tmp_path) -> None:
        """Should export project and distinct variant values, without a build."""
        for index, expected in [(0, "dep-1"), (1, "dep-2")]:
            _, actions = self._actions(package, env, tmp_path, index)
            text = render_script(actions)
            assert text.startswith(SHEBANG + "\n")
            assert "export REZ_BUILD_PROJECT_NAME=foo\n" in text
            assert "export REZ_BUILD_PROJECT_VERSION=1.0\n" in text
            assert f"export REZ_BUILD_VARIANT={expected}\n" in text
            assert "build step failed" not in text

    def test_rendering_is_deterministic(self, package, env, tmp_path) -> None:
        """Should produce identical bytes from identical inputs."""
        layout, actions = self._actions(package, env, tmp_path)
        write_activation_script(layout, actions)
        first = layout.script.read_bytes()
        _, actions = self._actions(package, env, tmp_path)
        write_activation_script(layout, actions)
        assert layout.script.read_bytes() == first

    def test_written_script_mode(self, package, env, tmp_path) -> None:
        """Should write an executable, world-writable script and an rcfile."""
        layout, actions = self._actions(package, env, tmp_path)
        path = write_activation_script(layout, actions)
        assert path == layout.script
        assert stat.S_IMODE(path.stat().st_mode) == 0o777
        assert "REZ_BUILD_PROMPT" in layout.rcfile.read_text()


@requires_bash
class TestGeneratedScriptInBash:
    """Run generated scripts with bash."""

    def _generate(self, package, tmp_path, commands, request, resolved=None):
        variant = package.get_variant(0)
        if resolved is None:
            resolved = ResolvedEnvironment(bindings={"REZ_RESOLVE": "bar-2 dep-1"})
        layout = create_build_dir(tmp_path, variant)
        resolve_request = ResolveRequest(
            requires=tuple(package.build_and_runtime_requires),
            variant=variant.specifiers,
            epoch=1700000000,
        )

        class _Resolver:
            def resolve(self, request, graph_path):
                return resolved

        env = resolve_environment(_Resolver(), resolve_request, layout)
        actions = generate_actions(
            package=package,
            variant=variant,
            request=request,
            layout=layout,
            env=env,
            install_path=Path("/rel/foo/1.0/dep-1"),
            commands=commands,
        )
        write_activation_script(layout, actions)
        return layout, actions

    def _write(self, package, tmp_path, commands, request):
        return self._generate(package, tmp_path, commands, request)[0]

    def test_runs_build_from_its_directory(
        self, package, tmp_path, recording_commands
    ) -> None:
        """Should configure, clean and build with the resolved environment."""
        request = BuildRequest(configure_args=["-DX=1"], build_args=["-j2"])
        layout = self._write(package, tmp_path, recording_commands, request)

        result = subprocess.run(
            ["./build-env.sh"], cwd=layout.build_dir, capture_output=True, text=True
        )

        assert result.returncode == 0, result.stderr
        assert (layout.build_dir / "configure.log").read_text() == "-DX=1 ../..\n"
        assert (layout.build_dir / "clean.log").exists()
        assert (layout.build_dir / "build.log").read_text() == "-j2\n"
        snapshot = layout.actual_env.read_text()
        assert "REZ_RESOLVE=bar-2 dep-1" in snapshot
        assert f"REZ_CONTEXT_FILE={layout.context}" in snapshot

    def test_refuses_other_directory(
        self, package, tmp_path, recording_commands
    ) -> None:
        """Should exit 1 without running anything from another directory."""
        layout = self._write(
            package, tmp_path, recording_commands, BuildRequest(build_args=[])
        )

        result = subprocess.run(
            ["bash", "build/0/build-env.sh"], cwd=tmp_path, capture_output=True, text=True
        )

        assert result.returncode == 1
        assert "must be run from its own directory" in result.stderr
        assert not (layout.build_dir / "configure.log").exists()

    def test_failed_step_stops_script(self, package, tmp_path, recording_commands) -> None:
        """Should stop at the first failing step with a diagnostic."""
        commands = ToolchainCommands(
            configure=recording_commands.configure,
            clean=("false",),
            build=recording_commands.build,
            bin_dir=recording_commands.bin_dir,
            module_dir=recording_commands.module_dir,
        )
        layout = self._write(package, tmp_path, commands, BuildRequest(build_args=[]))

        result = subprocess.run(
            ["./build-env.sh"], cwd=layout.build_dir, capture_output=True, text=True
        )

        assert result.returncode == 1
        assert "rez-build: clean step failed" in result.stderr
        assert not (layout.build_dir / "build.log").exists()

    def test_plain_assignments_reach_build_steps(
        self, package, tmp_path, recording_commands
    ) -> None:
        """Should export plain NAME=value lines of the context, as in-process does."""
        dump = "FOO_FROM_RESOLVER=hello\nREZ_RESOLVE='bar-2 dep-1'\n"
        resolved = ResolvedEnvironment(bindings=parse_env_dump(dump), dump=dump)
        record_env = (
            sys.executable,
            "-c",
            "import os\n"
            "with open('seen.log', 'a') as f:\n"
            "    f.write(os.environ.get('FOO_FROM_RESOLVER', 'unset') + '\\n')\n",
        )
        commands = ToolchainCommands(
            configure=record_env,
            clean=recording_commands.clean,
            build=recording_commands.build,
            bin_dir=recording_commands.bin_dir,
            module_dir=recording_commands.module_dir,
        )
        layout, actions = self._generate(
            package, tmp_path, commands, BuildRequest(build_args=[]), resolved
        )
        assert layout.context.read_text() == dump

        result = subprocess.run(
            ["./build-env.sh"], cwd=layout.build_dir, capture_output=True, text=True
        )
        assert result.returncode == 0, result.stderr
        assert "FOO_FROM_RESOLVER=hello" in layout.actual_env.read_text()

        execute_actions(actions, layout.build_dir)
        assert (layout.build_dir / "seen.log").read_text() == "hello\nhello\n"
