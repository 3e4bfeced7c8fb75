"""Tests for builds/actions.py module.

Tests rendering of each environment action to bash and its in-process
application.
"""

import sys

import pytest

from rez_build.builds.actions import (
    AppendEnv,
    Comment,
    ExecutionContext,
    InteractiveShell,
    RequireScriptDir,
    RunStep,
    SetEnv,
    SnapshotEnv,
    SourceContext,
    ToolchainError,
)


@pytest.fixture
def ctx(tmp_path) -> ExecutionContext:
    """An execution context rooted in a temporary directory."""
    return ExecutionContext(cwd=tmp_path, env={"PATH": "/usr/bin"})


class TestRender:
    """Tests for action rendering."""

    def test_comment(self) -> None:
        """Should prefix every line."""
        assert Comment("one\n\ntwo").render() == ["# one", "#", "# two"]

    def test_guard(self) -> None:
        """Should compare $0 with the script in the current directory."""
        lines = RequireScriptDir("build-env.sh").render()
        assert lines[0] == 'if [ ! "$0" -ef ./build-env.sh ]; then'
        assert "exit 1" in lines[2]

    def test_source_context(self) -> None:
        """Should source the context file by relative path with auto-export."""
        assert SourceContext("./build-env.context").render() == [
            "set -a",
            "source ./build-env.context",
            "set +a",
        ]

    def test_set_env_quotes(self) -> None:
        """Should quote values with spaces."""
        assert SetEnv("REZ_BUILD_VARIANT", "dep-1 other-2").render() == [
            "export REZ_BUILD_VARIANT='dep-1 other-2'"
        ]

    def test_append_env(self) -> None:
        """Should append with the separator only when a value exists."""
        assert AppendEnv("CMAKE_MODULE_PATH", "/opt/cmake", ";").render() == [
            'export CMAKE_MODULE_PATH="${CMAKE_MODULE_PATH:+${CMAKE_MODULE_PATH};}"/opt/cmake'
        ]

    def test_snapshot(self) -> None:
        """Should dump env to the snapshot file."""
        assert SnapshotEnv("./build-env.actual").render() == ["env > ./build-env.actual"]

    def test_run_step(self) -> None:
        """Should abort the script with a diagnostic when the step fails."""
        lines = RunStep("configure", ("cmake", "-DFOO=a b", "../..")).render()
        assert lines == [
            "if ! cmake '-DFOO=a b' ../..; then",
            '    echo "rez-build: configure step failed" >&2',
            "    exit 1",
            "fi",
        ]

    def test_interactive_shell(self) -> None:
        """Should set both prompt tiers before starting the shell."""
        lines = InteractiveShell("bash", "./build-env.bashrc", "foo-1.0").render()
        assert lines[0].startswith("export REZ_ENV_PROMPT=")
        assert lines[0].endswith("'>'")
        assert lines[1] == "export REZ_BUILD_PROMPT=foo-1.0"
        assert lines[2] == "bash --rcfile ./build-env.bashrc"


class TestApply:
    """Tests for in-process application."""

    def test_source_context_updates_env(self, ctx) -> None:
        """Should apply the carried bindings."""
        SourceContext("./ctx", (("A", "1"), ("PATH", "/opt/bin"))).apply(ctx)
        assert ctx.env["A"] == "1"
        assert ctx.env["PATH"] == "/opt/bin"

    def test_append_to_existing(self, ctx) -> None:
        """Should join with the separator."""
        AppendEnv("PATH", "/opt/rez/bin").apply(ctx)
        assert ctx.env["PATH"] == "/usr/bin:/opt/rez/bin"

    def test_append_to_unset(self, ctx) -> None:
        """Should set the value alone when the variable is unset."""
        AppendEnv("CMAKE_MODULE_PATH", "/opt/cmake", ";").apply(ctx)
        assert ctx.env["CMAKE_MODULE_PATH"] == "/opt/cmake"

    def test_env_prompt_nesting(self, ctx) -> None:
        """Should add one marker per nesting level."""
        action = AppendEnv("REZ_ENV_PROMPT", ">", separator="")
        action.apply(ctx)
        action.apply(ctx)
        assert ctx.env["REZ_ENV_PROMPT"] == ">>"

    def test_snapshot_writes_sorted_env(self, ctx) -> None:
        """Should write one sorted NAME=value line per variable."""
        ctx.env["B"] = "2"
        ctx.env["A"] = "1"
        SnapshotEnv("./build-env.actual").apply(ctx)
        lines = (ctx.cwd / "build-env.actual").read_text().splitlines()
        assert lines == sorted(lines)
        assert "A=1" in lines

    def test_guard_passes_in_script_dir(self, ctx) -> None:
        """Should pass when the script exists in the working directory."""
        (ctx.cwd / "build-env.sh").write_text("#!/bin/bash\n")
        RequireScriptDir("build-env.sh").apply(ctx)

    def test_guard_fails_elsewhere(self, ctx) -> None:
        """Should raise ToolchainError outside the script directory."""
        with pytest.raises(ToolchainError) as exc_info:
            RequireScriptDir("build-env.sh").apply(ctx)
        assert exc_info.value.step == "guard"

    def test_run_step_uses_explicit_env(self, ctx, monkeypatch) -> None:
        """Should hand the context environment to the subprocess."""
        monkeypatch.delenv("REZ_BUILD_VARIANT", raising=False)
        ctx.env["REZ_BUILD_VARIANT"] = "dep-1"
        script = (
            "import os\n"
            "open('out.txt', 'w').write(os.environ['REZ_BUILD_VARIANT'])\n"
        )
        RunStep("configure", (sys.executable, "-c", script)).apply(ctx)
        assert (ctx.cwd / "out.txt").read_text() == "dep-1"

    def test_run_step_failure(self, ctx) -> None:
        """Should raise ToolchainError with the step and exit code."""
        step = RunStep("build", (sys.executable, "-c", "import sys; sys.exit(4)"))
        with pytest.raises(ToolchainError) as exc_info:
            step.apply(ctx)
        assert exc_info.value.step == "build"
        assert exc_info.value.exit_code == 4
        assert exc_info.value.code == "build"

    def test_run_step_missing_command(self, ctx) -> None:
        """Should raise ToolchainError when the command does not exist."""
        step = RunStep("clean", ("definitely-not-a-real-command-xyz",))
        with pytest.raises(ToolchainError, match="failed to run clean step"):
            step.apply(ctx)
