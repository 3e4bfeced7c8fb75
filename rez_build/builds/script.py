"""Activation script generation.

This module handles:
- Building the ordered action list of a variant's activation script
- Rendering the actions to ``build-env.sh``
- Rendering the startup file of the interactive build shell

Sections always appear in the same order: header, directory guard,
environment sourcing, path augmentation, build variables, configure step,
optional clean step, then either the compile step or an interactive shell.
The generated text contains no timestamps, so regenerating it from the
same inputs yields identical bytes.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from rez_build.builds.actions import (
    CONTEXT_FILE_VAR,
    AppendEnv,
    Comment,
    EnvAction,
    InteractiveShell,
    RequireScriptDir,
    RunStep,
    SetEnv,
    SnapshotEnv,
    SourceContext,
)
from rez_build.builds.directory import SCRIPT_MODE, BuildLayout, write_text_atomic
from rez_build.package.specifier import unversioned

if TYPE_CHECKING:
    from rez_build.builds.request import BuildRequest
    from rez_build.builds.resolver import ResolvedEnvironment
    from rez_build.config import Settings
    from rez_build.package.schema import PackageDescriptor, Variant

SHEBANG = "#!/bin/bash"

# Directory holding the build-system modules shipped with rez_build
BUNDLED_MODULE_DIR = Path(__file__).resolve().parent.parent / "cmake"


@dataclass(frozen=True)
class ToolchainCommands:
    """External commands the activation script drives.

    Attributes:
        configure: Build configuration command.
        clean: Clean command.
        build: Compile command.
        shell: Interactive shell executable.
        module_path_var: Variable the module directory is appended to.
        module_dir: Build-system module directory of rez_build.
        bin_dir: Directory holding the rez-build executables.
    """

    configure: tuple[str, ...] = ("cmake",)
    clean: tuple[str, ...] = ("make", "clean")
    build: tuple[str, ...] = ("make",)
    shell: str = "bash"
    module_path_var: str = "CMAKE_MODULE_PATH"
    module_dir: Path = BUNDLED_MODULE_DIR
    bin_dir: Path = Path(sys.executable).parent

    @classmethod
    def from_settings(cls, settings: Settings) -> ToolchainCommands:
        """Build the command set from application settings."""
        return cls(
            configure=tuple(settings.configure_command),
            clean=tuple(settings.clean_command),
            build=tuple(settings.build_command),
            shell=settings.shell,
            module_path_var=settings.module_path_var,
            module_dir=settings.module_dir or BUNDLED_MODULE_DIR,
            bin_dir=settings.bin_dir or Path(sys.executable).parent,
        )


def _local(path: Path) -> str:
    """Return a path relative to the script's own directory."""
    return f"./{path.name}"


def build_variables(
    package: PackageDescriptor,
    variant: Variant,
    install_path: Path,
) -> list[tuple[str, str]]:
    """Return the build-time variables exported for a variant.

    Args:
        package: Package descriptor.
        variant: Variant being built (or the no-variant sentinel).
        install_path: Predicted install path of the variant.

    Returns:
        Ordered list of (name, value) pairs.
    """
    variables = [
        ("REZ_BUILD_ENV", "1"),
        ("REZ_BUILD_PROJECT_NAME", package.name),
        ("REZ_BUILD_PROJECT_VERSION", package.version),
        ("REZ_BUILD_REQUIRES_UNVER", unversioned(package.build_and_runtime_requires)),
        ("REZ_BUILD_INSTALL_PATH", str(install_path)),
    ]
    if not variant.is_default:
        variables.extend(
            [
                ("REZ_BUILD_VARIANT", variant.signature),
                ("REZ_BUILD_VARIANT_UNVER", variant.unversioned),
                ("REZ_BUILD_VARIANT_SUBDIR", variant.subdir),
            ]
        )
    return variables


def configure_source_dir(variant: Variant) -> str:
    """Return the project root as seen from a variant's build directory."""
    return ".." if variant.is_default else "../.."


def generate_actions(
    package: PackageDescriptor,
    variant: Variant,
    request: BuildRequest,
    layout: BuildLayout,
    env: ResolvedEnvironment,
    install_path: Path,
    commands: ToolchainCommands | None = None,
) -> list[EnvAction]:
    """Build the ordered action list of a variant's activation script.

    Args:
        package: Package descriptor.
        variant: Variant being built (or the no-variant sentinel).
        request: Build request (pass-through arguments and clean flag).
        layout: Build directory layout.
        env: Resolved environment of the variant.
        install_path: Predicted install path of the variant.
        commands: External commands; defaults are used if not provided.

    Returns:
        List of actions, in execution order.
    """
    if commands is None:
        commands = ToolchainCommands()

    label = package.qualified_name
    if not variant.is_default:
        label += f" [{variant.signature}]"

    actions: list[EnvAction] = [
        Comment(f"Build environment for {label}\nGenerated by rez-build; do not edit."),
        RequireScriptDir(layout.SCRIPT_NAME),
        # Environment
        SourceContext(_local(layout.context), tuple(env.bindings.items())),
        SetEnv(CONTEXT_FILE_VAR, str(layout.context)),
        SnapshotEnv(_local(layout.actual_env)),
        # Tooling paths
        AppendEnv(commands.module_path_var, str(commands.module_dir), separator=";"),
        AppendEnv("PATH", str(commands.bin_dir), separator=os.pathsep),
    ]

    actions.extend(
        SetEnv(name, value)
        for name, value in build_variables(package, variant, install_path)
    )

    configure_argv = (
        *commands.configure,
        *request.configure_args,
        configure_source_dir(variant),
    )
    actions.append(RunStep("configure", configure_argv))

    if request.build_now:
        if not request.no_clean:
            actions.append(RunStep("clean", commands.clean))
        actions.append(RunStep("build", (*commands.build, *(request.build_args or []))))
    else:
        actions.append(
            InteractiveShell(
                shell=commands.shell,
                rcfile=_local(layout.rcfile),
                prompt_label=label,
            )
        )
    return actions


def render_script(actions: list[EnvAction]) -> str:
    """Render an action list as a bash script.

    Args:
        actions: Actions in execution order.

    Returns:
        Complete script text.
    """
    lines = [SHEBANG]
    for action in actions:
        lines.extend(action.render())
    return "\n".join(lines) + "\n"


def render_shell_rcfile() -> str:
    """Render the startup file of the interactive build shell.

    The user's own bashrc is read first so aliases and functions survive;
    the prompt then shows both prompt tiers.
    """
    return (
        "[ -f ~/.bashrc ] && source ~/.bashrc\n"
        'PS1="${REZ_ENV_PROMPT} ${REZ_BUILD_PROMPT}\\n${PS1:-\\$ }"\n'
    )


def write_activation_script(layout: BuildLayout, actions: list[EnvAction]) -> Path:
    """Write a variant's activation script and shell startup file.

    The script is rendered completely in memory and then replaced
    atomically, so an interrupted run never leaves a truncated script.

    Args:
        layout: Build directory layout.
        actions: Actions in execution order.

    Returns:
        Path to the written script.
    """
    write_text_atomic(layout.rcfile, render_shell_rcfile())
    return write_text_atomic(layout.script, render_script(actions), mode=SCRIPT_MODE)


__all__ = [
    "BUNDLED_MODULE_DIR",
    "SHEBANG",
    "ToolchainCommands",
    "build_variables",
    "configure_source_dir",
    "generate_actions",
    "render_script",
    "render_shell_rcfile",
    "write_activation_script",
]
