"""Thin CLI wrapper for rez_build.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.

Arguments after ``--`` are passed to the configure step; a second ``--``
starts the compile step's arguments and requests an immediate build::

    rez-build run -- -DBUILD_DOCS=ON -- -j8
"""

import json
import logging
import shlex
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, NoReturn

import typer
from rich.console import Console

from rez_build import __version__
from rez_build.config import Settings, get_settings, print_settings_json
from rez_build.types import BuildStatus, ResolveMode

if TYPE_CHECKING:
    from rez_build.builds.request import BuildRequest
    from rez_build.builds.service import BuildRunResult
    from rez_build.package.schema import PackageDescriptor

app = typer.Typer(
    name="rez-build",
    help="rez-build - build a package against every variant it declares",
    no_args_is_help=True,
)
console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"rez-build version {__version__}")
        raise typer.Exit()


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(error: Exception) -> NoReturn:
    """Print a one-line diagnostic for a domain error and exit 1."""
    code = getattr(error, "code", "error")
    err_console.print(f"{code}: {error}", style="red", markup=False, highlight=False)
    raise typer.Exit(code=1) from None


def _print_setting(label: str, value: object) -> None:
    # Values are user-supplied and may contain brackets
    console.print(f"  {label + ':':<21}{value}", markup=False, highlight=False)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """rez-build - build a package against every variant it declares."""
    _configure_logging(get_settings())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, highlight=False)
    else:
        module_dir_display = (
            str(settings.module_dir) if settings.module_dir else "(bundled)"
        )
        bin_dir_display = (
            str(settings.bin_dir) if settings.bin_dir else "(interpreter directory)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        _print_setting("Release packages", settings.release_packages_path)
        _print_setting("Database URL", settings.db_url)
        _print_setting("Module directory", module_dir_display)
        _print_setting("Bin directory", bin_dir_display)
        console.print()
        console.print("[bold]Operational:[/bold]")
        _print_setting("Record history", settings.record_history)
        _print_setting("Execute via script", settings.execute_via_script)
        _print_setting("Log level", settings.log_level)
        console.print()
        console.print("[bold]Toolchain:[/bold]")
        _print_setting("Resolver", shlex.join(settings.resolver_command))
        _print_setting("Toolchain package", settings.toolchain_package)
        _print_setting("Configure", shlex.join(settings.configure_command))
        _print_setting("Clean", shlex.join(settings.clean_command))
        _print_setting("Build", shlex.join(settings.build_command))
        _print_setting("Shell", settings.shell)


@app.command()
def run(
    args: Annotated[
        list[str] | None,
        typer.Argument(
            help="After '--': configure arguments, then '--' and build arguments",
            show_default=False,
        ),
    ] = None,
    mode: Annotated[
        ResolveMode,
        typer.Option("--mode", "-m", help="Resolution mode"),
    ] = ResolveMode.LATEST,
    variant: Annotated[
        int | None,
        typer.Option("--variant", "-v", help="Build only this variant index"),
    ] = None,
    no_clean: Annotated[
        bool,
        typer.Option("--no-clean", "-n", help="Skip the clean step (build only)"),
    ] = False,
    source_url: Annotated[
        str | None,
        typer.Option("--source-url", "-s", help="Source URL to record"),
    ] = None,
    changelog: Annotated[
        Path | None,
        typer.Option("--changelog", "-c", help="Changelog file to record"),
    ] = None,
    epoch: Annotated[
        int | None,
        typer.Option(
            "--time", "-t", help="Ignore packages released after this epoch"
        ),
    ] = None,
    print_install_path: Annotated[
        bool,
        typer.Option(
            "--print-install-path", "-i", help="Print install path(s) and exit"
        ),
    ] = False,
    ignore_blacklist: Annotated[
        bool,
        typer.Option("--ignore-blacklist", help="Include blacklisted packages"),
    ] = False,
    ignore_archiving: Annotated[
        bool,
        typer.Option("--ignore-archiving", help="Include archived packages"),
    ] = False,
    no_assume_dt: Annotated[
        bool,
        typer.Option("--no-assume-dt", help="Do not assume transitive closure"),
    ] = False,
    project: Annotated[
        Path | None,
        typer.Option("--project", "-p", help="Project directory (default: cwd)"),
    ] = None,
) -> None:
    """Resolve and generate a build environment for each variant.

    Without a second '--' a build-env.sh is generated per variant; run it from
    its directory to enter the build environment. With a second '--' every
    variant is also configured and built, stopping at the first failure.
    """
    from rez_build.builds.request import BuildRequest, UsageError, split_passthrough_args
    from rez_build.builds.service import get_install_paths
    from rez_build.package.io import ManifestError, load_project_package
    from rez_build.package.schema import VariantNotFoundError
    from rez_build.vcs import VcsError

    settings = get_settings()
    project_root = (project or Path.cwd()).resolve()
    configure_args, build_args = split_passthrough_args(args or [])

    request_fields: dict[str, object] = {
        "mode": mode,
        "variant_index": variant,
        "no_clean": no_clean,
        "include_blacklisted": ignore_blacklist,
        "include_archived": ignore_archiving,
        "assume_transitive": not no_assume_dt,
        "changelog_path": changelog,
        "source_url": source_url,
        "print_install_path": print_install_path,
        "configure_args": configure_args,
        "build_args": build_args,
    }
    if epoch is not None:
        request_fields["epoch"] = epoch
    request = BuildRequest.model_validate(request_fields)

    try:
        request.validate_usage(settings.denied_configure_flags)
        package = load_project_package(project_root)

        if request.print_install_path:
            for path in get_install_paths(
                package, request, settings.release_packages_path
            ):
                typer.echo(str(path))
            return

        result = _run_builds(package, request, project_root, settings)
    except (UsageError, ManifestError, VariantNotFoundError, VcsError) as e:
        _fail(e)

    for outcome in result.outcomes:
        name = (
            "default"
            if outcome.variant.is_default
            else f"variant {outcome.variant.index} ({outcome.variant.signature})"
        )
        if outcome.success and outcome.built:
            console.print(f"[green]Built {result.package} {name}[/green]")
        elif outcome.success:
            console.print(f"Generated {outcome.script_path}", highlight=False)
        else:
            err_console.print(
                f"{outcome.error_type}: {name}: {outcome.error_message}",
                style="red",
                markup=False,
                highlight=False,
            )

    if not result.success:
        raise typer.Exit(code=1)


def _run_builds(
    package: "PackageDescriptor",
    request: "BuildRequest",
    project_root: Path,
    settings: Settings,
) -> "BuildRunResult":
    """Run the orchestrator, recording history when enabled."""
    from rez_build.builds.service import run_variant_builds
    from rez_build.db import create_all_tables, get_engine, get_session, get_session_factory

    if not settings.record_history:
        return run_variant_builds(package, request, project_root, settings=settings)

    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    with get_session(get_session_factory(engine)) as session:
        return run_variant_builds(
            package, request, project_root, settings=settings, session=session
        )


@app.command()
def variants(
    project: Annotated[
        Path | None,
        typer.Option("--project", "-p", help="Project directory (default: cwd)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the variants declared by the package."""
    from rez_build.builds.directory import get_build_dir, get_install_path
    from rez_build.package.io import ManifestError, load_project_package
    from rez_build.package.schema import Variant

    settings = get_settings()
    project_root = (project or Path.cwd()).resolve()
    try:
        package = load_project_package(project_root)
    except ManifestError as e:
        _fail(e)

    entries = package.iter_variants() or [Variant.default()]
    rows = [
        {
            "index": v.index,
            "variant": v.signature,
            "alias": v.alias,
            "build_dir": str(get_build_dir(project_root, v)),
            "install_path": str(
                get_install_path(settings.release_packages_path, package, v)
            ),
        }
        for v in entries
    ]

    if json_output:
        output = {"package": package.qualified_name, "variants": rows}
        console.print(json.dumps(output, indent=2), markup=False, highlight=False)
        return

    console.print(f"[bold]{package.qualified_name}[/bold]")
    if package.variant_count == 0:
        console.print("  [yellow]No variants declared (single default build)[/yellow]")
    for row in rows:
        if row["index"] >= 0:
            console.print(f"  [green]{row['index']}[/green]: {row['variant']}")
        else:
            console.print("  [green]default[/green]")
        console.print(f"    Build dir:    {row['build_dir']}", highlight=False)
        console.print(f"    Install path: {row['install_path']}", highlight=False)


@app.command()
def history(
    package_name: Annotated[
        str | None,
        typer.Option("--package", "-P", help="Filter by package name"),
    ] = None,
    status: Annotated[
        BuildStatus | None,
        typer.Option("--status", help="Filter by status"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records"),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List recorded variant builds, newest first."""
    from rez_build.builds.service import list_build_records
    from rez_build.db import create_all_tables, get_engine, get_session_factory

    settings = get_settings()
    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        records = list_build_records(
            session, package_name=package_name, status=status, limit=limit
        )

        if json_output:
            output = [
                {
                    "id": r.id,
                    "package": f"{r.package_name}-{r.package_version}",
                    "variant_index": r.variant_index,
                    "variant": r.variant,
                    "status": r.status,
                    "epoch": r.epoch,
                    "mode": r.mode,
                    "build_requested": r.build_requested,
                    "build_dir": r.build_dir,
                    "error_type": r.error_type,
                    "error_message": r.error_message,
                }
                for r in records
            ]
            console.print(json.dumps(output, indent=2), markup=False, highlight=False)
            return

        if not records:
            console.print("[yellow]No builds recorded[/yellow]")
            return

        console.print(f"[bold]Found {len(records)} build(s):[/bold]")
        console.print()
        for r in records:
            color = "green" if r.is_succeeded() else "red"
            variant_display = r.variant or "default"
            console.print(
                f"  [{color}]#{r.id} {r.package_name}-{r.package_version}[/{color}]"
                f" {variant_display} ({r.status})"
            )
            if r.error_message:
                console.print(f"    Error: {r.error_message}", markup=False)


__all__ = ["app"]
