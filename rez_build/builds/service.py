"""Variant build service.

This module provides the high-level build API:
- select_variants(): Which variants a request covers
- get_install_paths(): Install path projection without building
- build_variant(): The full pipeline for one variant
- run_variant_builds(): Main entry point - every selected variant, in order

Per variant the pipeline is: create build directory, write ownership
marker, write metadata, capture changelog, resolve the environment,
generate the activation script, then optionally run it. Variants are
processed strictly one after another, and the first failure stops the run;
variants completed before it are left as they are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import select

from rez_build.builds.actions import ToolchainError
from rez_build.builds.directory import (
    BuildDirectoryError,
    create_build_dir,
    get_build_dir,
    get_install_path,
    write_ownership_marker,
)
from rez_build.builds.metadata import (
    BuildMetadataRecord,
    capture_changelog,
    create_metadata_record,
    record_metadata,
    resolve_source_url,
)
from rez_build.builds.models import BuildRecord
from rez_build.builds.request import UsageError
from rez_build.builds.resolver import (
    CommandResolver,
    ResolutionError,
    ResolveRequest,
    resolve_environment,
)
from rez_build.builds.runner import execute_actions, run_script
from rez_build.builds.script import (
    ToolchainCommands,
    generate_actions,
    write_activation_script,
)
from rez_build.config import get_settings
from rez_build.package.schema import Variant
from rez_build.types import BuildStatus
from rez_build.vcs import VcsError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from rez_build.builds.request import BuildRequest
    from rez_build.builds.resolver import Resolver
    from rez_build.config import Settings
    from rez_build.package.schema import PackageDescriptor

logger = logging.getLogger(__name__)

# Failures that stop a run after it has started touching build directories
PIPELINE_ERRORS = (BuildDirectoryError, ResolutionError, ToolchainError, VcsError)


@dataclass
class VariantOutcome:
    """Outcome of processing one variant.

    Attributes:
        variant: The variant processed.
        status: SUCCEEDED or FAILED.
        build_dir: Build directory of the variant.
        script_path: Generated activation script, if one was written.
        install_path: Predicted install path.
        built: Whether the toolchain was run.
        error_type: Failing operation (filesystem, resolve, build, vcs) on failure.
        error_message: Error message on failure.
    """

    variant: Variant
    status: BuildStatus
    build_dir: Path | None = None
    script_path: Path | None = None
    install_path: Path | None = None
    built: bool = False
    error_type: str | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        """Whether the variant was processed successfully."""
        return self.status == BuildStatus.SUCCEEDED


@dataclass
class BuildRunResult:
    """Ordered outcomes of one orchestrator run.

    Processing stops at the first failed variant, so the failed outcome, if
    any, is always the last one.

    Attributes:
        package: ``name-version`` of the package.
        selected: Number of variants the run covered.
        outcomes: Outcomes of the variants actually processed, in order.
    """

    package: str
    selected: int
    outcomes: list[VariantOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether every selected variant succeeded."""
        return len(self.outcomes) == self.selected and all(
            o.success for o in self.outcomes
        )

    @property
    def failed(self) -> VariantOutcome | None:
        """Return the failed outcome, if any."""
        if self.outcomes and not self.outcomes[-1].success:
            return self.outcomes[-1]
        return None

    @property
    def stopped_early(self) -> bool:
        """Whether variants were left unprocessed."""
        return len(self.outcomes) < self.selected


def select_variants(package: PackageDescriptor, request: BuildRequest) -> list[Variant]:
    """Return the variants a request covers, in processing order.

    Args:
        package: Package descriptor.
        request: Build request.

    Returns:
        The requested variant; else all variants by ascending index; else the
        no-variant sentinel when the package declares none.

    Raises:
        VariantNotFoundError: If the requested variant does not exist.
        UsageError: If --no-clean is combined with more than one variant.
    """
    if request.variant_index is not None:
        variants = [package.get_variant(request.variant_index)]
    elif package.variant_count:
        variants = package.iter_variants()
    else:
        variants = [Variant.default()]

    if request.no_clean and len(variants) > 1:
        raise UsageError(
            "--no-clean requires a single variant (use --variant); "
            f"package {package.qualified_name} has {len(variants)}"
        )
    return variants


def get_install_paths(
    package: PackageDescriptor,
    request: BuildRequest,
    release_root: Path,
) -> list[Path]:
    """Project the install path of every selected variant.

    Nothing is created or resolved.

    Args:
        package: Package descriptor.
        request: Build request.
        release_root: Release packages root.

    Returns:
        Install paths in variant order.
    """
    return [
        get_install_path(release_root, package, variant)
        for variant in select_variants(package, request)
    ]


def build_variant(
    package: PackageDescriptor,
    variant: Variant,
    request: BuildRequest,
    project_root: Path,
    resolver: Resolver,
    metadata: BuildMetadataRecord,
    settings: Settings,
    commands: ToolchainCommands | None = None,
) -> VariantOutcome:
    """Run the full pipeline for one variant.

    Args:
        package: Package descriptor.
        variant: Variant to process.
        request: Build request.
        project_root: Project directory.
        resolver: Resolver to use.
        metadata: Provenance record of the run.
        settings: Application settings.
        commands: External toolchain commands.

    Returns:
        Successful VariantOutcome.

    Raises:
        BuildDirectoryError: If the build directory or an artifact cannot be
            written.
        VcsError: If the changelog cannot be obtained.
        ResolutionError: If the environment cannot be resolved.
        ToolchainError: If a build step fails.
    """
    if commands is None:
        commands = ToolchainCommands.from_settings(settings)

    try:
        layout = create_build_dir(project_root, variant)
        write_ownership_marker(project_root)
        record_metadata(layout, metadata)
        capture_changelog(layout, project_root, request.changelog_path)
    except OSError as e:
        raise BuildDirectoryError(
            f"cannot prepare build directory: {e}",
            path=get_build_dir(project_root, variant),
        ) from e

    resolve_request = ResolveRequest(
        requires=tuple(package.build_and_runtime_requires),
        variant=variant.specifiers,
        epoch=request.epoch,
        mode=request.mode,
        toolchain_package=settings.toolchain_package or None,
        include_blacklisted=request.include_blacklisted,
        include_archived=request.include_archived,
        assume_transitive=request.assume_transitive,
    )
    env = resolve_environment(resolver, resolve_request, layout)

    install_path = get_install_path(settings.release_packages_path, package, variant)
    actions = generate_actions(
        package=package,
        variant=variant,
        request=request,
        layout=layout,
        env=env,
        install_path=install_path,
        commands=commands,
    )
    try:
        script_path = write_activation_script(layout, actions)
    except OSError as e:
        raise BuildDirectoryError(
            f"cannot write activation script: {e}", path=layout.script
        ) from e
    logger.info("Generated %s", script_path)

    if request.build_now:
        if settings.execute_via_script:
            result = run_script(script_path)
        else:
            try:
                result = execute_actions(actions, layout.build_dir)
            except OSError as e:
                raise BuildDirectoryError(
                    f"cannot write build artifact: {e}", path=layout.build_dir
                ) from e
        logger.info("Built %s in %.1fs", layout.build_dir, result.duration)

    return VariantOutcome(
        variant=variant,
        status=BuildStatus.SUCCEEDED,
        build_dir=layout.build_dir,
        script_path=script_path,
        install_path=install_path,
        built=request.build_now,
    )


def _create_build_record(
    session: Session,
    package: PackageDescriptor,
    variant: Variant,
    request: BuildRequest,
) -> BuildRecord:
    """Create a history row in running state."""
    record = BuildRecord(
        package_name=package.name,
        package_version=package.version,
        variant_index=variant.index,
        variant=variant.signature,
        epoch=request.epoch,
        mode=request.mode.value,
        build_requested=request.build_now,
        status=BuildStatus.PENDING.value,
    )
    session.add(record)
    record.mark_running()
    session.flush()
    return record


def run_variant_builds(
    package: PackageDescriptor,
    request: BuildRequest,
    project_root: Path,
    resolver: Resolver | None = None,
    settings: Settings | None = None,
    session: Session | None = None,
    commands: ToolchainCommands | None = None,
) -> BuildRunResult:
    """Process every selected variant of a package, stopping at the first failure.

    Usage and manifest problems are raised before any build directory is
    touched. Failures after that point are reported in the result.

    Args:
        package: Package descriptor.
        request: Build request.
        project_root: Project directory.
        resolver: Resolver to use; the configured command resolver by default.
        settings: Application settings.
        session: Optional database session for build history.
        commands: External toolchain commands.

    Returns:
        BuildRunResult with one outcome per processed variant.

    Raises:
        UsageError: If the request combines options that are not allowed.
        VariantNotFoundError: If the requested variant does not exist.
        VcsError: If the source URL cannot be obtained.
    """
    if settings is None:
        settings = get_settings()

    request.validate_usage(settings.denied_configure_flags)
    variants = select_variants(package, request)

    if resolver is None:
        resolver = CommandResolver(settings.resolver_command)
    if commands is None:
        commands = ToolchainCommands.from_settings(settings)

    # One provenance record for the whole run; every variant shares its cutoff
    metadata = create_metadata_record(
        build_time=request.epoch,
        source_url=resolve_source_url(project_root, request.source_url),
    )

    result = BuildRunResult(package=package.qualified_name, selected=len(variants))
    logger.info(
        "Processing %d variant(s) of %s at epoch %d",
        len(variants),
        package.qualified_name,
        request.epoch,
    )

    for variant in variants:
        history: BuildRecord | None = None
        if session is not None:
            history = _create_build_record(session, package, variant, request)

        try:
            outcome = build_variant(
                package=package,
                variant=variant,
                request=request,
                project_root=project_root,
                resolver=resolver,
                metadata=metadata,
                settings=settings,
                commands=commands,
            )
        except PIPELINE_ERRORS as e:
            logger.error("Variant %d of %s failed: %s", variant.index, package.name, e)
            result.outcomes.append(
                VariantOutcome(
                    variant=variant,
                    status=BuildStatus.FAILED,
                    install_path=get_install_path(
                        settings.release_packages_path, package, variant
                    ),
                    error_type=e.code,
                    error_message=str(e),
                )
            )
            if history is not None:
                history.mark_failed(error_type=e.code, message=str(e))
                session.flush()
            break

        if history is not None:
            history.build_dir = str(outcome.build_dir)
            history.mark_succeeded()
            session.flush()
        result.outcomes.append(outcome)

    return result


def list_build_records(
    session: Session,
    package_name: str | None = None,
    status: BuildStatus | None = None,
    limit: int = 100,
) -> list[BuildRecord]:
    """List build history rows with optional filters.

    Args:
        session: Database session.
        package_name: Filter by package name.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of BuildRecord instances, newest first.
    """
    stmt = select(BuildRecord)

    if package_name is not None:
        stmt = stmt.where(BuildRecord.package_name == package_name)
    if status is not None:
        stmt = stmt.where(BuildRecord.status == status.value)

    stmt = stmt.order_by(BuildRecord.id.desc()).limit(limit)

    return list(session.execute(stmt).scalars().all())


__all__ = [
    "PIPELINE_ERRORS",
    "BuildRunResult",
    "VariantOutcome",
    "build_variant",
    "get_install_paths",
    "list_build_records",
    "run_variant_builds",
    "select_variants",
]
