"""Build history ORM models.

This module defines the BuildRecord model: one row per variant processed
by an orchestrator run. History is informational; nothing in the build
pipeline reads it back.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from rez_build.db import Base
from rez_build.types import BuildStatus


class BuildRecord(Base):
    """ORM model for variant build records.

    Attributes:
        id: Primary key.
        package_name: Name of the package built.
        package_version: Version of the package built.
        variant_index: Variant index (-1 when the package has no variants).
        variant: Space-joined variant specifiers.
        build_dir: Build directory of the variant.
        epoch: Resolution cutoff of the run.
        mode: Resolution mode of the run.
        build_requested: Whether the toolchain was run, not just the script generated.
        status: Build status (pending, running, succeeded, failed).
        requested_at: Timestamp when the record was created.
        started_at: Timestamp when processing started.
        finished_at: Timestamp when processing finished.
        error_type: Failing operation if the build failed.
        error_message: Error message if the build failed.
    """

    __tablename__ = "build_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # What was built
    package_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    package_version: Mapped[str] = mapped_column(String(100), nullable=False)
    variant_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    variant: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    build_dir: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # How it was resolved
    epoch: Mapped[int] = mapped_column(Integer, nullable=False)
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    build_requested: Mapped[bool] = mapped_column(nullable=False, default=False)

    # Status and timing
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value, index=True
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Error tracking
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_build_records_package_status", "package_name", "status"),
    )

    def __repr__(self) -> str:
        """Return string representation of BuildRecord."""
        return (
            f"<BuildRecord(id={self.id}, package='{self.package_name}-"
            f"{self.package_version}', variant={self.variant_index}, "
            f"status='{self.status}')>"
        )

    def mark_running(self) -> None:
        """Mark this build as running."""
        self.status = BuildStatus.RUNNING.value
        self.started_at = datetime.now()

    def mark_succeeded(self) -> None:
        """Mark this build as succeeded."""
        self.status = BuildStatus.SUCCEEDED.value
        self.finished_at = datetime.now()

    def mark_failed(
        self, error_type: str | None = None, message: str | None = None
    ) -> None:
        """Mark this build as failed.

        Args:
            error_type: Failing operation (resolve, build, vcs).
            message: Error message details.
        """
        self.status = BuildStatus.FAILED.value
        self.finished_at = datetime.now()
        if error_type:
            self.error_type = error_type
        if message:
            self.error_message = message

    def is_succeeded(self) -> bool:
        """Check if this build succeeded."""
        return self.status == BuildStatus.SUCCEEDED.value


__all__ = ["BuildRecord"]
