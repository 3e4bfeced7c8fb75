"""Configuration settings for rez_build.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_release_packages_path() -> Path:
    """Return the default release packages root."""
    return Path.home() / "packages"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "rez-build" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the REZBUILD_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="REZBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    release_packages_path: Path = Field(
        default_factory=_default_release_packages_path,
        description="Root directory packages are released (installed) into",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL for build history",
    )
    module_dir: Path | None = Field(
        default=None,
        description="Build-system module directory (uses bundled modules if not set)",
    )
    bin_dir: Path | None = Field(
        default=None,
        description="Directory holding rez-build executables (uses interpreter dir if not set)",
    )

    # Operational modes
    record_history: bool = Field(
        default=False,
        description="Record one history row per processed variant",
    )
    execute_via_script: bool = Field(
        default=False,
        description="Run builds through the generated script instead of in-process",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    # External tools
    resolver_command: list[str] = Field(
        default_factory=lambda: ["rez-config"],
        description="Command used to resolve an environment",
    )
    toolchain_package: str = Field(
        default="cmake",
        description="Build toolchain package implicitly added to every resolve",
    )
    configure_command: list[str] = Field(
        default_factory=lambda: ["cmake"],
        description="Build configuration command",
    )
    clean_command: list[str] = Field(
        default_factory=lambda: ["make", "clean"],
        description="Clean command run before compiling",
    )
    build_command: list[str] = Field(
        default_factory=lambda: ["make"],
        description="Compile command",
    )
    denied_configure_flags: list[str] = Field(
        default_factory=lambda: ["-DCMAKE_INSTALL_PREFIX"],
        description="Configure argument prefixes the orchestrator refuses",
    )
    module_path_var: str = Field(
        default="CMAKE_MODULE_PATH",
        description="Variable the build-system module directory is appended to",
    )
    shell: str = Field(
        default="bash",
        description="Shell used for interactive build environments",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
