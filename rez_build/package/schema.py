"""Pydantic models for package descriptors.

This module defines the package descriptor read from a project's manifest
(``package.yaml``) and the Variant view the build pipeline works with.
Only the fields the build pipeline needs are modelled; other manifest keys
are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rez_build.package.specifier import Specifier, join_specifiers, parse_specifiers

# Index of the single default build of a package that declares no variants
NO_VARIANT = -1


class VariantNotFoundError(Exception):
    """Raised when a requested variant index does not exist."""

    def __init__(self, index: int, count: int, code: str = "manifest") -> None:
        super().__init__(
            f"unknown variant {index} (package declares {count} variant(s))"
        )
        self.index = index
        self.count = count
        self.code = code


@dataclass(frozen=True)
class Variant:
    """One alternate set of dependencies a package is built against.

    Attributes:
        index: Position in the package's variant list, or NO_VARIANT.
        specifiers: Ordered dependency specifiers of the variant.
    """

    index: int
    specifiers: tuple[Specifier, ...] = ()

    @classmethod
    def default(cls) -> Variant:
        """Return the sentinel used when a package declares no variants."""
        return cls(index=NO_VARIANT)

    @property
    def is_default(self) -> bool:
        """Whether this is the no-variant sentinel."""
        return self.index == NO_VARIANT

    @property
    def signature(self) -> str:
        """Space-joined specifier text identifying the variant's content."""
        return join_specifiers(self.specifiers, " ")

    @property
    def alias(self) -> str:
        """Human-readable build directory alias."""
        return join_specifiers(self.specifiers, "_")

    @property
    def subdir(self) -> str:
        """Path fragment used below the package's install path."""
        return join_specifiers(self.specifiers, "/")

    @property
    def unversioned(self) -> str:
        """Space-joined specifier names, versions stripped."""
        return " ".join(s.unversioned for s in self.specifiers)


def _as_specifier_list(value: Any) -> Any:
    """Accept a space-separated string wherever a specifier list is expected."""
    if isinstance(value, str):
        return value.split()
    return value


def _check_specifiers(values: list[str]) -> list[str]:
    """Validate specifier strings by parsing them."""
    parse_specifiers(values)
    return values


class PackageDescriptor(BaseModel):
    """Package descriptor read from a project manifest.

    Attributes:
        name: Package name.
        version: Package version.
        requires: Runtime requirements.
        build_requires: Build-time-only requirements.
        variants: Ordered list of variants, each a list of specifiers.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1, description="Package name")
    version: str = Field(min_length=1, description="Package version")
    requires: list[str] = Field(default_factory=list)
    build_requires: list[str] = Field(default_factory=list)
    variants: list[list[str]] = Field(default_factory=list)

    @field_validator("name", "version", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        """Accept numeric versions and strip surrounding whitespace."""
        if isinstance(v, (int, float)):
            v = str(v)
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("requires", "build_requires", mode="before")
    @classmethod
    def coerce_requires(cls, v: Any) -> Any:
        """Accept a space-separated string for requirement lists."""
        if v is None:
            return []
        return _as_specifier_list(v)

    @field_validator("requires", "build_requires")
    @classmethod
    def validate_requires(cls, v: list[str]) -> list[str]:
        """Validate requirement specifiers."""
        return _check_specifiers(v)

    @field_validator("variants", mode="before")
    @classmethod
    def coerce_variants(cls, v: Any) -> Any:
        """Accept space-separated strings for individual variants."""
        if v is None:
            return []
        if isinstance(v, list):
            return [_as_specifier_list(item) for item in v]
        return v

    @field_validator("variants")
    @classmethod
    def validate_variants(cls, v: list[list[str]]) -> list[list[str]]:
        """Validate variant specifiers."""
        for variant in v:
            _check_specifiers(variant)
        return v

    @property
    def qualified_name(self) -> str:
        """Return ``name-version``."""
        return f"{self.name}-{self.version}"

    @property
    def build_and_runtime_requires(self) -> list[Specifier]:
        """Return runtime then build requirements, without duplicates."""
        seen: set[str] = set()
        result: list[Specifier] = []
        for text in [*self.requires, *self.build_requires]:
            if text in seen:
                continue
            seen.add(text)
            result.append(Specifier.parse(text))
        return result

    @property
    def variant_count(self) -> int:
        """Return the number of declared variants."""
        return len(self.variants)

    def get_variant(self, index: int) -> Variant:
        """Return the variant at a given index.

        Args:
            index: Zero-based variant index.

        Returns:
            Variant instance.

        Raises:
            VariantNotFoundError: If the index is out of range.
        """
        if index < 0 or index >= len(self.variants):
            raise VariantNotFoundError(index, len(self.variants))
        return Variant(
            index=index,
            specifiers=tuple(parse_specifiers(self.variants[index])),
        )

    def iter_variants(self) -> list[Variant]:
        """Return all declared variants in index order."""
        return [self.get_variant(i) for i in range(len(self.variants))]


__all__ = [
    "NO_VARIANT",
    "PackageDescriptor",
    "Variant",
    "VariantNotFoundError",
]
