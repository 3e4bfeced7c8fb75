"""Package specifiers.

A specifier names a package and optionally a version, written as
``name`` or ``name-version``. Specifiers are parsed once when a package
descriptor is loaded; everything downstream works with the parsed form.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class Specifier:
    """A parsed ``name[-version]`` package specifier.

    Attributes:
        name: Package name.
        version: Version string, or None when unversioned.
    """

    name: str
    version: str | None = None

    @classmethod
    def parse(cls, text: str) -> Specifier:
        """Parse a specifier string.

        The version starts after the first ``-``, so ``foo-1.2-beta``
        yields name ``foo`` and version ``1.2-beta``.

        Args:
            text: Specifier text.

        Returns:
            Parsed Specifier.

        Raises:
            ValueError: If the text is empty or has no package name.
        """
        text = text.strip()
        if not text:
            raise ValueError("empty package specifier")
        name, sep, version = text.partition("-")
        if not name:
            raise ValueError(f"specifier has no package name: '{text}'")
        if sep and not version:
            raise ValueError(f"specifier has an empty version: '{text}'")
        return cls(name=name, version=version or None)

    @property
    def unversioned(self) -> str:
        """Return the package name without its version."""
        return self.name

    def __str__(self) -> str:
        if self.version is None:
            return self.name
        return f"{self.name}-{self.version}"


def parse_specifiers(texts: Iterable[str]) -> list[Specifier]:
    """Parse a list of specifier strings."""
    return [Specifier.parse(t) for t in texts]


def join_specifiers(specifiers: Iterable[Specifier], sep: str = " ") -> str:
    """Join specifiers back into text with the given separator."""
    return sep.join(str(s) for s in specifiers)


def unversioned(specifiers: Iterable[Specifier]) -> str:
    """Return the space-joined names of specifiers, versions stripped."""
    return " ".join(s.unversioned for s in specifiers)


__all__ = ["Specifier", "join_specifiers", "parse_specifiers", "unversioned"]
