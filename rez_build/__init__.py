"""rez-build - variant build orchestration for rez packages.

This package resolves an isolated environment for every variant a package
declares, generates a self-contained activation script per variant, and
optionally drives the configure/compile toolchain inside it.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
