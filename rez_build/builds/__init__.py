"""Variant build orchestration module.

This module handles:
- Build requests and variant selection
- Per-variant build directories and provenance capture
- Environment resolution through an external resolver
- Activation script generation and execution
- Build history records
"""

from rez_build.builds.models import BuildRecord

__all__ = ["BuildRecord"]

# Lazy imports for submodules to avoid circular imports
# Access via rez_build.builds.service, etc.
