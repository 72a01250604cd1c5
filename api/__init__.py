"""API module."""

from .guards import require, require_any, require_all, require_ownership, require_role

__all__ = [
    "require",
    "require_any",
    "require_all",
    "require_ownership",
    "require_role",
]
