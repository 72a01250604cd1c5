"""
Authorization core for the advisory platform.

Role-based permission resolution (authz.rbac) and role-aware field
masking (authz.masking), driven by a single access policy file.
"""

from .exceptions import PolicyConfigurationError

__version__ = "0.3.0"

__all__ = [
    "PolicyConfigurationError",
    "__version__",
]
