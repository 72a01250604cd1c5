"""
Exceptions raised by the authorization engine.

Only configuration problems are exceptional. Access decisions and masking
always return values.
"""


class PolicyConfigurationError(ValueError):
    """The access policy data is invalid (unknown names, cycles, bad tokens)."""
