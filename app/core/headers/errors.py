from typing import Optional


class HeaderPolicyError(Exception):
    """Base class for every error raised by the header policy engine."""


class PolicyValidationError(HeaderPolicyError, ValueError):
    """
    A configured directive failed its name or grammar check.

    Raised while building a policy store or registering a route override, so it
    only ever surfaces at startup or configuration reload.
    """

    def __init__(self, name: str, reason: str, value: Optional[str] = None):
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid security header directive '{name}': {reason}")


class CSPSyntaxError(PolicyValidationError):
    """A Content-Security-Policy value contains a malformed directive or source token."""


class LifecycleViolation(HeaderPolicyError, RuntimeError):
    """Headers were applied to a response whose headers have already been sent."""
