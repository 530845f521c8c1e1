"""
strata.errors - Error kinds raised by the deployer.

ConfigError and AuthError abort a run. ValidationError and
DeploymentError are scoped to a single stack; the driver records
them and moves on to the next stack.
"""


class StrataError(Exception):
    """Base class for strata errors."""
    pass


class ConfigError(StrataError):
    """Malformed registry, unknown target or bad settings."""
    pass


class ValidationError(StrataError):
    """Template rejected by the provider's syntax check."""
    pass


class DeploymentError(StrataError):
    """Provider reported a failed terminal state."""

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message)
        self.status = status


class AuthError(StrataError):
    """Credentials missing, expired or lacking permission."""
    pass
