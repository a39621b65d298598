"""
Error taxonomy for the resource initializer.

Every error here is fatal to the current convergence pass.
"""

from typing import Any


class InitializerError(Exception):
    """Base class for all initializer errors."""


class ConfigurationError(InitializerError):
    """A required configuration field is absent or invalid."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class InvocationError(InitializerError):
    """The Action Target reported a failure."""

    def __init__(
        self,
        message: str,
        target: str | None = None,
        error_type: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.target = target
        self.error_type = error_type
        self.details = details


class InvocationTimeoutError(InvocationError, TimeoutError):
    """The Action Target did not answer within the bounded wait."""

    def __init__(self, target: str, timeout: float):
        super().__init__(
            f"Action target {target!r} did not respond within {timeout:g}s",
            target=target,
            error_type="Timeout",
        )
        self.timeout = timeout


class ResultUnavailableError(InitializerError):
    """A published field was read before (or without) a successful invocation."""

    def __init__(self, logical_name: str, field: str, reason: str):
        super().__init__(f"Cannot resolve {field!r} of {logical_name!r}: {reason}")
        self.logical_name = logical_name
        self.field = field
        self.reason = reason
