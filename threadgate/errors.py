"""
Exception hierarchy for threadgate.

Validation problems are reported as ValidationResult values, not raised.
Exceptions here are reserved for batch-level impossibility (nothing partial
to report), transport failures, and missing runs or credentials.
"""

from __future__ import annotations

from typing import Literal

IvScale = Literal["percent", "decimal"]


class ThreadgateError(Exception):
    """Base class for all threadgate errors."""


class IvNormalizationError(ThreadgateError):
    """An implied volatility value could not be normalized."""

    def __init__(self, value: float, scale: IvScale, context: str | None = None, message: str | None = None):
        self.value = value
        self.scale = scale
        self.context = context
        if message is None:
            where = f" for {context}" if context else ""
            message = f"Invalid IV{where}: {value} ({scale})"
        super().__init__(message)


class SmileDataMissingError(ThreadgateError):
    """Too few smile points survived normalization."""

    def __init__(self, required: int, actual: int):
        self.required = required
        self.actual = actual
        super().__init__(f"Insufficient volatility smile points: need {required}, got {actual}")


class RunNotFoundError(ThreadgateError):
    """No persisted run artifact exists for the requested run id."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")


class InvalidRunIdError(ThreadgateError, ValueError):
    """A run id that cannot name a directory under the runs root."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Invalid run id {run_id!r}: use letters, digits, \"_\" and \"-\" only")


class RunLockedError(ThreadgateError):
    """A lock file for this run is already held."""

    def __init__(self, run_id: str, name: str):
        self.run_id = run_id
        self.name = name
        super().__init__(f"Run {run_id} is locked ({name})")


class MissingCredentialsError(ThreadgateError):
    """Platform credentials could not be resolved from their references."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Missing X/Twitter user-context credentials: {', '.join(self.missing)}")


class PublishHTTPError(ThreadgateError):
    """Non-2xx response from the publishing platform."""

    def __init__(self, status: int, details: str = ""):
        self.status = status
        self.details = details[:500]
        super().__init__(f"X API error {status}")

    @property
    def retryable(self) -> bool:
        return self.status == 429 or 500 <= self.status < 600


class PublishProtocolError(ThreadgateError):
    """The platform answered 2xx but the response did not carry a post id."""


class PublishInProgressError(ThreadgateError):
    """Another publisher holds the lock for this run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Publish already in progress for run {run_id}")


class PublishCancelledError(ThreadgateError):
    """The cancellation token was set while posting."""
