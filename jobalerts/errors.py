"""Exception hierarchy for the alert pipeline."""
from __future__ import annotations

from datetime import datetime
from typing import Any


class PipelineError(Exception):
    """Base pipeline error."""


class ConfigError(PipelineError):
    """Raised when the settings file cannot be read or is malformed."""


class JobFatalError(PipelineError):
    """Raised when a job cannot start at all (missing spec, no steps)."""


class StoreError(PipelineError):
    """Raised when a store operation fails.

    A step that fails part-way may attach the counters of the work it did
    finish as ``partial`` (an ``IngestResult``).
    """

    partial: Any = None


class StoreUnavailableError(StoreError):
    """Raised when the backing store cannot be reached."""


class DuplicateKeyError(PipelineError):
    """Raised by a match store when the identity key is already taken."""

    def __init__(self, identity_key: str) -> None:
        super().__init__(f"duplicate identity key: {identity_key}")
        self.identity_key = identity_key


class GateDenied(PipelineError):
    """Raised when the access gate refuses a call to a source."""

    def __init__(self, source: str, reason: str, next_allowed_at: datetime | None = None) -> None:
        msg = f"{source}: {reason}"
        if next_allowed_at is not None:
            msg += f" (next allowed at {next_allowed_at.isoformat()})"
        super().__init__(msg)
        self.source = source
        self.reason = reason
        self.next_allowed_at = next_allowed_at


class SourceError(PipelineError):
    """Raised when an external job board call fails."""

    def __init__(self, source: str, message: str, status: str = "failed") -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status = status


class StepTimeoutError(PipelineError):
    """Raised when a job step exceeds its time budget."""


class UnknownJobError(PipelineError, KeyError):
    """Raised for an orchestrator call with a job id it never issued."""

    def __str__(self) -> str:
        return f"unknown job: {self.args[0]}" if self.args else "unknown job"
