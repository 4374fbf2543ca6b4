"""Exception types raised by the harvester."""

from __future__ import annotations


class AuditLogError(Exception):
    """Base class for every failure surfaced by a harvest run."""


class ConfigError(AuditLogError, ValueError):
    """Missing or invalid configuration."""


class SourceFetchError(AuditLogError):
    """Listing audit logs from the Render API failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SinkUploadError(AuditLogError):
    """Writing a batch to object storage failed."""


class CheckpointIOError(AuditLogError):
    """Reading or writing a checkpoint failed."""


class RunCancelledError(AuditLogError):
    """The run observed a cancellation request between blocking calls."""
