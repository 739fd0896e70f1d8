"""
Exception types raised by the services layer.

Routers translate these into HTTP errors; the orchestrator records
EngineError / StorageError messages on failed jobs.
"""


class AutoMLStudioError(Exception):
    """Base class for all service errors."""


class TrainingConfigError(AutoMLStudioError, ValueError):
    """A training request failed validation; no job was created."""


class NotFoundError(AutoMLStudioError, LookupError):
    """The requested row does not exist for this owner."""


class EngineError(AutoMLStudioError, RuntimeError):
    """The AutoML engine returned a non-2xx response or could not be reached mid-job."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class StorageError(AutoMLStudioError, IOError):
    """A blob could not be read from or written to storage."""
