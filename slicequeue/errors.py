"""Exceptions and soft-failure values raised or reported by the slicing core."""

from dataclasses import dataclass


class SlicingError(Exception):
    """Base class for errors that end a slicing job."""
    pass


class UnsupportedFormatError(SlicingError):
    """Raised when a model file has an extension the partitioner does not accept."""

    def __init__(self, path, accepted):
        self.path = path
        self.accepted = tuple(accepted)
        super().__init__(
            f"Unsupported input format: {path} (accepted: {', '.join(self.accepted)})"
        )


class ModelLoadError(SlicingError):
    """Raised when a multi-material model cannot be read."""
    pass


class EngineUnavailableError(SlicingError):
    """Raised when the configured slicing engine is not installed."""
    pass


class EngineLaunchError(SlicingError):
    """Raised when the slicing engine process could not be started."""
    pass


class InvalidTransitionError(SlicingError):
    """Raised on a job lifecycle transition that is not allowed."""
    pass


@dataclass(frozen=True)
class SoftFailure:
    """A failure that is reported to the job but never aborts the worker loop."""
    stage: str  # "output_stream" or "postprocess"
    message: str

    def describe(self) -> str:
        return f"Warning ({self.stage}): {self.message}"
