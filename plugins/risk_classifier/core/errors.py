"""Exception hierarchy for the risk classifier pipeline."""

from __future__ import annotations

from typing import Any, Mapping


class PipelineError(ValueError):
    """Base class for pipeline failures surfaced to the caller."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.details = dict(details or {})


class MalformedInputError(PipelineError):
    """Raised when CSV text or a raw value cannot be interpreted."""


class ColumnNotFoundError(PipelineError):
    """Raised when a declared column matches no header."""


class AmbiguousColumnError(ColumnNotFoundError):
    """Raised when a declared column matches several headers equally well."""


class InsufficientDataError(PipelineError):
    """Raised when there are too few rows or classes to continue."""


class StateSequenceError(PipelineError):
    """Raised when a stage is invoked before its prerequisite completed."""


class TrainingDivergedError(PipelineError):
    """Raised when the training loss stops being finite."""


class TrainingCancelledError(PipelineError):
    """Raised when training is interrupted through its cancel token."""


__all__ = [
    "AmbiguousColumnError",
    "ColumnNotFoundError",
    "InsufficientDataError",
    "MalformedInputError",
    "PipelineError",
    "StateSequenceError",
    "TrainingCancelledError",
    "TrainingDivergedError",
]
