"""Tabular preprocessing and binary classification pipeline."""

from __future__ import annotations

from .classifier import (
    BinaryClassifier,
    EpochResult,
    LogisticRegressionClassifier,
    TorchMLPClassifier,
    TrainingHistory,
    TrainingOptions,
    available_algorithms,
    build_classifier,
)
from .csv_table import Dataset, parse, unparse
from .encoder import FeatureEncoder, MissingValuePolicy
from .errors import (
    AmbiguousColumnError,
    ColumnNotFoundError,
    InsufficientDataError,
    MalformedInputError,
    PipelineError,
    StateSequenceError,
    TrainingCancelledError,
    TrainingDivergedError,
)
from .evaluator import EvaluationResult, evaluate
from .normalizer import NormalizationParams
from .pipeline import PipelineSession, PreprocessConfig, Stage
from .presets import get_preset, list_presets
from .schema import ColumnRole, ColumnSpec, DeclaredSchema, resolve

__all__ = [
    "AmbiguousColumnError",
    "BinaryClassifier",
    "ColumnNotFoundError",
    "ColumnRole",
    "ColumnSpec",
    "Dataset",
    "DeclaredSchema",
    "EpochResult",
    "EvaluationResult",
    "FeatureEncoder",
    "InsufficientDataError",
    "LogisticRegressionClassifier",
    "MalformedInputError",
    "MissingValuePolicy",
    "NormalizationParams",
    "PipelineError",
    "PipelineSession",
    "PreprocessConfig",
    "Stage",
    "StateSequenceError",
    "TorchMLPClassifier",
    "TrainingCancelledError",
    "TrainingDivergedError",
    "TrainingHistory",
    "TrainingOptions",
    "available_algorithms",
    "build_classifier",
    "evaluate",
    "get_preset",
    "list_presets",
    "parse",
    "resolve",
    "unparse",
]
