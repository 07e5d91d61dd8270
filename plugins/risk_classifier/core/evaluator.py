"""Threshold metrics and ROC sweep for binary probability outputs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

import numpy as np
from sklearn.metrics import auc as _trapezoid_auc

from .errors import MalformedInputError

ROC_THRESHOLDS: tuple[float, ...] = tuple(step / 100 for step in range(101))


@dataclass(frozen=True, slots=True)
class ConfusionCounts:
    tp: int
    fp: int
    tn: int
    fn: int

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.tn + self.fn


@dataclass(frozen=True, slots=True)
class Metrics:
    accuracy: float
    precision: float
    recall: float
    f1: float


@dataclass(frozen=True, slots=True)
class RocPoint:
    threshold: float
    tpr: float
    fpr: float


@dataclass(slots=True)
class EvaluationResult:
    threshold: float
    confusion: ConfusionCounts
    metrics: Metrics
    roc: list[RocPoint]
    auc: float
    probabilities: np.ndarray = field(repr=False)
    actual: np.ndarray = field(repr=False)

    def with_threshold(self, threshold: float) -> "EvaluationResult":
        """Re-threshold the stored probabilities; the ROC table is reused."""

        confusion = confusion_matrix(classify(self.probabilities, threshold), self.actual)
        return EvaluationResult(
            threshold=threshold,
            confusion=confusion,
            metrics=compute_metrics(confusion),
            roc=self.roc,
            auc=self.auc,
            probabilities=self.probabilities,
            actual=self.actual,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "threshold": self.threshold,
            "confusion": asdict(self.confusion),
            "metrics": asdict(self.metrics),
            "roc": [asdict(point) for point in self.roc],
            "auc": self.auc,
            "evaluated_rows": self.confusion.total,
        }


def _ratio(numerator: float, denominator: float) -> float:
    return float(numerator / denominator) if denominator else 0.0


def _check_threshold(threshold: float) -> float:
    threshold = float(threshold)
    if not 0.0 <= threshold <= 1.0:
        raise MalformedInputError("threshold must lie within [0, 1]")
    return threshold


def classify(probabilities: Sequence[float], threshold: float) -> np.ndarray:
    threshold = _check_threshold(threshold)
    return (np.asarray(probabilities, dtype=np.float64) >= threshold).astype(np.int64)


def confusion_matrix(predicted: Sequence[int], actual: Sequence[int]) -> ConfusionCounts:
    pred = np.asarray(predicted, dtype=np.int64)
    truth = np.asarray(actual, dtype=np.int64)
    if pred.shape != truth.shape:
        raise MalformedInputError("Predicted and actual label counts differ")
    return ConfusionCounts(
        tp=int(np.sum((pred == 1) & (truth == 1))),
        fp=int(np.sum((pred == 1) & (truth == 0))),
        tn=int(np.sum((pred == 0) & (truth == 0))),
        fn=int(np.sum((pred == 0) & (truth == 1))),
    )


def compute_metrics(confusion: ConfusionCounts) -> Metrics:
    precision = _ratio(confusion.tp, confusion.tp + confusion.fp)
    recall = _ratio(confusion.tp, confusion.tp + confusion.fn)
    return Metrics(
        accuracy=_ratio(confusion.tp + confusion.tn, confusion.total),
        precision=precision,
        recall=recall,
        f1=_ratio(2 * precision * recall, precision + recall),
    )


def roc_curve(probabilities: Sequence[float], actual: Sequence[int]) -> list[RocPoint]:
    """Sweep thresholds 0.00..1.00 in steps of 0.01.

    Rates divide by the evaluated set's positive and negative counts; a
    class that is absent yields a rate of 0.0.
    """

    probs = np.asarray(probabilities, dtype=np.float64)
    truth = np.asarray(actual, dtype=np.int64)
    positives = int(np.sum(truth == 1))
    negatives = int(np.sum(truth == 0))
    points: list[RocPoint] = []
    for threshold in ROC_THRESHOLDS:
        counts = confusion_matrix(classify(probs, threshold), truth)
        points.append(
            RocPoint(
                threshold=threshold,
                tpr=_ratio(counts.tp, positives),
                fpr=_ratio(counts.fp, negatives),
            )
        )
    return points


def roc_auc(points: Sequence[RocPoint]) -> float:
    """Trapezoid area under the sweep, anchored at (0, 0) and (1, 1).

    Scores of exactly 1.0 stay positive at the last threshold, so the sweep
    alone may never reach the origin.
    """

    fpr = np.array([0.0, *(point.fpr for point in points), 1.0])
    tpr = np.array([0.0, *(point.tpr for point in points), 1.0])
    # sklearn's auc wants monotonic x; the sweep yields fpr decreasing with threshold.
    order = np.lexsort((tpr, fpr))
    return float(_trapezoid_auc(fpr[order], tpr[order]))


def evaluate(probabilities: Sequence[float], actual: Sequence[int], threshold: float = 0.5) -> EvaluationResult:
    probs = np.asarray(probabilities, dtype=np.float64).ravel()
    truth = np.asarray(actual, dtype=np.int64).ravel()
    confusion = confusion_matrix(classify(probs, threshold), truth)
    points = roc_curve(probs, truth)
    return EvaluationResult(
        threshold=float(threshold),
        confusion=confusion,
        metrics=compute_metrics(confusion),
        roc=points,
        auc=roc_auc(points),
        probabilities=probs,
        actual=truth,
    )


__all__ = [
    "ConfusionCounts",
    "EvaluationResult",
    "Metrics",
    "ROC_THRESHOLDS",
    "RocPoint",
    "classify",
    "compute_metrics",
    "confusion_matrix",
    "evaluate",
    "roc_auc",
    "roc_curve",
]
