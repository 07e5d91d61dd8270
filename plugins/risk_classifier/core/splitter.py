"""Train/test partitioning of encoded rows."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .errors import InsufficientDataError, MalformedInputError


@dataclass(slots=True)
class SplitResult:
    train_x: np.ndarray
    train_y: np.ndarray
    test_x: np.ndarray
    test_y: np.ndarray
    train_index: np.ndarray
    test_index: np.ndarray


def split(
    matrix: np.ndarray,
    labels: np.ndarray,
    train_fraction: float,
    *,
    shuffle: bool = False,
    seed: int | None = None,
) -> SplitResult:
    """Split at ``floor(n * train_fraction)``, keeping row order unless ``shuffle`` is set."""

    features = np.asarray(matrix)
    targets = np.asarray(labels)
    if features.shape[0] != targets.shape[0]:
        raise MalformedInputError("Feature and label counts differ")
    if not 0 < train_fraction < 1:
        raise MalformedInputError("train_fraction must be between 0 and 1")

    n = features.shape[0]
    order = np.arange(n)
    if shuffle:
        order = np.random.default_rng(seed).permutation(n)
    split_index = math.floor(n * train_fraction)
    if split_index == 0 or split_index == n:
        raise InsufficientDataError(
            f"{n} rows cannot be split into non-empty train and test partitions",
            details={"rows": n, "train_fraction": train_fraction},
        )
    train_index, test_index = order[:split_index], order[split_index:]
    return SplitResult(
        train_x=features[train_index],
        train_y=targets[train_index],
        test_x=features[test_index],
        test_y=targets[test_index],
        train_index=train_index,
        test_index=test_index,
    )


__all__ = ["SplitResult", "split"]
