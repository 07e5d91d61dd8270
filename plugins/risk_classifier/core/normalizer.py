"""Per-feature scaling fitted on the training partition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

import numpy as np

from .errors import InsufficientDataError, MalformedInputError

ScalingMethod = Literal["minmax", "zscore"]


@dataclass(frozen=True, slots=True)
class NormalizationParams:
    """For ``minmax`` ``low``/``high`` are min and max; for ``zscore`` mean and std."""

    method: ScalingMethod
    numeric_count: int
    low: tuple[float, ...]
    high: tuple[float, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "numeric_count": self.numeric_count,
            "low": list(self.low),
            "high": list(self.high),
        }


def fit(matrix: np.ndarray, numeric_count: int, method: ScalingMethod = "minmax") -> NormalizationParams:
    data = np.asarray(matrix, dtype=np.float64)
    if data.ndim != 2 or data.shape[0] == 0:
        raise InsufficientDataError("Cannot fit normalization on an empty partition")
    if not 0 <= numeric_count <= data.shape[1]:
        raise MalformedInputError("numeric_count exceeds the feature width")
    numeric = data[:, :numeric_count]
    if method == "minmax":
        low, high = numeric.min(axis=0), numeric.max(axis=0)
    elif method == "zscore":
        low, high = numeric.mean(axis=0), numeric.std(axis=0)
    else:
        raise MalformedInputError(f"Unknown scaling method '{method}'")
    return NormalizationParams(
        method=method,
        numeric_count=numeric_count,
        low=tuple(float(value) for value in low),
        high=tuple(float(value) for value in high),
    )


def apply(features: np.ndarray, params: NormalizationParams) -> np.ndarray:
    """Return a rescaled copy of a vector or matrix.

    Only the first ``numeric_count`` columns change. A zero range (or zero
    standard deviation) maps the feature to 0.
    """

    data = np.array(features, dtype=np.float64, copy=True)
    count = params.numeric_count
    if count == 0:
        return data
    low = np.asarray(params.low)
    high = np.asarray(params.high)
    if params.method == "minmax":
        scale = high - low
    else:
        scale = high
    degenerate = scale == 0
    safe_scale = np.where(degenerate, 1.0, scale)

    numeric = data[..., :count]
    scaled = (numeric - low) / safe_scale
    data[..., :count] = np.where(degenerate, 0.0, scaled)
    return data


__all__ = ["NormalizationParams", "ScalingMethod", "apply", "fit"]
