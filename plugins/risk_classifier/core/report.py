"""Exploratory summary of a loaded dataset as a JSON-ready document."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Sequence

import numpy as np
import pandas as pd

from .csv_table import Dataset, to_frame
from .encoder import coerce_number

_MAX_HISTOGRAM_BINS = 10


def _numeric_series(series: pd.Series) -> pd.Series:
    return series.map(coerce_number).astype("float64")


def infer_numeric_columns(frame: pd.DataFrame) -> list[str]:
    """Columns whose non-blank values all parse as numbers."""

    numeric: list[str] = []
    for column in frame.columns:
        present = frame[column][frame[column].str.strip() != ""]
        if present.empty:
            continue
        parsed = pd.to_numeric(present, errors="coerce")
        if parsed.notna().all():
            numeric.append(column)
    return numeric


def _clean(value: float) -> float | None:
    return None if value is None or not math.isfinite(value) else float(value)


def numeric_summary(values: pd.Series) -> dict[str, Any]:
    data = values.dropna().to_numpy()
    if data.size == 0:
        return {"count": 0, "mean": None, "median": None, "std": None, "min": None, "max": None}
    ordered = np.sort(data)
    return {
        "count": int(data.size),
        "mean": float(data.mean()),
        # upper median for even counts
        "median": float(ordered[data.size // 2]),
        "std": float(data.std(ddof=0)),
        "min": float(ordered[0]),
        "max": float(ordered[-1]),
    }


def histogram(values: pd.Series) -> dict[str, list[float]]:
    data = values.dropna().to_numpy()
    if data.size == 0:
        return {"counts": [], "edges": []}
    bins = min(_MAX_HISTOGRAM_BINS, math.ceil(math.sqrt(data.size)))
    counts, edges = np.histogram(data, bins=bins)
    return {"counts": [int(count) for count in counts], "edges": [float(edge) for edge in edges]}


def build_report(
    dataset: Dataset,
    *,
    target: str | None = None,
    numeric: Sequence[str] | None = None,
    categorical: Sequence[str] | None = None,
) -> dict[str, Any]:
    frame = to_frame(dataset)
    if target is not None and target not in frame.columns:
        raise KeyError(f"Column '{target}' does not exist")
    numeric_columns = list(numeric) if numeric is not None else infer_numeric_columns(frame)
    if categorical is not None:
        categorical_columns = list(categorical)
    else:
        categorical_columns = [
            column for column in frame.columns if column not in numeric_columns and column != target
        ]

    rows = len(frame)
    missing = {
        column: (float((frame[column].str.strip() == "").sum()) / rows * 100.0 if rows else 0.0)
        for column in frame.columns
    }
    numeric_frame = pd.DataFrame({column: _numeric_series(frame[column]) for column in numeric_columns})

    report: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "shape": {"rows": rows, "columns": len(frame.columns)},
        "columns": list(frame.columns),
        "missing_percent": missing,
        "numeric": {column: numeric_summary(numeric_frame[column]) for column in numeric_columns},
        "histograms": {column: histogram(numeric_frame[column]) for column in numeric_columns},
        "categorical": {
            column: {str(key): int(count) for key, count in frame[column].value_counts(sort=True).items()}
            for column in categorical_columns
        },
    }

    if len(numeric_columns) > 1:
        correlation = numeric_frame.corr(method="pearson").fillna(0.0)
        report["correlation"] = {
            column: {other: float(value) for other, value in row.items()}
            for column, row in correlation.to_dict(orient="index").items()
        }
    else:
        report["correlation"] = {}

    if target is not None:
        report["target"] = target
        report["target_distribution"] = {
            str(key): int(count) for key, count in frame[target].value_counts(sort=True).items()
        }
        if numeric_columns and rows:
            grouped = numeric_frame.groupby(frame[target]).mean()
            report["numeric_means_by_target"] = {
                str(group): {column: _clean(value) for column, value in values.items()}
                for group, values in grouped.to_dict(orient="index").items()
            }
        else:
            report["numeric_means_by_target"] = {}
    return report


__all__ = ["build_report", "histogram", "infer_numeric_columns", "numeric_summary"]
