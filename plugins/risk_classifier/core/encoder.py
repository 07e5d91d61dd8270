"""Numeric coercion, one-hot encoding and label derivation."""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np

from common.logging import get_logger

from .csv_table import Dataset
from .errors import InsufficientDataError, MalformedInputError
from .schema import ResolvedSchema

logger = get_logger("risk_server.encoder")

# Longest leading decimal literal, the way browsers' parseFloat reads it.
_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class MissingValuePolicy(str, enum.Enum):
    ZERO_FILL = "zero_fill"
    DROP_ROW = "drop_row"
    ERROR = "error"


def coerce_number(raw: Any) -> float | None:
    """Parse the leading number of ``raw``; ``None`` when there is none."""

    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
        return value if math.isfinite(value) else None
    match = _LEADING_FLOAT.match(str(raw).strip())
    if not match:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def _raw(row: Mapping[str, Any], column: str) -> str:
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


def build_vocabulary(values: Sequence[str]) -> tuple[str, ...]:
    """Distinct values in first-seen order."""

    return tuple(dict.fromkeys(values))


@dataclass(slots=True)
class FeatureEncoder:
    """Fixed layout: numeric columns first, then one one-hot block per categorical column."""

    target: str
    positive_value: str
    numeric: tuple[str, ...]
    categorical: tuple[str, ...]
    vocabularies: dict[str, tuple[str, ...]] = field(default_factory=dict)
    policy: MissingValuePolicy = MissingValuePolicy.ZERO_FILL

    @classmethod
    def fit(
        cls,
        dataset: Dataset,
        schema: ResolvedSchema,
        positive_value: str,
        *,
        policy: MissingValuePolicy = MissingValuePolicy.ZERO_FILL,
    ) -> "FeatureEncoder":
        encoder = cls(
            target=schema.target.name,
            positive_value=str(positive_value).strip(),
            numeric=tuple(spec.name for spec in schema.numeric),
            categorical=tuple(spec.name for spec in schema.categorical),
            policy=MissingValuePolicy(policy),
        )
        kept = encoder.usable_rows(dataset)
        for column in encoder.categorical:
            encoder.vocabularies[column] = build_vocabulary([dataset.rows[index][column] for index in kept])
        return encoder

    @property
    def numeric_count(self) -> int:
        return len(self.numeric)

    @property
    def width(self) -> int:
        return self.numeric_count + sum(len(self.vocabularies[column]) for column in self.categorical)

    @property
    def feature_names(self) -> list[str]:
        names = list(self.numeric)
        for column in self.categorical:
            names.extend(f"{column}={value}" for value in self.vocabularies[column])
        return names

    def _incomplete_columns(self, row: Mapping[str, Any], *, with_target: bool) -> list[str]:
        missing = [column for column in self.numeric if coerce_number(row.get(column)) is None]
        if with_target and not _raw(row, self.target):
            missing.append(self.target)
        return missing

    def usable_rows(self, dataset: Dataset) -> list[int]:
        """Indices of rows kept under the missing-value policy."""

        kept: list[int] = []
        for index, row in enumerate(dataset.rows):
            missing = self._incomplete_columns(row, with_target=True)
            if missing and self.policy is MissingValuePolicy.ERROR:
                raise MalformedInputError(
                    f"Row {index + 1} has missing or non-numeric values",
                    details={"row": index + 1, "columns": missing},
                )
            if missing and self.policy is MissingValuePolicy.DROP_ROW:
                continue
            kept.append(index)
        dropped = len(dataset.rows) - len(kept)
        if dropped:
            logger.info("dropped %d of %d rows with missing values", dropped, len(dataset.rows))
        return kept

    def transform(self, row: Mapping[str, Any]) -> np.ndarray:
        """Encode one raw row; unseen categories give an all-zero block."""

        missing = self._incomplete_columns(row, with_target=False)
        if missing and self.policy is not MissingValuePolicy.ZERO_FILL:
            raise MalformedInputError(
                "Missing or non-numeric values",
                details={"columns": missing},
            )
        return self._encode(row)

    def _encode(self, row: Mapping[str, Any]) -> np.ndarray:
        vector = np.zeros(self.width, dtype=np.float64)
        for position, column in enumerate(self.numeric):
            vector[position] = coerce_number(row.get(column)) or 0.0
        offset = self.numeric_count
        for column in self.categorical:
            vocabulary = self.vocabularies[column]
            value = _raw(row, column)
            if value in vocabulary:
                vector[offset + vocabulary.index(value)] = 1.0
            offset += len(vocabulary)
        return vector

    def transform_dataset(self, dataset: Dataset) -> tuple[np.ndarray, list[int]]:
        kept = self.usable_rows(dataset)
        if not kept:
            raise InsufficientDataError("No usable rows left after applying the missing-value policy")
        matrix = np.vstack([self._encode(dataset.rows[index]) for index in kept])
        return matrix, kept

    def label(self, row: Mapping[str, Any]) -> int:
        return int(_raw(row, self.target) == self.positive_value)

    def labels(self, dataset: Dataset, kept: Sequence[int]) -> np.ndarray:
        return np.array([self.label(dataset.rows[index]) for index in kept], dtype=np.int64)

    def decode(self, vector: Sequence[float]) -> dict[str, Any]:
        """Map an encoded vector back to raw values; unseen blocks decode to ``""``."""

        values = np.asarray(vector, dtype=np.float64)
        decoded: dict[str, Any] = {
            column: float(values[position]) for position, column in enumerate(self.numeric)
        }
        offset = self.numeric_count
        for column in self.categorical:
            vocabulary = self.vocabularies[column]
            block = values[offset : offset + len(vocabulary)]
            hot = np.flatnonzero(block == 1.0)
            decoded[column] = vocabulary[int(hot[0])] if hot.size else ""
            offset += len(vocabulary)
        return decoded

    def describe(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "positive_value": self.positive_value,
            "numeric": list(self.numeric),
            "categorical": {column: list(self.vocabularies[column]) for column in self.categorical},
            "policy": self.policy.value,
            "feature_names": self.feature_names,
        }


__all__ = [
    "FeatureEncoder",
    "MissingValuePolicy",
    "build_vocabulary",
    "coerce_number",
]
