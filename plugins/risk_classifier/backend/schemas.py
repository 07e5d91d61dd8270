"""Request schema definitions for the Risk Classifier backend."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, model_validator

from common.validation import SchemaModel


class PreprocessRequest(SchemaModel):
    session_id: str
    preset: str | None = None
    target: str | None = None
    positive_value: str = "1"
    numeric: list[str] = Field(default_factory=list)
    categorical: list[str] = Field(default_factory=list)
    train_fraction: float = Field(default=0.8, gt=0, lt=1)
    shuffle: bool = False
    seed: int | None = Field(default=None, ge=0)
    missing_policy: Literal["zero_fill", "drop_row", "error"] = "zero_fill"
    scaling: Literal["minmax", "zscore"] = "minmax"
    on_missing_column: Literal["raise", "skip"] = "raise"

    @model_validator(mode="after")
    def _schema_source(self) -> "PreprocessRequest":
        if not self.preset and not self.target:
            raise ValueError("Either a preset or a target column is required")
        return self


class TrainRequest(SchemaModel):
    session_id: str
    algo: Literal["torch_mlp", "logreg"] = "torch_mlp"
    epochs: int = Field(default=50, ge=1, le=1000)
    batch_size: int = Field(default=32, ge=1, le=4096)
    learning_rate: float = Field(default=0.001, gt=0, le=1)
    hidden_units: list[int] = Field(default_factory=lambda: [64, 32], min_length=1, max_length=6)
    dropout: float = Field(default=0.0, ge=0, lt=1)
    patience: int | None = Field(default=None, ge=1)
    seed: int = Field(default=42, ge=0)

    @model_validator(mode="after")
    def _positive_units(self) -> "TrainRequest":
        if any(units < 1 for units in self.hidden_units):
            raise ValueError("hidden_units must all be positive")
        return self


class EvaluateRequest(SchemaModel):
    session_id: str
    threshold: float = Field(default=0.5, ge=0, le=1)


class PredictRequest(SchemaModel):
    session_id: str
    values: dict[str, Any]
    threshold: float | None = Field(default=None, ge=0, le=1)


class SessionQuery(SchemaModel):
    session_id: str
