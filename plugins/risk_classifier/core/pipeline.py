"""Session object tying the pipeline stages together.

A :class:`PipelineSession` owns one dataset and everything derived from it.
Stages advance ``idle -> loaded -> preprocessed -> trained -> evaluated``;
calling a stage before its prerequisite raises
:class:`~.errors.StateSequenceError`. Re-running an earlier stage discards
the artifacts of the later ones. Training only replaces the current model
when it completes, so a failed run leaves the session as it was.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping

import numpy as np

from common.logging import get_logger

from . import normalizer, splitter
from .classifier import BinaryClassifier, EpochResult, TrainingHistory, TrainingOptions, build_classifier
from .csv_table import Dataset, make_row, parse, unparse
from .encoder import FeatureEncoder, MissingValuePolicy
from .errors import InsufficientDataError, StateSequenceError
from .evaluator import EvaluationResult, evaluate
from .report import build_report
from .schema import DeclaredSchema, MissingColumnPolicy, ResolvedSchema, resolve_declared

logger = get_logger("risk_server.pipeline")

DEFAULT_THRESHOLD = 0.5


class Stage(enum.IntEnum):
    IDLE = 0
    LOADED = 1
    PREPROCESSED = 2
    TRAINED = 3
    EVALUATED = 4

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class PreprocessConfig:
    train_fraction: float = 0.8
    shuffle: bool = False
    seed: int | None = None
    missing_policy: MissingValuePolicy = MissingValuePolicy.ZERO_FILL
    scaling: normalizer.ScalingMethod = "minmax"
    on_missing_column: MissingColumnPolicy = "raise"


@dataclass(slots=True)
class PreprocessedData:
    declared: DeclaredSchema
    schema: ResolvedSchema
    encoder: FeatureEncoder
    params: normalizer.NormalizationParams
    matrix: np.ndarray
    labels: np.ndarray
    kept_rows: list[int]
    split: splitter.SplitResult

    def summary(self) -> dict[str, Any]:
        positives = int(self.labels.sum())
        return {
            "target": self.schema.target.name,
            "positive_value": self.encoder.positive_value,
            "columns": {
                "numeric": [spec.name for spec in self.schema.numeric],
                "categorical": [spec.name for spec in self.schema.categorical],
                "skipped": list(self.schema.skipped),
                "matched": {spec.declared: spec.name for spec in self.schema.specs if spec.declared},
            },
            "vocabularies": {column: list(values) for column, values in self.encoder.vocabularies.items()},
            "feature_names": self.encoder.feature_names,
            "rows": {
                "used": len(self.kept_rows),
                "train": int(self.split.train_x.shape[0]),
                "test": int(self.split.test_x.shape[0]),
            },
            "class_balance": {"positive": positives, "negative": int(self.labels.size - positives)},
            "normalization": self.params.to_dict(),
        }


@dataclass(slots=True)
class TrainedModel:
    algorithm: str
    options: TrainingOptions
    classifier: BinaryClassifier
    history: TrainingHistory
    probabilities: np.ndarray | None = field(default=None, repr=False)


class PipelineSession:
    def __init__(self) -> None:
        self.stage = Stage.IDLE
        self.dataset: Dataset | None = None
        self.preprocessed: PreprocessedData | None = None
        self.model: TrainedModel | None = None
        self.evaluation: EvaluationResult | None = None

    def _require(self, stage: Stage, operation: str) -> None:
        if self.stage < stage:
            raise StateSequenceError(
                f"Cannot {operation} before the session is {stage.label}",
                details={"stage": self.stage.label, "required": stage.label},
            )

    def _advance(self, stage: Stage) -> None:
        logger.info("session stage %s -> %s", self.stage.label, stage.label)
        self.stage = stage

    def load(self, text: str) -> Dataset:
        return self.load_dataset(parse(text))

    def load_dataset(self, dataset: Dataset) -> Dataset:
        self.dataset = dataset
        self.preprocessed = None
        self.model = None
        self.evaluation = None
        logger.info("loaded dataset with %d rows and %d columns", len(dataset), len(dataset.header))
        self._advance(Stage.LOADED)
        return dataset

    def preprocess(self, declared: DeclaredSchema, config: PreprocessConfig | None = None) -> PreprocessedData:
        self._require(Stage.LOADED, "preprocess")
        config = config or PreprocessConfig()
        assert self.dataset is not None
        if self.dataset.is_empty:
            raise InsufficientDataError("Dataset has a header but no rows")

        schema = resolve_declared(self.dataset, declared, on_missing=config.on_missing_column)
        encoder = FeatureEncoder.fit(
            self.dataset,
            schema,
            declared.positive_value,
            policy=config.missing_policy,
        )
        matrix, kept = encoder.transform_dataset(self.dataset)
        labels = encoder.labels(self.dataset, kept)
        if np.unique(labels).size < 2:
            raise InsufficientDataError(
                "Target column must contain both the positive value and at least one other value",
                details={"target": schema.target.name, "positive_value": encoder.positive_value},
            )
        raw_split = splitter.split(
            matrix,
            labels,
            config.train_fraction,
            shuffle=config.shuffle,
            seed=config.seed,
        )
        params = normalizer.fit(raw_split.train_x, encoder.numeric_count, config.scaling)
        normalized = splitter.SplitResult(
            train_x=normalizer.apply(raw_split.train_x, params),
            train_y=raw_split.train_y,
            test_x=normalizer.apply(raw_split.test_x, params),
            test_y=raw_split.test_y,
            train_index=raw_split.train_index,
            test_index=raw_split.test_index,
        )
        self.preprocessed = PreprocessedData(
            declared=declared,
            schema=schema,
            encoder=encoder,
            params=params,
            matrix=matrix,
            labels=labels,
            kept_rows=kept,
            split=normalized,
        )
        self.model = None
        self.evaluation = None
        self._advance(Stage.PREPROCESSED)
        return self.preprocessed

    def iter_train(
        self,
        options: TrainingOptions | None = None,
        algorithm: str = "torch_mlp",
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[EpochResult]:
        """Yield per-epoch results; the model is installed once the loop finishes."""

        self._require(Stage.PREPROCESSED, "train")
        assert self.preprocessed is not None
        options = options or TrainingOptions()
        data = self.preprocessed.split
        classifier = build_classifier(algorithm)
        history = TrainingHistory()
        logger.info(
            "training %s on %d rows (%d features) for up to %d epochs",
            algorithm,
            data.train_x.shape[0],
            data.train_x.shape[1],
            options.epochs,
        )
        for result in classifier.iter_fit(
            data.train_x,
            data.train_y,
            options,
            validation=(data.test_x, data.test_y),
            cancel=cancel,
        ):
            history.epochs.append(result)
            yield result
        history.stopped_early = classifier.stopped_early

        self.model = TrainedModel(algorithm=algorithm, options=options, classifier=classifier, history=history)
        self.evaluation = None
        self._advance(Stage.TRAINED)

    def train(
        self,
        options: TrainingOptions | None = None,
        algorithm: str = "torch_mlp",
        *,
        cancel: threading.Event | None = None,
        on_epoch: Callable[[EpochResult], None] | None = None,
    ) -> TrainingHistory:
        try:
            for result in self.iter_train(options, algorithm, cancel=cancel):
                if on_epoch is not None:
                    on_epoch(result)
        except Exception:
            logger.warning("training failed; keeping the previous session state", exc_info=True)
            raise
        assert self.model is not None
        return self.model.history

    def evaluate(self, threshold: float = DEFAULT_THRESHOLD) -> EvaluationResult:
        self._require(Stage.TRAINED, "evaluate")
        assert self.model is not None and self.preprocessed is not None
        if self.evaluation is not None:
            self.evaluation = self.evaluation.with_threshold(threshold)
        else:
            if self.model.probabilities is None:
                self.model.probabilities = self.model.classifier.predict(self.preprocessed.split.test_x)
            self.evaluation = evaluate(self.model.probabilities, self.preprocessed.split.test_y, threshold)
        if self.stage < Stage.EVALUATED:
            self._advance(Stage.EVALUATED)
        return self.evaluation

    def predict_row(self, values: Mapping[str, Any], threshold: float | None = None) -> dict[str, Any]:
        """Score one raw record with the stored vocabularies and scaling."""

        self._require(Stage.TRAINED, "predict")
        assert self.model is not None and self.preprocessed is not None
        if threshold is None:
            threshold = self.evaluation.threshold if self.evaluation is not None else DEFAULT_THRESHOLD
        vector = self.preprocessed.encoder.transform(values)
        features = normalizer.apply(vector, self.preprocessed.params)
        probability = float(self.model.classifier.predict(features.reshape(1, -1))[0])
        positive = probability >= threshold
        return {
            "probability": probability,
            "threshold": threshold,
            "prediction": int(positive),
            "label": "Yes" if positive else "No",
            "features": features.tolist(),
        }

    def export_preprocessed(self) -> str:
        """CSV of normalized rows with categorical blocks mapped back to their values."""

        self._require(Stage.PREPROCESSED, "export preprocessed data")
        assert self.preprocessed is not None and self.dataset is not None
        data = self.preprocessed
        encoder = data.encoder
        header = (*encoder.numeric, *encoder.categorical, encoder.target)
        scaled = normalizer.apply(data.matrix, data.params)
        rows = []
        for vector, index in zip(scaled, data.kept_rows):
            decoded = encoder.decode(vector)
            values = [format(decoded[column], ".6g") for column in encoder.numeric]
            values += [decoded[column] for column in encoder.categorical]
            values.append(self.dataset.rows[index][encoder.target])
            rows.append(make_row(header, values))
        return unparse(Dataset(header=header, rows=tuple(rows)))

    def report(self) -> dict[str, Any]:
        self._require(Stage.LOADED, "build a report")
        assert self.dataset is not None
        if self.preprocessed is None:
            return build_report(self.dataset)
        schema = self.preprocessed.schema
        return build_report(
            self.dataset,
            target=schema.target.name,
            numeric=[spec.name for spec in schema.numeric],
            categorical=[spec.name for spec in schema.categorical],
        )

    def summary(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"stage": self.stage.label}
        if self.dataset is not None:
            payload["dataset"] = {"rows": len(self.dataset), "header": list(self.dataset.header)}
        if self.preprocessed is not None:
            payload["preprocess"] = self.preprocessed.summary()
        if self.model is not None:
            payload["model"] = {
                "algorithm": self.model.algorithm,
                "epochs_run": len(self.model.history.epochs),
                "stopped_early": self.model.history.stopped_early,
            }
        if self.evaluation is not None:
            payload["evaluation"] = self.evaluation.to_dict()
        return payload


__all__ = [
    "DEFAULT_THRESHOLD",
    "PipelineSession",
    "PreprocessConfig",
    "PreprocessedData",
    "Stage",
    "TrainedModel",
]
