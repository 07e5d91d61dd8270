"""Service layer orchestrating Risk Classifier operations."""

from __future__ import annotations

from typing import Any, Mapping

from common.logging import get_logger

from ..core.classifier import TrainingOptions, available_algorithms
from ..core.csv_table import decode_bytes, parse
from ..core.encoder import MissingValuePolicy
from ..core.pipeline import PreprocessConfig
from ..core.presets import get_preset, list_presets
from ..core.schema import DeclaredSchema
from .schemas import EvaluateRequest, PredictRequest, PreprocessRequest, TrainRequest
from .utils import (
    clear_session,
    configure_session_store,
    dataset_preview,
    enforce_dataset_limits,
    get_session,
    limits_from_settings,
    new_session,
)

logger = get_logger("risk_server.services")


def preset_list(settings: Mapping[str, Any] | None = None) -> dict[str, Any]:
    settings = settings or {}
    return {
        "presets": list_presets(settings.get("presets")),
        "algorithms": available_algorithms(),
    }


def dataset_load_from_bytes(data: bytes, settings: Mapping[str, Any] | None = None) -> dict[str, Any]:
    limits = limits_from_settings(settings)
    configure_session_store(limits["max_sessions"])
    dataset = parse(decode_bytes(data))
    enforce_dataset_limits(dataset, max_rows=limits["max_rows"], max_columns=limits["max_columns"])
    session = new_session(dataset)
    logger.info("session %s created with %d rows", session.session_id, len(dataset))
    return {
        "session_id": session.session_id,
        "header": list(dataset.header),
        "rows": len(dataset),
        "preview": dataset_preview(dataset),
        "stage": session.pipeline.stage.label,
    }


def _declared_schema(request: PreprocessRequest, settings: Mapping[str, Any]) -> DeclaredSchema:
    if request.preset:
        return get_preset(request.preset, settings.get("presets"))
    assert request.target is not None
    return DeclaredSchema(
        target=request.target,
        positive_value=request.positive_value,
        numeric=tuple(request.numeric),
        categorical=tuple(request.categorical),
    )


def run_preprocess(request: PreprocessRequest, settings: Mapping[str, Any] | None = None) -> dict[str, Any]:
    session = get_session(request.session_id)
    declared = _declared_schema(request, settings or {})
    config = PreprocessConfig(
        train_fraction=request.train_fraction,
        shuffle=request.shuffle,
        seed=request.seed,
        missing_policy=MissingValuePolicy(request.missing_policy),
        scaling=request.scaling,
        on_missing_column=request.on_missing_column,
    )
    with session.lock:
        result = session.pipeline.preprocess(declared, config)
        return {"summary": result.summary(), "stage": session.pipeline.stage.label}


def _training_value(request: TrainRequest, defaults: Mapping[str, Any], name: str) -> Any:
    """Explicit request fields win; otherwise the configured default, then the model default."""

    if name not in request.model_fields_set and defaults.get(name) is not None:
        return defaults[name]
    return getattr(request, name)


def run_train(request: TrainRequest, settings: Mapping[str, Any] | None = None) -> dict[str, Any]:
    session = get_session(request.session_id)
    defaults = (settings or {}).get("training") or {}
    options = TrainingOptions(
        epochs=int(_training_value(request, defaults, "epochs")),
        batch_size=int(_training_value(request, defaults, "batch_size")),
        learning_rate=float(_training_value(request, defaults, "learning_rate")),
        hidden_units=tuple(int(units) for units in _training_value(request, defaults, "hidden_units")),
        dropout=float(_training_value(request, defaults, "dropout")),
        patience=_training_value(request, defaults, "patience"),
        seed=int(_training_value(request, defaults, "seed")),
    )
    with session.lock:
        session.cancel.clear()
        history = session.pipeline.train(options, request.algo, cancel=session.cancel)
        final = history.final
        logger.info(
            "session %s trained %s for %d epochs (final loss %.4f)",
            session.session_id,
            request.algo,
            len(history.epochs),
            final.loss if final else float("nan"),
        )
        return {
            "algorithm": request.algo,
            "history": history.to_dict(),
            "stage": session.pipeline.stage.label,
        }


def cancel_training(session_id: str) -> dict[str, Any]:
    session = get_session(session_id)
    session.cancel.set()
    return {"session_id": session_id, "cancel_requested": True}


def run_evaluate(request: EvaluateRequest) -> dict[str, Any]:
    session = get_session(request.session_id)
    with session.lock:
        result = session.pipeline.evaluate(request.threshold)
        return {**result.to_dict(), "stage": session.pipeline.stage.label}


def run_predict(request: PredictRequest) -> dict[str, Any]:
    session = get_session(request.session_id)
    with session.lock:
        return session.pipeline.predict_row(request.values, request.threshold)


def dataset_report(session_id: str) -> dict[str, Any]:
    session = get_session(session_id)
    with session.lock:
        return session.pipeline.report()


def export_preprocessed(session_id: str) -> str:
    session = get_session(session_id)
    with session.lock:
        return session.pipeline.export_preprocessed()


def session_summary(session_id: str) -> dict[str, Any]:
    session = get_session(session_id)
    with session.lock:
        return {"session_id": session_id, **session.pipeline.summary()}


def session_delete(session_id: str) -> dict[str, Any]:
    get_session(session_id)
    clear_session(session_id)
    return {"session_id": session_id, "deleted": True}


__all__ = [
    "cancel_training",
    "dataset_load_from_bytes",
    "dataset_report",
    "export_preprocessed",
    "preset_list",
    "run_evaluate",
    "run_predict",
    "run_preprocess",
    "run_train",
    "session_delete",
    "session_summary",
]
