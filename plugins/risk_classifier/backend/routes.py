"""Flask routes for the Risk Classifier plugin."""

from __future__ import annotations

from typing import Any, Callable

from flask import Blueprint, Response, current_app, request

from common.errors import (
    AppError,
    ConflictAppError,
    NotFoundAppError,
    UnprocessableAppError,
    ValidationAppError,
    ensure_app_error,
)
from common.responses import attachment, fail, ok
from common.validation import FileLimit, ValidationError, enforce_limits, parse_model, validate_mime

from ..core.errors import (
    ColumnNotFoundError,
    InsufficientDataError,
    MalformedInputError,
    PipelineError,
    StateSequenceError,
    TrainingCancelledError,
    TrainingDivergedError,
)
from .schemas import EvaluateRequest, PredictRequest, PreprocessRequest, SessionQuery, TrainRequest
from .services import (
    cancel_training,
    dataset_load_from_bytes,
    dataset_report,
    export_preprocessed,
    preset_list,
    run_evaluate,
    run_predict,
    run_preprocess,
    run_train,
    session_delete,
    session_summary,
)
from .utils import SessionNotFoundError, plugin_settings, session_config

bp = Blueprint("risk_classifier", __name__, url_prefix="/api/risk_classifier")

# First match wins; subclasses must precede their bases.
_PIPELINE_ERRORS: tuple[tuple[type[PipelineError], type[AppError], str], ...] = (
    (StateSequenceError, ConflictAppError, "state"),
    (TrainingCancelledError, ConflictAppError, "training_cancelled"),
    (TrainingDivergedError, UnprocessableAppError, "training_diverged"),
    (ColumnNotFoundError, ValidationAppError, "column_not_found"),
    (InsufficientDataError, ValidationAppError, "insufficient_data"),
    (MalformedInputError, ValidationAppError, "malformed_input"),
)


def _settings() -> dict[str, Any]:
    return dict(plugin_settings(current_app.config))


def _upload_limits() -> FileLimit:
    upload = _settings().get("upload")
    return FileLimit.from_settings(upload, default_max_files=1, default_max_mb=10)


def _pipeline_error(exc: PipelineError) -> AppError:
    for error_type, app_error, suffix in _PIPELINE_ERRORS:
        if isinstance(exc, error_type):
            return app_error(message=str(exc), code=f"risk_classifier.{suffix}", details=exc.details)
    return ValidationAppError(message=str(exc), code="risk_classifier.invalid_request", details=exc.details)


def _handle(callable_: Callable[[], Response | tuple[Any, int]]) -> Response:
    try:
        result = callable_()
        if isinstance(result, tuple):
            payload, status = result
            return ok(payload, status=status)
        if isinstance(result, Response):
            return result
        return ok(result)
    except AppError as exc:
        return fail(exc)
    except SessionNotFoundError as exc:
        return fail(NotFoundAppError(message=exc.args[0], code="risk_classifier.session.not_found"))
    except PipelineError as exc:
        return fail(_pipeline_error(exc))
    except ValidationError as exc:
        return fail(ValidationAppError(message=str(exc), details={"errors": exc.details}))
    except (ValueError, KeyError) as exc:
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
        error = ValidationAppError(message=str(message), code="risk_classifier.invalid_request")
        return fail(error)
    except Exception as exc:  # pragma: no cover - defensive path
        current_app.logger.exception("unhandled risk_classifier error")
        error = ensure_app_error(exc, fallback_code="risk_classifier.internal")
        return fail(error, status=error.status_code)


def _session_id_arg() -> str:
    return parse_model(SessionQuery, {"session_id": request.args.get("session_id", "")}).session_id


@bp.get("/presets")
def presets() -> Response:
    return _handle(lambda: preset_list(_settings()))


@bp.post("/datasets/load")
def datasets_load() -> Response:
    def _load() -> dict[str, Any]:
        file = request.files.get("csv")
        if not file:
            raise ValidationAppError(message="CSV upload required", code="risk_classifier.dataset.missing")
        try:
            enforce_limits([file], _upload_limits())
            validate_mime([file], {"text/csv", "application/vnd.ms-excel"})
        except ValidationError as exc:
            raise ValidationAppError(message=str(exc), code="risk_classifier.upload.invalid", details=exc.details)
        return dataset_load_from_bytes(file.read(), _settings())

    return _handle(_load)


@bp.post("/preprocess")
def preprocess() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(PreprocessRequest, request.get_json(silent=True))
        return run_preprocess(payload, _settings())

    return _handle(_call)


@bp.post("/model/train")
def model_train() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(TrainRequest, request.get_json(silent=True))
        return run_train(payload, _settings())

    return _handle(_call)


@bp.post("/model/cancel")
def model_cancel() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(SessionQuery, request.get_json(silent=True))
        return cancel_training(payload.session_id)

    return _handle(_call)


@bp.post("/model/evaluate")
def model_evaluate() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(EvaluateRequest, request.get_json(silent=True))
        return run_evaluate(payload)

    return _handle(_call)


@bp.post("/model/predict")
def model_predict() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(PredictRequest, request.get_json(silent=True))
        return run_predict(payload)

    return _handle(_call)


@bp.get("/report")
def report() -> Response:
    def _call() -> Response | dict[str, Any]:
        data = dataset_report(_session_id_arg())
        if request.args.get("download"):
            return attachment(data, filename="eda_report.json")
        return data

    return _handle(_call)


@bp.get("/export")
def export() -> Response:
    def _call() -> Response:
        return attachment(export_preprocessed(_session_id_arg()), filename="preprocessed.csv")

    return _handle(_call)


@bp.get("/sessions/<session_id>")
def session_get(session_id: str) -> Response:
    return _handle(lambda: session_summary(session_id))


@bp.delete("/sessions/<session_id>")
def session_remove(session_id: str) -> Response:
    return _handle(lambda: session_delete(session_id))


@bp.get("/system/config")
def system_config() -> Response:
    return _handle(lambda: session_config(current_app.config))


__all__ = ["bp"]
