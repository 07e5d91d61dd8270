"""Validation primitives for plugin APIs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, TypeVar

import pydantic
from pydantic import BaseModel
from werkzeug.datastructures import FileStorage

_CSV_MIMES = frozenset({"text/csv", "application/vnd.ms-excel"})
_SNIFF_BYTES = 2048


class ValidationError(ValueError):
    """Raised when validation fails."""

    def __init__(self, message: str, *, details: Any | None = None):
        super().__init__(message)
        self.details = details


class SchemaModel(BaseModel):
    """Strict base model for request/response validation."""

    model_config = pydantic.ConfigDict(extra="forbid", str_strip_whitespace=True)


TModel = TypeVar("TModel", bound=SchemaModel)


def parse_model(model: type[TModel], payload: Mapping[str, Any] | None) -> TModel:
    payload = payload or {}
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        raise ValidationError("Invalid request payload", details=errors) from exc


@dataclass(slots=True)
class FileLimit:
    max_files: int
    max_size: int

    @classmethod
    def from_settings(
        cls,
        settings: Mapping[str, Any] | None,
        *,
        default_max_files: int,
        default_max_mb: int,
    ) -> "FileLimit":
        max_files = default_max_files
        max_mb = default_max_mb

        if settings:
            try:
                max_files = int(settings.get("max_files"))
            except (TypeError, ValueError):
                max_files = default_max_files
            try:
                max_mb = int(float(settings.get("max_mb")))
            except (TypeError, ValueError):
                max_mb = default_max_mb

        return cls(max_files=max(max_files, 1), max_size=max(max_mb, 1) * 1024 * 1024)


def enforce_limits(files: Iterable[FileStorage], limit: FileLimit) -> None:
    files = list(files)
    if not files:
        raise ValidationError("At least one file is required")
    if len(files) > limit.max_files:
        raise ValidationError("Too many files uploaded")
    for file in files:
        file.seek(0, 2)
        size = file.tell()
        file.seek(0)
        if size > limit.max_size:
            raise ValidationError("File exceeds allowed size", details={"max_bytes": limit.max_size})


def looks_like_csv(sample: bytes) -> bool:
    """Heuristic: decodable text, free of control bytes, with a non-blank line.

    Single-column files carry no delimiter, and leading blank lines are
    skipped by the reader, so neither is required here.
    """

    if not sample:
        return False
    try:
        text = sample.decode("utf-8")
    except UnicodeDecodeError:
        text = sample.decode("latin-1")
    if any(ord(char) < 32 and char not in "\t\r\n\f" for char in text):
        return False
    return any(line.strip() for line in text.lstrip("\ufeff").splitlines())


def validate_mime(files: Iterable[FileStorage], allowed: set[str]) -> None:
    """Sniff each upload's leading bytes; only CSV content types are understood."""

    unsupported = set(allowed) - _CSV_MIMES
    if unsupported:
        raise ValueError(f"No content sniffing available for {sorted(unsupported)}")
    for file in files:
        stream = file.stream
        try:
            current = stream.tell()
        except (AttributeError, OSError):
            current = None
        try:
            stream.seek(0)
        except (AttributeError, OSError):
            pass

        sample = stream.read(_SNIFF_BYTES)
        if isinstance(sample, str):  # pragma: no cover - defensive
            sample = sample.encode("utf-8", "ignore")

        try:
            stream.seek(current if current is not None else 0)
        except (AttributeError, OSError):
            pass

        if not looks_like_csv(sample or b""):
            raise ValidationError("Upload does not look like CSV text")


__all__ = [
    "FileLimit",
    "SchemaModel",
    "ValidationError",
    "enforce_limits",
    "looks_like_csv",
    "parse_model",
    "validate_mime",
]
