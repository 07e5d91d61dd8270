"""Session registry and settings helpers for the Risk Classifier backend."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from common.logging import get_logger

from ..core.csv_table import Dataset
from ..core.pipeline import PipelineSession

logger = get_logger("risk_server.sessions")

_SESSION_TTL = timedelta(minutes=30)
_DEFAULT_MAX_SESSIONS = 64


class SessionNotFoundError(KeyError):
    """Raised when a session id is unknown or has expired."""


class SessionLimitError(ValueError):
    """Raised when the store already holds its maximum number of sessions."""


@dataclass(slots=True)
class SessionData:
    """A pipeline session plus the bookkeeping the HTTP layer needs."""

    pipeline: PipelineSession
    session_id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_accessed: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: threading.RLock = field(default_factory=threading.RLock)
    cancel: threading.Event = field(default_factory=threading.Event)

    def touch(self) -> None:
        self.last_accessed = datetime.now(timezone.utc)


class SessionStore:
    """Thread-safe in-memory session registry with TTL purging."""

    def __init__(self, max_sessions: int = _DEFAULT_MAX_SESSIONS) -> None:
        self._items: dict[str, SessionData] = {}
        self._lock = threading.Lock()
        self.max_sessions = max_sessions

    def _purge_locked(self) -> None:
        now = datetime.now(timezone.utc)
        expired = [
            session_id
            for session_id, session in self._items.items()
            if now - session.last_accessed > _SESSION_TTL
        ]
        for session_id in expired:
            logger.info("expiring session %s", session_id)
            self._items.pop(session_id, None)

    def create(self, dataset: Dataset) -> SessionData:
        session_id = uuid.uuid4().hex
        pipeline = PipelineSession()
        pipeline.load_dataset(dataset)
        with self._lock:
            self._purge_locked()
            if len(self._items) >= self.max_sessions:
                raise SessionLimitError("Too many active sessions; try again later")
            data = SessionData(pipeline=pipeline, session_id=session_id)
            self._items[session_id] = data
        return data

    def get(self, session_id: str) -> SessionData:
        with self._lock:
            self._purge_locked()
            try:
                data = self._items[session_id]
            except KeyError as exc:
                raise SessionNotFoundError("Session expired or not found") from exc
            data.touch()
            return data

    def delete(self, session_id: str) -> None:
        with self._lock:
            session = self._items.pop(session_id, None)
        if session is not None:
            session.cancel.set()

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


_SESSION_STORE = SessionStore()


def configure_session_store(max_sessions: int) -> None:
    _SESSION_STORE.max_sessions = max(int(max_sessions), 1)


def reset_session_store() -> None:
    _SESSION_STORE.clear()


def get_session(session_id: str) -> SessionData:
    return _SESSION_STORE.get(session_id)


def new_session(dataset: Dataset) -> SessionData:
    return _SESSION_STORE.create(dataset)


def clear_session(session_id: str) -> None:
    _SESSION_STORE.delete(session_id)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def plugin_settings(app_config: Mapping[str, Any]) -> Mapping[str, Any]:
    return app_config.get("PLUGIN_SETTINGS", {}).get("risk_classifier", {}) or {}


def limits_from_settings(settings: Mapping[str, Any] | None) -> dict[str, int]:
    settings = settings or {}
    return {
        "max_rows": _as_int(settings.get("max_rows"), 100_000),
        "max_columns": _as_int(settings.get("max_columns"), 200),
        "max_sessions": _as_int(settings.get("max_sessions"), _DEFAULT_MAX_SESSIONS),
    }


def enforce_dataset_limits(dataset: Dataset, *, max_rows: int, max_columns: int) -> None:
    if len(dataset.header) > max_columns:
        raise ValueError(f"Dataset has {len(dataset.header)} columns; the limit is {max_columns}")
    if len(dataset) > max_rows:
        raise ValueError(f"Dataset has {len(dataset)} rows; the limit is {max_rows}")


def session_config(app_config: Mapping[str, Any]) -> dict[str, Any]:
    settings = plugin_settings(app_config)
    upload = settings.get("upload", {}) or {}
    limits = {
        "max_mb": upload.get("max_mb", 10),
        "max_files": upload.get("max_files", 1),
        **limits_from_settings(settings),
    }
    return {"upload": limits, "training": dict(settings.get("training", {}) or {})}


def dataset_preview(dataset: Dataset, *, head: int = 5) -> list[dict[str, str]]:
    return [dict(row) for row in dataset.rows[:head]]


__all__ = [
    "SessionData",
    "SessionLimitError",
    "SessionNotFoundError",
    "SessionStore",
    "clear_session",
    "configure_session_store",
    "dataset_preview",
    "enforce_dataset_limits",
    "get_session",
    "limits_from_settings",
    "new_session",
    "plugin_settings",
    "reset_session_store",
    "session_config",
]
