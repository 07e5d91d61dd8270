"""Standardized JSON response helpers."""

from __future__ import annotations

import json
from typing import Any, Mapping

from flask import Response, jsonify

from .errors import AppError


def ok(data: Any, *, status: int = 200) -> Response:
    """Return a success envelope."""

    response = jsonify({"success": True, "data": data})
    response.status_code = status
    return response


def fail(error: AppError | Mapping[str, Any], *, status: int | None = None) -> Response:
    """Return a standardized failure envelope."""

    if isinstance(error, AppError):
        response = jsonify({"success": False, "error": error.to_dict()})
        response.status_code = status or error.status_code
        return response

    response = jsonify({"success": False, "error": dict(error)})
    response.status_code = status or 400
    return response


def attachment(body: str | Mapping[str, Any], *, filename: str) -> Response:
    """Return ``body`` as a download; mappings are serialised as indented JSON."""

    if isinstance(body, Mapping):
        content, mimetype = json.dumps(body, indent=2), "application/json"
    else:
        content, mimetype = body, "text/csv"
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


__all__ = ["attachment", "fail", "ok"]
