"""Blueprint discovery and registration for plugin packages."""

from __future__ import annotations

import importlib
import pkgutil
from pathlib import Path
from typing import Iterator

from flask import Blueprint, Flask

from common.logging import get_logger

logger = get_logger("risk_server.app")


def _iter_blueprints(package: str = "plugins") -> Iterator[Blueprint]:
    module_path = Path(__file__).resolve().parent.parent / package
    if not module_path.exists():
        return
    for module_info in pkgutil.iter_modules([str(module_path)]):
        if not module_info.ispkg:
            continue
        module = importlib.import_module(f"{package}.{module_info.name}.api")
        declared = getattr(module, "blueprints", None)
        if declared is None:
            single = getattr(module, "bp", None)
            declared = [single] if single is not None else []
        yield from declared


def register_plugin_blueprints(app: Flask) -> list[str]:
    registered: list[str] = []
    for bp in _iter_blueprints():
        app.register_blueprint(bp)
        registered.append(bp.name)
    logger.info("registered plugin blueprints: %s", ", ".join(registered) or "none")
    return registered


__all__ = ["register_plugin_blueprints"]
