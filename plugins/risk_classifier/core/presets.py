"""Named column schemas for the datasets the tool was built around."""

from __future__ import annotations

from typing import Any, Mapping

from .errors import MalformedInputError
from .schema import DeclaredSchema

BUILTIN_PRESETS: dict[str, dict[str, Any]] = {
    "depression": {
        "label": "Depression risk (mental health survey)",
        "target": "History of Mental Illness",
        "positive_value": "Yes",
        "numeric": ["Age", "Number of Children", "Income"],
        "categorical": [
            "Marital Status",
            "Education Level",
            "Smoking Status",
            "Physical Activity Level",
            "Employment Status",
            "Alcohol Consumption",
            "Dietary Habits",
            "Sleep Patterns",
            "History of Substance Abuse",
            "Family History of Depression",
            "Chronic Medical Conditions",
        ],
    },
    "lifestyle": {
        "label": "Lifestyle disease risk",
        "target": "disease_risk",
        "positive_value": "1",
        "numeric": [
            "age",
            "bmi",
            "daily_steps",
            "sleep_hours",
            "water_intake_l",
            "calories_consumed",
            "resting_hr",
            "systolic_bp",
            "diastolic_bp",
            "cholesterol",
        ],
        "categorical": ["gender", "smoker", "alcohol", "family_history"],
    },
    "maintenance": {
        "label": "Predictive maintenance (machine failure)",
        "target": "Machine failure",
        "positive_value": "1",
        "numeric": [
            "Air temperature",
            "Process temperature",
            "Rotational speed",
            "Torque",
            "Tool wear",
        ],
        "categorical": ["Type"],
    },
}


def merge_presets(configured: Mapping[str, Any] | None) -> dict[str, dict[str, Any]]:
    """Overlay presets from configuration on top of the built-in ones."""

    presets = {name: dict(entry) for name, entry in BUILTIN_PRESETS.items()}
    for name, entry in (configured or {}).items():
        if not isinstance(entry, Mapping) or "target" not in entry:
            raise MalformedInputError(f"Preset '{name}' needs at least a target column")
        presets[str(name)] = dict(entry)
    return presets


def list_presets(configured: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
    presets = merge_presets(configured)
    return [
        {
            "name": name,
            "label": entry.get("label", name.title()),
            **DeclaredSchema.from_mapping(entry).to_dict(),
        }
        for name, entry in sorted(presets.items())
    ]


def get_preset(name: str, configured: Mapping[str, Any] | None = None) -> DeclaredSchema:
    presets = merge_presets(configured)
    try:
        entry = presets[name]
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc
    return DeclaredSchema.from_mapping(entry)


__all__ = ["BUILTIN_PRESETS", "get_preset", "list_presets", "merge_presets"]
