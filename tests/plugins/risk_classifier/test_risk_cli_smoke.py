"""Smoke tests for the Risk Classifier CLI."""

from __future__ import annotations

import json
from contextlib import redirect_stdout
from io import StringIO
from pathlib import Path

import pytest

from plugins.risk_classifier import cli

SAMPLE = Path(__file__).resolve().parents[3] / "plugins" / "risk_classifier" / "assets" / "lifestyle_sample.csv"


def _run_cli(args: list[str]) -> dict[str, object]:
    buffer = StringIO()
    with redirect_stdout(buffer):
        cli.main(args)
    output = buffer.getvalue().strip()
    return json.loads(output)


def test_cli_lists_presets():
    listing = _run_cli(["presets"])
    names = {item["name"] for item in listing["presets"]}
    assert "lifestyle" in names
    assert listing["algorithms"]


def test_cli_report_with_preset_roles():
    report = _run_cli(["report", "--csv", str(SAMPLE), "--preset", "lifestyle"])
    assert report["shape"] == {"rows": 60, "columns": 15}
    assert report["target"] == "disease_risk"
    assert "bmi" in report["numeric"]


def test_cli_run_end_to_end(tmp_path):
    export = tmp_path / "preprocessed.csv"

    result = _run_cli(
        ["run", "--csv", str(SAMPLE), "--preset", "lifestyle", "--algo", "logreg", "--export", str(export)]
    )

    assert result["preprocess"]["rows"]["test"] == 12
    assert result["training"]["algorithm"] == "logreg"
    assert result["training"]["epochs_run"] == 1
    assert result["evaluation"]["evaluated_rows"] == 12
    assert len(result["evaluation"]["roc"]) == 101
    assert export.read_text(encoding="utf-8").startswith("age,bmi,")


def test_cli_run_with_explicit_columns():
    result = _run_cli(
        [
            "run",
            "--csv",
            str(SAMPLE),
            "--target",
            "disease_risk",
            "--numeric",
            "age",
            "bmi",
            "--categorical",
            "smoker",
            "--algo",
            "logreg",
            "--threshold",
            "0.3",
        ]
    )

    assert result["evaluation"]["threshold"] == 0.3
    assert result["preprocess"]["feature_names"][:2] == ["age", "bmi"]


def test_cli_reports_pipeline_errors_with_exit_code():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run", "--csv", str(SAMPLE), "--target", "nonexistent", "--algo", "logreg"])

    assert excinfo.value.code == 2


def test_cli_training_defaults_come_from_settings(monkeypatch):
    monkeypatch.setattr(cli, "_settings", lambda: {"training": {"epochs": 7, "hidden_units": [8]}})

    args = cli.build_parser().parse_args(["run", "--csv", str(SAMPLE)])

    assert args.epochs == 7
    assert args.hidden_units == [8]
    assert args.batch_size == 32
