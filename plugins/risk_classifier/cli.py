"""Command line interface for the Risk Classifier plugin."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from app import load_plugin_settings
from common.logging import get_logger

from .core.classifier import EpochResult, TrainingOptions, available_algorithms
from .core.csv_table import decode_bytes
from .core.encoder import MissingValuePolicy
from .core.errors import PipelineError
from .core.pipeline import PipelineSession, PreprocessConfig
from .core.presets import get_preset, list_presets
from .core.schema import DeclaredSchema

logger = get_logger("risk_server.cli")


def _print(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _settings() -> dict[str, Any]:
    return dict(load_plugin_settings("risk_classifier"))


def _load_session(path: str) -> PipelineSession:
    session = PipelineSession()
    session.load(decode_bytes(Path(path).read_bytes()))
    return session


def _declared_schema(args: argparse.Namespace) -> DeclaredSchema:
    if args.preset:
        return get_preset(args.preset, _settings().get("presets"))
    if not args.target:
        raise SystemExit("Either --preset or --target is required")
    return DeclaredSchema(
        target=args.target,
        positive_value=args.positive,
        numeric=tuple(args.numeric),
        categorical=tuple(args.categorical),
    )


def command_presets(args: argparse.Namespace) -> None:
    _print({"presets": list_presets(_settings().get("presets")), "algorithms": available_algorithms()})


def command_report(args: argparse.Namespace) -> None:
    session = _load_session(args.csv)
    if args.preset:
        session.preprocess(get_preset(args.preset, _settings().get("presets")))
    _print(session.report())


def _log_epoch(result: EpochResult) -> None:
    logger.info(
        "epoch %d loss=%.4f acc=%.4f val_loss=%s val_acc=%s",
        result.epoch,
        result.loss,
        result.accuracy,
        "-" if result.val_loss is None else f"{result.val_loss:.4f}",
        "-" if result.val_accuracy is None else f"{result.val_accuracy:.4f}",
    )


def command_run(args: argparse.Namespace) -> None:
    session = _load_session(args.csv)
    config = PreprocessConfig(
        train_fraction=args.train_fraction,
        shuffle=args.shuffle,
        seed=args.seed,
        missing_policy=MissingValuePolicy(args.missing_policy),
        scaling=args.scaling,
        on_missing_column="skip" if args.skip_missing_columns else "raise",
    )
    preprocessed = session.preprocess(_declared_schema(args), config)
    options = TrainingOptions(
        epochs=args.epochs,
        batch_size=args.batch_size,
        learning_rate=args.learning_rate,
        hidden_units=tuple(args.hidden_units),
        patience=args.patience,
        seed=args.seed if args.seed is not None else 42,
    )
    history = session.train(options, args.algo, on_epoch=_log_epoch)
    evaluation = session.evaluate(args.threshold)
    if args.export:
        Path(args.export).write_text(session.export_preprocessed(), encoding="utf-8")
    final = history.final
    _print(
        {
            "preprocess": preprocessed.summary(),
            "training": {
                "algorithm": args.algo,
                "epochs_run": len(history.epochs),
                "stopped_early": history.stopped_early,
                "final": None if final is None else {
                    "loss": final.loss,
                    "accuracy": final.accuracy,
                    "val_loss": final.val_loss,
                    "val_accuracy": final.val_accuracy,
                },
            },
            "evaluation": evaluation.to_dict(),
        }
    )


def build_parser() -> argparse.ArgumentParser:
    training = _settings().get("training") or {}
    parser = argparse.ArgumentParser(description="Risk Classifier CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    presets_parser = subparsers.add_parser("presets", help="List column presets and algorithms")
    presets_parser.set_defaults(func=command_presets)

    report_parser = subparsers.add_parser("report", help="Summarise a CSV file as JSON")
    report_parser.add_argument("--csv", required=True, help="Path to the CSV file")
    report_parser.add_argument("--preset", help="Use a preset's column roles instead of inferring them")
    report_parser.set_defaults(func=command_report)

    run_parser = subparsers.add_parser("run", help="Preprocess, train and evaluate on a CSV file")
    run_parser.add_argument("--csv", required=True, help="Path to the CSV file")
    run_parser.add_argument("--preset", help="Preset name (see 'presets')")
    run_parser.add_argument("--target", help="Target column when no preset is used")
    run_parser.add_argument("--positive", default="1", help="Target value mapped to the positive class")
    run_parser.add_argument("--numeric", nargs="*", default=[], help="Numeric columns")
    run_parser.add_argument("--categorical", nargs="*", default=[], help="Categorical columns")
    run_parser.add_argument("--algo", default="torch_mlp", choices=["torch_mlp", "logreg"], help="Algorithm")
    run_parser.add_argument("--epochs", type=int, default=training.get("epochs", 50), help="Training epochs")
    run_parser.add_argument(
        "--batch-size", dest="batch_size", type=int, default=training.get("batch_size", 32), help="Mini-batch size"
    )
    run_parser.add_argument(
        "--learning-rate", dest="learning_rate", type=float, default=training.get("learning_rate", 0.001)
    )
    run_parser.add_argument(
        "--hidden-units",
        dest="hidden_units",
        type=int,
        nargs="+",
        default=list(training.get("hidden_units", [64, 32])),
    )
    run_parser.add_argument(
        "--patience", type=int, default=training.get("patience"), help="Early stopping patience"
    )
    run_parser.add_argument("--threshold", type=float, default=0.5, help="Decision threshold")
    run_parser.add_argument("--train-fraction", dest="train_fraction", type=float, default=0.8)
    run_parser.add_argument("--shuffle", action="store_true", help="Shuffle rows before splitting")
    run_parser.add_argument("--seed", type=int, default=None, help="Seed for shuffling and training")
    run_parser.add_argument(
        "--missing-policy",
        dest="missing_policy",
        default="zero_fill",
        choices=[policy.value for policy in MissingValuePolicy],
    )
    run_parser.add_argument("--scaling", default="minmax", choices=["minmax", "zscore"])
    run_parser.add_argument(
        "--skip-missing-columns",
        dest="skip_missing_columns",
        action="store_true",
        help="Leave out declared feature columns that match no header",
    )
    run_parser.add_argument("--export", help="Write the preprocessed rows to this CSV path")
    run_parser.set_defaults(func=command_run)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except (PipelineError, KeyError) as exc:
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    main()
