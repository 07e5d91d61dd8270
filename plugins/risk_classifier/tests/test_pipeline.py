import threading

import numpy as np
import pytest

from plugins.risk_classifier.core import normalizer
from plugins.risk_classifier.core.classifier import TrainingOptions
from plugins.risk_classifier.core.csv_table import parse
from plugins.risk_classifier.core.encoder import MissingValuePolicy
from plugins.risk_classifier.core.errors import (
    ColumnNotFoundError,
    InsufficientDataError,
    MalformedInputError,
    StateSequenceError,
    TrainingCancelledError,
)
from plugins.risk_classifier.core.pipeline import PipelineSession, PreprocessConfig, Stage
from plugins.risk_classifier.core.schema import DeclaredSchema

SCHEMA = DeclaredSchema(target="outcome", positive_value="Yes", numeric=("age", "income"), categorical=("smoker",))


def _csv(rows: int = 20) -> str:
    lines = ["age,income,smoker,outcome"]
    for i in range(rows):
        smoker = "yes" if i % 3 == 0 else "no"
        outcome = "Yes" if i % 2 else "No"
        lines.append(f"{20 + i},{1000 + 100 * (i % 7)},{smoker},{outcome}")
    return "\n".join(lines) + "\n"


def _loaded(rows: int = 20) -> PipelineSession:
    session = PipelineSession()
    session.load(_csv(rows))
    return session


def test_new_session_is_idle_and_gates_every_stage():
    session = PipelineSession()

    assert session.stage is Stage.IDLE
    with pytest.raises(StateSequenceError):
        session.preprocess(SCHEMA)
    with pytest.raises(StateSequenceError):
        session.report()


def test_cannot_train_before_preprocessing():
    session = _loaded()

    with pytest.raises(StateSequenceError) as excinfo:
        session.train(TrainingOptions(epochs=1), "logreg")

    assert excinfo.value.details == {"stage": "loaded", "required": "preprocessed"}


def test_cannot_evaluate_or_predict_before_training():
    session = _loaded()
    session.preprocess(SCHEMA)

    with pytest.raises(StateSequenceError):
        session.evaluate(0.5)
    with pytest.raises(StateSequenceError):
        session.predict_row({"age": "30"})


def test_preprocess_fits_normalization_on_train_rows_only():
    session = _loaded(10)

    data = session.preprocess(SCHEMA, PreprocessConfig(train_fraction=0.8))

    assert session.stage is Stage.PREPROCESSED
    assert data.split.train_index.tolist() == list(range(8))
    assert data.params.low[0] == 20.0 and data.params.high[0] == 27.0
    # test rows are scaled with the train range, so they may exceed 1
    assert data.split.test_x[:, 0].tolist() == pytest.approx([8 / 7, 9 / 7])
    assert data.encoder.feature_names == ["age", "income", "smoker=yes", "smoker=no"]


def test_single_class_target_is_insufficient():
    session = PipelineSession()
    session.load("age,outcome\n1,No\n2,No\n3,No\n")

    with pytest.raises(InsufficientDataError):
        session.preprocess(DeclaredSchema(target="outcome", positive_value="Yes", numeric=("age",)))


def test_header_only_dataset_cannot_be_preprocessed():
    session = PipelineSession()
    session.load("age,outcome\n")

    with pytest.raises(InsufficientDataError):
        session.preprocess(SCHEMA)


def test_failed_preprocess_keeps_previous_artifacts():
    session = _loaded()
    first = session.preprocess(SCHEMA)

    with pytest.raises(ColumnNotFoundError):
        session.preprocess(DeclaredSchema(target="missing", positive_value="1"))

    assert session.preprocessed is first
    assert session.stage is Stage.PREPROCESSED


def test_full_run_with_logistic_regression_and_rethreshold():
    session = _loaded(40)
    session.preprocess(SCHEMA)
    history = session.train(TrainingOptions(epochs=5), "logreg")

    result = session.evaluate(0.5)
    probabilities = session.model.probabilities
    stricter = session.evaluate(0.9)

    assert history.final is not None
    assert session.stage is Stage.EVALUATED
    assert result.confusion.total == 8
    assert len(result.roc) == 101
    assert session.model.probabilities is probabilities
    assert stricter.threshold == 0.9
    assert stricter.roc is result.roc


def test_failed_training_keeps_previous_model_and_params():
    session = _loaded(40)
    data = session.preprocess(SCHEMA)
    session.train(TrainingOptions(epochs=1), "logreg")
    model = session.model

    with pytest.raises(MalformedInputError):
        session.train(TrainingOptions(epochs=1), "not-an-algorithm")

    assert session.model is model
    assert session.preprocessed is data
    assert session.stage is Stage.TRAINED


def test_training_cancelled_mid_run_keeps_previous_state():
    session = _loaded(40)
    data = session.preprocess(SCHEMA)
    session.train(TrainingOptions(epochs=1), "logreg")
    model = session.model
    params = data.params
    cancel = threading.Event()
    seen = []

    def stop_after_first(result):
        seen.append(result)
        cancel.set()

    with pytest.raises(TrainingCancelledError):
        session.train(
            TrainingOptions(epochs=5, hidden_units=(4,)),
            "torch_mlp",
            cancel=cancel,
            on_epoch=stop_after_first,
        )

    assert len(seen) == 1
    assert session.model is model
    assert session.model.algorithm == "logreg"
    assert session.preprocessed is data
    assert session.preprocessed.params is params
    assert session.stage is Stage.TRAINED


def test_predict_row_uses_stored_vocabulary_and_params():
    session = _loaded(40)
    data = session.preprocess(SCHEMA)
    session.train(TrainingOptions(epochs=1), "logreg")

    result = session.predict_row({"age": "30", "income": "1200", "smoker": "never-seen"})

    expected = normalizer.apply(data.encoder.transform({"age": "30", "income": "1200", "smoker": ""}), data.params)
    assert result["features"] == pytest.approx(expected.tolist())
    assert result["features"][2:] == [0.0, 0.0]
    assert 0.0 <= result["probability"] <= 1.0
    assert result["label"] in {"Yes", "No"}
    assert result["threshold"] == 0.5


def test_predict_row_defaults_to_last_evaluated_threshold():
    session = _loaded(40)
    session.preprocess(SCHEMA)
    session.train(TrainingOptions(epochs=1), "logreg")
    session.evaluate(0.7)

    assert session.predict_row({"age": "30", "income": "1000", "smoker": "no"})["threshold"] == 0.7


def test_reloading_resets_downstream_stages():
    session = _loaded(40)
    session.preprocess(SCHEMA)
    session.train(TrainingOptions(epochs=1), "logreg")

    session.load(_csv(12))

    assert session.stage is Stage.LOADED
    assert session.preprocessed is None and session.model is None


def test_export_maps_categorical_blocks_back_to_strings():
    session = _loaded(10)
    session.preprocess(SCHEMA)

    exported = parse(session.export_preprocessed())

    assert exported.header == ("age", "income", "smoker", "outcome")
    assert exported.column("smoker") == session.dataset.column("smoker")
    assert exported.column("outcome") == session.dataset.column("outcome")
    assert exported.column("age")[0] == "0"


def test_drop_row_policy_flows_through_the_session():
    text = _csv(10).replace("\n25,", "\n,", 1)
    session = PipelineSession()
    session.load(text)

    data = session.preprocess(SCHEMA, PreprocessConfig(missing_policy=MissingValuePolicy.DROP_ROW))

    assert 5 not in data.kept_rows
    assert len(data.kept_rows) == 9


def test_report_uses_resolved_roles_after_preprocessing():
    session = _loaded(10)
    session.preprocess(SCHEMA)

    report = session.report()

    assert report["target"] == "outcome"
    assert set(report["numeric"]) == {"age", "income"}
    assert report["target_distribution"] == {"No": 5, "Yes": 5}


def test_summary_reflects_stage():
    session = _loaded(10)
    session.preprocess(SCHEMA)

    summary = session.summary()

    assert summary["stage"] == "preprocessed"
    assert summary["preprocess"]["rows"] == {"used": 10, "train": 8, "test": 2}
    assert summary["preprocess"]["class_balance"] == {"positive": 5, "negative": 5}
    assert np.isfinite(summary["preprocess"]["normalization"]["high"]).all()


def test_report_on_repeated_header_names():
    session = PipelineSession()
    session.load("a,a,y\n1,2,Yes\n3,4,No\n")

    report = session.report()

    assert report["shape"] == {"rows": 2, "columns": 2}
    assert report["numeric"]["a"]["max"] == 4.0
