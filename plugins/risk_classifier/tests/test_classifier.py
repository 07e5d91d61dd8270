import threading

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from plugins.risk_classifier.core.classifier import (
    BinaryClassifier,
    LogisticRegressionClassifier,
    TorchMLPClassifier,
    TrainingOptions,
    build_classifier,
)
from plugins.risk_classifier.core.errors import (
    InsufficientDataError,
    MalformedInputError,
    StateSequenceError,
    TrainingCancelledError,
    TrainingDivergedError,
)


def _separable(n: int = 80):
    rng = np.random.default_rng(0)
    X = rng.random((n, 3))
    y = (X[:, 0] > 0.5).astype(np.int64)
    return X, y


def test_torch_mlp_reports_one_result_per_epoch():
    X, y = _separable()
    clf = TorchMLPClassifier()
    seen = []

    history = clf.fit(
        X[:60],
        y[:60],
        TrainingOptions(epochs=5, learning_rate=0.01, hidden_units=(8, 4)),
        validation=(X[60:], y[60:]),
        on_epoch=seen.append,
    )

    assert [item.epoch for item in history.epochs] == [1, 2, 3, 4, 5]
    assert seen == history.epochs
    assert all(item.val_loss is not None for item in history.epochs)
    probabilities = clf.predict(X)
    assert probabilities.shape == (80,)
    assert ((probabilities >= 0) & (probabilities <= 1)).all()


def test_torch_mlp_learns_a_separable_problem():
    X, y = _separable(200)
    clf = TorchMLPClassifier()

    clf.fit(X, y, TrainingOptions(epochs=60, learning_rate=0.05, hidden_units=(16,)))

    accuracy = ((clf.predict(X) >= 0.5).astype(int) == y).mean()
    assert accuracy > 0.85


def test_cancel_token_stops_training():
    X, y = _separable()
    cancel = threading.Event()
    clf = TorchMLPClassifier()
    results = clf.iter_fit(X, y, TrainingOptions(epochs=10), cancel=cancel)

    next(results)
    cancel.set()

    with pytest.raises(TrainingCancelledError):
        next(results)


def test_non_finite_inputs_are_reported_as_divergence():
    X, y = _separable()
    X[0, 0] = np.nan

    with pytest.raises(TrainingDivergedError):
        TorchMLPClassifier().fit(X, y, TrainingOptions(epochs=2, batch_size=200))


def test_early_stopping_marks_history():
    X, y = _separable()
    options = TrainingOptions(epochs=200, learning_rate=0.5, hidden_units=(4,), patience=1)

    history = TorchMLPClassifier().fit(X[:60], y[:60], options, validation=(X[60:], y[60:]))

    assert history.stopped_early
    assert len(history.epochs) < 200


def test_single_class_training_labels_are_insufficient():
    X, _ = _separable()

    with pytest.raises(InsufficientDataError):
        TorchMLPClassifier().fit(X, np.zeros(len(X), dtype=int), TrainingOptions(epochs=1))


def test_predict_before_fit_is_a_sequence_error():
    with pytest.raises(StateSequenceError):
        TorchMLPClassifier().predict(np.zeros((1, 3)))


def test_logistic_regression_adapter():
    X, y = _separable()
    clf = build_classifier("logreg")

    history = clf.fit(X[:60], y[:60], TrainingOptions(), validation=(X[60:], y[60:]))

    assert isinstance(clf, LogisticRegressionClassifier)
    assert len(history.epochs) == 1
    assert history.final.val_accuracy is not None
    assert clf.predict(X).shape == (80,)


@pytest.mark.parametrize(
    "kwargs",
    [{"epochs": 0}, {"batch_size": 0}, {"learning_rate": 0}, {"dropout": 1.0}],
)
def test_invalid_training_options(kwargs):
    with pytest.raises(MalformedInputError):
        TrainingOptions(**kwargs)


def test_unknown_algorithm():
    with pytest.raises(MalformedInputError):
        build_classifier("svm")


def test_classifier_without_predict_cannot_be_instantiated():
    class FitOnly(BinaryClassifier):
        def iter_fit(self, X, y, options, *, validation=None, cancel=None):
            yield from ()

    with pytest.raises(TypeError):
        FitOnly()
