"""Binary classifiers behind a small fit/predict contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
import math
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterator

import numpy as np
import torch
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score, log_loss
from torch import nn
from torch.utils.data import DataLoader, TensorDataset

from common.logging import get_logger

from .errors import (
    InsufficientDataError,
    MalformedInputError,
    StateSequenceError,
    TrainingCancelledError,
    TrainingDivergedError,
)

logger = get_logger("risk_server.classifier")

EpochCallback = Callable[["EpochResult"], None]
Validation = tuple[np.ndarray, np.ndarray]


@dataclass(frozen=True, slots=True)
class TrainingOptions:
    epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 0.001
    hidden_units: tuple[int, ...] = (64, 32)
    dropout: float = 0.0
    patience: int | None = None
    seed: int = 42

    def __post_init__(self) -> None:
        if self.epochs < 1:
            raise MalformedInputError("epochs must be at least 1")
        if self.batch_size < 1:
            raise MalformedInputError("batch_size must be at least 1")
        if self.learning_rate <= 0:
            raise MalformedInputError("learning_rate must be positive")
        if not 0 <= self.dropout < 1:
            raise MalformedInputError("dropout must be in [0, 1)")


@dataclass(frozen=True, slots=True)
class EpochResult:
    epoch: int
    loss: float
    accuracy: float
    val_loss: float | None = None
    val_accuracy: float | None = None


@dataclass(slots=True)
class TrainingHistory:
    epochs: list[EpochResult] = field(default_factory=list)
    stopped_early: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "epochs": [asdict(item) for item in self.epochs],
            "loss": [item.loss for item in self.epochs],
            "accuracy": [item.accuracy for item in self.epochs],
            "val_loss": [item.val_loss for item in self.epochs],
            "val_accuracy": [item.val_accuracy for item in self.epochs],
            "stopped_early": self.stopped_early,
        }

    @property
    def final(self) -> EpochResult | None:
        return self.epochs[-1] if self.epochs else None


def _check_training_data(X: np.ndarray, y: np.ndarray) -> None:
    if X.ndim != 2 or X.shape[0] == 0:
        raise InsufficientDataError("Training matrix is empty")
    if X.shape[0] != y.shape[0]:
        raise MalformedInputError("Feature and label counts differ")
    if np.unique(y).size < 2:
        raise InsufficientDataError(
            "Training labels contain a single class",
            details={"classes": [int(value) for value in np.unique(y)]},
        )


class BinaryClassifier(ABC):
    """Base contract: ``iter_fit`` yields one :class:`EpochResult` per epoch."""

    name = "base"

    @abstractmethod
    def iter_fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        options: TrainingOptions,
        *,
        validation: Validation | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[EpochResult]:
        raise NotImplementedError

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    @property
    def stopped_early(self) -> bool:
        return False

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        options: TrainingOptions,
        *,
        validation: Validation | None = None,
        cancel: threading.Event | None = None,
        on_epoch: EpochCallback | None = None,
    ) -> TrainingHistory:
        history = TrainingHistory()
        for result in self.iter_fit(X, y, options, validation=validation, cancel=cancel):
            history.epochs.append(result)
            if on_epoch is not None:
                on_epoch(result)
        history.stopped_early = self.stopped_early
        return history


class TorchMLPClassifier(BinaryClassifier):
    """Feed-forward network with ReLU hidden layers and a sigmoid output."""

    name = "torch_mlp"

    def __init__(self) -> None:
        self.model: nn.Module | None = None
        self._stopped_early = False

    @property
    def stopped_early(self) -> bool:
        return self._stopped_early

    @staticmethod
    def _build_model(input_dim: int, options: TrainingOptions) -> nn.Module:
        layers: list[nn.Module] = []
        in_dim = input_dim
        for hidden in options.hidden_units:
            layers.extend([nn.Linear(in_dim, hidden), nn.ReLU()])
            if options.dropout:
                layers.append(nn.Dropout(options.dropout))
            in_dim = hidden
        layers.extend([nn.Linear(in_dim, 1), nn.Sigmoid()])
        return nn.Sequential(*layers)

    @staticmethod
    def _forward_checked(model: nn.Module, batch: torch.Tensor, epoch: int) -> torch.Tensor:
        output = model(batch)
        if not torch.isfinite(output).all():
            raise TrainingDivergedError(f"Network output became non-finite in epoch {epoch}")
        return output

    def _score(self, X: torch.Tensor, y: torch.Tensor, criterion: nn.Module, epoch: int) -> tuple[float, float]:
        assert self.model is not None
        self.model.eval()
        with torch.no_grad():
            output = self._forward_checked(self.model, X, epoch)
            loss = float(criterion(output, y).item())
            accuracy = float(((output >= 0.5).float() == y).float().mean().item())
        return loss, accuracy

    def iter_fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        options: TrainingOptions,
        *,
        validation: Validation | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[EpochResult]:
        X = np.asarray(X, dtype=np.float32)
        y = np.asarray(y)
        _check_training_data(X, y)
        torch.manual_seed(options.seed)
        self._stopped_early = False

        X_tensor = torch.tensor(X, dtype=torch.float32)
        y_tensor = torch.tensor(y, dtype=torch.float32).view(-1, 1)
        val_tensors = None
        if validation is not None and len(validation[0]):
            val_tensors = (
                torch.tensor(np.asarray(validation[0]), dtype=torch.float32),
                torch.tensor(np.asarray(validation[1]), dtype=torch.float32).view(-1, 1),
            )

        self.model = self._build_model(X_tensor.shape[1], options)
        optimizer = torch.optim.Adam(self.model.parameters(), lr=options.learning_rate)
        criterion = nn.BCELoss()
        generator = torch.Generator().manual_seed(options.seed)
        loader = DataLoader(
            TensorDataset(X_tensor, y_tensor),
            batch_size=options.batch_size,
            shuffle=True,
            generator=generator,
        )

        best_val_loss = math.inf
        stale_epochs = 0
        for epoch in range(1, options.epochs + 1):
            if cancel is not None and cancel.is_set():
                raise TrainingCancelledError(f"Training cancelled before epoch {epoch}")
            self.model.train()
            for batch_X, batch_y in loader:
                optimizer.zero_grad()
                output = self._forward_checked(self.model, batch_X, epoch)
                loss = criterion(output, batch_y)
                if not torch.isfinite(loss):
                    raise TrainingDivergedError(f"Loss became non-finite in epoch {epoch}")
                loss.backward()
                optimizer.step()

            train_loss, train_accuracy = self._score(X_tensor, y_tensor, criterion, epoch)
            val_loss = val_accuracy = None
            if val_tensors is not None:
                val_loss, val_accuracy = self._score(*val_tensors, criterion, epoch)
            result = EpochResult(epoch, train_loss, train_accuracy, val_loss, val_accuracy)
            logger.debug("epoch %d/%d loss=%.4f acc=%.4f", epoch, options.epochs, train_loss, train_accuracy)
            yield result

            if options.patience and val_loss is not None:
                if val_loss < best_val_loss:
                    best_val_loss = val_loss
                    stale_epochs = 0
                else:
                    stale_epochs += 1
                if stale_epochs >= options.patience:
                    logger.info("early stopping after epoch %d", epoch)
                    self._stopped_early = True
                    return

    def predict(self, X: np.ndarray) -> np.ndarray:
        if self.model is None:
            raise StateSequenceError("Model not trained")
        self.model.eval()
        with torch.no_grad():
            output = self.model(torch.tensor(np.asarray(X, dtype=np.float32)))
        return output.cpu().numpy().astype(np.float64).ravel()


class LogisticRegressionClassifier(BinaryClassifier):
    """scikit-learn logistic regression; one history entry per fit."""

    name = "logreg"

    def __init__(self) -> None:
        self.model: LogisticRegression | None = None

    def iter_fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        options: TrainingOptions,
        *,
        validation: Validation | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[EpochResult]:
        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y)
        _check_training_data(X, y)
        if cancel is not None and cancel.is_set():
            raise TrainingCancelledError("Training cancelled before it started")
        self.model = LogisticRegression(max_iter=max(100, options.epochs * 10), random_state=options.seed)
        self.model.fit(X, y)

        probabilities = self.predict(X)
        loss = float(log_loss(y, probabilities, labels=[0, 1]))
        accuracy = float(accuracy_score(y, probabilities >= 0.5))
        val_loss = val_accuracy = None
        if validation is not None and len(validation[0]):
            val_probabilities = self.predict(validation[0])
            val_loss = float(log_loss(validation[1], val_probabilities, labels=[0, 1]))
            val_accuracy = float(accuracy_score(validation[1], val_probabilities >= 0.5))
        yield EpochResult(1, loss, accuracy, val_loss, val_accuracy)

    def predict(self, X: np.ndarray) -> np.ndarray:
        if self.model is None:
            raise StateSequenceError("Model not trained")
        return self.model.predict_proba(np.asarray(X, dtype=np.float64))[:, 1].astype(np.float64)


_CLASSIFIERS: dict[str, Callable[[], BinaryClassifier]] = {
    TorchMLPClassifier.name: TorchMLPClassifier,
    LogisticRegressionClassifier.name: LogisticRegressionClassifier,
}


def available_algorithms() -> list[dict[str, str]]:
    return [
        {"id": TorchMLPClassifier.name, "label": "Neural network (PyTorch, CPU)", "provider": "pytorch"},
        {"id": LogisticRegressionClassifier.name, "label": "Logistic regression", "provider": "sklearn"},
    ]


def build_classifier(algo: str) -> BinaryClassifier:
    factory = _CLASSIFIERS.get(algo)
    if factory is None:
        raise MalformedInputError(f"Unsupported algorithm '{algo}'", details={"choices": sorted(_CLASSIFIERS)})
    return factory()


__all__ = [
    "BinaryClassifier",
    "EpochResult",
    "LogisticRegressionClassifier",
    "TorchMLPClassifier",
    "TrainingHistory",
    "TrainingOptions",
    "available_algorithms",
    "build_classifier",
]
