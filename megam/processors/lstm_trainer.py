"""
🧠 LSTM sequence trainer (TensorFlow / Keras)
============================================
Architecture:
    LSTM(units, return_sequences) -> Dropout(0.2) -> LSTM(units / 2)
    -> Dropout(0.2) -> Dense(1)
Adam, MSE loss, MAE metric, 80/20 tail validation split, shuffled batches.

Saved models: {model_dir}/aqi-model-{key}.keras + {key}.json sidecar with
the scaler's per-feature min/max and training metadata.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import numpy as np
from sklearn.preprocessing import MinMaxScaler
from tensorflow.keras.callbacks import Callback
from tensorflow.keras.layers import LSTM, Dense, Dropout, Input
from tensorflow.keras.models import Sequential, load_model
from tensorflow.keras.optimizers import Adam

from megam.exceptions import TrainingFailure
from megam.models import Dataset
from megam.processors.forecast_engine import (
    ModelConfig, NormalizationParams, ProgressCallback, SequenceTrainer, TrainedModel,
    TrainingProgress, build_sequences, feature_matrix
)

logger = logging.getLogger(__name__)

DROPOUT_RATE = 0.2


def accuracy_from_mae(val_mae: float) -> float:
    """Validation MAE on the 0-1 scale as an accuracy percentage"""
    return 100 - val_mae * 100


class EpochProgress(Callback):
    """Turns Keras epoch logs into TrainingProgress updates"""

    def __init__(self, total_epochs: int, on_progress: Optional[ProgressCallback] = None):
        super().__init__()
        self.total_epochs = total_epochs
        self.on_progress = on_progress
        self.started = time.time()
        self.last: Optional[TrainingProgress] = None

    def on_epoch_end(self, epoch, logs=None):
        logs = logs or {}
        elapsed = time.time() - self.started
        per_epoch = elapsed / (epoch + 1)

        progress = TrainingProgress(
            epoch=epoch + 1,
            total_epochs=self.total_epochs,
            loss=float(logs.get('loss', 0.0)),
            val_loss=float(logs.get('val_loss', 0.0)),
            accuracy=accuracy_from_mae(float(logs.get('val_mae', 0.0))),
            estimated_time_remaining=per_epoch * (self.total_epochs - (epoch + 1)),
        )
        self.last = progress
        logger.info(f"📈 Epoch {progress.epoch}/{progress.total_epochs} - "
                    f"Loss: {progress.loss:.4f}, Val Loss: {progress.val_loss:.4f}")

        if self.on_progress is not None:
            self.on_progress(progress)


def build_lstm_model(config: ModelConfig) -> Sequential:
    model = Sequential([
        Input(shape=(config.sequence_length, config.features)),
        LSTM(config.lstm_units, return_sequences=True),
        Dropout(DROPOUT_RATE),
        LSTM(max(1, config.lstm_units // 2)),
        Dropout(DROPOUT_RATE),
        Dense(1),
    ], name="AQI_LSTM")

    model.compile(
        optimizer=Adam(learning_rate=config.learning_rate),
        loss='mse',
        metrics=['mae']
    )
    return model


class KerasSequenceTrainer(SequenceTrainer):

    def __init__(self, verbose: int = 0):
        self.verbose = verbose

    def train(self, dataset: Dataset, config: ModelConfig,
              on_progress: Optional[ProgressCallback] = None) -> TrainedModel:
        scaler = MinMaxScaler(feature_range=(0, 1))
        scaled = scaler.fit_transform(feature_matrix(dataset.points))
        normalization = NormalizationParams(scaler)
        inputs, outputs = build_sequences(scaled, config.sequence_length)

        if len(inputs) < 2:
            raise TrainingFailure(
                f"Need at least {config.sequence_length + 2} days to train "
                f"(got {dataset.total_points})"
            )

        split = int(len(inputs) * (1 - config.validation_fraction))
        split = min(max(split, 1), len(inputs) - 1)
        x_train, y_train = inputs[:split], outputs[:split]
        x_val, y_val = inputs[split:], outputs[split:]

        logger.info(f"📊 Training set: {len(x_train)} sequences, validation set: {len(x_val)}")
        logger.info(f"📐 Input shape: [{config.sequence_length}, {config.features}], output shape: [1]")

        model = build_lstm_model(config)
        progress = EpochProgress(config.epochs, on_progress)
        started = time.time()

        try:
            model.fit(
                x_train, y_train,
                validation_data=(x_val, y_val),
                epochs=config.epochs,
                batch_size=config.batch_size,
                shuffle=True,
                callbacks=[progress],
                verbose=self.verbose
            )
        except Exception as e:
            raise TrainingFailure(f"Keras training failed: {e}") from e

        logger.info(f"✅ Training complete in {time.time() - started:.1f}s")

        return TrainedModel(
            model=model,
            normalization=normalization,
            config=config,
            training_days=dataset.total_points,
            completeness=dataset.completeness,
            final_accuracy=progress.last.accuracy if progress.last else None,
            layers=len(model.layers),
            params=int(model.count_params()),
        )

    def predict(self, trained: TrainedModel, window: np.ndarray) -> float:
        batch = window.reshape(1, trained.config.sequence_length, trained.config.features)
        output = trained.model.predict(batch, verbose=0)
        return float(output[0][0])

    @staticmethod
    def _paths(directory: str, key: str):
        root = Path(directory)
        return root / f"aqi-model-{key}.keras", root / f"aqi-model-{key}.json"

    def save(self, trained: TrainedModel, directory: str, key: str) -> None:
        model_path, meta_path = self._paths(directory, key)
        model_path.parent.mkdir(parents=True, exist_ok=True)

        trained.model.save(str(model_path))
        meta_path.write_text(json.dumps({
            'normalization': trained.normalization.to_dict(),
            'config': vars(trained.config),
            'training_days': trained.training_days,
            'completeness': trained.completeness,
            'final_accuracy': trained.final_accuracy,
            'trained_at': trained.trained_at.isoformat(),
        }, indent=2))

    def load(self, directory: str, key: str) -> Optional[TrainedModel]:
        model_path, meta_path = self._paths(directory, key)
        if not model_path.exists() or not meta_path.exists():
            return None

        meta = json.loads(meta_path.read_text())
        model = load_model(str(model_path))
        return TrainedModel(
            model=model,
            normalization=NormalizationParams.from_dict(meta['normalization']),
            config=ModelConfig(**meta['config']),
            training_days=meta['training_days'],
            completeness=meta['completeness'],
            final_accuracy=meta.get('final_accuracy'),
            layers=len(model.layers),
            params=int(model.count_params()),
            trained_at=datetime.fromisoformat(meta['trained_at']),
        )
