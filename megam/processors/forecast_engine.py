"""
🔮 AIR QUALITY FORECAST ENGINE
=============================
Two forecasters behind one result shape (predictions + model info +
needs-training flag):

STATISTICAL (always available, instant):
- trend from the current index: <50 improving (×0.96), >150 worsening (×1.04)
- season: Dec-Feb ×1.10, Jun-Aug ×0.92
- ±2.5 jitter, confidence 85 - 3/day (floor 50)

TRAINED SEQUENCE MODEL (per location, trained lazily, reused):
- 7-day windows of [index, PM2.5, PM10, O3, NO2, SO2, CO], min-max scaled
- walk-forward: predict next day, append it (pollutants as fixed fractions
  of the predicted index), repeat
- confidence 90 - 3/day (floor 40), uncertainty 5 + 2/day (cap 50)
- fewer than 3 days, training or prediction failure -> statistical fallback
"""

import logging
import math
import random
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
from sklearn.preprocessing import MinMaxScaler

from megam.collectors.historical_collector import HistoricalDataCollector
from megam.exceptions import InsufficientHistory, TrainingFailure
from megam.models import INDEX_MAX, INDEX_MIN, Dataset, HistoricalPoint, Prediction, Reading, clamp_index
from megam.utils.cache import CacheStore, InMemoryTTLCache
from megam.utils.geo import location_key

logger = logging.getLogger(__name__)

TREND_THRESHOLD_PERCENT = 5.0

# Statistical forecaster
IMPROVING_BELOW = 50
WORSENING_ABOVE = 150
TREND_FACTORS = {'improving': 0.96, 'stable': 1.0, 'worsening': 1.04}
WINTER_MONTHS = (12, 1, 2)
SUMMER_MONTHS = (6, 7, 8)
WINTER_FACTOR = 1.10
SUMMER_FACTOR = 0.92
JITTER = 2.5
STATISTICAL_BASE_CONFIDENCE = 85
STATISTICAL_MIN_CONFIDENCE = 50
STATISTICAL_ACCURACY = 75
CONFIDENCE_STEP = 3

# Sequence forecaster
MIN_FORECAST_POINTS = 3
SEQUENCE_BASE_CONFIDENCE = 90
SEQUENCE_MIN_CONFIDENCE = 40
BASE_UNCERTAINTY = 5
UNCERTAINTY_STEP = 2
MAX_UNCERTAINTY = 50
# Pollutants of a predicted day as fractions of its index (PM2.5, PM10, O3, NO2, SO2, CO)
SYNTHETIC_POLLUTANT_FRACTIONS = (0.5, 0.7, 0.3, 0.2, 0.1, 0.4)


@dataclass
class ModelConfig:
    sequence_length: int = 7
    features: int = 7
    lstm_units: int = 64
    epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 0.001
    validation_fraction: float = 0.2


@dataclass
class TrainingProgress:
    """Reported once per epoch while a model trains"""
    epoch: int
    total_epochs: int
    loss: float
    val_loss: float
    accuracy: float
    estimated_time_remaining: float     # seconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NormalizationParams:
    """Per-feature min-max scaling fitted on the training data"""

    def __init__(self, scaler: MinMaxScaler):
        self.scaler = scaler

    @classmethod
    def fit(cls, matrix: np.ndarray) -> "NormalizationParams":
        return cls(MinMaxScaler(feature_range=(0, 1)).fit(matrix))

    def normalize(self, matrix: np.ndarray) -> np.ndarray:
        return self.scaler.transform(matrix)

    def denormalize_index(self, value: float) -> float:
        # inverse_transform needs a full feature row; only the index column matters
        dummy = np.zeros((1, self.scaler.n_features_in_))
        dummy[0, 0] = value
        return float(self.scaler.inverse_transform(dummy)[0, 0])

    def to_dict(self) -> Dict[str, List[float]]:
        return {'data_min': self.scaler.data_min_.tolist(), 'data_max': self.scaler.data_max_.tolist()}

    @classmethod
    def from_dict(cls, data: Dict[str, List[float]]) -> "NormalizationParams":
        # Fitting on the two extreme rows restores data_min_ / data_max_ exactly
        return cls.fit(np.array([data['data_min'], data['data_max']], dtype=float))

    def __eq__(self, other):
        if not isinstance(other, NormalizationParams):
            return NotImplemented
        return self.to_dict() == other.to_dict()


@dataclass
class TrainedModel:
    """A fitted sequence model plus what is needed to use and describe it"""
    model: Any
    normalization: NormalizationParams
    config: ModelConfig
    training_days: int
    completeness: float
    final_accuracy: Optional[float] = None
    layers: Optional[int] = None
    params: Optional[int] = None
    trained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ModelInfo:
    algorithm: str
    trained_on: str
    accuracy: float
    is_real_ml: bool
    data_source: Optional[str] = None
    training_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ForecastResult:
    predictions: List[Prediction]
    model_info: ModelInfo
    needs_training: bool
    current_index: Optional[int] = None
    training_progress: Optional[TrainingProgress] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'predictions': [p.to_dict() for p in self.predictions],
            'model_info': self.model_info.to_dict(),
            'needs_training': self.needs_training,
            'current_index': self.current_index,
            'training_progress': self.training_progress.to_dict() if self.training_progress else None,
        }


ProgressCallback = Callable[[TrainingProgress], None]


def feature_matrix(points: Sequence[HistoricalPoint]) -> np.ndarray:
    return np.array([p.feature_vector() for p in points], dtype=float)


def build_sequences(matrix: np.ndarray, sequence_length: int):
    """
    Sliding windows over a normalized matrix

    Returns:
        (X, y) with X shaped (n, sequence_length, features) and y shaped
        (n, 1) holding the next day's normalized index
    """
    inputs, outputs = [], []
    for start in range(len(matrix) - sequence_length):
        inputs.append(matrix[start:start + sequence_length])
        outputs.append([matrix[start + sequence_length][0]])
    return np.array(inputs), np.array(outputs)


def day_trend(value: float, previous: float) -> str:
    if not previous:
        return 'stable'
    change = (value - previous) / previous * 100
    if change < -TREND_THRESHOLD_PERCENT:
        return 'improving'
    if change > TREND_THRESHOLD_PERCENT:
        return 'worsening'
    return 'stable'


def seasonal_factor(day: date) -> float:
    if day.month in WINTER_MONTHS:
        return WINTER_FACTOR
    if day.month in SUMMER_MONTHS:
        return SUMMER_FACTOR
    return 1.0


def season_factor_label(day: date) -> Optional[str]:
    if day.month in WINTER_MONTHS:
        return 'Winter season (typically 10% higher pollution)'
    if day.month in SUMMER_MONTHS:
        return 'Summer season (typically 8% lower pollution)'
    return None


def trend_factor_label(trend: str) -> Optional[str]:
    if trend == 'improving':
        return 'Current trend shows improvement'
    if trend == 'worsening':
        return 'Current trend shows degradation'
    return None


class SequenceTrainer(ABC):
    """Numeric backend for the trained forecaster"""

    @abstractmethod
    def train(self, dataset: Dataset, config: ModelConfig,
              on_progress: Optional[ProgressCallback] = None) -> TrainedModel:
        """Fit a model on the dataset's sliding windows; raises TrainingFailure"""

    @abstractmethod
    def predict(self, trained: TrainedModel, window: np.ndarray) -> float:
        """Normalized next-day index for one normalized (sequence_length, features) window"""

    def save(self, trained: TrainedModel, directory: str, key: str) -> None:
        """Persist a model; backends without storage keep models in memory only"""

    def load(self, directory: str, key: str) -> Optional[TrainedModel]:
        return None


class StatisticalForecaster:
    """Seasonal + trend heuristic, no training"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @staticmethod
    def detect_trend(current_index: float) -> str:
        if current_index < IMPROVING_BELOW:
            return 'improving'
        if current_index > WORSENING_ABOVE:
            return 'worsening'
        return 'stable'

    def forecast(self, current_index: float, days: int, start: date) -> List[Prediction]:
        trend = self.detect_trend(current_index)
        factor = TREND_FACTORS[trend]
        value = float(current_index)
        previous = float(current_index)

        predictions = []
        for day in range(1, days + 1):
            future = start + timedelta(days=day)
            value = value * factor * seasonal_factor(future) + self.rng.uniform(-JITTER, JITTER)
            value = min(float(INDEX_MAX), max(float(INDEX_MIN), value))
            predicted = clamp_index(value)
            confidence = max(STATISTICAL_MIN_CONFIDENCE, STATISTICAL_BASE_CONFIDENCE - CONFIDENCE_STEP * day)

            factors = ['Statistical pattern prediction']
            factors += [label for label in (season_factor_label(future), trend_factor_label(trend)) if label]
            if confidence < 70:
                factors.append('Confidence decreases for longer forecasts')

            predictions.append(Prediction(
                date=future.isoformat(),
                predicted_index=predicted,
                confidence=confidence,
                trend=day_trend(predicted, previous),
                factors=tuple(factors),
            ))
            previous = predicted

        return predictions


class SequenceForecaster:
    """Trains per-location sequence models and walks them forward"""

    def __init__(self, trainer: SequenceTrainer, config: Optional[ModelConfig] = None):
        self.trainer = trainer
        self.config = config or ModelConfig()

    def train(self, dataset: Dataset, on_progress: Optional[ProgressCallback] = None) -> TrainedModel:
        if dataset.total_points < MIN_FORECAST_POINTS:
            raise InsufficientHistory(MIN_FORECAST_POINTS, dataset.total_points, "forecasting")
        try:
            return self.trainer.train(dataset, self.config, on_progress)
        except TrainingFailure:
            raise
        except Exception as e:
            raise TrainingFailure(f"Model training failed: {e}") from e

    def forecast(self, trained: TrainedModel, points: Sequence[HistoricalPoint], days: int,
                 start: date) -> List[Prediction]:
        """
        Walk-forward forecast from the most recent points

        Raises:
            InsufficientHistory: fewer than 3 points
            TrainingFailure: the backend failed to predict
        """
        if len(points) < MIN_FORECAST_POINTS:
            raise InsufficientHistory(MIN_FORECAST_POINTS, len(points), "forecasting")

        length = self.config.sequence_length
        window = [list(row) for row in feature_matrix(points[-length:])]
        # Short histories repeat their first day to fill the window
        while len(window) < length:
            window.insert(0, list(window[0]))

        previous = float(points[-1].index)
        predictions = []

        for day in range(1, days + 1):
            normalized = trained.normalization.normalize(np.array(window, dtype=float))
            try:
                raw = self.trainer.predict(trained, normalized)
            except Exception as e:
                raise TrainingFailure(f"Prediction failed on day {day}: {e}") from e

            value = float(trained.normalization.denormalize_index(raw))
            if not math.isfinite(value):
                raise TrainingFailure(f"Model produced a non-finite value on day {day}")

            predicted = clamp_index(value)
            confidence = max(SEQUENCE_MIN_CONFIDENCE, SEQUENCE_BASE_CONFIDENCE - CONFIDENCE_STEP * day)
            uncertainty = min(MAX_UNCERTAINTY, BASE_UNCERTAINTY + UNCERTAINTY_STEP * day)
            trend = day_trend(predicted, previous)
            future = start + timedelta(days=day)

            factors = [
                'LSTM neural network prediction',
                f'Trained on {trained.training_days} days ({trained.completeness}% real data)',
                f'Uncertainty: ±{uncertainty} AQI',
            ]
            factors += [label for label in (trend_factor_label(trend), season_factor_label(future)) if label]
            if confidence < 60:
                factors.append('Limited historical data available')

            predictions.append(Prediction(
                date=future.isoformat(),
                predicted_index=predicted,
                confidence=confidence,
                trend=trend,
                factors=tuple(factors),
                uncertainty=uncertainty,
            ))

            window = window[1:] + [[float(predicted)] + [predicted * f for f in SYNTHETIC_POLLUTANT_FRACTIONS]]
            previous = predicted

        return predictions


class ModelRegistry:
    """
    Trained models keyed by rounded coordinates

    In memory with LRU eviction; optionally mirrored to a directory so
    models survive restarts.
    """

    def __init__(self, trainer: SequenceTrainer, cache: Optional[CacheStore] = None,
                 model_dir: Optional[str] = None):
        self.trainer = trainer
        self.cache = cache if cache is not None else InMemoryTTLCache(max_entries=16)
        self.model_dir = model_dir

    def get(self, key: str) -> Optional[TrainedModel]:
        trained = self.cache.get(key)
        if trained is not None:
            return trained

        if self.model_dir:
            try:
                trained = self.trainer.load(self.model_dir, key)
            except Exception as e:
                logger.warning(f"⚠️ Could not load saved model {key}: {e}")
                trained = None
            if trained is not None:
                logger.info(f"📦 Model loaded from {self.model_dir} for {key}")
                self.cache.set(key, trained)
        return trained

    def put(self, key: str, trained: TrainedModel) -> None:
        self.cache.set(key, trained)
        if self.model_dir:
            try:
                self.trainer.save(trained, self.model_dir, key)
                logger.info(f"💾 Model saved for {key}")
            except Exception as e:
                logger.error(f"❌ Failed to save model {key}: {e}")

    def discard(self, key: str) -> None:
        self.cache.delete(key)


class ForecastEngine:
    """
    Forecast entry point

    Args:
        history: Collector providing the training Dataset
        statistical: Fallback forecaster
        sequence: Trained forecaster, optional
        registry: Trained model store, required with `sequence`
        training_days: History window used for training
        today: Callable returning the day forecasts start after
    """

    def __init__(self, history: HistoricalDataCollector,
                 statistical: Optional[StatisticalForecaster] = None,
                 sequence: Optional[SequenceForecaster] = None,
                 registry: Optional[ModelRegistry] = None,
                 training_days: int = 180,
                 today: Callable[[], date] = lambda: datetime.now(timezone.utc).date()):
        self.history = history
        self.statistical = statistical or StatisticalForecaster()
        self.sequence = sequence
        self.registry = registry
        self.training_days = training_days
        self.today = today

    def _statistical_result(self, current_index: int, days: int, needs_training: bool) -> ForecastResult:
        return ForecastResult(
            predictions=self.statistical.forecast(current_index, days, self.today()),
            model_info=ModelInfo(
                algorithm='Statistical Pattern Analysis (Fast Mode)',
                trained_on='Historical patterns and seasonal trends',
                accuracy=STATISTICAL_ACCURACY,
                is_real_ml=False,
            ),
            needs_training=needs_training,
            current_index=current_index,
        )

    def get_forecast(self, lat: float, lng: float, current: Reading, days: int = 7,
                     use_trained_model: bool = True,
                     on_progress: Optional[ProgressCallback] = None) -> ForecastResult:
        """
        Forecast `days` days ahead

        Never raises for missing history or model problems; those degrade to
        the statistical forecaster with is_real_ml False.
        """
        if days < 1:
            raise ValueError(f"days must be positive, got {days}")

        if not use_trained_model or self.sequence is None or self.registry is None:
            logger.info(f"⚡ Statistical {days}-day forecast for {current.city or location_key(lat, lng)}")
            return self._statistical_result(current.index, days, needs_training=False)

        key = location_key(lat, lng)
        trained = self.registry.get(key)
        needs_training = trained is None
        last_progress = []

        def track(progress: TrainingProgress):
            last_progress[:] = [progress]
            if on_progress is not None:
                on_progress(progress)

        try:
            dataset = self.history.get_dataset(lat, lng, self.training_days, current.city, current.country)
            if trained is None:
                logger.info(f"🏋️ No model for {key}, training on {dataset.total_points} days...")
                trained = self.sequence.train(dataset, track)
                self.registry.put(key, trained)
            else:
                logger.info(f"📦 Using cached trained model for {key}")

            predictions = self.sequence.forecast(trained, dataset.points, days, self.today())
        except (InsufficientHistory, TrainingFailure) as e:
            logger.warning(f"⚠️ Falling back to statistical forecast: {e}")
            if isinstance(e, TrainingFailure) and not needs_training:
                self.registry.discard(key)
            return self._statistical_result(current.index, days, needs_training=True)

        layers = f"{trained.layers} layers, {trained.params} params" if trained.layers else "stacked"
        return ForecastResult(
            predictions=predictions,
            model_info=ModelInfo(
                algorithm=f'TensorFlow Keras LSTM ({layers})',
                trained_on=f'{trained.training_days} days of real historical data',
                accuracy=max(SEQUENCE_MIN_CONFIDENCE, SEQUENCE_BASE_CONFIDENCE - 2 * days),
                is_real_ml=True,
                data_source=f'OpenAQ + NASA POWER ({trained.completeness}% real measurements)',
                training_days=trained.training_days,
            ),
            needs_training=needs_training,
            current_index=current.index,
            training_progress=last_progress[0] if last_progress else None,
        )


def get_hourly_outlook(current_index: float) -> List[Dict[str, int]]:
    """24-hour diurnal outlook: sinusoidal ±10 around the current index"""
    return [
        {'hour': hour, 'aqi': clamp_index(current_index + math.sin(hour / 24 * math.pi * 2) * 10)}
        for hour in range(24)
    ]


def record_prediction_accuracy(predicted: float, actual: float, location: str = "") -> Dict[str, Any]:
    """Absolute and percentage error of a past prediction"""
    error = abs(predicted - actual)
    error_percent = round(error / actual * 100, 1) if actual else None

    logger.info(f"📊 Prediction accuracy for {location or 'location'}: predicted {predicted}, "
                f"actual {actual}, error {error}"
                + (f" ({error_percent:.1f}%)" if error_percent is not None else ""))
    return {
        'location': location,
        'predicted': predicted,
        'actual': actual,
        'error': error,
        'error_percent': error_percent,
        'recorded_at': datetime.now(timezone.utc).isoformat(),
    }
