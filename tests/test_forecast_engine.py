import json
import random
from datetime import timedelta

import numpy as np
import pytest
from sklearn.preprocessing import MinMaxScaler

from megam.collectors.historical_collector import HistoricalDataCollector
from megam.exceptions import InsufficientHistory, TrainingFailure
from megam.models import GROUND_STATION, Reading
from megam.processors.forecast_engine import (
    ForecastEngine, ModelConfig, ModelRegistry, NormalizationParams, SequenceForecaster,
    SequenceTrainer, StatisticalForecaster, TrainedModel, TrainingProgress, build_sequences,
    feature_matrix, get_hourly_outlook, record_prediction_accuracy
)

from conftest import FIXED_NOW, TODAY, FakeHistory, daily_points


class FakeTrainer(SequenceTrainer):
    """Persistence model: tomorrow looks like the last day of the window"""

    def __init__(self, fail_training=False, fail_predict=False):
        self.fail_training = fail_training
        self.fail_predict = fail_predict
        self.trained = 0
        self.saved = {}

    def train(self, dataset, config, on_progress=None):
        self.trained += 1
        if self.fail_training:
            raise RuntimeError("optimizer exploded")
        if on_progress is not None:
            on_progress(TrainingProgress(1, 1, 0.02, 0.03, 97.0, 0.0))
        matrix = feature_matrix(dataset.points)
        return TrainedModel(
            model='persistence',
            normalization=NormalizationParams.fit(matrix),
            config=config,
            training_days=dataset.total_points,
            completeness=dataset.completeness,
            final_accuracy=97.0,
            layers=5,
            params=1234,
        )

    def predict(self, trained, window):
        if self.fail_predict:
            raise RuntimeError("bad tensor shape")
        return float(window[-1][0])

    def save(self, trained, directory, key):
        self.saved[(directory, key)] = trained

    def load(self, directory, key):
        return self.saved.get((directory, key))


def _current(index=120):
    return Reading(lat=23.81, lng=90.41, index=index, pollutants=(), provenance=GROUND_STATION,
                   confidence=95, timestamp=FIXED_NOW, city='Dhaka', country='Bangladesh')


def _history(days=30):
    points = daily_points(TODAY - timedelta(days=days - 1), [40 + i for i in range(days)], pm25=12.0)
    return HistoricalDataCollector(ground_source=FakeHistory(points), today=lambda: TODAY)


def _engine(trainer, history=None, registry=None):
    return ForecastEngine(
        history=history or _history(),
        statistical=StatisticalForecaster(random.Random(7)),
        sequence=SequenceForecaster(trainer, ModelConfig(epochs=1)),
        registry=registry or ModelRegistry(trainer),
        training_days=30,
        today=lambda: TODAY,
    )


def _non_increasing(values):
    return all(a >= b for a, b in zip(values, values[1:]))


class TestStatistical:

    def test_trend_thresholds(self):
        assert StatisticalForecaster.detect_trend(30) == 'improving'
        assert StatisticalForecaster.detect_trend(100) == 'stable'
        assert StatisticalForecaster.detect_trend(180) == 'worsening'

    def test_confidence_decays_to_floor(self):
        predictions = StatisticalForecaster(random.Random(1)).forecast(120, 14, TODAY)

        confidences = [p.confidence for p in predictions]
        assert confidences[:3] == [82, 79, 76]
        assert confidences[-1] == 50
        assert _non_increasing(confidences)
        assert predictions[0].date == (TODAY + timedelta(days=1)).isoformat()
        assert all(0 <= p.predicted_index <= 500 for p in predictions)

    def test_clamped_value_carries_into_next_day(self):
        class ScriptedJitter:
            def __init__(self, values):
                self.values = list(values)

            def uniform(self, low, high):
                return self.values.pop(0)

        forecaster = StatisticalForecaster(ScriptedJitter([-2.5, -2.5, 2.4]))

        predictions = forecaster.forecast(1, 3, TODAY)

        # Day 3 starts from 0, not from a negative carried value
        assert [p.predicted_index for p in predictions] == [0, 0, 2]

    def test_statistical_only_request(self):
        engine = _engine(FakeTrainer())

        result = engine.get_forecast(23.81, 90.41, _current(), days=5, use_trained_model=False)

        assert len(result.predictions) == 5
        assert result.model_info.is_real_ml is False
        assert result.needs_training is False
        assert engine.sequence.trainer.trained == 0


class TestSequenceForecast:

    def test_trains_once_then_reuses_model(self):
        trainer = FakeTrainer()
        engine = _engine(trainer)
        progress = []

        first = engine.get_forecast(23.81, 90.41, _current(), days=7, on_progress=progress.append)
        second = engine.get_forecast(23.812, 90.409, _current(), days=7)

        assert trainer.trained == 1
        assert first.needs_training is True
        assert second.needs_training is False
        assert first.model_info.is_real_ml is True
        assert first.model_info.training_days == 30
        assert first.model_info.accuracy == 76
        assert first.training_progress.epoch == 1
        assert len(progress) == 1

    def test_walk_forward_predictions(self):
        result = _engine(FakeTrainer()).get_forecast(23.81, 90.41, _current(), days=20)

        confidences = [p.confidence for p in result.predictions]
        assert confidences[0] == 87
        assert confidences[-1] == 40
        assert _non_increasing(confidences)
        assert [p.uncertainty for p in result.predictions[:3]] == [7, 9, 11]
        # Persistence model repeats the last observed index (69)
        assert result.predictions[0].predicted_index == 69
        assert result.predictions[0].trend == 'stable'
        assert result.predictions[0].factors[0] == 'LSTM neural network prediction'

    def test_short_history_falls_back(self):
        empty_history = HistoricalDataCollector(ground_source=FakeHistory(), today=lambda: TODAY)
        engine = _engine(FakeTrainer(), history=empty_history)

        result = engine.get_forecast(23.81, 90.41, _current(), days=3)

        assert result.model_info.is_real_ml is False
        assert result.needs_training is True
        assert len(result.predictions) == 3

    def test_fewer_than_three_days_is_insufficient(self):
        with pytest.raises(InsufficientHistory):
            SequenceForecaster(FakeTrainer()).train(_tiny_dataset())

    def test_training_failure_falls_back(self):
        result = _engine(FakeTrainer(fail_training=True)).get_forecast(23.81, 90.41, _current(), days=3)

        assert result.model_info.is_real_ml is False
        assert result.needs_training is True

    def test_cached_model_that_fails_is_discarded(self):
        trainer = FakeTrainer()
        registry = ModelRegistry(trainer)
        engine = _engine(trainer, registry=registry)
        engine.get_forecast(23.81, 90.41, _current(), days=3)
        assert registry.get('23.81_90.41') is not None

        trainer.fail_predict = True
        result = engine.get_forecast(23.81, 90.41, _current(), days=3)

        assert result.model_info.is_real_ml is False
        assert registry.get('23.81_90.41') is None

    def test_rejects_non_positive_horizon(self):
        with pytest.raises(ValueError):
            _engine(FakeTrainer()).get_forecast(23.81, 90.41, _current(), days=0)


def _tiny_dataset():
    return _history(days=2).get_dataset(1.0, 2.0, days=2)


def test_sequence_forecaster_wraps_backend_errors():
    forecaster = SequenceForecaster(FakeTrainer(fail_training=True))
    with pytest.raises(TrainingFailure):
        forecaster.train(_history().get_dataset(1.0, 2.0, days=30))


def test_registry_reloads_from_model_dir():
    trainer = FakeTrainer()
    trained = trainer.train(_history().get_dataset(1.0, 2.0, days=30), ModelConfig())

    ModelRegistry(trainer, model_dir='/models').put('1.00_2.00', trained)
    fresh = ModelRegistry(trainer, model_dir='/models')

    assert fresh.get('1.00_2.00') is trained


def test_normalization_handles_constant_columns():
    matrix = np.array([[10.0, 5.0], [20.0, 5.0], [30.0, 5.0]])
    params = NormalizationParams.fit(matrix)

    normalized = params.normalize(matrix)

    assert isinstance(params.scaler, MinMaxScaler)
    assert normalized[:, 0].tolist() == pytest.approx([0.0, 0.5, 1.0])
    assert normalized[:, 1].tolist() == [0.0, 0.0, 0.0]
    assert params.denormalize_index(0.5) == pytest.approx(20.0)


def test_normalization_survives_a_json_round_trip():
    params = NormalizationParams.fit(np.array([[40.0, 12.0], [69.0, 12.0], [55.0, 3.0]]))

    restored = NormalizationParams.from_dict(json.loads(json.dumps(params.to_dict())))

    assert params.to_dict() == {'data_min': [40.0, 3.0], 'data_max': [69.0, 12.0]}
    assert restored == params
    assert restored.denormalize_index(1.0) == pytest.approx(69.0)


def test_build_sequences_shapes():
    matrix = np.arange(70, dtype=float).reshape(10, 7)

    inputs, outputs = build_sequences(matrix, 7)

    assert inputs.shape == (3, 7, 7)
    assert outputs.shape == (3, 1)
    assert outputs[0][0] == matrix[7][0]


def test_hourly_outlook():
    outlook = get_hourly_outlook(100)

    assert len(outlook) == 24
    assert outlook[0] == {'hour': 0, 'aqi': 100}
    assert outlook[6]['aqi'] == 110
    assert outlook[18]['aqi'] == 90
    assert all(0 <= h['aqi'] <= 500 for h in get_hourly_outlook(495))


def test_record_prediction_accuracy():
    record = record_prediction_accuracy(110, 100, 'Dhaka')
    assert record['error'] == 10
    assert record['error_percent'] == 10.0
    assert record_prediction_accuracy(5, 0)['error_percent'] is None
