"""
🎯 AIR QUALITY SERVICE
=====================
In-process entry point for callers (the HTTP layer, scripts, notebooks):
current reading, historical dataset, analytics and forecast for a point.

The analytics and forecast paths only ever see the historical collector's
Dataset; they never talk to providers directly.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from megam.aws.s3_cache import S3JsonCache
from megam.collectors.geocoding import NominatimGeocoder
from megam.collectors.historical_collector import HistoricalDataCollector
from megam.collectors.iqair_collector import IQAirCollector
from megam.collectors.nasa_power_collector import NASAPowerCollector
from megam.collectors.openaq_collector import OpenAQCollector
from megam.collectors.waqi_collector import WAQICollector
from megam.models import Dataset, Reading
from megam.processors import analytics_engine
from megam.processors.analytics_engine import PointsLike
from megam.processors.forecast_engine import (
    ForecastEngine, ForecastResult, ModelConfig, ModelRegistry, ProgressCallback,
    SequenceForecaster, StatisticalForecaster, get_hourly_outlook
)
from megam.processors.fusion_engine import FusionEngine
from megam.utils.cache import CacheStore, InMemoryTTLCache
from megam.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


class AirQualityService:
    """Facade over fusion, history, analytics and forecasting"""

    def __init__(self, fusion: FusionEngine, history: HistoricalDataCollector,
                 forecast: ForecastEngine, geocoder=None, history_days: int = 180):
        self.fusion = fusion
        self.history = history
        self.forecast = forecast
        self.geocoder = geocoder
        self.history_days = history_days

    def get_current_reading(self, lat: float, lng: float, city_hint: Optional[str] = None,
                            country_hint: Optional[str] = None) -> Reading:
        return self.fusion.get_current_reading(lat, lng, city_hint, country_hint)

    def get_historical_dataset(self, lat: float, lng: float, days: Optional[int] = None,
                               city_hint: Optional[str] = None,
                               country_hint: Optional[str] = None) -> Dataset:
        return self.history.get_dataset(lat, lng, days or self.history_days, city_hint, country_hint)

    def get_weekly_analysis(self, data: PointsLike, end_day: Optional[date] = None):
        return analytics_engine.analyze_weekly(data, end_day)

    def get_monthly_analysis(self, data: PointsLike):
        return analytics_engine.analyze_monthly(data)

    def get_yearly_analysis(self, data: PointsLike):
        return analytics_engine.analyze_yearly(data)

    def get_pollutant_trend(self, data: PointsLike, pollutant: Optional[str] = None):
        """One pollutant's trend, or every pollutant's when none is named"""
        if pollutant:
            return analytics_engine.analyze_pollutant_trend(data, pollutant)
        return analytics_engine.analyze_pollutant_trends(data)

    def get_quick_summary(self, data: PointsLike):
        return analytics_engine.get_quick_summary(data)

    def get_forecast(self, lat: float, lng: float, current: Optional[Reading] = None, days: int = 7,
                     use_trained_model: bool = True,
                     on_progress: Optional[ProgressCallback] = None) -> ForecastResult:
        if current is None:
            current = self.get_current_reading(lat, lng)
        return self.forecast.get_forecast(lat, lng, current, days, use_trained_model, on_progress)

    def get_hourly_outlook(self, current: Reading) -> List[Dict[str, int]]:
        return get_hourly_outlook(current.index)

    def search_location(self, query: str) -> Dict[str, Any]:
        """Geocode a place name and fetch its current reading"""
        if self.geocoder is None:
            raise ValueError("No geocoder configured")

        place = self.geocoder.forward(query)
        logger.info(f"🔍 '{query}' -> {place['city']}, {place['country']}")
        reading = self.get_current_reading(place['lat'], place['lng'], place['city'], place['country'])
        return {'place': place, 'reading': reading}


def _history_cache(settings: Settings) -> CacheStore:
    ttl_seconds = settings.history_cache_ttl_hours * 3600
    if settings.cache_backend == 's3':
        if not settings.cache_s3_bucket:
            raise ValueError("CACHE_BACKEND=s3 requires CACHE_S3_BUCKET")
        logger.info(f"☁️ History cache: s3://{settings.cache_s3_bucket}/aqi-history")
        return S3JsonCache(
            bucket=settings.cache_s3_bucket,
            prefix='aqi-history',
            ttl_seconds=ttl_seconds,
            encode=lambda dataset: dataset.to_dict(),
            decode=Dataset.from_dict,
        )
    return InMemoryTTLCache(ttl_seconds=ttl_seconds)


def create_default_service(settings: Optional[Settings] = None) -> AirQualityService:
    """Wire the production providers, caches and forecasters from settings"""
    # Deferred so the rest of the service works without TensorFlow loaded
    from megam.processors.lstm_trainer import KerasSequenceTrainer

    settings = settings or get_settings()
    timeout = settings.provider_timeout_seconds

    iqair = IQAirCollector(settings.iqair_api_key, timeout)
    openaq = OpenAQCollector(settings.openaq_api_key, timeout)
    nasa = NASAPowerCollector(max(timeout, 30.0))
    waqi = WAQICollector(settings.waqi_api_key, timeout)
    geocoder = NominatimGeocoder(timeout)

    fusion = FusionEngine(
        sources=[iqair, openaq, nasa, waqi],
        station_networks=[openaq, waqi],
        geocoder=geocoder,
    )
    history = HistoricalDataCollector(
        ground_source=openaq,
        satellite_source=nasa,
        cache=_history_cache(settings),
    )

    trainer = KerasSequenceTrainer()
    config = ModelConfig(
        lstm_units=settings.model_lstm_units,
        epochs=settings.model_epochs,
        batch_size=settings.model_batch_size,
        learning_rate=settings.model_learning_rate,
    )
    forecast = ForecastEngine(
        history=history,
        statistical=StatisticalForecaster(),
        sequence=SequenceForecaster(trainer, config),
        registry=ModelRegistry(
            trainer,
            cache=InMemoryTTLCache(max_entries=settings.model_cache_max_entries),
            model_dir=settings.model_dir,
        ),
        training_days=settings.history_training_days,
    )

    logger.info("✅ Air quality service initialized")
    return AirQualityService(fusion, history, forecast, geocoder, settings.history_training_days)
