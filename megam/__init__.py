"""
Megam - Air Quality Intelligence
================================
Fused current readings, gap-filled daily history, analytics and forecasts
for any coordinate, built on IQAir, OpenAQ, NASA POWER and WAQI.

Packages:
- collectors: provider adapters and the historical data collector
- processors: AQI conversion, fusion, analytics and forecasting
- apis: service facade and Flask HTTP surface
- aws: S3-backed cache
- utils: geo helpers, location naming, caches and settings
"""

from .exceptions import (
    AirQualityError, InsufficientHistory, NoDataAvailable, ProviderUnavailable, TrainingFailure
)
from .models import Dataset, HistoricalPoint, Location, Pollutant, Prediction, Reading, WeatherSnapshot

__all__ = [
    'AirQualityError',
    'ProviderUnavailable',
    'NoDataAvailable',
    'InsufficientHistory',
    'TrainingFailure',
    'Reading',
    'Pollutant',
    'WeatherSnapshot',
    'HistoricalPoint',
    'Location',
    'Dataset',
    'Prediction',
]

__version__ = '0.1.0'
