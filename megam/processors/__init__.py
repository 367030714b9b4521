"""
Processors Package
==================
AQI conversion, multi-source fusion, analytics and forecasting.

The Keras trainer lives in processors.lstm_trainer and is only imported
where a trained forecaster is wired up.
"""

from .aqi_calculator import aod_to_index, get_aqi_category, ground_station_index, pm25_to_index

__all__ = [
    'pm25_to_index',
    'aod_to_index',
    'ground_station_index',
    'get_aqi_category',
]
