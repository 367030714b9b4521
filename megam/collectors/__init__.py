"""
Collectors Package
==================
Provider adapters returning normalized readings and daily points:

- IQAirCollector: premium ground reading with weather
- OpenAQCollector: ground stations, station search, daily history
- NASAPowerCollector: satellite AOD reading and history
- WAQICollector: aggregator feed and nearest station
- NominatimGeocoder: forward and reverse geocoding
- HistoricalDataCollector: merged, gap-filled, cached datasets
"""

from .base import CurrentReadingSource, HistorySource, SourceReading, StationNetwork

__all__ = [
    'SourceReading',
    'CurrentReadingSource',
    'StationNetwork',
    'HistorySource',
]
