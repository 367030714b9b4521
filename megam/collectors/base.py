"""
🔌 Provider adapter contracts
============================
Every external data source sits behind one of these interfaces and hands
back normalized values. Adapters raise ProviderUnavailable on any failure;
the fusion engine and historical collector absorb it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import requests

from megam.exceptions import ProviderUnavailable
from megam.models import HistoricalPoint, Pollutant, WeatherSnapshot

logger = logging.getLogger(__name__)

# Keys in aggregator feeds that describe weather, not pollution
WEATHER_KEYS = {'h', 'p', 't', 'w', 'wg', 'dew', 'r'}

POLLUTANT_UNITS = {
    'pm25': 'µg/m³',
    'pm10': 'µg/m³',
    'o3': 'µg/m³',
    'no2': 'µg/m³',
    'so2': 'µg/m³',
    'co': 'mg/m³',
}


def unit_for_parameter(parameter: str) -> str:
    return POLLUTANT_UNITS.get(parameter.lower(), 'µg/m³')


def display_name(parameter: str) -> str:
    """'pm25' -> 'PM2.5', 'no2' -> 'NO2'"""
    parameter = parameter.lower()
    if parameter == 'pm25':
        return 'PM2.5'
    return parameter.upper()


@dataclass(frozen=True)
class SourceReading:
    """Normalized current reading returned by one provider"""
    kind: str
    provider: str
    index: int
    pollutants: Tuple[Pollutant, ...]
    confidence: int
    city: Optional[str] = None
    weather: Optional[WeatherSnapshot] = None
    station_name: Optional[str] = None
    distance_km: Optional[float] = None


class ProviderAdapter(ABC):
    """Shared HTTP plumbing for the provider adapters"""

    name = 'provider'
    kind = ''

    def __init__(self, timeout: float = 15.0):
        self.timeout = timeout

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailable(self.name, f"network error: {e}") from e

        if response.status_code == 429:
            raise ProviderUnavailable(self.name, "rate limit exceeded")
        if response.status_code == 404:
            raise ProviderUnavailable(self.name, "no data for this location")
        if not response.ok:
            raise ProviderUnavailable(self.name, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailable(self.name, f"malformed response: {e}") from e


class CurrentReadingSource(ProviderAdapter):
    """Provider that reports a current reading at a coordinate"""

    @abstractmethod
    def fetch_current(self, lat: float, lng: float) -> Optional[SourceReading]:
        """Current reading at the point, or None when the provider has nothing there"""


class StationNetwork(ABC):
    """Provider that can locate the nearest monitoring station"""

    @abstractmethod
    def find_nearest_station(self, lat: float, lng: float,
                             max_radius_km: float) -> Optional[SourceReading]:
        """Nearest station within the radius, with distance_km set"""


class HistorySource(ABC):
    """Provider of daily-aggregated history"""

    @abstractmethod
    def fetch_history(self, lat: float, lng: float, start: date, end: date) -> List[HistoricalPoint]:
        """Daily points between start and end inclusive, ascending by date"""
