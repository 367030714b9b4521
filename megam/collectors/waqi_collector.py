"""
🌍 WAQI adapter (aggregator)
===========================
World Air Quality Index geo feed. Returns the station the aggregator
considers nearest to the point; pollutants come from the `iaqi` block with
weather keys filtered out.
"""

import logging
from typing import Any, Dict, Optional

from megam.collectors.base import (
    WEATHER_KEYS, CurrentReadingSource, SourceReading, StationNetwork,
    display_name, unit_for_parameter
)
from megam.exceptions import ProviderUnavailable
from megam.models import AGGREGATOR, Pollutant
from megam.utils.geo import haversine_distance

logger = logging.getLogger(__name__)

WAQI_API_URL = 'https://api.waqi.info'

NEAR_STATION_KM = 25
NEAR_CONFIDENCE = 85
FAR_CONFIDENCE = 80


class WAQICollector(CurrentReadingSource, StationNetwork):

    name = 'WAQI'
    kind = AGGREGATOR

    def __init__(self, api_key: Optional[str], timeout: float = 15.0):
        super().__init__(timeout)
        self.api_key = api_key

    def _geo_feed(self, lat: float, lng: float) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderUnavailable(self.name, "API key not configured")

        data = self._get_json(f"{WAQI_API_URL}/feed/geo:{lat};{lng}/", params={'token': self.api_key})
        if data.get('status') != 'ok':
            detail = data.get('data')
            if detail == 'Invalid key':
                raise ProviderUnavailable(self.name, "API key is invalid")
            raise ProviderUnavailable(self.name, f"status {data.get('status')}: {detail}")
        return data.get('data') or {}

    def _to_reading(self, lat: float, lng: float, station: Dict[str, Any]) -> Optional[SourceReading]:
        aqi = station.get('aqi')
        # Offline stations report '-'
        if not isinstance(aqi, (int, float)):
            return None

        pollutants = []
        for key, value in (station.get('iaqi') or {}).items():
            if key in WEATHER_KEYS or not isinstance(value, dict) or value.get('v') is None:
                continue
            pollutants.append(Pollutant(
                name=display_name(key),
                concentration=value['v'],
                unit=unit_for_parameter(key)
            ))

        city = station.get('city') or {}
        geo = city.get('geo') or []
        distance = None
        if len(geo) == 2 and geo[0] is not None and geo[1] is not None:
            distance = round(haversine_distance(lat, lng, float(geo[0]), float(geo[1])), 1)

        confidence = NEAR_CONFIDENCE if distance is not None and distance <= NEAR_STATION_KM else FAR_CONFIDENCE

        return SourceReading(
            kind=self.kind,
            provider=self.name,
            index=int(round(aqi)),
            pollutants=tuple(pollutants),
            confidence=confidence,
            city=city.get('name'),
            station_name=city.get('name'),
            distance_km=distance,
        )

    def fetch_current(self, lat: float, lng: float) -> Optional[SourceReading]:
        logger.info(f"🌍 WAQI: geo feed for {lat:.4f}, {lng:.4f}")
        reading = self._to_reading(lat, lng, self._geo_feed(lat, lng))
        if reading is None:
            logger.warning("⚠️ WAQI: station has no current AQI")
        else:
            logger.info(f"✅ WAQI: AQI {reading.index} from {reading.station_name}")
        return reading

    def find_nearest_station(self, lat: float, lng: float,
                             max_radius_km: float) -> Optional[SourceReading]:
        reading = self._to_reading(lat, lng, self._geo_feed(lat, lng))
        if reading is None or reading.distance_km is None:
            return None
        if reading.distance_km > max_radius_km:
            logger.info(f"📏 WAQI: nearest station {reading.distance_km:.1f} km away, "
                        f"outside {max_radius_km:.0f} km")
            return None
        return reading
