"""
🏛️ OpenAQ v3 adapter (ground-station)
====================================
Government ground-station network:
- Current reading from stations around the exact point (API radius cap 25 km)
- Nearest-station search for hybrid enhancement and the 50/100 km fallback
- Daily-averaged history from raw sensor measurements

Station index uses the fixed multipliers (PM2.5 × 4, else PM10 × 2), the
history index uses the EPA PM2.5 table.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

import pandas as pd

from megam.collectors.base import (
    CurrentReadingSource, HistorySource, SourceReading, StationNetwork,
    display_name, unit_for_parameter
)
from megam.exceptions import ProviderUnavailable
from megam.models import GROUND_STATION, POLLUTANT_KEYS, HistoricalPoint, Pollutant
from megam.processors.aqi_calculator import ground_station_index, pm25_to_index
from megam.utils.geo import haversine_distance

logger = logging.getLogger(__name__)

OPENAQ_API_URL = 'https://api.openaq.org/v3'
MAX_POINT_RADIUS_M = 25000
STATION_LIMIT = 10
SEARCH_LIMIT = 100
MEASUREMENT_LIMIT = 1000

# Readings per day needed for full history confidence
FULL_DAY_READINGS = 12
FULL_DAY_CONFIDENCE = 1.0
PARTIAL_DAY_CONFIDENCE = 0.7

KM_PER_DEGREE = 111.32


def station_confidence(pollutants: Dict[str, float]) -> int:
    """95 with PM2.5, 92 with only PM10, 90 otherwise"""
    if pollutants.get('pm25') is not None:
        return 95
    if pollutants.get('pm10') is not None:
        return 92
    return 90


def bounding_box(lat: float, lng: float, radius_km: float) -> str:
    """'minlon,minlat,maxlon,maxlat' covering the radius around the point"""
    dlat = radius_km / KM_PER_DEGREE
    dlng = radius_km / (KM_PER_DEGREE * max(math.cos(math.radians(lat)), 0.01))
    return ",".join(f"{v:.4f}" for v in (
        max(-180.0, lng - dlng), max(-90.0, lat - dlat),
        min(180.0, lng + dlng), min(90.0, lat + dlat)
    ))


class OpenAQCollector(CurrentReadingSource, StationNetwork, HistorySource):

    name = 'OpenAQ'
    kind = GROUND_STATION

    def __init__(self, api_key: Optional[str], timeout: float = 15.0, max_workers: int = 5):
        super().__init__(timeout)
        self.api_key = api_key
        self.max_workers = max_workers

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ProviderUnavailable(self.name, "API key not configured")
        return {'X-API-Key': self.api_key, 'Accept': 'application/json'}

    def _locations(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = self._get_json(f"{OPENAQ_API_URL}/locations", params=params, headers=self._headers())
        return data.get('results') or []

    def _latest_values(self, location: Dict[str, Any]) -> Dict[str, float]:
        """Latest value per pollutant key for one station"""
        sensors = {}
        for sensor in location.get('sensors') or []:
            parameter = ((sensor.get('parameter') or {}).get('name') or '').lower()
            if parameter in POLLUTANT_KEYS:
                sensors[sensor.get('id')] = parameter

        if not sensors:
            return {}

        data = self._get_json(f"{OPENAQ_API_URL}/locations/{location['id']}/latest",
                              headers=self._headers())

        values = {}
        for row in data.get('results') or []:
            parameter = sensors.get(row.get('sensorsId'))
            value = row.get('value')
            if parameter and value is not None and value >= 0 and parameter not in values:
                values[parameter] = float(value)
        return values

    def _station_reading(self, lat: float, lng: float,
                         location: Dict[str, Any]) -> Optional[SourceReading]:
        values = self._latest_values(location)
        if not values:
            return None

        coords = location.get('coordinates') or {}
        distance = None
        if coords.get('latitude') is not None and coords.get('longitude') is not None:
            distance = round(haversine_distance(lat, lng, coords['latitude'], coords['longitude']), 1)

        pollutants = tuple(
            Pollutant(name=display_name(key), concentration=values[key], unit=unit_for_parameter(key))
            for key in POLLUTANT_KEYS if key in values
        )

        return SourceReading(
            kind=self.kind,
            provider=self.name,
            index=ground_station_index(values.get('pm25'), values.get('pm10')),
            pollutants=pollutants,
            confidence=station_confidence(values),
            city=(location.get('locality') or None),
            station_name=location.get('name'),
            distance_km=distance,
        )

    def _nearest_with_data(self, lat: float, lng: float, locations: List[Dict[str, Any]],
                           max_radius_km: float) -> Optional[SourceReading]:
        """Walk stations nearest-first and return the first one reporting values"""
        ranked = []
        for location in locations:
            coords = location.get('coordinates') or {}
            if coords.get('latitude') is None or coords.get('longitude') is None:
                continue
            distance = haversine_distance(lat, lng, coords['latitude'], coords['longitude'])
            if distance <= max_radius_km:
                ranked.append((distance, location))
        ranked.sort(key=lambda item: item[0])

        for distance, location in ranked:
            try:
                reading = self._station_reading(lat, lng, location)
            except ProviderUnavailable as e:
                logger.warning(f"⚠️ OpenAQ station {location.get('id')} skipped: {e.reason}")
                continue
            if reading is not None:
                logger.info(f"✅ OpenAQ: {location.get('name')} at {distance:.1f} km, AQI {reading.index}")
                return reading
        return None

    def fetch_current(self, lat: float, lng: float) -> Optional[SourceReading]:
        logger.info(f"🏛️ OpenAQ: stations within {MAX_POINT_RADIUS_M / 1000:.0f} km of {lat:.4f}, {lng:.4f}")
        locations = self._locations({
            'coordinates': f"{lat},{lng}",
            'radius': MAX_POINT_RADIUS_M,
            'limit': STATION_LIMIT,
        })
        if not locations:
            logger.warning("⚠️ OpenAQ: no stations near this point")
            return None
        return self._nearest_with_data(lat, lng, locations, MAX_POINT_RADIUS_M / 1000)

    def find_nearest_station(self, lat: float, lng: float,
                             max_radius_km: float) -> Optional[SourceReading]:
        logger.info(f"🔍 OpenAQ: searching stations within {max_radius_km:.0f} km")
        locations = self._locations({
            'bbox': bounding_box(lat, lng, max_radius_km),
            'limit': SEARCH_LIMIT,
        })
        return self._nearest_with_data(lat, lng, locations, max_radius_km)

    def _sensor_measurements(self, sensor_id: int, parameter: str,
                             start: date, end: date) -> List[Dict[str, Any]]:
        data = self._get_json(
            f"{OPENAQ_API_URL}/sensors/{sensor_id}/measurements",
            params={
                'datetime_from': datetime.combine(start, time.min, tzinfo=timezone.utc).isoformat(),
                'datetime_to': datetime.combine(end, time.max, tzinfo=timezone.utc).isoformat(),
                'limit': MEASUREMENT_LIMIT,
            },
            headers=self._headers()
        )

        rows = []
        for row in data.get('results') or []:
            period = row.get('period') or {}
            stamp = ((period.get('datetimeFrom') or {}).get('utc')
                     or (row.get('date') or {}).get('utc'))
            value = row.get('value')
            if stamp and value is not None and value >= 0:
                rows.append({'date': stamp[:10], 'parameter': parameter, 'value': float(value)})
        return rows

    def fetch_history(self, lat: float, lng: float, start: date, end: date) -> List[HistoricalPoint]:
        locations = self._locations({
            'coordinates': f"{lat},{lng}",
            'radius': MAX_POINT_RADIUS_M,
            'limit': STATION_LIMIT,
        })
        if not locations:
            logger.info("❌ OpenAQ: no stations nearby for history")
            return []

        station = locations[0]
        sensors = []
        for sensor in station.get('sensors') or []:
            parameter = ((sensor.get('parameter') or {}).get('name') or '').lower()
            if parameter in POLLUTANT_KEYS:
                sensors.append((sensor['id'], parameter))

        logger.info(f"📊 OpenAQ history: {station.get('name')} ({len(sensors)} sensors)")

        rows = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_sensor = {
                executor.submit(self._sensor_measurements, sensor_id, parameter, start, end): parameter
                for sensor_id, parameter in sensors
            }
            for future in as_completed(future_to_sensor):
                parameter = future_to_sensor[future]
                try:
                    rows.extend(future.result())
                except Exception as e:
                    logger.error(f"❌ OpenAQ {parameter} measurements failed: {e}")

        points = daily_points_from_measurements(rows, start, end)
        logger.info(f"✅ Collected {len(points)} days of OpenAQ data")
        return points


def daily_points_from_measurements(rows: List[Dict[str, Any]], start: date,
                                   end: date) -> List[HistoricalPoint]:
    """
    Average raw measurements per UTC calendar day

    Args:
        rows: Dicts with 'date' (YYYY-MM-DD), 'parameter' and 'value'
        start: First day kept
        end: Last day kept

    Returns:
        One HistoricalPoint per day that has any measurement, ascending
    """
    if not rows:
        return []

    df = pd.DataFrame(rows)
    df = df[(df['date'] >= start.isoformat()) & (df['date'] <= end.isoformat())]
    if df.empty:
        return []

    daily = df.groupby(['date', 'parameter'])['value'].agg(['mean', 'count'])
    means = daily['mean'].unstack('parameter')
    counts = daily['count'].unstack('parameter')

    points = []
    for day in sorted(means.index):
        values = {}
        for key in POLLUTANT_KEYS:
            value = means.at[day, key] if key in means.columns else float('nan')
            values[key] = 0.0 if pd.isna(value) else round(float(value), 1)

        pm25_count = 0
        if 'pm25' in counts.columns and not pd.isna(counts.at[day, 'pm25']):
            pm25_count = int(counts.at[day, 'pm25'])

        points.append(HistoricalPoint.for_day(
            date.fromisoformat(day),
            index=pm25_to_index(values['pm25']),
            source=GROUND_STATION,
            confidence=FULL_DAY_CONFIDENCE if pm25_count >= FULL_DAY_READINGS else PARTIAL_DAY_CONFIDENCE,
            **values
        ))
    return points
