"""
🛰️ NASA POWER adapter (satellite)
================================
Aerosol optical depth at 550nm (AOD_55) from the NASA POWER daily point API.
No key required, global coverage, cloudy days come back as -999.

AOD is mapped onto the index with the coarse step table, so both current
readings (confidence 70) and history points (confidence 0.6) rank below
ground data.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from megam.collectors.base import CurrentReadingSource, HistorySource, SourceReading
from megam.models import SATELLITE, HistoricalPoint, Pollutant
from megam.processors.aqi_calculator import aod_to_index

logger = logging.getLogger(__name__)

NASA_POWER_URL = 'https://power.larc.nasa.gov/api/temporal/daily/point'
AOD_PARAMETER = 'AOD_55'
NO_DATA = -999

CURRENT_LOOKBACK_DAYS = 7
CURRENT_CONFIDENCE = 70
HISTORY_CONFIDENCE = 0.6
# Rough AOD -> PM2.5 estimate reported with the raw AOD
AOD_TO_PM25 = 100


class NASAPowerCollector(CurrentReadingSource, HistorySource):

    name = 'NASA POWER'
    kind = SATELLITE

    def __init__(self, timeout: float = 30.0,
                 today: Callable[[], date] = lambda: datetime.now(timezone.utc).date()):
        super().__init__(timeout)
        self.today = today

    def _aod_series(self, lat: float, lng: float, start: date, end: date) -> Dict[date, float]:
        """Valid AOD values keyed by day; -999 and negative values dropped"""
        data = self._get_json(NASA_POWER_URL, params={
            'parameters': AOD_PARAMETER,
            'community': 'RE',
            'longitude': lng,
            'latitude': lat,
            'start': start.strftime('%Y%m%d'),
            'end': end.strftime('%Y%m%d'),
            'format': 'JSON',
        })

        raw = ((data.get('properties') or {}).get('parameter') or {}).get(AOD_PARAMETER) or {}
        series = {}
        for day_str, value in raw.items():
            if value is None or value == NO_DATA or value < 0:
                continue
            series[datetime.strptime(day_str, '%Y%m%d').date()] = float(value)
        return series

    def fetch_current(self, lat: float, lng: float) -> Optional[SourceReading]:
        yesterday = self.today() - timedelta(days=1)
        start = yesterday - timedelta(days=CURRENT_LOOKBACK_DAYS - 1)

        logger.info(f"🛰️ NASA POWER: AOD for {lat:.4f}, {lng:.4f} ({start} to {yesterday})")
        series = self._aod_series(lat, lng, start, yesterday)

        valid = {day: aod for day, aod in series.items() if aod > 0}
        if not valid:
            logger.warning(f"⚠️ NASA POWER: no valid AOD in the last {CURRENT_LOOKBACK_DAYS} days (cloudy)")
            return None

        latest = max(valid)
        aod = valid[latest]
        index = aod_to_index(aod)
        logger.info(f"✅ NASA POWER: AOD {aod:.3f} on {latest} -> index {index}")

        return SourceReading(
            kind=self.kind,
            provider=self.name,
            index=index,
            pollutants=(
                Pollutant(name='PM2.5', concentration=round(aod * AOD_TO_PM25), unit='µg/m³'),
                Pollutant(name='AOD', concentration=aod, unit='Aerosol Optical Depth'),
            ),
            confidence=CURRENT_CONFIDENCE,
        )

    def fetch_history(self, lat: float, lng: float, start: date, end: date) -> List[HistoricalPoint]:
        logger.info(f"🛰️ Fetching NASA POWER history {start} to {end}")
        series = self._aod_series(lat, lng, start, end)

        points = [
            HistoricalPoint.for_day(
                day,
                index=aod_to_index(aod),
                source=SATELLITE,
                confidence=HISTORY_CONFIDENCE,
            )
            for day, aod in sorted(series.items())
        ]
        logger.info(f"✅ Collected {len(points)} days of NASA data")
        return points
