"""
🌐 IQAir AirVisual adapter (premium-ground)
==========================================
Nearest-city reading from the IQAir station network, US AQI plus the
current weather snapshot.
"""

import logging
from typing import Optional

from megam.collectors.base import CurrentReadingSource, SourceReading
from megam.exceptions import ProviderUnavailable
from megam.models import PREMIUM_GROUND, Pollutant, WeatherSnapshot

logger = logging.getLogger(__name__)

IQAIR_API_URL = 'https://api.airvisual.com/v2'
IQAIR_CONFIDENCE = 92


class IQAirCollector(CurrentReadingSource):

    name = 'IQAir'
    kind = PREMIUM_GROUND

    def __init__(self, api_key: Optional[str], timeout: float = 15.0):
        super().__init__(timeout)
        self.api_key = api_key

    def fetch_current(self, lat: float, lng: float) -> Optional[SourceReading]:
        if not self.api_key:
            raise ProviderUnavailable(self.name, "API key not configured")

        logger.info(f"🌐 IQAir: nearest city for {lat:.4f}, {lng:.4f}")
        data = self._get_json(
            f"{IQAIR_API_URL}/nearest_city",
            params={'lat': lat, 'lon': lng, 'key': self.api_key}
        )

        if data.get('status') != 'success':
            raise ProviderUnavailable(self.name, f"status {data.get('status')}")

        current = (data.get('data') or {}).get('current') or {}
        pollution = current.get('pollution')
        if not pollution or pollution.get('aqius') is None:
            logger.warning("⚠️ IQAir: no pollution data for this location")
            return None

        aqi = pollution['aqius']
        location = data['data']
        weather = current.get('weather')

        snapshot = None
        if weather:
            snapshot = WeatherSnapshot(
                temperature=weather.get('tp'),
                humidity=weather.get('hu'),
                pressure=weather.get('pr'),
                wind_speed=weather.get('ws'),
                wind_direction=weather.get('wd'),
            )

        # US AQI here is driven by PM2.5, reported on the index scale
        pollutants = (Pollutant(name='PM2.5', concentration=aqi, unit='aqi'),)

        station = ", ".join(part for part in (location.get('city'), location.get('state'),
                                              location.get('country')) if part)
        logger.info(f"✅ IQAir: AQI {aqi} at {station or 'unknown station'}")

        return SourceReading(
            kind=self.kind,
            provider=self.name,
            index=int(aqi),
            pollutants=pollutants,
            confidence=IQAIR_CONFIDENCE,
            city=location.get('city'),
            weather=snapshot,
            station_name=station or None,
        )
