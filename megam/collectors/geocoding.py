"""
📍 Nominatim geocoding
=====================
Name <-> coordinate lookups against OpenStreetMap Nominatim (no key).
"""

import logging
from typing import Any, Dict

from megam.collectors.base import ProviderAdapter
from megam.exceptions import ProviderUnavailable

logger = logging.getLogger(__name__)

NOMINATIM_URL = 'https://nominatim.openstreetmap.org'
USER_AGENT = 'Megam Air Quality Monitor'


def _city_from_address(address: Dict[str, Any], default: str) -> str:
    return (address.get('city') or address.get('town') or address.get('village')
            or address.get('county') or default)


class NominatimGeocoder(ProviderAdapter):

    name = 'Nominatim'

    def __init__(self, timeout: float = 10.0, user_agent: str = USER_AGENT):
        super().__init__(timeout)
        self.headers = {'User-Agent': user_agent}

    def forward(self, query: str) -> Dict[str, Any]:
        """
        Resolve a place name

        Returns:
            {'city', 'country', 'lat', 'lng', 'display_name'}

        Raises:
            ProviderUnavailable: Lookup failed or the place is unknown
        """
        results = self._get_json(
            f"{NOMINATIM_URL}/search",
            params={'q': query, 'format': 'json', 'limit': 1, 'addressdetails': 1},
            headers=self.headers
        )
        if not results:
            raise ProviderUnavailable(self.name, f'location "{query}" not found')

        result = results[0]
        address = result.get('address') or {}
        logger.info(f"📍 Geocoded '{query}' -> {result.get('lat')}, {result.get('lon')}")
        return {
            'city': _city_from_address(address, 'Unknown'),
            'country': address.get('country', 'Unknown'),
            'lat': float(result['lat']),
            'lng': float(result['lon']),
            'display_name': result.get('display_name', query),
        }

    def reverse(self, lat: float, lng: float) -> Dict[str, str]:
        data = self._get_json(
            f"{NOMINATIM_URL}/reverse",
            params={'lat': lat, 'lon': lng, 'format': 'json', 'addressdetails': 1},
            headers=self.headers
        )
        address = data.get('address') or {}
        return {
            'city': _city_from_address(address, ''),
            'country': address.get('country', ''),
        }
