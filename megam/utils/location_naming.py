#!/usr/bin/env python3
"""
🏙️ Location naming
==================
Resolves a city/country label for a coordinate without ever blocking fusion:
caller hint first, reverse geocoding second, coordinate label last.
"""

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def format_coordinates(lat: float, lng: float) -> str:
    """Coordinate-based label, e.g. '23.810°N, 90.413°E'"""
    lat_dir = "N" if lat >= 0 else "S"
    lng_dir = "E" if lng >= 0 else "W"
    return f"{abs(lat):.3f}°{lat_dir}, {abs(lng):.3f}°{lng_dir}"


def resolve_location_name(lat: float, lng: float, geocoder=None,
                          city_hint: Optional[str] = None,
                          country_hint: Optional[str] = None,
                          provider_city: Optional[str] = None) -> Tuple[str, str]:
    """
    Get a (city, country) pair for the coordinate

    Args:
        lat: Latitude
        lng: Longitude
        geocoder: Optional object with reverse(lat, lng) -> {'city', 'country'}
        city_hint: Name supplied by the caller, used as-is when present
        country_hint: Country supplied by the caller
        provider_city: City reported by the data provider, used when geocoding fails

    Returns:
        (city, country); falls back to a coordinate label when lookup fails
    """
    if city_hint:
        return city_hint, country_hint or ""

    if geocoder is not None:
        try:
            result = geocoder.reverse(lat, lng)
            if result and result.get('city'):
                return result['city'], result.get('country', '')
        except Exception as e:
            logger.warning(f"⚠️ Reverse geocoding failed for {lat:.3f}, {lng:.3f}: {e}")

    if provider_city:
        return provider_city, country_hint or ""

    return format_coordinates(lat, lng), country_hint or ""
