"""Shared fixtures: fake providers, a fixed calendar and point builders"""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from megam.collectors.base import CurrentReadingSource, HistorySource, SourceReading, StationNetwork
from megam.exceptions import ProviderUnavailable
from megam.models import GROUND_STATION, HistoricalPoint, Pollutant

TODAY = date(2025, 3, 10)
FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_reading(kind: str, provider: str, index: int, confidence: int,
                 distance_km: Optional[float] = None, city: Optional[str] = None) -> SourceReading:
    return SourceReading(
        kind=kind,
        provider=provider,
        index=index,
        pollutants=(Pollutant('PM2.5', index / 4, 'µg/m³'),),
        confidence=confidence,
        city=city,
        distance_km=distance_km,
    )


def make_point(day: date, index: float, source: str = GROUND_STATION,
               confidence: float = 1.0, **pollutants) -> HistoricalPoint:
    return HistoricalPoint.for_day(day, index=index, source=source, confidence=confidence, **pollutants)


def daily_points(start: date, indices: List[float], **pollutants) -> List[HistoricalPoint]:
    return [make_point(start + timedelta(days=i), value, **pollutants) for i, value in enumerate(indices)]


class FakeSource(CurrentReadingSource):
    """Current reading source returning a canned reading or raising"""

    def __init__(self, name: str, kind: str, reading: Optional[SourceReading] = None,
                 error: Optional[Exception] = None):
        super().__init__()
        self.name = name
        self.kind = kind
        self.reading = reading
        self.error = error
        self.calls = 0

    def fetch_current(self, lat, lng):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.reading


class FakeNetwork(StationNetwork):
    """Station network holding a single station at a fixed distance"""

    def __init__(self, name: str, kind: str, station: Optional[SourceReading] = None):
        self.name = name
        self.kind = kind
        self.station = station
        self.searches = []

    def find_nearest_station(self, lat, lng, max_radius_km):
        self.searches.append(max_radius_km)
        if self.station is None or self.station.distance_km > max_radius_km:
            return None
        return self.station


class FakeHistory(HistorySource):
    """History source serving points by date, counting calls"""

    def __init__(self, points: Optional[List[HistoricalPoint]] = None, fail: bool = False):
        self.points = points or []
        self.fail = fail
        self.calls = 0

    def fetch_history(self, lat, lng, start, end):
        self.calls += 1
        if self.fail:
            raise ProviderUnavailable('fake history', 'down')
        return [p for p in self.points if start <= p.day <= end]


class FakeGeocoder:

    def __init__(self, places: Optional[Dict[str, dict]] = None, city: str = '', country: str = ''):
        self.places = places or {}
        self.city = city
        self.country = country

    def forward(self, query):
        if query not in self.places:
            raise ProviderUnavailable('fake geocoder', f'location "{query}" not found')
        return self.places[query]

    def reverse(self, lat, lng):
        return {'city': self.city, 'country': self.country}


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
