"""
🔬 MULTI-SOURCE FUSION ENGINE
============================
One best-available Reading per coordinate from several unreliable providers.

PRIORITY (first successful source wins, no averaging):
1. premium-ground  (IQAir, confidence 92)
2. ground-station  (OpenAQ, confidence 90-95)
3. satellite       (NASA POWER AOD, confidence 70)
4. aggregator      (WAQI, confidence 80-85)

HYBRID ENHANCEMENT:
- Satellite or aggregator primary + ground station within 50 km
  -> station index/pollutants, provenance "hybrid", confidence 90

FALLBACK SEARCH (nothing at the exact point):
- Nearest station within 50 km, then 100 km, across all station networks
- confidence = max(50, 85 - floor(distance_km / 2))
- Nothing within 100 km -> NoDataAvailable
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import reduce
from typing import Callable, Iterable, List, Optional, Sequence

from megam.collectors.base import CurrentReadingSource, SourceReading, StationNetwork
from megam.exceptions import NoDataAvailable
from megam.models import (
    AGGREGATOR, GROUND_STATION, HYBRID, PREMIUM_GROUND, SATELLITE, Reading
)
from megam.processors.aqi_calculator import generate_health_advisory, generate_summary
from megam.utils.location_naming import resolve_location_name

logger = logging.getLogger(__name__)

PRIORITY_ORDER = (PREMIUM_GROUND, GROUND_STATION, SATELLITE, AGGREGATOR)

# Primaries that get upgraded when a ground station is close enough
ENHANCEABLE_KINDS = (SATELLITE, AGGREGATOR)
HYBRID_RADIUS_KM = 50
HYBRID_CONFIDENCE = 90

FALLBACK_RADII_KM = (50, 100)
FALLBACK_BASE_CONFIDENCE = 85
FALLBACK_MIN_CONFIDENCE = 50


@dataclass(frozen=True)
class SourceCandidate:
    """One provider's outcome; reading is None when the provider had nothing"""
    kind: str
    reading: Optional[SourceReading]
    confidence: int = 0


def select_primary(candidates: Iterable[SourceCandidate],
                   priority: Sequence[str] = PRIORITY_ORDER) -> Optional[SourceCandidate]:
    """Fold candidates left to right, keeping the highest-priority one with data"""
    rank = {kind: position for position, kind in enumerate(priority)}

    def better(best: Optional[SourceCandidate], candidate: SourceCandidate) -> Optional[SourceCandidate]:
        if candidate.reading is None or candidate.kind not in rank:
            return best
        if best is None or rank[candidate.kind] < rank[best.kind]:
            return candidate
        return best

    return reduce(better, candidates, None)


def fallback_confidence(distance_km: float) -> int:
    """Linear decay with distance, floored at 50"""
    return max(FALLBACK_MIN_CONFIDENCE, FALLBACK_BASE_CONFIDENCE - math.floor(distance_km / 2))


class FusionEngine:
    """
    Fuses provider readings for a coordinate

    Args:
        sources: Providers queried concurrently at the exact point
        station_networks: Networks searched for hybrid enhancement and fallback,
            in preference order (ground before aggregator)
        geocoder: Optional reverse geocoder for city/country naming
        clock: Callable returning the reading timestamp
    """

    def __init__(self, sources: List[CurrentReadingSource],
                 station_networks: Optional[List[StationNetwork]] = None,
                 geocoder=None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.sources = list(sources)
        self.station_networks = list(station_networks or [])
        self.geocoder = geocoder
        self.clock = clock

    def collect_candidates(self, lat: float, lng: float) -> List[SourceCandidate]:
        """Query every source in parallel; a failure leaves that source empty"""
        if not self.sources:
            return []

        logger.info(f"⚡ Parallel fetch from {len(self.sources)} sources for {lat:.4f}, {lng:.4f}")
        candidates = []
        with ThreadPoolExecutor(max_workers=len(self.sources)) as executor:
            future_to_source = {
                executor.submit(source.fetch_current, lat, lng): source
                for source in self.sources
            }
            for future in as_completed(future_to_source):
                source = future_to_source[future]
                try:
                    reading = future.result()
                except Exception as e:
                    logger.warning(f"⚠️ {source.name}: {e}")
                    reading = None

                if reading is not None:
                    logger.info(f"✅ {source.name}: index {reading.index} (confidence {reading.confidence})")
                candidates.append(SourceCandidate(
                    kind=source.kind,
                    reading=reading,
                    confidence=reading.confidence if reading is not None else 0
                ))

        return candidates

    def _search_networks(self, lat: float, lng: float, radius_km: float,
                         networks: List[StationNetwork]) -> Optional[SourceReading]:
        """Nearest station across networks within the radius"""
        found = []
        for network in networks:
            try:
                station = network.find_nearest_station(lat, lng, radius_km)
            except Exception as e:
                logger.warning(f"⚠️ {getattr(network, 'name', 'station network')} search failed: {e}")
                continue
            if station is not None and station.distance_km is not None and station.distance_km <= radius_km:
                found.append(station)

        if not found:
            return None
        return min(found, key=lambda s: s.distance_km)

    def _ground_networks(self) -> List[StationNetwork]:
        return [n for n in self.station_networks if getattr(n, 'kind', None) == GROUND_STATION]

    def find_fallback_station(self, lat: float, lng: float) -> Optional[SourceReading]:
        for radius in FALLBACK_RADII_KM:
            logger.info(f"🔍 Searching for nearest station within {radius} km...")
            station = self._search_networks(lat, lng, radius, self.station_networks)
            if station is not None:
                logger.info(f"✅ Found nearest station {station.distance_km:.1f} km away ({station.provider})")
                return station
        return None

    def get_current_reading(self, lat: float, lng: float, city_hint: Optional[str] = None,
                            country_hint: Optional[str] = None) -> Reading:
        """
        Best-available Reading for the coordinate

        Raises:
            NoDataAvailable: Nothing at the point and no station within 100 km
        """
        candidates = sorted(
            self.collect_candidates(lat, lng),
            key=lambda c: PRIORITY_ORDER.index(c.kind) if c.kind in PRIORITY_ORDER else len(PRIORITY_ORDER)
        )
        sources_available = tuple(c.reading.provider for c in candidates if c.reading is not None)
        primary = select_primary(candidates)

        summary_suffix = ""
        nearest_distance = None

        if primary is not None:
            reading = primary.reading
            provenance = primary.kind
            confidence = primary.confidence
            index = reading.index
            pollutants = reading.pollutants
            logger.info(f"🎯 Primary source: {reading.provider} ({provenance})")

            if primary.kind in ENHANCEABLE_KINDS:
                station = self._search_networks(lat, lng, HYBRID_RADIUS_KM, self._ground_networks())
                if station is not None:
                    logger.info(f"🔀 Hybrid: ground station {station.distance_km:.1f} km away "
                                f"replaces {reading.provider} values")
                    index = station.index
                    pollutants = station.pollutants
                    provenance = HYBRID
                    confidence = HYBRID_CONFIDENCE
                    nearest_distance = station.distance_km
        else:
            logger.warning("⚠️ No data at exact coordinates, searching for nearest station...")
            reading = self.find_fallback_station(lat, lng)
            if reading is None:
                logger.error(f"❌ No data sources available for {lat:.4f}, {lng:.4f}")
                raise NoDataAvailable(lat, lng, FALLBACK_RADII_KM)

            index = reading.index
            pollutants = reading.pollutants
            provenance = HYBRID
            nearest_distance = reading.distance_km
            confidence = fallback_confidence(nearest_distance)
            summary_suffix = f" (Data from nearest station {nearest_distance:.1f}km away)"
            sources_available = sources_available + (reading.provider,)

        city, country = resolve_location_name(
            lat, lng, self.geocoder, city_hint=city_hint, country_hint=country_hint,
            provider_city=reading.city
        )

        fused = Reading(
            lat=lat,
            lng=lng,
            index=index,
            pollutants=tuple(pollutants),
            provenance=provenance,
            confidence=confidence,
            timestamp=self.clock(),
            city=city,
            country=country,
            weather=reading.weather,
            summary=generate_summary(index) + summary_suffix,
            health_advisory=generate_health_advisory(index),
            nearest_station_distance_km=nearest_distance,
            sources_available=sources_available,
        )
        logger.info(f"✅ {city}: index {fused.index}, {fused.provenance}, confidence {fused.confidence}")
        return fused
