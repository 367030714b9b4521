"""
📚 HISTORICAL DATA COLLECTOR
===========================
Builds a fixed-length, gap-filled daily series for a location.

Pipeline:
1. Cache lookup by rounded coordinates (24h freshness, enforced by the store);
   one entry per location, shorter windows are sliced from a longer cached one
2. Parallel fetch: ground-station history + satellite history
3. Merge by calendar date: satellite first, ground overwrites
4. Gap fill over every day of the window
   - known point on both sides: time-weighted linear interpolation (0.5)
   - only an earlier point: repeat it (0.4)
   - only a later point: backfill from it (0.4)
5. Completeness = % of non-interpolated days, 1 decimal
6. Cache the Dataset
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from megam.collectors.base import HistorySource
from megam.models import INTERPOLATED, POLLUTANT_KEYS, Dataset, HistoricalPoint, Location
from megam.utils.cache import CacheStore

logger = logging.getLogger(__name__)

INTERPOLATED_CONFIDENCE = 0.5
REPEATED_CONFIDENCE = 0.4


def history_cache_key(lat: float, lng: float) -> str:
    return f"aqi_history_{lat:.2f}_{lng:.2f}"


def merge_by_date(satellite: List[HistoricalPoint],
                  ground: List[HistoricalPoint]) -> Dict[str, HistoricalPoint]:
    """Satellite points first, ground points overwrite on the same date"""
    merged = {}
    for point in satellite:
        merged[point.date] = point
    for point in ground:
        merged[point.date] = point
    return merged


def _interpolate(day: date, before: HistoricalPoint, after: HistoricalPoint) -> HistoricalPoint:
    span = (after.day - before.day).days
    ratio = (day - before.day).days / span

    def lerp(a: float, b: float) -> float:
        return round(a + (b - a) * ratio, 1)

    return HistoricalPoint.for_day(
        day,
        index=lerp(before.index, after.index),
        source=INTERPOLATED,
        confidence=INTERPOLATED_CONFIDENCE,
        **{key: lerp(before.pollutant(key), after.pollutant(key)) for key in POLLUTANT_KEYS}
    )


def _repeat(day: date, known: HistoricalPoint) -> HistoricalPoint:
    return HistoricalPoint.for_day(
        day,
        index=known.index,
        source=INTERPOLATED,
        confidence=REPEATED_CONFIDENCE,
        **{key: known.pollutant(key) for key in POLLUTANT_KEYS}
    )


def fill_gaps(merged: Dict[str, HistoricalPoint], start: date, days: int) -> List[HistoricalPoint]:
    """
    Walk every day from start for `days` days and fill missing dates

    Args:
        merged: Known points keyed by ISO date
        start: First day of the window
        days: Window length

    Returns:
        Exactly `days` points when any known point exists, else an empty list
    """
    known = sorted(merged.values(), key=lambda p: p.date)
    if not known:
        return []

    filled = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        key = day.isoformat()

        if key in merged:
            filled.append(merged[key])
            continue

        before = next((p for p in reversed(known) if p.date < key), None)
        after = next((p for p in known if p.date > key), None)

        if before is not None and after is not None:
            filled.append(_interpolate(day, before, after))
        elif before is not None:
            filled.append(_repeat(day, before))
        else:
            filled.append(_repeat(day, after))

    return filled


def completeness_percent(points: Sequence[HistoricalPoint]) -> float:
    if not points:
        return 0.0
    real = sum(1 for p in points if not p.is_interpolated)
    return round(100 * real / len(points), 1)


def trailing_window(dataset: Dataset, days: int) -> Dataset:
    """The last `days` days of a longer Dataset, completeness recomputed"""
    if dataset.requested_days == days:
        return dataset
    points = dataset.points[-days:]
    return replace(
        dataset,
        points=points,
        start_date=points[0].date,
        requested_days=days,
        total_points=len(points),
        completeness=completeness_percent(points),
    )


class HistoricalDataCollector:
    """
    Collects and caches daily history for the analytics and forecast engines

    Args:
        ground_source: Higher-trust HistorySource (ground stations), optional
        satellite_source: Lower-trust HistorySource (AOD), optional
        cache: CacheStore for Datasets, optional
        today: Callable returning the last day of every window (UTC date)
    """

    def __init__(self, ground_source: Optional[HistorySource] = None,
                 satellite_source: Optional[HistorySource] = None,
                 cache: Optional[CacheStore] = None,
                 today: Callable[[], date] = lambda: datetime.now(timezone.utc).date()):
        self.ground_source = ground_source
        self.satellite_source = satellite_source
        self.cache = cache
        self.today = today

    def _fetch_sources(self, lat: float, lng: float, start: date,
                       end: date) -> Dict[str, List[HistoricalPoint]]:
        sources = {'ground': self.ground_source, 'satellite': self.satellite_source}
        results = {'ground': [], 'satellite': []}

        with ThreadPoolExecutor(max_workers=2) as executor:
            future_to_source = {
                executor.submit(source.fetch_history, lat, lng, start, end): name
                for name, source in sources.items() if source is not None
            }
            for future in as_completed(future_to_source):
                name = future_to_source[future]
                try:
                    results[name] = future.result() or []
                    logger.info(f"✅ {name} history: {len(results[name])} days")
                except Exception as e:
                    logger.error(f"❌ {name} history failed: {e}")

        return results

    def get_dataset(self, lat: float, lng: float, days: int = 180,
                    city: Optional[str] = None, country: Optional[str] = None) -> Dataset:
        """
        Get a complete Dataset of `days` daily points ending today

        A zero-point Dataset means neither source had anything; consumers
        treat it as insufficient history.
        """
        if days < 1:
            raise ValueError(f"days must be positive, got {days}")

        end = self.today()
        cache_key = history_cache_key(lat, lng)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None and cached.end_date == end.isoformat() and cached.requested_days >= days:
                logger.info(f"📦 Using cached history for {cache_key} ({days} of {cached.total_points} days)")
                return trailing_window(cached, days)

        start = end - timedelta(days=days - 1)

        logger.info(f"🔍 Collecting {days} days of history for {city or 'Unknown'}, {country or 'Unknown'}")
        logger.info(f"📍 Location: {lat:.4f}, {lng:.4f} ({start} to {end})")

        fetched = self._fetch_sources(lat, lng, start, end)
        merged = merge_by_date(fetched['satellite'], fetched['ground'])
        points = fill_gaps(merged, start, days)

        dataset = Dataset(
            location=Location(lat=lat, lng=lng, city=city or "Unknown", country=country or "Unknown"),
            points=tuple(points),
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            requested_days=days,
            total_points=len(points),
            completeness=completeness_percent(points),
        )

        if not points:
            logger.warning(f"⚠️ No historical data from any source for {lat:.4f}, {lng:.4f}")
            return dataset

        logger.info(f"✅ Dataset complete: {dataset.total_points} days, {dataset.real_points} real "
                    f"({dataset.completeness:.1f}%)")

        if self.cache is not None:
            self.cache.set(cache_key, dataset)
            logger.info(f"💾 Cached {dataset.total_points} days of data")

        return dataset
