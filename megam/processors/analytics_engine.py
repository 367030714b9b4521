"""
📊 AIR QUALITY ANALYTICS
=======================
Weekly, monthly and yearly rollups, pollutant trends and a quick summary,
computed from a Dataset's daily points. Pure functions, no I/O, recomputed
on every request.

Trend rule (fixed for every caller):
- change% = (current - previous) / previous × 100
- below -5% improving, above +5% worsening, otherwise stable
- pollutant trends use up / down / stable at the same threshold
"""

import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from megam.collectors.base import unit_for_parameter
from megam.exceptions import InsufficientHistory
from megam.models import POLLUTANT_KEYS, Dataset, HistoricalPoint
from megam.processors.aqi_calculator import categorize_day

logger = logging.getLogger(__name__)

TREND_THRESHOLD_PERCENT = 5.0
MIN_ANALYTICS_DAYS = 7
POLLUTANT_WINDOW_DAYS = 30
PLACEHOLDER_SOURCE = "N/A"

PointsLike = Union[Dataset, Sequence[HistoricalPoint]]


@dataclass(frozen=True)
class WeeklyDay:
    date: str
    index: float
    pm25: float
    pm10: float
    source: str
    confidence: float

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class MonthlyAnalysis:
    month: str              # YYYY-MM
    month_name: str         # "January 2025"
    avg_index: int
    min_index: int
    max_index: int
    avg_pm25: float
    avg_pm10: float
    good_days: int
    moderate_days: int
    unhealthy_days: int
    total_days: int
    trend: str = "stable"
    change_percent: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class YearlyAnalysis:
    year: int
    avg_index: int
    min_index: int
    max_index: int
    avg_pm25: float
    avg_pm10: float
    good_days: int
    moderate_days: int
    unhealthy_days: int
    total_days: int
    monthly_breakdown: List[MonthlyAnalysis] = field(default_factory=list)
    best_month: str = PLACEHOLDER_SOURCE
    worst_month: str = PLACEHOLDER_SOURCE
    overall_trend: str = "stable"
    year_over_year_change: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class PollutantTrend:
    pollutant: str
    current_avg: float
    previous_avg: float
    change_percent: float
    trend: str              # up | down | stable
    unit: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class PeriodSummary:
    avg_index: int
    trend: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class QuickSummary:
    last_7_days: PeriodSummary
    last_30_days: PeriodSummary
    last_12_months: PeriodSummary
    best_month: str
    worst_month: str

    def to_dict(self) -> Dict:
        return asdict(self)


def _points_of(data: PointsLike) -> List[HistoricalPoint]:
    points = data.points if isinstance(data, Dataset) else data
    return sorted(points, key=lambda p: p.date)


def _require(points: List[HistoricalPoint], purpose: str, required: int = MIN_ANALYTICS_DAYS):
    if len(points) < required:
        raise InsufficientHistory(required, len(points), purpose)


def change_percent(current: float, previous: float) -> float:
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def classify_trend(current: float, previous: float) -> str:
    change = change_percent(current, previous)
    if change < -TREND_THRESHOLD_PERCENT:
        return "improving"
    if change > TREND_THRESHOLD_PERCENT:
        return "worsening"
    return "stable"


def classify_direction(change: float) -> str:
    if change > TREND_THRESHOLD_PERCENT:
        return "up"
    if change < -TREND_THRESHOLD_PERCENT:
        return "down"
    return "stable"


def _positive_mean(values: List[float]) -> float:
    positive = [v for v in values if v > 0]
    return float(np.mean(positive)) if positive else 0.0


def _mean_index(points: List[HistoricalPoint]) -> float:
    return float(np.mean([p.index for p in points])) if points else 0.0


def _month_label(month: str) -> str:
    year, month_number = month.split("-")
    return date(int(year), int(month_number), 1).strftime("%B %Y")


def _group(points: List[HistoricalPoint], key_length: int) -> "OrderedDict[str, List[HistoricalPoint]]":
    """Group ascending points by date prefix (7 = month, 4 = year)"""
    groups = OrderedDict()
    for point in points:
        groups.setdefault(point.date[:key_length], []).append(point)
    return groups


def _monthly_breakdown(points: List[HistoricalPoint]) -> List[MonthlyAnalysis]:
    analyses = []
    previous_mean = None

    for month, month_points in _group(points, 7).items():
        indices = [p.index for p in month_points]
        days = [categorize_day(i) for i in indices]
        mean = float(np.mean(indices))

        analysis = MonthlyAnalysis(
            month=month,
            month_name=_month_label(month),
            avg_index=int(round(mean)),
            min_index=int(round(min(indices))),
            max_index=int(round(max(indices))),
            avg_pm25=round(_positive_mean([p.pm25 for p in month_points]), 1),
            avg_pm10=round(_positive_mean([p.pm10 for p in month_points]), 1),
            good_days=days.count('good'),
            moderate_days=days.count('moderate'),
            unhealthy_days=days.count('unhealthy'),
            total_days=len(month_points),
        )
        if previous_mean:
            analysis.change_percent = round(change_percent(mean, previous_mean), 1)
            analysis.trend = classify_trend(mean, previous_mean)

        analyses.append(analysis)
        previous_mean = mean

    return analyses


def _best_and_worst(months: List[MonthlyAnalysis]):
    if not months:
        return PLACEHOLDER_SOURCE, PLACEHOLDER_SOURCE
    ranked = sorted(months, key=lambda m: m.avg_index)
    return ranked[0].month_name, ranked[-1].month_name


def _half_trend(months: List[MonthlyAnalysis]) -> str:
    """First half of the months vs second half"""
    if len(months) < 2:
        return "stable"
    middle = len(months) // 2
    first = float(np.mean([m.avg_index for m in months[:middle]]))
    second = float(np.mean([m.avg_index for m in months[middle:]]))
    return classify_trend(second, first)


def analyze_weekly(data: PointsLike, end_day: Optional[date] = None) -> List[WeeklyDay]:
    """
    One entry per day for the 7 days ending at end_day

    Days missing from the series become placeholders with source "N/A".
    """
    points = _points_of(data)
    if end_day is None:
        end_day = points[-1].day if points else date.today()

    by_date = {p.date: p for p in points}
    week = []
    for offset in range(6, -1, -1):
        day = (end_day - timedelta(days=offset)).isoformat()
        point = by_date.get(day)
        if point is None:
            week.append(WeeklyDay(date=day, index=0, pm25=0.0, pm10=0.0,
                                  source=PLACEHOLDER_SOURCE, confidence=0.0))
        else:
            week.append(WeeklyDay(date=day, index=point.index, pm25=point.pm25, pm10=point.pm10,
                                  source=point.source, confidence=point.confidence))
    return week


def analyze_monthly(data: PointsLike) -> List[MonthlyAnalysis]:
    points = _points_of(data)
    _require(points, "monthly analysis")
    return _monthly_breakdown(points)


def analyze_yearly(data: PointsLike) -> List[YearlyAnalysis]:
    points = _points_of(data)
    _require(points, "yearly analysis")

    analyses = []
    previous_mean = None

    for year, year_points in _group(points, 4).items():
        indices = [p.index for p in year_points]
        days = [categorize_day(i) for i in indices]
        mean = float(np.mean(indices))
        months = _monthly_breakdown(year_points)
        best, worst = _best_and_worst(months)

        analysis = YearlyAnalysis(
            year=int(year),
            avg_index=int(round(mean)),
            min_index=int(round(min(indices))),
            max_index=int(round(max(indices))),
            avg_pm25=round(_positive_mean([p.pm25 for p in year_points]), 1),
            avg_pm10=round(_positive_mean([p.pm10 for p in year_points]), 1),
            good_days=days.count('good'),
            moderate_days=days.count('moderate'),
            unhealthy_days=days.count('unhealthy'),
            total_days=len(year_points),
            monthly_breakdown=months,
            best_month=best,
            worst_month=worst,
            overall_trend=_half_trend(months),
        )
        if previous_mean:
            analysis.year_over_year_change = round(change_percent(mean, previous_mean), 1)

        analyses.append(analysis)
        previous_mean = mean

    return analyses


def analyze_pollutant_trend(data: PointsLike, pollutant: str,
                            window_days: int = POLLUTANT_WINDOW_DAYS) -> Optional[PollutantTrend]:
    """
    Current window mean vs the preceding window mean for one pollutant

    Returns None when either window has no positive readings of it.
    """
    if pollutant not in POLLUTANT_KEYS:
        raise ValueError(f"Unknown pollutant '{pollutant}', expected one of {', '.join(POLLUTANT_KEYS)}")

    points = _points_of(data)
    _require(points, f"{pollutant} trend")

    last_day = points[-1].day
    current_start = last_day - timedelta(days=window_days - 1)
    previous_start = current_start - timedelta(days=window_days)

    current = [p.pollutant(pollutant) for p in points if p.day >= current_start]
    previous = [p.pollutant(pollutant) for p in points if previous_start <= p.day < current_start]

    current_avg = _positive_mean(current)
    previous_avg = _positive_mean(previous)
    if not current_avg or not previous_avg:
        logger.info(f"📉 Not enough {pollutant} readings for a trend")
        return None

    change = change_percent(current_avg, previous_avg)
    return PollutantTrend(
        pollutant=pollutant.upper(),
        current_avg=round(current_avg, 1),
        previous_avg=round(previous_avg, 1),
        change_percent=round(change, 1),
        trend=classify_direction(change),
        unit=unit_for_parameter(pollutant),
    )


def analyze_pollutant_trends(data: PointsLike,
                             window_days: int = POLLUTANT_WINDOW_DAYS) -> List[PollutantTrend]:
    """Trend for every pollutant that has readings in both windows"""
    trends = []
    for pollutant in POLLUTANT_KEYS:
        trend = analyze_pollutant_trend(data, pollutant, window_days)
        if trend is not None:
            trends.append(trend)
    return trends


def get_quick_summary(data: PointsLike) -> QuickSummary:
    points = _points_of(data)
    _require(points, "summary")

    last_day = points[-1].day

    def since(days: int) -> List[HistoricalPoint]:
        start = last_day - timedelta(days=days - 1)
        return [p for p in points if p.day >= start]

    last_7 = since(7)
    prior_7 = [p for p in since(14) if p.day < last_day - timedelta(days=6)]
    trend_7 = classify_trend(_mean_index(last_7), _mean_index(prior_7)) if prior_7 else "stable"

    last_30 = since(30)
    # Disjoint halves, 15 + 15 days for a full month
    half = len(last_30) // 2
    first_half, second_half = last_30[:half], last_30[half:]
    trend_30 = classify_trend(_mean_index(second_half), _mean_index(first_half)) if half else "stable"

    last_12_months = since(365)
    months = _monthly_breakdown(last_12_months)
    best, worst = _best_and_worst(months)

    return QuickSummary(
        last_7_days=PeriodSummary(int(round(_mean_index(last_7))), trend_7),
        last_30_days=PeriodSummary(int(round(_mean_index(last_30))), trend_30),
        last_12_months=PeriodSummary(int(round(_mean_index(last_12_months))), _half_trend(months)),
        best_month=best,
        worst_month=worst,
    )
