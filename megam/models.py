"""
📦 Core data types
==================
Normalized shapes shared by the fusion engine, the historical collector,
the analytics engine and the forecast engine. Provider-native payloads never
leave the adapters in `megam.collectors`.

Two confidence scales live side by side, one per entity:
- Reading.confidence is an integer 0-100
- HistoricalPoint.confidence is a fraction 0.0-1.0
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

# Provenance tags for a current Reading
PREMIUM_GROUND = "premium-ground"
GROUND_STATION = "ground-station"
SATELLITE = "satellite"
AGGREGATOR = "aggregator"
HYBRID = "hybrid"

PROVENANCE_TAGS = (PREMIUM_GROUND, GROUND_STATION, SATELLITE, AGGREGATOR, HYBRID)

# Source tags for a HistoricalPoint
INTERPOLATED = "interpolated"

# Fixed feature order for daily pollutant averages
POLLUTANT_KEYS = ("pm25", "pm10", "o3", "no2", "so2", "co")

INDEX_MIN = 0
INDEX_MAX = 500


def clamp_index(value: float) -> int:
    """Round and clamp an index value onto the 0-500 scale"""
    return int(max(INDEX_MIN, min(INDEX_MAX, round(value))))


@dataclass(frozen=True)
class Pollutant:
    """One pollutant measurement inside a Reading"""
    name: str
    concentration: float
    unit: str


@dataclass(frozen=True)
class WeatherSnapshot:
    """Weather reported alongside a reading (premium provider only)"""
    temperature: Optional[float] = None     # Celsius
    humidity: Optional[float] = None        # %
    pressure: Optional[float] = None        # hPa
    wind_speed: Optional[float] = None      # m/s
    wind_direction: Optional[float] = None  # degrees


@dataclass(frozen=True)
class Reading:
    """A single point-in-time air quality observation for one coordinate"""
    lat: float
    lng: float
    index: int
    pollutants: Tuple[Pollutant, ...]
    provenance: str
    confidence: int
    timestamp: datetime
    city: str = ""
    country: str = ""
    weather: Optional[WeatherSnapshot] = None
    summary: str = ""
    health_advisory: Tuple[str, ...] = ()
    nearest_station_distance_km: Optional[float] = None
    sources_available: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.provenance not in PROVENANCE_TAGS:
            raise ValueError(f"Unknown provenance tag: {self.provenance}")
        object.__setattr__(self, "index", clamp_index(self.index))
        object.__setattr__(self, "confidence", int(max(0, min(100, self.confidence))))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["pollutants"] = [asdict(p) for p in self.pollutants]
        data["health_advisory"] = list(self.health_advisory)
        data["sources_available"] = list(self.sources_available)
        return data


@dataclass(frozen=True)
class HistoricalPoint:
    """One calendar day's aggregate for a location"""
    date: str                  # YYYY-MM-DD
    timestamp: datetime        # start of day, UTC
    index: float
    pm25: float = 0.0
    pm10: float = 0.0
    o3: float = 0.0
    no2: float = 0.0
    so2: float = 0.0
    co: float = 0.0
    source: str = GROUND_STATION
    confidence: float = 1.0

    @classmethod
    def for_day(cls, day: date, index: float, **fields) -> "HistoricalPoint":
        start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        return cls(date=day.isoformat(), timestamp=start, index=index, **fields)

    @property
    def day(self) -> date:
        return date.fromisoformat(self.date)

    @property
    def is_interpolated(self) -> bool:
        return self.source == INTERPOLATED

    def pollutant(self, key: str) -> float:
        if key not in POLLUTANT_KEYS:
            raise KeyError(f"Unknown pollutant key: {key}")
        return getattr(self, key)

    def feature_vector(self) -> List[float]:
        """[index, PM2.5, PM10, O3, NO2, SO2, CO]"""
        return [self.index] + [getattr(self, key) for key in POLLUTANT_KEYS]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoricalPoint":
        values = dict(data)
        values["timestamp"] = datetime.fromisoformat(values["timestamp"])
        return cls(**values)


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    city: str = "Unknown"
    country: str = "Unknown"


@dataclass(frozen=True)
class Dataset:
    """Complete, gap-filled daily series for one location"""
    location: Location
    points: Tuple[HistoricalPoint, ...]
    start_date: str
    end_date: str
    requested_days: int
    total_points: int
    completeness: float
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def real_points(self) -> int:
        return sum(1 for p in self.points if not p.is_interpolated)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": asdict(self.location),
            "points": [p.to_dict() for p in self.points],
            "start_date": self.start_date,
            "end_date": self.end_date,
            "requested_days": self.requested_days,
            "total_points": self.total_points,
            "completeness": self.completeness,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dataset":
        return cls(
            location=Location(**data["location"]),
            points=tuple(HistoricalPoint.from_dict(p) for p in data["points"]),
            start_date=data["start_date"],
            end_date=data["end_date"],
            requested_days=data["requested_days"],
            total_points=data["total_points"],
            completeness=data["completeness"],
            generated_at=datetime.fromisoformat(data["generated_at"]),
        )


@dataclass(frozen=True)
class Prediction:
    """One future day's forecast"""
    date: str
    predicted_index: int
    confidence: int
    trend: str                      # improving | stable | worsening
    factors: Tuple[str, ...] = ()
    uncertainty: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["factors"] = list(self.factors)
        return data
