"""
⚠️ Error taxonomy for the air quality core
==========================================
Provider and training failures are absorbed inside the core and degrade to
"source absent" / "statistical fallback". Only the "no usable data" errors
reach the caller, always with text that can be shown to a user.
"""

from typing import Iterable, Optional


class AirQualityError(Exception):
    """Base class for every error raised by the megam core"""


class ProviderUnavailable(AirQualityError):
    """A single data provider failed, timed out or has no data for the point"""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} unavailable: {reason}")


class NoDataAvailable(AirQualityError):
    """No reading at the exact point and none within the fallback radii"""

    def __init__(self, lat: float, lng: float, radii_km: Iterable[float]):
        self.lat = lat
        self.lng = lng
        self.radii_km = [int(r) if float(r).is_integer() else r for r in radii_km]
        searched = " and ".join(f"{r}km" for r in self.radii_km)
        super().__init__(
            f"No air quality data available for ({lat:.3f}, {lng:.3f}). "
            f"No provider covers this point and no monitoring station was found "
            f"within {searched}. Try a major city nearby."
        )


class InsufficientHistory(AirQualityError):
    """Fewer historical days than an analysis or forecast needs"""

    def __init__(self, required: int, available: int, purpose: Optional[str] = None):
        self.required = required
        self.available = available
        self.purpose = purpose
        what = f" for {purpose}" if purpose else ""
        super().__init__(
            f"Need at least {required} days of history{what} (got {available}). "
            f"Collect a longer history window or try a location with more monitoring data."
        )


class TrainingFailure(AirQualityError):
    """Model construction, training or prediction failed"""
