"""
🧮 AQI CONVERSION
=================
Deterministic conversions onto the 0-500 index scale.

- PM2.5 (µg/m³): US EPA piecewise-linear breakpoints, 7 bands
  I = ((IHi - ILo) / (BPHi - BPLo)) × (C - BPLo) + ILo
- AOD (satellite aerosol optical depth): coarse empirical step table.
  Satellite-derived, so it carries lower confidence than ground data.
- Ground station shortcut: PM2.5 × 4, else PM10 × 2, independent of the
  EPA table.

Plus EPA category names, colors, summaries and health advisories.
"""

import logging
from typing import Optional, Tuple

from megam.models import INDEX_MAX, INDEX_MIN

logger = logging.getLogger(__name__)

# (BPLo, BPHi, ILo, IHi, category)
PM25_BREAKPOINTS = [
    (0.0, 12.0, 0, 50, "Good"),
    (12.1, 35.4, 51, 100, "Moderate"),
    (35.5, 55.4, 101, 150, "Unhealthy for Sensitive Groups"),
    (55.5, 150.4, 151, 200, "Unhealthy"),
    (150.5, 250.4, 201, 300, "Very Unhealthy"),
    (250.5, 350.4, 301, 400, "Hazardous"),
    (350.5, 500.4, 401, 500, "Hazardous"),
]

# (upper AOD bound, index)
AOD_STEPS = [
    (0.05, 25),
    (0.1, 50),
    (0.2, 75),
    (0.3, 100),
    (0.5, 150),
    (1.0, 200),
]
AOD_ABOVE_SCALE_INDEX = 300

GROUND_PM25_MULTIPLIER = 4
GROUND_PM10_MULTIPLIER = 2
GROUND_DEFAULT_INDEX = 50

# Upper index bound per category
CATEGORY_BANDS = [
    (50, "Good"),
    (100, "Moderate"),
    (150, "Unhealthy for Sensitive Groups"),
    (200, "Unhealthy"),
    (300, "Very Unhealthy"),
    (INDEX_MAX, "Hazardous"),
]

AQI_COLORS = {
    "Good": "#00E400",
    "Moderate": "#FFFF00",
    "Unhealthy for Sensitive Groups": "#FF7E00",
    "Unhealthy": "#FF0000",
    "Very Unhealthy": "#8F3F97",
    "Hazardous": "#7E0023"
}

SUMMARIES = {
    "Good": "Air quality is satisfactory, and air pollution poses little or no risk.",
    "Moderate": ("Air quality is acceptable. However, there may be a risk for some people, "
                 "particularly those who are unusually sensitive to air pollution."),
    "Unhealthy for Sensitive Groups": ("Members of sensitive groups may experience health effects. "
                                       "The general public is less likely to be affected."),
    "Unhealthy": ("Some members of the general public may experience health effects; members of "
                  "sensitive groups may experience more serious health effects."),
    "Very Unhealthy": "Health alert: The risk of health effects is increased for everyone.",
    "Hazardous": "Health warning of emergency conditions: everyone is more likely to be affected.",
}

HEALTH_ADVISORIES = {
    "Good": [
        "Enjoy outdoor activities without restrictions",
        "Perfect time for exercising outside",
    ],
    "Moderate": [
        "Most people can enjoy outdoor activities",
        "Sensitive individuals should limit prolonged outdoor exertion",
        "Consider reducing intense outdoor activities if you experience symptoms",
    ],
    "Unhealthy for Sensitive Groups": [
        "Sensitive groups should reduce prolonged or heavy outdoor exertion",
        "Take more breaks during outdoor activities",
        "Consider moving activities indoors if you experience symptoms",
        "People with asthma should follow their asthma action plans",
    ],
    "Unhealthy": [
        "Everyone should reduce prolonged or heavy outdoor exertion",
        "Sensitive groups should avoid prolonged outdoor activities",
        "Keep windows closed to minimize indoor pollution",
        "Use air purifiers if available",
    ],
    "Very Unhealthy": [
        "Everyone should avoid all outdoor physical activities",
        "Sensitive groups should remain indoors",
        "Keep windows and doors closed",
        "Run air purifiers on high settings",
    ],
    "Hazardous": [
        "Stay indoors with windows and doors closed",
        "Avoid all physical activities, even indoors",
        "Use N95 masks if you must go outside",
        "Seek medical attention if experiencing symptoms",
    ],
}


def pm25_to_index(pm25: float) -> int:
    """
    Convert a PM2.5 concentration (µg/m³) to the 0-500 index

    Each band's upper breakpoint is inclusive; a value falling between two
    bands (e.g. 12.05) is interpolated within the next band. Negative input
    clamps to 0, anything above 500.4 clamps to 500.
    """
    if pm25 is None or pm25 <= 0:
        return INDEX_MIN

    for bp_lo, bp_hi, aqi_lo, aqi_hi, _ in PM25_BREAKPOINTS:
        if pm25 <= bp_hi:
            aqi = ((aqi_hi - aqi_lo) / (bp_hi - bp_lo)) * (pm25 - bp_lo) + aqi_lo
            return int(max(INDEX_MIN, min(INDEX_MAX, round(aqi))))

    logger.debug(f"PM2.5 {pm25} above scale, clamping to {INDEX_MAX}")
    return INDEX_MAX


def aod_to_index(aod: float) -> int:
    """Approximate index from satellite aerosol optical depth (step table)"""
    if aod is None or aod < 0:
        return INDEX_MIN

    for upper, index in AOD_STEPS:
        if aod <= upper:
            return index
    return AOD_ABOVE_SCALE_INDEX


def ground_station_index(pm25: Optional[float] = None, pm10: Optional[float] = None) -> int:
    """Index from a station's latest PM values using the fixed multipliers"""
    if pm25 is not None:
        aqi = pm25 * GROUND_PM25_MULTIPLIER
    elif pm10 is not None:
        aqi = pm10 * GROUND_PM10_MULTIPLIER
    else:
        aqi = GROUND_DEFAULT_INDEX
    return int(max(INDEX_MIN, min(INDEX_MAX, round(aqi))))


def get_aqi_category(aqi: float) -> str:
    for upper, category in CATEGORY_BANDS:
        if aqi <= upper:
            return category
    return "Hazardous"


def get_aqi_color(aqi: float) -> str:
    return AQI_COLORS[get_aqi_category(aqi)]


def categorize_day(aqi: float) -> str:
    """Coarse day bucket used by analytics: good (<=50), moderate (<=100), unhealthy"""
    if aqi <= 50:
        return 'good'
    if aqi <= 100:
        return 'moderate'
    return 'unhealthy'


def generate_summary(aqi: float) -> str:
    return SUMMARIES[get_aqi_category(aqi)]


def generate_health_advisory(aqi: float) -> Tuple[str, ...]:
    return tuple(HEALTH_ADVISORIES[get_aqi_category(aqi)])


def describe_index(aqi: float) -> dict:
    """Category, color, summary and advisories for an index value"""
    category = get_aqi_category(aqi)
    return {
        'aqi': int(round(aqi)),
        'category': category,
        'color': AQI_COLORS[category],
        'summary': SUMMARIES[category],
        'health_advisory': list(HEALTH_ADVISORIES[category]),
    }

