"""
Distance and partner-compatibility scoring.

Pure functions only: haversine great-circle distance and the 0-100
compatibility heuristic used to rank matchmaking candidates.
"""

import math
from typing import Any, Mapping, Optional, Tuple, Union

from courtside.utils.constants import (
    DEFAULT_MATCH_RATING,
    DISTANCE_DIVISOR,
    DISTANCE_PENALTY_CAP,
    EARTH_RADIUS_KM,
    MAX_SCORE,
    RATING_DIFF_DIVISOR,
    RATING_PENALTY_CAP,
    SKILL_LEVEL_PENALTY,
    SKILL_LEVELS,
)

GeoPoint = Tuple[float, float]
"""(latitude, longitude) in decimal degrees."""


def calculate_distance_km(
    lat1: float, lon1: float, lat2: float, lon2: float, radius_km: float = EARTH_RADIUS_KM
) -> float:
    """
    Great-circle distance between two coordinates using the haversine formula.

    Args:
        lat1, lon1: First point in decimal degrees
        lat2, lon2: Second point in decimal degrees
        radius_km: Sphere radius (Earth by default)

    Returns:
        Distance in kilometers (never negative)
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push a marginally above 1 for antipodal points
    a = min(max(a, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return radius_km * c


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance between two (lat, lon) points."""
    return calculate_distance_km(a[0], a[1], b[0], b[1])


def skill_index(level: Optional[str]) -> int:
    """Ordinal position of a skill level; unknown or missing maps to the lowest."""
    if level is None:
        return 0
    value = getattr(level, "value", level)
    try:
        return SKILL_LEVELS.index(str(value).lower())
    except ValueError:
        return 0


def _coerce_rating(rating: Union[str, float, int, None], default: float) -> float:
    if rating is None or rating == "":
        return default
    try:
        return float(rating)
    except (TypeError, ValueError):
        return default


def _field(user: Any, name: str) -> Any:
    if isinstance(user, Mapping):
        return user.get(name)
    return getattr(user, name, None)


def compatibility_score(
    user_a: Any,
    user_b: Any,
    distance: Optional[float] = None,
    *,
    default_rating: float = DEFAULT_MATCH_RATING,
    rating_divisor: float = RATING_DIFF_DIVISOR,
    rating_cap: float = RATING_PENALTY_CAP,
    skill_penalty: float = SKILL_LEVEL_PENALTY,
    distance_divisor: float = DISTANCE_DIVISOR,
    distance_cap: float = DISTANCE_PENALTY_CAP,
) -> float:
    """
    Score how well two players fit each other, from 0 (poor) to 100 (ideal).

    Starts at 100 and subtracts:
      - min(|rating_a - rating_b| / 10, 30)
      - 10 per step between the two skill levels
      - min(distance / 2, 20) when the distance is known

    Users may be dicts or objects exposing ``rating`` and ``skill_level``.
    Missing ratings count as the midpoint (1500), missing skill as beginner.
    Every term is symmetric so score(a, b) == score(b, a).

    Args:
        user_a: First user
        user_b: Second user
        distance: Distance between them in km, or None if unknown

    Returns:
        Score in [0, 100]
    """
    score = MAX_SCORE

    rating_a = _coerce_rating(_field(user_a, "rating"), default_rating)
    rating_b = _coerce_rating(_field(user_b, "rating"), default_rating)
    score -= min(abs(rating_a - rating_b) / rating_divisor, rating_cap)

    skill_diff = abs(skill_index(_field(user_a, "skill_level")) - skill_index(_field(user_b, "skill_level")))
    score -= skill_diff * skill_penalty

    if distance is not None:
        score -= min(max(distance, 0.0) / distance_divisor, distance_cap)

    return max(score, 0.0)


def skill_in_range(level: Optional[str], minimum: Optional[str], maximum: Optional[str]) -> bool:
    """
    Check that a skill level falls inside an optional [minimum, maximum] band.

    Missing bounds are open (lowest / highest level).
    """
    idx = skill_index(level)
    lo = skill_index(minimum) if minimum else 0
    hi = skill_index(maximum) if maximum else len(SKILL_LEVELS) - 1
    return lo <= idx <= hi
