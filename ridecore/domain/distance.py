"""
Great-circle geometry helpers.

All distances are Haversine (great-circle) kilometres.  Road distances come
from the routing service or from ``road_circuity_factor`` in the estimator.

Complexity: O(1) per pair, O(n) per path.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def path_distance_km(
    points: Iterable[tuple[float, float]],
    max_segment_km: Optional[float] = None,
) -> tuple[float, int]:
    """
    Sum the great-circle hops between consecutive ``(lat, lng)`` points.

    When *max_segment_km* is set, hops at or above it are treated as GPS
    jumps and left out of the sum.  Returns ``(distance_km, segments_used)``.
    """
    total = 0.0
    used = 0
    prev: Optional[tuple[float, float]] = None
    for point in points:
        if prev is not None:
            hop = haversine_km(prev[0], prev[1], point[0], point[1])
            if max_segment_km is None or hop < max_segment_km:
                total += hop
                used += 1
        prev = point
    return total, used
