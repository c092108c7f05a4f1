# fibertrace/basic/distance_utils.py
# Geographic distance and polyline helpers for cable geometry.

import logging

logger = logging.getLogger(__name__)


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth in meters.
    Inputs are in decimal degrees.
    """
    # Earth radius in meters
    R = 6371000
    from math import radians, sin, cos, sqrt, atan2

    phi1, phi2 = radians(lat1), radians(lat2)
    dphi = radians(lat2 - lat1)
    dlambda = radians(lon2 - lon1)

    a = sin(dphi/2)**2 + cos(phi1) * cos(phi2) * sin(dlambda/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return R * c


def segment_lengths(points) -> list[float]:
    """Haversine length of each consecutive (lat, lon) segment."""
    return [haversine(a[0], a[1], b[0], b[1]) for a, b in zip(points, points[1:])]


def polyline_length_m(points) -> float:
    """Total haversine length of a (lat, lon) polyline; 0 for fewer than 2 points."""
    return sum(segment_lengths(points))


def point_along_polyline(points, fraction: float) -> tuple[float, float] | None:
    """
    Return the (lat, lon) that sits `fraction` (0..1) of the way along a polyline,
    measured by cumulative segment length.

      • fewer than 1 point → None
      • single point or zero-length polyline → the first point
      • fraction is clamped to [0, 1]
    """
    pts = list(points or [])
    if not pts:
        return None
    if len(pts) == 1:
        return pts[0]

    fraction = min(1.0, max(0.0, fraction))
    seglens = segment_lengths(pts)
    total = sum(seglens)
    if total <= 0:
        return pts[0]

    target = total * fraction
    walked = 0.0
    for (a, b), seg in zip(zip(pts, pts[1:]), seglens):
        if seg > 0 and walked + seg >= target:
            ratio = (target - walked) / seg
            return (a[0] + (b[0] - a[0]) * ratio, a[1] + (b[1] - a[1]) * ratio)
        walked += seg
    return pts[-1]
