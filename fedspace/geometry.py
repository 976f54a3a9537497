"""
Geometry helpers for the spatial index.

Distances are great-circle miles on a spherical Earth. Boxes are plain
latitude/longitude rectangles; antimeridian crossing is not special-cased,
which is fine for continental US inventories.
"""

import math
from typing import Iterable

from fedspace.models import BoundingBox

EARTH_RADIUS_MILES = 3959.0

# Hilbert grid resolution (16 bits per axis)
HILBERT_ORDER = 16

# Floor for cos(lat) near the poles so the longitude delta stays finite
_MIN_COS_LAT = 1e-6


# ═══════════════════════════════════════════════════════════════════════════
# DISTANCE
# ═══════════════════════════════════════════════════════════════════════════
def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in miles."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lng2 - lng1)

    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def min_distance_miles(lat: float, lng: float, box: BoundingBox) -> float:
    """
    Lower bound on the distance from a point to anything inside ``box``.

    Takes the larger of two bounds that hold on a sphere: the latitude gap
    (a great circle cannot change latitude faster than its length), and the
    cross-track distance to the nearest meridian the box could occupy.
    A point inside the box gives zero.
    """
    if box.contains_point(lat, lng):
        return 0.0

    lat_gap = max(0.0, box.min_lat - lat, lat - box.max_lat)
    lat_bound = math.radians(lat_gap)

    lng_bound = 0.0
    if not box.min_lng <= lng <= box.max_lng:
        near = min(abs(lng - box.min_lng), abs(lng - box.max_lng))
        far = max(abs(lng - box.min_lng), abs(lng - box.max_lng))
        if far <= 180.0:
            # sin over [near, far] is smallest at an endpoint
            s = min(math.sin(math.radians(near)), math.sin(math.radians(far)))
            lng_bound = math.asin(min(1.0, s * math.cos(math.radians(lat))))

    return EARTH_RADIUS_MILES * max(lat_bound, lng_bound)


# ═══════════════════════════════════════════════════════════════════════════
# BOUNDING BOXES
# ═══════════════════════════════════════════════════════════════════════════
def point_to_bounds(lat: float, lng: float) -> BoundingBox:
    return BoundingBox(min_lat=lat, max_lat=lat, min_lng=lng, max_lng=lng)


def circle_to_bounds(lat: float, lng: float, radius_miles: float) -> BoundingBox:
    """
    Box that fully contains a circle of ``radius_miles`` around a point.

    Longitude degrees shrink with cos(latitude), so the longitude delta is
    widened accordingly: the widest point of a spherical cap of angular
    radius t sits at asin(sin t / cos lat) degrees of longitude. A circle
    reaching a pole spans every longitude. The result is clamped to valid
    coordinates.
    """
    angular = radius_miles / EARTH_RADIUS_MILES
    lat_delta = math.degrees(angular)
    min_lat = lat - lat_delta
    max_lat = lat + lat_delta

    cos_lat = max(math.cos(math.radians(lat)), _MIN_COS_LAT)
    ratio = math.sin(min(angular, math.pi / 2)) / cos_lat
    if max_lat >= 90.0 or min_lat <= -90.0 or ratio >= 1.0:
        lng_delta = 360.0
    else:
        lng_delta = math.degrees(math.asin(ratio))

    return BoundingBox(
        min_lat=max(-90.0, min_lat),
        max_lat=min(90.0, max_lat),
        min_lng=max(-180.0, lng - lng_delta),
        max_lng=min(180.0, lng + lng_delta),
    )


def union_bounds(a: BoundingBox, b: BoundingBox) -> BoundingBox:
    return BoundingBox(
        min_lat=min(a.min_lat, b.min_lat),
        max_lat=max(a.max_lat, b.max_lat),
        min_lng=min(a.min_lng, b.min_lng),
        max_lng=max(a.max_lng, b.max_lng),
    )


def bounds_of(boxes: Iterable[BoundingBox]) -> BoundingBox:
    """Union of a non-empty collection of boxes."""
    iterator = iter(boxes)
    try:
        result = next(iterator)
    except StopIteration:
        raise ValueError("bounds_of() requires at least one box")
    for box in iterator:
        result = union_bounds(result, box)
    return result


def bounds_intersect(a: BoundingBox, b: BoundingBox) -> bool:
    return not (a.max_lat < b.min_lat or a.min_lat > b.max_lat or
                a.max_lng < b.min_lng or a.min_lng > b.max_lng)


def point_in_bounds(lat: float, lng: float, box: BoundingBox) -> bool:
    return box.contains_point(lat, lng)


def bounds_area(box: BoundingBox) -> float:
    return box.area


def overlap_area(a: BoundingBox, b: BoundingBox) -> float:
    """Area of the intersection of two boxes (0 when disjoint)."""
    lat_overlap = min(a.max_lat, b.max_lat) - max(a.min_lat, b.min_lat)
    lng_overlap = min(a.max_lng, b.max_lng) - max(a.min_lng, b.min_lng)
    if lat_overlap <= 0 or lng_overlap <= 0:
        return 0.0
    return lat_overlap * lng_overlap


def enlargement(box: BoundingBox, addition: BoundingBox) -> float:
    """How much area ``box`` must grow to also cover ``addition``."""
    return union_bounds(box, addition).area - box.area


# ═══════════════════════════════════════════════════════════════════════════
# HILBERT CURVE
# ═══════════════════════════════════════════════════════════════════════════
def xy_to_hilbert(x: int, y: int, order: int = HILBERT_ORDER) -> int:
    """Map grid cell (x, y) on a 2**order square to its Hilbert distance."""
    n = 1 << order
    d = 0
    s = n >> 1
    while s > 0:
        rx = 1 if (x & s) else 0
        ry = 1 if (y & s) else 0
        d += s * s * ((3 * rx) ^ ry)
        # Rotate the quadrant so the sub-curve keeps its orientation
        if ry == 0:
            if rx == 1:
                x = n - 1 - x
                y = n - 1 - y
            x, y = y, x
        s >>= 1
    return d


def hilbert_value(lat: float, lng: float, order: int = HILBERT_ORDER) -> int:
    """Hilbert-curve key for a coordinate; nearby points get nearby keys."""
    grid_max = (1 << order) - 1
    x = (lng + 180.0) / 360.0
    y = (lat + 90.0) / 180.0
    ix = min(grid_max, max(0, int(math.floor(x * grid_max))))
    iy = min(grid_max, max(0, int(math.floor(y * grid_max))))
    return xy_to_hilbert(ix, iy, order)
