import math
import pytest
from fedspace.geometry import (
    EARTH_RADIUS_MILES,
    haversine_miles,
    min_distance_miles,
    point_to_bounds,
    circle_to_bounds,
    union_bounds,
    bounds_of,
    bounds_intersect,
    overlap_area,
    enlargement,
    xy_to_hilbert,
    hilbert_value,
)
from fedspace.models import BoundingBox


def destination(lat, lng, bearing_deg, distance_miles):
    """Point reached travelling a great-circle distance on a bearing."""
    phi1 = math.radians(lat)
    lam1 = math.radians(lng)
    theta = math.radians(bearing_deg)
    delta = distance_miles / EARTH_RADIUS_MILES
    phi2 = math.asin(math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta))
    lam2 = lam1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lam2)


def test_haversine_zero_distance():
    """Verify identical points are zero miles apart."""
    assert haversine_miles(38.9072, -77.0369, 38.9072, -77.0369) == 0.0


def test_haversine_one_degree_latitude():
    """Verify one degree of latitude is about 69.1 miles."""
    assert haversine_miles(0, 0, 1, 0) == pytest.approx(EARTH_RADIUS_MILES * math.pi / 180, rel=1e-9)


def test_haversine_dc_to_baltimore():
    """Verify a known city-pair distance."""
    d = haversine_miles(38.9072, -77.0369, 39.2904, -76.6122)
    assert 34 < d < 37


def test_haversine_symmetric():
    a = haversine_miles(40.7, -74.0, 34.05, -118.24)
    b = haversine_miles(34.05, -118.24, 40.7, -74.0)
    assert a == pytest.approx(b)


@pytest.mark.parametrize("lat", [0.0, 38.9, 64.8, 80.0, -45.0])
@pytest.mark.parametrize("radius", [0.5, 5.0, 100.0])
def test_circle_bounds_contain_circle(lat, radius):
    """Verify every point on the circle lies inside the computed box."""
    lng = -100.0
    box = circle_to_bounds(lat, lng, radius)
    eps = 1e-9
    for bearing in range(0, 360, 5):
        p_lat, p_lng = destination(lat, lng, bearing, radius)
        assert box.min_lat - eps <= p_lat <= box.max_lat + eps
        assert box.min_lng - eps <= p_lng <= box.max_lng + eps


def test_circle_bounds_near_pole_spans_all_longitudes():
    box = circle_to_bounds(89.99, 10.0, 5)
    assert box.min_lng == -180.0
    assert box.max_lng == 180.0
    assert box.max_lat == 90.0


def test_point_bounds_is_degenerate():
    box = point_to_bounds(1.5, 2.5)
    assert box.area == 0
    assert box.contains_point(1.5, 2.5)


def test_union_and_bounds_of():
    a = BoundingBox(0, 1, 0, 1)
    b = BoundingBox(2, 3, -1, 0.5)
    u = union_bounds(a, b)
    assert u == BoundingBox(0, 3, -1, 1)
    assert bounds_of([a, b]) == u
    with pytest.raises(ValueError):
        bounds_of([])


def test_intersect_and_overlap():
    a = BoundingBox(0, 2, 0, 2)
    b = BoundingBox(1, 3, 1, 3)
    c = BoundingBox(5, 6, 5, 6)
    assert bounds_intersect(a, b)
    assert not bounds_intersect(a, c)
    assert overlap_area(a, b) == pytest.approx(1.0)
    assert overlap_area(a, c) == 0.0
    # Touching edges intersect but share no area
    d = BoundingBox(2, 4, 0, 2)
    assert bounds_intersect(a, d)
    assert overlap_area(a, d) == 0.0


def test_enlargement():
    box = BoundingBox(0, 2, 0, 2)
    assert enlargement(box, point_to_bounds(1, 1)) == 0.0
    assert enlargement(box, point_to_bounds(3, 1)) == pytest.approx(2.0)


def test_min_distance_inside_is_zero():
    box = BoundingBox(38.0, 39.0, -78.0, -77.0)
    assert min_distance_miles(38.5, -77.5, box) == 0.0


def test_min_distance_is_lower_bound():
    box = BoundingBox(38.0, 39.0, -78.0, -77.0)
    lat, lng = 40.0, -76.0
    bound = min_distance_miles(lat, lng, box)
    assert bound > 0
    for corner in [(38.0, -78.0), (38.0, -77.0), (39.0, -78.0), (39.0, -77.0), (38.5, -77.5)]:
        assert bound <= haversine_miles(lat, lng, *corner) + 1e-9


@pytest.mark.parametrize("lat,lng", [(38.5, -75.0), (38.5, -80.0), (41.0, -77.5), (70.0, -77.5), (60.0, -60.0)])
def test_min_distance_never_exceeds_true_distance(lat, lng):
    """Verify the bound holds for a grid of points inside the box."""
    box = BoundingBox(38.0, 39.0, -78.0, -77.0)
    bound = min_distance_miles(lat, lng, box)
    for i in range(11):
        for j in range(11):
            q_lat = box.min_lat + i * 0.1
            q_lng = box.min_lng + j * 0.1
            assert bound <= haversine_miles(lat, lng, q_lat, q_lng) + 1e-9


def test_hilbert_order_one():
    """Verify the canonical first-order curve: (0,0) (0,1) (1,1) (1,0)."""
    assert xy_to_hilbert(0, 0, order=1) == 0
    assert xy_to_hilbert(0, 1, order=1) == 1
    assert xy_to_hilbert(1, 1, order=1) == 2
    assert xy_to_hilbert(1, 0, order=1) == 3


def test_hilbert_is_bijective_and_continuous():
    """Consecutive curve positions are grid neighbours."""
    order = 3
    n = 1 << order
    cells = {}
    for x in range(n):
        for y in range(n):
            cells[xy_to_hilbert(x, y, order)] = (x, y)
    assert sorted(cells) == list(range(n * n))
    for d in range(n * n - 1):
        (x1, y1), (x2, y2) = cells[d], cells[d + 1]
        assert abs(x1 - x2) + abs(y1 - y2) == 1


def test_hilbert_value_range():
    assert hilbert_value(-90, -180) == 0
    top = hilbert_value(90, 180)
    assert 0 <= top < (1 << 32)
