"""
Federal Neighborhood Score

Rates a point for federal leasing activity from the properties within a
search radius. Six factors, each normalized to 0-100 by stepped lookup
tables, then weighted:

    density          25%   properties per square mile
    lease_activity   25%   share of properties that are leased (optimum 40-60%)
    expiring_leases  20%   leases expiring within 24 months
    demand           15%   total RSF
    vacancy          10%   vacant share of RSF (lower is better)
    growth            5%   share built in the last 5 years
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from fedspace.cache import ScoreCache
from fedspace.config import NeighborhoodSettings, get_settings
from fedspace.index_manager import get_index_manager
from fedspace.models import (
    FactorScore,
    FederalNeighborhoodScore,
    FederalProperty,
    NeighborhoodMetrics,
    ScoreLocation,
)
from fedspace.scoring import assign_grade, check_weights, make_factor, round_half_up, weighted_total
from fedspace.spatial_index import FederalPropertyRTree

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# WEIGHTS AND THRESHOLDS
# ═══════════════════════════════════════════════════════════════════════════
WEIGHTS: Dict[str, float] = {
    "density": 25,
    "lease_activity": 25,
    "expiring_leases": 20,
    "demand": 15,
    "vacancy": 10,
    "growth": 5,
}
check_weights(WEIGHTS)

# (minimum value, score), highest first
DENSITY_STEPS = [(20, 100), (15, 90), (10, 80), (7, 70), (5, 60), (3, 50), (2, 40), (1, 30)]
EXPIRING_STEPS = [(30, 100), (20, 90), (15, 80), (10, 70), (5, 60), (3, 50), (1, 40)]
DEMAND_STEPS = [
    (10_000_000, 100), (5_000_000, 90), (2_000_000, 80), (1_000_000, 70),
    (500_000, 60), (250_000, 50), (100_000, 40),
]
GROWTH_STEPS = [(20, 100), (15, 90), (10, 80), (7, 70), (5, 60), (3, 50)]

# (maximum vacancy %, score), lowest first
VACANCY_STEPS = [(5, 100), (10, 90), (15, 80), (20, 70), (25, 60), (30, 50)]

# Percentile bucket boundaries
PROPERTY_COUNT_THRESHOLDS = [10, 25, 50, 75, 100, 150, 200]
RSF_THRESHOLDS = [100_000, 250_000, 500_000, 1_000_000, 2_000_000, 5_000_000, 10_000_000]
EXPIRING_THRESHOLDS = [1, 3, 5, 10, 15, 20, 30]


def _step_score(value: float, steps: Sequence) -> Optional[float]:
    for minimum, score in steps:
        if value >= minimum:
            return score
    return None


# ═══════════════════════════════════════════════════════════════════════════
# METRICS
# ═══════════════════════════════════════════════════════════════════════════
def calculate_metrics(
    properties: Iterable[FederalProperty],
    radius_miles: float,
    as_of: Optional[date] = None,
    settings: Optional[NeighborhoodSettings] = None,
) -> NeighborhoodMetrics:
    """
    Aggregate the properties found in a radius.

    Properties without a lease expiration or construction year simply do not
    count toward the expiring-lease or recent-construction totals.
    """
    settings = settings or get_settings().neighborhood
    today = as_of or date.today()
    expiry_cutoff = today + timedelta(days=settings.expiring_window_days)
    recent_year = today.year - settings.recent_construction_years

    total = leased = 0
    total_rsf = vacant_rsf = expiring_rsf = 0.0
    expiring = recent = 0

    for prop in properties:
        total += 1
        total_rsf += prop.rsf
        if prop.vacant:
            vacant_rsf += prop.vacant_rsf
        if prop.is_leased:
            leased += 1
            exp = prop.lease_expiration
            if exp is not None and today <= exp <= expiry_cutoff:
                expiring += 1
                expiring_rsf += prop.rsf
        if prop.construction_year is not None and prop.construction_year >= recent_year:
            recent += 1

    return NeighborhoodMetrics(
        total_properties=total,
        leased_properties=leased,
        owned_properties=total - leased,
        total_rsf=total_rsf,
        vacant_rsf=vacant_rsf,
        expiring_leases_count=expiring,
        expiring_leases_rsf=expiring_rsf,
        recent_construction_count=recent,
        search_radius_miles=radius_miles,
    )


# ═══════════════════════════════════════════════════════════════════════════
# FACTORS
# ═══════════════════════════════════════════════════════════════════════════
def density_factor(metrics: NeighborhoodMetrics) -> FactorScore:
    density = metrics.density_per_sq_mile
    score = _step_score(density, DENSITY_STEPS)
    if score is None:
        score = min(30.0, density * 30)
    explanation = (
        f"{metrics.total_properties} federal properties in {metrics.search_radius_miles:g}-mile radius "
        f"({density:.1f} per sq mi)"
    )
    return make_factor(score, WEIGHTS["density"], explanation)


def lease_activity_factor(metrics: NeighborhoodMetrics) -> FactorScore:
    """Bell-shaped: a 40-60% leased mix is the most active leasing market."""
    if metrics.total_properties == 0:
        return make_factor(0, WEIGHTS["lease_activity"], "No federal properties found")

    pct = metrics.lease_percentage
    if 40 <= pct <= 60:
        score = 100.0
    elif 30 <= pct < 40:
        score = 80 + (pct - 30) / 10 * 20
    elif 60 < pct <= 70:
        score = 80 + (70 - pct) / 10 * 20
    elif 20 <= pct < 30:
        score = 60 + (pct - 20) / 10 * 20
    elif 70 < pct <= 80:
        score = 60 + (80 - pct) / 10 * 20
    elif pct < 20:
        score = min(60.0, pct * 3)
    else:
        score = max(40.0, 100 - pct)

    explanation = (
        f"{pct:.1f}% leased ({metrics.leased_properties} leased, {metrics.owned_properties} owned)"
    )
    return make_factor(score, WEIGHTS["lease_activity"], explanation)


def expiring_leases_factor(metrics: NeighborhoodMetrics) -> FactorScore:
    score = _step_score(metrics.expiring_leases_count, EXPIRING_STEPS) or 0
    explanation = (
        f"{metrics.expiring_leases_count} leases expiring in 24 months "
        f"({metrics.expiring_leases_rsf / 1000:,.0f}K RSF)"
    )
    return make_factor(score, WEIGHTS["expiring_leases"], explanation)


def demand_factor(metrics: NeighborhoodMetrics) -> FactorScore:
    score = _step_score(metrics.total_rsf, DEMAND_STEPS)
    if score is None:
        score = min(40.0, metrics.total_rsf / 100_000 * 40)
    explanation = f"{metrics.total_rsf / 1000:,.0f}K total RSF of federal space"
    return make_factor(score, WEIGHTS["demand"], explanation)


def vacancy_factor(metrics: NeighborhoodMetrics) -> FactorScore:
    """Inverted: less vacant space means stronger demand."""
    if metrics.total_rsf == 0:
        return make_factor(0, WEIGHTS["vacancy"], "No federal space found")

    pct = metrics.vacancy_percentage
    score = None
    for maximum, step in VACANCY_STEPS:
        if pct <= maximum:
            score = step
            break
    if score is None:
        score = max(0.0, 100 - pct * 2)

    explanation = f"{pct:.1f}% vacant ({metrics.vacant_rsf / 1000:,.0f}K RSF)"
    return make_factor(score, WEIGHTS["vacancy"], explanation)


def growth_factor(metrics: NeighborhoodMetrics) -> FactorScore:
    if metrics.total_properties == 0:
        return make_factor(0, WEIGHTS["growth"], "No federal properties found")

    pct = metrics.growth_percentage
    score = _step_score(pct, GROWTH_STEPS)
    if score is None:
        score = min(50.0, pct * 16.67)
    explanation = (
        f"{metrics.recent_construction_count} new properties in last 5 years ({pct:.1f}% growth)"
    )
    return make_factor(score, WEIGHTS["growth"], explanation)


FACTOR_FUNCTIONS = {
    "density": density_factor,
    "lease_activity": lease_activity_factor,
    "expiring_leases": expiring_leases_factor,
    "demand": demand_factor,
    "vacancy": vacancy_factor,
    "growth": growth_factor,
}


# ═══════════════════════════════════════════════════════════════════════════
# PERCENTILE
# ═══════════════════════════════════════════════════════════════════════════
def bucket_percentile(value: float, thresholds: List[float]) -> float:
    """Even percentile split across buckets: first threshold the value is below wins."""
    step = 100 / (len(thresholds) + 1)
    for i, threshold in enumerate(thresholds):
        if value < threshold:
            return step * (i + 1)
    return 100.0


def calculate_percentile(metrics: NeighborhoodMetrics) -> int:
    """Blend of property-count (40%), RSF (40%) and expiring-lease (20%) percentiles."""
    blended = (
        bucket_percentile(metrics.total_properties, PROPERTY_COUNT_THRESHOLDS) * 0.4
        + bucket_percentile(metrics.total_rsf, RSF_THRESHOLDS) * 0.4
        + bucket_percentile(metrics.expiring_leases_count, EXPIRING_THRESHOLDS) * 0.2
    )
    return int(round_half_up(blended))


# ═══════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════
def validate_query(latitude: float, longitude: float, radius_miles: float,
                   settings: Optional[NeighborhoodSettings] = None):
    """Raise ValueError for coordinates or radius the scorer will not accept."""
    settings = settings or get_settings().neighborhood
    if not -90 <= latitude <= 90:
        raise ValueError(f"Latitude must be between -90 and 90, got {latitude}")
    if not -180 <= longitude <= 180:
        raise ValueError(f"Longitude must be between -180 and 180, got {longitude}")
    if not 0 < radius_miles <= settings.max_radius_miles:
        raise ValueError(
            f"Radius must be greater than 0 and at most {settings.max_radius_miles:g} miles, got {radius_miles}"
        )


def calculate_federal_neighborhood_score(
    latitude: float,
    longitude: float,
    radius_miles: Optional[float] = None,
    index: Optional[FederalPropertyRTree] = None,
    *,
    as_of: Optional[datetime] = None,
    settings: Optional[NeighborhoodSettings] = None,
    location: Optional[ScoreLocation] = None,
) -> FederalNeighborhoodScore:
    """
    Score a point for federal leasing activity.

    Args:
        latitude: Center latitude
        longitude: Center longitude
        radius_miles: Search radius (defaults to the configured radius, 5 miles)
        index: Spatial index to search. Falls back to the default index
            manager's tree; an unbuilt manager scores as an empty area.
        as_of: Reference time for expiring leases and recent construction
        settings: Override the process settings
        location: Optional city/state/zip to attach to the result

    Returns:
        FederalNeighborhoodScore. Pure with respect to the index contents
        apart from the timestamps.
    """
    settings = settings or get_settings().neighborhood
    if radius_miles is None:
        radius_miles = settings.default_radius_miles
    validate_query(latitude, longitude, radius_miles, settings)

    if index is None:
        index = get_index_manager().index

    calculated_at = as_of or datetime.now()
    nearby = index.search_radius(latitude, longitude, radius_miles)
    metrics = calculate_metrics(nearby, radius_miles, calculated_at.date(), settings)

    factors = {name: fn(metrics) for name, fn in FACTOR_FUNCTIONS.items()}
    score = weighted_total(factors.values())
    grade = assign_grade(score)

    log.debug(
        f"Neighborhood score ({latitude:.4f}, {longitude:.4f}) r={radius_miles:g}: "
        f"{score} ({grade}) from {metrics.total_properties} properties"
    )

    return FederalNeighborhoodScore(
        score=score,
        factors=factors,
        metrics=metrics,
        percentile=calculate_percentile(metrics),
        grade=grade,
        location=location or ScoreLocation(latitude=latitude, longitude=longitude),
        calculated_at=calculated_at,
        expires_at=calculated_at + timedelta(hours=settings.score_ttl_hours),
    )


def score_neighborhood_cached(
    cache: ScoreCache,
    latitude: float,
    longitude: float,
    radius_miles: Optional[float] = None,
    index: Optional[FederalPropertyRTree] = None,
    *,
    settings: Optional[NeighborhoodSettings] = None,
) -> FederalNeighborhoodScore:
    """Return a cached score for (lat, lng, radius) or compute and store one."""
    settings = settings or get_settings().neighborhood
    if radius_miles is None:
        radius_miles = settings.default_radius_miles

    cached = cache.get(latitude, longitude, radius_miles)
    if cached is not None:
        log.debug(f"Score cache hit for ({latitude:.4f}, {longitude:.4f}) r={radius_miles:g}")
        return cached

    score = calculate_federal_neighborhood_score(
        latitude, longitude, radius_miles, index, settings=settings
    )
    cache.put(latitude, longitude, radius_miles, score)
    return score
