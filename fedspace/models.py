"""
Core data models for the FedSpace scoring engine.

Inputs (properties, opportunities, broker records) are frozen dataclasses so a
record handed to the spatial index or the matcher can never change underneath
it. Outputs carry ``to_dict`` helpers for serialization.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any


# ═══════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════
class OwnershipType(Enum):
    """How the government holds a property."""
    OWNED = "owned"
    LEASED = "leased"


class ClearanceLevel(Enum):
    """Facility security clearance, ordered from lowest to highest."""
    PUBLIC_TRUST = "public_trust"
    SECRET = "secret"
    TOP_SECRET = "top_secret"

    @property
    def rank(self) -> int:
        return _CLEARANCE_ORDER.index(self)


_CLEARANCE_ORDER = [
    ClearanceLevel.PUBLIC_TRUST,
    ClearanceLevel.SECRET,
    ClearanceLevel.TOP_SECRET,
]


class DisqualificationConstraint(Enum):
    """Mandatory constraints, listed in pipeline order."""
    STATE_MATCH = "STATE_MATCH"
    RSF_MINIMUM = "RSF_MINIMUM"
    SET_ASIDE = "SET_ASIDE"
    ADA = "ADA"
    CLEARANCE = "CLEARANCE"


# ═══════════════════════════════════════════════════════════════════════════
# SPATIAL RECORDS
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class FederalProperty:
    """
    A point-located federal real-estate record (owned building or lease).

    All coordinates are in decimal degrees (WGS84). Records are immutable;
    a changed property must be re-inserted or the index rebuilt.
    """
    id: str
    latitude: float
    longitude: float
    rsf: float = 0.0                          # Rentable square feet
    ownership: OwnershipType = OwnershipType.OWNED
    vacant: bool = False
    vacant_rsf: float = 0.0
    lease_expiration: Optional[date] = None
    construction_year: Optional[int] = None
    agency: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range for {self.id}: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range for {self.id}: {self.longitude}")
        if self.rsf < 0:
            raise ValueError(f"RSF must be non-negative for {self.id}: {self.rsf}")
        if self.vacant_rsf < 0:
            raise ValueError(f"Vacant RSF must be non-negative for {self.id}: {self.vacant_rsf}")
        if self.vacant_rsf > self.rsf:
            raise ValueError(
                f"Vacant RSF ({self.vacant_rsf}) exceeds total RSF ({self.rsf}) for {self.id}"
            )

    @property
    def is_leased(self) -> bool:
        return self.ownership is OwnershipType.LEASED

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["ownership"] = self.ownership.value
        if self.lease_expiration is not None:
            data["lease_expiration"] = self.lease_expiration.isoformat()
        return data


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in degrees. A point is a box with min == max."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def area(self) -> float:
        """Area in square degrees (only used for relative comparisons)."""
        return (self.max_lat - self.min_lat) * (self.max_lng - self.min_lng)

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2)

    def contains_point(self, lat: float, lng: float) -> bool:
        return (self.min_lat <= lat <= self.max_lat and
                self.min_lng <= lng <= self.max_lng)

    def contains_box(self, other: "BoundingBox") -> bool:
        return (self.min_lat <= other.min_lat and other.max_lat <= self.max_lat and
                self.min_lng <= other.min_lng and other.max_lng <= self.max_lng)

    def to_dict(self) -> Dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
# SCORE RECORDS
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class FactorScore:
    """One normalized (0-100) factor and its weighted contribution."""
    score: float
    weight: float       # Percent, e.g. 25 for 25%
    weighted: float     # score * weight / 100
    explanation: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class NeighborhoodMetrics:
    """Aggregate counts over the properties found in a search radius."""
    total_properties: int = 0
    leased_properties: int = 0
    owned_properties: int = 0
    total_rsf: float = 0.0
    vacant_rsf: float = 0.0
    expiring_leases_count: int = 0
    expiring_leases_rsf: float = 0.0
    recent_construction_count: int = 0
    search_radius_miles: float = 0.0

    @property
    def search_area_sq_miles(self) -> float:
        return math.pi * self.search_radius_miles ** 2

    @property
    def density_per_sq_mile(self) -> float:
        area = self.search_area_sq_miles
        return self.total_properties / area if area > 0 else 0.0

    @property
    def lease_percentage(self) -> float:
        if self.total_properties == 0:
            return 0.0
        return self.leased_properties / self.total_properties * 100

    @property
    def vacancy_percentage(self) -> float:
        if self.total_rsf == 0:
            return 0.0
        return self.vacant_rsf / self.total_rsf * 100

    @property
    def growth_percentage(self) -> float:
        if self.total_properties == 0:
            return 0.0
        return self.recent_construction_count / self.total_properties * 100

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class ScoreLocation:
    latitude: float
    longitude: float
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None


@dataclass
class FederalNeighborhoodScore:
    """
    Composite federal leasing desirability for a point and radius.

    ``factors`` preserves the order density, lease_activity, expiring_leases,
    demand, vacancy, growth.
    """
    score: float
    factors: Dict[str, FactorScore]
    metrics: NeighborhoodMetrics
    percentile: int
    grade: str
    location: ScoreLocation
    calculated_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) >= self.expires_at

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "factors": {name: f.to_dict() for name, f in self.factors.items()},
            "metrics": self.metrics.to_dict(),
            "percentile": self.percentile,
            "grade": self.grade,
            "location": asdict(self.location),
            "calculated_at": self.calculated_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# MATCHER INPUTS
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class ParkingInfo:
    spaces: int
    ratio: float        # Spaces per 1,000 RSF


@dataclass(frozen=True)
class DelineatedArea:
    """Circle the government requires offered space to fall inside."""
    latitude: float
    longitude: float
    radius_miles: float


@dataclass(frozen=True)
class PropertyData:
    """A candidate property offered against an opportunity."""
    latitude: float
    longitude: float
    address: str
    city: str
    state: str
    zipcode: str
    total_sqft: float
    available_sqft: float
    min_divisible_sqft: Optional[float] = None
    contiguous: Optional[bool] = None
    building_class: str = "B"           # "A+", "A", "B", "C"
    ada_compliant: bool = False
    scif_capable: bool = False
    security_clearance: Optional[ClearanceLevel] = None
    fiber: bool = False
    backup_power: bool = False
    parking: Optional[ParkingInfo] = None
    available_date: Optional[date] = None
    lease_term_years: Optional[int] = None
    build_to_suit: bool = False
    set_aside_eligible: Tuple[str, ...] = ()
    id: Optional[str] = None


@dataclass(frozen=True)
class OpportunityRequirements:
    """Structured requirements of a federal lease solicitation."""
    state: str
    minimum_rsf: float
    city: Optional[str] = None
    delineated_area: Optional[DelineatedArea] = None
    maximum_rsf: Optional[float] = None
    contiguous_required: bool = False
    set_aside: Optional[str] = None
    ada_required: bool = True
    building_class: Optional[Tuple[str, ...]] = None
    clearance_required: Optional[ClearanceLevel] = None
    scif_required: bool = False
    fiber: bool = False
    backup_power: bool = False
    parking_ratio: Optional[float] = None
    occupancy_date: Optional[date] = None
    lease_term_years: Optional[int] = None
    response_deadline: Optional[date] = None

    # Metadata
    notice_id: str = ""
    title: str = ""
    agency: str = ""
    naics_code: Optional[str] = None


@dataclass(frozen=True)
class BrokerExperience:
    """A broker's government leasing track record."""
    government_lease_experience: bool = False
    government_leases_count: int = 0
    gsa_certified: bool = False
    years_in_business: int = 0
    total_portfolio_sqft: float = 0.0
    references: Tuple[str, ...] = ()
    willing_to_build_to_suit: bool = False


# ═══════════════════════════════════════════════════════════════════════════
# MATCHER OUTPUT
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class EarlyTermination:
    failed_constraint: DisqualificationConstraint
    stopped_at_stage: int       # 0-based pipeline index
    computation_saved: int      # Percent of pipeline stages skipped
    reason: str


@dataclass
class MatchingResult:
    """Outcome of matching one property against one opportunity."""
    score: float
    qualified: bool
    competitive: bool
    grade: str
    factors: Dict[str, FactorScore]
    passed_constraints: List[DisqualificationConstraint] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    computation_time_ms: float = 0.0
    early_termination: Optional[EarlyTermination] = None

    @property
    def failed_constraint(self) -> Optional[DisqualificationConstraint]:
        return self.early_termination.failed_constraint if self.early_termination else None

    @property
    def stopped_at_stage(self) -> Optional[int]:
        return self.early_termination.stopped_at_stage if self.early_termination else None

    @property
    def reason(self) -> Optional[str]:
        return self.early_termination.reason if self.early_termination else None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "score": self.score,
            "qualified": self.qualified,
            "competitive": self.competitive,
            "grade": self.grade,
            "factors": {name: f.to_dict() for name, f in self.factors.items()},
            "passed_constraints": [c.value for c in self.passed_constraints],
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "recommendations": list(self.recommendations),
            "computation_time_ms": self.computation_time_ms,
        }
        if self.early_termination is not None:
            et = self.early_termination
            data["early_termination"] = {
                "failed_constraint": et.failed_constraint.value,
                "stopped_at_stage": et.stopped_at_stage,
                "computation_saved": et.computation_saved,
                "reason": et.reason,
            }
        return data
