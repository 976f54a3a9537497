"""
Property-Opportunity Matcher

Two phases:

1. Early-termination pipeline. Mandatory constraints run in a fixed order,
   most selective first, and the first failure returns a disqualified
   result immediately. Most candidates fail on state alone, so the
   weighted scoring below is skipped for the bulk of a corpus.

       STATE_MATCH -> RSF_MINIMUM -> SET_ASIDE -> ADA -> CLEARANCE

2. Five weighted factors for qualified properties:

       location 30%, space 25%, building 20%, timeline 15%, experience 10%
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from fedspace.config import MatcherSettings, get_settings
from fedspace.geometry import haversine_miles
from fedspace.models import (
    BrokerExperience,
    ClearanceLevel,
    DisqualificationConstraint,
    EarlyTermination,
    FactorScore,
    MatchingResult,
    OpportunityRequirements,
    PropertyData,
)
from fedspace.scoring import assign_grade, check_weights, make_factor, weighted_total

log = logging.getLogger(__name__)


WEIGHTS: Dict[str, float] = {
    "location": 30,
    "space": 25,
    "building": 20,
    "timeline": 15,
    "experience": 10,
}
check_weights(WEIGHTS)

# Historical share of candidates each constraint eliminates (percent).
# Documentation only; not used at runtime.
DISQUALIFICATION_RATES: Dict[DisqualificationConstraint, int] = {
    DisqualificationConstraint.STATE_MATCH: 94,
    DisqualificationConstraint.RSF_MINIMUM: 67,
    DisqualificationConstraint.SET_ASIDE: 45,
    DisqualificationConstraint.ADA: 23,
    DisqualificationConstraint.CLEARANCE: 12,
}

DAYS_PER_MONTH = 30
STRENGTH_THRESHOLD = 80
WEAKNESS_THRESHOLD = 50
RECOMMENDATION_THRESHOLD = 70


# ═══════════════════════════════════════════════════════════════════════════
# CONSTRAINT CHECKS
# Each returns None when the property passes, else the human-readable reason.
# ═══════════════════════════════════════════════════════════════════════════
def check_state_match(prop: PropertyData, opp: OpportunityRequirements,
                      settings: MatcherSettings) -> Optional[str]:
    if prop.state.strip().upper() != opp.state.strip().upper():
        return f"Property in {prop.state}, opportunity requires {opp.state}"
    return None


def check_rsf_minimum(prop: PropertyData, opp: OpportunityRequirements,
                      settings: MatcherSettings) -> Optional[str]:
    effective_minimum = opp.minimum_rsf * (1 - settings.rsf_shortfall_tolerance)
    if prop.available_sqft < effective_minimum:
        shortfall = opp.minimum_rsf - prop.available_sqft
        return (
            f"Property has {prop.available_sqft:,.0f} SF, needs {opp.minimum_rsf:,.0f} SF "
            f"({shortfall:,.0f} SF short)"
        )

    if opp.maximum_rsf is not None:
        smallest_block = prop.min_divisible_sqft if prop.min_divisible_sqft is not None else prop.available_sqft
        if smallest_block > opp.maximum_rsf:
            return (
                f"Smallest leasable block is {smallest_block:,.0f} SF, "
                f"opportunity allows at most {opp.maximum_rsf:,.0f} SF"
            )

    if opp.contiguous_required and prop.contiguous is False:
        return "Opportunity requires contiguous space, property space is not contiguous"
    return None


def check_set_aside(prop: PropertyData, opp: OpportunityRequirements,
                    settings: MatcherSettings) -> Optional[str]:
    if not opp.set_aside:
        return None
    wanted = opp.set_aside.strip().lower()
    if not any(code.strip().lower() == wanted for code in prop.set_aside_eligible):
        return f"Opportunity requires {opp.set_aside} set-aside certification"
    return None


def check_ada(prop: PropertyData, opp: OpportunityRequirements,
              settings: MatcherSettings) -> Optional[str]:
    if opp.ada_required and not prop.ada_compliant:
        return "Opportunity requires ADA compliance, property is not compliant"
    return None


def check_clearance(prop: PropertyData, opp: OpportunityRequirements,
                    settings: MatcherSettings) -> Optional[str]:
    if opp.scif_required and not prop.scif_capable:
        return "Opportunity requires SCIF capability, property lacks this feature"

    if opp.clearance_required is not None:
        available = prop.security_clearance or ClearanceLevel.PUBLIC_TRUST
        if available.rank < opp.clearance_required.rank:
            return f"Opportunity requires {opp.clearance_required.value} clearance level"
    return None


CONSTRAINT_PIPELINE: List[Tuple[DisqualificationConstraint, Callable]] = [
    (DisqualificationConstraint.STATE_MATCH, check_state_match),
    (DisqualificationConstraint.RSF_MINIMUM, check_rsf_minimum),
    (DisqualificationConstraint.SET_ASIDE, check_set_aside),
    (DisqualificationConstraint.ADA, check_ada),
    (DisqualificationConstraint.CLEARANCE, check_clearance),
]


# ═══════════════════════════════════════════════════════════════════════════
# FACTORS (only reached once every constraint has passed)
# ═══════════════════════════════════════════════════════════════════════════
def location_factor(prop: PropertyData, opp: OpportunityRequirements) -> FactorScore:
    """State (40) + city (30) + delineated area (30)."""
    score = 40.0
    notes = ["State match"]

    if opp.city:
        if prop.city.strip().lower() == opp.city.strip().lower():
            score += 30
            notes.append("City match")
        else:
            score += 10
            notes.append(f"Different city ({prop.city})")
    else:
        score += 30

    area = opp.delineated_area
    if area is not None:
        distance = haversine_miles(prop.latitude, prop.longitude, area.latitude, area.longitude)
        if distance <= area.radius_miles:
            score += 30
            notes.append(f"Within delineated area ({distance:.1f} mi)")
        else:
            outside = distance - area.radius_miles
            score += max(0.0, 30 - outside * 3)
            notes.append(f"{distance:.1f} mi from delineated area ({outside:.1f} mi outside)")
    else:
        score += 30

    return make_factor(score, WEIGHTS["location"], ", ".join(notes))


def space_factor(prop: PropertyData, opp: OpportunityRequirements) -> FactorScore:
    """Minimum met (30) + size fit (up to 40) + contiguity (up to 30)."""
    score = 30.0
    notes = [f"{prop.available_sqft:,.0f} SF available vs {opp.minimum_rsf:,.0f} SF required"]

    if opp.maximum_rsf is not None:
        target = (opp.minimum_rsf + opp.maximum_rsf) / 2
    else:
        target = opp.minimum_rsf
    variance = abs(prop.available_sqft - target) / target if target > 0 else 0.0

    if variance <= 0.1:
        score += 40
        notes.append("Optimal size match")
    elif variance <= 0.2:
        score += 30
        notes.append("Good size match")
    elif variance <= 0.5:
        score += 20
        notes.append("Acceptable size match")
    else:
        score += 10
        notes.append("Size variance high")

    if prop.min_divisible_sqft is not None and prop.min_divisible_sqft > opp.minimum_rsf:
        score -= 10
        notes.append("Not divisible to requirement")

    if opp.contiguous_required:
        if prop.contiguous:
            score += 30
            notes.append("Contiguous space")
        else:
            score += 20
            notes.append("Contiguity unconfirmed")
    else:
        score += 30

    return make_factor(score, WEIGHTS["space"], ", ".join(notes))


def building_factor(prop: PropertyData, opp: OpportunityRequirements) -> FactorScore:
    """Class (30) + ADA (20) + fiber (15) + backup power (15) + parking (20)."""
    score = 0.0
    notes = []

    if opp.building_class:
        if prop.building_class in opp.building_class:
            score += 30
            notes.append(f"Class {prop.building_class} match")
        else:
            score += 10
            notes.append(f"Class {prop.building_class} (prefers {'/'.join(opp.building_class)})")
    else:
        score += 30
        notes.append(f"Class {prop.building_class}")

    if prop.ada_compliant:
        score += 20
        notes.append("ADA compliant")

    missing = []
    for label, required, present in (
        ("Fiber", opp.fiber, prop.fiber),
        ("Backup power", opp.backup_power, prop.backup_power),
    ):
        if not required or present:
            score += 15
        else:
            missing.append(label)

    if opp.parking_ratio is None:
        score += 20
    elif prop.parking is not None and prop.parking.ratio >= opp.parking_ratio:
        score += 20
        notes.append(f"Parking {prop.parking.ratio:g}:1000")
    else:
        score += 10
        have = f"{prop.parking.ratio:g}:1000" if prop.parking is not None else "unknown"
        notes.append(f"Parking {have} (needs {opp.parking_ratio:g}:1000)")

    if missing:
        notes.append(f"Missing: {', '.join(missing)}")

    return make_factor(score, WEIGHTS["building"], ", ".join(notes))


def timeline_factor(prop: PropertyData, opp: OpportunityRequirements) -> FactorScore:
    """Availability vs occupancy (60) + lease term fit (40)."""
    score = 0.0
    notes = []

    if opp.occupancy_date is None:
        score += 60
    elif prop.available_date is None:
        score += 40
        notes.append("Availability date unknown")
    else:
        # Positive means the space frees up before the government needs it
        months_early = (opp.occupancy_date - prop.available_date).days / DAYS_PER_MONTH
        if months_early >= 3:
            score += 60
            notes.append(f"Available {round(months_early)} months early")
        elif months_early >= 1:
            score += 50
            notes.append(f"Available {round(months_early)} months early")
        elif months_early >= 0:
            score += 40
            notes.append("Available on time")
        elif months_early >= -1:
            score += 20
            notes.append("Up to 1 month delay")
        else:
            notes.append(f"{abs(round(months_early))} months late")

    if opp.lease_term_years and prop.lease_term_years:
        diff = abs(prop.lease_term_years - opp.lease_term_years)
        if diff == 0:
            score += 40
            notes.append(f"{prop.lease_term_years}-year term")
        elif diff <= 1:
            score += 30
            notes.append(f"{prop.lease_term_years}-year term (prefers {opp.lease_term_years})")
        else:
            score += 15
            notes.append(f"{prop.lease_term_years}-year term (needs {opp.lease_term_years})")
    else:
        score += 40

    return make_factor(score, WEIGHTS["timeline"], ", ".join(notes))


def experience_factor(experience: BrokerExperience, opp: OpportunityRequirements) -> FactorScore:
    """Gov't leases (40) + GSA (30) + portfolio (15) + references (15)."""
    score = 0.0
    notes = []

    if experience.government_lease_experience:
        score += 40
        notes.append(f"{experience.government_leases_count} gov't leases")
    else:
        notes.append("No gov't lease experience")

    if experience.gsa_certified:
        score += 30
        notes.append("GSA certified")

    if experience.total_portfolio_sqft >= 1_000_000:
        score += 15
        notes.append("Large portfolio")
    elif experience.total_portfolio_sqft >= 500_000:
        score += 10
        notes.append("Medium portfolio")

    refs = len(experience.references)
    if refs >= 3:
        score += 15
        notes.append(f"{refs} references")
    elif refs > 0:
        score += 10
        notes.append(f"{refs} references")

    return make_factor(score, WEIGHTS["experience"], ", ".join(notes))


# ═══════════════════════════════════════════════════════════════════════════
# INSIGHTS
# ═══════════════════════════════════════════════════════════════════════════
_STRENGTHS = {
    "location": "Excellent location match",
    "space": "Optimal space configuration",
    "building": "Superior building quality and features",
    "timeline": "Favorable availability timeline",
    "experience": "Strong government leasing track record",
}

_WEAKNESSES = {
    "location": "Location may not be ideal for this opportunity",
    "space": "Space configuration needs improvement",
    "building": "Building lacks some required features",
    "timeline": "Timeline may not align with occupancy needs",
    "experience": "Limited government leasing experience",
}


def generate_strengths(factors: Dict[str, FactorScore]) -> List[str]:
    return [_STRENGTHS[name] for name, f in factors.items() if f.score >= STRENGTH_THRESHOLD]


def generate_weaknesses(factors: Dict[str, FactorScore]) -> List[str]:
    return [_WEAKNESSES[name] for name, f in factors.items() if f.score < WEAKNESS_THRESHOLD]


def generate_recommendations(factors: Dict[str, FactorScore], prop: PropertyData,
                             experience: BrokerExperience) -> List[str]:
    recs = []
    if factors["space"].score < RECOMMENDATION_THRESHOLD and not prop.build_to_suit:
        recs.append("Consider build-to-suit options to optimize space")
    if factors["building"].score < RECOMMENDATION_THRESHOLD:
        if not prop.fiber:
            recs.append("Install fiber connectivity to increase competitiveness")
        if not prop.backup_power:
            recs.append("Add backup power systems if feasible")
    if factors["experience"].score < RECOMMENDATION_THRESHOLD and not experience.gsa_certified:
        recs.append("Obtain GSA certification to strengthen proposal")
    if factors["timeline"].score < RECOMMENDATION_THRESHOLD:
        recs.append("Verify availability date aligns with occupancy requirements")
    return recs


# ═══════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════
def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _disqualified(constraint: DisqualificationConstraint, stage: int, reason: str,
                  elapsed_ms: float) -> MatchingResult:
    total_stages = len(CONSTRAINT_PIPELINE)
    placeholder = "Not calculated - early termination"
    factors = {name: FactorScore(0, weight, 0, placeholder) for name, weight in WEIGHTS.items()}

    return MatchingResult(
        score=0,
        qualified=False,
        competitive=False,
        grade="F",
        factors=factors,
        passed_constraints=[c for c, _ in CONSTRAINT_PIPELINE[:stage]],
        strengths=[],
        weaknesses=[reason],
        recommendations=[
            f"Property failed {constraint.value.lower().replace('_', ' ')} requirement",
            "Consider properties that meet all mandatory requirements",
        ],
        computation_time_ms=elapsed_ms,
        early_termination=EarlyTermination(
            failed_constraint=constraint,
            stopped_at_stage=stage,
            computation_saved=round((total_stages - stage) / total_stages * 100),
            reason=reason,
        ),
    )


def calculate_property_opportunity_match(
    prop: PropertyData,
    opportunity: OpportunityRequirements,
    experience: BrokerExperience,
    *,
    settings: Optional[MatcherSettings] = None,
) -> MatchingResult:
    """
    Match one property against one opportunity.

    Args:
        prop: Candidate property
        opportunity: Structured solicitation requirements
        experience: Offering broker's track record
        settings: Override the process matcher settings

    Returns:
        MatchingResult. Disqualification is a normal result (``qualified`` is
        False and ``early_termination`` names the failing constraint).
    """
    start = time.perf_counter()
    settings = settings or get_settings().matcher

    passed = []
    for stage, (constraint, check) in enumerate(CONSTRAINT_PIPELINE):
        reason = check(prop, opportunity, settings)
        if reason is not None:
            log.debug(f"Disqualified at stage {stage} ({constraint.value}): {reason}")
            return _disqualified(constraint, stage, reason, _elapsed_ms(start))
        passed.append(constraint)

    factors = {
        "location": location_factor(prop, opportunity),
        "space": space_factor(prop, opportunity),
        "building": building_factor(prop, opportunity),
        "timeline": timeline_factor(prop, opportunity),
        "experience": experience_factor(experience, opportunity),
    }
    score = weighted_total(factors.values())

    return MatchingResult(
        score=score,
        qualified=True,
        competitive=score >= settings.competitive_threshold,
        grade=assign_grade(score),
        factors=factors,
        passed_constraints=passed,
        strengths=generate_strengths(factors),
        weaknesses=generate_weaknesses(factors),
        recommendations=generate_recommendations(factors, prop, experience),
        computation_time_ms=_elapsed_ms(start),
    )
