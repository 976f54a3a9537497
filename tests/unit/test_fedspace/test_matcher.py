import pytest
from dataclasses import replace
from datetime import date
from unittest.mock import patch
from fedspace.config import MatcherSettings
from fedspace.matcher import calculate_property_opportunity_match
from fedspace.models import (
    BrokerExperience,
    ClearanceLevel,
    DelineatedArea,
    DisqualificationConstraint,
    OpportunityRequirements,
    ParkingInfo,
    PropertyData,
)
from fedspace.scoring import assign_grade

DC_LAT, DC_LNG = 38.9072, -77.0369
SETTINGS = MatcherSettings()


@pytest.fixture
def opportunity():
    return OpportunityRequirements(
        state="DC",
        minimum_rsf=20_000,
        maximum_rsf=24_000,
        city="Washington",
        delineated_area=DelineatedArea(DC_LAT, DC_LNG, 2.0),
        contiguous_required=True,
        building_class=("A+", "A"),
        fiber=True,
        backup_power=True,
        parking_ratio=2.0,
        occupancy_date=date(2026, 1, 1),
        lease_term_years=10,
        notice_id="TEST-001",
    )


@pytest.fixture
def prop():
    return PropertyData(
        latitude=DC_LAT,
        longitude=DC_LNG,
        address="1800 F St NW",
        city="Washington",
        state="dc ",
        zipcode="20405",
        total_sqft=40_000,
        available_sqft=22_000,
        contiguous=True,
        building_class="A",
        ada_compliant=True,
        fiber=True,
        backup_power=True,
        parking=ParkingInfo(spaces=100, ratio=2.5),
        available_date=date(2025, 6, 1),
        lease_term_years=10,
    )


@pytest.fixture
def broker():
    return BrokerExperience(
        government_lease_experience=True,
        government_leases_count=5,
        gsa_certified=True,
        total_portfolio_sqft=1_200_000,
        references=("GSA R11", "DHS", "DOJ"),
    )


def match(prop, opportunity, broker, settings=SETTINGS):
    return calculate_property_opportunity_match(prop, opportunity, broker, settings=settings)


# ═══════════════════════════════════════════════════════════════════════════
# QUALIFIED
# ═══════════════════════════════════════════════════════════════════════════
def test_perfect_match(prop, opportunity, broker):
    """Verify a property meeting every requirement scores 100."""
    result = match(prop, opportunity, broker)
    assert result.qualified
    assert result.competitive
    assert result.score == 100
    assert result.grade == "A+"
    assert result.early_termination is None
    assert result.failed_constraint is None
    assert result.passed_constraints == list(DisqualificationConstraint)
    assert all(f.score == 100 for f in result.factors.values())
    assert len(result.strengths) == 5
    assert result.weaknesses == []
    assert result.recommendations == []
    assert result.computation_time_ms >= 0


def test_unconstrained_opportunity_can_reach_full_score(prop, broker):
    """No city, area, class, fiber, power, parking, or dates required."""
    bare = OpportunityRequirements(state="DC", minimum_rsf=22_000, ada_required=False)
    plain = replace(prop, ada_compliant=True, fiber=False, backup_power=False, parking=None,
                    building_class="C", available_date=None, lease_term_years=None)
    result = match(plain, bare, broker)
    assert result.score == 100


def test_weak_match_insights(prop, opportunity):
    """Verify weak factors surface weaknesses and recommendations."""
    weak = replace(prop, building_class="B", fiber=False, backup_power=False, parking=None,
                   available_date=date(2026, 4, 1), lease_term_years=5)
    result = match(weak, opportunity, BrokerExperience())

    assert result.qualified
    assert result.factors["building"].score == 40
    assert result.factors["timeline"].score == 15
    assert result.factors["experience"].score == 0
    assert "Building lacks some required features" in result.weaknesses
    assert "Limited government leasing experience" in result.weaknesses
    assert "Install fiber connectivity to increase competitiveness" in result.recommendations
    assert "Add backup power systems if feasible" in result.recommendations
    assert "Obtain GSA certification to strengthen proposal" in result.recommendations
    assert "Verify availability date aligns with occupancy requirements" in result.recommendations
    assert result.grade == assign_grade(result.score)
    assert result.competitive == (result.score >= 70)


def test_location_outside_delineated_area(prop, opportunity, broker):
    far = replace(prop, latitude=DC_LAT + 3 / 69.0, city="Arlington")
    result = match(far, opportunity, broker)
    # 40 state + 10 other city + (30 - ~1 mile outside * 3)
    assert 75 < result.factors["location"].score < 78
    assert "Different city" in result.factors["location"].explanation


def test_unknown_contiguity_passes_with_reduced_space_score(prop, opportunity, broker):
    result = match(replace(prop, contiguous=None), opportunity, broker)
    assert result.qualified
    assert result.factors["space"].score == 90


def test_divisible_block_allows_large_building(prop, opportunity, broker):
    big = replace(prop, available_sqft=30_000, min_divisible_sqft=20_000)
    result = match(big, opportunity, broker)
    assert result.qualified


def test_shortfall_tolerance(prop, opportunity, broker):
    """Verify a configured tolerance admits a property slightly under the minimum."""
    short = replace(prop, available_sqft=17_000)
    assert not match(short, opportunity, broker).qualified

    result = match(short, opportunity, broker, MatcherSettings(rsf_shortfall_tolerance=0.2))
    assert result.qualified
    assert result.factors["space"].score == 80


def test_competitive_threshold_setting(prop, opportunity):
    result = match(prop, opportunity, BrokerExperience(), MatcherSettings(competitive_threshold=95))
    assert result.qualified
    assert result.score == 90
    assert not result.competitive


# ═══════════════════════════════════════════════════════════════════════════
# EARLY TERMINATION
# ═══════════════════════════════════════════════════════════════════════════
def test_state_mismatch_skips_scoring(prop, opportunity, broker):
    """Verify no factor function runs once the state check fails."""
    with patch("fedspace.matcher.location_factor") as location, \
            patch("fedspace.matcher.space_factor") as space, \
            patch("fedspace.matcher.building_factor") as building, \
            patch("fedspace.matcher.timeline_factor") as timeline, \
            patch("fedspace.matcher.experience_factor") as experience:
        result = match(replace(prop, state="VA"), opportunity, broker)

    for mock in (location, space, building, timeline, experience):
        mock.assert_not_called()

    assert not result.qualified
    assert not result.competitive
    assert result.score == 0
    assert result.grade == "F"
    assert result.failed_constraint is DisqualificationConstraint.STATE_MATCH
    assert result.stopped_at_stage == 0
    assert result.early_termination.computation_saved == 100
    assert result.passed_constraints == []
    assert result.strengths == []
    assert result.weaknesses == [result.reason]
    assert result.recommendations[0] == "Property failed state match requirement"
    assert all(f.score == 0 and f.weighted == 0 for f in result.factors.values())
    assert all(f.explanation == "Not calculated - early termination" for f in result.factors.values())


@pytest.mark.parametrize("change,opp_change,constraint,stage,saved", [
    ({"available_sqft": 15_000}, {}, DisqualificationConstraint.RSF_MINIMUM, 1, 80),
    ({"available_sqft": 30_000}, {}, DisqualificationConstraint.RSF_MINIMUM, 1, 80),
    ({"contiguous": False}, {}, DisqualificationConstraint.RSF_MINIMUM, 1, 80),
    ({}, {"set_aside": "SBA"}, DisqualificationConstraint.SET_ASIDE, 2, 60),
    ({"ada_compliant": False}, {}, DisqualificationConstraint.ADA, 3, 40),
    ({}, {"scif_required": True}, DisqualificationConstraint.CLEARANCE, 4, 20),
    ({}, {"clearance_required": ClearanceLevel.SECRET}, DisqualificationConstraint.CLEARANCE, 4, 20),
])
def test_each_constraint_disqualifies(prop, opportunity, broker, change, opp_change, constraint, stage, saved):
    result = match(replace(prop, **change), replace(opportunity, **opp_change), broker)
    assert not result.qualified
    assert result.failed_constraint is constraint
    assert result.stopped_at_stage == stage
    assert result.early_termination.computation_saved == saved
    assert result.passed_constraints == list(DisqualificationConstraint)[:stage]
    data = result.to_dict()
    assert data["early_termination"]["failed_constraint"] == constraint.value


def test_set_aside_and_clearance_pass_when_held(prop, opportunity, broker):
    opp = replace(opportunity, set_aside="SBA", scif_required=True,
                  clearance_required=ClearanceLevel.SECRET)
    holder = replace(prop, set_aside_eligible=("sba",), scif_capable=True,
                     security_clearance=ClearanceLevel.TOP_SECRET)
    result = match(holder, opp, broker)
    assert result.qualified
    assert result.passed_constraints[-1] is DisqualificationConstraint.CLEARANCE


def test_first_failure_wins(prop, opportunity, broker):
    """A property failing several constraints reports the earliest one."""
    bad = replace(prop, state="MD", available_sqft=100, ada_compliant=False)
    assert match(bad, opportunity, broker).failed_constraint is DisqualificationConstraint.STATE_MATCH
