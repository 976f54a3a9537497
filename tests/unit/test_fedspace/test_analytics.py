import pytest
from dataclasses import replace
from datetime import datetime
from fedspace.analytics import (
    MATCH_COLUMNS,
    NEIGHBORHOOD_COLUMNS,
    match_results_frame,
    neighborhood_scores_frame,
    summarize_match_results,
    summarize_neighborhood_scores,
)
from fedspace.matcher import calculate_property_opportunity_match
from fedspace.models import BrokerExperience, FederalProperty, OpportunityRequirements, PropertyData
from fedspace.neighborhood import calculate_federal_neighborhood_score
from fedspace.spatial_index import FederalPropertyRTree

PROP = PropertyData(
    latitude=38.9072,
    longitude=-77.0369,
    address="1 Test Way",
    city="Washington",
    state="DC",
    zipcode="20001",
    total_sqft=50_000,
    available_sqft=20_000,
    ada_compliant=True,
)
OPP = OpportunityRequirements(state="DC", minimum_rsf=20_000)
BROKER = BrokerExperience(
    government_lease_experience=True,
    gsa_certified=True,
    total_portfolio_sqft=2_000_000,
    references=("a", "b", "c"),
)


@pytest.fixture
def match_results():
    return {
        "perfect": calculate_property_opportunity_match(PROP, OPP, BROKER),
        "wrong_state": calculate_property_opportunity_match(replace(PROP, state="VA"), OPP, BROKER),
        "no_ada": calculate_property_opportunity_match(replace(PROP, ada_compliant=False), OPP, BROKER),
        "errored": None,
    }


def test_match_results_frame(match_results):
    df = match_results_frame(match_results)
    assert list(df.columns) == MATCH_COLUMNS
    assert len(df) == 3
    row = df.set_index("key").loc["wrong_state"]
    assert row["failed_constraint"] == "STATE_MATCH"
    assert row["computation_saved"] == 100
    assert row["location_score"] == 0


def test_summarize_match_results(match_results):
    """Verify rates count each stage against the candidates that reached it."""
    summary = summarize_match_results(match_results)
    assert summary["total"] == 3
    assert summary["qualified"] == 1
    assert summary["qualified_rate"] == 33.3
    assert summary["competitive"] == 1
    assert summary["early_termination_rate"] == 66.7
    assert summary["average_computation_saved"] == 70.0
    assert summary["average_qualified_score"] == 100.0
    assert summary["grade_breakdown"] == {"F": 2, "A+": 1}
    assert summary["observed_disqualification_rates"] == {
        "STATE_MATCH": 33.3,
        "RSF_MINIMUM": 0.0,
        "SET_ASIDE": 0.0,
        "ADA": 50.0,
        "CLEARANCE": 0.0,
    }


def test_summarize_accepts_plain_list(match_results):
    results = [r for r in match_results.values() if r is not None]
    assert summarize_match_results(results)["total"] == 3


def test_summarize_empty():
    summary = summarize_match_results({})
    assert summary["total"] == 0
    assert summary["qualified_rate"] == 0.0
    assert summarize_neighborhood_scores([])["count"] == 0


def test_neighborhood_summary():
    tree = FederalPropertyRTree()
    tree.bulk_load([
        FederalProperty(id=f"n{i}", latitude=38.9 + i * 0.001, longitude=-77.0, rsf=100_000)
        for i in range(10)
    ])
    as_of = datetime(2025, 6, 1)
    scores = {
        "busy": calculate_federal_neighborhood_score(38.9, -77.0, 2, tree, as_of=as_of),
        "empty": calculate_federal_neighborhood_score(45.0, -100.0, 2, tree, as_of=as_of),
    }
    df = neighborhood_scores_frame(scores)
    assert list(df.columns) == NEIGHBORHOOD_COLUMNS
    assert len(df) == 2

    summary = summarize_neighborhood_scores(scores)
    assert summary["count"] == 2
    assert summary["total_rsf"] == 1_000_000
    assert summary["average_properties"] == 5.0
    assert summary["average_score"] == round(scores["busy"].score / 2, 1)
