import pytest
from dataclasses import replace
from types import SimpleNamespace
from fedspace.batch import batch_match_scores, batch_neighborhood_scores, find_best_matches
from fedspace.models import BrokerExperience, FederalProperty, OpportunityRequirements, PropertyData
from fedspace.spatial_index import FederalPropertyRTree

BASE = PropertyData(
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
BROKER = BrokerExperience(government_lease_experience=True, gsa_certified=True)


@pytest.fixture
def index():
    tree = FederalPropertyRTree()
    tree.bulk_load([
        FederalProperty(id=f"b{i}", latitude=38.9 + i * 0.001, longitude=-77.0, rsf=50_000)
        for i in range(20)
    ])
    return tree


@pytest.fixture
def candidates():
    return [
        ("exact", BASE, BROKER),
        ("oversized", replace(BASE, available_sqft=35_000), BROKER),
        ("virginia", replace(BASE, state="VA"), BROKER),
        ("small", replace(BASE, available_sqft=5_000), BROKER),
        ("lowercase", replace(BASE, state="dc", available_sqft=24_000), BrokerExperience()),
    ]


def test_batch_neighborhood_scores(index):
    """Verify mappings and objects are both accepted and bad points map to None."""
    locations = [
        {"id": "a", "latitude": 38.9, "longitude": -77.0},
        SimpleNamespace(id="b", latitude=38.95, longitude=-77.0),
        {"id": "bad", "latitude": 120.0, "longitude": -77.0},
    ]
    results = batch_neighborhood_scores(locations, radius_miles=2, index=index)
    assert set(results) == {"a", "b", "bad"}
    assert results["a"].metrics.total_properties == 20
    assert results["b"] is not None
    assert results["bad"] is None


def test_batch_match_scores(candidates):
    opportunities = {
        "opp1": OpportunityRequirements(state="DC", minimum_rsf=20_000),
        "opp2": OpportunityRequirements(state="VA", minimum_rsf=10_000),
    }
    results = batch_match_scores(candidates[:3], opportunities)
    assert len(results) == 6
    assert results["exact:opp1"].qualified
    assert not results["exact:opp2"].qualified
    assert results["virginia:opp2"].qualified


def test_find_best_matches_ranks_qualified_in_state(candidates):
    """Verify out-of-state and disqualified candidates are dropped and the rest ranked."""
    opp = OpportunityRequirements(state="DC", minimum_rsf=20_000)
    ranked = find_best_matches(opp, candidates)
    ids = [pid for pid, _ in ranked]
    assert set(ids) == {"exact", "oversized", "lowercase"}
    scores = [result.score for _, result in ranked]
    assert scores == sorted(scores, reverse=True)
    assert ids[0] == "exact"
    assert all(result.qualified for _, result in ranked)


def test_find_best_matches_limit(candidates):
    opp = OpportunityRequirements(state="DC", minimum_rsf=20_000)
    assert len(find_best_matches(opp, candidates, limit=1)) == 1
    assert find_best_matches(replace(opp, state="WY"), candidates) == []
