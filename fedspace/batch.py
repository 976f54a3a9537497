"""
Batch helpers: score many locations against one index, match many
properties against many opportunities, and rank candidates for an
opportunity.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from fedspace.matcher import calculate_property_opportunity_match
from fedspace.models import (
    BrokerExperience,
    FederalNeighborhoodScore,
    MatchingResult,
    OpportunityRequirements,
    PropertyData,
)
from fedspace.neighborhood import calculate_federal_neighborhood_score
from fedspace.spatial_index import FederalPropertyRTree

log = logging.getLogger(__name__)

# (candidate id, property, broker experience)
Candidate = Tuple[str, PropertyData, BrokerExperience]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item[name]
    return getattr(item, name)


def batch_neighborhood_scores(
    locations: Iterable[Any],
    radius_miles: Optional[float] = None,
    index: Optional[FederalPropertyRTree] = None,
) -> Dict[str, Optional[FederalNeighborhoodScore]]:
    """
    Score each location against the same index.

    Args:
        locations: Items with ``id``, ``latitude`` and ``longitude`` (mappings
            or objects)
        radius_miles: Search radius for every location
        index: Shared spatial index (default manager's index if omitted)

    Returns:
        {location id: score}, with None for locations that failed validation
    """
    results: Dict[str, Optional[FederalNeighborhoodScore]] = {}
    for loc in locations:
        loc_id = str(_field(loc, "id"))
        try:
            results[loc_id] = calculate_federal_neighborhood_score(
                _field(loc, "latitude"), _field(loc, "longitude"), radius_miles, index
            )
        except ValueError as e:
            log.error(f"Neighborhood score failed for {loc_id}: {e}")
            results[loc_id] = None

    scored = sum(1 for r in results.values() if r is not None)
    log.info(f"Batch neighborhood scoring: {scored}/{len(results)} locations scored")
    return results


def batch_match_scores(
    candidates: Iterable[Candidate],
    opportunities: Mapping[str, OpportunityRequirements],
) -> Dict[str, Optional[MatchingResult]]:
    """
    Match every candidate against every opportunity.

    Returns:
        {"<property id>:<opportunity id>": result}, None where matching raised
        ValueError
    """
    results: Dict[str, Optional[MatchingResult]] = {}
    for prop_id, prop, experience in candidates:
        for opp_id, opportunity in opportunities.items():
            key = f"{prop_id}:{opp_id}"
            try:
                results[key] = calculate_property_opportunity_match(prop, opportunity, experience)
            except ValueError as e:
                log.error(f"Match failed for {key}: {e}")
                results[key] = None
    return results


def find_best_matches(
    opportunity: OpportunityRequirements,
    candidates: Iterable[Candidate],
    limit: int = 10,
) -> List[Tuple[str, MatchingResult]]:
    """
    Qualified candidates for one opportunity, best score first.

    Candidates outside the opportunity's state are dropped before matching.
    """
    state = opportunity.state.strip().upper()
    matches = []
    considered = 0
    for prop_id, prop, experience in candidates:
        if prop.state.strip().upper() != state:
            continue
        considered += 1
        result = calculate_property_opportunity_match(prop, opportunity, experience)
        if result.qualified:
            matches.append((prop_id, result))

    matches.sort(key=lambda m: m[1].score, reverse=True)
    log.info(
        f"Best matches for {opportunity.notice_id or 'opportunity'}: "
        f"{len(matches)} qualified of {considered} in-state candidates"
    )
    return matches[:limit]
