"""
FedSpace: federal-property spatial scoring and matching engine.
Contains the R-Tree index, the Federal Neighborhood Score, and the
property-opportunity matcher.
"""

from fedspace.models import (
    FederalProperty,
    OwnershipType,
    BoundingBox,
    FactorScore,
    NeighborhoodMetrics,
    FederalNeighborhoodScore,
    PropertyData,
    OpportunityRequirements,
    BrokerExperience,
    MatchingResult,
    ClearanceLevel,
    DisqualificationConstraint,
)
from fedspace.config import FedSpaceSettings, RTreeConfig, get_settings
from fedspace.spatial_index import FederalPropertyRTree, IndexCorruptionError
from fedspace.index_manager import SpatialIndexManager, get_index_manager
from fedspace.neighborhood import calculate_federal_neighborhood_score
from fedspace.matcher import calculate_property_opportunity_match
from fedspace.requirements import extract_opportunity_requirements, RequirementsBuilder
from fedspace.cache import ScoreCache

__all__ = [
    # Models
    "FederalProperty",
    "OwnershipType",
    "BoundingBox",
    "FactorScore",
    "NeighborhoodMetrics",
    "FederalNeighborhoodScore",
    "PropertyData",
    "OpportunityRequirements",
    "BrokerExperience",
    "MatchingResult",
    "ClearanceLevel",
    "DisqualificationConstraint",
    # Configuration
    "FedSpaceSettings",
    "RTreeConfig",
    "get_settings",
    # Spatial index
    "FederalPropertyRTree",
    "IndexCorruptionError",
    "SpatialIndexManager",
    "get_index_manager",
    # Scoring
    "calculate_federal_neighborhood_score",
    "calculate_property_opportunity_match",
    "extract_opportunity_requirements",
    "RequirementsBuilder",
    "ScoreCache",
]
