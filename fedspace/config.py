"""
Configuration for the FedSpace engine.

All tunables live here as dataclasses with explicit defaults - no magic
numbers buried in the scoring code. ``FedSpaceSettings.from_env()`` lets a
deployment override any of them through ``FEDSPACE_*`` environment variables.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional
import logging

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# SPATIAL INDEX
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class RTreeConfig:
    """Fan-out limits for the R-Tree."""
    max_entries: int = 9
    min_entries: int = 4
    bulk_load: bool = True      # Use Hilbert packing in bulk_load()

    def __post_init__(self):
        if self.min_entries < 1:
            raise ValueError(f"min_entries must be >= 1, got {self.min_entries}")
        if self.max_entries < 2 * self.min_entries:
            raise ValueError(
                f"max_entries ({self.max_entries}) must be at least 2 * min_entries ({self.min_entries})"
            )

    def to_dict(self) -> Dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class NeighborhoodSettings:
    """Knobs for the Federal Neighborhood Score."""
    default_radius_miles: float = 5.0
    max_radius_miles: float = 100.0
    score_ttl_hours: float = 24.0
    expiring_window_days: int = 24 * 30     # 24 thirty-day months
    recent_construction_years: int = 5

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class MatcherSettings:
    """Knobs for the property-opportunity matcher."""
    competitive_threshold: float = 70.0
    # Fraction of the minimum RSF a property may fall short by and still pass
    rsf_shortfall_tolerance: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.rsf_shortfall_tolerance < 1.0:
            raise ValueError(
                f"rsf_shortfall_tolerance must be in [0, 1), got {self.rsf_shortfall_tolerance}"
            )

    def to_dict(self) -> Dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
# DATA SOURCES
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class IOLPSettings:
    """GSA Inventory of Owned and Leased Properties (HIFLD ArcGIS feature service)."""
    base_url: str = (
        "https://maps.nccs.nasa.gov/mapping/rest/services/hifld_open/government/FeatureServer"
    )
    buildings_layer: int = 3
    leases_layer: int = 4
    page_size: int = 2000
    max_pages: int = 50
    timeout: int = 30
    cache_path: str = "iolp_cache.db"
    cache_ttl_hours: float = 24.0
    min_request_interval: float = 1.0

    def to_dict(self) -> Dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
# AGGREGATE
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class FedSpaceSettings:
    """Everything the engine can be configured with."""
    rtree: RTreeConfig = field(default_factory=RTreeConfig)
    neighborhood: NeighborhoodSettings = field(default_factory=NeighborhoodSettings)
    matcher: MatcherSettings = field(default_factory=MatcherSettings)
    iolp: IOLPSettings = field(default_factory=IOLPSettings)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "FedSpaceSettings":
        return cls(
            rtree=RTreeConfig(**data.get("rtree", {})),
            neighborhood=NeighborhoodSettings(**data.get("neighborhood", {})),
            matcher=MatcherSettings(**data.get("matcher", {})),
            iolp=IOLPSettings(**data.get("iolp", {})),
        )

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "FedSpaceSettings":
        """
        Build settings from ``FEDSPACE_*`` environment variables.

        Unset variables keep their defaults. Unparseable values raise
        ValueError so a bad deployment fails at startup.
        """
        env = os.environ if environ is None else environ
        overrides: Dict[str, Dict] = {"rtree": {}, "neighborhood": {}, "matcher": {}, "iolp": {}}

        for env_key, (section, attr, cast) in _ENV_VARS.items():
            raw = env.get(env_key)
            if raw is None or raw == "":
                continue
            try:
                overrides[section][attr] = cast(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {env_key}: {raw!r}")
            log.debug(f"Config override {env_key}={raw}")

        return cls.from_dict(overrides)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(raw)


_ENV_VARS = {
    "FEDSPACE_RTREE_MAX_ENTRIES": ("rtree", "max_entries", int),
    "FEDSPACE_RTREE_MIN_ENTRIES": ("rtree", "min_entries", int),
    "FEDSPACE_RTREE_BULK_LOAD": ("rtree", "bulk_load", _parse_bool),
    "FEDSPACE_DEFAULT_RADIUS_MILES": ("neighborhood", "default_radius_miles", float),
    "FEDSPACE_MAX_RADIUS_MILES": ("neighborhood", "max_radius_miles", float),
    "FEDSPACE_SCORE_TTL_HOURS": ("neighborhood", "score_ttl_hours", float),
    "FEDSPACE_COMPETITIVE_THRESHOLD": ("matcher", "competitive_threshold", float),
    "FEDSPACE_RSF_SHORTFALL_TOLERANCE": ("matcher", "rsf_shortfall_tolerance", float),
    "FEDSPACE_IOLP_BASE_URL": ("iolp", "base_url", str),
    "FEDSPACE_IOLP_CACHE_PATH": ("iolp", "cache_path", str),
    "FEDSPACE_IOLP_TIMEOUT": ("iolp", "timeout", int),
    "FEDSPACE_IOLP_PAGE_SIZE": ("iolp", "page_size", int),
}


# Singleton
_settings: Optional[FedSpaceSettings] = None


def get_settings() -> FedSpaceSettings:
    """Get the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = FedSpaceSettings.from_env()
    return _settings


def reset_settings():
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
