"""
GSA IOLP (Inventory of Owned and Leased Properties) loader.

Pulls federal buildings and leases from the HIFLD ArcGIS FeatureServer and
converts them into FederalProperty records for the spatial index.

- Pagination over resultOffset
- Rate limiting between requests
- SQLite caching of raw pages (1 day by default)
- Retry with exponential backoff; a page that still fails raises IOLPFetchError
"""

import time
import sqlite3
import json
import hashlib
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import requests
from tenacity import retry, stop_after_attempt, wait_exponential

from fedspace.config import IOLPSettings, get_settings
from fedspace.models import BoundingBox, FederalProperty, OwnershipType

log = logging.getLogger(__name__)

# Rate limiter shared by all loader instances
_last_request_time = 0.0


class IOLPFetchError(RuntimeError):
    """A layer could not be fetched completely.

    ``features`` holds whatever pages arrived before the failure, so callers
    can tell a partial load from an empty area.
    """

    def __init__(self, layer: int, page: int, features: List[Dict], cause: Exception):
        super().__init__(f"IOLP layer {layer} failed on page {page}: {cause}")
        self.layer = layer
        self.page = page
        self.features = features


class IOLPCache:
    """SQLite cache for raw ArcGIS query pages."""

    def __init__(self, db_path: str = "iolp_cache.db", ttl_hours: float = 24.0):
        self.db_path = db_path
        self.ttl_seconds = ttl_hours * 60 * 60
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS iolp_cache (
                query_hash TEXT PRIMARY KEY,
                result_json TEXT,
                created_at REAL
            )
        """)
        conn.execute(
            "DELETE FROM iolp_cache WHERE created_at < ?",
            (time.time() - self.ttl_seconds,)
        )
        conn.commit()
        conn.close()

    def _hash_query(self, url: str, params: Dict[str, Any]) -> str:
        key = url + "?" + json.dumps(params, sort_keys=True)
        return hashlib.md5(key.encode()).hexdigest()

    def get(self, url: str, params: Dict[str, Any]) -> Optional[Dict]:
        conn = sqlite3.connect(self.db_path)
        row = conn.execute(
            "SELECT result_json, created_at FROM iolp_cache WHERE query_hash = ?",
            (self._hash_query(url, params),)
        ).fetchone()
        conn.close()
        if row and time.time() - row[1] < self.ttl_seconds:
            return json.loads(row[0])
        return None

    def set(self, url: str, params: Dict[str, Any], result: Dict):
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            """INSERT OR REPLACE INTO iolp_cache
               (query_hash, result_json, created_at)
               VALUES (?, ?, ?)""",
            (self._hash_query(url, params), json.dumps(result), time.time())
        )
        conn.commit()
        conn.close()


# ═══════════════════════════════════════════════════════════════════════════
# RECORD PARSING
# ═══════════════════════════════════════════════════════════════════════════
def _attr(attrs: Dict[str, Any], *names: str) -> Any:
    """First non-empty attribute among ``names`` (the service mixes cases)."""
    for name in names:
        value = attrs.get(name)
        if value is not None and value != "":
            return value
    return None


def _parse_arcgis_date(value: Any) -> Optional[date]:
    """ArcGIS dates arrive as epoch milliseconds or ISO strings."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date()
        return date.fromisoformat(str(value)[:10])
    except (ValueError, OverflowError, OSError):
        log.debug(f"Unparseable IOLP date: {value!r}")
        return None


def _coordinates(feature: Dict[str, Any]):
    attrs = feature.get("attributes", feature)
    lat = _attr(attrs, "latitude", "LATITUDE")
    lng = _attr(attrs, "longitude", "LONGITUDE")
    geometry = feature.get("geometry") or {}
    if lat is None:
        lat = geometry.get("y")
    if lng is None:
        lng = geometry.get("x")
    if lat is None or lng is None:
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        log.debug(f"Unplaceable IOLP feature coordinates: {lat!r}, {lng!r}")
        return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_building(feature: Dict[str, Any]) -> Optional[FederalProperty]:
    """Convert a buildings-layer feature; None if it cannot be placed or is malformed."""
    attrs = feature.get("attributes", feature)
    coords = _coordinates(feature)
    if coords is None:
        return None

    rsf = float(_attr(attrs, "building_rsf", "RSF") or 0)
    vacant_rsf = float(_attr(attrs, "vacant_rsf", "VACANT_RSF") or 0)
    indicator = str(_attr(attrs, "owned_or_leased_indicator") or "F").upper()

    try:
        return FederalProperty(
            id=f"building_{_attr(attrs, 'OBJECTID', 'objectid')}",
            latitude=coords[0],
            longitude=coords[1],
            rsf=rsf,
            ownership=OwnershipType.LEASED if indicator == "L" else OwnershipType.OWNED,
            vacant=_attr(attrs, "VACANT") == "Y" or vacant_rsf > 0,
            vacant_rsf=vacant_rsf,
            construction_year=_to_int(_attr(attrs, "year_constructed", "YEAR_BUILT")),
            agency=_attr(attrs, "agency_abbr", "AGENCY"),
            city=_attr(attrs, "city", "CITY"),
            state=_attr(attrs, "state", "STATE"),
            zipcode=_attr(attrs, "zipcode", "ZIP"),
        )
    except ValueError as e:
        log.debug(f"Skipping malformed IOLP building: {e}")
        return None


def parse_lease(feature: Dict[str, Any]) -> Optional[FederalProperty]:
    """Convert a leases-layer feature; None if it cannot be placed or is malformed."""
    attrs = feature.get("attributes", feature)
    coords = _coordinates(feature)
    if coords is None:
        return None

    try:
        return FederalProperty(
            id=f"lease_{_attr(attrs, 'OBJECTID', 'objectid')}",
            latitude=coords[0],
            longitude=coords[1],
            rsf=float(_attr(attrs, "building_rsf", "RSF") or 0),
            ownership=OwnershipType.LEASED,
            lease_expiration=_parse_arcgis_date(
                _attr(attrs, "lease_expiration_date", "EXPIRATION_DATE")
            ),
            agency=_attr(attrs, "agency_abbr", "AGENCY"),
            city=_attr(attrs, "city", "CITY"),
            state=_attr(attrs, "state", "STATE"),
            zipcode=_attr(attrs, "zipcode", "ZIP"),
        )
    except ValueError as e:
        log.debug(f"Skipping malformed IOLP lease: {e}")
        return None


# ═══════════════════════════════════════════════════════════════════════════
# LOADER
# ═══════════════════════════════════════════════════════════════════════════
class IOLPLoader:
    """
    Federal buildings and leases from the IOLP feature service.

    Usage:
        loader = IOLPLoader()
        properties = loader.fetch_all()
        manager = SpatialIndexManager(source=loader.fetch_all)
    """

    def __init__(self, settings: Optional[IOLPSettings] = None, cache_path: Optional[str] = None):
        self.settings = settings or get_settings().iolp
        self.cache = IOLPCache(cache_path or self.settings.cache_path, self.settings.cache_ttl_hours)
        self.timeout = self.settings.timeout
        self.session = requests.Session()

    def _rate_limit(self):
        """Ensure we don't exceed rate limits."""
        global _last_request_time
        elapsed = time.time() - _last_request_time
        if elapsed < self.settings.min_request_interval:
            time.sleep(self.settings.min_request_interval - elapsed)
        _last_request_time = time.time()

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=2, min=2, max=15))
    def _make_request(self, url: str, params: Dict[str, Any]) -> Dict:
        """Make a rate-limited request with retry."""
        self._rate_limit()
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        # ArcGIS reports query errors with HTTP 200
        if "error" in data:
            raise RuntimeError(f"ArcGIS error: {data['error']}")
        return data

    def _layer_url(self, layer: int) -> str:
        return f"{self.settings.base_url}/{layer}/query"

    def fetch_layer(self, layer: int, bounds: Optional[BoundingBox] = None) -> List[Dict]:
        """
        Fetch every feature of a layer, page by page.

        Args:
            layer: FeatureServer layer id
            bounds: Optional envelope to restrict the query

        Returns:
            Raw ArcGIS features

        Raises:
            IOLPFetchError: a page failed after retries. Pages fetched before
                the failure are attached to the error.
        """
        url = self._layer_url(layer)
        base_params: Dict[str, Any] = {
            "where": "1=1",
            "outFields": "*",
            "returnGeometry": "true",
            "outSR": 4326,
            "resultRecordCount": self.settings.page_size,
            "f": "json",
        }
        if bounds is not None:
            base_params.update({
                "geometry": f"{bounds.min_lng},{bounds.min_lat},{bounds.max_lng},{bounds.max_lat}",
                "geometryType": "esriGeometryEnvelope",
                "inSR": 4326,
                "spatialRel": "esriSpatialRelIntersects",
            })

        features: List[Dict] = []
        for page in range(self.settings.max_pages):
            params = dict(base_params, resultOffset=page * self.settings.page_size)

            data = self.cache.get(url, params)
            if data is None:
                try:
                    data = self._make_request(url, params)
                except Exception as e:
                    log.error(
                        f"IOLP request failed for layer {layer} page {page} "
                        f"after {len(features)} features: {e}"
                    )
                    raise IOLPFetchError(layer, page, features, e) from e
                self.cache.set(url, params, data)
            else:
                log.debug(f"Cache hit for IOLP layer {layer} page {page}")

            batch = data.get("features", [])
            features.extend(batch)
            if len(batch) < self.settings.page_size and not data.get("exceededTransferLimit"):
                break
        else:
            log.warning(f"IOLP layer {layer} truncated at {self.settings.max_pages} pages")

        log.info(f"IOLP fetched {len(features)} features from layer {layer}")
        return features

    def fetch_buildings(self, bounds: Optional[BoundingBox] = None) -> List[FederalProperty]:
        features = self.fetch_layer(self.settings.buildings_layer, bounds)
        return [p for p in (parse_building(f) for f in features) if p is not None]

    def fetch_leases(self, bounds: Optional[BoundingBox] = None) -> List[FederalProperty]:
        features = self.fetch_layer(self.settings.leases_layer, bounds)
        return [p for p in (parse_lease(f) for f in features) if p is not None]

    def fetch_all(self, bounds: Optional[BoundingBox] = None) -> List[FederalProperty]:
        """Owned buildings followed by leases."""
        properties = self.fetch_buildings(bounds) + self.fetch_leases(bounds)
        log.info(f"IOLP loaded {len(properties)} federal properties")
        return properties


# Singleton
_loader: Optional[IOLPLoader] = None


def get_iolp_loader() -> IOLPLoader:
    """Get singleton IOLP loader."""
    global _loader
    if _loader is None:
        _loader = IOLPLoader()
    return _loader
