"""
Spatial Index Manager: owns the process's federal-property R-Tree.

Build once, read many, rebuild periodically. Writers are serialized behind a
lock; build() and refresh() bulk-load a brand-new tree and swap it in, so
readers that grabbed the old tree keep searching a consistent snapshot. A
refresh whose source fails leaves the current tree in place.

insert() mutates the current tree in place. Readers must be quiescent
while it runs; prefer periodic rebuilds when searches run concurrently.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from fedspace.config import RTreeConfig, get_settings
from fedspace.models import FederalProperty
from fedspace.spatial_index import FederalPropertyRTree

log = logging.getLogger(__name__)

PropertySource = Callable[[], Iterable[FederalProperty]]


class SpatialIndexManager:
    """
    Lifecycle owner for a FederalPropertyRTree.

    Usage:
        manager = SpatialIndexManager(source=get_iolp_loader().fetch_all)
        manager.refresh()                  # pull from source and bulk-load
        tree = manager.index               # hand to the scorer
        manager.teardown()
    """

    def __init__(self, source: Optional[PropertySource] = None, config: Optional[RTreeConfig] = None):
        self.source = source
        self.config = config or get_settings().rtree
        self._index = FederalPropertyRTree(self.config)
        self._built_at: Optional[datetime] = None
        self._lock = threading.RLock()

    @property
    def index(self) -> FederalPropertyRTree:
        """Current tree. Empty until build() or refresh() has run."""
        return self._index

    @property
    def is_ready(self) -> bool:
        return self._built_at is not None

    @property
    def built_at(self) -> Optional[datetime]:
        return self._built_at

    def is_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        """True if never built or built longer than ``max_age`` ago."""
        if self._built_at is None:
            return True
        return (now or datetime.now()) - self._built_at > max_age

    def build(self, properties: Iterable[FederalProperty]) -> FederalPropertyRTree:
        """Bulk-load a fresh tree from ``properties`` and make it current."""
        tree = FederalPropertyRTree(self.config)
        tree.bulk_load(properties)
        with self._lock:
            self._index = tree
            self._built_at = datetime.now()
        log.info(f"Spatial index built with {tree.size} properties")
        return tree

    def refresh(self) -> FederalPropertyRTree:
        """
        Rebuild from the configured source.

        The source is read without holding the lock. If it raises, the error
        is logged and re-raised and the current tree stays in service.
        """
        if self.source is None:
            raise RuntimeError("SpatialIndexManager has no property source to refresh from")
        try:
            properties = list(self.source())
        except Exception as e:
            log.error(f"Spatial index refresh failed, keeping current tree ({self._index.size} properties): {e}")
            raise
        log.info(f"Refreshing spatial index from source ({len(properties)} properties)")
        return self.build(properties)

    def ensure_ready(self, max_age: Optional[timedelta] = None) -> FederalPropertyRTree:
        """Refresh if the index was never built or is older than ``max_age``."""
        with self._lock:
            needs_refresh = not self.is_ready or (max_age is not None and self.is_stale(max_age))
            if not needs_refresh:
                return self._index
        return self.refresh()

    def insert(self, prop: FederalProperty):
        """Incremental update of the current tree, in place (see module notes on readers)."""
        with self._lock:
            self._index.insert(prop)

    def teardown(self):
        """Drop the tree and forget the build time."""
        with self._lock:
            self._index = FederalPropertyRTree(self.config)
            self._built_at = None
        log.info("Spatial index torn down")


# Singleton
_manager: Optional[SpatialIndexManager] = None
_manager_lock = threading.Lock()


def get_index_manager() -> SpatialIndexManager:
    """Get or create the default index manager (no source configured)."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = SpatialIndexManager()
        return _manager


def set_index_manager(manager: SpatialIndexManager):
    """Install a configured manager as the process default."""
    global _manager
    with _manager_lock:
        _manager = manager


def reset_index_manager():
    """Tear down and forget the default manager."""
    global _manager
    with _manager_lock:
        if _manager is not None:
            _manager.teardown()
        _manager = None
