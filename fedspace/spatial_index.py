"""
R-Tree spatial index over federal properties.

Supports:
- Incremental insert (least-enlargement descent + overlap-minimizing split)
- Bulk load (Hilbert-curve sort + bottom-up packing)
- Radius search with an exact haversine check after the box pre-filter
- Bounding-box search
- k-nearest via best-first branch-and-bound

Searches never mutate the tree, so any number of readers may share one
instance. Mutation (insert/bulk_load/clear) is single-writer; see
``fedspace.index_manager`` for a lock-guarded owner.
"""

import heapq
import itertools
import logging
from typing import Iterable, Iterator, List, Optional, Tuple

from fedspace.config import RTreeConfig
from fedspace.geometry import (
    bounds_intersect,
    bounds_of,
    circle_to_bounds,
    enlargement,
    haversine_miles,
    hilbert_value,
    min_distance_miles,
    overlap_area,
    point_to_bounds,
    union_bounds,
)
from fedspace.models import BoundingBox, FederalProperty

log = logging.getLogger(__name__)


class IndexCorruptionError(RuntimeError):
    """The tree violated a structural invariant. Always a bug, never bad input."""


class _Node:
    """
    Tree node.

    A leaf wraps exactly one property and has a degenerate box. An internal
    node has children and a box covering all of them.
    """

    __slots__ = ("bounds", "children", "property")

    def __init__(self, bounds: BoundingBox, children: Optional[List["_Node"]] = None,
                 prop: Optional[FederalProperty] = None):
        self.bounds = bounds
        self.children: List["_Node"] = children if children is not None else []
        self.property = prop

    @classmethod
    def leaf(cls, prop: FederalProperty) -> "_Node":
        return cls(point_to_bounds(prop.latitude, prop.longitude), prop=prop)

    @classmethod
    def branch(cls, children: List["_Node"]) -> "_Node":
        return cls(bounds_of(c.bounds for c in children), children=children)

    @property
    def is_leaf(self) -> bool:
        return self.property is not None

    def recompute_bounds(self):
        self.bounds = bounds_of(c.bounds for c in self.children)


class FederalPropertyRTree:
    """
    In-memory R-Tree of FederalProperty points.

    Usage:
        tree = FederalPropertyRTree()
        tree.bulk_load(properties)
        nearby = tree.search_radius(38.9072, -77.0369, 5)
    """

    def __init__(self, config: Optional[RTreeConfig] = None):
        self.config = config or RTreeConfig()
        self._root: Optional[_Node] = None
        self._size = 0

    # ───────────────────────────────────────────────────────────────────────
    # Size / lifecycle
    # ───────────────────────────────────────────────────────────────────────
    @property
    def size(self) -> int:
        return self._size

    def get_size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    @property
    def height(self) -> int:
        """Number of levels, counting the leaf level. 0 when empty."""
        levels = 0
        node = self._root
        while node is not None:
            levels += 1
            node = node.children[0] if node.children else None
        return levels

    def clear(self):
        """Discard the whole tree."""
        self._root = None
        self._size = 0

    def iter_properties(self) -> Iterator[FederalProperty]:
        if self._root is None:
            return
        stack = [self._root]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                yield node.property
            else:
                stack.extend(node.children)

    # ───────────────────────────────────────────────────────────────────────
    # Insert
    # ───────────────────────────────────────────────────────────────────────
    def insert(self, prop: FederalProperty):
        """Insert a single property, splitting overflowing nodes on the way up."""
        leaf = _Node.leaf(prop)
        self._size += 1

        if self._root is None:
            self._root = _Node.branch([leaf])
            return

        # Descend to the node whose children are leaves
        path = [self._root]
        node = self._root
        while not node.children[0].is_leaf:
            node = self._choose_subtree(node, leaf.bounds)
            path.append(node)
        node.children.append(leaf)

        # Expand boxes and split bottom-up
        for depth in range(len(path) - 1, -1, -1):
            current = path[depth]
            current.bounds = union_bounds(current.bounds, leaf.bounds)
            if len(current.children) <= self.config.max_entries:
                continue
            sibling = self._split(current)
            if depth == 0:
                self._root = _Node.branch([current, sibling])
                log.debug(f"Root split, tree height now {self.height}")
            else:
                path[depth - 1].children.append(sibling)

    def _choose_subtree(self, node: _Node, bounds: BoundingBox) -> _Node:
        """Child needing the least area enlargement; ties go to the first."""
        if not node.children:
            raise IndexCorruptionError("choose_subtree called on a node with no children")

        best = node.children[0]
        best_cost = enlargement(best.bounds, bounds)
        for child in node.children[1:]:
            cost = enlargement(child.bounds, bounds)
            if cost < best_cost:
                best = child
                best_cost = cost
        return best

    def _split(self, node: _Node) -> _Node:
        """
        Split an overflowing node in place and return the new sibling.

        Tries every split point along latitude-center and longitude-center
        order and keeps the one whose two group boxes overlap least.
        """
        children = node.children
        count = len(children)
        min_entries = self.config.min_entries

        by_lat = sorted(children, key=lambda c: c.bounds.center[0])
        by_lng = sorted(children, key=lambda c: c.bounds.center[1])

        best: Optional[Tuple[float, List[_Node], int]] = None
        for ordered in (by_lat, by_lng):
            for index in range(min_entries, count - min_entries + 1):
                left = bounds_of(c.bounds for c in ordered[:index])
                right = bounds_of(c.bounds for c in ordered[index:])
                overlap = overlap_area(left, right)
                if best is None or overlap < best[0]:
                    best = (overlap, ordered, index)

        if best is None:
            ordered, index = by_lat, count // 2
        else:
            _, ordered, index = best

        node.children = ordered[:index]
        node.recompute_bounds()
        return _Node.branch(ordered[index:])

    # ───────────────────────────────────────────────────────────────────────
    # Bulk load
    # ───────────────────────────────────────────────────────────────────────
    def bulk_load(self, properties: Iterable[FederalProperty]):
        """
        Replace the tree with one built from ``properties``.

        Uses Hilbert-sorted bottom-up packing unless bulk loading is disabled
        in the config, in which case properties are inserted one by one.
        """
        props = list(properties)
        self.clear()

        if not self.config.bulk_load or not props:
            for prop in props:
                self.insert(prop)
            return

        props.sort(key=lambda p: hilbert_value(p.latitude, p.longitude))
        level = [_Node.leaf(p) for p in props]
        level = [_Node.branch(group) for group in self._pack(level)]
        while len(level) > 1:
            level = [_Node.branch(group) for group in self._pack(level)]

        self._root = level[0]
        self._size = len(props)
        log.info(f"Bulk-loaded {self._size} properties (height {self.height})")

    def _pack(self, nodes: List[_Node]) -> List[List[_Node]]:
        """Chunk nodes into groups of max_entries, topping up a short last group."""
        size = self.config.max_entries
        groups = [nodes[i:i + size] for i in range(0, len(nodes), size)]
        if len(groups) > 1 and len(groups[-1]) < self.config.min_entries:
            merged = groups[-2] + groups[-1]
            half = len(merged) // 2
            groups[-2:] = [merged[:half], merged[half:]]
        return groups

    # ───────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────
    def search_radius(self, lat: float, lng: float, radius_miles: float) -> List[FederalProperty]:
        """All properties within ``radius_miles`` (great-circle) of a point. Unordered."""
        if radius_miles < 0:
            raise ValueError(f"radius_miles must be non-negative, got {radius_miles}")
        if self._root is None:
            return []

        box = circle_to_bounds(lat, lng, radius_miles)
        results = []
        stack = [self._root]
        while stack:
            node = stack.pop()
            if not bounds_intersect(node.bounds, box):
                continue
            if node.is_leaf:
                p = node.property
                # Box corners lie outside the circle; confirm the real distance
                if haversine_miles(lat, lng, p.latitude, p.longitude) <= radius_miles:
                    results.append(p)
            else:
                stack.extend(node.children)
        return results

    def search_bounds(self, box: BoundingBox) -> List[FederalProperty]:
        """All properties inside a bounding box. Unordered."""
        if self._root is None:
            return []

        results = []
        stack = [self._root]
        while stack:
            node = stack.pop()
            if not bounds_intersect(node.bounds, box):
                continue
            if node.is_leaf:
                p = node.property
                if box.contains_point(p.latitude, p.longitude):
                    results.append(p)
            else:
                stack.extend(node.children)
        return results

    def k_nearest(self, lat: float, lng: float, k: int) -> List[FederalProperty]:
        """
        Up to ``k`` properties ordered by ascending distance.

        Best-first search: internal nodes are keyed by a lower bound on the
        distance to their box and leaves by their exact distance, so a leaf
        popped from the heap is no farther than anything still queued.
        """
        if k <= 0 or self._root is None:
            return []

        counter = itertools.count()
        heap = [(min_distance_miles(lat, lng, self._root.bounds), next(counter), self._root)]
        results: List[FederalProperty] = []
        while heap and len(results) < k:
            _, _, node = heapq.heappop(heap)
            if node.is_leaf:
                results.append(node.property)
                continue
            for child in node.children:
                if child.is_leaf:
                    p = child.property
                    key = haversine_miles(lat, lng, p.latitude, p.longitude)
                else:
                    key = min_distance_miles(lat, lng, child.bounds)
                heapq.heappush(heap, (key, next(counter), child))
        return results

    # ───────────────────────────────────────────────────────────────────────
    # Invariants
    # ───────────────────────────────────────────────────────────────────────
    def check_invariants(self):
        """
        Verify the tree structure, raising IndexCorruptionError on any violation.

        Checks box containment, fan-out limits (the root may be under-full),
        uniform leaf depth and the stored size.
        """
        if self._root is None:
            if self._size != 0:
                raise IndexCorruptionError(f"Empty tree reports size {self._size}")
            return

        leaf_depths = set()
        count = self._check_node(self._root, depth=0, is_root=True, leaf_depths=leaf_depths)
        if len(leaf_depths) > 1:
            raise IndexCorruptionError(f"Leaves found at different depths: {sorted(leaf_depths)}")
        if count != self._size:
            raise IndexCorruptionError(f"Tree holds {count} properties but reports size {self._size}")

    def _check_node(self, node: _Node, depth: int, is_root: bool, leaf_depths: set) -> int:
        if node.is_leaf:
            if node.children:
                raise IndexCorruptionError(f"Leaf {node.property.id} has children")
            leaf_depths.add(depth)
            return 1

        fanout = len(node.children)
        if fanout == 0:
            raise IndexCorruptionError("Internal node has no children")
        if fanout > self.config.max_entries:
            raise IndexCorruptionError(f"Node has {fanout} children (max {self.config.max_entries})")
        if not is_root and fanout < self.config.min_entries:
            raise IndexCorruptionError(f"Node has {fanout} children (min {self.config.min_entries})")

        count = 0
        for child in node.children:
            if not node.bounds.contains_box(child.bounds):
                raise IndexCorruptionError(f"Node box {node.bounds} does not contain child box {child.bounds}")
            count += self._check_node(child, depth + 1, False, leaf_depths)
        return count
