"""
Layout cache.

Maps a graph's layout-relevant structure (ids, sizes, containment, edges)
plus the layout context to the geometry a strategy produced for it, so
recompiling an unchanged diagram skips the layout step. The cache is a
bounded LRU shared between threads.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Tuple

from .config import LayoutContext
from .igr import IntermediateGraph

logger = logging.getLogger(__name__)


def layout_key(graph: IntermediateGraph, context: LayoutContext) -> Tuple:
    """Hashable fingerprint of everything a layout result depends on."""
    nodes = tuple(
        (n.id, n.container, n.width, n.height) for n in graph.nodes.values()
    )
    edges = tuple((e.id, e.source, e.target) for e in graph.edges.values())
    containers = tuple(
        (c.id, c.parent, c.label_width, c.label_height)
        for c in graph.containers.values()
    )
    return (nodes, edges, containers, context.cache_key())


class LayoutCache:
    """
    Thread-safe LRU cache of layout snapshots.

    Attributes:
        max_size: Maximum number of entries kept.
        hits: Number of successful lookups.
        misses: Number of failed lookups.
    """

    def __init__(self, max_size: int = 100):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.hits = 0
        self.misses = 0
        self._entries: "OrderedDict[Hashable, Dict[str, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Optional[Dict[str, Any]]:
        with self._lock:
            snapshot = self._entries.get(key)
            if snapshot is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return snapshot

    def put(self, key: Hashable, snapshot: Dict[str, Any]) -> None:
        with self._lock:
            self._entries[key] = snapshot
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.debug("Layout cache cleared")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
            }
