"""Reachability over a CallGraph.

Breadth-first traversal of traversable edges (resolved, plus ambiguous
unless the graph excludes them). Each node is enqueued at most once per
traversal, so cycles terminate and edge multiplicity never costs extra work.
The start node belongs to its own result only when a cycle leads back to it.

Results are memoized per (direction, node, depth) until ``invalidate()``;
the graph snapshot they were computed from is immutable, so the cache only
needs clearing when a caller swaps snapshots under a long-lived engine.
"""

from collections import deque

from driftscan.graph.types import CallGraph


class ReachabilityEngine:
    """Forward/backward reachability and BFS distances."""

    def __init__(self, graph: CallGraph):
        self.graph = graph
        self._cache: dict[tuple[str, str, int | None], dict[str, int]] = {}

    def invalidate(self) -> None:
        self._cache.clear()

    def forward_reachable(self, node_id: str, max_depth: int | None = None) -> set[str]:
        """Ids reachable from ``node_id`` in at most ``max_depth`` calls."""
        return set(self.forward_distances(node_id, max_depth))

    def backward_reachable(self, node_id: str, max_depth: int | None = None) -> set[str]:
        """Ids that can reach ``node_id`` in at most ``max_depth`` calls."""
        return set(self.backward_distances(node_id, max_depth))

    def forward_distances(self, node_id: str, max_depth: int | None = None) -> dict[str, int]:
        return self._distances("forward", node_id, max_depth)

    def backward_distances(self, node_id: str, max_depth: int | None = None) -> dict[str, int]:
        return self._distances("backward", node_id, max_depth)

    def distance_from_entry_points(self, node_id: str, entry_points: set[str] | list[str],
                                   max_depth: int | None = None) -> tuple[int, str] | None:
        """(distance, entry id) of the nearest entry point that reaches ``node_id``.

        Distance 0 means ``node_id`` is itself an entry point. Ties between
        equally near entry points go to the smallest id. None when no entry
        point reaches the node.
        """
        entries = set(entry_points)
        if not self.graph.require_known(node_id):
            return None
        if node_id in entries:
            return 0, node_id
        distances = self.backward_distances(node_id, max_depth)
        reaching = [(dist, entry) for entry, dist in distances.items() if entry in entries]
        return min(reaching) if reaching else None

    def _distances(self, direction: str, node_id: str, max_depth: int | None) -> dict[str, int]:
        if max_depth is not None and max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")
        if not self.graph.require_known(node_id):
            return {}

        key = (direction, node_id, max_depth)
        cached = self._cache.get(key)
        if cached is not None:
            return dict(cached)

        adjacency = self.graph.outgoing if direction == "forward" else self.graph.incoming
        distances: dict[str, int] = {}
        enqueued = {node_id}
        queue = deque([(node_id, 0)])
        while queue:
            current, depth = queue.popleft()
            if max_depth is not None and depth >= max_depth:
                continue
            for edge in adjacency.get(current, ()):
                neighbor = edge.target_id if direction == "forward" else edge.source_id
                if neighbor not in distances:
                    distances[neighbor] = depth + 1
                if neighbor not in enqueued:
                    enqueued.add(neighbor)
                    queue.append((neighbor, depth + 1))

        self._cache[key] = distances
        return dict(distances)
