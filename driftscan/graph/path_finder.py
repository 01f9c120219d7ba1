"""Concrete call paths between two functions.

``find_paths`` enumerates simple paths breadth first, so paths come out in
non-decreasing edge count and the first one is a shortest path. The search
is pruned with the backward distance map of the target: a partial path is
only extended through nodes that can still reach the target within
``max_depth``. Between the same pair of nodes the earliest call-site line
represents the hop.

The first path is walked directly along that distance map, so it is found
in linear time however dense the graph; the expansion cap only bounds the
enumeration of further paths.

When ``from_id == to_id`` only genuine cycles are returned; a function is
not considered a path to itself.
"""

from collections import deque
from collections.abc import Callable, Iterator

from driftscan.graph.types import CallEdge, CallGraph, CallPath
from driftscan.utils.logging import logger

# Upper bound on queued partial paths per query; dense graphs can hold
# exponentially many simple paths
MAX_EXPANSIONS = 100_000


class PathFinder:
    """BFS path enumeration and critical-path selection over a CallGraph."""

    def __init__(self, graph: CallGraph):
        self.graph = graph

    def find_paths(self, from_id: str, to_id: str, max_depth: int | None = None,
                   max_paths: int = 10) -> list[CallPath]:
        """
        Enumerate call paths from ``from_id`` to ``to_id``.

        Args:
            from_id: Starting function id
            to_id: Target function id
            max_depth: Maximum number of edges per path (unbounded when None)
            max_paths: Maximum number of paths to return

        Returns:
            Paths in non-decreasing depth; empty when none exists

        Raises:
            UnknownNodeError: if either id was never registered
        """
        return [CallPath(nodes=nodes, lines=[e.line for e in edges])
                for nodes, edges in self._enumerate(from_id, to_id, max_depth, max_paths)]

    def shortest_path(self, from_id: str, to_id: str, max_depth: int | None = None) -> CallPath | None:
        paths = self.find_paths(from_id, to_id, max_depth=max_depth, max_paths=1)
        return paths[0] if paths else None

    def critical_path(self, from_id: str, to_id: str, edge_weight: Callable[[CallEdge], float],
                      max_depth: int | None = None, max_paths: int = 50) -> CallPath | None:
        """
        Path whose summed edge weight is highest among the first ``max_paths`` found.

        Ties go to the shorter path, then to the one found first. The winning
        path carries its total weight in ``risk``.
        """
        best: CallPath | None = None
        for nodes, edges in self._enumerate(from_id, to_id, max_depth, max_paths):
            total = sum(edge_weight(edge) for edge in edges)
            if best is None or total > best.risk:
                best = CallPath(nodes=nodes, lines=[e.line for e in edges], risk=total)
        return best

    def _enumerate(self, from_id: str, to_id: str, max_depth: int | None,
                   max_paths: int) -> Iterator[tuple[list[str], list[CallEdge]]]:
        if max_depth is not None and max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")
        if max_paths < 0:
            raise ValueError(f"max_paths must be >= 0, got {max_paths}")
        from_live = self.graph.require_known(from_id)
        to_live = self.graph.require_known(to_id)
        if not (from_live and to_live) or max_paths == 0:
            return

        # Hops still needed from each node to reach the target
        remaining = self.graph.reachability.backward_distances(to_id)
        if from_id not in remaining:
            return

        def fits(depth: int, node: str) -> bool:
            if max_depth is None:
                return True
            return depth + remaining.get(node, 0) <= max_depth

        if not fits(0, from_id):
            return

        shortest = self._shortest(from_id, to_id, remaining)
        if max_depth is not None and len(shortest[1]) > max_depth:
            return
        yield shortest
        emitted = 1
        if emitted >= max_paths:
            return

        # Further paths; the cap only bounds this enumeration, never the shortest path
        expansions = 0
        queue: deque[tuple[str, tuple[str, ...], tuple[CallEdge, ...]]] = deque([(from_id, (from_id,), ())])
        while queue:
            current, nodes, edges = queue.popleft()
            depth = len(edges)
            for edge in self._first_edges(current):
                neighbor = edge.target_id
                if neighbor == to_id:
                    candidate = [*nodes, neighbor]
                    if (max_depth is None or depth + 1 <= max_depth) and candidate != shortest[0]:
                        yield candidate, [*edges, edge]
                        emitted += 1
                        if emitted >= max_paths:
                            return
                    continue
                if neighbor in nodes or neighbor not in remaining or not fits(depth + 1, neighbor):
                    continue
                expansions += 1
                if expansions > MAX_EXPANSIONS:
                    logger.warning(
                        f"[GRAPH] Path enumeration {from_id} -> {to_id} stopped after "
                        f"{MAX_EXPANSIONS} expansions ({emitted} paths found)"
                    )
                    return
                queue.append((neighbor, (*nodes, neighbor), (*edges, edge)))

    def _shortest(self, from_id: str, to_id: str,
                  remaining: dict[str, int]) -> tuple[list[str], list[CallEdge]]:
        """Earliest-call-site shortest path, walked forward along the backward distance map.

        ``from_id`` must reach ``to_id`` (it is a key of ``remaining``).
        """
        def hops(node: str) -> int | None:
            return 0 if node == to_id else remaining.get(node)

        first = [(hops(e.target_id), e) for e in self._first_edges(from_id) if hops(e.target_id) is not None]
        needed = min(h for h, _ in first) + 1
        nodes, edges = [from_id], []
        current = from_id
        while True:
            needed -= 1
            edge = next(e for e in self._first_edges(current) if hops(e.target_id) == needed)
            nodes.append(edge.target_id)
            edges.append(edge)
            if edge.target_id == to_id:
                return nodes, edges
            current = edge.target_id

    def _first_edges(self, node_id: str) -> list[CallEdge]:
        """One edge per distinct callee: the earliest call site."""
        seen: dict[str, CallEdge] = {}
        for edge in self.graph.outgoing.get(node_id, ()):
            if edge.target_id not in seen:
                seen[edge.target_id] = edge
        return list(seen.values())
