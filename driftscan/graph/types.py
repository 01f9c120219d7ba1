"""Call graph data model.

A CallGraph is an immutable snapshot: nodes keyed by id plus an adjacency
structure (outgoing/incoming edge lists) built once from the edge list.
Edges whose target could not be resolved keep ``target_id=None``; they stay in
``edges`` for statistics but never appear in the adjacency lists, so no
traversal can follow them.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from driftscan.ast_extractors.base import ParameterInfo
from driftscan.exceptions import UnknownNodeError

RESOLVED = "resolved"
AMBIGUOUS = "ambiguous"
UNRESOLVED = "unresolved"


def make_node_id(file: str, qualified_name: str, line: int) -> str:
    """Stable node id: file path + qualified name + declaration line."""
    return f"{file}:{qualified_name}:{line}"


@dataclass
class FunctionNode:
    id: str
    name: str
    qualified_name: str
    file: str
    start_line: int
    end_line: int
    language: str
    parameters: list[ParameterInfo] = field(default_factory=list)
    class_name: str | None = None
    return_type: str | None = None
    decorators: list[str] = field(default_factory=list)
    is_method: bool = False
    is_constructor: bool = False
    is_exported: bool = False
    is_entry_point: bool = False
    entry_point_reason: str | None = None

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass
class CallEdge:
    """One call site. Uniqueness is per call site, not per (source, target) pair.

    Attributes:
        confidence: "resolved", "ambiguous" or "unresolved"
        resolution: which lookup produced the target ("same-file", "import",
            "project", or "none")
    """

    source_id: str
    target_name: str
    line: int
    confidence: str
    target_id: str | None = None
    resolution: str = "none"
    receiver: str | None = None
    candidates: int = 0

    @property
    def is_traversable(self) -> bool:
        return self.target_id is not None and self.confidence != UNRESOLVED


@dataclass
class CallPath:
    """Ordered node ids with the call-site line of each hop.

    ``length`` counts nodes; ``depth`` counts edges.
    """

    nodes: list[str]
    lines: list[int] = field(default_factory=list)
    risk: float = 0.0

    @property
    def length(self) -> int:
        return len(self.nodes)

    @property
    def depth(self) -> int:
        return max(len(self.nodes) - 1, 0)

    def to_dict(self) -> dict[str, Any]:
        return {"nodes": list(self.nodes), "lines": list(self.lines), "risk": self.risk,
                "length": self.length, "depth": self.depth}


@dataclass
class CallGraphStats:
    total_functions: int = 0
    total_call_sites: int = 0
    resolved_call_sites: int = 0
    ambiguous_call_sites: int = 0
    unresolved_call_sites: int = 0
    module_level_call_sites: int = 0
    skipped_functions: int = 0
    entry_points: int = 0
    data_access_functions: int = 0
    functions_by_language: dict[str, int] = field(default_factory=dict)

    @property
    def resolution_rate(self) -> float:
        attributed = self.resolved_call_sites + self.ambiguous_call_sites + self.unresolved_call_sites
        if not attributed:
            return 0.0
        return round((self.resolved_call_sites + self.ambiguous_call_sites) / attributed, 4)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["resolution_rate"] = self.resolution_rate
        return data


class CallGraph:
    """Functions and call edges of one project, with query methods.

    ``retired_ids`` holds ids that belonged to files since rescanned or
    removed; queries on them return empty results, while ids never seen at
    all raise UnknownNodeError.
    """

    def __init__(self, nodes: dict[str, FunctionNode], edges: list[CallEdge],
                 stats: CallGraphStats | None = None, retired_ids: set[str] | frozenset[str] = frozenset(),
                 include_ambiguous: bool = True):
        self.nodes = nodes
        self.edges = edges
        self.stats = stats or CallGraphStats(total_functions=len(nodes))
        self.retired_ids = frozenset(retired_ids)
        self.include_ambiguous = include_ambiguous
        self.outgoing: dict[str, list[CallEdge]] = {node_id: [] for node_id in nodes}
        self.incoming: dict[str, list[CallEdge]] = {node_id: [] for node_id in nodes}
        self._build_adjacency()
        self._reachability = None
        self._path_finder = None

    def _build_adjacency(self) -> None:
        for edge in self.edges:
            if edge.source_id not in self.nodes:
                # Builder guarantees sources exist; a foreign edge is ignored rather than trusted
                continue
            if not edge.is_traversable or edge.target_id not in self.nodes:
                continue
            if edge.confidence == AMBIGUOUS and not self.include_ambiguous:
                continue
            self.outgoing[edge.source_id].append(edge)
            self.incoming[edge.target_id].append(edge)
        for edge_list in (*self.outgoing.values(), *self.incoming.values()):
            edge_list.sort(key=lambda e: (e.line, e.source_id, e.target_id or ""))

    # ------------------------------------------------------------------
    # Node lookup
    # ------------------------------------------------------------------

    def is_known(self, node_id: str) -> bool:
        """Registered now or retired by an incremental update."""
        return node_id in self.nodes or node_id in self.retired_ids

    def require_known(self, node_id: str) -> bool:
        """True when ``node_id`` is live, False when retired.

        Raises:
            UnknownNodeError: if the id was never registered
        """
        if node_id in self.nodes:
            return True
        if node_id in self.retired_ids:
            return False
        raise UnknownNodeError(node_id)

    def get_node(self, node_id: str) -> FunctionNode | None:
        if self.require_known(node_id):
            return self.nodes[node_id]
        return None

    def find_nodes(self, name: str, file: str | None = None) -> list[FunctionNode]:
        """Nodes whose name or qualified name equals ``name``, optionally within one file."""
        found = [n for n in self.nodes.values()
                 if (n.name == name or n.qualified_name == name) and (file is None or n.file == file)]
        return sorted(found, key=lambda n: (n.file, n.start_line))

    def function_at(self, file: str, line: int) -> FunctionNode | None:
        """Innermost function in ``file`` whose span contains ``line``."""
        best = None
        for node in self.nodes_in_file(file):
            if node.contains_line(line):
                if best is None or (node.end_line - node.start_line) < (best.end_line - best.start_line):
                    best = node
        return best

    def nodes_in_file(self, file: str) -> list[FunctionNode]:
        return [n for n in self.nodes.values() if n.file == file]

    @property
    def entry_points(self) -> list[str]:
        return sorted(node_id for node_id, node in self.nodes.items() if node.is_entry_point)

    def callees(self, node_id: str) -> list[str]:
        if not self.require_known(node_id):
            return []
        return sorted({e.target_id for e in self.outgoing[node_id]})

    def callers(self, node_id: str) -> list[str]:
        if not self.require_known(node_id):
            return []
        return sorted({e.source_id for e in self.incoming[node_id]})

    def unresolved_edges(self) -> list[CallEdge]:
        return [e for e in self.edges if e.confidence == UNRESOLVED]

    # ------------------------------------------------------------------
    # Queries (engines are created lazily and cached on the snapshot)
    # ------------------------------------------------------------------

    @property
    def reachability(self):
        if self._reachability is None:
            from driftscan.graph.reachability import ReachabilityEngine

            self._reachability = ReachabilityEngine(self)
        return self._reachability

    @property
    def path_finder(self):
        if self._path_finder is None:
            from driftscan.graph.path_finder import PathFinder

            self._path_finder = PathFinder(self)
        return self._path_finder

    def forward_reachable(self, node_id: str, max_depth: int | None = None) -> set[str]:
        return self.reachability.forward_reachable(node_id, max_depth)

    def backward_reachable(self, node_id: str, max_depth: int | None = None) -> set[str]:
        return self.reachability.backward_reachable(node_id, max_depth)

    def find_paths(self, from_id: str, to_id: str, max_depth: int | None = None,
                   max_paths: int = 10) -> list[CallPath]:
        return self.path_finder.find_paths(from_id, to_id, max_depth=max_depth, max_paths=max_paths)

    def invalidate_caches(self) -> None:
        if self._reachability is not None:
            self._reachability.invalidate()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [asdict(self.nodes[k]) for k in sorted(self.nodes)],
            "edges": [asdict(e) for e in self.edges],
            "entry_points": self.entry_points,
            "stats": self.stats.to_dict(),
        }

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes
