"""Graph package - call graph construction and queries.

Core modules:
- types: FunctionNode, CallEdge, CallPath, CallGraph
- builder: Graph construction from extraction results
- entry_points: Configured and framework-convention entry points
- reachability: Forward/backward BFS with distance maps
- path_finder: Shortest and critical call paths
- analyzer: Pure graph algorithms (cycles, dead code, summaries)
"""

from .analyzer import CallGraphAnalyzer
from .builder import CallGraphBuilder, build_call_graph
from .entry_points import EntryPointMatcher
from .path_finder import PathFinder
from .reachability import ReachabilityEngine
from .types import AMBIGUOUS, RESOLVED, UNRESOLVED, CallEdge, CallGraph, CallGraphStats, CallPath, FunctionNode

__all__ = [
    "AMBIGUOUS",
    "RESOLVED",
    "UNRESOLVED",
    "CallEdge",
    "CallGraph",
    "CallGraphAnalyzer",
    "CallGraphBuilder",
    "CallGraphStats",
    "CallPath",
    "EntryPointMatcher",
    "FunctionNode",
    "PathFinder",
    "ReachabilityEngine",
    "build_call_graph",
]
