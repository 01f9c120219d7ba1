"""Call graph analyzer - pure graph algorithms over a built CallGraph.

This module provides ONLY non-interpretive algorithms:
- Cycle detection (strongly connected components)
- Dead code (functions no entry point can reach and nobody calls)
- Impact analysis (bounded upstream/downstream traversal)
- Statistical summaries (counts and degrees)

Risk ranking lives in driftscan.boundaries.prioritizer.
"""

from collections import defaultdict
from typing import Any

from driftscan.graph.types import CallGraph


class CallGraphAnalyzer:
    """Analyze a CallGraph using pure algorithms."""

    def __init__(self, graph: CallGraph):
        self.graph = graph

    def detect_cycles(self) -> list[dict[str, Any]]:
        """
        Detect call cycles as strongly connected components.

        Iterative Tarjan so deep call chains cannot exhaust the recursion
        limit. A single function counts as a cycle only when it calls itself.

        Returns:
            List of cycles, each with sorted node ids and size, largest first
        """
        index_of: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        on_stack: set[str] = set()
        stack: list[str] = []
        cycles = []
        counter = 0

        for root in sorted(self.graph.nodes):
            if root in index_of:
                continue
            work = [(root, iter(self.graph.callees(root)))]
            index_of[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)

            while work:
                node, neighbors = work[-1]
                advanced = False
                for neighbor in neighbors:
                    if neighbor not in index_of:
                        index_of[neighbor] = lowlink[neighbor] = counter
                        counter += 1
                        stack.append(neighbor)
                        on_stack.add(neighbor)
                        work.append((neighbor, iter(self.graph.callees(neighbor))))
                        advanced = True
                        break
                    if neighbor in on_stack:
                        lowlink[node] = min(lowlink[node], index_of[neighbor])
                if advanced:
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index_of[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    if len(component) > 1 or node in self.graph.callees(node):
                        cycles.append({"nodes": sorted(component), "size": len(component)})

        cycles.sort(key=lambda c: (-c["size"], c["nodes"]))
        return cycles

    def find_dead_code(self) -> list[str]:
        """Functions that are not entry points, have no callers, and no entry point reaches."""
        reachable: set[str] = set()
        for entry in self.graph.entry_points:
            reachable.add(entry)
            reachable |= self.graph.forward_reachable(entry)

        dead = []
        for node_id, node in self.graph.nodes.items():
            if node.is_entry_point or node_id in reachable:
                continue
            if self.graph.incoming.get(node_id):
                continue
            dead.append(node_id)
        return sorted(dead)

    def impact_of_change(self, targets: list[str], max_depth: int = 3) -> dict[str, Any]:
        """
        Functions affected by changing ``targets``, within ``max_depth`` calls.

        Returns:
            Raw impact data with upstream (callers) and downstream (callees) ids
        """
        upstream: set[str] = set()
        downstream: set[str] = set()
        for target in targets:
            upstream |= self.graph.backward_reachable(target, max_depth)
            downstream |= self.graph.forward_reachable(target, max_depth)
        upstream -= set(targets)
        downstream -= set(targets)
        return {
            "targets": list(targets),
            "upstream": sorted(upstream),
            "downstream": sorted(downstream),
            "total_impacted": len(set(targets) | upstream | downstream),
        }

    def calculate_node_degrees(self) -> dict[str, dict[str, int]]:
        """In/out degree per node, counting call sites rather than distinct callees."""
        return {
            node_id: {
                "in_degree": len(self.graph.incoming.get(node_id, ())),
                "out_degree": len(self.graph.outgoing.get(node_id, ())),
            }
            for node_id in sorted(self.graph.nodes)
        }

    def identify_hotspots(self, top_n: int = 10) -> list[dict[str, Any]]:
        """Most connected functions."""
        hotspots = []
        for node_id, degree in self.calculate_node_degrees().items():
            total = degree["in_degree"] + degree["out_degree"]
            if total > 0:
                node = self.graph.nodes[node_id]
                hotspots.append({
                    "id": node_id,
                    "in_degree": degree["in_degree"],
                    "out_degree": degree["out_degree"],
                    "total_connections": total,
                    "file": node.file,
                    "lang": node.language,
                })
        hotspots.sort(key=lambda h: (-h["total_connections"], h["id"]))
        return hotspots[:top_n]

    def get_graph_summary(self) -> dict[str, Any]:
        """
        Basic statistics without interpretation.

        Returns:
            Concise summary with raw statistics only
        """
        node_count = len(self.graph.nodes)
        traversable = sum(len(edges) for edges in self.graph.outgoing.values())
        connected = {e.source_id for edges in self.graph.outgoing.values() for e in edges}
        connected |= {e.target_id for edges in self.graph.outgoing.values() for e in edges}
        cycles = self.detect_cycles()

        unresolved_names: dict[str, int] = defaultdict(int)
        for edge in self.graph.unresolved_edges():
            unresolved_names[edge.target_name] += 1
        top_unresolved = sorted(unresolved_names.items(), key=lambda kv: (-kv[1], kv[0]))[:10]

        density = traversable / (node_count * (node_count - 1)) if node_count > 1 else 0
        return {
            "statistics": {
                "total_nodes": node_count,
                "total_edges": len(self.graph.edges),
                "traversable_edges": traversable,
                "graph_density": round(density, 4),
                "isolated_nodes": node_count - len(connected),
                "entry_points": len(self.graph.entry_points),
            },
            "call_sites": self.graph.stats.to_dict(),
            "top_connected_nodes": self.identify_hotspots(10),
            "cycles_found": [
                {
                    "size": cycle["size"],
                    "nodes": cycle["nodes"][:5] + (["..."] if len(cycle["nodes"]) > 5 else []),
                }
                for cycle in cycles[:5]
            ],
            "cycle_count": len(cycles),
            "dead_code_count": len(self.find_dead_code()),
            "top_unresolved_callees": [{"name": name, "count": count} for name, count in top_unresolved],
        }
