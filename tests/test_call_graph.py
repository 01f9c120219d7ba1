"""Tests for call graph construction, reachability and path finding."""

import pytest
from conftest import edge, graph_of, node

from driftscan.ast_extractors.base import FileExtractionResult, FunctionExtraction
from driftscan.ast_extractors.hybrid import HybridExtractor
from driftscan.exceptions import UnknownNodeError
from driftscan.graph.analyzer import CallGraphAnalyzer
from driftscan.graph.builder import CallGraphBuilder, build_call_graph, import_target_paths, module_path
from driftscan.graph.entry_points import EntryPointMatcher
from driftscan.graph.types import AMBIGUOUS, RESOLVED, UNRESOLVED


def _extract(files: dict[str, str]):
    extractor = HybridExtractor(mode="auto")
    return [extractor.extract(source, path) for path, source in sorted(files.items())]


def _ids(graph, name):
    return [n.id for n in graph.find_nodes(name)]


class TestCallGraphBuilder:
    """Graph assembly from extraction results."""

    def test_every_edge_source_is_a_node(self):
        """Edges never reference a source the graph does not contain."""
        graph = build_call_graph(_extract({
            "app/a.py": "def a():\n    b()\n    print('x')\n\n\ndef b():\n    return missing()\n",
            "app/b.py": "import os\n\nos.getcwd()\n",
        }))
        assert graph.edges, "Expected call edges"
        for e in graph.edges:
            assert e.source_id in graph.nodes, f"Dangling edge source {e.source_id}"

    def test_same_file_call_is_resolved(self):
        """A call to a function in the same file resolves to exactly that node."""
        graph = build_call_graph(_extract({"svc.py": "def outer():\n    inner()\n\n\ndef inner():\n    pass\n"}))
        (outer,) = _ids(graph, "outer")
        (inner,) = _ids(graph, "inner")
        assert graph.callees(outer) == [inner]
        assert graph.outgoing[outer][0].confidence == RESOLVED

    def test_imported_function_resolves_across_files(self):
        """``from app.repo import save`` routes the call to app/repo.py."""
        graph = build_call_graph(_extract({
            "app/service.py": "from app.repo import save\n\n\ndef handle():\n    save()\n",
            "app/repo.py": "def save():\n    pass\n",
            "app/other.py": "def save():\n    pass\n",
        }))
        (handle,) = _ids(graph, "handle")
        callees = graph.callees(handle)
        assert len(callees) == 1, f"Expected one resolved callee, got {callees}"
        assert callees[0].startswith("app/repo.py:")

    def test_ambiguous_candidates_become_multiple_edges(self):
        """A bare name defined in two files yields one ambiguous edge per candidate."""
        graph = build_call_graph(_extract({
            "svc.py": "def handle():\n    persist()\n",
            "repo_a.py": "def persist():\n    pass\n",
            "repo_b.py": "def persist():\n    pass\n",
        }))
        (handle,) = _ids(graph, "handle")
        edges = graph.outgoing[handle]
        assert len(edges) == 2, f"Expected two candidate edges, got {edges}"
        assert all(e.confidence == AMBIGUOUS for e in edges)
        assert graph.stats.ambiguous_call_sites == 1

    def test_unresolved_call_is_kept_but_not_traversable(self):
        """Unknown callees stay in the edge list without joining the adjacency."""
        graph = build_call_graph(_extract({"svc.py": "def handle():\n    external_api()\n"}))
        (handle,) = _ids(graph, "handle")
        assert [e.confidence for e in graph.edges] == [UNRESOLVED]
        assert graph.callees(handle) == []
        assert graph.stats.unresolved_call_sites == 1

    def test_module_level_calls_are_counted(self):
        """Calls outside any function count as module-level and create no edge."""
        graph = build_call_graph(_extract({"boot.py": "def setup():\n    pass\n\n\nsetup()\n"}))
        assert graph.stats.module_level_call_sites == 1
        assert graph.edges == []

    def test_stats(self):
        """Call-site counters and the resolution rate add up."""
        graph = build_call_graph(_extract({
            "svc.py": "def a():\n    b()\n    nowhere()\n\n\ndef b():\n    pass\n",
        }))
        stats = graph.stats
        assert stats.total_functions == 2
        assert stats.total_call_sites == 2
        assert stats.resolved_call_sites == 1
        assert stats.resolution_rate == 0.5
        assert stats.functions_by_language == {"python": 2}

    def test_configured_entry_points(self):
        """File/function glob patterns mark entry points."""
        matcher = EntryPointMatcher(patterns=[{"file": "api/*", "function": "handle_*"}])
        graph = build_call_graph(_extract({
            "api/users.py": "def handle_get():\n    pass\n\n\ndef helper():\n    pass\n",
        }), matcher)
        assert [graph.nodes[i].name for i in graph.entry_points] == ["handle_get"]
        assert graph.nodes[graph.entry_points[0]].entry_point_reason.startswith("configured")

    def test_route_decorator_entry_point(self):
        """A Flask-style route decorator marks the function as an entry point."""
        graph = build_call_graph(_extract({
            "web.py": "@app.route('/users')\ndef list_users():\n    pass\n",
        }))
        assert [graph.nodes[i].name for i in graph.entry_points] == ["list_users"]

    def test_caller_results_not_mutated(self):
        """Building never rewrites the extraction results it was given."""
        results = _extract({"svc.py": "def a():\n    b()\n\n\ndef b():\n    pass\n"})
        before = [r.to_dict() for r in results]
        build_call_graph(results)
        assert [r.to_dict() for r in results] == before

    def test_dangling_parent_is_skipped(self):
        """A method whose parent scope is neither a function nor a class is dropped and counted."""
        result = FileExtractionResult(file="svc.py", language="python", functions=[
            FunctionExtraction(name="handle", qualified_name="handle", start_line=1, end_line=3),
            FunctionExtraction(name="orphan", qualified_name="Missing.orphan", start_line=5, end_line=7,
                               class_name="Missing", parent="Missing", is_method=True),
        ])
        graph = build_call_graph([result])
        assert [n.qualified_name for n in graph.nodes.values()] == ["handle"]
        assert graph.find_nodes("orphan") == []
        assert graph.stats.skipped_functions == 1


class TestIncrementalArena:
    """update_file/remove_file retire ids instead of forgetting them."""

    def test_update_retires_old_ids(self):
        """Ids displaced by an update answer empty, never-seen ids still raise."""
        extractor = HybridExtractor()
        builder = CallGraphBuilder()
        builder.add_file(extractor.extract("def a():\n    b()\n\n\ndef b():\n    pass\n", "svc.py"))
        first = builder.build()
        (old_a,) = _ids(first, "a")

        builder.update_file(extractor.extract("\n\ndef a():\n    pass\n", "svc.py"))
        second = builder.build()
        assert old_a not in second.nodes, "The shifted function gets a new id"
        assert second.forward_reachable(old_a) == set()
        assert second.find_paths(old_a, _ids(second, "a")[0]) == []
        with pytest.raises(UnknownNodeError):
            second.forward_reachable("svc.py:never:1")

    def test_remove_file(self):
        """Removing a file drops its nodes and the edges into them."""
        extractor = HybridExtractor()
        builder = CallGraphBuilder()
        builder.add_file(extractor.extract("def a():\n    b()\n", "x.py"))
        builder.add_file(extractor.extract("def b():\n    pass\n", "y.py"))
        (b_id,) = _ids(builder.build(), "b")

        assert builder.remove_file("y.py") is True
        assert builder.remove_file("y.py") is False
        graph = builder.build()
        assert builder.files == ["x.py"]
        assert graph.callers(b_id) == [], "Retired id yields an empty result"
        assert graph.unresolved_edges(), "The call into the removed file is now unresolved"


class TestReachability:
    """Forward/backward BFS."""

    def test_forward_and_backward(self, diamond_graph):
        """Forward reachability follows callees; backward follows callers."""
        graph, ids = diamond_graph
        assert graph.forward_reachable(ids["b"]) == {ids["c"], ids["target"]}
        assert graph.backward_reachable(ids["c"]) == {ids["b"], ids["entry"]}

    def test_cycles_terminate(self, diamond_graph):
        """a <-> loop never traps the traversal."""
        graph, ids = diamond_graph
        reachable = graph.forward_reachable(ids["a"])
        assert reachable == {ids["target"], ids["loop"], ids["a"]}

    def test_max_depth(self, diamond_graph):
        """max_depth bounds the number of edges followed."""
        graph, ids = diamond_graph
        assert graph.forward_reachable(ids["entry"], max_depth=1) == {ids["a"], ids["b"]}
        assert graph.forward_reachable(ids["entry"], max_depth=0) == set()

    def test_distances(self, diamond_graph):
        """Distance maps hold the BFS hop count."""
        graph, ids = diamond_graph
        distances = graph.reachability.forward_distances(ids["entry"])
        assert distances[ids["target"]] == 2
        assert distances[ids["c"]] == 2

    def test_distance_from_entry_points(self, diamond_graph):
        """Nearest entry point and its distance; 0 for the entry itself."""
        graph, ids = diamond_graph
        engine = graph.reachability
        assert engine.distance_from_entry_points(ids["target"], graph.entry_points) == (2, ids["entry"])
        assert engine.distance_from_entry_points(ids["entry"], graph.entry_points) == (0, ids["entry"])
        assert engine.distance_from_entry_points(ids["entry"], []) is None

    def test_unknown_node_raises(self, diamond_graph):
        """A never-registered id is a caller bug, not an empty result."""
        graph, _ = diamond_graph
        with pytest.raises(UnknownNodeError) as exc:
            graph.backward_reachable("nope.py:ghost:1")
        assert isinstance(exc.value, KeyError)

    def test_reachability_agrees_with_paths(self, diamond_graph):
        """target in forward_reachable(x) iff find_paths(x, target) is non-empty."""
        graph, ids = diamond_graph
        for source in ids.values():
            reachable = graph.forward_reachable(source)
            for target in ids.values():
                has_path = bool(graph.find_paths(source, target))
                assert (target in reachable) == has_path, f"Mismatch for {source} -> {target}"


class TestPathFinder:
    def test_shortest_path_first(self, diamond_graph):
        """Paths come back in non-decreasing depth, shortest first."""
        graph, ids = diamond_graph
        paths = graph.find_paths(ids["entry"], ids["target"])
        assert [p.nodes for p in paths] == [
            [ids["entry"], ids["a"], ids["target"]],
            [ids["entry"], ids["b"], ids["c"], ids["target"]],
        ]
        assert paths[0].depth == 2 and paths[0].length == 3
        assert paths[0].lines == [2, 11]

    def test_no_path_is_empty(self, diamond_graph):
        """Unconnected nodes give an empty list, not an error."""
        graph, ids = diamond_graph
        assert graph.find_paths(ids["target"], ids["entry"]) == []

    def test_max_depth_and_max_paths(self, diamond_graph):
        """Depth and count limits prune the enumeration."""
        graph, ids = diamond_graph
        assert len(graph.find_paths(ids["entry"], ids["target"], max_depth=2)) == 1
        assert len(graph.find_paths(ids["entry"], ids["target"], max_paths=1)) == 1
        with pytest.raises(ValueError):
            graph.find_paths(ids["entry"], ids["target"], max_depth=-1)

    def test_unknown_endpoint_raises(self, diamond_graph):
        """Path queries on never-registered ids raise UnknownNodeError."""
        graph, ids = diamond_graph
        with pytest.raises(UnknownNodeError):
            graph.find_paths(ids["entry"], "ghost.py:x:1")

    def test_critical_path_uses_edge_weight(self, diamond_graph):
        """The heaviest path wins even when it is longer."""
        graph, ids = diamond_graph
        heavy = {ids["c"]: 10.0}
        path = graph.path_finder.critical_path(ids["entry"], ids["target"],
                                               lambda e: heavy.get(e.target_id, 1.0))
        assert path.nodes == [ids["entry"], ids["b"], ids["c"], ids["target"]]
        assert path.risk == 12.0

    def test_critical_path_tie_prefers_shorter(self, diamond_graph):
        """Equal weights keep the first, shortest path."""
        graph, ids = diamond_graph
        path = graph.path_finder.critical_path(ids["entry"], ids["target"], lambda e: 0.0)
        assert path.nodes == [ids["entry"], ids["a"], ids["target"]]

    def test_ambiguous_edges_traversed_by_default(self, ambiguous_graph):
        """Ambiguous candidates are followed unless excluded."""
        nodes, edges = ambiguous_graph
        included = graph_of(nodes, edges)
        excluded = graph_of(nodes, edges, include_ambiguous=False)
        caller = nodes[0].id
        assert len(included.forward_reachable(caller)) == 2
        assert excluded.forward_reachable(caller) == set()

    def test_retired_ids_yield_empty(self):
        """Retired ids return empty paths and reachability."""
        a = node("a", line=1)
        graph = graph_of([a], [], retired={"app.py:gone:5"})
        assert graph.find_paths(a.id, "app.py:gone:5") == []
        assert graph.backward_reachable("app.py:gone:5") == set()

    def test_dense_graph_still_finds_shortest_path(self):
        """Three fully connected layers of 50 hold 125,000 paths; the shortest is still found."""
        entry = node("entry", line=1, entry=True)
        target = node("target", line=9000)
        layers = [[node(f"l{depth}_{i}", line=depth * 1000 + i * 10) for i in range(50)] for depth in (1, 2, 3)]
        edges = [edge(entry, n) for n in layers[0]]
        for upper, lower in zip(layers, layers[1:]):
            edges.extend(edge(u, v) for u in upper for v in lower)
        edges.extend(edge(n, target) for n in layers[2])
        graph = graph_of([entry, target, *(n for layer in layers for n in layer)], edges)

        assert target.id in graph.forward_reachable(entry.id)
        (only,) = graph.find_paths(entry.id, target.id, max_paths=1)
        assert only.depth == 4
        assert only.nodes == [entry.id, layers[0][0].id, layers[1][0].id, layers[2][0].id, target.id]
        paths = graph.find_paths(entry.id, target.id)
        assert paths and paths[0].depth == 4
        assert all(p.depth == 4 for p in paths)


class TestCallGraphAnalyzer:
    def test_detect_cycles(self, diamond_graph):
        """a <-> loop is reported as one two-node cycle."""
        graph, ids = diamond_graph
        cycles = CallGraphAnalyzer(graph).detect_cycles()
        assert cycles == [{"nodes": sorted([ids["a"], ids["loop"]]), "size": 2}]

    def test_self_recursion_is_a_cycle(self):
        """A function calling itself is a cycle of size one."""
        rec = node("rec")
        graph = graph_of([rec], [edge(rec, rec)])
        assert CallGraphAnalyzer(graph).detect_cycles() == [{"nodes": [rec.id], "size": 1}]

    def test_find_dead_code(self):
        """Uncalled non-entry functions are dead; reachable ones are not."""
        entry = node("entry", line=1, entry=True)
        used = node("used", line=10)
        dead = node("dead", line=20)
        graph = graph_of([entry, used, dead], [edge(entry, used)])
        assert CallGraphAnalyzer(graph).find_dead_code() == [dead.id]

    def test_graph_summary(self, diamond_graph):
        """Summary statistics count nodes, entry points and cycles."""
        graph, _ = diamond_graph
        summary = CallGraphAnalyzer(graph).get_graph_summary()
        assert summary["statistics"]["total_nodes"] == 6
        assert summary["statistics"]["entry_points"] == 1
        assert summary["cycle_count"] == 1


class TestModulePaths:
    def test_module_path_strips_index(self):
        """index/__init__ files stand for their directory."""
        assert module_path("src/users/index.ts") == "src/users"
        assert module_path("app/models/__init__.py") == "app/models"
        assert module_path("app/models/user.py") == "app/models/user"

    def test_relative_typescript_import(self):
        """Relative imports resolve against the importing file."""
        assert "src/lib/db" in import_target_paths("../lib/db", "src/api/users.ts", "typescript")

    def test_python_dotted_import(self):
        """Dotted Python modules become slash paths."""
        assert "app/repo" in import_target_paths("app.repo", "app/service.py", "python")
