"""Pytest configuration and fixtures."""

import copy
from pathlib import Path

import pytest

from driftscan.ast_extractors.base import ParameterInfo
from driftscan.ast_extractors.grammar import reset_grammar_probe
from driftscan.config_runtime import DEFAULTS
from driftscan.graph.types import AMBIGUOUS, RESOLVED, CallEdge, CallGraph, FunctionNode, make_node_id

# handleRequest (entry) -> getUser -> db.readField("users.ssn"); deadCode is never called
SCENARIO_SOURCE = '''\
def handleRequest(request_id):
    user = getUser(request_id)
    return user


def getUser(user_id):
    return db.readField("users.ssn")


def deadCode():
    return db.readField("patients.diagnosis")
'''


@pytest.fixture(autouse=True)
def fresh_grammar_probe():
    """Every test starts from an unprobed process-wide grammar probe."""
    reset_grammar_probe()
    yield
    reset_grammar_probe()


@pytest.fixture
def config():
    """Default configuration, serial scans, no rules file."""
    cfg = copy.deepcopy(DEFAULTS)
    cfg["scan"]["parallelism"] = 1
    cfg["boundaries"]["rules_file"] = ""
    return cfg


@pytest.fixture
def scenario_config(config):
    """Configuration for the handleRequest/getUser/deadCode project."""
    config["entry_points"]["patterns"] = [{"file": "*", "function": "handleRequest"}]
    config["boundaries"]["sensitive_fields"] = {
        "users.ssn": "restricted",
        "patients.diagnosis": "confidential",
    }
    return config


@pytest.fixture
def make_project(tmp_path):
    """Write ``{relative path: source}`` under a temporary project root."""

    def _make(files: dict[str, str]) -> Path:
        for rel, source in files.items():
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(source, encoding="utf-8")
        return tmp_path

    return _make


@pytest.fixture
def scenario_project(make_project):
    return make_project({"app/service.py": SCENARIO_SOURCE})


def node(name: str, file: str = "app.py", line: int = 1, end: int | None = None, entry: bool = False,
         params: list[str] | None = None) -> FunctionNode:
    """A FunctionNode built the way the builder names them."""
    return FunctionNode(
        id=make_node_id(file, name, line),
        name=name,
        qualified_name=name,
        file=file,
        start_line=line,
        end_line=end if end is not None else line + 2,
        language="python",
        parameters=[ParameterInfo(name=p) for p in (params or [])],
        is_entry_point=entry,
        entry_point_reason="declared" if entry else None,
    )


def edge(source: FunctionNode, target: FunctionNode, line: int | None = None,
         confidence: str = RESOLVED) -> CallEdge:
    return CallEdge(
        source_id=source.id,
        target_name=target.name,
        line=line if line is not None else source.start_line + 1,
        confidence=confidence,
        target_id=target.id,
        resolution="same-file",
    )


def graph_of(nodes: list[FunctionNode], edges: list[CallEdge], retired: set[str] | None = None,
             include_ambiguous: bool = True) -> CallGraph:
    return CallGraph({n.id: n for n in nodes}, edges, retired_ids=retired or set(),
                     include_ambiguous=include_ambiguous)


@pytest.fixture
def diamond_graph():
    """entry -> a -> target, entry -> b -> c -> target, plus a <-> loop cycle."""
    entry = node("entry", line=1, entry=True)
    a = node("a", line=10)
    b = node("b", line=20)
    c = node("c", line=30)
    target = node("target", line=40)
    loop = node("loop", line=50)
    nodes = [entry, a, b, c, target, loop]
    edges = [
        edge(entry, a, line=2),
        edge(entry, b, line=3),
        edge(a, target, line=11),
        edge(b, c, line=21),
        edge(c, target, line=31),
        edge(a, loop, line=12),
        edge(loop, a, line=51),
    ]
    return graph_of(nodes, edges), {n.name: n.id for n in nodes}


@pytest.fixture
def ambiguous_graph():
    """caller -> (save in repo_a | save in repo_b), one resolved-in-name-only edge each."""
    caller = node("caller", file="svc.py", line=1, entry=True)
    save_a = node("save", file="repo_a.py", line=1)
    save_b = node("save", file="repo_b.py", line=1)
    edges = [edge(caller, save_a, line=2, confidence=AMBIGUOUS), edge(caller, save_b, line=2, confidence=AMBIGUOUS)]
    return [caller, save_a, save_b], edges
