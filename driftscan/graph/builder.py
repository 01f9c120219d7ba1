"""Call graph builder.

Consumes per-file extraction results and assembles one CallGraph:

1. Register one FunctionNode per extracted function. The id is
   ``file:qualified_name:line``.
2. Resolve each call site, in this order:
   - same file (same class first for ``self``/``this`` receivers);
   - files and classes named by the caller's imports;
   - project-wide by name.
   Several candidates at one stage produce one ``ambiguous`` edge each. No
   candidate produces an ``unresolved`` edge.
3. Mark entry points.

Storage is an arena keyed by file. ``update_file`` swaps a file's
extraction result and ``remove_file`` drops it. The ids they displace are
remembered as retired, so later queries on them answer "empty" instead of
"unknown". Malformed entries are logged and skipped and never fail the
build. Caller-supplied results are not mutated.
"""

import posixpath
import re
from collections import defaultdict

from driftscan.ast_extractors.base import ClassExtraction, FileExtractionResult, FunctionExtraction
from driftscan.graph.entry_points import EntryPointMatcher
from driftscan.graph.types import (
    AMBIGUOUS,
    RESOLVED,
    UNRESOLVED,
    CallEdge,
    CallGraph,
    CallGraphStats,
    FunctionNode,
    make_node_id,
)
from driftscan.utils.logging import logger

SELF_RECEIVERS = frozenset({"self", "this", "cls", "$this", "static", "self::", "parent", "base", "super"})
_SOURCE_EXT = re.compile(r"\.(py|pyw|ts|tsx|mts|cts|js|jsx|mjs|cjs|java|cs|php)$")


def module_path(file: str) -> str:
    """File path without extension and without trailing index/__init__."""
    stem = _SOURCE_EXT.sub("", file)
    for suffix in ("/__init__", "/index"):
        if stem.endswith(suffix):
            return stem[: -len(suffix)]
    return stem


def import_target_paths(source: str, importing_file: str, language: str) -> list[str]:
    """Candidate module paths (extension-less, POSIX) an import source can denote."""
    source = source.strip()
    if not source:
        return []
    base_dir = posixpath.dirname(importing_file)

    if language in ("typescript", "javascript"):
        if source.startswith("."):
            return [posixpath.normpath(posixpath.join(base_dir, source))]
        if source.startswith(("@/", "~/")):
            return [source[2:]]
        return [source]

    if language == "python":
        if source.startswith("."):
            level = len(source) - len(source.lstrip("."))
            rest = source[level:]
            target = base_dir
            for _ in range(level - 1):
                target = posixpath.dirname(target)
            joined = posixpath.join(target, rest.replace(".", "/")) if rest else target
            return [posixpath.normpath(joined)]
        return [source.replace(".", "/")]

    if language == "php":
        return [source.replace("\\", "/")]

    # java, csharp: dotted names; wildcard imports name a package
    return [source.rstrip(".*").replace(".", "/")]


def _path_matches(file_module: str, target: str) -> bool:
    if not target:
        return False
    file_module = file_module.lower()
    target = target.lower().lstrip("./")
    return file_module == target or file_module.endswith("/" + target)


class CallGraphBuilder:
    """Arena of per-file extraction results that builds CallGraph snapshots."""

    def __init__(self, entry_matcher: EntryPointMatcher | None = None, include_ambiguous: bool = True):
        self.entry_matcher = entry_matcher or EntryPointMatcher()
        self.include_ambiguous = include_ambiguous
        self._files: dict[str, FileExtractionResult] = {}
        self._registered: set[str] = set()
        self._live: set[str] = set()

    # ------------------------------------------------------------------
    # Arena maintenance
    # ------------------------------------------------------------------

    @property
    def files(self) -> list[str]:
        return sorted(self._files)

    def add_file(self, result: FileExtractionResult) -> None:
        """Add or replace the extraction result for one file."""
        self._files[result.file] = result

    update_file = add_file

    def remove_file(self, file: str) -> bool:
        return self._files.pop(file, None) is not None

    def clear(self) -> None:
        """Forget every file but keep the registry of ids ever issued."""
        self._files.clear()

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> CallGraph:
        nodes: dict[str, FunctionNode] = {}
        stats = CallGraphStats()
        # file -> [(extraction, node)] for caller lookup
        per_file: dict[str, list[tuple[FunctionExtraction, FunctionNode]]] = {}
        classes: dict[tuple[str, str], ClassExtraction] = {}

        for file in sorted(self._files):
            result = self._files[file]
            for cls in result.classes:
                classes.setdefault((file, cls.name), cls)
            per_file[file] = self._register_file(result, nodes, stats)

        index = _NodeIndex(nodes, self._files)
        edges: list[CallEdge] = []
        for file in sorted(self._files):
            result = self._files[file]
            for call in result.calls:
                stats.total_call_sites += 1
                caller = self._caller_for(call.caller, call.line, per_file.get(file, []))
                if caller is None:
                    stats.module_level_call_sites += 1
                    continue
                new_edges = index.resolve(caller, call, result)
                edges.extend(new_edges)
                confidence = new_edges[0].confidence
                if confidence == RESOLVED:
                    stats.resolved_call_sites += 1
                elif confidence == AMBIGUOUS:
                    stats.ambiguous_call_sites += 1
                else:
                    stats.unresolved_call_sites += 1

        for node in nodes.values():
            reason = self.entry_matcher.match(node, classes.get((node.file, node.class_name or "")))
            if reason:
                node.is_entry_point = True
                node.entry_point_reason = reason

        stats.total_functions = len(nodes)
        stats.entry_points = sum(1 for n in nodes.values() if n.is_entry_point)
        by_language: dict[str, int] = defaultdict(int)
        for node in nodes.values():
            by_language[node.language] += 1
        stats.functions_by_language = dict(sorted(by_language.items()))

        live = set(nodes)
        retired = (self._registered | self._live) - live
        self._registered |= live
        self._live = live

        logger.debug(
            f"[GRAPH] Built call graph: {len(nodes)} functions, {len(edges)} edges "
            f"({stats.resolved_call_sites} resolved, {stats.ambiguous_call_sites} ambiguous, "
            f"{stats.unresolved_call_sites} unresolved)"
        )
        return CallGraph(nodes, edges, stats, retired_ids=retired, include_ambiguous=self.include_ambiguous)

    def _register_file(self, result: FileExtractionResult, nodes: dict[str, FunctionNode],
                       stats: CallGraphStats) -> list[tuple[FunctionExtraction, FunctionNode]]:
        file = result.file
        known_scopes = {f.qualified_name for f in result.functions}
        class_names = {c.name for c in result.classes}
        registered = []

        for func in result.functions:
            if not func.name or func.start_line < 1 or func.end_line < func.start_line:
                logger.warning(f"[GRAPH] Skipping malformed function entry in {file}: {func.name!r} at {func.start_line}")
                stats.skipped_functions += 1
                continue
            if func.parent and func.parent not in known_scopes \
                    and func.parent.rsplit(".", 1)[-1] not in class_names:
                logger.warning(
                    f"[GRAPH] Skipping {file}:{func.qualified_name}: dangling parent reference {func.parent!r}"
                )
                stats.skipped_functions += 1
                continue

            node_id = make_node_id(file, func.qualified_name, func.start_line)
            if node_id in nodes:
                logger.debug(f"[GRAPH] Duplicate function id {node_id}, keeping first")
                continue
            node = FunctionNode(
                id=node_id,
                name=func.name,
                qualified_name=func.qualified_name,
                file=file,
                start_line=func.start_line,
                end_line=func.end_line,
                language=result.language,
                parameters=list(func.parameters),
                class_name=func.class_name,
                return_type=func.return_type,
                decorators=list(func.decorators),
                is_method=func.is_method,
                is_constructor=func.is_constructor,
                is_exported=func.is_exported,
            )
            nodes[node_id] = node
            registered.append((func, node))
        return registered

    @staticmethod
    def _caller_for(qualified: str | None, line: int,
                    candidates: list[tuple[FunctionExtraction, FunctionNode]]) -> FunctionNode | None:
        best = None
        for func, node in candidates:
            if qualified is not None and func.qualified_name != qualified:
                continue
            if not node.contains_line(line):
                continue
            if best is None or (node.end_line - node.start_line) < (best.end_line - best.start_line):
                best = node
        if best is None and qualified is not None:
            # Caller named a function the registry skipped; fall back to line containment
            return CallGraphBuilder._caller_for(None, line, candidates)
        return best


class _NodeIndex:
    """Lookup tables used while resolving call sites."""

    def __init__(self, nodes: dict[str, FunctionNode], files: dict[str, FileExtractionResult]):
        self.by_name: dict[str, list[FunctionNode]] = defaultdict(list)
        self.by_file_name: dict[tuple[str, str], list[FunctionNode]] = defaultdict(list)
        self.constructors: dict[str, list[FunctionNode]] = defaultdict(list)
        for node in sorted(nodes.values(), key=lambda n: n.id):
            self.by_name[node.name].append(node)
            self.by_file_name[(node.file, node.name)].append(node)
            if node.is_constructor and node.class_name:
                self.constructors[node.class_name].append(node)
        self.module_of = {file: module_path(file) for file in files}

    def resolve(self, caller: FunctionNode, call, result: FileExtractionResult) -> list[CallEdge]:
        name = call.callee_name
        receiver = (call.receiver or "").strip()

        if call.is_constructor_call and self.constructors.get(name):
            return self._edges(caller, call, self.constructors[name], "project")

        if not receiver or receiver in SELF_RECEIVERS:
            same_file = self.by_file_name.get((caller.file, name), [])
            if receiver and caller.class_name:
                same_class = [n for n in same_file if n.class_name == caller.class_name]
                if same_class:
                    return self._edges(caller, call, same_class, "same-file")
            if same_file:
                return self._edges(caller, call, same_file, "same-file")
            if receiver in ("super", "parent", "base"):
                return self._edges(caller, call, [], "none")

        imported = self._import_candidates(caller, name, receiver, result)
        if imported:
            return self._edges(caller, call, imported, "import")

        project = [n for n in self.by_name.get(name, []) if n.id != caller.id or not receiver]
        if receiver and receiver not in SELF_RECEIVERS and len(project) > 1:
            hint = re.split(r"\.|->|::|\?\.", receiver)[-1].lstrip("$_").replace("_", "").lower()
            hinted = [n for n in project
                      if n.class_name and n.class_name.lower() in (hint, hint.removesuffix("s"))]
            if hinted:
                project = hinted
        return self._edges(caller, call, project, "project")

    def _import_candidates(self, caller: FunctionNode, name: str, receiver: str,
                           result: FileExtractionResult) -> list[FunctionNode]:
        root = re.split(r"\.|->|::|\?\.", receiver, maxsplit=1)[0] if receiver else ""
        found: list[FunctionNode] = []
        for imp in result.imports:
            targets = import_target_paths(imp.source, caller.file, result.language)
            for imported in imp.names:
                if receiver:
                    if imported.local != root:
                        continue
                    wanted_name = name
                    wanted_class = None if imported.is_namespace or imported.is_default else imported.imported
                else:
                    if imported.local != name:
                        continue
                    wanted_name = imported.imported if not imported.is_default else name
                    wanted_class = None
                for node in self.by_name.get(wanted_name, []):
                    if wanted_class and node.class_name == wanted_class:
                        found.append(node)
                    elif any(_path_matches(self.module_of.get(node.file, ""), t) for t in targets) \
                            or any(_path_matches(self.module_of.get(node.file, ""), f"{t}/{imported.imported}")
                                   for t in targets):
                        found.append(node)
                # Default imports of a class: constructor lookups
                if not receiver and imported.local == name and self.constructors.get(name):
                    found.extend(self.constructors[name])
            if not imp.names and receiver:
                # Java/C#/PHP style: import names a type, receiver names an instance
                last = re.split(r"[./\\]", imp.source)[-1]
                if last.lower() == root.lstrip("$_").lower():
                    found.extend(n for n in self.by_name.get(name, []) if n.class_name == last)
        unique = {n.id: n for n in found}
        return [unique[k] for k in sorted(unique)]

    @staticmethod
    def _edges(caller: FunctionNode, call, candidates: list[FunctionNode], how: str) -> list[CallEdge]:
        if not candidates:
            return [CallEdge(
                source_id=caller.id,
                target_name=call.callee_name,
                line=call.line,
                confidence=UNRESOLVED,
                resolution="none",
                receiver=call.receiver,
            )]
        confidence = RESOLVED if len(candidates) == 1 else AMBIGUOUS
        return [
            CallEdge(
                source_id=caller.id,
                target_name=call.callee_name,
                line=call.line,
                confidence=confidence,
                target_id=candidate.id,
                resolution=how,
                receiver=call.receiver,
                candidates=len(candidates),
            )
            for candidate in candidates
        ]


def build_call_graph(results: list[FileExtractionResult], entry_matcher: EntryPointMatcher | None = None,
                     include_ambiguous: bool = True) -> CallGraph:
    """One-shot build from a list of extraction results."""
    builder = CallGraphBuilder(entry_matcher, include_ambiguous)
    for result in results:
        builder.add_file(result)
    return builder.build()
