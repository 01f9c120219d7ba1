"""Project analysis orchestration - the full pipeline over one project root.

A scan walks the project, extracts every file concurrently (structure for the
call graph, data access for the boundary map), then swaps the per-file arenas
in one step. Everything downstream of the arenas - call graph, boundary scan,
prioritization - is built lazily on first access and dropped whenever a file
is updated or removed.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from driftscan.ast_extractors.base import ExtractionQuality, FileExtractionResult, detect_language
from driftscan.ast_extractors.grammar import GrammarProbe
from driftscan.ast_extractors.hybrid import HybridExtractor
from driftscan.boundaries.extractors import extract_data_access
from driftscan.boundaries.learner import DataAccessLearner
from driftscan.boundaries.prioritizer import SecurityPrioritizer
from driftscan.boundaries.scanner import BoundaryScanner, ScanOptions
from driftscan.boundaries.store import BoundaryStore
from driftscan.boundaries.types import BoundaryScanResult, DataAccessExtraction, PrioritizedScanResult
from driftscan.config_runtime import load_runtime_config, validate_config
from driftscan.graph.analyzer import CallGraphAnalyzer
from driftscan.graph.builder import CallGraphBuilder
from driftscan.graph.entry_points import EntryPointMatcher
from driftscan.graph.types import CallGraph
from driftscan.utils.concurrency import CancellationToken, run_per_file
from driftscan.utils.files import FileWalker, read_source
from driftscan.utils.logging import logger


@dataclass
class FileAnalysis:
    """Everything one file contributes to the project arenas."""

    structure: FileExtractionResult
    data_access: DataAccessExtraction


@dataclass
class AnalysisResult:
    call_graph: CallGraph
    boundaries: BoundaryScanResult
    prioritized: PrioritizedScanResult
    extraction: dict[str, ExtractionQuality] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        methods: dict[str, int] = {}
        for quality in self.extraction.values():
            methods[quality.method] = methods.get(quality.method, 0) + 1
        return {
            "call_graph": self.call_graph.to_dict(),
            "boundaries": self.boundaries.to_dict(),
            "prioritized": self.prioritized.to_dict(),
            "extraction": {
                "by_method": dict(sorted(methods.items())),
                "degraded_files": sorted(f for f, q in self.extraction.items() if q.failure_reason),
            },
        }


class ProjectAnalyzer:
    """Runs extraction, graph building, boundary scanning and prioritization."""

    def __init__(self, root_path: Path | str, config: dict[str, Any] | None = None,
                 probe: GrammarProbe | None = None):
        """Initialize the analyzer.

        Args:
            root_path: Project root; paths in every result are relative to it
            config: Runtime configuration (loaded from ``root_path`` when omitted)
            probe: Grammar capability probe (process-wide probe when omitted)

        Raises:
            ConfigurationError: if ``config`` carries unusable values
        """
        self.root_path = Path(root_path)
        if config is None:
            config = load_runtime_config(str(self.root_path))
        else:
            validate_config(config)
        self.config = config

        self.file_walker = FileWalker(self.root_path, config)
        self.extractor = HybridExtractor(probe, config["scan"]["extraction_mode"])
        self.graph_builder = CallGraphBuilder(EntryPointMatcher.from_config(config))
        self.scanner = BoundaryScanner(config, BoundaryStore(config), DataAccessLearner(config))
        self.prioritizer = SecurityPrioritizer(config)

        self._data_access: dict[str, DataAccessExtraction] = {}
        self._quality: dict[str, ExtractionQuality] = {}
        self._scanned: set[str] = set()
        self._graph: CallGraph | None = None
        self._boundaries: BoundaryScanResult | None = None
        self._prioritized: PrioritizedScanResult | None = None

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def analyze_file(self, path: str, source: str | None = None) -> FileAnalysis | None:
        """Extract one file; None when unsupported, too large or unreadable. Never raises."""
        language = detect_language(path)
        if language is None:
            return None
        if source is None:
            source = read_source(self.root_path / path)
            if source is None:
                return None
        if len(source) > self.config["scan"]["max_file_size"]:
            logger.debug(f"[SCAN] Skipping {path}: exceeds scan.max_file_size")
            return None
        structure = self.extractor.extract(source, path, language)
        data_access = extract_data_access(source, path, language, self.extractor.probe)
        return FileAnalysis(structure=structure, data_access=data_access)

    def scan(self, cancel_token: CancellationToken | None = None, paths: list[str] | None = None,
             sources: dict[str, str] | None = None) -> AnalysisResult:
        """Full scan of the project (or of ``paths`` only).

        ``sources`` maps project-relative paths to file contents and bypasses
        the filesystem for those files.

        Raises:
            ProjectRootError: if the project root is missing or unreadable
            ScanCancelledError: if ``cancel_token`` fires; the previous scan's state is kept
            RuleConfigurationError: if the rules file exists but cannot be parsed
        """
        started = time.perf_counter()
        if paths is None:
            paths = self.file_walker.walk()
        sources = sources or {}

        def worker(path: str) -> FileAnalysis | None:
            return self.analyze_file(path, sources.get(path))

        analyses = run_per_file(paths, worker, self.config["scan"]["parallelism"], cancel_token)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("graph assembly")

        # Single writer from here on: swap the arenas in path order
        self.graph_builder.clear()
        self._data_access.clear()
        self._quality.clear()
        self._scanned = set(paths)
        for path, analysis in analyses.items():
            self._store(path, analysis)
        self.invalidate()

        result = self.result()
        degraded = sum(1 for q in self._quality.values() if q.failure_reason)
        logger.info(
            f"[SCAN] Scanned {len(paths)} files in {int((time.perf_counter() - started) * 1000)}ms: "
            f"{len(result.call_graph)} functions, {len(result.boundaries.access_map.access_points)} access points, "
            f"{degraded} files on fallback extraction"
        )
        return result

    def update_file(self, path: str, source: str | None = None) -> bool:
        """Re-extract one file into the arenas; returns False when it could not be analyzed."""
        analysis = self.analyze_file(path, source)
        if analysis is None:
            self.remove_file(path)
            return False
        self._scanned.add(path)
        self._store(path, analysis)
        self.invalidate()
        logger.debug(f"[SCAN] Updated {path}")
        return True

    def remove_file(self, path: str) -> bool:
        """Drop everything ``path`` contributed; returns False when it was never stored."""
        self._scanned.discard(path)
        self._quality.pop(path, None)
        removed = self._data_access.pop(path, None) is not None
        removed = self.graph_builder.remove_file(path) or removed
        if removed:
            self.invalidate()
        return removed

    def register_rule(self, rule: dict[str, Any]) -> None:
        """Register a boundary rule for the next boundary evaluation.

        Raises:
            RuleConfigurationError: if the rule is malformed
        """
        self.scanner.store.register_rule(rule)
        self._boundaries = None
        self._prioritized = None

    def _store(self, path: str, analysis: FileAnalysis) -> None:
        self.graph_builder.update_file(analysis.structure)
        self._data_access[path] = analysis.data_access
        self._quality[path] = analysis.structure.quality

    def invalidate(self) -> None:
        """Drop derived results; they are rebuilt from the arenas on next access."""
        if self._graph is not None:
            self._graph.invalidate_caches()
        self._graph = None
        self._boundaries = None
        self._prioritized = None

    # ------------------------------------------------------------------
    # Derived results (lazy)
    # ------------------------------------------------------------------

    @property
    def files(self) -> list[str]:
        return sorted(self._scanned)

    @property
    def extraction_quality(self) -> dict[str, ExtractionQuality]:
        return {path: self._quality[path] for path in sorted(self._quality)}

    @property
    def call_graph(self) -> CallGraph:
        if self._graph is None:
            self._graph = self.graph_builder.build()
        return self._graph

    @property
    def boundary_result(self) -> BoundaryScanResult:
        if self._boundaries is None:
            options = ScanOptions(root=str(self.root_path))
            self.scanner.load_rules(options)
            result = self.scanner.aggregate(list(self._data_access.values()), self.files, options)
            self._attribute_functions(result)
            self._boundaries = result
        return self._boundaries

    @property
    def prioritized(self) -> PrioritizedScanResult:
        if self._prioritized is None:
            self._prioritized = self.prioritizer.prioritize(self.call_graph, self.boundary_result.access_map)
        return self._prioritized

    def result(self) -> AnalysisResult:
        return AnalysisResult(
            call_graph=self.call_graph,
            boundaries=self.boundary_result,
            prioritized=self.prioritized,
            extraction=self.extraction_quality,
        )

    def graph_summary(self) -> dict[str, Any]:
        return CallGraphAnalyzer(self.call_graph).get_graph_summary()

    def _attribute_functions(self, result: BoundaryScanResult) -> None:
        graph = self.call_graph
        functions = set()
        for point in result.access_map.access_points:
            node = graph.function_at(point.file, point.line)
            if node is not None:
                point.function_id = node.id
                functions.add(node.id)
        graph.stats.data_access_functions = len(functions)
