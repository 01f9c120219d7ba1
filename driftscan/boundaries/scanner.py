"""Boundary scanner - drive data-access extraction over a file set.

``scan_files`` extracts every file concurrently (bounded by ``parallelism``),
then aggregates in path order through the BoundaryStore, runs the learner and
evaluates boundary rules. Cancellation is checked between files and once more
before aggregation; a cancelled scan raises and returns nothing.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from driftscan.ast_extractors.base import detect_language
from driftscan.boundaries.extractors import extract_data_access
from driftscan.boundaries.learner import DataAccessLearner
from driftscan.boundaries.store import BoundaryStore
from driftscan.boundaries.types import BoundaryScanResult, DataAccessExtraction, ScanStats
from driftscan.config_runtime import DEFAULTS
from driftscan.utils.concurrency import CancellationToken, run_per_file
from driftscan.utils.files import read_source
from driftscan.utils.logging import logger


@dataclass
class ScanOptions:
    """Per-scan knobs; None falls back to the scanner's configuration."""

    root: str | None = None
    parallelism: int | None = None
    max_file_size: int | None = None
    rules: list[dict[str, Any]] = field(default_factory=list)
    rules_file: str | None = None
    learn: bool = True
    check_violations: bool = True


class BoundaryScanner:
    """Scans files for data access and assembles a BoundaryScanResult."""

    def __init__(self, config: dict[str, Any] | None = None, store: BoundaryStore | None = None,
                 learner: DataAccessLearner | None = None):
        self.config = config or DEFAULTS
        self.store = store or BoundaryStore(self.config)
        self.learner = learner or DataAccessLearner(self.config)
        self._loaded_rule_files: set[str] = set()

    def extract_file(self, path: str, root: Path | None = None, source: str | None = None,
                     max_file_size: int | None = None) -> DataAccessExtraction | None:
        """Data-access facts of one file; None when unsupported, too large or unreadable."""
        language = detect_language(path)
        if language is None:
            return None
        if source is None:
            full = (root / path) if root else Path(path)
            source = read_source(full)
            if source is None:
                return None
        limit = max_file_size or self.config["scan"]["max_file_size"]
        if len(source) > limit:
            logger.debug(f"[SCAN] Skipping {path}: {len(source)} bytes exceeds {limit}")
            return None
        return extract_data_access(source, path, language)

    def scan_files(self, paths: list[str], options: ScanOptions | None = None,
                   cancel_token: CancellationToken | None = None,
                   sources: dict[str, str] | None = None) -> BoundaryScanResult:
        """Scan ``paths`` (relative to ``options.root`` when set).

        ``sources`` supplies file contents directly, bypassing the filesystem.

        Raises:
            ScanCancelledError: if ``cancel_token`` fires before aggregation
            RuleConfigurationError: if a rules file exists but cannot be parsed
        """
        options = options or ScanOptions()
        started = time.perf_counter()
        root = Path(options.root) if options.root else None
        parallelism = options.parallelism or self.config["scan"]["parallelism"]
        self.load_rules(options)

        def worker(path: str) -> DataAccessExtraction | None:
            return self.extract_file(path, root, (sources or {}).get(path), options.max_file_size)

        extractions = run_per_file(paths, worker, parallelism, cancel_token, stage="data-access extraction")
        scanned = sorted(set(paths))
        skipped = [p for p in scanned if p not in extractions]
        result = self.aggregate(list(extractions.values()), scanned, options)
        result.stats.skipped_files = skipped
        result.stats.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"[SCAN] Boundary scan: {len(scanned)} files, {result.stats.access_points} access points, "
            f"{len(result.violations)} violations in {result.stats.duration_ms}ms"
        )
        return result

    def aggregate(self, extractions: list[DataAccessExtraction], scanned: list[str],
                  options: ScanOptions | None = None) -> BoundaryScanResult:
        """Single-writer merge of per-file extractions into a fresh result."""
        options = options or ScanOptions()
        self.store.invalidate()
        access_map = self.store.build_map(extractions)

        conventions = []
        if options.learn:
            conventions = self.learner.learn(access_map, scanned)
            self.store.summarize_files(access_map)

        violations = self.store.check_all_violations() if options.check_violations else []
        stats = ScanStats(
            files_scanned=len(scanned),
            files_with_access=len(access_map.files),
            access_points=len(access_map.access_points),
            fields=len(access_map.sensitive_fields),
            models=len(access_map.models),
            rules_loaded=len(self.store.rules),
        )
        return BoundaryScanResult(
            access_map=access_map,
            violations=violations,
            conventions=conventions,
            rule_errors=list(self.store.rule_errors),
            stats=stats,
        )

    def load_rules(self, options: ScanOptions) -> None:
        """Register inline rules and the rules file (each file once per scanner)."""
        root = Path(options.root) if options.root else None
        if options.rules:
            self.store.load_rules(options.rules)
        rules_file = options.rules_file or self.config["boundaries"]["rules_file"]
        if not rules_file:
            return
        path = Path(rules_file)
        if not path.is_absolute() and root is not None:
            path = root / path
        key = str(path.resolve())
        if key in self._loaded_rule_files:
            return
        self._loaded_rule_files.add(key)
        self.store.load_rules_file(path)
