"""Boundaries package - data access, sensitivity and boundary rules.

Core modules:
- types: DataAccessPoint, SensitiveField, DataAccessMap, BoundaryRule and results
- extractors: Per-framework data-access extractors plus raw SQL
- store: Project-wide DataAccessMap, rule registry and queries
- learner: Frequency-voted sensitivity and structural conventions
- scanner: Concurrent scan driver producing a BoundaryScanResult
- prioritizer: Reachability-weighted risk ranking
"""

from .learner import DataAccessLearner
from .prioritizer import SecurityPrioritizer
from .rules import load_rules_file, validate_rule
from .scanner import BoundaryScanner, ScanOptions
from .store import BoundaryStore
from .types import (
    SEVERITY_BANDS,
    TIERS,
    BoundaryRule,
    BoundaryScanResult,
    BoundaryViolation,
    DataAccessExtraction,
    DataAccessMap,
    DataAccessPoint,
    LearnedConvention,
    PrioritizedAccessPoint,
    PrioritizedScanResult,
    SecuritySummary,
    SensitiveField,
)

__all__ = [
    "SEVERITY_BANDS",
    "TIERS",
    "BoundaryRule",
    "BoundaryScanResult",
    "BoundaryScanner",
    "BoundaryStore",
    "BoundaryViolation",
    "DataAccessExtraction",
    "DataAccessLearner",
    "DataAccessMap",
    "DataAccessPoint",
    "LearnedConvention",
    "PrioritizedAccessPoint",
    "PrioritizedScanResult",
    "ScanOptions",
    "SecurityPrioritizer",
    "SecuritySummary",
    "SensitiveField",
    "load_rules_file",
    "validate_rule",
]
