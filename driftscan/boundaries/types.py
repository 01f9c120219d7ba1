"""Data boundary model.

Every entity here is plain data: dataclasses built from strings, numbers,
lists and dicts, so ``to_dict()`` output can be handed to ``json.dumps``
unchanged.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

# Sensitivity tiers, least to most sensitive
TIERS = ("public", "internal", "confidential", "restricted")
DEFAULT_TIER = "public"

PROVENANCE_DECLARED = "declared"
PROVENANCE_LEARNED = "learned"
PROVENANCE_DEFAULT = "default"

OPERATIONS = ("read", "write", "delete", "query", "raw-sql", "unknown")

# Risk bands, most to least severe
SEVERITY_BANDS = ("critical", "high", "medium", "low", "minimal")

# Boundary rule severities
RULE_SEVERITIES = ("error", "warning", "info")

WHOLE_ROW = "*"


def tier_rank(tier: str) -> int:
    """Position of ``tier`` in TIERS; unknown tiers rank as public."""
    try:
        return TIERS.index(tier)
    except ValueError:
        return 0


def max_tier(tiers) -> str:
    best = DEFAULT_TIER
    for tier in tiers:
        if tier_rank(tier) > tier_rank(best):
            best = tier
    return best


@dataclass
class DataAccessPoint:
    """One read/write/query site.

    ``fields`` holds column names, or ``["*"]`` for whole-row access.
    ``model`` keeps the ORM class name the site referenced so the store can
    map it onto the declared table.
    """

    file: str
    line: int
    table: str
    operation: str
    framework: str
    fields: list[str] = field(default_factory=lambda: [WHOLE_ROW])
    column: int = 0
    confidence: float = 0.9
    context: str = ""
    is_raw_sql: bool = False
    model: str | None = None
    function_id: str | None = None

    @property
    def id(self) -> str:
        return f"{self.file}:{self.line}:{self.column}:{self.table}"

    @property
    def is_whole_row(self) -> bool:
        return WHOLE_ROW in self.fields

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["id"] = self.id
        return data


@dataclass
class ExtractedField:
    """A field declaration found in a model, entity or schema."""

    table: str
    name: str
    file: str
    line: int
    model: str | None = None
    declared_type: str | None = None
    marker_tier: str | None = None
    marker_source: str | None = None
    framework: str = "unknown"
    confidence: float = 0.9


@dataclass
class OrmModel:
    """ORM class mapped onto a table."""

    name: str
    table: str
    file: str
    line: int
    framework: str
    fields: list[str] = field(default_factory=list)
    explicit_table: bool = False


@dataclass
class DataAccessExtraction:
    """What the data-access extractors found in one file."""

    file: str
    language: str
    access_points: list[DataAccessPoint] = field(default_factory=list)
    fields: list[ExtractedField] = field(default_factory=list)
    models: list[OrmModel] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SensitiveField:
    """A (table, field) pair with its tier and where the tier came from."""

    table: str
    field: str
    tier: str = DEFAULT_TIER
    provenance: str = PROVENANCE_DEFAULT
    confidence: float = 0.0
    category: str | None = None
    convention: str | None = None
    source: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.table}.{self.field}"


@dataclass
class TableAccessInfo:
    name: str
    models: list[str] = field(default_factory=list)
    fields: dict[str, SensitiveField] = field(default_factory=dict)
    access_points: list[DataAccessPoint] = field(default_factory=list)

    @property
    def operations(self) -> list[str]:
        return sorted({p.operation for p in self.access_points})

    @property
    def max_tier(self) -> str:
        return max_tier(f.tier for f in self.fields.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "models": list(self.models),
            "fields": {name: asdict(sf) for name, sf in sorted(self.fields.items())},
            "access_points": [p.to_dict() for p in self.access_points],
            "operations": self.operations,
            "max_tier": self.max_tier,
        }


@dataclass
class FileAccessInfo:
    file: str
    tables: list[str] = field(default_factory=list)
    access_point_count: int = 0
    operations: list[str] = field(default_factory=list)
    max_tier: str = DEFAULT_TIER
    frameworks: list[str] = field(default_factory=list)


@dataclass
class DataAccessMap:
    """Project-wide map of tables, fields and the sites that touch them."""

    tables: dict[str, TableAccessInfo] = field(default_factory=dict)
    files: dict[str, FileAccessInfo] = field(default_factory=dict)
    models: list[OrmModel] = field(default_factory=list)
    filtered_tables: dict[str, str] = field(default_factory=dict)

    @property
    def access_points(self) -> list[DataAccessPoint]:
        points = [p for info in self.tables.values() for p in info.access_points]
        return sorted(points, key=lambda p: (p.file, p.line, p.column, p.table))

    @property
    def sensitive_fields(self) -> list[SensitiveField]:
        return [sf for name in sorted(self.tables) for _, sf in sorted(self.tables[name].fields.items())]

    def get_field(self, table: str, name: str) -> SensitiveField | None:
        info = self.tables.get(table)
        return info.fields.get(name) if info else None

    def tier_of(self, table: str, name: str) -> str:
        sf = self.get_field(table, name)
        return sf.tier if sf else DEFAULT_TIER

    def touched_fields(self, point: DataAccessPoint) -> list[SensitiveField]:
        """Fields of ``point``'s table the site reads or writes; every field for whole-row access."""
        info = self.tables.get(point.table)
        if info is None:
            return []
        if point.is_whole_row:
            return [info.fields[name] for name in sorted(info.fields)]
        return [info.fields[name] for name in point.fields if name in info.fields]

    def point_tier(self, point: DataAccessPoint) -> str:
        return max_tier(sf.tier for sf in self.touched_fields(point))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tables": {name: self.tables[name].to_dict() for name in sorted(self.tables)},
            "files": {name: asdict(self.files[name]) for name in sorted(self.files)},
            "models": [asdict(m) for m in self.models],
            "sensitive_fields": [asdict(sf) for sf in self.sensitive_fields],
            "filtered_tables": dict(sorted(self.filtered_tables.items())),
            "stats": {
                "total_tables": len(self.tables),
                "total_access_points": len(self.access_points),
                "total_files": len(self.files),
                "total_models": len(self.models),
            },
        }


@dataclass
class BoundaryRule:
    """Static policy: which data must not be touched from where.

    Selectors (``tables``, ``fields``, ``min_tier``/``tiers``) are ANDed: an
    access point is in scope when it satisfies every selector the rule sets.
    Location: a violation is raised when the file matches ``forbidden_paths``,
    or when ``allowed_paths`` is set and the file matches none of them.
    """

    id: str
    description: str = ""
    severity: str = "warning"
    tables: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)
    min_tier: str | None = None
    tiers: list[str] = field(default_factory=list)
    operations: list[str] = field(default_factory=list)
    forbidden_paths: list[str] = field(default_factory=list)
    allowed_paths: list[str] = field(default_factory=list)
    exclude_paths: list[str] = field(default_factory=list)
    enabled: bool = True


@dataclass
class BoundaryViolation:
    rule_id: str
    severity: str
    access_point: DataAccessPoint
    message: str
    rule_description: str = ""
    tier: str = DEFAULT_TIER
    suggestion: str | None = None

    @property
    def id(self) -> str:
        return f"{self.rule_id}:{self.access_point.id}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["id"] = self.id
        data["access_point"] = self.access_point.to_dict()
        return data


@dataclass
class LearnedConvention:
    """A pattern observed often enough to generalize from.

    kind: "sensitivity", "framework", "table_naming" or "directory_role"
    """

    pattern: str
    meaning: str
    confidence: float
    support: int
    kind: str = "sensitivity"
    examples: list[str] = field(default_factory=list)


@dataclass
class ScanStats:
    files_scanned: int = 0
    files_with_access: int = 0
    skipped_files: list[str] = field(default_factory=list)
    access_points: int = 0
    fields: int = 0
    models: int = 0
    rules_loaded: int = 0
    duration_ms: int = 0


@dataclass
class BoundaryScanResult:
    access_map: DataAccessMap
    violations: list[BoundaryViolation] = field(default_factory=list)
    conventions: list[LearnedConvention] = field(default_factory=list)
    rule_errors: list[str] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_map": self.access_map.to_dict(),
            "violations": [v.to_dict() for v in self.violations],
            "conventions": [asdict(c) for c in self.conventions],
            "rule_errors": list(self.rule_errors),
            "stats": asdict(self.stats),
        }


@dataclass
class PrioritizedAccessPoint:
    """An access point joined with its tier and exposure distance.

    ``distance`` is the number of calls from the nearest entry point (0 when
    the enclosing function is itself one), or None when unreachable.
    """

    access_point: DataAccessPoint
    function_id: str
    tier: str
    risk_score: float
    severity: str
    distance: int | None = None
    entry_point: str | None = None
    category: str | None = None
    regulations: list[str] = field(default_factory=list)
    exposure_path: list[str] = field(default_factory=list)
    rationale: str = ""

    @property
    def reachable(self) -> bool:
        return self.distance is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["access_point"] = self.access_point.to_dict()
        data["reachable"] = self.reachable
        return data


@dataclass
class SecuritySummary:
    total_access_points: int = 0
    by_severity: dict[str, int] = field(default_factory=lambda: {band: 0 for band in SEVERITY_BANDS})
    by_tier: dict[str, int] = field(default_factory=lambda: {tier: 0 for tier in TIERS})
    by_category: dict[str, int] = field(default_factory=dict)
    reachable: int = 0
    unreachable: int = 0
    unattributed: int = 0
    regulations: list[str] = field(default_factory=list)


@dataclass
class PrioritizedScanResult:
    access_points: list[PrioritizedAccessPoint] = field(default_factory=list)
    summary: SecuritySummary = field(default_factory=SecuritySummary)
    unattributed: list[DataAccessPoint] = field(default_factory=list)

    def by_severity(self, band: str) -> list[PrioritizedAccessPoint]:
        return [p for p in self.access_points if p.severity == band]

    @property
    def critical(self) -> list[PrioritizedAccessPoint]:
        return self.by_severity("critical")

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_points": [p.to_dict() for p in self.access_points],
            "summary": asdict(self.summary),
            "unattributed": [p.to_dict() for p in self.unattributed],
        }
