"""Data-access learner - infer unstated conventions by frequency voting.

Sensitivity conventions come from fields that carry an explicit marker.
Fields are grouped by a normalized name signature, most specific first:

1. ``name:<normalized name>``       ``ssn``, ``date_of_birth``
2. ``suffix:<last token>``          ``*_token``, ``*_secret``
3. ``prefix:<first token>``         ``billing_*``

Within a group the dominant declared tier wins; its confidence is
agreeing examples / examples in the group. A convention is kept only with
at least ``min_support`` agreeing examples and ``min_confidence``. Unmarked
fields take the tier of their most specific matching convention. Declared
fields are never touched, and the same input always yields the same output.
"""

from collections import Counter, defaultdict
from pathlib import PurePosixPath
from typing import Any

from driftscan.boundaries.sensitivity import normalize_name
from driftscan.boundaries.table_names import naming_style
from driftscan.boundaries.types import (
    DEFAULT_TIER,
    PROVENANCE_DECLARED,
    PROVENANCE_DEFAULT,
    PROVENANCE_LEARNED,
    DataAccessMap,
    LearnedConvention,
    SensitiveField,
    tier_rank,
)
from driftscan.utils.logging import logger

# Tokens too generic to carry meaning on their own as a prefix/suffix
GENERIC_TOKENS = frozenset({
    "id", "ids", "name", "type", "date", "at", "is", "has", "by", "of", "the", "to", "on", "in",
    "code", "value", "number", "no", "num", "count", "flag", "status", "data", "info", "text", "url",
})

# Frameworks that say nothing about the project's primary ORM
_NON_FRAMEWORK = {"raw-sql", "generic", "query-builder", "unknown"}

NAMING_SHARE = 0.6
DIRECTORY_SHARE = 0.6


def signatures(name: str) -> list[str]:
    """Name signatures of a field, most specific first."""
    normalized = normalize_name(name)
    found = [f"name:{normalized}"]
    tokens = [t for t in normalized.split("_") if t]
    if len(tokens) > 1:
        if tokens[-1] not in GENERIC_TOKENS:
            found.append(f"suffix:{tokens[-1]}")
        if tokens[0] not in GENERIC_TOKENS:
            found.append(f"prefix:{tokens[0]}")
    return found


class DataAccessLearner:
    """Learns sensitivity, framework, naming and directory conventions from one scan."""

    def __init__(self, config: dict[str, Any] | None = None):
        learner_cfg = (config or {}).get("learner", {})
        self.min_support = learner_cfg.get("min_support", 2)
        self.min_confidence = learner_cfg.get("min_confidence", 0.5)
        self.carry_over = learner_cfg.get("carry_over", False)
        self._previous: dict[str, LearnedConvention] = {}

    def reset(self) -> None:
        """Forget conventions carried over from earlier scans."""
        self._previous = {}

    def learn(self, access_map: DataAccessMap, scanned_files: list[str] | None = None) -> list[LearnedConvention]:
        """Derive conventions from ``access_map`` and annotate its unmarked fields."""
        fields = access_map.sensitive_fields
        sensitivity = self._sensitivity_conventions(fields)
        if self.carry_over:
            for pattern, convention in self._previous.items():
                sensitivity.setdefault(pattern, convention)
        self._previous = dict(sensitivity)

        learned = self.apply(access_map, sensitivity)
        conventions = sorted(sensitivity.values(), key=lambda c: (-c.confidence, -c.support, c.pattern))
        conventions.extend(self._framework_conventions(access_map))
        conventions.extend(self._naming_conventions(access_map))
        conventions.extend(self._directory_conventions(access_map, scanned_files))

        logger.info(
            f"[LEARNER] {len(sensitivity)} sensitivity conventions, {learned} fields annotated, "
            f"{len(conventions) - len(sensitivity)} structural conventions"
        )
        return conventions

    # ------------------------------------------------------------------
    # Sensitivity
    # ------------------------------------------------------------------

    def _sensitivity_conventions(self, fields: list[SensitiveField]) -> dict[str, LearnedConvention]:
        groups: dict[str, list[SensitiveField]] = defaultdict(list)
        for sf in fields:
            if sf.provenance != PROVENANCE_DECLARED:
                continue
            for signature in signatures(sf.field):
                groups[signature].append(sf)

        conventions = {}
        for signature in sorted(groups):
            examples = groups[signature]
            if len(examples) < self.min_support:
                continue
            votes = Counter(sf.tier for sf in examples)
            # Ties go to the more sensitive tier
            tier, agreeing = max(votes.items(), key=lambda item: (item[1], tier_rank(item[0])))
            confidence = round(agreeing / len(examples), 4)
            if agreeing < self.min_support or confidence < self.min_confidence:
                continue
            conventions[signature] = LearnedConvention(
                pattern=signature,
                meaning=tier,
                confidence=confidence,
                support=agreeing,
                kind="sensitivity",
                examples=sorted(sf.qualified_name for sf in examples if sf.tier == tier)[:5],
            )
        return conventions

    @staticmethod
    def apply(access_map: DataAccessMap, conventions: dict[str, LearnedConvention]) -> int:
        """Annotate unmarked fields with their most specific convention; returns how many changed."""
        changed = 0
        for sf in access_map.sensitive_fields:
            if sf.provenance == PROVENANCE_DECLARED:
                continue
            if sf.provenance == PROVENANCE_LEARNED:
                # Learned annotations from an earlier pass are recomputed from scratch
                sf.provenance, sf.tier, sf.confidence, sf.convention = PROVENANCE_DEFAULT, DEFAULT_TIER, 0.0, None
            for signature in signatures(sf.field):
                convention = conventions.get(signature)
                if convention is None or convention.kind != "sensitivity":
                    continue
                sf.tier = convention.meaning
                sf.provenance = PROVENANCE_LEARNED
                sf.confidence = convention.confidence
                sf.convention = signature
                changed += 1
                break
        return changed

    # ------------------------------------------------------------------
    # Structural conventions
    # ------------------------------------------------------------------

    def _framework_conventions(self, access_map: DataAccessMap) -> list[LearnedConvention]:
        counts = Counter(p.framework for p in access_map.access_points if p.framework not in _NON_FRAMEWORK)
        total = sum(counts.values())
        if not total:
            return []
        framework, support = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0]
        if support < self.min_support:
            return []
        return [LearnedConvention(
            pattern="primary_framework",
            meaning=framework,
            confidence=round(support / total, 4),
            support=support,
            kind="framework",
            examples=sorted({p.file for p in access_map.access_points if p.framework == framework})[:5],
        )]

    def _naming_conventions(self, access_map: DataAccessMap) -> list[LearnedConvention]:
        styles = Counter(naming_style(name) for name in access_map.tables)
        total = sum(styles.values())
        if total < self.min_support:
            return []
        style, support = sorted(styles.items(), key=lambda item: (-item[1], item[0]))[0]
        share = support / total
        if share <= NAMING_SHARE:
            style = "mixed"
        return [LearnedConvention(
            pattern="table_naming",
            meaning=style,
            confidence=round(share, 4),
            support=support,
            kind="table_naming",
            examples=sorted(name for name in access_map.tables if naming_style(name) == style)[:5],
        )]

    def _directory_conventions(self, access_map: DataAccessMap,
                               scanned_files: list[str] | None) -> list[LearnedConvention]:
        files_by_dir: dict[str, set[str]] = defaultdict(set)
        for file in scanned_files or access_map.files:
            files_by_dir[str(PurePosixPath(file).parent)].add(file)
        conventions = []
        for directory in sorted(files_by_dir):
            files = files_by_dir[directory]
            with_access = sorted(f for f in files if f in access_map.files)
            share = len(with_access) / len(files)
            if len(with_access) < self.min_support or share < DIRECTORY_SHARE:
                continue
            operations = Counter(op for f in with_access for op in access_map.files[f].operations)
            reads_only = set(operations) <= {"read", "query"}
            conventions.append(LearnedConvention(
                pattern=f"dir:{directory}",
                meaning="data-access:read" if reads_only else "data-access",
                confidence=round(share, 4),
                support=len(with_access),
                kind="directory_role",
                examples=with_access[:5],
            ))
        return conventions
