"""Boundary store - project-wide data-access map, rule registry and queries.

The store is the single writer of the DataAccessMap. ``build_map`` is called
once per scan with every file's extraction (already sorted by path), after
which the map is read-only apart from learner annotations and function
attribution. ``invalidate`` drops the cached map; nothing carries over to the
next scan.
"""

from dataclasses import replace
from pathlib import Path
from typing import Any

from driftscan.boundaries.rules import load_rules_file, location_violates, rule_selects, validate_rule
from driftscan.boundaries.sensitivity import classify_name, normalize_tier
from driftscan.boundaries.table_names import default_validator
from driftscan.boundaries.types import (
    DEFAULT_TIER,
    PROVENANCE_DECLARED,
    PROVENANCE_DEFAULT,
    WHOLE_ROW,
    BoundaryRule,
    BoundaryViolation,
    DataAccessExtraction,
    DataAccessMap,
    DataAccessPoint,
    FileAccessInfo,
    OrmModel,
    SensitiveField,
    TableAccessInfo,
    max_tier,
    tier_rank,
)
from driftscan.exceptions import RuleConfigurationError
from driftscan.utils.files import matches_any
from driftscan.utils.logging import logger


class BoundaryStore:
    """Holds boundary rules and the DataAccessMap of the latest scan."""

    def __init__(self, config: dict[str, Any] | None = None):
        boundaries_cfg = (config or {}).get("boundaries", {})
        self.declared_fields: dict[str, str] = {}
        for qualified, tier in (boundaries_cfg.get("sensitive_fields") or {}).items():
            normalized = normalize_tier(tier)
            if "." not in qualified or normalized is None:
                logger.warning(f"[BOUNDARY] Ignoring sensitive_fields entry {qualified!r}: {tier!r}")
                continue
            self.declared_fields[qualified] = normalized
        self.rules: dict[str, BoundaryRule] = {}
        self.global_excludes: list[str] = []
        self.rule_errors: list[str] = []
        self._map: DataAccessMap | None = None

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def register_rule(self, rule: dict[str, Any] | BoundaryRule) -> BoundaryRule:
        """Validate and register one rule, replacing any rule with the same id.

        Raises:
            RuleConfigurationError: if the rule is malformed
        """
        validated = validate_rule(rule)
        if validated.id in self.rules:
            logger.debug(f"[BOUNDARY] Replacing rule {validated.id}")
        self.rules[validated.id] = validated
        return validated

    def load_rules(self, rules: list[Any], global_excludes: list[str] | None = None) -> list[str]:
        """Register each rule independently; returns the errors of the rejected ones."""
        errors = []
        for raw in rules:
            try:
                self.register_rule(raw)
            except RuleConfigurationError as e:
                logger.warning(f"[BOUNDARY] Rejected rule: {e}")
                errors.append(str(e))
        self.global_excludes.extend(g for g in (global_excludes or []) if g not in self.global_excludes)
        self.rule_errors.extend(e for e in errors if e not in self.rule_errors)
        return errors

    def load_rules_file(self, path: Path | str) -> list[str]:
        """Load rules from a YAML file if it exists.

        Raises:
            RuleConfigurationError: if the file exists but cannot be parsed
        """
        if not Path(path).is_file():
            return []
        rules, excludes = load_rules_file(path)
        errors = self.load_rules(rules, excludes)
        logger.info(f"[BOUNDARY] Loaded {len(self.rules)} rules from {path} ({len(errors)} rejected)")
        return errors

    # ------------------------------------------------------------------
    # Map assembly
    # ------------------------------------------------------------------

    @property
    def access_map(self) -> DataAccessMap | None:
        return self._map

    def invalidate(self) -> None:
        self._map = None

    def build_map(self, extractions: list[DataAccessExtraction]) -> DataAccessMap:
        """Aggregate per-file extractions into a fresh DataAccessMap."""
        extractions = sorted(extractions, key=lambda e: e.file)
        registry = self._model_registry(extractions)
        model_tables = {m.table for m in registry.values()}
        access_map = DataAccessMap(models=sorted(registry.values(), key=lambda m: (m.file, m.line, m.name)))

        for extraction in extractions:
            for extracted in extraction.fields:
                model = registry.get(extracted.model or "")
                table = model.table if model else extracted.table
                info = self._table(access_map, table, extracted.model)
                current = info.fields.get(extracted.name)
                if extracted.marker_tier:
                    declared = SensitiveField(
                        table=table,
                        field=extracted.name,
                        tier=extracted.marker_tier,
                        provenance=PROVENANCE_DECLARED,
                        confidence=1.0,
                        source=f"{extracted.file}:{extracted.line}",
                    )
                    if current is None or current.provenance != PROVENANCE_DECLARED \
                            or tier_rank(declared.tier) > tier_rank(current.tier):
                        info.fields[extracted.name] = declared
                elif current is None:
                    info.fields[extracted.name] = self._default_field(table, extracted.name)

        for extraction in extractions:
            for point in extraction.access_points:
                table = self._resolve_table(point, registry)
                if table not in model_tables:
                    check = default_validator.validate(table)
                    if not check.is_valid:
                        access_map.filtered_tables.setdefault(table, check.reason or "invalid table name")
                        continue
                # Copy so function attribution never writes into the per-file arena
                point = replace(point, table=table)
                info = self._table(access_map, table, point.model)
                info.access_points.append(point)
                for name in point.fields:
                    if name != WHOLE_ROW and name not in info.fields:
                        info.fields[name] = self._default_field(table, name)

        for qualified, tier in sorted(self.declared_fields.items()):
            table, name = qualified.rsplit(".", 1)
            info = self._table(access_map, table, None)
            info.fields[name] = SensitiveField(table=table, field=name, tier=tier, provenance=PROVENANCE_DECLARED,
                                               confidence=1.0, source="config")

        for info in access_map.tables.values():
            for sf in info.fields.values():
                if sf.category is None:
                    category = classify_name(sf.field)
                    sf.category = category[0] if category else None
            info.access_points.sort(key=lambda p: (p.file, p.line, p.column))

        self.summarize_files(access_map)
        self._map = access_map
        logger.info(
            f"[BOUNDARY] Data access map: {len(access_map.tables)} tables, "
            f"{len(access_map.access_points)} access points, {len(access_map.filtered_tables)} tables filtered"
        )
        return access_map

    @staticmethod
    def _model_registry(extractions: list[DataAccessExtraction]) -> dict[str, OrmModel]:
        """Model name -> declaration; explicit table mappings win over derived names."""
        registry: dict[str, OrmModel] = {}
        for extraction in extractions:
            for model in extraction.models:
                current = registry.get(model.name)
                if current is None or (model.explicit_table and not current.explicit_table):
                    registry[model.name] = model
        return registry

    @staticmethod
    def _resolve_table(point: DataAccessPoint, registry: dict[str, OrmModel]) -> str:
        if point.model and point.model in registry:
            return registry[point.model].table
        # Raw JPQL/HQL names the entity ("FROM User u")
        if point.table in registry:
            return registry[point.table].table
        return point.table

    @staticmethod
    def _table(access_map: DataAccessMap, table: str, model: str | None) -> TableAccessInfo:
        info = access_map.tables.get(table)
        if info is None:
            info = access_map.tables[table] = TableAccessInfo(name=table)
        if model and model not in info.models:
            info.models.append(model)
            info.models.sort()
        return info

    @staticmethod
    def _default_field(table: str, name: str) -> SensitiveField:
        return SensitiveField(table=table, field=name, tier=DEFAULT_TIER, provenance=PROVENANCE_DEFAULT)

    @staticmethod
    def summarize_files(access_map: DataAccessMap) -> None:
        """Recompute per-file summaries (tiers change once the learner has run)."""
        files: dict[str, FileAccessInfo] = {}
        for point in access_map.access_points:
            info = files.get(point.file)
            if info is None:
                info = files[point.file] = FileAccessInfo(file=point.file)
            info.access_point_count += 1
            if point.table not in info.tables:
                info.tables.append(point.table)
            if point.operation not in info.operations:
                info.operations.append(point.operation)
            if point.framework not in info.frameworks:
                info.frameworks.append(point.framework)
            info.max_tier = max_tier([info.max_tier, access_map.point_tier(point)])
        for info in files.values():
            info.tables.sort()
            info.operations.sort()
            info.frameworks.sort()
        access_map.files = files

    # ------------------------------------------------------------------
    # Rule evaluation
    # ------------------------------------------------------------------

    def check_violations(self, point: DataAccessPoint) -> list[BoundaryViolation]:
        """Violations of every enabled rule by one access point."""
        access_map = self._require_map()
        touched = [(sf.field, sf.tier) for sf in access_map.touched_fields(point)]
        violations = []
        for rule in sorted(self.rules.values(), key=lambda r: r.id):
            if not rule.enabled or not location_violates(rule, point.file, self.global_excludes):
                continue
            selected = rule_selects(rule, point, touched)
            if not selected:
                continue
            tier = max_tier(t for _, t in selected)
            names = ", ".join(f"{point.table}.{name}" for name, _ in selected)
            where = "forbidden location" if rule.forbidden_paths and matches_any(point.file, rule.forbidden_paths) \
                else "location outside the allowed paths"
            violations.append(BoundaryViolation(
                rule_id=rule.id,
                severity=rule.severity,
                access_point=point,
                message=f"{point.operation} of {names} ({tier}) from {where}: {point.file}:{point.line}",
                rule_description=rule.description,
                tier=tier,
                suggestion=self._suggestion(rule),
            ))
        return violations

    def check_all_violations(self) -> list[BoundaryViolation]:
        access_map = self._require_map()
        violations = []
        for point in access_map.access_points:
            violations.extend(self.check_violations(point))
        violations.sort(key=lambda v: (v.access_point.file, v.access_point.line, v.rule_id))
        if violations:
            logger.info(f"[BOUNDARY] {len(violations)} boundary violations")
        return violations

    @staticmethod
    def _suggestion(rule: BoundaryRule) -> str:
        if rule.allowed_paths:
            return f"Move this access into one of: {', '.join(rule.allowed_paths)}"
        return "Route this access through a layer outside the forbidden paths"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _require_map(self) -> DataAccessMap:
        if self._map is None:
            raise RuntimeError("BoundaryStore has no data access map; run a scan first")
        return self._map

    def get_table_access(self, table: str) -> TableAccessInfo | None:
        return self._require_map().tables.get(table)

    def get_file_access(self, pattern: str) -> list[FileAccessInfo]:
        """Per-file summaries for files matching a glob."""
        files = self._require_map().files
        return [files[f] for f in sorted(files) if matches_any(f, [pattern])]

    def get_sensitive_access(self, min_tier: str = "confidential") -> list[DataAccessPoint]:
        """Access points touching at least one field at or above ``min_tier``."""
        access_map = self._require_map()
        threshold = tier_rank(min_tier)
        return [p for p in access_map.access_points if tier_rank(access_map.point_tier(p)) >= threshold]

    def get_access_points_in_function(self, function_id: str) -> list[DataAccessPoint]:
        return [p for p in self._require_map().access_points if p.function_id == function_id]
