"""Boundary rule validation, YAML loading and matching.

Rules file (``.drift/boundaries.yml``)::

    global_excludes:
      - "**/tests/**"
    rules:
      - id: no-restricted-in-controllers
        description: Controllers must go through the service layer for restricted data
        severity: error
        min_tier: restricted
        forbidden_paths: ["**/controllers/**"]
      - id: payments-only
        tables: [payments]
        allowed_paths: ["src/payments/**"]
"""

from pathlib import Path
from typing import Any

import yaml

from driftscan.boundaries.types import OPERATIONS, RULE_SEVERITIES, TIERS, BoundaryRule, DataAccessPoint, tier_rank
from driftscan.exceptions import RuleConfigurationError
from driftscan.utils.files import matches_any

_LIST_KEYS = ("tables", "fields", "tiers", "operations", "forbidden_paths", "allowed_paths", "exclude_paths")
_KNOWN_KEYS = {"id", "description", "severity", "min_tier", "enabled", *_LIST_KEYS}


def validate_rule(raw: dict[str, Any] | BoundaryRule) -> BoundaryRule:
    """Build a BoundaryRule from a mapping, rejecting anything malformed.

    Raises:
        RuleConfigurationError: describing the first problem found
    """
    if isinstance(raw, BoundaryRule):
        raw = {key: getattr(raw, key) for key in _KNOWN_KEYS}
    if not isinstance(raw, dict):
        raise RuleConfigurationError(f"Rule must be a mapping, got {type(raw).__name__}")

    rule_id = raw.get("id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        raise RuleConfigurationError("Rule is missing a non-empty string 'id'", details={"rule": raw})

    unknown = sorted(set(raw) - _KNOWN_KEYS)
    if unknown:
        raise RuleConfigurationError(f"Rule {rule_id!r} has unknown keys: {', '.join(unknown)}", rule_id)

    values: dict[str, Any] = {}
    for key in _LIST_KEYS:
        value = raw.get(key) or []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise RuleConfigurationError(f"Rule {rule_id!r}: '{key}' must be a list of strings", rule_id)
        values[key] = value

    severity = raw.get("severity", "warning")
    if severity not in RULE_SEVERITIES:
        raise RuleConfigurationError(
            f"Rule {rule_id!r}: severity must be one of {', '.join(RULE_SEVERITIES)}, got {severity!r}", rule_id)

    min_tier = raw.get("min_tier")
    if min_tier is not None and min_tier not in TIERS:
        raise RuleConfigurationError(f"Rule {rule_id!r}: unknown min_tier {min_tier!r}", rule_id)
    bad_tiers = [t for t in values["tiers"] if t not in TIERS]
    if bad_tiers:
        raise RuleConfigurationError(f"Rule {rule_id!r}: unknown tiers {bad_tiers}", rule_id)
    bad_ops = [op for op in values["operations"] if op not in OPERATIONS]
    if bad_ops:
        raise RuleConfigurationError(f"Rule {rule_id!r}: unknown operations {bad_ops}", rule_id)

    if not (values["tables"] or values["fields"] or min_tier or values["tiers"]):
        raise RuleConfigurationError(
            f"Rule {rule_id!r} selects nothing: set tables, fields, min_tier or tiers", rule_id)
    if not (values["forbidden_paths"] or values["allowed_paths"]):
        raise RuleConfigurationError(
            f"Rule {rule_id!r} has no location: set forbidden_paths or allowed_paths", rule_id)

    enabled = raw.get("enabled", True)
    if not isinstance(enabled, bool):
        raise RuleConfigurationError(f"Rule {rule_id!r}: 'enabled' must be a boolean", rule_id)

    return BoundaryRule(
        id=rule_id.strip(),
        description=str(raw.get("description") or ""),
        severity=severity,
        min_tier=min_tier,
        enabled=enabled,
        **values,
    )


def load_rules_file(path: Path | str) -> tuple[list[dict[str, Any]], list[str]]:
    """Raw rule mappings and ``global_excludes`` from a YAML rules file.

    Individual rules are validated later, at registration; only an unreadable
    or structurally invalid file raises here.

    Raises:
        RuleConfigurationError: if the file cannot be read or parsed
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise RuleConfigurationError(f"Cannot read rules file {path}: {e}", details={"path": str(path)}) from e
    except yaml.YAMLError as e:
        raise RuleConfigurationError(f"Invalid YAML in rules file {path}: {e}", details={"path": str(path)}) from e

    if document is None:
        return [], []
    if isinstance(document, list):
        document = {"rules": document}
    if not isinstance(document, dict):
        raise RuleConfigurationError(f"Rules file {path} must contain a mapping", details={"path": str(path)})

    rules = document.get("rules") or []
    excludes = document.get("global_excludes") or []
    if not isinstance(rules, list):
        raise RuleConfigurationError(f"'rules' in {path} must be a list", details={"path": str(path)})
    if not isinstance(excludes, list) or not all(isinstance(e, str) for e in excludes):
        raise RuleConfigurationError(f"'global_excludes' in {path} must be a list of strings",
                                     details={"path": str(path)})
    return rules, excludes


def rule_selects(rule: BoundaryRule, point: DataAccessPoint, touched: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """The (field, tier) pairs of ``touched`` that put ``point`` in the rule's scope.

    ``touched`` is every (field, tier) the site reads or writes. An empty
    result means the rule does not apply.
    """
    if rule.tables and point.table not in rule.tables:
        return []
    if rule.operations and point.operation not in rule.operations:
        return []
    selected = touched
    if rule.fields:
        selected = [(name, tier) for name, tier in selected
                    if name in rule.fields or f"{point.table}.{name}" in rule.fields]
    if rule.min_tier:
        selected = [(name, tier) for name, tier in selected if tier_rank(tier) >= tier_rank(rule.min_tier)]
    if rule.tiers:
        selected = [(name, tier) for name, tier in selected if tier in rule.tiers]
    if not selected and not (rule.fields or rule.min_tier or rule.tiers):
        # Table-only rule: the table itself is in scope even with no known fields
        return [("*", "public")]
    return selected


def location_violates(rule: BoundaryRule, file_path: str, global_excludes: list[str]) -> bool:
    if matches_any(file_path, global_excludes) or matches_any(file_path, rule.exclude_paths):
        return False
    if rule.forbidden_paths and matches_any(file_path, rule.forbidden_paths):
        return True
    return bool(rule.allowed_paths) and not matches_any(file_path, rule.allowed_paths)
