"""Tests for boundary rules, the boundary store and the boundary scanner."""

import pytest

from driftscan.boundaries import BoundaryScanner, BoundaryStore, ScanOptions, load_rules_file, validate_rule
from driftscan.boundaries.types import (
    PROVENANCE_DECLARED,
    PROVENANCE_DEFAULT,
    DataAccessExtraction,
    DataAccessPoint,
    ExtractedField,
    OrmModel,
)
from driftscan.exceptions import RuleConfigurationError, ScanCancelledError
from driftscan.utils.concurrency import CancellationToken

NO_RESTRICTED_IN_CONTROLLERS = {
    "id": "no-restricted-in-controllers",
    "description": "Controllers must go through a service for restricted data",
    "severity": "error",
    "min_tier": "restricted",
    "forbidden_paths": ["**/controllers/**"],
}

PAYMENTS_ONLY = {
    "id": "payments-only",
    "tables": ["payments"],
    "allowed_paths": ["src/payments/**"],
}


def _point(file, line, table, fields=None, operation="read", framework="django", model=None, confidence=0.9):
    return DataAccessPoint(file=file, line=line, table=table, operation=operation, framework=framework,
                           fields=fields or ["*"], model=model, confidence=confidence)


def _extraction(file, points=(), fields=(), models=(), language="python"):
    return DataAccessExtraction(file=file, language=language, access_points=list(points), fields=list(fields),
                                models=list(models))


@pytest.fixture
def store(config):
    config["boundaries"]["sensitive_fields"] = {"users.ssn": "restricted"}
    return BoundaryStore(config)


@pytest.fixture
def built_store(store):
    """Controller and service both read users.ssn; the service also writes payments."""
    store.build_map([
        _extraction("app/controllers/users.py", [_point("app/controllers/users.py", 4, "users", ["ssn"])]),
        _extraction("app/services/users.py", [
            _point("app/services/users.py", 7, "users", ["ssn", "email"]),
            _point("app/services/users.py", 12, "payments", ["amount"], operation="write"),
        ]),
    ])
    return store


class TestRuleValidation:
    """validate_rule rejects malformed rules with a descriptive error."""

    @pytest.mark.parametrize("raw,message", [
        ({"tables": ["users"], "forbidden_paths": ["x/**"]}, "non-empty string 'id'"),
        ({"id": "r", "tables": ["users"], "forbidden_paths": ["x"], "colour": "red"}, "unknown keys: colour"),
        ({"id": "r", "tables": ["users"], "forbidden_paths": ["x"], "severity": "fatal"}, "severity must be"),
        ({"id": "r", "min_tier": "secretive", "forbidden_paths": ["x"]}, "unknown min_tier"),
        ({"id": "r", "tiers": ["ultra"], "forbidden_paths": ["x"]}, "unknown tiers"),
        ({"id": "r", "tables": ["users"], "operations": ["upsert"], "forbidden_paths": ["x"]}, "unknown operations"),
        ({"id": "r", "forbidden_paths": ["x"]}, "selects nothing"),
        ({"id": "r", "tables": ["users"]}, "has no location"),
        ({"id": "r", "tables": [1], "forbidden_paths": ["x"]}, "must be a list of strings"),
        ({"id": "r", "tables": ["users"], "forbidden_paths": ["x"], "enabled": "yes"}, "'enabled' must be a boolean"),
    ])
    def test_malformed_rules(self, raw, message):
        with pytest.raises(RuleConfigurationError) as exc_info:
            validate_rule(raw)
        assert message in str(exc_info.value), f"Unexpected error text: {exc_info.value}"

    def test_non_mapping_rule(self):
        with pytest.raises(RuleConfigurationError):
            validate_rule(["not", "a", "rule"])

    def test_single_strings_become_lists(self):
        """A bare string is accepted wherever a list is expected."""
        rule = validate_rule({"id": "r", "tables": "users", "forbidden_paths": "legacy/**"})
        assert rule.tables == ["users"]
        assert rule.forbidden_paths == ["legacy/**"]
        assert rule.severity == "warning"
        assert rule.enabled is True

    def test_rejected_rule_does_not_block_others(self, store):
        """One bad rule is reported; the valid ones still register."""
        errors = store.load_rules([NO_RESTRICTED_IN_CONTROLLERS, {"id": "broken"}, PAYMENTS_ONLY])
        assert sorted(store.rules) == ["no-restricted-in-controllers", "payments-only"]
        assert len(errors) == 1 and "broken" in errors[0]
        assert store.rule_errors == errors

    def test_same_id_replaces_rule(self, store):
        store.register_rule(PAYMENTS_ONLY)
        store.register_rule({**PAYMENTS_ONLY, "severity": "error"})
        assert store.rules["payments-only"].severity == "error"


class TestRulesFile:
    def test_yaml_rules_file(self, tmp_path):
        """Rules and global excludes load from YAML."""
        path = tmp_path / "boundaries.yml"
        path.write_text(
            "global_excludes:\n"
            "  - '**/tests/**'\n"
            "rules:\n"
            "  - id: payments-only\n"
            "    tables: [payments]\n"
            "    allowed_paths: ['src/payments/**']\n",
            encoding="utf-8",
        )
        rules, excludes = load_rules_file(path)
        assert excludes == ["**/tests/**"]
        assert [r["id"] for r in rules] == ["payments-only"]

    def test_bare_list_document(self, tmp_path):
        path = tmp_path / "boundaries.yml"
        path.write_text("- id: r\n  tables: [users]\n  forbidden_paths: [x]\n", encoding="utf-8")
        rules, excludes = load_rules_file(path)
        assert len(rules) == 1 and excludes == []

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "boundaries.yml"
        path.write_text("rules: [unclosed\n", encoding="utf-8")
        with pytest.raises(RuleConfigurationError, match="Invalid YAML"):
            load_rules_file(path)

    def test_missing_file_is_not_an_error(self, store, tmp_path):
        """The store skips a rules file that does not exist."""
        assert store.load_rules_file(tmp_path / "absent.yml") == []
        assert store.rules == {}


class TestDataAccessMap:
    """BoundaryStore.build_map aggregation."""

    def test_declared_fields_from_config(self, built_store):
        ssn = built_store.access_map.get_field("users", "ssn")
        assert ssn.tier == "restricted"
        assert ssn.provenance == PROVENANCE_DECLARED
        assert ssn.source == "config"
        email = built_store.access_map.get_field("users", "email")
        assert (email.tier, email.provenance) == ("public", PROVENANCE_DEFAULT)

    def test_name_categories_attached(self, built_store):
        assert built_store.access_map.get_field("users", "ssn").category == "pii"
        assert built_store.access_map.get_field("payments", "amount").category is None

    def test_model_registry_maps_tables(self, store):
        """Sites that name a model land on the model's declared table."""
        models = [OrmModel(name="Patient", table="clinic_patients", file="m.py", line=1, framework="django",
                           explicit_table=True)]
        fields = [ExtractedField(table="clinic_patients", name="diagnosis", file="m.py", line=3, model="Patient",
                                 marker_tier="confidential", marker_source="comment")]
        other = _point("views.py", 9, "patients", ["diagnosis"], model="Patient")
        access_map = store.build_map([
            _extraction("m.py", models=models, fields=fields),
            _extraction("views.py", [other]),
        ])
        assert "patients" not in access_map.tables
        info = access_map.tables["clinic_patients"]
        assert info.models == ["Patient"]
        assert info.fields["diagnosis"].tier == "confidential"
        assert info.fields["diagnosis"].source == "m.py:3"
        assert [p.file for p in info.access_points] == ["views.py"]

    def test_invalid_table_names_filtered(self, store):
        """Heuristic table names that fail validation are dropped and recorded."""
        access_map = store.build_map([_extraction("a.py", [_point("a.py", 1, "data", ["x"], framework="generic")])])
        assert "data" not in access_map.tables
        assert "data" in access_map.filtered_tables

    def test_whole_row_touches_every_field(self, built_store):
        access_map = built_store.access_map
        point = _point("x.py", 1, "users")
        assert {sf.field for sf in access_map.touched_fields(point)} == {"ssn", "email"}
        assert access_map.point_tier(point) == "restricted"

    def test_file_summaries(self, built_store):
        service = built_store.access_map.files["app/services/users.py"]
        assert service.tables == ["payments", "users"]
        assert service.operations == ["read", "write"]
        assert service.access_point_count == 2
        assert service.max_tier == "restricted"

    def test_map_points_are_copies(self, store):
        """Attribution on the map never writes into the per-file extraction."""
        original = _point("a.py", 1, "users", ["ssn"])
        access_map = store.build_map([_extraction("a.py", [original])])
        access_map.access_points[0].function_id = "a.py:f:1"
        assert original.function_id is None

    def test_serializable(self, built_store):
        data = built_store.access_map.to_dict()
        assert data["stats"]["total_tables"] == 2
        assert data["stats"]["total_access_points"] == 3
        assert list(data["tables"]) == ["payments", "users"]


class TestViolations:
    """Rule evaluation against the built map."""

    def test_forbidden_path(self, built_store):
        """Restricted data read from a controller violates the rule; the service does not."""
        built_store.register_rule(NO_RESTRICTED_IN_CONTROLLERS)
        violations = built_store.check_all_violations()
        assert [v.access_point.file for v in violations] == ["app/controllers/users.py"]
        violation = violations[0]
        assert violation.rule_id == "no-restricted-in-controllers"
        assert violation.severity == "error"
        assert violation.tier == "restricted"
        assert "users.ssn" in violation.message
        assert "forbidden location" in violation.message

    def test_allowed_paths(self, built_store):
        """Access to an allow-listed table from anywhere else is a violation."""
        built_store.register_rule(PAYMENTS_ONLY)
        violations = built_store.check_all_violations()
        assert len(violations) == 1
        assert violations[0].access_point.table == "payments"
        assert "src/payments/**" in violations[0].suggestion

    def test_global_excludes(self, built_store):
        built_store.load_rules([NO_RESTRICTED_IN_CONTROLLERS], global_excludes=["app/controllers/*"])
        assert built_store.check_all_violations() == []

    def test_disabled_rule(self, built_store):
        built_store.register_rule({**NO_RESTRICTED_IN_CONTROLLERS, "enabled": False})
        assert built_store.check_all_violations() == []

    def test_operation_selector(self, built_store):
        """Operation selectors narrow the rule to matching sites."""
        built_store.register_rule({"id": "no-writes", "tables": ["users", "payments"], "operations": ["write"],
                                   "forbidden_paths": ["app/**"]})
        violations = built_store.check_all_violations()
        assert [(v.access_point.table, v.access_point.operation) for v in violations] == [("payments", "write")]


class TestQueries:
    def test_queries_require_a_map(self, store):
        with pytest.raises(RuntimeError):
            store.get_table_access("users")

    def test_table_and_file_queries(self, built_store):
        users = built_store.get_table_access("users")
        assert users.operations == ["read"]
        assert built_store.get_table_access("orders") is None
        assert [f.file for f in built_store.get_file_access("app/controllers/*")] == ["app/controllers/users.py"]

    def test_sensitive_access(self, built_store):
        """Sites touching restricted data, in file order."""
        found = built_store.get_sensitive_access("restricted")
        assert [(p.file, p.line) for p in found] == [("app/controllers/users.py", 4), ("app/services/users.py", 7)]
        assert len(built_store.get_sensitive_access("public")) == 3

    def test_access_points_in_function(self, built_store):
        point = built_store.access_map.tables["payments"].access_points[0]
        point.function_id = "app/services/users.py:charge:10"
        assert built_store.get_access_points_in_function("app/services/users.py:charge:10") == [point]


class TestBoundaryScanner:
    """scan_files end to end, with sources supplied in memory."""

    SOURCES = {
        "app/controllers/users.py": 'def show(db):\n    return db.readField("users.ssn")\n',
        "app/services/billing.py": 'def charge(db):\n    db.execute("INSERT INTO payments (amount) VALUES (1)")\n',
        "README.md": "# not code\n",
    }

    def test_scan_files(self, config):
        config["boundaries"]["sensitive_fields"] = {"users.ssn": "restricted"}
        scanner = BoundaryScanner(config)
        options = ScanOptions(rules=[NO_RESTRICTED_IN_CONTROLLERS])
        result = scanner.scan_files(sorted(self.SOURCES), options, sources=self.SOURCES)

        assert result.stats.files_scanned == 3
        assert result.stats.skipped_files == ["README.md"]
        assert result.stats.access_points == 2
        assert result.stats.rules_loaded == 1
        assert sorted(result.access_map.tables) == ["payments", "users"]
        assert [v.rule_id for v in result.violations] == ["no-restricted-in-controllers"]

    def test_parallel_scan_matches_serial(self, config):
        """Parallelism changes nothing observable in the result."""
        serial = BoundaryScanner(config).scan_files(sorted(self.SOURCES), ScanOptions(parallelism=1),
                                                    sources=self.SOURCES)
        parallel = BoundaryScanner(config).scan_files(sorted(self.SOURCES), ScanOptions(parallelism=4),
                                                      sources=self.SOURCES)
        assert serial.access_map.to_dict() == parallel.access_map.to_dict()

    def test_cancelled_scan_raises(self, config):
        """A cancelled scan raises instead of returning a partial result."""
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ScanCancelledError):
            BoundaryScanner(config).scan_files(sorted(self.SOURCES), cancel_token=token, sources=self.SOURCES)

    def test_rules_file_relative_to_root(self, config, make_project):
        """A relative rules_file is resolved against the scan root."""
        root = make_project({
            ".drift/boundaries.yml": "rules:\n  - id: payments-only\n    tables: [payments]\n"
                                     "    allowed_paths: ['src/payments/**']\n",
            "app/services/billing.py": self.SOURCES["app/services/billing.py"],
        })
        config["boundaries"]["rules_file"] = ".drift/boundaries.yml"
        result = BoundaryScanner(config).scan_files(["app/services/billing.py"], ScanOptions(root=str(root)))
        assert result.stats.rules_loaded == 1
        assert [v.rule_id for v in result.violations] == ["payments-only"]
