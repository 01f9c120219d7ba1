"""Tests for runtime configuration loading and validation."""

import copy
import json

import pytest

from driftscan.config_runtime import DEFAULTS, load_runtime_config, merge_config, validate_config
from driftscan.exceptions import ConfigurationError


def _write_config(root, data):
    drift_dir = root / ".drift"
    drift_dir.mkdir(exist_ok=True)
    (drift_dir / "config.json").write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")


class TestLoadRuntimeConfig:
    def test_defaults_without_file(self, tmp_path):
        cfg = load_runtime_config(str(tmp_path))
        assert cfg["learner"] == DEFAULTS["learner"]
        assert cfg["risk"]["tier_weights"]["restricted"] == 100.0
        assert cfg is not DEFAULTS and cfg["scan"] is not DEFAULTS["scan"]

    def test_file_values_merged(self, tmp_path):
        _write_config(tmp_path, {
            "scan": {"parallelism": 2, "exclude": ["**/migrations/**"]},
            "risk": {"tier_weights": {"restricted": 150}},
            "boundaries": {"sensitive_fields": {"users.ssn": "restricted"}},
        })
        cfg = load_runtime_config(str(tmp_path))
        assert cfg["scan"]["parallelism"] == 2
        assert cfg["scan"]["exclude"] == ["**/migrations/**"]
        # Nested weight tables merge key by key
        assert cfg["risk"]["tier_weights"] == {"public": 10.0, "internal": 35.0, "confidential": 70.0,
                                               "restricted": 150}
        assert cfg["boundaries"]["sensitive_fields"] == {"users.ssn": "restricted"}

    def test_invalid_json_ignored(self, tmp_path):
        """A broken config file is logged and the defaults are used."""
        _write_config(tmp_path, "{not json")
        cfg = load_runtime_config(str(tmp_path))
        assert cfg["scan"]["extraction_mode"] == "auto"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        _write_config(tmp_path, {"scan": {"parallelism": 2}})
        monkeypatch.setenv("DRIFT_SCAN_PARALLELISM", "6")
        monkeypatch.setenv("DRIFT_SCAN_EXCLUDE", "vendor/**, generated/**")
        monkeypatch.setenv("DRIFT_LEARNER_CARRY_OVER", "yes")
        monkeypatch.setenv("DRIFT_RISK_DISTANCE_PENALTY", "0.25")
        cfg = load_runtime_config(str(tmp_path))
        assert cfg["scan"]["parallelism"] == 6
        assert cfg["scan"]["exclude"] == ["vendor/**", "generated/**"]
        assert cfg["learner"]["carry_over"] is True
        assert cfg["risk"]["distance_penalty"] == 0.25

    def test_invalid_environment_value_keeps_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DRIFT_LEARNER_MIN_SUPPORT", "many")
        cfg = load_runtime_config(str(tmp_path))
        assert cfg["learner"]["min_support"] == 2

    def test_unusable_file_value_raises(self, tmp_path):
        _write_config(tmp_path, {"scan": {"extraction_mode": "magic"}})
        with pytest.raises(ConfigurationError, match="extraction_mode"):
            load_runtime_config(str(tmp_path))


class TestMergeConfig:
    def test_type_mismatch_ignored(self):
        cfg = copy.deepcopy(DEFAULTS)
        merge_config(cfg, {"scan": {"parallelism": "four", "include": "src/**"}})
        assert cfg["scan"]["parallelism"] == DEFAULTS["scan"]["parallelism"]
        assert cfg["scan"]["include"] == []

    def test_int_accepted_for_float(self):
        cfg = merge_config(copy.deepcopy(DEFAULTS), {"risk": {"distance_penalty": 1}})
        assert cfg["risk"]["distance_penalty"] == 1.0
        assert isinstance(cfg["risk"]["distance_penalty"], float)

    def test_unknown_keys_and_sections_ignored(self):
        cfg = merge_config(copy.deepcopy(DEFAULTS), {"plugins": {"x": 1}, "scan": {"turbo": True}})
        assert "plugins" not in cfg
        assert "turbo" not in cfg["scan"]


class TestValidateConfig:
    @pytest.mark.parametrize("section,key,value,message", [
        ("scan", "parallelism", 0, "parallelism"),
        ("scan", "extraction_mode", "fast", "extraction_mode"),
        ("learner", "min_support", 0, "min_support"),
        ("risk", "distance_penalty", -0.1, "distance_penalty"),
        ("risk", "unreachable_score", 50.0, "unreachable_score"),
        ("risk", "unreachable_score", -1.0, "unreachable_score"),
    ])
    def test_rejected_values(self, section, key, value, message):
        cfg = copy.deepcopy(DEFAULTS)
        cfg[section][key] = value
        with pytest.raises(ConfigurationError, match=message):
            validate_config(cfg)

    def test_tier_weights_must_not_decrease(self):
        cfg = copy.deepcopy(DEFAULTS)
        cfg["risk"]["tier_weights"]["confidential"] = 120.0
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(cfg)
        assert "tier_weights" in exc_info.value.details

    def test_missing_tier_weight(self):
        cfg = copy.deepcopy(DEFAULTS)
        del cfg["risk"]["tier_weights"]["internal"]
        with pytest.raises(ConfigurationError, match="internal"):
            validate_config(cfg)

    def test_configuration_error_is_value_error(self):
        cfg = copy.deepcopy(DEFAULTS)
        cfg["scan"]["parallelism"] = -1
        with pytest.raises(ValueError):
            validate_config(cfg)

    def test_unreachable_score_without_distance_penalty(self):
        """With no distance penalty the cheapest reachable point sets the ceiling."""
        cfg = copy.deepcopy(DEFAULTS)
        cfg["risk"]["distance_penalty"] = 0.0
        cfg["risk"]["unreachable_score"] = 8.0
        validate_config(cfg)
        cfg["risk"]["unreachable_score"] = 8.5
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(cfg)
        assert exc_info.value.details["reachable_floor"] == 8.0

    def test_defaults_valid(self):
        validate_config(copy.deepcopy(DEFAULTS))
