"""
Test suite for hostaudit configuration loading
"""

import json

import pytest

from hostaudit.core.config import AuditConfig
from hostaudit.core.model import Severity
from hostaudit.core.risk import RiskEngine, RiskWeights


class TestAuditConfig:
    """JSON settings and CLI overrides."""

    def test_defaults(self):
        config = AuditConfig()
        assert config.workers == 4
        assert config.probe_timeout is None
        assert config.grace_period == 5.0
        assert config.formats == ("txt", "json", "html")
        assert config.min_severity is Severity.INFO
        assert config.weights == RiskWeights()

    def test_missing_file_gives_defaults(self, tmp_path):
        assert AuditConfig.from_file(tmp_path / "nope.json") == AuditConfig()

    def test_unparseable_file_gives_defaults(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert AuditConfig.from_file(path) == AuditConfig()

    def test_full_document(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({
            "weights": {"CRITICAL": 200, "info": 1},
            "thresholds": {"critical": 900},
            "category_multipliers": {"sudo_nopasswd": "2.0"},
            "report": {"min_severity": "medium", "formats": ["json", "txt"], "output_dir": "out"},
            "execution": {"workers": 0, "probe_timeout": 30, "grace_period": 2, "modules": "system,software"},
        }), encoding="utf-8")

        config = AuditConfig.from_file(path)

        assert config.weights.critical == 200
        assert config.weights.info == 1
        assert config.weights.high == 75
        assert config.thresholds.critical == 900
        assert config.min_severity is Severity.MEDIUM
        assert config.formats == ("txt", "json")
        assert config.output_dir == "out"
        assert config.workers == 0
        assert config.probe_timeout == 30.0
        assert config.grace_period == 2.0
        assert config.modules == ("system", "software")

        engine = RiskEngine(config.weights, config.thresholds, config.category_multipliers)
        assert engine.score("CRITICAL", "sudo_nopasswd") == 400

    def test_malformed_values_fall_back_per_field(self):
        config = AuditConfig.from_dict({
            "weights": {"critical": "lots", "high": -5, "low": "20"},
            "report": {"min_severity": "SEVERE", "formats": "pdf"},
            "execution": {"workers": "many", "probe_timeout": -1},
        })
        assert config.weights.critical == 100
        assert config.weights.high == 75
        assert config.weights.low == 20
        assert config.min_severity is Severity.INFO
        assert config.formats == ()
        assert config.workers == 4
        assert config.probe_timeout is None

    def test_non_object_sections_are_ignored(self):
        assert AuditConfig.from_dict({"weights": [1, 2, 3]}).weights == RiskWeights()
        assert AuditConfig.from_dict([]) == AuditConfig()

    def test_overrides_ignore_none(self):
        config = AuditConfig().with_overrides(workers=None, output_dir=None)
        assert config == AuditConfig()

    def test_overrides_are_parsed(self):
        config = AuditConfig().with_overrides(
            workers="8", min_severity="high", formats="html,txt", modules="all", probe_timeout=0,
        )
        assert config.workers == 8
        assert config.min_severity is Severity.HIGH
        assert config.formats == ("txt", "html")
        assert config.modules == ()
        assert config.probe_timeout is None

    def test_invalid_override_keeps_current_value(self):
        config = AuditConfig().with_overrides(workers=-2, min_severity="bogus")
        assert config.workers == 4
        assert config.min_severity is Severity.INFO

    @pytest.mark.parametrize("multipliers", [{"a": "1.5", "A": "3"}, {"A": "1.5", "a": "3"}])
    def test_multiplier_order_is_preserved(self, multipliers):
        config = AuditConfig.from_dict({"category_multipliers": multipliers})
        assert RiskEngine(category_multipliers=config.category_multipliers).score("HIGH", "a") == 112
