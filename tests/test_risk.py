"""
Test suite for hostaudit risk scoring
"""

import logging
from decimal import Decimal

import pytest

from hostaudit.core.model import Severity
from hostaudit.core.risk import RiskEngine, RiskThresholds, RiskWeights, build_multipliers


class TestRiskEngine:
    """Scoring and classification."""

    @pytest.fixture
    def engine(self):
        return RiskEngine()

    def test_default_weights(self, engine):
        assert engine.score("CRITICAL", "anything") == 100
        assert engine.score("HIGH", "anything") == 75
        assert engine.score("MEDIUM", "anything") == 40
        assert engine.score("LOW", "anything") == 15
        assert engine.score("INFO", "anything") == 5

    def test_worked_example_classifies_medium(self, engine):
        # 2 CRITICAL + 1 MEDIUM + 1 LOW + 4 INFO
        for severity in ["CRITICAL", "CRITICAL", "MEDIUM", "LOW", "INFO", "INFO", "INFO", "INFO"]:
            engine.record(severity, "generic")
        summary = engine.summary()
        assert summary.total_score == 275
        assert summary.overall_rating is Severity.MEDIUM

    def test_category_multiplier(self):
        engine = RiskEngine(category_multipliers={"sudo_nopasswd": "2.0"})
        assert engine.record("CRITICAL", "sudo_nopasswd") == 200
        assert engine.total_score == 200

    def test_multiplier_truncates_toward_zero(self):
        engine = RiskEngine(category_multipliers={"weird": "1.33"})
        # 75 * 1.33 = 99.75
        assert engine.score("HIGH", "weird") == 99

    def test_multiplier_keys_are_case_insensitive(self):
        engine = RiskEngine(category_multipliers={"SUID_GTFOBINS": "1.5"})
        assert engine.score("CRITICAL", "suid_gtfobins") == 150

    def test_classification_boundaries(self, engine):
        assert engine.classify(0) is Severity.INFO
        assert engine.classify(49) is Severity.INFO
        assert engine.classify(50) is Severity.LOW
        assert engine.classify(150) is Severity.MEDIUM
        assert engine.classify(300) is Severity.HIGH
        assert engine.classify(500) is Severity.CRITICAL
        assert engine.classify(10_000) is Severity.CRITICAL

    def test_classification_is_monotonic(self, engine):
        ratings = [engine.classify(score).rank for score in range(0, 700, 7)]
        assert ratings == sorted(ratings)

    def test_custom_thresholds(self):
        engine = RiskEngine(thresholds=RiskThresholds(critical=10, high=8, medium=6, low=4))
        assert engine.classify(9) is Severity.HIGH

    def test_custom_weights(self):
        engine = RiskEngine(weights=RiskWeights(critical=1000))
        assert engine.score("critical", "x") == 1000

    def test_observe_counts_without_scoring(self, engine):
        engine.observe("HIGH")
        summary = engine.summary()
        assert summary.total_score == 0
        assert summary.counts[Severity.HIGH] == 1
        assert summary.total_findings == 1

    def test_summary_includes_zero_counts(self, engine):
        counts = engine.summary().counts
        assert set(counts) == set(Severity)
        assert all(v == 0 for v in counts.values())

    def test_reset(self, engine):
        engine.record("CRITICAL", "x")
        engine.reset()
        assert engine.total_score == 0
        assert engine.summary().total_findings == 0

    def test_summary_to_dict(self, engine):
        engine.record("LOW", "x")
        data = engine.summary().to_dict()
        assert data["overall_rating"] == "INFO"
        assert data["total_score"] == 15
        assert data["low"] == 1
        assert data["total_findings"] == 1


class TestMultipliers:
    """Multiplier table construction."""

    def test_collision_keeps_first_declared(self, caplog):
        with caplog.at_level(logging.WARNING):
            table = build_multipliers([("sudo_nopasswd", "2.0"), ("SUDO_NOPASSWD", "3.0")])
        assert table == {"SUDO_NOPASSWD": Decimal("2.0")}
        assert "collision" in caplog.text

    def test_invalid_multiplier_falls_back_to_one(self):
        table = build_multipliers({"x": "-1", "y": "abc"})
        assert table["X"] == Decimal("1.0")
        assert table["Y"] == Decimal("1.0")

    def test_empty(self):
        assert build_multipliers(None) == {}
