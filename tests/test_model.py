"""
Test suite for hostaudit core models
"""

from datetime import datetime

import pytest

from hostaudit.core.model import (
    Finding,
    InvalidSeverityError,
    Severity,
    format_record,
    parse_record,
)


class TestSeverity:
    """Severity parsing and ordering."""

    @pytest.mark.parametrize("raw", ["high", "HIGH", " High ", "hIgH"])
    def test_parse_normalizes_case_and_whitespace(self, raw):
        assert Severity.parse(raw) is Severity.HIGH

    @pytest.mark.parametrize("raw", ["SEVERE", "", "warn", None, 3])
    def test_parse_rejects_unknown_values(self, raw):
        with pytest.raises(InvalidSeverityError):
            Severity.parse(raw)

    def test_invalid_severity_is_a_value_error(self):
        with pytest.raises(ValueError):
            Severity.parse("bogus")

    def test_total_order(self):
        ranks = [s.rank for s in Severity.ordered()]
        assert ranks == sorted(ranks, reverse=True)
        assert Severity.CRITICAL.rank > Severity.HIGH.rank > Severity.MEDIUM.rank
        assert Severity.LOW.rank > Severity.INFO.rank


class TestFindingRecord:
    """Wire record and snapshot line handling."""

    @pytest.fixture
    def finding(self):
        return Finding(
            timestamp=datetime(2024, 5, 1, 12, 30, 0, 123456),
            severity=Severity.HIGH,
            probe_id="filesystem",
            category="suid_gtfobins",
            detail="SUID binary with GTFOBins exploit: /usr/bin/find",
            hint="find . -exec /bin/sh -p \\; -quit",
        )

    def test_to_record_fields(self, finding):
        record = finding.to_record()
        assert record[0] == "FINDING"
        assert record[2] == "HIGH"
        assert record[3] == "filesystem"
        assert record[6] == finding.hint

    def test_absent_hint_uses_placeholder(self, finding):
        no_hint = Finding(finding.timestamp, Severity.INFO, "system", "kernel_version", "Kernel: 5.10.0")
        assert no_hint.to_record()[6] == "none"
        assert Finding.from_record(no_hint.to_record()).hint is None

    def test_snapshot_line_survives_pipes_and_newlines(self, finding):
        tricky = Finding(
            finding.timestamp, Severity.LOW, "credentials", "ssh_private_key",
            "key at /tmp/a|b\nsecond line", "back\\slash",
        )
        line = format_record(tricky)
        assert "\n" not in line
        restored = Finding.from_record(parse_record(line))
        assert restored.detail == tricky.detail
        assert restored.hint == tricky.hint
        assert restored.timestamp == tricky.timestamp

    def test_from_record_rejects_wrong_marker(self, finding):
        record = ("NOTE",) + finding.to_record()[1:]
        with pytest.raises(ValueError):
            Finding.from_record(record)

    def test_to_dict_keys(self, finding):
        data = finding.to_dict()
        assert list(data) == ["timestamp", "severity", "probe", "category", "detail", "hint", "scored"]
        assert data["severity"] == "HIGH"
