"""
Test suite for hostaudit result storage
"""

import json
from unittest.mock import patch

import pytest

from hostaudit.core.findings import FindingSink
from hostaudit.core.result_manager import ResultManager
from hostaudit.utils.report import ReportRenderer, RunMetadata


@pytest.fixture
def sink():
    sink = FindingSink()
    sink.register("CRITICAL", "system", "sudo_nopasswd", "NOPASSWD sudo: (root) NOPASSWD: /usr/bin/tar", "sudo tar ...")
    sink.emit("INFO", "system", "kernel_version", "Kernel: 5.10.0")
    sink.register("MEDIUM", "filesystem", "suid_nonstandard", "Non-standard SUID binary: /opt/a|b")
    return sink


@pytest.fixture
def metadata():
    return RunMetadata(generated_at="2024-05-01 10:00:00", host="lab01", user="auditor", kernel="5.10.0")


class TestResultManager:
    """Artifact writing and snapshots."""

    def test_writes_all_formats(self, tmp_path, sink, metadata):
        manager = ResultManager(str(tmp_path))
        findings = ReportRenderer.prepare(sink.all())
        artifacts = manager.write_reports(findings, sink.risk_engine.summary(), metadata)

        assert set(artifacts) == {"txt", "json", "html"}
        assert (tmp_path / "reports" / "report.txt").read_text(encoding="utf-8").startswith("=" * 70)
        document = json.loads((tmp_path / "reports" / "report.json").read_text(encoding="utf-8"))
        assert document["risk_summary"]["total_score"] == 140

    def test_requested_formats_only(self, tmp_path, sink, metadata):
        manager = ResultManager(str(tmp_path))
        artifacts = manager.write_reports(sink.all(), sink.risk_engine.summary(), metadata, formats=["json"])
        assert list(artifacts) == ["json"]
        assert not (tmp_path / "reports" / "report.html").exists()

    def test_failing_format_does_not_block_others(self, tmp_path, sink, metadata):
        manager = ResultManager(str(tmp_path))
        with patch.object(manager.renderer, "render_html", side_effect=RuntimeError("template broke")):
            artifacts = manager.write_reports(sink.all(), sink.risk_engine.summary(), metadata)
        assert set(artifacts) == {"txt", "json"}

    def test_stealth_writes_nothing(self, tmp_path, sink, metadata, monkeypatch):
        monkeypatch.chdir(tmp_path)
        manager = ResultManager(None)
        manager.prepare_directories()

        assert manager.write_reports(sink.all(), sink.risk_engine.summary(), metadata) == {}
        assert manager.save_findings(sink.all()) is None
        assert manager.load_findings() == []
        assert list(tmp_path.iterdir()) == []

    def test_snapshot_round_trip(self, tmp_path, sink):
        manager = ResultManager(str(tmp_path))
        path = manager.save_findings(sink.all())
        assert path.endswith("findings.dat")

        lines = (tmp_path / "parsed" / "findings.dat").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert all(line.startswith("FINDING|") for line in lines)

        loaded = manager.load_findings()
        stored = sink.all()
        assert [f.detail for f in loaded] == [f.detail for f in stored]
        assert [f.severity for f in loaded] == [f.severity for f in stored]
        assert loaded[1].hint is None

    def test_malformed_snapshot_lines_are_skipped(self, tmp_path):
        snapshot = tmp_path / "findings.dat"
        snapshot.write_text(
            "FINDING|2024-05-01 10:00:00.000000|HIGH|system|x|detail|none\n"
            "garbage line\n"
            "FINDING|2024-05-01 10:00:01.000000|SEVERE|system|x|detail|none\n",
            encoding="utf-8",
        )
        loaded = ResultManager(str(tmp_path)).load_findings(snapshot)
        assert [f.detail for f in loaded] == ["detail"]
