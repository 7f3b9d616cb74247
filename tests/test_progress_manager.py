"""
Test suite for the hostaudit progress output
"""

import io

import pytest
from rich.console import Console

from hostaudit.core.engine import AuditEngine
from hostaudit.core.knowledge_base import KnowledgeBase
from hostaudit.core.model import Probe
from hostaudit.utils.progress_manager import ProgressManager


def record_console():
    return Console(file=io.StringIO(), width=120, force_terminal=False)


class TestProgressManager:
    """Run tracking and summary tables."""

    @pytest.mark.asyncio
    async def test_full_run_reports_every_probe(self):
        console = record_console()
        progress = ProgressManager(console, verbosity=2)
        engine = AuditEngine(knowledge_base=KnowledgeBase(), workers=0, progress_manager=progress)

        def broken(context):
            raise RuntimeError("boom")

        probes = [
            Probe("quiet", "registers one finding", lambda context: context.register("HIGH", "x", "y")),
            Probe("broken", "always fails", broken),
        ]
        await engine.run(probes)

        output = console.file.getvalue()
        assert progress.total_probes == 2
        assert progress.completed_probes == 2
        assert [r.name for r in progress.results] == ["quiet", "broken"]
        assert "Running probe: quiet [1/2]" in output
        assert "Probe broken failed: RuntimeError: boom" in output
        assert "Overall risk:" in output

    def test_quiet_verbosity_still_shows_errors(self):
        console = record_console()
        progress = ProgressManager(console, verbosity=0)
        progress.log_message("INFO", "hidden")
        progress.log_message("ERROR", "shown")

        output = console.file.getvalue()
        assert "hidden" not in output
        assert "[ERROR] shown" in output

    @pytest.mark.parametrize("seconds, expected", [(4.5, "4.5s"), (125, "2m5s"), (7260, "2h1m")])
    def test_format_duration(self, seconds, expected):
        assert ProgressManager(record_console())._format_duration(seconds) == expected
