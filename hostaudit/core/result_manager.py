"""
Result Manager for hostaudit
Handles storage of findings snapshots and report artifacts
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from hostaudit.utils.report import ReportRenderer, RunMetadata

from .model import Finding, format_record, parse_record
from .risk import RiskSummary

REPORT_FILENAMES = {
    "txt": "report.txt",
    "json": "report.json",
    "html": "report.html",
}
SNAPSHOT_FILENAME = "findings.dat"


class ResultManager:
    """Writes run artifacts under `output_dir`.

    `output_dir=None` is stealth mode: nothing touches the disk.
    """

    def __init__(self, output_dir: Optional[str] = "output", renderer: Optional[ReportRenderer] = None):
        self.output_dir = Path(output_dir) if output_dir else None
        self.renderer = renderer or ReportRenderer()
        self.logger = logging.getLogger(__name__)

    @property
    def stealth(self) -> bool:
        return self.output_dir is None

    @property
    def reports_dir(self) -> Optional[Path]:
        return self.output_dir / "reports" if self.output_dir else None

    @property
    def parsed_dir(self) -> Optional[Path]:
        return self.output_dir / "parsed" if self.output_dir else None

    @property
    def raw_dir(self) -> Optional[Path]:
        return self.output_dir / "raw" if self.output_dir else None

    def prepare_directories(self) -> None:
        if self.stealth:
            return
        for directory in (self.reports_dir, self.parsed_dir, self.raw_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def write_reports(self,
                      findings: Sequence[Finding],
                      summary: RiskSummary,
                      metadata: RunMetadata,
                      formats: Iterable[str] = ("txt", "json", "html")) -> Dict[str, str]:
        """Render and write each requested format; returns format -> path written.

        `findings` must already be filtered and sorted (see ReportRenderer.prepare).
        A failing format is logged and skipped; the others are still written.
        """
        artifacts: Dict[str, str] = {}
        if self.stealth:
            self.logger.debug("Stealth mode: skipping report files")
            return artifacts

        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Cannot create report directory {self.reports_dir}: {e}")
            return artifacts

        for fmt in formats:
            filename = REPORT_FILENAMES.get(fmt)
            if filename is None:
                self.logger.warning(f"Unknown report format skipped: {fmt}")
                continue
            filepath = self.reports_dir / filename
            try:
                content = self.renderer.render(fmt, findings, summary, metadata)
                with open(filepath, "w", encoding="utf-8") as f:
                    f.write(content)
            except Exception as e:
                self.logger.error(f"Failed to write {fmt} report to {filepath}: {e}")
                continue

            artifacts[fmt] = str(filepath)
            self.logger.info(f"{fmt.upper()} report generated: {filepath}")

        return artifacts

    def save_findings(self, findings: Sequence[Finding]) -> Optional[str]:
        """Write the parsed findings snapshot, one record per line in insertion order."""
        if self.stealth:
            return None

        filepath = self.parsed_dir / SNAPSHOT_FILENAME
        try:
            self.parsed_dir.mkdir(parents=True, exist_ok=True)
            with open(filepath, "w", encoding="utf-8") as f:
                for finding in findings:
                    f.write(format_record(finding) + "\n")
        except OSError as e:
            self.logger.error(f"Failed to write findings snapshot {filepath}: {e}")
            return None

        self.logger.info(f"Parsed findings written to {filepath} ({len(findings)} records)")
        return str(filepath)

    def load_findings(self, path=None) -> List[Finding]:
        """Read a snapshot back; malformed lines are logged and skipped."""
        if path is None:
            if self.stealth:
                return []
            path = self.parsed_dir / SNAPSHOT_FILENAME

        findings: List[Finding] = []
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    findings.append(Finding.from_record(parse_record(line), sequence=len(findings)))
                except ValueError as e:
                    self.logger.warning(f"{path}:{lineno}: skipping malformed record: {e}")
        return findings
