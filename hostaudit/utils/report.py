"""
Report Rendering for hostaudit
Text, JSON and HTML renderings of a finished audit run
"""

import getpass
import json
import logging
import platform
import socket
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from jinja2 import Environment
from tabulate import tabulate

from hostaudit import __version__
from hostaudit.core.findings import meets_min_severity, report_sort_key
from hostaudit.core.model import Finding, Severity
from hostaudit.core.risk import RiskSummary

logger = logging.getLogger(__name__)

TOOL_NAME = "hostaudit"
RULE = "=" * 70
SECTION_RULE = "-" * 70

SEVERITY_COLORS = {
    Severity.CRITICAL: "#dc3545",
    Severity.HIGH: "#fd7e14",
    Severity.MEDIUM: "#ffc107",
    Severity.LOW: "#17a2b8",
    Severity.INFO: "#6c757d",
}


@dataclass(frozen=True)
class RunMetadata:
    """Context printed in every report header."""

    generated_at: str
    host: str = ""
    user: str = ""
    kernel: str = ""
    tool: str = TOOL_NAME
    version: str = __version__
    min_severity: str = Severity.INFO.value
    probes_run: int = 0
    duration_seconds: float = 0.0
    interrupted: bool = False

    @classmethod
    def collect(cls, **kwargs) -> "RunMetadata":
        """Metadata for the current host; the only clock read in reporting."""
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = "unknown"
        defaults = {
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "host": socket.gethostname(),
            "user": user,
            "kernel": platform.release(),
        }
        defaults.update(kwargs)
        return cls(**defaults)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>{{ meta.tool }} Report - {{ meta.host }}</title>
    <meta charset="utf-8">
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; background-color: #f5f5f5; color: #222; }
        .header { background: #1f2937; color: white; padding: 20px; border-radius: 10px; margin-bottom: 20px; }
        .meta { color: #cbd5e1; font-size: 13px; }
        .overall-badge { display: inline-block; padding: 6px 14px; border-radius: 6px; color: white; font-weight: bold; }
        .risk-cards { display: grid; grid-template-columns: repeat(5, 1fr); gap: 16px; margin-bottom: 24px; }
        .risk-card { background: white; padding: 16px; border-radius: 8px; text-align: center; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
        .risk-card .count { font-size: 28px; font-weight: bold; }
        .findings-table { width: 100%; border-collapse: collapse; background: white; }
        .findings-table th, .findings-table td { padding: 8px; border-bottom: 1px solid #e5e7eb; text-align: left; vertical-align: top; }
        .sev-badge { padding: 2px 8px; border-radius: 4px; color: white; font-size: 12px; font-weight: bold; }
        .hint { background: #e8f5e8; padding: 6px; border-radius: 4px; margin-top: 6px; font-family: monospace; font-size: 12px; }
        .notice { background: #fff3cd; padding: 12px; border-radius: 8px; margin-bottom: 20px; border: 1px solid #ffeaa7; }
    </style>
</head>
<body>
    <div class="header">
        <h1>{{ meta.tool }} Privilege-Escalation Audit</h1>
        <p class="meta">Generated: {{ meta.generated_at }} | Host: {{ meta.host }} | User: {{ meta.user }} | Kernel: {{ meta.kernel }} | Minimum severity: {{ meta.min_severity }}</p>
        <div class="overall-badge" style="background: {{ colors[summary.overall_rating] }};">{{ summary.overall_rating.value }} RISK (Score: {{ summary.total_score }})</div>
    </div>
{% if meta.interrupted %}
    <div class="notice">The audit was interrupted; results are partial.</div>
{% endif %}
    <div class="risk-cards">
{% for severity in severities %}
        <div class="risk-card"><div class="count" style="color: {{ colors[severity] }};">{{ summary.counts.get(severity, 0) }}</div><div class="label">{{ severity.value.title() }}</div></div>
{% endfor %}
    </div>

    <h2>Detailed Findings ({{ findings|length }})</h2>
{% if findings %}
    <table class="findings-table">
        <thead><tr><th>Severity</th><th>Probe</th><th>Category</th><th>Detail</th><th>Timestamp</th></tr></thead>
        <tbody>
{% for finding in findings %}
            <tr>
                <td><span class="sev-badge" style="background: {{ colors[finding.severity] }};">{{ finding.severity.value }}</span></td>
                <td>{{ finding.probe_id }}</td>
                <td>{{ finding.category }}</td>
                <td>{{ finding.detail }}{% if finding.hint %}<div class="hint">{{ finding.hint }}</div>{% endif %}</td>
                <td>{{ finding.timestamp_text }}</td>
            </tr>
{% endfor %}
        </tbody>
    </table>
{% else %}
    <p>No findings at or above {{ meta.min_severity }}.</p>
{% endif %}
    <p class="meta">{{ meta.tool }} v{{ meta.version }}</p>
</body>
</html>
"""


class ReportRenderer:
    """Renders (findings, risk summary, metadata) into report documents.

    Rendering is a pure function of its inputs: the same findings, summary and
    metadata always produce byte-identical output.
    """

    def __init__(self):
        self._env = Environment(autoescape=True, keep_trailing_newline=True)
        self._html_template = self._env.from_string(HTML_TEMPLATE)

    @staticmethod
    def prepare(findings: Sequence[Finding], min_severity=Severity.INFO) -> List[Finding]:
        """Filter by minimum severity, then order for reporting."""
        threshold = Severity.parse(min_severity)
        selected = [f for f in findings if meets_min_severity(f, threshold)]
        return sorted(selected, key=report_sort_key)

    def render(self, fmt: str, findings: Sequence[Finding], summary: RiskSummary, metadata: RunMetadata) -> str:
        renderers = {
            "txt": self.render_text,
            "json": self.render_json,
            "html": self.render_html,
        }
        if fmt not in renderers:
            raise ValueError(f"Unknown report format: {fmt}")
        return renderers[fmt](findings, summary, metadata)

    def render_summary_table(self, summary: RiskSummary) -> str:
        rows = [[severity.value, summary.counts.get(severity, 0)] for severity in Severity.ordered()]
        rows.append(["TOTAL", summary.total_findings])
        return tabulate(rows, headers=["Severity", "Findings"], tablefmt="simple")

    def render_text(self, findings: Sequence[Finding], summary: RiskSummary, metadata: RunMetadata) -> str:
        lines = [
            RULE,
            f"  {metadata.tool.upper()} - Privilege Escalation Audit Report",
            f"  Generated: {metadata.generated_at}",
            f"  Host: {metadata.host} | User: {metadata.user} | Kernel: {metadata.kernel}",
            RULE,
            "",
            f"OVERALL RISK: {summary.overall_rating.value} (Score: {summary.total_score})",
            "",
            self.render_summary_table(summary),
            "",
        ]
        if metadata.interrupted:
            lines.extend(["NOTE: the audit was interrupted; results are partial.", ""])

        lines.append(SECTION_RULE)
        lines.append(f"FINDINGS (minimum severity: {metadata.min_severity})")
        lines.append(SECTION_RULE)

        current_probe: Optional[str] = None
        for finding in findings:
            if finding.probe_id != current_probe:
                current_probe = finding.probe_id
                lines.append("")
                lines.append(f"=== PROBE: {current_probe.upper()} ===")
                lines.append("")
            lines.append(f"[{finding.severity.value:<8}] [{finding.category}] {finding.detail}")
            if finding.hint:
                lines.append(f"           -> {finding.hint}")

        if not findings:
            lines.append("")
            lines.append("No findings.")

        lines.extend(["", RULE, "  End of Report", RULE, ""])
        return "\n".join(lines)

    def render_json(self, findings: Sequence[Finding], summary: RiskSummary, metadata: RunMetadata) -> str:
        document = {
            "report": metadata.to_dict(),
            "risk_summary": summary.to_dict(),
            "findings": [f.to_dict() for f in findings],
        }
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"

    def render_html(self, findings: Sequence[Finding], summary: RiskSummary, metadata: RunMetadata) -> str:
        return self._html_template.render(
            meta=metadata,
            summary=summary,
            findings=list(findings),
            severities=Severity.ordered(),
            colors=SEVERITY_COLORS,
        )
