"""
Progress Manager for hostaudit
Handles real-time progress output and the end-of-run summary tables
"""

from datetime import datetime
from typing import List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from hostaudit.core.model import Severity

STATUS_STYLES = {
    "success": "green",
    "failed": "red",
    "timeout": "yellow",
    "skipped": "dim",
    "abandoned": "magenta",
}

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
    Severity.INFO: "cyan",
}


class ProgressManager:
    """Manages real-time progress output for an audit run."""

    def __init__(self, console: Console, verbosity: int = 1):
        self.console = console
        self.verbosity = verbosity
        self.total_probes = 0
        self.completed_probes = 0
        self.results: List = []

        self.progress: Optional[Progress] = None
        self.progress_task = None

    def start_run(self, total_probes: int, workers: int = 0):
        """Start progress tracking for a new run."""
        self.total_probes = total_probes
        self.completed_probes = 0
        self.results = []

        if self.verbosity >= 1:
            mode = "sequentially" if workers == 0 else f"with {workers} workers"
            self.log_message("INFO", f"Starting audit: {total_probes} probes {mode}")

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        self.progress.start()
        self.progress_task = self.progress.add_task(f"Auditing... ({total_probes} probes)", total=total_probes)

    def log_message(self, level: str, message: str):
        """Log a message with timestamp and color coding."""
        colors = {
            "INFO": "cyan",
            "SUCCESS": "green bold",
            "WARNING": "yellow",
            "ERROR": "red",
        }
        if self.verbosity >= 1 or level == "ERROR":
            self.console.print(f"[{self._get_timestamp()}] [{level}] {message}", style=colors.get(level, "white"), markup=False)

    def log_probe_start(self, probe_name: str, index: int = None, total: int = None):
        if self.verbosity >= 2:
            position = f" [{index}/{total}]" if index and total else ""
            self.log_message("INFO", f"Running probe: {probe_name}{position}")

    def log_probe_result(self, result):
        self.results.append(result)
        self.completed_probes += 1
        if self.progress is not None and self.progress_task is not None:
            self.progress.update(self.progress_task, advance=1)

        status = result.status.value
        if status == "failed":
            self.log_message("ERROR", f"Probe {result.name} failed: {result.error}")
        elif status == "timeout":
            self.log_message("WARNING", f"Probe {result.name} timed out")
        elif self.verbosity >= 2:
            self.log_message("INFO", f"Probe {result.name} finished in {result.elapsed_seconds:.2f}s")

    def complete_run(self, outcome):
        """Stop the progress bar and show the summary tables."""
        if self.progress is not None:
            self.progress.stop()
            self.progress = None

        duration = self._format_duration(outcome.duration_seconds)
        if outcome.interrupted:
            self.log_message("WARNING", f"Audit interrupted after {duration}; results are partial")
        else:
            self.log_message("SUCCESS", f"Audit completed in {duration}")

        if self.verbosity >= 1:
            self.show_probe_table(outcome.results)
        self.show_severity_summary(outcome.summary)

    def show_probe_table(self, results):
        table = Table(title="Probe Results", show_header=True, header_style="bold magenta")
        table.add_column("Probe", style="cyan", no_wrap=True)
        table.add_column("Status", justify="center")
        table.add_column("Findings", justify="right")
        table.add_column("Elapsed", justify="right")

        for result in results:
            style = STATUS_STYLES.get(result.status.value, "white")
            table.add_row(
                result.name,
                f"[{style}]{result.status.value}[/{style}]",
                str(result.findings_registered),
                f"{result.elapsed_seconds:.2f}s",
            )
        self.console.print(table)

    def show_severity_summary(self, summary):
        table = Table(title="Risk Summary", show_header=True, header_style="bold magenta")
        table.add_column("Severity", no_wrap=True)
        table.add_column("Findings", justify="right")

        for severity in Severity.ordered():
            style = SEVERITY_STYLES[severity]
            table.add_row(f"[{style}]{severity.value}[/{style}]", str(summary.counts.get(severity, 0)))
        self.console.print(table)

        style = SEVERITY_STYLES[summary.overall_rating]
        self.console.print(
            f"[bold]Overall risk:[/bold] [{style}]{summary.overall_rating.value}[/{style}] "
            f"(score {summary.total_score}, {summary.total_findings} findings)"
        )

    def _get_timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            remaining_seconds = seconds % 60
            return f"{minutes}m{remaining_seconds:.0f}s"
        else:
            hours = int(seconds // 3600)
            remaining_minutes = int((seconds % 3600) // 60)
            return f"{hours}h{remaining_minutes}m"
