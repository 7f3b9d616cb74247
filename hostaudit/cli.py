#!/usr/bin/env python3
"""
hostaudit CLI Interface
Command-line interface for the hostaudit privilege-escalation audit engine
"""

import asyncio
import signal
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostaudit import ETHICAL_NOTICE, __version__
from hostaudit.core.config import AuditConfig
from hostaudit.core.engine import AuditEngine
from hostaudit.core.knowledge_base import KnowledgeBase
from hostaudit.core.plugin_loader import ProbeLoader
from hostaudit.core.result_manager import ResultManager
from hostaudit.utils.logger import DEFAULT_LOG_FILENAME, FindingLogger, setup_logger
from hostaudit.utils.progress_manager import ProgressManager
from hostaudit.utils.report import ReportRenderer, RunMetadata

app = typer.Typer(
    name="hostaudit",
    help="hostaudit - local privilege-escalation audit engine",
    no_args_is_help=True
)

console = Console()


async def run_with_signals(engine: AuditEngine, probes, sink):
    """Run the engine with SIGINT/SIGTERM wired to a graceful stop."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.request_stop)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            pass
    try:
        return await engine.run(probes, sink=sink)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def load_config(config_path: Optional[str]) -> AuditConfig:
    if config_path:
        return AuditConfig.from_file(config_path)
    return AuditConfig()


@app.command()
def audit(
    modules: Optional[str] = typer.Option(
        None, "--modules", "-m",
        help="Comma-separated probes to run (default: all)"
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o",
        help="Output directory for reports (default: output)"
    ),
    formats: Optional[str] = typer.Option(
        None, "--format", "-f",
        help="Report formats: txt,json,html (default: all)"
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j",
        help="Concurrent probes; 0 runs them sequentially (default: 4)"
    ),
    stealth: bool = typer.Option(
        False, "--stealth", "-s",
        help="Write nothing to disk; print the text report to stdout"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Only show warnings, errors and the final summary"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable debug output"
    ),
    severity: Optional[str] = typer.Option(
        None, "--severity", "-S",
        help="Minimum severity included in reports (CRITICAL, HIGH, MEDIUM, LOW, INFO)"
    ),
    no_plugins: bool = typer.Option(
        False, "--no-plugins",
        help="Do not load plugin files"
    ),
    plugins_dir: Optional[str] = typer.Option(
        None, "--plugins-dir",
        help="Directory containing plugin files (default: plugins)"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c",
        help="JSON settings file"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout",
        help="Per-probe timeout in seconds (0 disables)"
    ),
):
    """Audit the local host for privilege-escalation vectors."""

    config = load_config(config_path).with_overrides(
        modules=modules,
        output_dir=output,
        formats=formats,
        workers=jobs,
        stealth=True if stealth else None,
        min_severity=severity,
        autoload_plugins=False if no_plugins else None,
        plugins_dir=plugins_dir,
        probe_timeout=timeout,
    )

    verbosity = 0 if quiet else (2 if verbose else 1)
    result_manager = ResultManager(None if config.stealth else config.output_dir)

    log_file = None
    if not config.stealth:
        try:
            result_manager.prepare_directories()
            log_file = str(result_manager.raw_dir / DEFAULT_LOG_FILENAME)
        except OSError as e:
            console.print(f"[red]ERROR: cannot create output directory {config.output_dir}: {e}[/red]")
            raise typer.Exit(1)

    logger = setup_logger(verbosity, log_file=log_file, stealth=config.stealth)

    if verbosity >= 1 and not config.stealth:
        console.print(Panel(ETHICAL_NOTICE.strip(), title=f"hostaudit v{__version__}", border_style="red"))

    knowledge_base = KnowledgeBase.load(config.knowledge_base_dir)

    loader = ProbeLoader(config.plugins_dir if config.autoload_plugins else None)
    loader.load_all_plugins()
    probes = loader.select(config.modules)
    if not probes:
        console.print("[red]ERROR: no probes selected[/red]")
        raise typer.Exit(1)

    progress_manager = None
    if not config.stealth and verbosity >= 1:
        progress_manager = ProgressManager(Console(stderr=True), verbosity=verbosity)

    engine = AuditEngine.from_config(config, knowledge_base=knowledge_base, progress_manager=progress_manager)
    sink = engine.create_sink()
    sink.add_observer(FindingLogger())

    try:
        outcome = asyncio.run(run_with_signals(engine, probes, sink))
    except Exception as e:
        console.print(f"[red]Audit failed: {e}[/red]")
        if verbosity >= 2:
            console.print_exception()
        raise typer.Exit(1)

    all_findings = outcome.sink.all()
    report_findings = ReportRenderer.prepare(all_findings, config.min_severity)
    metadata = RunMetadata.collect(
        min_severity=config.min_severity.value,
        probes_run=len(probes),
        duration_seconds=round(outcome.duration_seconds, 2),
        interrupted=outcome.interrupted,
    )

    if config.stealth:
        typer.echo(result_manager.renderer.render_text(report_findings, outcome.summary, metadata))
        return

    result_manager.save_findings(all_findings)
    artifacts = result_manager.write_reports(report_findings, outcome.summary, metadata, config.formats)
    for fmt, path in artifacts.items():
        logger.info(f"Report ({fmt}): {path}")

    if progress_manager is None:
        summary = outcome.summary
        console.print(
            f"Overall risk: {summary.overall_rating.value} "
            f"(score {summary.total_score}, {summary.total_findings} findings)"
        )


@app.command("list-probes")
def list_probes(
    plugins_dir: str = typer.Option(
        "plugins", "--plugins-dir",
        help="Directory containing plugin files"
    ),
    no_plugins: bool = typer.Option(
        False, "--no-plugins",
        help="Only list built-in probes"
    ),
):
    """List built-in probes and loadable plugins."""
    setup_logger(0)
    loader = ProbeLoader(None if no_plugins else plugins_dir)
    loader.load_all_plugins()

    table = Table(title="Available Probes", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Source", style="yellow")
    table.add_column("Description")

    for probe in loader.all_probes():
        table.add_row(probe.name, probe.source, probe.description)

    console.print(table)


@app.command()
def version():
    """Show the hostaudit version."""
    console.print(f"hostaudit v{__version__}")


if __name__ == "__main__":
    app()
