"""
hostaudit Audit Engine
Main orchestrator: runs probes under a bounded worker pool and isolates
per-probe failures, timeouts and interrupts.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .findings import FindingSink
from .knowledge_base import KnowledgeBase
from .model import Finding, Probe, ProbeTimeoutError, Severity
from .risk import RiskEngine, RiskSummary, RiskThresholds, RiskWeights


class ProbeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"
    ABANDONED = "abandoned"


@dataclass
class ProbeResult:
    """Completion record for one probe."""

    name: str
    status: ProbeStatus
    elapsed_seconds: float = 0.0
    error: Optional[str] = None
    findings_registered: int = 0


@dataclass
class AuditOutcome:
    """Everything a finished run hands to reporting."""

    results: List[ProbeResult]
    sink: FindingSink
    started_at: datetime
    finished_at: datetime
    interrupted: bool = False
    workers: int = 0

    @property
    def summary(self) -> RiskSummary:
        return self.sink.risk_engine.summary()

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def get_run_stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        for result in self.results:
            by_status[result.status.value] = by_status.get(result.status.value, 0) + 1
        return {
            "start_time": self.started_at.isoformat(),
            "end_time": self.finished_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "workers": self.workers,
            "interrupted": self.interrupted,
            "total_probes": len(self.results),
            "probes_by_status": by_status,
            "total_findings": len(self.sink),
        }


class ProbeContext:
    """Context object passed to a probe's `run` during execution."""

    def __init__(self,
                 probe_name: str,
                 sink: FindingSink,
                 knowledge_base: KnowledgeBase,
                 stop_event: threading.Event,
                 logger: Optional[logging.Logger] = None,
                 metadata: Optional[Dict[str, Any]] = None):
        self.probe_name = probe_name
        self.sink = sink
        self.knowledge_base = knowledge_base
        self.logger = logger or logging.getLogger(f"hostaudit.probe.{probe_name}")
        self.metadata: Dict[str, Any] = metadata if metadata is not None else {}
        self.findings_registered = 0
        self._stop_event = stop_event
        self._abandoned = threading.Event()

    @property
    def stop_requested(self) -> bool:
        """Advisory: long-running probes should return early once this is set."""
        return self._stop_event.is_set() or self._abandoned.is_set()

    @property
    def abandoned(self) -> bool:
        return self._abandoned.is_set()

    def abandon(self) -> None:
        # Under the sink lock, so no append can straddle the abandonment
        self.sink.exclusive(self._abandoned.set)

    def register(self, severity, category: str, detail: str, hint: Optional[str] = None) -> Finding:
        """Scored finding attributed to this probe."""
        finding = self.sink.register(severity, self.probe_name, category, detail, hint, guard=self.ensure_open)
        self.findings_registered += 1
        return finding

    def emit(self, severity, category: str, detail: str, hint: Optional[str] = None) -> Finding:
        """Informational finding attributed to this probe."""
        finding = self.sink.emit(severity, self.probe_name, category, detail, hint, guard=self.ensure_open)
        self.findings_registered += 1
        return finding

    def ensure_open(self) -> None:
        """Raise ProbeTimeoutError once the probe has been abandoned."""
        # An abandoned probe keeps running on its thread; stop it at its next write
        if self._abandoned.is_set():
            raise ProbeTimeoutError(f"Probe {self.probe_name} was abandoned")


class AuditEngine:
    """Runs probes and accounts for their completion."""

    def __init__(self,
                 knowledge_base: Optional[KnowledgeBase] = None,
                 workers: int = 4,
                 probe_timeout: Optional[float] = None,
                 grace_period: float = 5.0,
                 weights: Optional[RiskWeights] = None,
                 thresholds: Optional[RiskThresholds] = None,
                 category_multipliers=None,
                 error_findings: bool = True,
                 logger: Optional[logging.Logger] = None,
                 progress_manager=None):

        if workers < 0:
            raise ValueError(f"workers must be >= 0, got {workers}")

        self.knowledge_base = knowledge_base or KnowledgeBase()
        self.workers = workers
        self.probe_timeout = probe_timeout
        self.grace_period = grace_period
        self.weights = weights or RiskWeights()
        self.thresholds = thresholds or RiskThresholds()
        self.category_multipliers = category_multipliers
        self.error_findings = error_findings
        self.logger = logger or logging.getLogger(__name__)
        self.progress_manager = progress_manager

        # Cancellation state; the threading event is what probes observe
        self._stop_event = threading.Event()
        self._stop_signal: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    @classmethod
    def from_config(cls, config, knowledge_base: Optional[KnowledgeBase] = None, **kwargs) -> "AuditEngine":
        return cls(
            knowledge_base=knowledge_base,
            workers=config.workers,
            probe_timeout=config.probe_timeout,
            grace_period=config.grace_period,
            weights=config.weights,
            thresholds=config.thresholds,
            category_multipliers=config.category_multipliers,
            **kwargs,
        )

    def create_sink(self) -> FindingSink:
        """Fresh sink and risk engine owned by a single run."""
        risk_engine = RiskEngine(self.weights, self.thresholds, self.category_multipliers)
        return FindingSink(risk_engine)

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Begin draining. Safe to call from signal handlers and other threads."""
        if not self._stop_event.is_set():
            self.logger.warning("Stop requested - no new probes will be started")
        self._stop_event.set()
        loop, signal_event = self._loop, self._stop_signal
        if loop is not None and signal_event is not None:
            try:
                loop.call_soon_threadsafe(signal_event.set)
            except RuntimeError:
                # Loop already closed; the run is over
                pass

    async def run(self,
                  probes: Sequence[Probe],
                  workers: Optional[int] = None,
                  sink: Optional[FindingSink] = None) -> AuditOutcome:
        """Run every probe once and return per-probe results in input order."""
        if self._running:
            raise RuntimeError("An audit run is already in progress on this engine")

        workers = self.workers if workers is None else workers
        if workers < 0:
            raise ValueError(f"workers must be >= 0, got {workers}")

        self._running = True
        sink = sink or self.create_sink()
        sink.risk_engine.reset()
        self._stop_event.clear()
        self._loop = asyncio.get_running_loop()
        self._stop_signal = asyncio.Event()

        probes = list(probes)
        results: List[Optional[ProbeResult]] = [None] * len(probes)
        started: Dict[int, float] = {}
        started_at = datetime.now()

        mode = "sequentially" if workers == 0 else f"with {workers} workers"
        self.logger.info(f"Running {len(probes)} probes {mode}")
        if self.progress_manager:
            self.progress_manager.start_run(len(probes), workers)

        async def execute(index: int, probe: Probe) -> None:
            results[index] = await self._execute_probe(index, probe, len(probes), sink, started)

        async def run_sequential() -> None:
            for index, probe in enumerate(probes):
                await execute(index, probe)

        semaphore = asyncio.Semaphore(max(1, workers))

        async def admit(index: int, probe: Probe) -> None:
            async with semaphore:
                await execute(index, probe)

        try:
            if workers == 0:
                tasks = [asyncio.ensure_future(run_sequential())]
            else:
                tasks = [asyncio.ensure_future(admit(i, p)) for i, p in enumerate(probes)]
            interrupted = await self._wait_with_drain(tasks)
        finally:
            self._running = False
            self._loop = None
            self._stop_signal = None

        now = time.monotonic()
        final_results = []
        for index, probe in enumerate(probes):
            result = results[index]
            if result is None:
                if index in started:
                    result = ProbeResult(probe.name, ProbeStatus.ABANDONED,
                                         elapsed_seconds=now - started[index],
                                         error="still running when the grace period expired")
                else:
                    result = ProbeResult(probe.name, ProbeStatus.SKIPPED)
            final_results.append(result)

        outcome = AuditOutcome(
            results=final_results,
            sink=sink,
            started_at=started_at,
            finished_at=datetime.now(),
            interrupted=interrupted,
            workers=workers,
        )

        summary = outcome.summary
        self.logger.info(
            f"Audit completed in {outcome.duration_seconds:.1f}s: {len(sink)} findings, "
            f"overall risk {summary.overall_rating.value} (score {summary.total_score})"
        )
        if self.progress_manager:
            self.progress_manager.complete_run(outcome)

        return outcome

    async def _wait_with_drain(self, tasks) -> bool:
        """Wait for all tasks; on interrupt allow a bounded grace period.

        Returns True when the run was interrupted.
        """
        gathered = asyncio.gather(*tasks)
        stop_waiter = asyncio.ensure_future(self._stop_signal.wait())
        try:
            done, _ = await asyncio.wait({gathered, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if gathered in done:
                gathered.result()
                return self._stop_event.is_set()

            self.logger.warning(f"Interrupt received - draining in-flight probes (grace period {self.grace_period}s)")
            done, _ = await asyncio.wait({gathered}, timeout=self.grace_period)
            if gathered in done:
                gathered.result()
            else:
                self.logger.warning("Grace period elapsed - abandoning probes that are still running")
                gathered.cancel()
                await asyncio.wait({gathered})
            return True
        finally:
            stop_waiter.cancel()

    async def _execute_probe(self,
                             index: int,
                             probe: Probe,
                             total: int,
                             sink: FindingSink,
                             started: Dict[int, float]) -> ProbeResult:
        """Run a single probe on a worker thread."""
        if self._stop_event.is_set():
            self.logger.info(f"Skipping probe {probe.name}: stop requested")
            return ProbeResult(probe.name, ProbeStatus.SKIPPED)

        context = ProbeContext(
            probe_name=probe.name,
            sink=sink,
            knowledge_base=self.knowledge_base,
            stop_event=self._stop_event,
        )

        if self.progress_manager:
            self.progress_manager.log_probe_start(probe.name, index + 1, total)
        else:
            self.logger.debug(f"Running probe: {probe.name}")

        start = time.monotonic()
        started[index] = start
        future = self._start_thread(probe, context, sink)

        try:
            if self.probe_timeout:
                status, error = await asyncio.wait_for(future, self.probe_timeout)
            else:
                status, error = await future
        except asyncio.TimeoutError:
            context.abandon()
            status = ProbeStatus.TIMEOUT
            error = f"timed out after {self.probe_timeout}s"
            self.logger.warning(f"Probe {probe.name} {error}")
            sink.emit(Severity.INFO, probe.name, "probe_timeout",
                      f"Probe {probe.name} {error}; its results may be incomplete")
        except asyncio.CancelledError:
            context.abandon()
            raise

        result = ProbeResult(
            name=probe.name,
            status=status,
            elapsed_seconds=time.monotonic() - start,
            error=error,
            findings_registered=context.findings_registered,
        )

        if self.progress_manager:
            self.progress_manager.log_probe_result(result)
        self.logger.info(
            f"Probe {probe.name} {result.status.value} in {result.elapsed_seconds:.2f}s "
            f"({result.findings_registered} findings)"
        )
        return result

    def _start_thread(self, probe: Probe, context: ProbeContext, sink: FindingSink) -> asyncio.Future:
        """Run `_invoke` on a daemon thread and resolve the returned future from it.

        Daemon threads never hold up interpreter exit, even when the probe is
        abandoned while blocked.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def deliver(outcome) -> None:
            if not future.done():
                future.set_result(outcome)

        def target() -> None:
            outcome = self._invoke(probe, context, sink)
            try:
                loop.call_soon_threadsafe(deliver, outcome)
            except RuntimeError:
                # Loop already closed; nobody is waiting for this probe any more
                pass

        thread = threading.Thread(target=target, name=f"probe-{probe.name}", daemon=True)
        thread.start()
        return future

    def _invoke(self, probe: Probe, context: ProbeContext, sink: FindingSink):
        """Probe execution boundary; runs on the worker thread."""
        try:
            probe.run(context)
            return ProbeStatus.SUCCESS, None
        except ProbeTimeoutError as e:
            return ProbeStatus.TIMEOUT, str(e)
        except (Exception, SystemExit) as e:
            self.logger.error(f"Error running probe {probe.name}: {e}",
                              exc_info=self.logger.isEnabledFor(logging.DEBUG))
            if self.error_findings:
                try:
                    sink.emit(Severity.INFO, probe.name, "probe_error",
                              f"Probe {probe.name} failed: {type(e).__name__}: {e}",
                              guard=context.ensure_open)
                except ProbeTimeoutError:
                    self.logger.debug(f"Probe {probe.name} was abandoned; error finding dropped")
            return ProbeStatus.FAILED, f"{type(e).__name__}: {e}"
