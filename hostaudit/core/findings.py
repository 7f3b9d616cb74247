"""
Finding Sink for hostaudit

Concurrency-safe append-only store shared by every probe of a run.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .model import Finding, Severity
from .risk import RiskEngine

logger = logging.getLogger(__name__)


def report_sort_key(finding: Finding):
    """Severity descending, then probe id ascending, then insertion order."""
    return (-finding.severity.rank, finding.probe_id, finding.sequence)


def meets_min_severity(finding: Finding, threshold) -> bool:
    return finding.severity.rank >= Severity.parse(threshold).rank


class FindingSink:
    """Append-only findings store for one run.

    `register` feeds the risk engine inside the same critical section as the
    append, so the aggregate never lags behind the stored findings.
    """

    def __init__(self, risk_engine: Optional[RiskEngine] = None):
        self.risk_engine = risk_engine or RiskEngine()
        self._lock = threading.Lock()
        self._findings: List[Finding] = []
        self._last_timestamp: Optional[datetime] = None
        self._observers: List[Callable[[Finding], None]] = []

    def add_observer(self, callback: Callable[[Finding], None]) -> None:
        """Call `callback(finding)` after every append (e.g. the raw finding log)."""
        self._observers.append(callback)

    def register(self,
                 severity,
                 probe_id: str,
                 category: str,
                 detail: str,
                 hint: Optional[str] = None,
                 guard: Optional[Callable[[], None]] = None) -> Finding:
        """Append a scored finding and forward it to the risk engine.

        `guard` runs inside the append lock; if it raises, nothing is stored.
        """
        return self._append(severity, probe_id, category, detail, hint, scored=True, guard=guard)

    def emit(self,
             severity,
             probe_id: str,
             category: str,
             detail: str,
             hint: Optional[str] = None,
             guard: Optional[Callable[[], None]] = None) -> Finding:
        """Append an informational finding that never contributes to the score."""
        return self._append(severity, probe_id, category, detail, hint, scored=False, guard=guard)

    def exclusive(self, callback: Callable[[], None]) -> None:
        """Run `callback` while holding the append lock."""
        with self._lock:
            callback()

    def _append(self, severity, probe_id, category, detail, hint, scored: bool, guard=None) -> Finding:
        # Rejected before taking the lock, so a bad severity stores nothing
        severity = Severity.parse(severity)
        hint = hint or None

        with self._lock:
            if guard is not None:
                guard()
            now = datetime.now()
            if self._last_timestamp is not None and now < self._last_timestamp:
                now = self._last_timestamp
            self._last_timestamp = now

            finding = Finding(
                timestamp=now,
                severity=severity,
                probe_id=str(probe_id),
                category=str(category),
                detail=str(detail),
                hint=hint if hint is None else str(hint),
                scored=scored,
                sequence=len(self._findings),
            )
            self._findings.append(finding)

            if scored:
                self.risk_engine.record(severity, finding.category)
            else:
                self.risk_engine.observe(severity)

        for callback in self._observers:
            try:
                callback(finding)
            except Exception as e:
                logger.error(f"Finding observer failed: {e}")

        return finding

    def all(self) -> Tuple[Finding, ...]:
        """Point-in-time immutable snapshot."""
        with self._lock:
            return tuple(self._findings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._findings)

    def filter_by_min_severity(self, threshold, findings: Optional[Iterable[Finding]] = None) -> List[Finding]:
        source = self.all() if findings is None else findings
        threshold = Severity.parse(threshold)
        return [f for f in source if meets_min_severity(f, threshold)]

    def sort_for_report(self, findings: Optional[Sequence[Finding]] = None) -> List[Finding]:
        source = self.all() if findings is None else findings
        return sorted(source, key=report_sort_key)

    def by_probe(self, probe_id: str) -> List[Finding]:
        return [f for f in self.all() if f.probe_id == probe_id]
