"""
Risk Engine for hostaudit

Weighted per-finding scoring and aggregate risk classification.
Scores use fixed-point decimal arithmetic, truncated toward zero.
"""

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .model import Finding, Severity

logger = logging.getLogger(__name__)

DEFAULT_MULTIPLIER = Decimal("1.0")


@dataclass(frozen=True)
class RiskWeights:
    """Base weight per severity."""

    critical: int = 100
    high: int = 75
    medium: int = 40
    low: int = 15
    info: int = 5

    def for_severity(self, severity: Severity) -> int:
        return getattr(self, severity.value.lower())


@dataclass(frozen=True)
class RiskThresholds:
    """Lower bounds of each overall rating, evaluated highest first."""

    critical: int = 500
    high: int = 300
    medium: int = 150
    low: int = 50

    def ordered(self) -> Tuple[Tuple[Severity, int], ...]:
        return (
            (Severity.CRITICAL, self.critical),
            (Severity.HIGH, self.high),
            (Severity.MEDIUM, self.medium),
            (Severity.LOW, self.low),
        )


@dataclass(frozen=True)
class RiskSummary:
    """Aggregate risk derived from the findings of one run."""

    total_score: int
    counts: Dict[Severity, int]
    overall_rating: Severity

    @property
    def total_findings(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> dict:
        data = {
            "overall_rating": self.overall_rating.value,
            "total_score": self.total_score,
        }
        for severity in Severity.ordered():
            data[severity.value.lower()] = self.counts.get(severity, 0)
        data["total_findings"] = self.total_findings
        return data


def normalize_category(category: str) -> str:
    """Multiplier overrides are keyed by the uppercased category identifier."""
    return (category or "").strip().upper()


def parse_multiplier(value) -> Decimal:
    """Parse a multiplier into a non-negative Decimal from its string form."""
    try:
        multiplier = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid multiplier {value!r}") from e
    if not multiplier.is_finite() or multiplier < 0:
        raise ValueError(f"Invalid multiplier {value!r}")
    return multiplier


def build_multipliers(overrides: Optional[Iterable[Tuple[str, object]]]) -> Dict[str, Decimal]:
    """Build the normalized multiplier table from (category, value) pairs.

    When two categories normalize to the same key the first one declared
    wins; later ones are reported and ignored.
    """
    table: Dict[str, Decimal] = {}
    if not overrides:
        return table

    items = overrides.items() if isinstance(overrides, Mapping) else overrides
    for category, value in items:
        key = normalize_category(category)
        if not key:
            logger.warning(f"Ignoring multiplier with empty category: {value!r}")
            continue
        if key in table:
            logger.warning(
                f"Multiplier key collision for {category!r} (normalized {key}); "
                f"keeping first declared value {table[key]}"
            )
            continue
        try:
            table[key] = parse_multiplier(value)
        except ValueError as e:
            logger.warning(f"{e} for category {category!r}; using {DEFAULT_MULTIPLIER}")
            table[key] = DEFAULT_MULTIPLIER
    return table


class RiskEngine:
    """Maintains the running risk aggregate for a single run."""

    def __init__(self,
                 weights: Optional[RiskWeights] = None,
                 thresholds: Optional[RiskThresholds] = None,
                 category_multipliers=None):
        self.weights = weights or RiskWeights()
        self.thresholds = thresholds or RiskThresholds()
        self.multipliers = build_multipliers(category_multipliers)

        self._lock = threading.Lock()
        self._total_score = 0
        self._counts: Dict[Severity, int] = {}

    def multiplier(self, category: str) -> Decimal:
        return self.multipliers.get(normalize_category(category), DEFAULT_MULTIPLIER)

    def score(self, severity, category: str) -> int:
        """Score of one finding: base weight times category multiplier, truncated."""
        severity = Severity.parse(severity)
        product = Decimal(self.weights.for_severity(severity)) * self.multiplier(category)
        return int(product)

    def classify(self, total_score: int) -> Severity:
        for rating, lower_bound in self.thresholds.ordered():
            if total_score >= lower_bound:
                return rating
        return Severity.INFO

    def record(self, severity, category: str) -> int:
        """Account for a scored finding and return its score."""
        severity = Severity.parse(severity)
        finding_score = self.score(severity, category)
        with self._lock:
            self._total_score += finding_score
            self._counts[severity] = self._counts.get(severity, 0) + 1
        return finding_score

    def observe(self, severity) -> None:
        """Count an unscored finding; never touches the total score."""
        severity = Severity.parse(severity)
        with self._lock:
            self._counts[severity] = self._counts.get(severity, 0) + 1

    def recompute(self, findings: Iterable[Finding]) -> int:
        """Total score recomputed from scratch over a finding list."""
        return sum(self.score(f.severity, f.category) for f in findings if f.scored)

    @property
    def total_score(self) -> int:
        with self._lock:
            return self._total_score

    def summary(self) -> RiskSummary:
        with self._lock:
            total = self._total_score
            counts = {severity: self._counts.get(severity, 0) for severity in Severity.ordered()}
        return RiskSummary(
            total_score=total,
            counts=counts,
            overall_rating=self.classify(total),
        )

    def reset(self) -> None:
        """Zero the aggregate. Only called at the start of a run."""
        with self._lock:
            self._total_score = 0
            self._counts = {}
