"""
Core models for hostaudit

Defines central dataclasses, enums and errors shared across the engine,
the knowledge base and probes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Tuple

RECORD_MARKER = "FINDING"
NO_HINT = "none"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


class AuditError(Exception):
    """Base class for hostaudit errors."""


class InvalidSeverityError(AuditError, ValueError):
    """Raised when a severity string is not one of the five canonical values."""


class ProbeTimeoutError(AuditError):
    """Raised when a probe exceeds its time limit."""


class ConfigError(AuditError):
    """Raised by strict config parsers; the loader falls back to defaults."""


class Severity(str, Enum):
    """Finding severity, totally ordered CRITICAL > HIGH > MEDIUM > LOW > INFO."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Normalize a severity string; unknown values are rejected, not coerced."""
        if isinstance(value, Severity):
            return value
        if not isinstance(value, str):
            raise InvalidSeverityError(f"Severity must be a string, got {type(value).__name__}")
        normalized = value.strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidSeverityError(f"Unknown severity: {value!r}") from None

    @classmethod
    def ordered(cls) -> Tuple["Severity", ...]:
        """All severities, highest first."""
        return (cls.CRITICAL, cls.HIGH, cls.MEDIUM, cls.LOW, cls.INFO)

    def __str__(self) -> str:
        return self.value


_RANKS = {
    Severity.CRITICAL: 5,
    Severity.HIGH: 4,
    Severity.MEDIUM: 3,
    Severity.LOW: 2,
    Severity.INFO: 1,
}


@dataclass(frozen=True)
class Finding:
    """A single immutable observation produced by a probe.

    Only the finding sink creates these; `timestamp` and `sequence` are
    assigned at registration.
    """

    timestamp: datetime
    severity: Severity
    probe_id: str
    category: str
    detail: str
    hint: Optional[str] = None
    scored: bool = True
    sequence: int = 0

    @property
    def timestamp_text(self) -> str:
        return self.timestamp.strftime(TIMESTAMP_FORMAT)

    def to_record(self) -> Tuple[str, str, str, str, str, str, str]:
        """Flat wire record: (marker, timestamp, severity, probe, category, detail, hint)."""
        return (
            RECORD_MARKER,
            self.timestamp_text,
            self.severity.value,
            self.probe_id,
            self.category,
            self.detail,
            self.hint if self.hint else NO_HINT,
        )

    @classmethod
    def from_record(cls, record, sequence: int = 0, scored: bool = True) -> "Finding":
        """Rebuild a finding from a wire record."""
        if len(record) != 7 or record[0] != RECORD_MARKER:
            raise ValueError(f"Not a finding record: {record!r}")
        _, timestamp, severity, probe_id, category, detail, hint = record
        return cls(
            timestamp=datetime.strptime(timestamp, TIMESTAMP_FORMAT),
            severity=Severity.parse(severity),
            probe_id=probe_id,
            category=category,
            detail=detail,
            hint=None if hint == NO_HINT else hint,
            scored=scored,
            sequence=sequence,
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp_text,
            "severity": self.severity.value,
            "probe": self.probe_id,
            "category": self.category,
            "detail": self.detail,
            "hint": self.hint,
            "scored": self.scored,
        }


@dataclass(frozen=True)
class Probe:
    """A named unit of work: `run(context)` registers zero or more findings."""

    name: str
    description: str
    run: Callable[[Any], None] = field(compare=False)
    source: str = "builtin"


def _escape_field(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace("|", "\\|")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def _split_escaped(line: str):
    fields = []
    current = []
    chars = iter(line)
    for char in chars:
        if char == "\\":
            nxt = next(chars, "")
            current.append({"n": "\n", "r": "\r"}.get(nxt, nxt))
        elif char == "|":
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def format_record(finding: Finding) -> str:
    """Render a finding as one pipe-delimited snapshot line."""
    return "|".join(_escape_field(part) for part in finding.to_record())


def parse_record(line: str):
    """Split a snapshot line back into its seven wire fields."""
    return tuple(_split_escaped(line.rstrip("\n")))
