"""
Knowledge Base for hostaudit

Loads static pipe-delimited correlation tables (kernel exploits, GTFOBins
techniques, capability abuses, SUID whitelist) and answers lookups against
them. Tables are immutable after load; every lookup is a pure function of
its input and the table.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Tuple

from .model import Severity

logger = logging.getLogger(__name__)

DEFAULT_KB_DIR = Path(__file__).resolve().parent.parent / "data"

KERNEL_EXPLOITS_FILE = "kernel_exploits.db"
GTFOBINS_FILE = "gtfobins.db"
CAPABILITIES_FILE = "capabilities.db"
SUID_WHITELIST_FILE = "suid_whitelist.txt"

UNRESTRICTED_CONTEXTS = {"", "*", "all"}

_VERSION_PREFIX = re.compile(r"^\s*v?(\d+(?:\.\d+)*)")
_RANGE_PATTERN = re.compile(r"^\s*([\[(])\s*([^,\s]+)\s*,\s*([^\])\s]+)\s*([\])])\s*$")


def parse_version(version: str) -> Tuple[int, ...]:
    """Numeric components of the leading dotted prefix.

    "5.10.0-21-amd64" -> (5, 10, 0); raises ValueError when there is none.
    """
    match = _VERSION_PREFIX.match(version or "")
    if not match:
        raise ValueError(f"Unparseable version: {version!r}")
    return tuple(int(part) for part in match.group(1).split("."))


def compare_versions(left, right) -> int:
    """Component-wise numeric comparison; missing components count as 0."""
    a = parse_version(left) if isinstance(left, str) else tuple(left)
    b = parse_version(right) if isinstance(right, str) else tuple(right)
    width = max(len(a), len(b))
    a = a + (0,) * (width - len(a))
    b = b + (0,) * (width - len(b))
    return (a > b) - (a < b)


@dataclass(frozen=True)
class VersionRange:
    """Version interval such as "[5.8.0,5.10.1)" or "[2.6.22,3.9]"."""

    low: Tuple[int, ...]
    high: Tuple[int, ...]
    low_inclusive: bool = True
    high_inclusive: bool = False
    text: str = ""

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        match = _RANGE_PATTERN.match(text or "")
        if not match:
            raise ValueError(f"Unparseable version range: {text!r}")
        opening, low, high, closing = match.groups()
        return cls(
            low=parse_version(low),
            high=parse_version(high),
            low_inclusive=opening == "[",
            high_inclusive=closing == "]",
            text=text.strip(),
        )

    def contains(self, version) -> bool:
        try:
            lower = compare_versions(version, self.low)
            upper = compare_versions(version, self.high)
        except ValueError:
            return False
        above_low = lower >= 0 if self.low_inclusive else lower > 0
        below_high = upper <= 0 if self.high_inclusive else upper < 0
        return above_low and below_high

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class KernelExploit:
    identifier: str
    name: str
    description: str
    severity: Severity
    affected_range: VersionRange


@dataclass(frozen=True)
class BinaryTechnique:
    context: str
    binary: str
    technique: str
    command_hint: str
    severity: Severity


@dataclass(frozen=True)
class CapabilityTechnique:
    capability: str
    technique: str
    hint: str
    severity: Severity


def _read_rows(path: Path, min_fields: int) -> List[List[str]]:
    """Pipe-delimited rows of a table file; a missing file yields no rows."""
    if not path.exists():
        logger.warning(f"Knowledge base table not found: {path}")
        return []
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Cannot read knowledge base table {path}: {e}")
        return []

    rows = []
    for lineno, line in enumerate(text.splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        fields = [part.strip() for part in stripped.split("|")]
        if len(fields) < min_fields:
            logger.debug(f"{path.name}:{lineno}: expected {min_fields} fields, got {len(fields)}")
            continue
        rows.append(fields)
    return rows


def load_kernel_exploits(path: Path) -> Tuple[KernelExploit, ...]:
    table = []
    for fields in _read_rows(path, 6):
        _, cve_id, name, description, severity, version_range = fields[:6]
        try:
            table.append(KernelExploit(
                identifier=cve_id,
                name=name,
                description=description,
                severity=Severity.parse(severity),
                affected_range=VersionRange.parse(version_range),
            ))
        except ValueError as e:
            logger.debug(f"Skipping kernel exploit row {cve_id}: {e}")
    return tuple(table)


def load_binary_techniques(path: Path) -> Tuple[BinaryTechnique, ...]:
    table = []
    for fields in _read_rows(path, 5):
        context, binary, technique, command_hint, severity = fields[:5]
        try:
            table.append(BinaryTechnique(
                context=context.lower(),
                binary=binary,
                technique=technique,
                command_hint=command_hint,
                severity=Severity.parse(severity),
            ))
        except ValueError as e:
            logger.debug(f"Skipping binary technique row {binary}: {e}")
    return tuple(table)


def load_capability_techniques(path: Path) -> Tuple[CapabilityTechnique, ...]:
    table = []
    for fields in _read_rows(path, 4):
        capability, technique, hint, severity = fields[:4]
        try:
            table.append(CapabilityTechnique(
                capability=capability.lower(),
                technique=technique,
                hint=hint,
                severity=Severity.parse(severity),
            ))
        except ValueError as e:
            logger.debug(f"Skipping capability row {capability}: {e}")
    return tuple(table)


def load_whitelist(path: Path) -> FrozenSet[str]:
    return frozenset(fields[0] for fields in _read_rows(path, 1) if fields[0])


def match_kernel_version(version: str, table: Iterable[KernelExploit]) -> List[KernelExploit]:
    """Every row whose affected range contains `version`."""
    try:
        parsed = parse_version(version)
    except ValueError:
        logger.debug(f"Kernel version {version!r} is not comparable")
        return []
    return [row for row in table if row.affected_range.contains(parsed)]


def _basename(path_or_name: str) -> str:
    return (path_or_name or "").rstrip("/").rsplit("/", 1)[-1]


def match_binary(path_or_name: str,
                 table: Iterable[BinaryTechnique],
                 context: Optional[str] = None) -> List[BinaryTechnique]:
    """Techniques for a binary basename, optionally limited to one context.

    Rows declaring no context restriction match every query context.
    """
    name = _basename(path_or_name)
    query = (context or "").strip().lower()
    matches = []
    for row in table:
        if row.binary != name:
            continue
        if query in UNRESTRICTED_CONTEXTS or row.context in UNRESTRICTED_CONTEXTS or row.context == query:
            matches.append(row)
    return matches


def match_capability(capability: str, table: Iterable[CapabilityTechnique]) -> List[CapabilityTechnique]:
    name = (capability or "").strip().lower()
    return [row for row in table if row.capability == name]


def is_whitelisted(path: str, whitelist: Iterable[str]) -> bool:
    """Exact basename match against the allow-list."""
    name = _basename(path)
    return bool(name) and name in whitelist


class KnowledgeBase:
    """Read-only bundle of the loaded tables."""

    def __init__(self,
                 kernel_exploits: Iterable[KernelExploit] = (),
                 binary_techniques: Iterable[BinaryTechnique] = (),
                 capability_techniques: Iterable[CapabilityTechnique] = (),
                 suid_whitelist: Iterable[str] = ()):
        self.kernel_exploits = tuple(kernel_exploits)
        self.binary_techniques = tuple(binary_techniques)
        self.capability_techniques = tuple(capability_techniques)
        self.suid_whitelist = frozenset(suid_whitelist)

    @classmethod
    def load(cls, kb_dir=None) -> "KnowledgeBase":
        """Load every table from `kb_dir`; missing files give empty tables."""
        directory = Path(kb_dir) if kb_dir else DEFAULT_KB_DIR
        kb = cls(
            kernel_exploits=load_kernel_exploits(directory / KERNEL_EXPLOITS_FILE),
            binary_techniques=load_binary_techniques(directory / GTFOBINS_FILE),
            capability_techniques=load_capability_techniques(directory / CAPABILITIES_FILE),
            suid_whitelist=load_whitelist(directory / SUID_WHITELIST_FILE),
        )
        logger.info(
            f"Knowledge base loaded from {directory}: "
            f"{len(kb.kernel_exploits)} kernel exploits, "
            f"{len(kb.binary_techniques)} binary techniques, "
            f"{len(kb.capability_techniques)} capability techniques, "
            f"{len(kb.suid_whitelist)} whitelisted binaries"
        )
        return kb

    def match_kernel_version(self, version: str) -> List[KernelExploit]:
        return match_kernel_version(version, self.kernel_exploits)

    def match_binary(self, path_or_name: str, context: Optional[str] = None) -> List[BinaryTechnique]:
        return match_binary(path_or_name, self.binary_techniques, context)

    def match_capability(self, capability: str) -> List[CapabilityTechnique]:
        return match_capability(capability, self.capability_techniques)

    def is_whitelisted(self, path: str) -> bool:
        return is_whitelisted(path, self.suid_whitelist)

    def stats(self) -> dict:
        return {
            "kernel_exploits": len(self.kernel_exploits),
            "binary_techniques": len(self.binary_techniques),
            "capability_techniques": len(self.capability_techniques),
            "suid_whitelist": len(self.suid_whitelist),
        }
