"""
Configuration for hostaudit

JSON settings file plus CLI overrides. Malformed or unknown values fall back
to their documented defaults instead of aborting the run.
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .model import ConfigError, Severity
from .risk import RiskThresholds, RiskWeights

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("txt", "json", "html")


@dataclass(frozen=True)
class AuditConfig:
    """Everything the core consumes from its callers."""

    weights: RiskWeights = field(default_factory=RiskWeights)
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    # Ordered (category, multiplier) pairs; normalization happens in the risk engine
    category_multipliers: Tuple[Tuple[str, str], ...] = ()
    min_severity: Severity = Severity.INFO
    workers: int = 4
    probe_timeout: Optional[float] = None
    grace_period: float = 5.0
    formats: Tuple[str, ...] = REPORT_FORMATS
    output_dir: str = "output"
    stealth: bool = False
    autoload_plugins: bool = True
    plugins_dir: str = "plugins"
    knowledge_base_dir: Optional[str] = None
    modules: Tuple[str, ...] = ()

    @classmethod
    def from_file(cls, path) -> "AuditConfig":
        """Load settings from a JSON file; missing or broken files give defaults."""
        config_path = Path(path)
        if not config_path.exists():
            logger.info(f"Config file {config_path} not found, using defaults")
            return cls()
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cannot parse config file {config_path}: {e}; using defaults")
            return cls()
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditConfig":
        if not isinstance(data, dict):
            logger.warning("Config root must be an object; using defaults")
            return cls()

        defaults = cls()
        report = _section(data, "report")
        execution = _section(data, "execution")

        return cls(
            weights=_load_int_fields(RiskWeights, _section(data, "weights"), "weights"),
            thresholds=_load_int_fields(RiskThresholds, _section(data, "thresholds"), "thresholds"),
            category_multipliers=_load_multipliers(_section(data, "category_multipliers")),
            min_severity=_fallback(parse_severity, report.get("min_severity"), defaults.min_severity, "report.min_severity"),
            formats=_fallback(parse_formats, report.get("formats"), defaults.formats, "report.formats"),
            output_dir=str(report.get("output_dir", defaults.output_dir)),
            stealth=bool(report.get("stealth", defaults.stealth)),
            workers=_fallback(parse_workers, execution.get("workers"), defaults.workers, "execution.workers"),
            probe_timeout=_fallback(parse_timeout, execution.get("probe_timeout"), defaults.probe_timeout, "execution.probe_timeout"),
            grace_period=_fallback(parse_grace_period, execution.get("grace_period"), defaults.grace_period, "execution.grace_period"),
            autoload_plugins=bool(execution.get("autoload_plugins", defaults.autoload_plugins)),
            plugins_dir=str(execution.get("plugins_dir", defaults.plugins_dir)),
            knowledge_base_dir=execution.get("knowledge_base_dir", defaults.knowledge_base_dir),
            modules=_fallback(parse_modules, execution.get("modules"), defaults.modules, "execution.modules"),
        )

    def with_overrides(self, **overrides) -> "AuditConfig":
        """Apply CLI overrides; `None` means "not given"."""
        changes = {}
        for key, value in overrides.items():
            if value is None:
                continue
            parser = _OVERRIDE_PARSERS.get(key)
            if parser is not None:
                value = _fallback(parser, value, getattr(self, key), key)
            changes[key] = value
        return replace(self, **changes)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        logger.warning(f"Config section '{name}' must be an object; ignoring it")
        return {}
    return section


def _fallback(parser, value, default, label: str):
    if value is None:
        return default
    try:
        return parser(value)
    except ConfigError as e:
        logger.warning(f"Invalid {label}: {e}; using default {default!r}")
        return default


def _load_int_fields(dataclass_type, section: Dict[str, Any], label: str):
    defaults = dataclass_type()
    values = {}
    for f in fields(dataclass_type):
        raw = _lookup_case_insensitive(section, f.name)
        if raw is None:
            continue
        try:
            values[f.name] = parse_non_negative_int(raw)
        except ConfigError as e:
            logger.warning(f"Invalid {label}.{f.name}: {e}; using default {getattr(defaults, f.name)}")
    return replace(defaults, **values)


def _lookup_case_insensitive(section: Dict[str, Any], name: str):
    for key, value in section.items():
        if str(key).lower() == name:
            return value
    return None


def _load_multipliers(section: Dict[str, Any]) -> Tuple[Tuple[str, str], ...]:
    # Validation and collision handling live in risk.build_multipliers
    return tuple((str(category), str(value)) for category, value in section.items())


def parse_non_negative_int(value) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"expected an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"expected an integer, got {value!r}") from None
    if number < 0:
        raise ConfigError(f"must not be negative: {number}")
    return number


def parse_severity(value) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError as e:
        raise ConfigError(str(e)) from None


def parse_workers(value) -> int:
    return parse_non_negative_int(value)


def parse_timeout(value) -> Optional[float]:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"expected seconds, got {value!r}") from None
    if seconds < 0:
        raise ConfigError(f"must not be negative: {seconds}")
    # 0 disables the per-probe timeout
    return seconds or None


def parse_grace_period(value) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"expected seconds, got {value!r}") from None
    if seconds < 0:
        raise ConfigError(f"must not be negative: {seconds}")
    return seconds


def _split_list(value) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ConfigError(f"expected a list or comma-separated string, got {value!r}")
    return tuple(str(item).strip().lower() for item in items if str(item).strip())


def parse_formats(value) -> Tuple[str, ...]:
    requested = _split_list(value)
    unknown = [fmt for fmt in requested if fmt not in REPORT_FORMATS]
    if unknown:
        logger.warning(f"Ignoring unknown report formats: {', '.join(unknown)}")
    return tuple(fmt for fmt in REPORT_FORMATS if fmt in requested)


def parse_modules(value) -> Tuple[str, ...]:
    modules = _split_list(value)
    # "all" selects every available probe
    return () if "all" in modules else modules


_OVERRIDE_PARSERS = {
    "min_severity": parse_severity,
    "workers": parse_workers,
    "probe_timeout": parse_timeout,
    "grace_period": parse_grace_period,
    "formats": parse_formats,
    "modules": parse_modules,
}
