"""
hostaudit Core Components
Orchestration, findings storage, risk scoring and knowledge base
"""

from .config import AuditConfig
from .engine import AuditEngine, AuditOutcome, ProbeContext, ProbeResult, ProbeStatus
from .findings import FindingSink
from .knowledge_base import KnowledgeBase
from .model import Finding, Probe, Severity
from .plugin_loader import ProbeLoader
from .result_manager import ResultManager
from .risk import RiskEngine, RiskSummary, RiskThresholds, RiskWeights

__all__ = [
    "AuditConfig",
    "AuditEngine",
    "AuditOutcome",
    "Finding",
    "FindingSink",
    "KnowledgeBase",
    "Probe",
    "ProbeContext",
    "ProbeLoader",
    "ProbeResult",
    "ProbeStatus",
    "ResultManager",
    "RiskEngine",
    "RiskSummary",
    "RiskThresholds",
    "RiskWeights",
    "Severity",
]
