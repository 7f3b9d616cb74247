"""
hostaudit Utility Modules
Logging, progress output, report rendering and host helpers
"""

from .logger import FindingLogger, setup_logger
from .progress_manager import ProgressManager
from .report import ReportRenderer, RunMetadata

__all__ = [
    "FindingLogger",
    "setup_logger",
    "ProgressManager",
    "ReportRenderer",
    "RunMetadata",
]
