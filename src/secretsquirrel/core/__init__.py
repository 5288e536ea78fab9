"""Core scanning engine."""

from .rules import Rule, RuleSet, Severity
from .ignore import IgnoreConfig, IgnoreResolver
from .classifier import FileClassification, FileTask, classify
from .models import Match, ScanResult
from .progress import ProgressSink, NullProgressSink, LoggingProgressSink
from .scanner import ScanExecutor, scan, scan_path, default_concurrency

__all__ = [
    "Rule",
    "RuleSet",
    "Severity",
    "IgnoreConfig",
    "IgnoreResolver",
    "FileClassification",
    "FileTask",
    "classify",
    "Match",
    "ScanResult",
    "ProgressSink",
    "NullProgressSink",
    "LoggingProgressSink",
    "ScanExecutor",
    "scan",
    "scan_path",
    "default_concurrency",
]
