"""Match records and the terminal scan result."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .rules import Rule, Severity


@dataclass(frozen=True)
class Match:
    """A single line flagged by a single rule."""

    rule_name: str
    file_path: str
    line_number: int
    line_text: str
    severity: Severity
    description: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: Rule, file_path: str, line_number: int, line_text: str) -> "Match":
        return cls(
            rule_name=rule.name,
            file_path=file_path,
            line_number=line_number,
            line_text=line_text,
            severity=rule.severity,
            description=rule.description,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule_name,
            "file": self.file_path,
            "line": self.line_number,
            "text": self.line_text,
            "severity": self.severity.name,
            "description": self.description,
        }


@dataclass
class ScanResult:
    """
    Outcome of one scan.

    `matches` has no meaningful order; treat it as a multiset. A result
    with `cancelled` set is still consistent, it just covers fewer files.
    """

    scan_id: str
    target: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    matches: Tuple[Match, ...] = ()
    scanned_files: FrozenSet[str] = field(default_factory=frozenset)
    cancelled: bool = False

    @property
    def files_scanned(self) -> int:
        return len(self.scanned_files)

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    @property
    def files_with_matches(self) -> List[str]:
        """Distinct files with at least one match, sorted for display."""
        return sorted({m.file_path for m in self.matches})

    @property
    def matches_by_severity(self) -> Dict[str, int]:
        """Count matches by severity, most severe first."""
        counts = {s.name: 0 for s in sorted(Severity, reverse=True)}
        for match in self.matches:
            counts[match.severity.name] += 1
        return counts

    def sorted_matches(self) -> List[Match]:
        """Matches ordered by file, line and rule for stable reporting."""
        return sorted(self.matches, key=lambda m: (m.file_path, m.line_number, m.rule_name))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "target": self.target,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "cancelled": self.cancelled,
            "files_scanned": self.files_scanned,
            "total_matches": self.total_matches,
            "matches_by_severity": self.matches_by_severity,
            "files_with_matches": self.files_with_matches,
            "matches": [m.to_dict() for m in self.sorted_matches()],
        }
