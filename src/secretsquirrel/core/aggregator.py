"""Thread-safe accumulation of matches and scanned files."""

import threading
from datetime import datetime
from typing import FrozenSet, Iterable, List, Set, Tuple

from .models import Match, ScanResult


class ResultAggregator:
    """
    Append-only store shared by scan workers.

    A file's matches and its scanned-file record are committed together
    under one lock, so a reader never sees one without the other.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._matches: List[Match] = []
        self._scanned: Set[str] = set()

    def record_file(self, file_path: str, matches: Iterable[Match] = ()) -> None:
        """Commit a fully scanned file and its matches."""
        matches = list(matches)
        with self._lock:
            self._matches.extend(matches)
            self._scanned.add(file_path)

    def snapshot(self) -> Tuple[Tuple[Match, ...], FrozenSet[str]]:
        """Immutable copy of everything recorded so far."""
        with self._lock:
            return tuple(self._matches), frozenset(self._scanned)

    def build_result(
        self,
        scan_id: str,
        target: str,
        started_at: datetime,
        cancelled: bool = False,
    ) -> ScanResult:
        matches, scanned = self.snapshot()
        completed_at = datetime.now()
        return ScanResult(
            scan_id=scan_id,
            target=target,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            matches=matches,
            scanned_files=scanned,
            cancelled=cancelled,
        )
