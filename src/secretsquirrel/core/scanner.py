"""Batch scan executor: discovery, classification and parallel rule evaluation."""

import shutil
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence

from .aggregator import ResultAggregator
from .classifier import FileTask, classify, open_line_source
from .ignore import IgnoreConfig, IgnoreResolver
from .models import Match, ScanResult
from .progress import NullProgressSink, ProgressSink
from .rules import RuleSet
from ..utils.exceptions import InvalidConfigError, InvalidTargetError
from ..utils.logger import PerformanceLogger, get_logger

if TYPE_CHECKING:
    from ..utils.config import Config

logger = get_logger(__name__)

MAX_CONCURRENT_SCANS = 6  # Upper bound on files scanned in parallel
MIN_HEADER_LINES = 6  # Terminal rows reserved for the progress header


def default_concurrency(terminal_rows: Optional[int] = None) -> int:
    """Files per batch: what fits under the progress header, capped and at least 1."""
    if terminal_rows is None:
        terminal_rows = shutil.get_terminal_size().lines
    return max(1, min(terminal_rows - MIN_HEADER_LINES, MAX_CONCURRENT_SCANS))


def batches(items: Sequence[Path], size: int) -> Iterator[Sequence[Path]]:
    """Split items into consecutive chunks of at most `size`."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ScanExecutor:
    """
    Scans the files under one root with a fixed rule set.

    Files are processed in sequential batches of at most
    `concurrency_limit`; the files of a batch run in parallel and the
    next batch only starts once the previous one has fully drained.
    The rule set and ignore resolver are shared read-only between
    workers; the aggregator is the only shared mutable state.
    """

    def __init__(
        self,
        rule_set: RuleSet,
        ignore_resolver: IgnoreResolver,
        concurrency_limit: int = MAX_CONCURRENT_SCANS,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize executor.

        Args:
            rule_set: Compiled rules, already filtered by severity
            ignore_resolver: Path and content ignore predicates for the root
            concurrency_limit: Maximum files scanned at once (>= 1)
            progress: Progress sink (defaults to a no-op sink)
            cancel_event: Event that stops the scan at file granularity
        """
        if concurrency_limit < 1:
            raise InvalidConfigError(
                f"Invalid concurrency limit: {concurrency_limit}",
                suggestion="Use a concurrency of at least 1",
            )

        self.rule_set = rule_set
        self.ignore = ignore_resolver
        self.concurrency_limit = concurrency_limit
        self.progress = progress or NullProgressSink()
        self._cancel_event = cancel_event or threading.Event()

    @property
    def root(self) -> Path:
        return self.ignore.root

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop picking up new files; in-flight files still finish."""
        self._cancel_event.set()

    def scan(self) -> ScanResult:
        """
        Run the scan to completion or cancellation.

        Returns:
            ScanResult with every match and scanned file recorded so far
        """
        scan_id = uuid.uuid4().hex[:8]
        started_at = datetime.now()
        aggregator = ResultAggregator()

        logger.info(f"Starting scan {scan_id} on {self.root} with {len(self.rule_set)} rules")

        with PerformanceLogger(logger, f"scan {scan_id}"):
            files = list(self.ignore.walk())
            self.progress.scan_started(len(files))
            logger.info(
                f"Discovered {len(files)} files, "
                f"scanning in batches of {self.concurrency_limit}"
            )

            with ThreadPoolExecutor(
                max_workers=self.concurrency_limit,
                thread_name_prefix="ssq-scan",
            ) as pool:
                for batch in batches(files, self.concurrency_limit):
                    if self.cancelled:
                        break
                    futures = [pool.submit(self._scan_file, path, aggregator) for path in batch]
                    try:
                        wait(futures)
                    except KeyboardInterrupt:
                        logger.warning("Scan interrupted, finishing in-flight files")
                        self.cancel()
                        wait(futures)
                    for future in futures:
                        future.result()

        result = aggregator.build_result(
            scan_id=scan_id,
            target=str(self.root),
            started_at=started_at,
            cancelled=self.cancelled,
        )
        self.progress.scan_finished(result.files_scanned, len(result.files_with_matches))

        logger.info(
            f"Scan {scan_id} {'cancelled' if result.cancelled else 'complete'}: "
            f"{result.total_matches} matches in {result.files_scanned} files"
        )
        return result

    def _scan_file(self, path: Path, aggregator: ResultAggregator) -> None:
        """Classify one file, run every rule over it and commit the outcome."""
        if self.cancelled:
            return

        task = classify(path)
        if not task.classification.scannable:
            logger.debug(f"Skipping {task.classification.value} file: {path}")
            return

        file_path = str(path)
        rules_total = len(self.rule_set)
        self.progress.file_started(file_path, rules_total)

        try:
            found = self._evaluate_rules(task, file_path)
        except (OSError, ValueError) as e:
            # Vanished or unreadable mid-scan: no partial matches survive
            logger.debug(f"Dropping unreadable file {file_path}: {e}")
            self.progress.file_failed(file_path)
            return

        aggregator.record_file(file_path, found)
        self.progress.file_completed(file_path, bool(found))

    def _evaluate_rules(self, task: FileTask, file_path: str) -> List[Match]:
        found: List[Match] = []
        rules_total = len(self.rule_set)

        with open_line_source(task) as lines:
            for rules_done, rule in enumerate(self.rule_set.values(), 1):
                for line_number, text in lines:
                    if not rule.search(text) or self.ignore.is_line_ignored(text):
                        continue
                    if not found:
                        self.progress.match_found(file_path)
                    found.append(Match.from_rule(rule, file_path, line_number, text))
                self.progress.rule_checked(file_path, rule.name, rules_done, rules_total)

        return found


def scan_path(
    root: Path,
    rule_set: RuleSet,
    ignore_config: Optional[IgnoreConfig] = None,
    concurrency_limit: int = MAX_CONCURRENT_SCANS,
    progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ScanResult:
    """
    Scan a directory tree (or a single file) with a compiled rule set.

    Raises:
        InvalidTargetError: If root does not exist
        IgnoreConfigError: If an ignore glob or regex is malformed
        InvalidConfigError: If concurrency_limit is below 1
    """
    root = Path(root)
    if not root.exists():
        raise InvalidTargetError(
            f"Target does not exist: {root}",
            suggestion="Pass an existing directory or file",
        )

    resolver = IgnoreResolver(root, ignore_config)
    executor = ScanExecutor(
        rule_set,
        resolver,
        concurrency_limit=concurrency_limit,
        progress=progress,
        cancel_event=cancel_event,
    )
    return executor.scan()


def scan(
    root: Path,
    config: "Config",
    concurrency_limit: int = MAX_CONCURRENT_SCANS,
    progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ScanResult:
    """
    Scan using the rules and ignore lists of a loaded configuration.

    Rules and ignores are compiled before any file is touched, so a bad
    regex or glob fails the call without partial work.

    Raises:
        RuleCompilationError: If a rule regex is invalid
        IgnoreConfigError: If an ignore glob or regex is malformed
    """
    return scan_path(
        root,
        config.rule_set(),
        config.ignore_config(),
        concurrency_limit=concurrency_limit,
        progress=progress,
        cancel_event=cancel_event,
    )
