"""Progress events emitted by the scan executor."""

from ..utils.logger import get_logger

logger = get_logger(__name__)


class ProgressSink:
    """
    Receiver for scan progress.

    Methods are called from worker threads and must return quickly.
    Every method defaults to doing nothing.
    """

    def scan_started(self, total_files: int) -> None:
        """Discovery finished; `total_files` candidates will be considered."""

    def file_started(self, path: str, total_rules: int) -> None:
        """A file passed classification and rule evaluation is starting."""

    def rule_checked(self, path: str, rule_name: str, rules_done: int, rules_total: int) -> None:
        """One rule has been run over the whole file."""

    def match_found(self, path: str) -> None:
        """The file produced its first match."""

    def file_completed(self, path: str, had_match: bool) -> None:
        """The file is recorded as scanned."""

    def file_failed(self, path: str) -> None:
        """The file became unreadable after it started; nothing was recorded."""

    def scan_finished(self, files_scanned: int, files_with_matches: int) -> None:
        """All batches have drained (or the scan was cancelled)."""


class NullProgressSink(ProgressSink):
    """Discards every event."""


class LoggingProgressSink(ProgressSink):
    """Reports progress through the debug log for headless runs."""

    def scan_started(self, total_files: int) -> None:
        logger.debug(f"Discovered {total_files} files")

    def match_found(self, path: str) -> None:
        logger.debug(f"Potential secret in {path}")

    def file_completed(self, path: str, had_match: bool) -> None:
        logger.debug(f"Scanned {path} ({'matches' if had_match else 'clean'})")

    def scan_finished(self, files_scanned: int, files_with_matches: int) -> None:
        logger.debug(f"Scanned {files_scanned} files, {files_with_matches} with matches")
