"""Live terminal progress for scans."""

import threading
from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from ..core.progress import ProgressSink


class RichProgressSink(ProgressSink):
    """
    Overall file bar plus one transient bar per in-flight file.

    Files with matches are printed above the bars once they complete,
    under a "Problematic files" header. A file that fails after matching
    is never listed.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        )
        self.problem_files: List[str] = []
        self._lock = threading.Lock()
        self._overall: Optional[TaskID] = None
        self._total = 0
        self._file_tasks: Dict[str, TaskID] = {}

    def __enter__(self) -> "RichProgressSink":
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.progress.stop()

    def scan_started(self, total_files: int) -> None:
        self._total = total_files
        self._overall = self.progress.add_task("Progress", total=total_files)

    def file_started(self, path: str, total_rules: int) -> None:
        task = self.progress.add_task(f"[dim]{escape(path)}[/dim]", total=total_rules or 1)
        with self._lock:
            self._file_tasks[path] = task

    def rule_checked(self, path: str, rule_name: str, rules_done: int, rules_total: int) -> None:
        with self._lock:
            task = self._file_tasks.get(path)
        if task is not None:
            self.progress.update(task, completed=rules_done)

    def file_completed(self, path: str, had_match: bool) -> None:
        self._finish(path)
        if had_match:
            self._report_problem_file(path)

    def _report_problem_file(self, path: str) -> None:
        with self._lock:
            if not self.problem_files:
                self.progress.console.print("\nProblematic files:")
                self.progress.console.print("──────────────────")
            self.problem_files.append(path)
            self.progress.console.print(f" [red]●[/red] {escape(path)}", highlight=False)

    def file_failed(self, path: str) -> None:
        self._finish(path)
        self.progress.console.print(f" [yellow]![/yellow] {escape(path)} [dim](unreadable, skipped)[/dim]", highlight=False)

    def scan_finished(self, files_scanned: int, files_with_matches: int) -> None:
        if self._overall is not None:
            self.progress.update(self._overall, completed=self._total, description="Scan complete")

    def _finish(self, path: str) -> None:
        with self._lock:
            task = self._file_tasks.pop(path, None)
        if task is not None:
            self.progress.remove_task(task)
        if self._overall is not None:
            self.progress.advance(self._overall)
