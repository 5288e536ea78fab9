"""Shared fixtures for the test suite."""

import threading
from pathlib import Path
from typing import List, Tuple

import pytest

from secretsquirrel.core.progress import ProgressSink


class RecordingSink(ProgressSink):
    """Records every progress event as a tuple, in arrival order."""

    def __init__(self):
        self.events: List[Tuple] = []
        self._lock = threading.Lock()

    def _record(self, *event) -> None:
        with self._lock:
            self.events.append(event)

    def scan_started(self, total_files):
        self._record("scan_started", total_files)

    def file_started(self, path, total_rules):
        self._record("file_started", path, total_rules)

    def rule_checked(self, path, rule_name, rules_done, rules_total):
        self._record("rule_checked", path, rule_name, rules_done, rules_total)

    def match_found(self, path):
        self._record("match_found", path)

    def file_completed(self, path, had_match):
        self._record("file_completed", path, had_match)

    def file_failed(self, path):
        self._record("file_failed", path)

    def scan_finished(self, files_scanned, files_with_matches):
        self._record("scan_finished", files_scanned, files_with_matches)

    def named(self, name: str) -> List[Tuple]:
        return [e for e in self.events if e[0] == name]

    def for_file(self, path: str) -> List[Tuple]:
        return [e for e in self.events if len(e) > 1 and e[1] == path]


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scenario_patterns():
    """Two rules: one HIGH, one MEDIUM."""
    return {
        "test-key": {
            "description": "Test API Key",
            "regex": r"^API_KEY=([A-Za-z0-9]+)$",
            "severity": "high",
        },
        "password": {
            "description": "Password assignment",
            "regex": r"^password=([^\s]+)$",
            "severity": "medium",
        },
    }


@pytest.fixture
def scenario_root(tmp_path: Path) -> Path:
    """A tree with one config file holding a key and a password."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "config.txt").write_text("API_KEY=abc123\npassword=secret123\n")
    return root
