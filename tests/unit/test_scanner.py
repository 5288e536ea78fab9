"""Unit tests for the scan executor."""

import threading
import time
from pathlib import Path

import pytest

import secretsquirrel.core.scanner as scanner_module
from secretsquirrel.core.classifier import (
    LARGE_FILE_THRESHOLD,
    FileClassification,
    LineSource,
    classify,
)
from secretsquirrel.core.ignore import IgnoreConfig, IgnoreResolver
from secretsquirrel.core.progress import ProgressSink
from secretsquirrel.core.rules import RuleSet, Severity
from secretsquirrel.core.scanner import (
    MAX_CONCURRENT_SCANS,
    ScanExecutor,
    batches,
    default_concurrency,
    scan,
    scan_path,
)
from secretsquirrel.utils.config import Config
from secretsquirrel.utils.exceptions import (
    IgnoreConfigError,
    InvalidConfigError,
    InvalidTargetError,
    RuleCompilationError,
)


def key(path: Path) -> str:
    return str(path.resolve())


def match_keys(result):
    return sorted((m.rule_name, Path(m.file_path).name, m.line_number) for m in result.matches)


class TestConcurrency:

    @pytest.mark.parametrize("rows,expected", [
        (40, MAX_CONCURRENT_SCANS),
        (12, 6),
        (8, 2),
        (6, 1),
        (0, 1),
    ])
    def test_default_concurrency(self, rows, expected):
        assert default_concurrency(rows) == expected

    def test_batches(self):
        assert list(batches([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(batches([], 3)) == []

    def test_batches_never_overlap(self, tmp_path, scenario_patterns):
        limit = 3
        for i in range(9):
            (tmp_path / f"f{i}.txt").write_text("API_KEY=abc123\n")

        class ActiveFileSink(ProgressSink):
            def __init__(self):
                self.lock = threading.Lock()
                self.active = 0
                self.peak = 0
                self.started = 0
                self.finished = 0
                self.violations = []

            def file_started(self, path, total_rules):
                with self.lock:
                    batch = self.started // limit
                    if self.finished < batch * limit:
                        self.violations.append(path)
                    self.started += 1
                    self.active += 1
                    self.peak = max(self.peak, self.active)
                time.sleep(0.01)

            def file_completed(self, path, had_match):
                with self.lock:
                    self.active -= 1
                    self.finished += 1

        sink = ActiveFileSink()
        result = scan_path(tmp_path, RuleSet.build(scenario_patterns), concurrency_limit=limit, progress=sink)

        assert result.files_scanned == 9
        assert 1 <= sink.peak <= limit
        assert sink.violations == []
        assert sink.active == 0

    def test_invalid_limit_rejected(self, scenario_root):
        with pytest.raises(InvalidConfigError):
            ScanExecutor(RuleSet(), IgnoreResolver(scenario_root), concurrency_limit=0)


class TestScenarios:

    def test_two_rules_two_matches(self, scenario_root, scenario_patterns):
        result = scan_path(scenario_root, RuleSet.build(scenario_patterns))

        assert result.total_matches == 2
        assert {m.rule_name for m in result.matches} == {"test-key", "password"}
        assert result.scanned_files == {key(scenario_root / "config.txt")}
        assert result.files_with_matches == [key(scenario_root / "config.txt")]

    def test_severity_floor_high(self, scenario_root, scenario_patterns):
        result = scan_path(scenario_root, RuleSet.build(scenario_patterns, Severity.HIGH))

        assert result.total_matches == 1
        match = result.matches[0]
        assert match.rule_name == "test-key"
        assert match.line_number == 1
        assert match.line_text == "API_KEY=abc123"
        assert match.severity is Severity.HIGH
        assert match.description == "Test API Key"

    def test_ignore_pattern_suppresses_line(self, scenario_root, scenario_patterns):
        (scenario_root / "test.txt").write_text("TEST_API_KEY=ignored123\n")
        scenario_patterns["any-key"] = {"regex": "API_KEY=", "severity": "low"}

        result = scan_path(
            scenario_root,
            RuleSet.build(scenario_patterns),
            IgnoreConfig(ignore_patterns=["TEST_API_KEY=.*"]),
        )

        assert all(m.line_text != "TEST_API_KEY=ignored123" for m in result.matches)
        # The file is still scanned, only the line is suppressed
        assert key(scenario_root / "test.txt") in result.scanned_files
        assert ("any-key", "config.txt", 1) in match_keys(result)
        assert ("test-key", "config.txt", 1) in match_keys(result)

    def test_two_rules_on_one_line_give_two_matches(self, tmp_path, scenario_patterns):
        (tmp_path / "config.txt").write_text("API_KEY=abc123\n")
        scenario_patterns["any-key"] = {"regex": "API_KEY=", "severity": "low"}

        result = scan_path(tmp_path, RuleSet.build(scenario_patterns))

        assert match_keys(result) == [("any-key", "config.txt", 1), ("test-key", "config.txt", 1)]
        assert result.files_with_matches == [key(tmp_path / "config.txt")]

    def test_ignore_path_excludes_file(self, scenario_root, scenario_patterns):
        tests_dir = scenario_root / "tests"
        tests_dir.mkdir()
        (tests_dir / "test.txt").write_text("API_KEY=should_not_find_this\n")

        result = scan_path(
            scenario_root,
            RuleSet.build(scenario_patterns),
            IgnoreConfig(ignore_paths=["tests/*"]),
        )

        assert key(tests_dir / "test.txt") not in result.scanned_files
        assert all("tests" not in Path(m.file_path).parts for m in result.matches)
        assert result.total_matches == 2


class TestProperties:

    def test_severity_monotonicity(self, scenario_root):
        patterns = {
            name: {"regex": r"=\S+", "severity": name}
            for name in ("low", "medium", "high", "critical")
        }
        results = {
            floor: set(match_keys(scan_path(scenario_root, RuleSet.build(patterns, floor))))
            for floor in Severity
        }
        for lower in Severity:
            for higher in Severity:
                if lower < higher:
                    assert results[higher] <= results[lower]

    def test_binary_exclusion(self, scenario_root, scenario_patterns):
        binary = scenario_root / "blob.bin"
        binary.write_bytes(b"\x00\x01API_KEY=abc123\n")

        result = scan_path(scenario_root, RuleSet.build(scenario_patterns))

        assert key(binary) not in result.scanned_files
        assert all(Path(m.file_path).name != "blob.bin" for m in result.matches)

    def test_classification_equivalence(self, tmp_path, scenario_patterns):
        head = b"API_KEY=abc123\npassword=secret123\n"
        below = tmp_path / "below"
        above = tmp_path / "above"
        below.mkdir()
        above.mkdir()
        (below / "data.txt").write_bytes(head + b"a" * (LARGE_FILE_THRESHOLD - len(head)))
        (above / "data.txt").write_bytes(head + b"a" * (LARGE_FILE_THRESHOLD + 1 - len(head)))

        assert classify(below / "data.txt").classification is FileClassification.NORMAL
        assert classify(above / "data.txt").classification is FileClassification.LARGE

        rules = RuleSet.build(scenario_patterns)
        assert match_keys(scan_path(below, rules)) == match_keys(scan_path(above, rules))
        assert len(match_keys(scan_path(above, rules))) == 2

    def test_ignore_pattern_applies_to_large_files(self, tmp_path):
        head = b"TEST_API_KEY=1\nAPI_KEY=2\n"
        data = tmp_path / "data.txt"
        data.write_bytes(head + b"a" * (LARGE_FILE_THRESHOLD + 1 - len(head)))
        assert classify(data).classification is FileClassification.LARGE

        result = scan_path(
            tmp_path,
            RuleSet.build({"any-key": {"regex": r"API_KEY=\d", "severity": "high"}}),
            IgnoreConfig(ignore_patterns=["TEST_API_KEY=.*"]),
        )

        assert match_keys(result) == [("any-key", "data.txt", 2)]
        assert result.matches[0].line_text == "API_KEY=2"

    def test_rule_order_is_deterministic(self, scenario_root, scenario_patterns, recording_sink):
        rules = RuleSet.build(scenario_patterns)
        orders = []
        for _ in range(3):
            sink = type(recording_sink)()
            scan_path(scenario_root, rules, progress=sink)
            orders.append([e[2] for e in sink.named("rule_checked")])

        assert orders[0] == ["test-key", "password"]
        assert orders[0] == orders[1] == orders[2]


class TestEvents:

    def test_event_sequence_for_one_file(self, scenario_root, scenario_patterns, recording_sink):
        scan_path(scenario_root, RuleSet.build(scenario_patterns), progress=recording_sink)
        path = key(scenario_root / "config.txt")

        assert recording_sink.events == [
            ("scan_started", 1),
            ("file_started", path, 2),
            ("match_found", path),
            ("rule_checked", path, "test-key", 1, 2),
            ("rule_checked", path, "password", 2, 2),
            ("file_completed", path, True),
            ("scan_finished", 1, 1),
        ]

    def test_clean_file_completes_without_match(self, tmp_path, scenario_patterns, recording_sink):
        (tmp_path / "clean.txt").write_text("nothing to see\n")
        scan_path(tmp_path, RuleSet.build(scenario_patterns), progress=recording_sink)

        assert recording_sink.named("match_found") == []
        assert recording_sink.named("file_completed") == [("file_completed", key(tmp_path / "clean.txt"), False)]

    def test_binary_file_emits_no_file_events(self, tmp_path, scenario_patterns, recording_sink):
        (tmp_path / "blob.bin").write_bytes(b"\x00" * 10)
        scan_path(tmp_path, RuleSet.build(scenario_patterns), progress=recording_sink)

        assert recording_sink.named("file_started") == []
        assert recording_sink.events[0] == ("scan_started", 1)
        assert recording_sink.events[-1] == ("scan_finished", 0, 0)


class TestFailuresAndCancellation:

    def test_missing_root(self, tmp_path):
        with pytest.raises(InvalidTargetError):
            scan_path(tmp_path / "nope", RuleSet())

    def test_bad_ignore_config_fails_before_scanning(self, scenario_root, recording_sink):
        with pytest.raises(IgnoreConfigError):
            scan_path(scenario_root, RuleSet(), IgnoreConfig(ignore_patterns=["("]), progress=recording_sink)
        assert recording_sink.events == []

    def test_file_vanishing_before_classification(self, scenario_root, scenario_patterns, monkeypatch):
        ghost = scenario_root / "ghost.txt"
        real = scenario_root / "config.txt"
        monkeypatch.setattr(IgnoreResolver, "walk", lambda self: iter([real, ghost]))

        result = scan_path(scenario_root, RuleSet.build(scenario_patterns))

        assert result.scanned_files == {str(real)}
        assert result.total_matches == 2

    def test_failure_mid_file_drops_partial_matches(self, scenario_root, scenario_patterns, monkeypatch, recording_sink):
        class VanishingSource(LineSource):
            def __iter__(self):
                yield 1, "API_KEY=abc123"
                raise OSError("file vanished")

        monkeypatch.setattr(scanner_module, "open_line_source", lambda task: VanishingSource(task.path))

        result = scan_path(scenario_root, RuleSet.build(scenario_patterns), progress=recording_sink)
        path = key(scenario_root / "config.txt")

        assert result.total_matches == 0
        assert result.files_scanned == 0
        assert ("file_failed", path) in recording_sink.events
        assert recording_sink.named("file_completed") == []

    def test_cancel_before_start(self, scenario_root, scenario_patterns, recording_sink):
        event = threading.Event()
        event.set()

        result = scan_path(scenario_root, RuleSet.build(scenario_patterns), progress=recording_sink, cancel_event=event)

        assert result.cancelled
        assert result.files_scanned == 0
        assert result.total_matches == 0
        assert recording_sink.events[-1] == ("scan_finished", 0, 0)

    def test_cancel_mid_scan_yields_partial_result(self, tmp_path, scenario_patterns):
        for name in ("a.txt", "b.txt", "c.txt"):
            (tmp_path / name).write_text("API_KEY=abc123\n")
        event = threading.Event()

        class CancelAfterFirst(ProgressSink):
            def file_completed(self, path, had_match):
                event.set()

        result = scan_path(
            tmp_path,
            RuleSet.build(scenario_patterns),
            concurrency_limit=1,
            progress=CancelAfterFirst(),
            cancel_event=event,
        )

        assert result.cancelled
        assert result.scanned_files == {key(tmp_path / "a.txt")}
        assert result.total_matches == 1

    def test_executor_cancel_method(self, scenario_root):
        executor = ScanExecutor(RuleSet(), IgnoreResolver(scenario_root))
        assert not executor.cancelled
        executor.cancel()
        assert executor.cancelled
        assert executor.scan().files_scanned == 0


class TestScanWithConfig:

    def test_scan_uses_config_rules_and_ignores(self, scenario_root, scenario_patterns):
        (scenario_root / "tests").mkdir()
        (scenario_root / "tests" / "test.txt").write_text("API_KEY=should_not_find_this\n")
        config = Config.from_dict({
            "patterns": scenario_patterns,
            "ignore_paths": ["tests/*"],
            "severity": "high",
        })

        result = scan(scenario_root, config, concurrency_limit=2)

        assert match_keys(result) == [("test-key", "config.txt", 1)]
        assert result.files_scanned == 1

    def test_scan_rejects_bad_rule_before_walking(self, scenario_root, recording_sink):
        config = Config.from_dict({"patterns": {"bad": {"regex": "(", "severity": "high"}}})
        with pytest.raises(RuleCompilationError):
            scan(scenario_root, config, progress=recording_sink)
        assert recording_sink.events == []

    def test_many_files_across_batches(self, tmp_path, scenario_patterns):
        for i in range(17):
            (tmp_path / f"f{i:02d}.txt").write_text("API_KEY=abc123\nclean\npassword=x\n")

        result = scan(tmp_path, Config.from_dict({"patterns": scenario_patterns}), concurrency_limit=4)

        assert result.files_scanned == 17
        assert result.total_matches == 34
        assert len(result.files_with_matches) == 17
