"""File classification and line sources for the two scan strategies."""

import mmap
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Tuple

from ..utils.logger import get_logger

logger = get_logger(__name__)

LARGE_FILE_THRESHOLD = 1024 * 1024  # 1 MiB
BINARY_CHECK_BYTES = 512  # Prefix sniffed for NUL bytes


class FileClassification(Enum):
    """How a discovered file is handled."""
    NORMAL = "normal"    # streamed line by line
    LARGE = "large"      # memory-mapped
    BINARY = "binary"    # excluded
    SKIPPED = "skipped"  # unreadable, excluded

    @property
    def scannable(self) -> bool:
        return self in (FileClassification.NORMAL, FileClassification.LARGE)


@dataclass(frozen=True)
class FileTask:
    """One discovered file and its fixed classification."""
    path: Path
    size: int
    classification: FileClassification


def classify(
    path: Path,
    large_threshold: int = LARGE_FILE_THRESHOLD,
    sniff_bytes: int = BINARY_CHECK_BYTES,
) -> FileTask:
    """
    Classify a file by size and a NUL-byte sniff of its first bytes.

    Binary detection wins over size, so a large binary file is BINARY.
    Any OSError while inspecting the file yields SKIPPED.
    """
    path = Path(path)
    try:
        size = path.stat().st_size
        with open(path, "rb") as f:
            prefix = f.read(sniff_bytes)
    except OSError as e:
        logger.debug(f"Cannot inspect {path}: {e}")
        return FileTask(path, 0, FileClassification.SKIPPED)

    if b"\x00" in prefix:
        classification = FileClassification.BINARY
    elif size > large_threshold:
        classification = FileClassification.LARGE
    else:
        classification = FileClassification.NORMAL

    return FileTask(path, size, classification)


def decode_line(raw: bytes) -> str:
    """Decode one raw line, dropping a single trailing LF or CRLF."""
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


class LineSource:
    """
    Restartable sequence of (line_number, text) pairs for one file.

    Every iteration starts again from the first line, so each rule can
    walk the file independently. Line numbers start at 1.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def __enter__(self) -> "LineSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        pass

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        raise NotImplementedError


class StreamLineSource(LineSource):
    """Reads the file line by line; memory is bounded by line length."""

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        with open(self.path, "rb") as f:
            for line_number, raw in enumerate(f, 1):
                yield line_number, decode_line(raw)


class MappedLineSource(LineSource):
    """Maps the whole file once and rescans the mapping on each pass."""

    def __init__(self, path: Path):
        super().__init__(path)
        self._file = open(self.path, "rb")
        try:
            self._map: Optional[mmap.mmap] = mmap.mmap(
                self._file.fileno(), 0, access=mmap.ACCESS_READ
            )
        except (OSError, ValueError):
            self._file.close()
            raise

    def close(self) -> None:
        if self._map is not None:
            self._map.close()
            self._map = None
        self._file.close()

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        if self._map is None:
            raise ValueError(f"Line source for {self.path} is closed")
        view = self._map
        position = 0
        end = len(view)
        line_number = 0
        while position < end:
            newline = view.find(b"\n", position)
            stop = end if newline == -1 else newline + 1
            line_number += 1
            yield line_number, decode_line(view[position:stop])
            position = stop


def open_line_source(task: FileTask) -> LineSource:
    """
    Open the line source matching a file's classification.

    Raises:
        OSError: If a large file cannot be opened or mapped
        ValueError: If the file is not scannable
    """
    if task.classification is FileClassification.LARGE:
        return MappedLineSource(task.path)
    if task.classification is FileClassification.NORMAL:
        return StreamLineSource(task.path)
    raise ValueError(f"{task.path} is {task.classification.value} and cannot be scanned")

