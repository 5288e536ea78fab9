"""
Path and content ignore rules, plus ignore-aware file discovery.

Two independent predicates suppress false positives:

- ignore paths: gitignore-syntax globs rooted at the scan root. A matching
  file is never discovered, so it is never scanned or reported.
- ignore patterns: regex fragments joined into one alternation and tested
  against matched lines. A matching line is never reported, but the rest
  of the file is still scanned.

Discovery additionally honors ``.gitignore`` and ``.ignore`` files found in
the tree, each scoped to the directory that contains it.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import pathspec

from ..utils.exceptions import IgnoreConfigError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Later files win over earlier ones within the same directory
VCS_IGNORE_FILES = (".gitignore", ".ignore")

_GLOBAL_FLAGS = re.compile(r"^\(\?([aiLmsux]+)\)")


@dataclass(frozen=True)
class IgnoreConfig:
    """Ignore lists as produced by config loading."""

    ignore_paths: Optional[Tuple[str, ...]] = None
    ignore_patterns: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.ignore_paths is not None:
            object.__setattr__(self, "ignore_paths", tuple(str(p) for p in self.ignore_paths))
        if self.ignore_patterns is not None:
            object.__setattr__(self, "ignore_patterns", tuple(str(p) for p in self.ignore_patterns))


def scope_inline_flags(fragment: str) -> str:
    """
    Wrap a regex fragment so it can be joined into a larger alternation.

    Leading global flags such as ``(?i)`` are only legal at the very start
    of a pattern, so they are turned into a scoped group ``(?i:...)``.
    """
    match = _GLOBAL_FLAGS.match(fragment)
    if match:
        return f"(?{match.group(1)}:{fragment[match.end():]})"
    return f"(?:{fragment})"


def compile_content_matcher(patterns: Optional[Sequence[str]]) -> Optional[re.Pattern]:
    """
    Compile ignore pattern fragments into one alternation.

    Returns None when there is nothing to ignore.

    Raises:
        IgnoreConfigError: If the joined alternation does not compile
    """
    fragments = []
    for fragment in patterns or ():
        if not fragment:
            logger.warning("Skipping empty ignore pattern (it would ignore every line)")
            continue
        fragments.append(scope_inline_flags(fragment))

    if not fragments:
        return None

    try:
        return re.compile("|".join(fragments))
    except re.error as e:
        bad = [f for f in patterns if f and not _compiles(f)]
        raise IgnoreConfigError(
            "Invalid ignore_patterns regex",
            details={"error": str(e), "patterns": bad or list(patterns)},
            suggestion="Fix or remove the offending entries in ignore_patterns",
        ) from e


def compile_path_matcher(lines: Optional[Iterable[str]]) -> Optional[pathspec.PathSpec]:
    """
    Compile gitignore-syntax lines into a path matcher.

    Raises:
        IgnoreConfigError: If a line is not a valid gitignore pattern
    """
    lines = [line for line in (lines or ()) if line and line.strip()]
    if not lines:
        return None

    try:
        return pathspec.GitIgnoreSpec.from_lines(lines)
    except (ValueError, TypeError) as e:
        raise IgnoreConfigError(
            "Invalid ignore_paths glob",
            details={"error": str(e), "paths": lines},
            suggestion="ignore_paths entries use .gitignore syntax",
        ) from e


def _compiles(fragment: str) -> bool:
    try:
        re.compile(fragment)
        return True
    except re.error:
        return False


def rebase_ignore_line(line: str, prefix: str) -> Optional[str]:
    """
    Rewrite a line from a nested ignore file so it is relative to the root.

    ``prefix`` is the posix path of the ignore file's directory relative to
    the root ("" for the root itself). Blank lines and comments return None.
    """
    line = line.rstrip("\r\n")
    if not line.strip() or line.startswith("#"):
        return None
    if not prefix:
        return line

    negate = line.startswith("!")
    body = line[1:] if negate else line
    trimmed = body[:-1] if body.endswith("/") else body

    if "/" in trimmed:
        rebased = f"{prefix}/{body.lstrip('/')}"
    else:
        rebased = f"{prefix}/**/{body}"

    return f"!{rebased}" if negate else rebased


class IgnoreResolver:
    """
    Compiled path and content ignore predicates for one scan root.

    Both matchers are built eagerly so configuration mistakes surface
    before any file is opened. The resolver is read-only afterwards and
    safe to share between worker threads.
    """

    def __init__(self, root: Path, config: Optional[IgnoreConfig] = None):
        """
        Initialize the resolver.

        Args:
            root: Scan root that ignore paths are relative to
            config: Ignore lists (None means ignore nothing)

        Raises:
            IgnoreConfigError: If a glob or regex is malformed
        """
        self.root = Path(root).resolve()
        self.config = config or IgnoreConfig()
        self._path_spec = compile_path_matcher(self.config.ignore_paths)
        self._content_re = compile_content_matcher(self.config.ignore_patterns)

        logger.debug(
            f"Ignore resolver for {self.root}: "
            f"{len(self.config.ignore_paths or ())} path globs, "
            f"{len(self.config.ignore_patterns or ())} content patterns"
        )

    def relative(self, path: Path) -> Optional[str]:
        """Return the root-relative posix path, or None if outside the root."""
        path = Path(path)
        if not path.is_absolute():
            return path.as_posix()
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return None

    def is_path_ignored(self, path: Path, is_dir: bool = False) -> bool:
        """Check a path against the ignore_paths globs."""
        if self._path_spec is None:
            return False
        rel = self.relative(path)
        if rel is None:
            return False
        return self._rel_ignored(self._path_spec, rel, is_dir)

    def is_line_ignored(self, line: str) -> bool:
        """Check a line against the ignore_patterns alternation."""
        if self._content_re is None:
            return False
        return self._content_re.search(line) is not None

    def walk(self) -> Iterator[Path]:
        """
        Yield every eligible regular file under the root, in sorted order.

        Dotfiles are visible, ``.gitignore``/``.ignore`` files are honored,
        symlinked directories are not followed and each underlying file
        is yielded at most once. Unreadable directories are skipped.
        """
        if self.root.is_file():
            yield self.root
            return

        seen: Set[Tuple[int, int]] = set()
        yield from self._walk_dir(self.root, "", [], None, seen)

    def _walk_dir(
        self,
        directory: Path,
        prefix: str,
        inherited: List[str],
        vcs_spec: Optional[pathspec.PathSpec],
        seen: Set[Tuple[int, int]],
    ) -> Iterator[Path]:
        lines, vcs_spec = self._load_vcs_ignores(directory, prefix, inherited, vcs_spec)

        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return

        for entry in entries:
            rel = f"{prefix}/{entry.name}" if prefix else entry.name
            try:
                if entry.is_dir(follow_symlinks=False):
                    if self._excluded(vcs_spec, rel, is_dir=True):
                        logger.debug(f"Pruned ignored directory: {rel}")
                        continue
                    yield from self._walk_dir(Path(entry.path), rel, lines, vcs_spec, seen)
                    continue

                if not entry.is_file():
                    continue
                if self._excluded(vcs_spec, rel, is_dir=False):
                    continue

                stat = entry.stat()
                key = (stat.st_dev, stat.st_ino)
                if key in seen:
                    continue
                seen.add(key)
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry.path}: {e}")
                continue

            yield Path(entry.path)

    def _excluded(self, vcs_spec: Optional[pathspec.PathSpec], rel: str, is_dir: bool) -> bool:
        if vcs_spec is not None and self._rel_ignored(vcs_spec, rel, is_dir):
            return True
        if self._path_spec is not None and self._rel_ignored(self._path_spec, rel, is_dir):
            return True
        return False

    @staticmethod
    def _rel_ignored(spec: pathspec.PathSpec, rel: str, is_dir: bool) -> bool:
        return spec.match_file(f"{rel}/" if is_dir else rel)

    def _load_vcs_ignores(
        self,
        directory: Path,
        prefix: str,
        inherited: List[str],
        vcs_spec: Optional[pathspec.PathSpec],
    ) -> Tuple[List[str], Optional[pathspec.PathSpec]]:
        added: List[str] = []
        for name in VCS_IGNORE_FILES:
            ignore_file = directory / name
            if not ignore_file.is_file():
                continue
            try:
                content = ignore_file.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug(f"Cannot read {ignore_file}: {e}")
                continue
            for raw in content.splitlines():
                rebased = rebase_ignore_line(raw, prefix)
                if rebased is not None:
                    added.append(rebased)

        if not added:
            return inherited, vcs_spec

        lines = inherited + added
        try:
            return lines, pathspec.GitIgnoreSpec.from_lines(lines)
        except ValueError as e:
            logger.warning(f"Ignoring malformed ignore file in {directory}: {e}")
            return inherited, vcs_spec
