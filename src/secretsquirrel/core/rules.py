"""Detection rules, severity levels and the pre-filtered rule set."""

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterator, Mapping, Optional

from ..utils.exceptions import RuleCompilationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Severity(IntEnum):
    """Rule severity, ordered from least to most severe."""
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """
        Parse a severity from config or CLI input.

        Matching is case-insensitive and anything unrecognised is LOW.
        """
        if isinstance(value, Severity):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return cls.LOW

    def meets(self, floor: Optional["Severity"]) -> bool:
        """Check whether this severity is at or above the floor."""
        return floor is None or self >= floor

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Rule:
    """A named regex that flags a line as a potential secret."""

    name: str
    regex: str
    severity: Severity = Severity.LOW
    description: Optional[str] = None
    compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.regex:
            raise RuleCompilationError(self.name, "", "empty regex")
        try:
            compiled = re.compile(self.regex)
        except (re.error, TypeError) as e:
            raise RuleCompilationError(self.name, str(self.regex), str(e)) from e
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        object.__setattr__(self, "compiled", compiled)

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "Rule":
        """Build a rule from a config `patterns` entry."""
        return cls(
            name=name,
            regex=data.get("regex", ""),
            severity=Severity.parse(data.get("severity", "LOW")),
            description=data.get("description"),
        )

    def search(self, line: str) -> bool:
        """Return True if the rule matches anywhere in the line."""
        return self.compiled.search(line) is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "regex": self.regex,
            "severity": self.severity.name,
        }


class RuleSet(Mapping[str, Rule]):
    """
    Immutable, ordered collection of compiled rules.

    A rule set is filtered to the severity floor once, when it is built,
    so the executor never re-checks severity per file. Iteration follows
    insertion order, which fixes the order rules are tried on each file.
    """

    def __init__(self, rules: Optional[Mapping[str, Rule]] = None):
        self._rules: Dict[str, Rule] = dict(rules or {})

    @classmethod
    def build(
        cls,
        patterns: Mapping[str, Mapping[str, Any]],
        severity_floor: Optional[Severity] = None,
    ) -> "RuleSet":
        """
        Compile config patterns into a rule set.

        Args:
            patterns: Mapping of rule name to {description, regex, severity}
            severity_floor: Minimum severity to keep (None keeps everything)

        Returns:
            RuleSet containing only rules that meet the floor

        Raises:
            RuleCompilationError: If any kept rule's regex is invalid
        """
        rules: Dict[str, Rule] = {}
        dropped = 0

        for name, data in patterns.items():
            if not Severity.parse(data.get("severity", "LOW")).meets(severity_floor):
                dropped += 1
                continue
            rules[name] = Rule.from_dict(name, data)

        logger.debug(
            f"Compiled {len(rules)} rules "
            f"({dropped} below severity floor {severity_floor.name if severity_floor is not None else 'NONE'})"
        )
        return cls(rules)

    def __getitem__(self, name: str) -> Rule:
        return self._rules[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet({list(self._rules)})"
