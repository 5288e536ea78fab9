"""Configuration loading with base + local precedence."""

import os
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import yaml

from .logger import get_logger
from .exceptions import ConfigError, InvalidConfigError, MissingConfigError
from .paths import get_config_dir
from ..core.ignore import IgnoreConfig, compile_content_matcher, compile_path_matcher
from ..core.rules import RuleSet, Severity

logger = get_logger(__name__)

MERGE = "merge"
REPLACE = "replace"
BEHAVIORS = (MERGE, REPLACE)


@dataclass
class ConfigFile:
    """One parsed config document."""
    patterns: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    ignore_patterns: Optional[List[str]] = None
    ignore_paths: Optional[List[str]] = None
    severity: Optional[str] = None
    ignore_pattern_behavior: str = MERGE
    ignore_paths_behavior: str = MERGE
    source: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Any, source: Optional[Path] = None) -> "ConfigFile":
        """
        Build from a YAML document, checking structure.

        Raises:
            InvalidConfigError: If a key has the wrong shape
        """
        if data is None:
            return cls(source=source)
        if not isinstance(data, dict):
            raise InvalidConfigError(
                "Config must be a mapping",
                details={"file": source, "got": type(data).__name__},
            )

        errors = []

        patterns = data.get("patterns") or {}
        if not isinstance(patterns, dict):
            errors.append("patterns must be a mapping of name to pattern")
            patterns = {}
        for name, pattern in patterns.items():
            if not isinstance(pattern, dict):
                errors.append(f"patterns.{name} must be a mapping")
            elif not pattern.get("regex"):
                errors.append(f"patterns.{name} has no regex")

        lists = {}
        for key in ("ignore_patterns", "ignore_paths"):
            value = data.get(key)
            if value is not None and not isinstance(value, list):
                errors.append(f"{key} must be a list")
                value = None
            lists[key] = [str(v) for v in value] if value is not None else None

        behaviors = {}
        for key in ("ignore_pattern_behavior", "ignore_paths_behavior"):
            value = str(data.get(key) or MERGE).lower()
            if value not in BEHAVIORS:
                logger.warning(f"Unknown {key} '{value}' in {source}, using '{MERGE}'")
                value = MERGE
            behaviors[key] = value

        if errors:
            raise InvalidConfigError(
                "Configuration validation failed",
                details={"file": source, "errors": errors},
                suggestion="Check the patterns section of your config file",
            )

        severity = data.get("severity")
        return cls(
            patterns={str(k): dict(v) for k, v in patterns.items()},
            ignore_patterns=lists["ignore_patterns"],
            ignore_paths=lists["ignore_paths"],
            severity=str(severity) if severity is not None else None,
            source=source,
            **behaviors,
        )

    @classmethod
    def load(cls, path: Path) -> "ConfigFile":
        """
        Read and parse a YAML config file.

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Failed to parse config file: {path}",
                details={"error": str(e)},
            ) from e
        except OSError as e:
            raise ConfigError(
                f"Failed to read config file: {path}",
                details={"error": str(e)},
            ) from e

        return cls.from_dict(data, source=Path(path))


class Config:
    """
    Effective scan configuration.

    Priority (highest to lowest):
    1. CLI severity flag (set_severity_filter)
    2. SSQ_SEVERITY environment variable
    3. Local config (.ssq.yml in the working directory)
    4. Base config (--config file, the user config, or the bundled defaults)

    Local ignore lists are appended to the base lists unless the local
    file sets the matching *_behavior key to "replace". Local patterns
    override base patterns of the same name.
    """

    LOCAL_CONFIG_FILENAME = ".ssq.yml"
    BASE_CONFIG_FILENAME = "config.yml"

    def __init__(self):
        """Initialize an empty configuration (every rule active, nothing ignored)."""
        self.patterns: Dict[str, Dict[str, Any]] = {}
        self.ignore_patterns: Optional[List[str]] = None
        self.ignore_paths: Optional[List[str]] = None
        self.severity: Optional[str] = None
        self.ignore_pattern_behavior = MERGE
        self.ignore_paths_behavior = MERGE
        self.sources: List[Path] = []
        self._severity_filter: Optional[str] = None

    @classmethod
    def user_config_file(cls) -> Optional[Path]:
        config_dir = get_config_dir()
        return config_dir / cls.BASE_CONFIG_FILENAME if config_dir else None

    @classmethod
    def load(cls, config_path: Optional[Path] = None, cwd: Optional[Path] = None) -> "Config":
        """
        Load base config, then merge the local config on top.

        Args:
            config_path: Explicit base config (must exist)
            cwd: Directory to look for the local config in (default: cwd)

        Raises:
            MissingConfigError: If config_path does not exist
            ConfigError: If a config file cannot be parsed
        """
        config = cls()
        config._load_base_config(config_path)
        config._load_local_config(Path(cwd) if cwd else Path.cwd())
        config._load_env_config()
        logger.debug("Configuration initialized")
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build a configuration from a single in-memory document."""
        config = cls()
        config.apply_base(ConfigFile.from_dict(data))
        return config

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Build a configuration from one file, without local or env layers."""
        config = cls()
        config.apply_base(ConfigFile.load(path))
        return config

    def _load_base_config(self, config_path: Optional[Path]) -> None:
        if config_path is not None:
            config_path = Path(config_path)
            if not config_path.exists():
                raise MissingConfigError(
                    f"Config file not found: {config_path}",
                    suggestion="Check the file path or run 'ssq config init'",
                )
            logger.debug(f"Loading config from: {config_path}")
            self.apply_base(ConfigFile.load(config_path))
            return

        base_path = self.user_config_file()
        if base_path is None or not base_path.exists():
            logger.debug("No user config found, using bundled defaults")
            self.apply_base(ConfigFile.from_dict(yaml.safe_load(self.default_config_text())))
            return

        logger.debug(f"Loading base config from: {base_path}")
        self.apply_base(ConfigFile.load(base_path))

    def _load_local_config(self, cwd: Path) -> None:
        local_path = cwd / self.LOCAL_CONFIG_FILENAME
        if not local_path.exists():
            logger.debug("Using base config")
            return

        logger.debug(f"Found local config at: {local_path}")
        self.merge(ConfigFile.load(local_path))

    def _load_env_config(self) -> None:
        value = os.getenv("SSQ_SEVERITY")
        if value:
            self.severity = value.upper()
            logger.debug(f"Loaded from env: SSQ_SEVERITY={self.severity}")

    def apply_base(self, base: ConfigFile) -> None:
        """Take every setting from the base document."""
        self.patterns = dict(base.patterns)
        self.ignore_patterns = list(base.ignore_patterns) if base.ignore_patterns is not None else None
        self.ignore_paths = list(base.ignore_paths) if base.ignore_paths is not None else None
        self.severity = base.severity
        self.ignore_pattern_behavior = base.ignore_pattern_behavior
        self.ignore_paths_behavior = base.ignore_paths_behavior
        if base.source:
            self.sources.append(base.source)

    def merge(self, local: ConfigFile) -> None:
        """Layer a local document over the current settings."""
        # A local "replace" switches behavior; a local "merge" never downgrades it
        if local.ignore_pattern_behavior == REPLACE:
            self.ignore_pattern_behavior = REPLACE
        if local.ignore_paths_behavior == REPLACE:
            self.ignore_paths_behavior = REPLACE

        if local.ignore_patterns is not None:
            self.ignore_patterns = self._combine(
                self.ignore_patterns, local.ignore_patterns, self.ignore_pattern_behavior
            )

        if local.ignore_paths is not None:
            if self.ignore_paths_behavior == REPLACE:
                logger.debug("Replacing ignore paths with local config")
            else:
                logger.debug("Merging ignore paths with base config")
            self.ignore_paths = self._combine(
                self.ignore_paths, local.ignore_paths, self.ignore_paths_behavior
            )

        self.patterns.update(local.patterns)

        if local.severity is not None:
            self.severity = local.severity

        if local.source:
            self.sources.append(local.source)

    @staticmethod
    def _combine(base: Optional[List[str]], local: List[str], behavior: str) -> List[str]:
        if behavior == REPLACE:
            return list(local)
        return list(base or []) + list(local)

    def set_severity_filter(self, level: str) -> None:
        """CLI override; wins over every config source."""
        self._severity_filter = level.upper()

    def effective_severity(self) -> Optional[Severity]:
        """Severity floor in force, or None when every rule is active."""
        level = self._severity_filter or self.severity
        return Severity.parse(level) if level else None

    def meets_severity(self, pattern: Dict[str, Any]) -> bool:
        return Severity.parse(pattern.get("severity", "LOW")).meets(self.effective_severity())

    def rule_set(self) -> RuleSet:
        """
        Compile the active rules.

        Raises:
            RuleCompilationError: If an active rule's regex is invalid
        """
        return RuleSet.build(self.patterns, self.effective_severity())

    def ignore_config(self) -> IgnoreConfig:
        return IgnoreConfig(
            ignore_paths=self.ignore_paths,
            ignore_patterns=self.ignore_patterns,
        )

    def validate(self) -> None:
        """
        Compile rules and ignore regexes without scanning.

        Raises:
            RuleCompilationError: If a rule regex is invalid
            IgnoreConfigError: If an ignore glob or regex is malformed
        """
        self.rule_set()
        compile_path_matcher(self.ignore_paths)
        compile_content_matcher(self.ignore_patterns)

    def to_display_dict(self) -> Dict[str, Any]:
        """Effective configuration, showing only the active patterns."""
        severity = self.effective_severity()
        return {
            "severity": severity.name if severity is not None else Severity.LOW.name,
            "ignore_pattern_behavior": self.ignore_pattern_behavior,
            "ignore_paths_behavior": self.ignore_paths_behavior,
            "ignore_patterns": list(self.ignore_patterns or []),
            "ignore_paths": list(self.ignore_paths or []),
            "patterns": {
                name: pattern
                for name, pattern in self.patterns.items()
                if self.meets_severity(pattern)
            },
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_display_dict(), default_flow_style=False, sort_keys=False)

    @staticmethod
    def default_config_text() -> str:
        """The bundled default rule set and ignore lists."""
        return (resources.files("secretsquirrel") / "data" / "ssq.yml").read_text(encoding="utf-8")

    @classmethod
    def create_user_config(cls, overwrite: bool = False) -> Path:
        """Install the bundled defaults as the user config."""
        config_file = cls.user_config_file()
        if config_file is None:
            raise MissingConfigError(
                "Cannot determine the user config directory",
                suggestion="Set HOME (or APPDATA on Windows)",
            )

        if config_file.exists() and not overwrite:
            raise ConfigError(
                f"User config already exists: {config_file}",
                suggestion="Use --overwrite to replace it",
            )

        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(cls.default_config_text(), encoding="utf-8")

        logger.info(f"Created user config: {config_file}")
        return config_file


def init_config(config_path: Optional[Path] = None, severity: Optional[str] = None) -> Config:
    """
    Load configuration and apply the CLI severity override.

    Args:
        config_path: Optional explicit base config file path
        severity: Optional severity floor from the command line

    Returns:
        Loaded Config object
    """
    config = Config.load(config_path)
    if severity:
        config.set_severity_filter(severity)
    return config
