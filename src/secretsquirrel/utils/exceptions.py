"""Exception hierarchy with detailed error context."""

from typing import Optional, Dict, Any


class SecretSquirrelError(Exception):
    """Base exception for all Secret Squirrel errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ):
        """
        Initialize exception with context.

        Args:
            message: Error message
            details: Additional error details
            suggestion: Suggested fix for the user
        """
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format complete error message."""
        parts = [self.message]

        if self.details:
            parts.append("\nDetails:")
            for key, value in self.details.items():
                parts.append(f"  {key}: {value}")

        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")

        return "\n".join(parts)


# Scan errors
class ScanError(SecretSquirrelError):
    """Error during scanning operation."""
    pass


class RuleCompilationError(ScanError):
    """A detection rule's regex does not compile."""

    def __init__(self, rule_name: str, regex: str, reason: str):
        self.rule_name = rule_name
        self.regex = regex
        super().__init__(
            f"Invalid regex for pattern '{rule_name}'",
            details={"regex": regex, "error": reason},
            suggestion="Fix the regex in your config file or remove the pattern",
        )


class IgnoreConfigError(ScanError):
    """An ignore path glob or ignore pattern regex is malformed."""
    pass


class InvalidTargetError(ScanError):
    """Invalid scan target."""
    pass


# Configuration errors
class ConfigError(SecretSquirrelError):
    """Configuration-related error."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration value."""
    pass


class MissingConfigError(ConfigError):
    """Required configuration is missing."""
    pass
