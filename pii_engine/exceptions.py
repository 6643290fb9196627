"""
Exception hierarchy for the PII engine.

Only configuration errors reach the caller. The other failures are absorbed
where they happen and recorded in diagnostics (recognizer_errors,
pass_results, InferenceResult.reason).
"""

from typing import List, Optional


class PIIEngineError(Exception):
    """Base exception for the engine."""


class ConfigurationError(PIIEngineError):
    """Invalid wiring or configuration. Fatal at startup."""


class DuplicateRecognizerError(ConfigurationError):
    """A recognizer with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Recognizer '{name}' is already registered")


class EmptyRegistryError(ConfigurationError):
    """The registry was queried before any recognizer was registered."""

    def __init__(self):
        super().__init__(
            "Recognizer registry is empty. Register recognizers "
            "(e.g. init_registry()) before running analysis."
        )


class SchemaValidationError(ConfigurationError):
    """A declarative recognizer batch failed validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        summary = "; ".join(self.errors[:5])
        if len(self.errors) > 5:
            summary += f" (+{len(self.errors) - 5} more)"
        super().__init__(f"Invalid recognizer definitions: {summary}")


class RecognizerFailure(PIIEngineError):
    """One recognizer failed while analyzing text."""

    def __init__(self, recognizer_name: str, message: str, cause: Optional[BaseException] = None):
        self.recognizer_name = recognizer_name
        self.cause = cause
        super().__init__(f"{recognizer_name}: {message}")


class PassFailure(PIIEngineError):
    """One pipeline pass raised while executing."""

    def __init__(self, pass_name: str, cause: BaseException):
        self.pass_name = pass_name
        self.cause = cause
        super().__init__(f"Pass '{pass_name}' failed: {type(cause).__name__}: {cause}")


class ModelUnavailable(PIIEngineError):
    """The ML backend is missing, cancelled, timed out or failing."""


class RegexTimeout(PIIEngineError):
    """A bounded regex evaluation exceeded its time budget."""

    def __init__(self, pattern: str, timeout_ms: float):
        self.pattern = pattern
        self.timeout_ms = timeout_ms
        super().__init__(f"Regex evaluation exceeded {timeout_ms}ms")
