"""Exception taxonomy for the insights processing pipeline.

InputValidationError is never retried. BackendExecutionError (and its
timeout and malformed-response subclasses) is what the retry policy acts on.
ProcessingFailedError and FallbackExhaustedError are the terminal failures
surfaced to callers of ProcessingManager.
"""

from __future__ import annotations

from src.advisor_ai.insights.schemas import ProcessingMode


class AIProcessingError(Exception):
    """Base class for all insights processing errors."""


class InputValidationError(AIProcessingError):
    """Raised when the caller passes an empty client id or no communications."""


class BackendUnavailableError(AIProcessingError):
    """Raised when a backend cannot be constructed for the requested mode.

    Attributes:
        mode: The mode that could not be initialised.
        reason: Human-readable cause (missing credential, NLP disabled, ...).
    """

    def __init__(self, mode: ProcessingMode, reason: str) -> None:
        self.mode = mode
        self.reason = reason
        super().__init__(f"Backend '{mode.value}' unavailable: {reason}")


class BackendExecutionError(AIProcessingError):
    """Raised when a single backend attempt fails.

    Attributes:
        mode: Backend that failed.
        original_error: Underlying exception, if any.
    """

    def __init__(
        self,
        mode: ProcessingMode,
        message: str,
        original_error: BaseException | None = None,
    ) -> None:
        self.mode = mode
        self.original_error = original_error
        super().__init__(f"Backend '{mode.value}' failed: {message}")


class BackendTimeoutError(BackendExecutionError):
    """Raised when an attempt exceeds the configured timeout."""

    def __init__(self, mode: ProcessingMode, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(mode, f"timed out after {timeout_ms}ms")


class AnalysisFailedError(BackendExecutionError):
    """Raised when the remote LLM returns an empty or malformed response."""

    def __init__(self, message: str, original_error: BaseException | None = None) -> None:
        super().__init__(
            ProcessingMode.REMOTE_LLM,
            f"analysis failed: {message}",
            original_error,
        )


class ProcessingFailedError(AIProcessingError):
    """Raised when every attempt failed and no fallback applies.

    Attributes:
        mode: Mode the call ran under.
        attempts: Number of attempts made.
        cause: Last underlying error.
    """

    def __init__(
        self,
        mode: ProcessingMode,
        attempts: int,
        cause: BaseException | None,
    ) -> None:
        self.mode = mode
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"AI processing failed after {attempts} attempt(s) in '{mode.value}' mode: {cause}"
        )


class FallbackExhaustedError(ProcessingFailedError):
    """Raised when the rule-based fallback itself fails."""

    def __init__(
        self,
        mode: ProcessingMode,
        attempts: int,
        cause: BaseException | None,
        fallback_error: BaseException,
    ) -> None:
        self.fallback_error = fallback_error
        super().__init__(mode, attempts, cause)
        self.args = (f"{self.args[0]} (rule-based fallback also failed: {fallback_error})",)
