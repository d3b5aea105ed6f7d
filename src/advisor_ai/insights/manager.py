"""Processing manager: the single entry point for client communication analysis.

Validates input, normalizes records, runs the configured backend under a
per-attempt timeout and a bounded retry policy, and falls back to rule-based
analysis when the configured backend keeps failing. Each call snapshots the
current ProcessingConfig, so update_config never changes a call in flight.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from src.advisor_ai.config import Settings, get_settings
from src.advisor_ai.insights.backends.base import AnalysisBackend, Clock, utc_now
from src.advisor_ai.insights.backends.local_nlp import LocalNLPBackend
from src.advisor_ai.insights.backends.remote_llm import (
    MESSAGE_PURPOSES,
    CredentialProvider,
    RemoteLLMBackend,
)
from src.advisor_ai.insights.backends.rule_based import RuleBasedBackend
from src.advisor_ai.insights.errors import (
    BackendExecutionError,
    BackendTimeoutError,
    BackendUnavailableError,
    FallbackExhaustedError,
    InputValidationError,
    ProcessingFailedError,
)
from src.advisor_ai.insights.normalizer import normalize
from src.advisor_ai.insights.retry import RetryError, RetryPolicy, execute_with_retry
from src.advisor_ai.insights.schemas import (
    AnalysisResult,
    Communication,
    EnhancedInsights,
    ProcessingConfig,
    ProcessingMetrics,
    ProcessingMode,
)
from src.advisor_ai.insights.validator import ConfigValidator

logger = structlog.get_logger(__name__)

FALLBACK_CONFIDENCE = 0.3
FALLBACK_MARKERS: dict[ProcessingMode, str] = {
    ProcessingMode.LOCAL_NLP: "[Local NLP Fallback]",
    ProcessingMode.REMOTE_LLM: "[Remote LLM Fallback]",
}


class ProcessingManager:
    """Orchestrates analysis backends with timeout, retry and fallback.

    Args:
        config: Initial overrides (mapping or ProcessingConfig) applied on
            top of the settings defaults.
        settings: Application settings; defaults to the cached settings.
        credential_provider: Returns the remote LLM API key (sync or
            async). Defaults to OPENAI_API_KEY from settings.
        backends: Pre-built backends keyed by mode. Used instead of
            constructing one for that mode; tests inject stubs here.
        clock: Returns the current UTC time for time-relative rules.
        retry_base_delay: Seconds of backoff after the first failure.
        retry_max_delay: Upper bound on a single backoff.
    """

    def __init__(
        self,
        config: ProcessingConfig | Mapping[str, Any] | None = None,
        settings: Settings | None = None,
        credential_provider: CredentialProvider | None = None,
        backends: Mapping[ProcessingMode, AnalysisBackend] | None = None,
        clock: Clock | None = None,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 3.0,
    ) -> None:
        self._settings = settings or get_settings()
        if credential_provider is None and self._settings.OPENAI_API_KEY:
            credential_provider = self._settings_credential
        self._credential_provider = credential_provider
        self._injected: dict[ProcessingMode, AnalysisBackend] = dict(backends or {})
        self._clock = clock or utc_now
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

        self.validator = ConfigValidator(
            self._settings,
            credential_configured=(
                credential_provider is not None
                or ProcessingMode.REMOTE_LLM in self._injected
            ),
        )
        self._rule_based: AnalysisBackend = self._injected.get(
            ProcessingMode.RULE_BASED
        ) or RuleBasedBackend(clock=self._clock)
        self._backends: dict[ProcessingMode, AnalysisBackend] = {
            ProcessingMode.RULE_BASED: self._rule_based,
        }
        self._config = self._initialize(self.validator.resolve(config))

    def _settings_credential(self) -> str:
        return self._settings.OPENAI_API_KEY

    # ── Configuration ────────────────────────────────────────────────────

    def current_config(self) -> ProcessingConfig:
        return self._config

    def current_mode(self) -> ProcessingMode:
        return self._config.mode

    def available_modes(self) -> list[ProcessingMode]:
        return self.validator.available_modes()

    def update_config(self, **changes: Any) -> ProcessingConfig:
        """Apply partial changes; re-initializes the backend only if the mode changed."""
        merged = {**self._config.model_dump(), **{k: v for k, v in changes.items() if v is not None}}
        resolved = self.validator.resolve(merged)
        if resolved.mode != self._config.mode:
            logger.info(
                "processing.mode_changed",
                previous=self._config.mode.value,
                current=resolved.mode.value,
            )
            resolved = self._initialize(resolved)
        elif resolved.mode == ProcessingMode.REMOTE_LLM and self._llm_settings_changed(resolved):
            self._backends.pop(ProcessingMode.REMOTE_LLM, None)
            resolved = self._initialize(resolved)
        self._config = resolved
        return resolved

    def _llm_settings_changed(self, resolved: ProcessingConfig) -> bool:
        current = self._config
        return (resolved.model, resolved.max_tokens, resolved.timeout_ms) != (
            current.model,
            current.max_tokens,
            current.timeout_ms,
        )

    def _initialize(self, config: ProcessingConfig) -> ProcessingConfig:
        """Make sure a backend exists for ``config.mode``, downgrading if it cannot be built."""
        mode = config.mode
        if mode in self._backends:
            return config
        try:
            self._backends[mode] = self._build_backend(mode, config)
        except BackendUnavailableError as exc:
            fallback = ProcessingMode.RULE_BASED
            logger.warning(
                "processing.backend_unavailable",
                mode=mode.value,
                reason=exc.reason,
                using=fallback.value,
            )
            return config.model_copy(update={"mode": fallback})
        logger.info("processing.backend_initialized", mode=mode.value)
        return config

    def _build_backend(self, mode: ProcessingMode, config: ProcessingConfig) -> AnalysisBackend:
        if mode in self._injected:
            return self._injected[mode]
        if mode == ProcessingMode.LOCAL_NLP:
            return LocalNLPBackend(settings=self._settings, clock=self._clock)
        if mode == ProcessingMode.REMOTE_LLM:
            return RemoteLLMBackend(
                config,
                credential_provider=self._credential_provider,
                clock=self._clock,
            )
        return self._rule_based

    # ── Processing ───────────────────────────────────────────────────────

    async def process_client_communications(
        self,
        client_id: str,
        raw_communications: Sequence[Any] | None,
    ) -> EnhancedInsights:
        """Analyze a client's communications with the configured backend.

        Args:
            client_id: Opaque client identifier; must be non-empty.
            raw_communications: Non-empty list of upstream records in any
                supported shape.

        Returns:
            EnhancedInsights with processing metrics.

        Raises:
            InputValidationError: If the client id or communications are empty.
            ProcessingFailedError: If every attempt failed and fallback is
                disabled or not applicable.
            FallbackExhaustedError: If the rule-based fallback also failed.
        """
        if not isinstance(client_id, str) or not client_id.strip():
            raise InputValidationError("Client identifier is required")
        if not isinstance(raw_communications, (list, tuple)) or not raw_communications:
            raise InputValidationError("Communications must be a non-empty list")

        config = self._config
        backend = self._backends.get(config.mode, self._rule_based)
        started = time.perf_counter()
        communications = normalize(raw_communications, now=self._clock())

        log = logger.bind(client_id=client_id, mode=config.mode.value)
        log.info("processing.started", communications=len(communications))

        attempts = 0

        async def attempt(number: int) -> AnalysisResult:
            nonlocal attempts
            attempts = number
            return await self._run_backend(backend, communications, config.timeout_ms)

        try:
            result = await execute_with_retry(
                attempt,
                RetryPolicy.from_config(
                    config,
                    base_delay=self._retry_base_delay,
                    max_delay=self._retry_max_delay,
                ),
            )
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            attempts = exc.last_attempt.attempt_number
            log.error("processing.attempts_exhausted", attempts=attempts, error=str(cause))

            if not config.fallback_to_rule_based or config.mode == ProcessingMode.RULE_BASED:
                raise ProcessingFailedError(config.mode, attempts, cause) from cause

            return self._fallback(client_id, communications, config, attempts, cause, started)

        elapsed_ms = (time.perf_counter() - started) * 1000
        log.info(
            "processing.completed",
            attempts=attempts,
            elapsed_ms=round(elapsed_ms, 2),
            tokens_used=result.tokens_used,
        )
        return self._enhance(
            client_id,
            result,
            ProcessingMetrics(
                elapsed_ms=elapsed_ms,
                backend=backend.mode,
                confidence=backend.confidence,
                tokens_used=result.tokens_used,
                attempts=attempts,
                requested_mode=config.mode,
            ),
        )

    async def _run_backend(
        self,
        backend: AnalysisBackend,
        communications: list[Communication],
        timeout_ms: int,
    ) -> AnalysisResult:
        """One attempt; every backend failure surfaces as BackendExecutionError."""
        started = time.perf_counter()
        try:
            outcome = backend.analyze(communications)
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise BackendTimeoutError(backend.mode, timeout_ms) from exc
        except BackendExecutionError:
            raise
        except Exception as exc:
            raise BackendExecutionError(backend.mode, str(exc) or type(exc).__name__, exc) from exc

        # Synchronous backends cannot be interrupted; judge them after the fact
        if (time.perf_counter() - started) * 1000 > timeout_ms:
            raise BackendTimeoutError(backend.mode, timeout_ms)
        if not isinstance(outcome, AnalysisResult):
            raise BackendExecutionError(
                backend.mode, f"returned {type(outcome).__name__}, expected AnalysisResult"
            )
        return outcome

    def _fallback(
        self,
        client_id: str,
        communications: list[Communication],
        config: ProcessingConfig,
        attempts: int,
        cause: BaseException | None,
        started: float,
    ) -> EnhancedInsights:
        marker = FALLBACK_MARKERS.get(config.mode, "[Fallback]")
        try:
            result = self._rule_based.analyze(communications)
            if inspect.isawaitable(result):
                raise TypeError("rule-based backend must be synchronous")
        except Exception as exc:
            logger.error(
                "processing.fallback_failed",
                client_id=client_id,
                mode=config.mode.value,
                exc_info=True,
            )
            raise FallbackExhaustedError(config.mode, attempts, cause, exc) from exc

        result.summary.text = f"{marker} {result.summary.text}"
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.warning(
            "processing.fallback_used",
            client_id=client_id,
            mode=config.mode.value,
            attempts=attempts,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return self._enhance(
            client_id,
            result,
            ProcessingMetrics(
                elapsed_ms=elapsed_ms,
                backend=ProcessingMode.RULE_BASED,
                confidence=FALLBACK_CONFIDENCE,
                tokens_used=0,
                attempts=attempts,
                fallback=True,
                requested_mode=config.mode,
            ),
        )

    # ── Drafting ─────────────────────────────────────────────────────────

    def _drafting_backend(self) -> RemoteLLMBackend:
        """The remote LLM backend, built on demand even when another mode is active."""
        mode = ProcessingMode.REMOTE_LLM
        backend = self._backends.get(mode)
        if backend is None:
            if not self.validator.is_mode_available(mode):
                raise BackendUnavailableError(mode, "no credential configured")
            backend = self._build_backend(mode, self._config)
            self._backends[mode] = backend
        if not hasattr(backend, "draft_message"):
            raise BackendUnavailableError(mode, "backend does not support drafting")
        return backend

    async def executive_summary(
        self,
        client_id: str,
        raw_communications: Sequence[Any] | None,
    ) -> str:
        """Analyze, then have the remote LLM write an executive summary.

        Raises:
            BackendUnavailableError: If no remote LLM credential is configured.
        """
        backend = self._drafting_backend()
        insights = await self.process_client_communications(client_id, raw_communications)
        return await backend.executive_summary(insights)

    async def draft_message(
        self,
        client_id: str,
        raw_communications: Sequence[Any] | None,
        message_type: str,
    ) -> str:
        """Analyze, then have the remote LLM draft a client message.

        Raises:
            InputValidationError: If ``message_type`` is not a known purpose.
            BackendUnavailableError: If no remote LLM credential is configured.
        """
        if message_type not in MESSAGE_PURPOSES:
            raise InputValidationError(
                f"Unknown message type '{message_type}'. "
                f"Expected one of: {', '.join(MESSAGE_PURPOSES)}"
            )
        backend = self._drafting_backend()
        insights = await self.process_client_communications(client_id, raw_communications)
        return await backend.draft_message(insights, message_type)

    @staticmethod
    def _enhance(
        client_id: str,
        result: AnalysisResult,
        metrics: ProcessingMetrics,
    ) -> EnhancedInsights:
        return EnhancedInsights(
            **result.model_dump(),
            client_id=client_id,
            processing_metrics=metrics,
            backend_used=metrics.backend,
        )
