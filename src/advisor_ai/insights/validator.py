"""Processing configuration resolution and health reporting.

ConfigValidator turns Settings plus caller overrides into a ProcessingConfig
that is always usable: an unavailable mode is swapped for the best available
one and out-of-range numbers are reset to their defaults. Nothing here
raises for a bad configuration; problems are logged and reported.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from src.advisor_ai.config import Settings, get_settings
from src.advisor_ai.insights.schemas import ConfigValidation, ProcessingConfig, ProcessingMode

logger = structlog.get_logger(__name__)

# ── Bounds ───────────────────────────────────────────────────────────────────

TIMEOUT_BOUNDS_MS = (1000, 60000)
RETRY_BOUNDS = (0, 5)
MAX_TOKEN_BOUNDS = (100, 4000)
TEMPERATURE_BOUNDS = (0.0, 2.0)

# Best-first order used when the requested mode is unavailable
_MODE_PRIORITY = (
    ProcessingMode.REMOTE_LLM,
    ProcessingMode.LOCAL_NLP,
    ProcessingMode.RULE_BASED,
)


def parse_mode(value: Any) -> ProcessingMode | None:
    """Parse a mode name (or legacy alias); None when unrecognised."""
    if isinstance(value, ProcessingMode):
        return value
    try:
        return ProcessingMode(value)
    except ValueError:
        return None


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def _in_bounds(value: Any, bounds: tuple[float, float]) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return bounds[0] <= value <= bounds[1]


class ConfigValidator:
    """Resolves and audits processing configuration.

    Args:
        settings: Application settings; defaults to the cached settings.
        credential_configured: Whether a remote LLM credential can be
            obtained. Defaults to whether OPENAI_API_KEY is set; callers
            that inject their own credential provider pass True.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        credential_configured: bool | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if credential_configured is None:
            credential_configured = bool(self._settings.OPENAI_API_KEY)
        self._credential_configured = credential_configured

    @property
    def settings(self) -> Settings:
        return self._settings

    # ── Availability ─────────────────────────────────────────────────────

    def is_mode_available(self, mode: ProcessingMode) -> bool:
        if mode == ProcessingMode.REMOTE_LLM:
            return self._credential_configured
        if mode == ProcessingMode.LOCAL_NLP:
            return self._settings.NLP_ENABLED
        return True

    def available_modes(self) -> list[ProcessingMode]:
        """Modes usable right now, cheapest first."""
        return [mode for mode in ProcessingMode if self.is_mode_available(mode)]

    def best_available_mode(self, preferred: ProcessingMode | None = None) -> ProcessingMode:
        if preferred is not None and self.is_mode_available(preferred):
            return preferred
        for mode in _MODE_PRIORITY:
            if self.is_mode_available(mode):
                return mode
        return ProcessingMode.RULE_BASED

    # ── Resolution ───────────────────────────────────────────────────────

    def defaults(self) -> dict[str, Any]:
        """Raw configuration values derived from settings, before correction."""
        s = self._settings
        return {
            "mode": s.DEFAULT_AI_MODE,
            "timeout_ms": s.AI_TIMEOUT_MS,
            "max_retries": s.AI_MAX_RETRIES,
            "fallback_to_rule_based": s.AI_FALLBACK_TO_RULE_BASED,
            "model": s.LLM_MODEL,
            "max_tokens": s.LLM_MAX_TOKENS,
            "temperature": s.LLM_TEMPERATURE,
        }

    def resolve(
        self,
        overrides: ProcessingConfig | Mapping[str, Any] | None = None,
    ) -> ProcessingConfig:
        """Merge overrides onto the defaults and correct anything unusable.

        Args:
            overrides: A full ProcessingConfig or a partial mapping of
                ProcessingConfig field names. None values are ignored.

        Returns:
            A ProcessingConfig whose mode is available and whose numeric
            fields are within bounds.
        """
        defaults = self.defaults()
        raw = dict(defaults)
        if isinstance(overrides, ProcessingConfig):
            raw.update(overrides.model_dump())
        elif overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None and k in raw})

        requested = parse_mode(raw["mode"])
        mode = self.best_available_mode(requested)
        if requested != mode:
            logger.warning(
                "ai_config.mode_unavailable",
                requested=str(raw["mode"]),
                resolved=mode.value,
                available=[m.value for m in self.available_modes()],
            )

        timeout_ms = self._corrected(
            "timeout_ms", raw["timeout_ms"], defaults["timeout_ms"], TIMEOUT_BOUNDS_MS
        )
        max_retries = self._corrected(
            "max_retries", raw["max_retries"], defaults["max_retries"], RETRY_BOUNDS
        )
        max_tokens = self._corrected(
            "max_tokens", raw["max_tokens"], defaults["max_tokens"], MAX_TOKEN_BOUNDS
        )
        temperature = self._corrected(
            "temperature", raw["temperature"], defaults["temperature"], TEMPERATURE_BOUNDS
        )

        return ProcessingConfig(
            mode=mode,
            timeout_ms=int(timeout_ms),
            max_retries=int(max_retries),
            fallback_to_rule_based=bool(raw["fallback_to_rule_based"]),
            model=str(raw["model"] or defaults["model"]),
            max_tokens=int(max_tokens),
            temperature=float(temperature),
        )

    def _corrected(
        self,
        name: str,
        value: Any,
        default: float,
        bounds: tuple[float, float],
    ) -> float:
        if _in_bounds(value, bounds):
            return value
        corrected = _clamp(default, bounds)
        logger.warning(
            "ai_config.value_out_of_range",
            field=name,
            value=value,
            corrected=corrected,
            bounds=list(bounds),
        )
        return corrected

    # ── Reporting ────────────────────────────────────────────────────────

    def validate(self) -> ConfigValidation:
        """Audit the raw settings without correcting them."""
        s = self._settings
        errors: list[str] = []
        warnings: list[str] = []

        if parse_mode(s.DEFAULT_AI_MODE) is None:
            errors.append(
                f"Invalid DEFAULT_AI_MODE: {s.DEFAULT_AI_MODE}. "
                f"Must be one of: {', '.join(m.value for m in ProcessingMode)}"
            )
        if not _in_bounds(s.LLM_MAX_TOKENS, MAX_TOKEN_BOUNDS):
            errors.append("LLM_MAX_TOKENS should be between 100 and 4000")
        if not _in_bounds(s.LLM_TEMPERATURE, TEMPERATURE_BOUNDS):
            errors.append("LLM_TEMPERATURE should be between 0 and 2")
        if not _in_bounds(s.AI_MAX_RETRIES, RETRY_BOUNDS):
            errors.append("AI_MAX_RETRIES should be between 0 and 5")
        if s.AI_TIMEOUT_MS < TIMEOUT_BOUNDS_MS[0]:
            warnings.append("AI_TIMEOUT_MS is very low, may cause frequent timeouts")
        elif s.AI_TIMEOUT_MS > TIMEOUT_BOUNDS_MS[1]:
            warnings.append("AI_TIMEOUT_MS exceeds 60000 and will be reset to the default")

        requested = parse_mode(s.DEFAULT_AI_MODE)
        if requested is not None and not self.is_mode_available(requested):
            warnings.append(
                f"Default mode '{requested.value}' is not available; "
                f"'{self.best_available_mode(requested).value}' will be used"
            )
        if self.available_modes() == [ProcessingMode.RULE_BASED]:
            warnings.append("Only rule-based mode is available - consider enabling local NLP")

        return ConfigValidation(is_valid=not errors, errors=errors, warnings=warnings)

    def summary(self) -> dict[str, Any]:
        """Configuration snapshot for diagnostics and the HTTP surface."""
        config = self.resolve()
        return {
            "default_mode": config.mode.value,
            "available_modes": [m.value for m in self.available_modes()],
            "remote_llm_configured": self._credential_configured,
            "local_nlp_enabled": self._settings.NLP_ENABLED,
            "fallback_to_rule_based": config.fallback_to_rule_based,
            "timeout_ms": config.timeout_ms,
            "max_retries": config.max_retries,
            "model": config.model,
        }

    def recommendations(self) -> list[str]:
        s = self._settings
        recommendations: list[str] = []

        if not self._credential_configured:
            recommendations.append(
                "Add OPENAI_API_KEY to enable remote LLM analysis with deeper insights"
            )
        if s.AI_TIMEOUT_MS < 5000:
            recommendations.append(
                "Consider increasing AI_TIMEOUT_MS to at least 5000ms for remote LLM calls"
            )
        if s.AI_MAX_RETRIES < 2:
            recommendations.append(
                "Consider setting AI_MAX_RETRIES to 2 or higher for better reliability"
            )
        if not s.AI_FALLBACK_TO_RULE_BASED:
            recommendations.append(
                "Enable AI_FALLBACK_TO_RULE_BASED so failed analyses still return insights"
            )
        if self.available_modes() == [ProcessingMode.RULE_BASED]:
            recommendations.append(
                "Only rule-based analysis is available - enable NLP_ENABLED or add an API key"
            )
        return recommendations

    def health_check(self) -> dict[str, Any]:
        """Aggregate validation, availability and recommendations."""
        validation = self.validate()
        available = self.available_modes()
        healthy = validation.is_valid and bool(available)

        logger.info(
            "ai_config.health_check",
            healthy=healthy,
            available_modes=[m.value for m in available],
            errors=len(validation.errors),
            warnings=len(validation.warnings),
        )

        return {
            "healthy": healthy,
            "errors": validation.errors,
            "warnings": validation.warnings,
            "available_modes": [m.value for m in available],
            "has_advanced_mode": any(m != ProcessingMode.RULE_BASED for m in available),
            "recommendations": self.recommendations(),
            "summary": self.summary(),
        }
