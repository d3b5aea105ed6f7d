"""Chat completions for the remote analysis backend, via a LiteLLM Router.

Everything the remote backend sends besides its own system prompt is built
from client email and calendar text, which is untrusted. Before a request
leaves the process that text is screened for content aimed at the model
rather than the advisor: hidden markup, chat role tags pasted into a body
or a quoted thread, instructions addressed to an assistant, and requests to
send client data elsewhere. Matches are cut out and logged; the rest of the
message is kept so the analysis still sees what the client wrote.

The router makes a single attempt per call. Retries and fallback belong to
the processing manager.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import structlog
from litellm import Router

logger = structlog.get_logger(__name__)

MODEL_GROUP = "analysis"
REDACTED = "[removed]"


# ── Email Content Screening ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ScreeningRule:
    name: str
    pattern: re.Pattern
    replacement: str = REDACTED


SCREENING_RULES: tuple[ScreeningRule, ...] = (
    # Invisible to the reader of a rendered email, visible to the model
    ScreeningRule(
        "hidden_content",
        re.compile(
            r"<!--.*?-->|[\u200b-\u200f\u2060\ufeff]|[\x00-\x08\x0b\x0c\x0e-\x1f]",
            re.DOTALL,
        ),
        replacement="",
    ),
    # Also matches inside "> " quoted or forwarded history
    ScreeningRule(
        "role_tag",
        re.compile(
            r"^[ \t>]*[\[<]?\s*(?:system|assistant|developer)\s*[\]>]?\s*:"
            r"|<\|im_(?:start|end)\|>",
            re.IGNORECASE | re.MULTILINE,
        ),
    ),
    ScreeningRule(
        "instruction_override",
        re.compile(
            r"\b(?:ignore|disregard|forget|override)\s+(?:all\s+)?(?:of\s+)?(?:the\s+|your\s+)?"
            r"(?:previous|prior|above|earlier|original)?\s*(?:instructions|rules|prompt)\b"
            r"|\bnew\s+instructions\s*:",
            re.IGNORECASE,
        ),
    ),
    ScreeningRule(
        "addressed_to_assistant",
        re.compile(
            r"\b(?:note|message|instructions?)\s+(?:to|for)\s+(?:the\s+)?"
            r"(?:ai|assistant|model|llm|chatbot)\b"
            r"|\bif\s+you\s+are\s+an?\s+(?:ai|assistant|language\s+model)\b"
            r"|\b(?:you\s+are\s+now|from\s+now\s+on\s+you\s+are|pretend\s+(?:to\s+be|you\s+are))\b",
            re.IGNORECASE,
        ),
    ),
    ScreeningRule(
        "data_exfiltration",
        re.compile(
            # Quantified so "send the account statements" stays a normal request
            r"\b(?:send|forward|email|share|export|upload)\s+(?:all|every|any|other)\s+"
            r"(?:of\s+)?(?:the\s+|your\s+)?(?:other\s+)?(?:client|customer|account)s?'?\s+"
            r"(?:data|details|records?|lists?|information|statements|holdings)\b"
            r"|\b(?:reveal|repeat|print|show)\s+(?:your\s+)?(?:system\s+prompt|instructions)\b",
            re.IGNORECASE,
        ),
    ),
)


def find_injection_markers(text: str) -> list[str]:
    """Names of every screening rule that matches ``text``, in rule order."""
    return [rule.name for rule in SCREENING_RULES if rule.pattern.search(text)]


def clean_email_content(text: str) -> str:
    for rule in SCREENING_RULES:
        text = rule.pattern.sub(rule.replacement, text)
    return text


def sanitize_messages(messages: list[dict]) -> list[dict]:
    """Screen every non-system message; system prompts are ours and pass as-is."""
    sanitized = []
    for message in messages:
        content = message.get("content") or ""
        if message.get("role") == "system" or not content:
            sanitized.append(message)
            continue

        markers = find_injection_markers(content)
        if not markers:
            sanitized.append(message)
            continue

        cleaned = clean_email_content(content)
        logger.warning(
            "llm.email_content_screened",
            role=message.get("role"),
            markers=markers,
            removed_chars=len(content) - len(cleaned),
        )
        sanitized.append({**message, "content": cleaned})
    return sanitized


# ── LLM Service ──────────────────────────────────────────────────────────────


def _usage(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    if not usage:
        return {}
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class LLMService:
    """Single-model LiteLLM Router for the analysis model group.

    Args:
        api_key: Provider credential. Without one the service has no router
            and every completion() call raises.
        model: LiteLLM model string, e.g. "openai/gpt-4o-mini".
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, api_key: str, model: str, timeout: float = 30) -> None:
        self.model = model
        self.router: Router | None = None
        if not api_key:
            logger.warning("llm.service_unconfigured", model=model, reason="no api key")
            return

        self.router = Router(
            model_list=[
                {
                    "model_name": MODEL_GROUP,
                    "litellm_params": {"model": model, "api_key": api_key},
                }
            ],
            num_retries=0,
            timeout=timeout,
            allowed_fails=3,
            cooldown_time=30,
        )

    async def completion(
        self,
        messages: list[dict],
        max_tokens: int = 1500,
        temperature: float = 0.3,
        response_format: dict[str, Any] | None = None,
        metadata: dict | None = None,
    ) -> dict:
        """Run one screened chat completion.

        Args:
            messages: Chat messages; non-system content is screened first.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0-2).
            response_format: Provider response format, e.g.
                {"type": "json_object"}. Omitted from the call when None.
            metadata: Passed through to LiteLLM callbacks.

        Returns:
            Dict with ``content``, ``model`` and ``usage`` (empty when the
            provider reports none).

        Raises:
            RuntimeError: If the service was built without an API key.
        """
        if self.router is None:
            raise RuntimeError("No LLM API key configured")

        extra: dict[str, Any] = {}
        if response_format is not None:
            extra["response_format"] = response_format

        response = await self.router.acompletion(
            model=MODEL_GROUP,
            messages=sanitize_messages(messages),
            max_tokens=max_tokens,
            temperature=temperature,
            metadata=metadata or {},
            **extra,
        )
        usage = _usage(response)
        logger.debug("llm.completion_done", model=self.model, tokens=usage.get("total_tokens", 0))
        return {
            "content": response.choices[0].message.content,
            "model": response.model,
            "usage": usage,
        }
