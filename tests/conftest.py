"""Shared fixtures for insights tests.

Provides:
- Settings built from explicit values (no .env, no API key)
- A fixed clock so time-relative rules are deterministic
- A blank spaCy pipeline whose entity ruler knows the names used in tests
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import spacy

from src.advisor_ai.config import Settings
from src.advisor_ai.insights.entities import EntityExtractor, add_entity_ruler

# Friday
NOW = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Settings with local NLP enabled and no remote LLM credential."""
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="",
        NLP_ENABLED=True,
        DEFAULT_AI_MODE="rule_based",
        AI_FALLBACK_TO_RULE_BASED=True,
        AI_TIMEOUT_MS=15000,
        AI_MAX_RETRIES=2,
        LLM_MAX_TOKENS=2000,
        LLM_TEMPERATURE=0.3,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    """Clock callable pinned to NOW."""
    return lambda: NOW


@pytest.fixture(scope="session")
def entity_pipeline():
    """Deterministic spaCy pipeline: no statistical model, rule-based entities only."""
    return add_entity_ruler(
        spacy.blank("en"),
        [
            {"label": "PERSON", "pattern": "Jane Doe"},
            {"label": "PERSON", "pattern": "Tom Baker"},
            {"label": "ORG", "pattern": "Acme Capital"},
            {"label": "MONEY", "pattern": "50,000"},
            {"label": "DATE", "pattern": "tax season"},
        ],
    )


@pytest.fixture
def entity_extractor(entity_pipeline) -> EntityExtractor:
    return EntityExtractor(entity_pipeline)
