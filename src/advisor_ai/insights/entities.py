"""Offline named-entity extraction for client communications.

People and organizations come from a spaCy pipeline's ``doc.ents``. An
entity ruler placed ahead of the statistical NER tags the financial
institutions clients mention most. Money amounts and date references merge
the pipeline's MONEY/DATE spans with regex patterns for the phrasings small
models miss ("5000 dollars", "end of the quarter").
"""

from __future__ import annotations

import re
from functools import lru_cache

import spacy
import structlog
from pydantic import BaseModel, Field
from spacy.language import Language

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "en_core_web_sm"
MAX_PER_KIND = 10

KNOWN_ORGANIZATIONS = (
    "Vanguard", "Fidelity", "Schwab", "Charles Schwab", "BlackRock", "Morgan Stanley",
    "Goldman Sachs", "JPMorgan", "Wells Fargo", "Merrill Lynch", "IRS",
)

_MONEY = re.compile(
    r"(?:\$\s?\d[\d,]*(?:\.\d+)?(?:\s?(?:k|m|bn|thousand|million|billion)\b)?"
    r"|\b\d[\d,]*(?:\.\d+)?\s?(?:dollars|usd)\b)",
    re.IGNORECASE,
)

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|"
    "November|December|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec"
)
_WEEKDAYS = "Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday"
_DATES = re.compile(
    rf"\b(?:(?:{_MONTHS})\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?"
    rf"|\d{{1,2}}/\d{{1,2}}(?:/\d{{2,4}})?"
    rf"|\d{{4}}-\d{{2}}-\d{{2}}"
    rf"|(?:next|this|last)\s+(?:week|month|quarter|year|{_WEEKDAYS})"
    rf"|(?:{_WEEKDAYS})"
    rf"|tomorrow|today|yesterday"
    rf"|(?:end of|by)\s+(?:the\s+)?(?:week|month|quarter|year))\b",
    re.IGNORECASE,
)


class Entities(BaseModel):
    people: list[str] = Field(default_factory=list)
    organizations: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    money: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.people or self.organizations or self.dates or self.money)


# ── Pipeline ─────────────────────────────────────────────────────────────────


def add_entity_ruler(nlp: Language, patterns: list[dict] | None = None) -> Language:
    """Add an entity ruler for known institutions (plus ``patterns``) ahead of NER."""
    before = "ner" if "ner" in nlp.pipe_names else None
    ruler = nlp.add_pipe("entity_ruler", before=before)
    ruler.add_patterns(
        [{"label": "ORG", "pattern": name} for name in KNOWN_ORGANIZATIONS]
        + list(patterns or [])
    )
    return nlp


@lru_cache(maxsize=4)
def load_pipeline(model: str = DEFAULT_MODEL) -> Language:
    """Load a spaCy model once per process.

    A missing model package degrades to a blank English pipeline that only
    carries the entity ruler, so known institutions are still found.
    """
    try:
        nlp = spacy.load(model)
    except OSError:
        logger.warning("entities.model_unavailable", model=model, using="blank:en")
        nlp = spacy.blank("en")
    logger.info("entities.pipeline_loaded", model=model, pipes=nlp.pipe_names)
    return add_entity_ruler(nlp)


# ── Extraction ───────────────────────────────────────────────────────────────


def _unique(values: list[str]) -> list[str]:
    seen: dict[str, str] = {}
    for value in values:
        cleaned = " ".join(value.split()).rstrip(".,")
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen[key] = cleaned
    return list(seen.values())[:MAX_PER_KIND]


def _merge(primary: list[str], extra: list[str]) -> list[str]:
    """Append ``extra`` values that do not overlap anything already kept."""
    merged = list(primary)
    for value in extra:
        lowered = value.lower()
        if any(lowered in kept.lower() or kept.lower() in lowered for kept in merged):
            continue
        merged.append(value)
    return _unique(merged)


def extract_money(text: str) -> list[str]:
    return _unique(_MONEY.findall(text))


def extract_dates(text: str) -> list[str]:
    return _unique(_DATES.findall(text))


class EntityExtractor:
    """Extracts people, organizations, money amounts and dates.

    Args:
        nlp: spaCy pipeline with an ``ents``-producing component. Defaults
            to ``load_pipeline()``.
    """

    def __init__(self, nlp: Language | None = None) -> None:
        self.nlp = nlp or load_pipeline()

    def extract(self, text: str) -> Entities:
        if not text.strip():
            return Entities()

        spans: dict[str, list[str]] = {}
        for ent in self.nlp(text).ents:
            spans.setdefault(ent.label_, []).append(ent.text)

        organizations = _unique(spans.get("ORG", []))
        org_words = {word for org in organizations for word in org.split()}
        people = [
            person
            for person in _unique(spans.get("PERSON", []))
            if not org_words.intersection(person.split())
        ]
        return Entities(
            people=people,
            organizations=organizations,
            dates=_merge(extract_dates(text), spans.get("DATE", []) + spans.get("TIME", [])),
            money=_merge(extract_money(text), spans.get("MONEY", [])),
        )


def extract_entities(text: str, nlp: Language | None = None) -> Entities:
    return EntityExtractor(nlp).extract(text)
