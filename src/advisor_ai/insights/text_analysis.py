"""Per-message text analysis and message-level insights.

TextAnalyzer looks at one piece of text at a time (a single email or event),
unlike the backends which summarise a client's whole history. It reports
lexicon sentiment with TextBlob polarity, spaCy entities, content topics,
frequency keywords, a language guess, Flesch reading ease and a short
extractive summary. generate_insights turns those per-message analyses into
prioritised alerts, tasks and reminders.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import Enum

import structlog
from pydantic import BaseModel, Field
from spacy.lang.en.stop_words import STOP_WORDS

from src.advisor_ai.insights.backends.local_nlp import polarity
from src.advisor_ai.insights.entities import EntityExtractor
from src.advisor_ai.insights.heuristics import NEGATIVE_WORDS, POSITIVE_WORDS
from src.advisor_ai.insights.schemas import Communication, CommunicationKind, MeetingStatus

logger = structlog.get_logger(__name__)

MAX_KEYWORDS = 10
MAX_EMAILS = 10
MAX_EVENTS = 5
MAX_INSIGHTS = 10

# Lexicon score per token below which an email raises an alert
ALERT_COMPARATIVE = -0.5
MIN_SUMMARY_SENTENCE = 20

CONTENT_TOPICS: dict[str, re.Pattern] = {
    "finance": re.compile(
        r"\b(portfolio|investments?|stocks?|bonds?|funds?|retirement|financial)\b", re.IGNORECASE
    ),
    "meeting": re.compile(r"\b(meeting|call|schedule|appointment|conference)\b", re.IGNORECASE),
    "project": re.compile(r"\b(project|deliverable|milestone|deadline|task)\b", re.IGNORECASE),
    "client": re.compile(r"\b(client|customer|account|relationship)\b", re.IGNORECASE),
    "preparation": re.compile(r"\b(presentation|review|proposal|agenda)\b", re.IGNORECASE),
}

ACTION_PHRASES = ("action required", "please review", "approval needed", "deadline", "urgent")

_ENGLISH_MARKERS = re.compile(r"\b(the|and|or|but|in|on|at|to|for|of|with|by)\b", re.IGNORECASE)
_SPANISH_MARKERS = re.compile(
    r"\b(el|la|de|que|y|en|un|es|se|no|te|lo|le|da|su|por|son|con|para|al|del|los|las)\b",
    re.IGNORECASE,
)
_SENTENCE_END = re.compile(r"[.!?]+")
_TOKEN = re.compile(r"[A-Za-z']+")
_VOWELS = "aeiouy"


# ── Schemas ──────────────────────────────────────────────────────────────────


class InsightType(str, Enum):
    TASK = "task"
    REMINDER = "reminder"
    SUMMARY = "summary"
    ALERT = "alert"
    OPPORTUNITY = "opportunity"


class InsightPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK: dict[InsightPriority, int] = {
    InsightPriority.URGENT: 4,
    InsightPriority.HIGH: 3,
    InsightPriority.MEDIUM: 2,
    InsightPriority.LOW: 1,
}


class InsightSource(str, Enum):
    EMAIL = "email"
    CALENDAR = "calendar"


class TextSentiment(BaseModel):
    score: int = 0
    comparative: float = Field(0.0, description="Lexicon score divided by token count")
    polarity: float = Field(0.0, ge=-1, le=1, description="TextBlob polarity")
    positive: list[str] = Field(default_factory=list)
    negative: list[str] = Field(default_factory=list)


class Readability(BaseModel):
    score: float = Field(0.0, ge=0, le=100, description="Flesch reading ease, clamped")
    level: str = "Unknown"


class TextAnalysis(BaseModel):
    sentiment: TextSentiment = Field(default_factory=TextSentiment)
    people: list[str] = Field(default_factory=list)
    organizations: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    summary: str = "No analysis available."
    language: str = "en"
    readability: Readability = Field(default_factory=Readability)


class CommunicationInsight(BaseModel):
    """One actionable observation about a single email or event."""

    id: str
    type: InsightType
    title: str
    detail: str
    confidence: float = Field(ge=0, le=1)
    priority: InsightPriority
    suggested_actions: list[str] = Field(default_factory=list)
    source: InsightSource
    timestamp: str


# ── Text Measures ────────────────────────────────────────────────────────────


def content_topics(text: str) -> list[str]:
    return [topic for topic, pattern in CONTENT_TOPICS.items() if pattern.search(text)]


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Most frequent non-stop-words longer than three characters; ties keep first-seen order."""
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    counts = Counter(w for w in words if len(w) > 3 and w not in STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def detect_language(text: str) -> str:
    """'es' when Spanish function words clearly dominate, else 'en'."""
    english = len(_ENGLISH_MARKERS.findall(text))
    spanish = len(_SPANISH_MARKERS.findall(text))
    if spanish > english and spanish > 5:
        return "es"
    return "en"


def count_syllables(word: str) -> int:
    word = word.lower()
    if len(word) <= 3:
        return 1
    count = 0
    previous_vowel = False
    for char in word:
        is_vowel = char in _VOWELS
        if is_vowel and not previous_vowel:
            count += 1
        previous_vowel = is_vowel
    if word.endswith("e"):
        count -= 1
    return max(1, count)


def readability(text: str) -> Readability:
    """Flesch reading ease with the standard grade bands."""
    sentences = [s for s in _SENTENCE_END.split(text) if s.strip()]
    words = text.split()
    if not sentences or not words:
        return Readability()

    syllables = sum(count_syllables(w) for w in words)
    score = 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * (syllables / len(words))

    bands = (
        (90, "Very Easy"),
        (80, "Easy"),
        (70, "Fairly Easy"),
        (60, "Standard"),
        (50, "Fairly Difficult"),
        (30, "Difficult"),
        (0, "Very Difficult"),
    )
    level = next((label for floor, label in bands if score >= floor), "College")
    return Readability(score=round(max(0.0, min(100.0, score)), 1), level=level)


def extractive_summary(text: str) -> str:
    """First two substantial sentences, or a placeholder."""
    sentences = [s.strip() for s in _SENTENCE_END.split(text) if len(s.strip()) > MIN_SUMMARY_SENTENCE]
    if not sentences:
        return "No summary available."
    return ". ".join(sentences[:2]) + "."


def text_sentiment(text: str) -> TextSentiment:
    tokens = _TOKEN.findall(text)
    positive = [t for t in tokens if POSITIVE_WORDS.match(t)]
    negative = [t for t in tokens if NEGATIVE_WORDS.match(t)]
    score = len(positive) - len(negative)
    return TextSentiment(
        score=score,
        comparative=score / len(tokens) if tokens else 0.0,
        polarity=polarity(text),
        positive=positive,
        negative=negative,
    )


# ── Analyzer ─────────────────────────────────────────────────────────────────


class TextAnalyzer:
    """Single-text analysis and message-level insight generation.

    Args:
        entity_extractor: Extractor for people and organizations; built over
            the default spaCy model on first use when omitted.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        entity_extractor: EntityExtractor | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._entities = entity_extractor
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def entities(self) -> EntityExtractor:
        if self._entities is None:
            self._entities = EntityExtractor()
        return self._entities

    def analyze(self, text: str) -> TextAnalysis:
        if not text or not text.strip():
            return TextAnalysis()

        entities = self.entities.extract(text)
        return TextAnalysis(
            sentiment=text_sentiment(text),
            people=entities.people,
            organizations=entities.organizations,
            topics=content_topics(text),
            keywords=extract_keywords(text),
            summary=extractive_summary(text),
            language=detect_language(text),
            readability=readability(text),
        )

    def generate_insights(self, communications: Sequence[Communication]) -> list[CommunicationInsight]:
        """Insights for the first emails and upcoming events, most pressing first."""
        now = self._clock()
        emails = [c for c in communications if c.kind == CommunicationKind.EMAIL][:MAX_EMAILS]
        events = [
            c
            for c in communications
            if c.kind == CommunicationKind.EVENT
            or (c.is_meeting and c.status in (None, MeetingStatus.SCHEDULED))
        ][:MAX_EVENTS]

        insights: list[CommunicationInsight] = []
        for email in emails:
            insights.extend(self._email_insights(email, self.analyze(email.text)))
        for event in events:
            insights.extend(self._event_insights(event, self.analyze(event.text), now))

        insights.sort(key=lambda i: (PRIORITY_RANK[i.priority], i.confidence), reverse=True)
        logger.debug(
            "text_analysis.insights_generated",
            emails=len(emails),
            events=len(events),
            insights=len(insights),
        )
        return insights[:MAX_INSIGHTS]

    @staticmethod
    def _email_insights(email: Communication, analysis: TextAnalysis) -> list[CommunicationInsight]:
        insights: list[CommunicationInsight] = []
        timestamp = email.timestamp.isoformat()

        if analysis.sentiment.comparative < ALERT_COMPARATIVE:
            insights.append(
                CommunicationInsight(
                    id=f"urgent-{email.id}",
                    type=InsightType.ALERT,
                    title="Urgent: Negative Sentiment Detected",
                    detail=(
                        f"Email from {email.sender or 'client'} shows concerning sentiment. "
                        "Immediate attention recommended."
                    ),
                    confidence=min(1.0, abs(analysis.sentiment.comparative)),
                    priority=InsightPriority.URGENT,
                    suggested_actions=[
                        "Schedule immediate follow-up call",
                        "Review client relationship status",
                    ],
                    source=InsightSource.EMAIL,
                    timestamp=timestamp,
                )
            )

        lowered = email.text.lower()
        if any(phrase in lowered for phrase in ACTION_PHRASES):
            insights.append(
                CommunicationInsight(
                    id=f"action-{email.id}",
                    type=InsightType.TASK,
                    title="Action Item Detected",
                    detail=f"Email requires action: {email.subject}",
                    confidence=0.8,
                    priority=InsightPriority.HIGH,
                    suggested_actions=["Review email content", "Schedule response", "Add to task list"],
                    source=InsightSource.EMAIL,
                    timestamp=timestamp,
                )
            )

        if "meeting" in analysis.topics:
            insights.append(
                CommunicationInsight(
                    id=f"meeting-{email.id}",
                    type=InsightType.REMINDER,
                    title="Meeting Discussion",
                    detail="Email discusses meeting arrangements or follow-ups",
                    confidence=0.7,
                    priority=InsightPriority.MEDIUM,
                    suggested_actions=[
                        "Check calendar for related events",
                        "Prepare meeting materials",
                    ],
                    source=InsightSource.EMAIL,
                    timestamp=timestamp,
                )
            )
        return insights

    @staticmethod
    def _event_insights(
        event: Communication,
        analysis: TextAnalysis,
        now: datetime,
    ) -> list[CommunicationInsight]:
        insights: list[CommunicationInsight] = []
        timestamp = event.timestamp.isoformat()
        hours_until = (event.timestamp - now).total_seconds() / 3600

        if 0 < hours_until < 24:
            insights.append(
                CommunicationInsight(
                    id=f"upcoming-{event.id}",
                    type=InsightType.REMINDER,
                    title="Upcoming Meeting Within 24 Hours",
                    detail=f'Meeting "{event.subject}" starts within the next 24 hours',
                    confidence=1.0,
                    priority=InsightPriority.HIGH,
                    suggested_actions=["Review meeting agenda", "Prepare materials", "Confirm attendance"],
                    source=InsightSource.CALENDAR,
                    timestamp=timestamp,
                )
            )

        if "preparation" in analysis.topics:
            insights.append(
                CommunicationInsight(
                    id=f"prep-{event.id}",
                    type=InsightType.TASK,
                    title="Meeting Preparation Required",
                    detail=f'Meeting "{event.subject}" may require preparation based on content analysis',
                    confidence=0.6,
                    priority=InsightPriority.MEDIUM,
                    suggested_actions=["Prepare presentation materials", "Review relevant documents"],
                    source=InsightSource.CALENDAR,
                    timestamp=timestamp,
                )
            )
        return insights
