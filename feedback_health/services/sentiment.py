"""
Sentiment Analyzer: aggregate emotional valence of a set of feedback.

Asks Claude for a single number in [-1, 1] over the free-text responses
and comments. When there is no text, or the reply is unusable, the
rating heuristic (calculate_basic_sentiment) is used instead.
"""

import logging
import re
from typing import Optional

from pydantic import BaseModel

from feedback_health.models.feedback_health import AnalysisSource, FeedbackItem
from feedback_health.services.completion import TextCompletionClient, strip_code_fences

logger = logging.getLogger(__name__)

SENTIMENT_MAX_TOKENS = 50
MAX_CORPUS_CHARS = 12000

# Leading number of a reply, so "0.3 because..." still reads as 0.3
_LEADING_NUMBER = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)")

SENTIMENT_PROMPT = """\
Analyze the sentiment of this workplace feedback. Return ONLY a number between -1 and 1, where:
-1 = very negative
-0.5 = somewhat negative
0 = neutral
0.5 = somewhat positive
1 = very positive

Feedback text: "{corpus}"

Respond with only the number (e.g., 0.3):"""


class SentimentOutcome(BaseModel):
    value: Optional[float] = None
    source: AnalysisSource


def _rating_to_sentiment(rating: int) -> float:
    """Map a 1-5 rating onto the sentiment scale: 1-2 negative, 3 neutral, 4-5 positive."""
    if rating <= 2:
        return -0.5
    if rating == 3:
        return 0.0
    return 0.5


def calculate_basic_sentiment(items: list[FeedbackItem]) -> float | None:
    """Average rating-derived sentiment, or None when nothing was rated."""
    values = [
        _rating_to_sentiment(item.rating_value)
        for item in items
        if item.rating_value is not None
    ]
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def build_corpus(items: list[FeedbackItem]) -> str:
    """Join every non-blank response and comment into one text block."""
    parts = [
        text.strip()
        for item in items
        for text in (item.text_response, item.comment_text)
        if text and text.strip()
    ]
    return " ".join(parts)[:MAX_CORPUS_CHARS]


def parse_sentiment(reply: str) -> float | None:
    """Parse a reply into a sentiment value, or None if it is not a number in [-1, 1]."""
    match = _LEADING_NUMBER.match(strip_code_fences(reply))
    if match is None:
        return None
    value = float(match.group())
    if value < -1.0 or value > 1.0:
        return None
    return value


class SentimentAnalyzer:
    def __init__(self, completion_client: TextCompletionClient) -> None:
        self._completion = completion_client

    async def analyze(self, items: list[FeedbackItem]) -> SentimentOutcome:
        if not items:
            return SentimentOutcome(value=None, source="empty")

        corpus = build_corpus(items)
        if not corpus:
            logger.debug("No text content for sentiment, using ratings")
            return SentimentOutcome(value=calculate_basic_sentiment(items), source="fallback")

        result = await self._completion.try_complete(
            SENTIMENT_PROMPT.format(corpus=corpus), SENTIMENT_MAX_TOKENS,
        )
        if result.ok:
            value = parse_sentiment(result.text)
            if value is not None:
                return SentimentOutcome(value=round(value, 2), source="ai")
            logger.warning(
                "Invalid AI sentiment response %r, falling back to ratings",
                result.text[:50],
            )

        return SentimentOutcome(value=calculate_basic_sentiment(items), source="fallback")
