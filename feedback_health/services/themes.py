"""
Theme Extractor: short labels for the recurring topics in a week's feedback.

Claude is given the generated summary when one exists (shorter and more
focused), otherwise a rendering of the raw items. The fallback always
works from the raw items: distinct question types plus the company values
they reference.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from feedback_health.models.feedback_health import AnalysisSource, FeedbackItem
from feedback_health.services.completion import TextCompletionClient, strip_code_fences

logger = logging.getLogger(__name__)

MAX_THEMES = 5
THEMES_MAX_TOKENS = 150
MAX_CONTEXT_CHARS = 8000

THEMES_PROMPT = """\
Extract 3-5 key themes from this workplace feedback. Return ONLY a JSON array of theme strings.

Examples of good themes: ["communication", "technical skills", "leadership", "collaboration", "problem solving", "creativity", "time management"]
Do not include "rating", "text", or "comment" in the themes since these are question types, not themes.

Feedback:
{context}

Respond with only the JSON array:"""


class ThemeOutcome(BaseModel):
    themes: list[str] = Field(default_factory=list, max_length=MAX_THEMES)
    source: AnalysisSource


def extract_basic_themes(items: list[FeedbackItem]) -> list[str]:
    """Distinct question types and company values, first-seen order, at most 5."""
    themes: dict[str, None] = {}
    for item in items:
        if item.question_type:
            themes.setdefault(item.question_type, None)
        if item.company_value_name:
            themes.setdefault(f"company_value:{item.company_value_name}", None)
    return list(themes)[:MAX_THEMES]


def parse_themes(reply: str) -> list[str] | None:
    """Parse a JSON array of theme strings, or None if the reply is not one."""
    try:
        parsed: Any = json.loads(strip_code_fences(reply))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list) or not all(isinstance(t, str) for t in parsed):
        return None
    themes = [t.strip() for t in parsed if t.strip()]
    return themes[:MAX_THEMES] or None


def _render_items(items: list[FeedbackItem]) -> str:
    lines = []
    for item in items:
        answer = " ".join(
            t.strip() for t in (item.text_response, item.comment_text) if t and t.strip()
        )
        lines.append(
            f"Q: {item.question_text or 'General feedback'} | A: {answer}".strip()
        )
    return "\n".join(lines)


class ThemeExtractor:
    def __init__(self, completion_client: TextCompletionClient) -> None:
        self._completion = completion_client

    async def extract(
        self,
        items: list[FeedbackItem],
        summary: Optional[str] = None,
    ) -> ThemeOutcome:
        if not items:
            return ThemeOutcome(themes=[], source="empty")

        context = summary.strip() if summary and summary.strip() else _render_items(items)
        result = await self._completion.try_complete(
            THEMES_PROMPT.format(context=context[:MAX_CONTEXT_CHARS]), THEMES_MAX_TOKENS,
        )
        if result.ok:
            themes = parse_themes(result.text)
            if themes is not None:
                return ThemeOutcome(themes=themes, source="ai")
            logger.warning("Could not parse AI themes response %r", result.text[:100])

        return ThemeOutcome(themes=extract_basic_themes(items), source="fallback")
