"""
Summary Generator: prose digest of the feedback a user received or gave.

Received feedback is summarized as a coaching report (strengths, areas
for improvement, quotes, recommendations); provided feedback as a
read on the user's tone and engagement as a reviewer. Falls back to a
one-sentence count summary when Claude is unavailable.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from feedback_health.models.feedback_health import AnalysisSource, Direction, FeedbackItem
from feedback_health.services.completion import TextCompletionClient

logger = logging.getLogger(__name__)

SUMMARY_MAX_TOKENS = 300
MAX_CONTEXT_CHARS = 12000

RECEIVED_SECTIONS = """\
Create a comprehensive analysis of feedback that {name} received this week with these sections:

**STRENGTHS IDENTIFIED:**
- List top 3 specific strengths with examples from the feedback {name} received this week

**AREAS FOR IMPROVEMENT:**
- List top 3 areas with specific examples from feedback {name} received this week

**KEY THEMES & PATTERNS:**
- Identify 2-3 recurring themes across all feedback {name} received this week

**NOTABLE QUOTES:**
- Include 2-3 most impactful direct quotes from the feedback (if any)

**QUANTITATIVE INSIGHTS:**
- Summary of rating patterns and averages (if ratings provided)

**SPECIFIC RECOMMENDATIONS:**
- 3 actionable recommendations based on the feedback {name} received this week
"""

PROVIDED_SECTIONS = """\
Create a comprehensive analysis of feedback that {name} provided this week with these sections:

**Overall Tone and Sentiment:**
- Summarize the overall tone of the feedback provided by {name} this week

**Overall Engagement:**
- Summarize the overall engagement level of {name} in providing feedback this week

**Identify Potential Conflicts:**
- Identify any potential conflicts or issues in the feedback provided by {name} this week

**Key Themes and Patterns:**
- Identify 2-3 recurring themes across all feedback provided by {name}
"""

SUMMARY_FOOTER = """
Be specific, constructive, and focus on actionable insights.
Base everything on the actual feedback provided.
If limited feedback is available, acknowledge this in your analysis.

Feedback data:
{context}"""


class SummaryOutcome(BaseModel):
    text: Optional[str] = None
    source: AnalysisSource


def generate_basic_summary(items: list[FeedbackItem], direction: Direction) -> str | None:
    """Templated one-sentence summary built from counts and ratings."""
    if not items:
        return None

    ratings = [item.rating_value for item in items if item.rating_value]
    text_count = sum(1 for item in items if item.text_response and item.text_response.strip())

    summary = f"{direction.capitalize()} {len(items)} feedback responses"
    if ratings:
        summary += f" with an average rating of {sum(ratings) / len(ratings):.1f}/5"
    if text_count:
        summary += f" including {text_count} detailed comments"
    return summary + "."


def build_context(items: list[FeedbackItem]) -> str:
    """One line per item that carries a rating or any written answer."""
    lines = []
    for item in items:
        answer = " ".join(
            t.strip() for t in (item.text_response, item.comment_text) if t and t.strip()
        )
        if item.rating_value is None and not answer:
            continue
        rating = f"{item.rating_value}/5" if item.rating_value is not None else "n/a"
        lines.append(
            f"From {item.sender_name or 'Anonymous'}: "
            f"Q: {item.question_text or 'General feedback'} | "
            f"Rating: {rating} | Response: {answer}".strip()
        )
    return "\n".join(lines)[:MAX_CONTEXT_CHARS]


def build_summary_prompt(direction: Direction, user_name: str, context: str) -> str:
    sections = RECEIVED_SECTIONS if direction == "received" else PROVIDED_SECTIONS
    return sections.format(name=user_name) + SUMMARY_FOOTER.format(context=context)


class SummaryGenerator:
    def __init__(self, completion_client: TextCompletionClient) -> None:
        self._completion = completion_client

    async def generate(
        self,
        items: list[FeedbackItem],
        direction: Direction,
        user_name: str,
    ) -> SummaryOutcome:
        if not items:
            return SummaryOutcome(text=None, source="empty")

        context = build_context(items)
        if not context.strip():
            logger.debug("Empty summary context for %s (%s)", user_name, direction)
            return SummaryOutcome(text=generate_basic_summary(items, direction), source="fallback")

        result = await self._completion.try_complete(
            build_summary_prompt(direction, user_name or "this user", context),
            SUMMARY_MAX_TOKENS,
        )
        if result.ok and result.text.strip():
            return SummaryOutcome(text=result.text.strip(), source="ai")

        return SummaryOutcome(text=generate_basic_summary(items, direction), source="fallback")
