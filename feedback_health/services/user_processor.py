"""
User Processor: runs the weekly analysis for a single (user, week).

Steps:
1. Mark the analysis record as processing (idempotent restart marker)
2. Fetch received and provided feedback for the week
3. Re-filter both sets to the exact [week_start, week_start + 7d) window
4. Count company value nominations received
5. Derive sentiment, summary and themes for each direction
6. Persist the completed analysis record
7. Compute and persist health scores

Any failure after step 1 marks the record failed and re-raises, so the
coordinator counts the user as one error without affecting anyone else.
"""

import logging
from datetime import date, datetime

from feedback_health.db.gateway import PersistenceGateway, week_bounds
from feedback_health.models.feedback_health import (
    AnalysisResults,
    AnalysisStatus,
    Direction,
    FeedbackItem,
    UserBatchEntry,
)
from feedback_health.services.health_score import (
    HealthScoreCalculator,
    StoreHealthScoreCalculator,
)
from feedback_health.services.sentiment import SentimentAnalyzer
from feedback_health.services.summary import SummaryGenerator
from feedback_health.services.themes import ThemeExtractor

logger = logging.getLogger(__name__)

VALUES_QUESTION_TYPE = "values"


def filter_to_window(
    items: list[FeedbackItem],
    start: datetime,
    end: datetime,
) -> list[FeedbackItem]:
    """Keep items created in [start, end)."""
    return [item for item in items if start <= item.created_at < end]


def count_value_nominations(items: list[FeedbackItem]) -> int:
    return sum(
        1
        for item in items
        if item.question_type == VALUES_QUESTION_TYPE and item.nominated_user_id
    )


class UserProcessor:
    def __init__(
        self,
        gateway: PersistenceGateway,
        sentiment: SentimentAnalyzer,
        summaries: SummaryGenerator,
        themes: ThemeExtractor,
        scorer: HealthScoreCalculator | StoreHealthScoreCalculator,
    ) -> None:
        self._gateway = gateway
        self._sentiment = sentiment
        self._summaries = summaries
        self._themes = themes
        self._scorer = scorer

    async def process(self, user: UserBatchEntry, week_start_date: date) -> None:
        logger.info("Processing user %s (%s)", user.user_name, user.user_id[:8])

        record_id = await self._gateway.upsert_weekly_analysis_record(
            user.user_id, user.company_id, week_start_date, AnalysisStatus.PROCESSING,
        )

        try:
            results = await self._analyze(user, week_start_date)
            await self._gateway.update_analysis_results(
                record_id, results, AnalysisStatus.COMPLETED,
            )
            scores = await self._scorer.score(user, week_start_date, results)
            await self._gateway.upsert_health_scores(user.user_id, week_start_date, scores)
        except Exception as exc:
            logger.error("Error processing user %s: %s", user.user_id[:8], exc)
            await self._mark_failed(user, week_start_date)
            raise

        logger.info(
            "User %s processed: received=%d provided=%d overall=%.2f",
            user.user_id[:8], results.received_count, results.provided_count,
            scores.overall_health_score,
        )

    async def _mark_failed(self, user: UserBatchEntry, week_start_date: date) -> None:
        """Best effort. Never let this mask the error that caused it."""
        try:
            await self._gateway.upsert_weekly_analysis_record(
                user.user_id, user.company_id, week_start_date, AnalysisStatus.FAILED,
            )
        except Exception as exc:
            logger.error(
                "Could not mark analysis failed for user %s: %s", user.user_id[:8], exc,
            )

    async def _analyze(self, user: UserBatchEntry, week_start_date: date) -> AnalysisResults:
        start, end = week_bounds(week_start_date)

        received = filter_to_window(
            await self._gateway.get_user_feedback_summary(user.user_id, week_start_date),
            start, end,
        )
        provided = filter_to_window(
            await self._gateway.get_user_provided_feedback_summary(
                user.user_id, week_start_date, end,
            ),
            start, end,
        )
        nominations = count_value_nominations(received)

        logger.info(
            "Found %d received, %d provided, %d nominations for %s",
            len(received), len(provided), nominations, user.user_id[:8],
        )

        received_sentiment, received_summary, received_themes = await self._derive(
            received, "received", user.user_name,
        )
        provided_sentiment, provided_summary, provided_themes = await self._derive(
            provided, "provided", user.user_name,
        )

        return AnalysisResults(
            received_count=len(received),
            received_sentiment=received_sentiment,
            received_summary=received_summary,
            received_themes=received_themes,
            provided_count=len(provided),
            provided_sentiment=provided_sentiment,
            provided_summary=provided_summary,
            provided_themes=provided_themes,
            company_values_count=nominations,
        )

    async def _derive(
        self,
        items: list[FeedbackItem],
        direction: Direction,
        user_name: str,
    ) -> tuple[float | None, str | None, list[str]]:
        sentiment = await self._sentiment.analyze(items)
        summary = await self._summaries.generate(items, direction, user_name)
        themes = await self._themes.extract(items, summary=summary.text)
        logger.debug(
            "%s analysis sources: sentiment=%s summary=%s themes=%s",
            direction, sentiment.source, summary.source, themes.source,
        )
        return sentiment.value, summary.text, themes.themes
