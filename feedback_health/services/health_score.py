"""
Health Score Calculator: folds a week's analysis into a bounded 0-100 score.

Seven sub-scores, each monotonic, bounded to [0, 100] and defined for
zero input:

  volume (received / provided)
      100 * (1 - e^(-2 * count / target)), target = clamp(0.2 * company
      size, 2, 10). Small companies reach a high score with fewer items.
  sentiment (received / provided)
      Linear remap of [-1, 1] onto [0, 100]. No sentiment (no feedback,
      or nothing rated) scores the neutral midpoint, 50.
  consistency (received / provided)
      Share of the last 4 weeks, this one included, with at least one
      item in that direction. Weeks with no analysis row count as inactive.
  company values
      100 * (1 - e^(-nominations / 2)).

The overall score is a fixed weighted sum (OVERALL_WEIGHTS, sums to 1.0).

StoreHealthScoreCalculator produces the same record through the store's
scoring RPCs instead; HEALTH_SCORE_MODE selects between the two.
"""

import logging
import math
from datetime import date, timedelta

from feedback_health.db.gateway import PersistenceGateway
from feedback_health.models.feedback_health import (
    AnalysisResults,
    HealthScores,
    UserBatchEntry,
    WeeklyActivity,
)

logger = logging.getLogger(__name__)

MIN_VOLUME_TARGET = 2.0
MAX_VOLUME_TARGET = 10.0
VOLUME_TARGET_PER_MEMBER = 0.2
COMPANY_VALUES_SCALE = 2.0
NEUTRAL_SENTIMENT_SCORE = 50.0
CONSISTENCY_WEEKS = 4

OVERALL_WEIGHTS: dict[str, float] = {
    "volume_received_score": 0.20,
    "volume_provided_score": 0.15,
    "sentiment_received_score": 0.15,
    "sentiment_provided_score": 0.10,
    "consistency_received_score": 0.15,
    "consistency_provided_score": 0.10,
    "company_values_score": 0.15,
}


def _bound(score: float) -> float:
    """Clamp to [0, 100] and round to 2 decimals. NaN scores as 0."""
    if math.isnan(score):
        return 0.0
    return round(max(0.0, min(100.0, score)), 2)


# ======================================================================
# Sub-scores
# ======================================================================

def volume_target(company_user_count: int) -> float:
    return max(
        MIN_VOLUME_TARGET,
        min(MAX_VOLUME_TARGET, VOLUME_TARGET_PER_MEMBER * max(company_user_count, 0)),
    )


def volume_score(count: int, company_user_count: int) -> float:
    target = volume_target(company_user_count)
    return _bound(100.0 * (1.0 - math.exp(-2.0 * max(count, 0) / target)))


def sentiment_score(sentiment: float | None) -> float:
    if sentiment is None:
        return NEUTRAL_SENTIMENT_SCORE
    return _bound((sentiment + 1.0) * 50.0)


def consistency_score(active_weeks: int, weeks: int = CONSISTENCY_WEEKS) -> float:
    return _bound(100.0 * min(max(active_weeks, 0), weeks) / weeks)


def company_values_score(nominations: int) -> float:
    return _bound(100.0 * (1.0 - math.exp(-max(nominations, 0) / COMPANY_VALUES_SCALE)))


def overall_score(sub_scores: dict[str, float]) -> float:
    return _bound(sum(sub_scores[name] * weight for name, weight in OVERALL_WEIGHTS.items()))


# ======================================================================
# Calculators
# ======================================================================

class HealthScoreCalculator:
    """
    Computes health scores in-process.

    Args:
        gateway: Used by score() to load the user's previous weeks.
                 compute() itself is pure and needs no gateway.
        consistency_weeks: Window for the consistency sub-scores.
    """

    def __init__(
        self,
        gateway: PersistenceGateway | None = None,
        consistency_weeks: int = CONSISTENCY_WEEKS,
    ) -> None:
        self._gateway = gateway
        self._weeks = consistency_weeks

    def compute(
        self,
        user: UserBatchEntry,
        analysis: AnalysisResults,
        history: list[WeeklyActivity],
    ) -> HealthScores:
        """
        Args:
            user: The member being scored (company size drives volume targets).
            analysis: This week's results.
            history: Activity for previous weeks. Only the most recent
                     consistency_weeks - 1 distinct weeks are considered.
        """
        previous = sorted(
            {h.week_start_date: h for h in history}.values(),
            key=lambda h: h.week_start_date,
            reverse=True,
        )[: self._weeks - 1]

        received_weeks = (analysis.received_count > 0) + sum(
            1 for h in previous if h.received_count > 0
        )
        provided_weeks = (analysis.provided_count > 0) + sum(
            1 for h in previous if h.provided_count > 0
        )

        sub_scores = {
            "volume_received_score": volume_score(
                analysis.received_count, user.company_user_count,
            ),
            "volume_provided_score": volume_score(
                analysis.provided_count, user.company_user_count,
            ),
            "sentiment_received_score": sentiment_score(analysis.received_sentiment),
            "sentiment_provided_score": sentiment_score(analysis.provided_sentiment),
            "consistency_received_score": consistency_score(received_weeks, self._weeks),
            "consistency_provided_score": consistency_score(provided_weeks, self._weeks),
            "company_values_score": company_values_score(analysis.company_values_count),
        }
        return HealthScores(**sub_scores, overall_health_score=overall_score(sub_scores))

    async def score(
        self,
        user: UserBatchEntry,
        week_start_date: date,
        analysis: AnalysisResults,
    ) -> HealthScores:
        history: list[WeeklyActivity] = []
        if self._gateway is not None and self._weeks > 1:
            history = await self._gateway.get_weekly_activity(
                user.user_id,
                since=week_start_date - timedelta(weeks=self._weeks - 1),
                until=week_start_date,
            )
        return self.compute(user, analysis, history)


class StoreHealthScoreCalculator:
    """Computes health scores through the store's scoring RPCs."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def score(
        self,
        user: UserBatchEntry,
        week_start_date: date,
        analysis: AnalysisResults,
    ) -> HealthScores:
        vol_received, vol_provided = await self._gateway.calculate_volume_scores(
            analysis.received_count, analysis.provided_count, user.company_user_count,
        )
        consist_received, consist_provided = await self._gateway.calculate_consistency_scores(
            user.user_id, week_start_date,
        )
        sub_scores = {
            "volume_received_score": _bound(vol_received),
            "volume_provided_score": _bound(vol_provided),
            "sentiment_received_score": _bound(
                await self._gateway.convert_sentiment_to_score(analysis.received_sentiment)
            ),
            "sentiment_provided_score": _bound(
                await self._gateway.convert_sentiment_to_score(analysis.provided_sentiment)
            ),
            "consistency_received_score": _bound(consist_received),
            "consistency_provided_score": _bound(consist_provided),
            "company_values_score": _bound(
                await self._gateway.calculate_company_values_score(
                    analysis.company_values_count,
                )
            ),
        }
        overall = _bound(await self._gateway.calculate_feedback_health_score(sub_scores))
        return HealthScores(**sub_scores, overall_health_score=overall)


def build_health_score_calculator(
    mode: str,
    gateway: PersistenceGateway,
) -> HealthScoreCalculator | StoreHealthScoreCalculator:
    if mode == "store":
        return StoreHealthScoreCalculator(gateway)
    if mode != "local":
        logger.warning("Unknown HEALTH_SCORE_MODE %r, using local scoring", mode)
    return HealthScoreCalculator(gateway)
