"""
Shared test doubles for the weekly feedback health job.

FakeGateway implements the PersistenceGateway surface in memory and keys
every write by (user_id, week_start_date), the same way the store's
upsert RPCs do. FakeCompletion stands in for TextCompletionClient.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest

from feedback_health.db.gateway import StoreError
from feedback_health.models.feedback_health import (
    AnalysisResults,
    AnalysisStatus,
    FeedbackItem,
    HealthScores,
    UserBatchEntry,
    WeeklyActivity,
)
from feedback_health.services.completion import CompletionError, CompletionResult
from feedback_health.services.health_score import HealthScoreCalculator
from feedback_health.services.sentiment import SentimentAnalyzer
from feedback_health.services.summary import SummaryGenerator
from feedback_health.services.themes import ThemeExtractor
from feedback_health.services.user_processor import UserProcessor

WEEK = date(2025, 3, 3)


# ======================================================================
# Sample data factories
# ======================================================================

def make_user(user_id: str = "user-a", **overrides: Any) -> UserBatchEntry:
    data: dict[str, Any] = {
        "user_id": user_id,
        "company_id": "company-1",
        "user_name": f"Name {user_id}",
        "user_email": f"{user_id}@example.com",
        "company_user_count": 20,
    }
    data.update(overrides)
    return UserBatchEntry(**data)


def make_item(
    days_into_week: float = 1,
    week_start: date = WEEK,
    **overrides: Any,
) -> FeedbackItem:
    created = datetime.combine(week_start, datetime.min.time(), tzinfo=timezone.utc)
    data: dict[str, Any] = {
        "question_type": "rating",
        "question_text": "How well did they communicate?",
        "rating_value": 4,
        "text_response": None,
        "comment_text": None,
        "nominated_user_id": None,
        "created_at": created + timedelta(days=days_into_week),
        "sender_name": "Jordan",
    }
    data.update(overrides)
    return FeedbackItem(**data)


# ======================================================================
# Fakes
# ======================================================================

class FakeCompletion:
    """
    Stand-in for TextCompletionClient.

    reply: a string returned for every prompt, a callable mapping prompt to
    reply, or None to simulate an unavailable AI service.
    """

    def __init__(self, reply: Optional[str | Callable[[str], Optional[str]]] = None) -> None:
        self._reply = reply
        self.prompts: list[str] = []

    async def complete(self, prompt: str, max_tokens: int) -> str:
        self.prompts.append(prompt)
        text = self._reply(prompt) if callable(self._reply) else self._reply
        if text is None:
            raise CompletionError("AI unavailable")
        return text

    async def try_complete(self, prompt: str, max_tokens: int) -> CompletionResult:
        try:
            return CompletionResult(ok=True, text=await self.complete(prompt, max_tokens))
        except CompletionError as exc:
            return CompletionResult(ok=False, error=str(exc))


def canned_reply(prompt: str) -> str:
    """Plausible AI replies keyed on which analyzer is asking."""
    if "Analyze the sentiment" in prompt:
        return "0.4"
    if "Extract 3-5 key themes" in prompt:
        return '["communication", "ownership", "collaboration"]'
    return "**STRENGTHS IDENTIFIED:**\n- Clear communicator"


class FakeGateway:
    """In-memory PersistenceGateway."""

    def __init__(
        self,
        users: Optional[list[UserBatchEntry]] = None,
        received: Optional[dict[str, list[FeedbackItem]]] = None,
        provided: Optional[dict[str, list[FeedbackItem]]] = None,
        current_week: date = WEEK,
    ) -> None:
        self.users = users or []
        self.received = received or {}
        self.provided = provided or {}
        self.current_week = current_week
        self.history: dict[str, list[WeeklyActivity]] = {}

        self.always_full_page = False
        self.fail_page_at_offset: Optional[int] = None
        self.fail_received_for: set[str] = set()
        self.fail_mark_failed = False

        self.records: dict[tuple[str, date], dict[str, Any]] = {}
        self.health_scores: dict[tuple[str, date], HealthScores] = {}
        self.page_requests: list[tuple[int, int, date]] = []
        self.status_history: list[tuple[str, AnalysisStatus]] = []

    async def get_current_week_start(self) -> date:
        return self.current_week

    async def get_users_for_weekly_analysis(
        self, batch_size: int, offset: int, week_start_date: date,
    ) -> list[UserBatchEntry]:
        self.page_requests.append((batch_size, offset, week_start_date))
        if self.fail_page_at_offset == offset:
            raise StoreError("Failed to get user batch: connection reset")
        if self.always_full_page:
            return [
                make_user(f"user-{offset + i}") for i in range(batch_size)
            ]
        return self.users[offset:offset + batch_size]

    async def get_user_feedback_summary(
        self, user_id: str, week_start_date: date,
    ) -> list[FeedbackItem]:
        if user_id in self.fail_received_for:
            raise StoreError("Failed to get received feedback: boom")
        return list(self.received.get(user_id, []))

    async def get_user_provided_feedback_summary(
        self, user_id: str, week_start_date: date, week_end: datetime,
    ) -> list[FeedbackItem]:
        return list(self.provided.get(user_id, []))

    async def get_weekly_activity(
        self, user_id: str, since: date, until: date,
    ) -> list[WeeklyActivity]:
        return [
            h for h in self.history.get(user_id, [])
            if since <= h.week_start_date < until
        ]

    async def upsert_weekly_analysis_record(
        self,
        user_id: str,
        company_id: str,
        week_start_date: date,
        status: AnalysisStatus,
    ) -> str:
        if status == AnalysisStatus.FAILED and self.fail_mark_failed:
            raise StoreError("Failed to create analysis record: store down")
        key = (user_id, week_start_date)
        record = self.records.setdefault(
            key, {"id": f"rec-{user_id}-{week_start_date}", "results": None},
        )
        record["company_id"] = company_id
        record["status"] = status
        self.status_history.append((user_id, status))
        return record["id"]

    async def update_analysis_results(
        self, record_id: str, results: AnalysisResults, status: AnalysisStatus,
    ) -> None:
        for record in self.records.values():
            if record["id"] == record_id:
                record["results"] = results
                record["status"] = status
                return
        raise StoreError(f"Failed to update analysis results: no record {record_id}")

    async def upsert_health_scores(
        self, user_id: str, week_start_date: date, scores: HealthScores,
    ) -> None:
        self.health_scores[(user_id, week_start_date)] = scores


def build_processor(
    gateway: FakeGateway,
    completion: Optional[FakeCompletion] = None,
) -> UserProcessor:
    completion = completion or FakeCompletion(canned_reply)
    return UserProcessor(
        gateway=gateway,
        sentiment=SentimentAnalyzer(completion),
        summaries=SummaryGenerator(completion),
        themes=ThemeExtractor(completion),
        scorer=HealthScoreCalculator(gateway),
    )


# ======================================================================
# Fixtures
# ======================================================================

@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def offline_completion() -> FakeCompletion:
    """AI service that always fails, forcing every heuristic fallback."""
    return FakeCompletion(None)
