"""
Feedback Health Models: Pydantic schemas for the weekly health analysis job.

Defines:
- Store row contracts (UserBatchEntry, FeedbackItem, WeeklyActivity)
- Derived per-user results (AnalysisResults, HealthScores)
- The run report and the HTTP request/response payloads for
  POST /api/v1/feedback-health/weekly-analysis
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Direction = Literal["received", "provided"]

# Where a derived value came from: the AI service, a heuristic, or no input
AnalysisSource = Literal["ai", "fallback", "empty"]


class AnalysisStatus(str, Enum):
    """Lifecycle of a weekly_feedback_analysis row."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ======================================================================
# Store row contracts
# ======================================================================

class UserBatchEntry(BaseModel):
    """One row of get_users_for_weekly_analysis: a company member to analyze."""

    user_id: str
    company_id: str
    user_name: str = ""
    user_email: str = ""
    company_user_count: int = Field(default=0, ge=0)

    @field_validator("user_name", "user_email", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class FeedbackItem(BaseModel):
    """
    A single feedback response, read-only.

    The summary RPCs return nested rows (question and sender live in joined
    objects); from_row() flattens them into this shape.
    """

    question_type: Optional[str] = None
    question_text: Optional[str] = None
    company_value_name: Optional[str] = None
    rating_value: Optional[int] = Field(default=None, ge=1, le=5)
    text_response: Optional[str] = None
    comment_text: Optional[str] = None
    nominated_user_id: Optional[str] = None
    created_at: datetime
    sender_name: Optional[str] = None

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> FeedbackItem:
        """Build a FeedbackItem from a nested or flat store row."""
        question = row.get("feedback_questions") or {}
        company_value = question.get("company_values") or {}
        recipient = row.get("feedback_recipients") or {}
        identity = recipient.get("feedback_user_identities") or {}

        return cls(
            question_type=question.get("question_type", row.get("question_type")),
            question_text=question.get("question_text", row.get("question_text")),
            company_value_name=company_value.get(
                "name", row.get("company_value_name"),
            ),
            rating_value=row.get("rating_value"),
            text_response=row.get("text_response"),
            comment_text=row.get("comment_text"),
            nominated_user_id=row.get("nominated_user_id"),
            created_at=row["created_at"],
            sender_name=identity.get("name", row.get("sender_name")),
        )


class WeeklyActivity(BaseModel):
    """Feedback counts for one past week, used for consistency scoring."""

    week_start_date: date
    received_count: int = Field(default=0, ge=0)
    provided_count: int = Field(default=0, ge=0)


# ======================================================================
# Derived results
# ======================================================================

class AnalysisResults(BaseModel):
    """Everything update_analysis_results writes for one (user, week)."""

    received_count: int = Field(default=0, ge=0)
    received_sentiment: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    received_summary: Optional[str] = None
    received_themes: list[str] = Field(default_factory=list, max_length=5)
    provided_count: int = Field(default=0, ge=0)
    provided_sentiment: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    provided_summary: Optional[str] = None
    provided_themes: list[str] = Field(default_factory=list, max_length=5)
    company_values_count: int = Field(default=0, ge=0)


class HealthScores(BaseModel):
    """
    The seven sub-scores and the weighted composite for one (user, week).

    Every value is bounded to [0, 100]. The record is always written
    whole, never patched field by field.
    """

    volume_received_score: float = Field(ge=0.0, le=100.0)
    volume_provided_score: float = Field(ge=0.0, le=100.0)
    sentiment_received_score: float = Field(ge=0.0, le=100.0)
    sentiment_provided_score: float = Field(ge=0.0, le=100.0)
    consistency_received_score: float = Field(ge=0.0, le=100.0)
    consistency_provided_score: float = Field(ge=0.0, le=100.0)
    company_values_score: float = Field(ge=0.0, le=100.0)
    overall_health_score: float = Field(ge=0.0, le=100.0)


# ======================================================================
# Run report and API payloads
# ======================================================================

class AnalysisRunReport(BaseModel):
    """Aggregate outcome of one BatchCoordinator.run()."""

    week_start_date: date
    total_processed: int = 0
    total_errors: int = 0
    batches_processed: int = 0
    execution_time_seconds: float = 0.0


class WeeklyAnalysisRequest(BaseModel):
    """
    Optional payload for POST /api/v1/feedback-health/weekly-analysis.

    week_start_date overrides the store-computed current week (re-runs
    and testing).
    """

    week_start_date: Optional[date] = None


class WeeklyAnalysisResponse(BaseModel):
    """Successful response from the weekly analysis trigger."""

    success: bool = True
    week_start_date: date
    total_processed: int
    total_errors: int
    batches_processed: int
    execution_time_seconds: float

    @classmethod
    def from_report(cls, report: AnalysisRunReport) -> WeeklyAnalysisResponse:
        return cls(**report.model_dump())
