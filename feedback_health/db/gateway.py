"""
Persistence Gateway: typed wrapper over the store's stored procedures.

Every call the analysis job makes against Supabase goes through this
module. Each RPC has a narrow signature, its result is validated into a
pydantic model at the boundary, and malformed shapes raise
StoreContractError instead of leaking loosely typed JSON into the job.

supabase-py is synchronous, so each call runs in a worker thread
(asyncio.to_thread). The HTTP request itself is bounded by the client's
postgrest timeout (see db/supabase_client.py), so a call that times out
has stopped before the caller moves on and cannot land late.
"""

import asyncio
import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError
from supabase import Client

from feedback_health.models.feedback_health import (
    AnalysisResults,
    AnalysisStatus,
    FeedbackItem,
    HealthScores,
    UserBatchEntry,
    WeeklyActivity,
)

logger = logging.getLogger(__name__)

ANALYSIS_TABLE = "weekly_feedback_analysis"


class StoreError(Exception):
    """Raised when a store call fails or times out."""

    pass


class StoreContractError(StoreError):
    """Raised when a store call returns data that does not match its contract."""

    pass


def week_bounds(week_start_date: date) -> tuple[datetime, datetime]:
    """Return the half-open [start, end) UTC window for a week."""
    start = datetime.combine(week_start_date, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)


def _as_score(value: Any, name: str) -> float:
    """Validate a numeric score returned by a scoring RPC."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise StoreContractError(f"{name} returned non-numeric value: {value!r}")
    try:
        score = float(value)
    except ValueError as exc:
        raise StoreContractError(f"{name} returned non-numeric value: {value!r}") from exc
    if math.isnan(score):
        raise StoreContractError(f"{name} returned NaN")
    return score


def _feedback_rows(data: Any, name: str) -> list[dict[str, Any]]:
    """Unwrap the {"feedback_data": [...]} envelope of the summary RPCs."""
    if data is None:
        return []
    if isinstance(data, list):
        # Some deployments return the envelope wrapped in a single-row set
        if len(data) == 1 and isinstance(data[0], dict) and "feedback_data" in data[0]:
            data = data[0]
        else:
            raise StoreContractError(f"{name} returned a list instead of an object")
    if not isinstance(data, dict):
        raise StoreContractError(f"{name} returned {type(data).__name__}")
    rows = data.get("feedback_data") or []
    if not isinstance(rows, list):
        raise StoreContractError(f"{name}.feedback_data is not a list")
    return rows


class PersistenceGateway:
    """
    Async, typed access to the store for the weekly analysis job.

    Args:
        client_factory: Returns the Supabase client. Called lazily on the
                        first request so constructing the gateway never
                        touches the network or the environment.
                        The client must bound its own requests
                        (get_service_client sets the postgrest timeout).
    """

    def __init__(self, client_factory: Callable[[], Client]) -> None:
        self._client_factory = client_factory

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _execute(self, description: str, build: Callable[[Client], Any]) -> Any:
        def _run() -> Any:
            return build(self._client_factory()).execute().data

        try:
            return await asyncio.to_thread(_run)
        except httpx.TimeoutException as exc:
            raise StoreError(f"Failed to {description}: timed out ({exc!r})") from exc
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Failed to {description}: {exc}") from exc

    async def _rpc(self, name: str, params: dict[str, Any], description: str) -> Any:
        return await self._execute(description, lambda c: c.rpc(name, params))

    # ------------------------------------------------------------------
    # Week and population
    # ------------------------------------------------------------------

    async def get_current_week_start(self) -> date:
        data = await self._rpc("get_week_start_date", {}, "get week start date")
        if isinstance(data, list) and len(data) == 1:
            data = data[0]
        if isinstance(data, dict):
            data = data.get("get_week_start_date")
        if not isinstance(data, str):
            raise StoreContractError(f"get_week_start_date returned {data!r}")
        try:
            return date.fromisoformat(data[:10])
        except ValueError as exc:
            raise StoreContractError(
                f"get_week_start_date returned invalid date {data!r}"
            ) from exc

    async def get_users_for_weekly_analysis(
        self,
        batch_size: int,
        offset: int,
        week_start_date: date,
    ) -> list[UserBatchEntry]:
        data = await self._rpc(
            "get_users_for_weekly_analysis",
            {
                "batch_size": batch_size,
                "offset_count": offset,
                "target_week_start_date": week_start_date.isoformat(),
            },
            "get user batch",
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise StoreContractError(
                f"get_users_for_weekly_analysis returned {type(data).__name__}"
            )
        try:
            return [UserBatchEntry.model_validate(row) for row in data]
        except ValidationError as exc:
            raise StoreContractError(f"Malformed user batch row: {exc}") from exc

    # ------------------------------------------------------------------
    # Feedback reads
    # ------------------------------------------------------------------

    async def get_user_feedback_summary(
        self,
        user_id: str,
        week_start_date: date,
    ) -> list[FeedbackItem]:
        """Feedback the user received. Scoped by start date only, so coarse."""
        start, _ = week_bounds(week_start_date)
        data = await self._rpc(
            "get_user_feedback_summary",
            {
                "target_user_id": user_id,
                "manager_user_id": None,
                "start_date": start.isoformat(),
                "is_invited_user": False,
            },
            "get received feedback",
        )
        return self._parse_feedback(data, "get_user_feedback_summary")

    async def get_user_provided_feedback_summary(
        self,
        user_id: str,
        week_start_date: date,
        week_end: datetime,
    ) -> list[FeedbackItem]:
        """Feedback the user gave to others between week start and week_end."""
        start, _ = week_bounds(week_start_date)
        data = await self._rpc(
            "get_user_provided_feedback_summary",
            {
                "provider_user_id": user_id,
                "start_date": start.isoformat(),
                "end_date": week_end.isoformat(),
            },
            "get provided feedback",
        )
        return self._parse_feedback(data, "get_user_provided_feedback_summary")

    @staticmethod
    def _parse_feedback(data: Any, name: str) -> list[FeedbackItem]:
        rows = _feedback_rows(data, name)
        try:
            return [FeedbackItem.from_row(row) for row in rows]
        except (ValidationError, KeyError, AttributeError, TypeError) as exc:
            raise StoreContractError(f"Malformed feedback row from {name}: {exc}") from exc

    async def get_weekly_activity(
        self,
        user_id: str,
        since: date,
        until: date,
    ) -> list[WeeklyActivity]:
        """Past analysis counts for weeks in [since, until)."""
        data = await self._execute(
            "get weekly activity history",
            lambda c: (
                c.table(ANALYSIS_TABLE)
                .select("week_start_date, feedback_received_count, feedback_provided_count")
                .eq("user_id", user_id)
                .gte("week_start_date", since.isoformat())
                .lt("week_start_date", until.isoformat())
            ),
        )
        try:
            return [
                WeeklyActivity(
                    week_start_date=row["week_start_date"],
                    received_count=row.get("feedback_received_count") or 0,
                    provided_count=row.get("feedback_provided_count") or 0,
                )
                for row in (data or [])
            ]
        except (ValidationError, KeyError, TypeError) as exc:
            raise StoreContractError(f"Malformed analysis history row: {exc}") from exc

    # ------------------------------------------------------------------
    # Analysis record writes
    # ------------------------------------------------------------------

    async def upsert_weekly_analysis_record(
        self,
        user_id: str,
        company_id: str,
        week_start_date: date,
        status: AnalysisStatus,
    ) -> str:
        """Create or update the (user, week) record. Returns its id."""
        data = await self._rpc(
            "upsert_weekly_analysis_record",
            {
                "target_user_id": user_id,
                "target_company_id": company_id,
                "target_week_start_date": week_start_date.isoformat(),
                "record_status": status.value,
            },
            "create analysis record",
        )
        if isinstance(data, (str, int)) and not isinstance(data, bool) and str(data):
            return str(data)
        raise StoreContractError(f"upsert_weekly_analysis_record returned {data!r}")

    async def update_analysis_results(
        self,
        record_id: str,
        results: AnalysisResults,
        status: AnalysisStatus,
    ) -> None:
        await self._rpc(
            "update_analysis_results",
            {
                "record_id": record_id,
                **results.model_dump(),
                "record_status": status.value,
            },
            "update analysis results",
        )

    # ------------------------------------------------------------------
    # Scoring RPCs
    # ------------------------------------------------------------------

    async def calculate_volume_scores(
        self,
        received_count: int,
        provided_count: int,
        company_size: int,
    ) -> tuple[float, float]:
        data = await self._rpc(
            "calculate_volume_scores",
            {
                "received_count": received_count,
                "provided_count": provided_count,
                "company_size": company_size,
            },
            "calculate volume scores",
        )
        return self._score_pair(data, "calculate_volume_scores", "volume")

    async def calculate_consistency_scores(
        self,
        user_id: str,
        week_start_date: date,
    ) -> tuple[float, float]:
        data = await self._rpc(
            "calculate_consistency_scores",
            {
                "target_user_id": user_id,
                "target_week_start_date": week_start_date.isoformat(),
            },
            "calculate consistency scores",
        )
        return self._score_pair(data, "calculate_consistency_scores", "consistency")

    async def convert_sentiment_to_score(self, sentiment: float | None) -> float:
        data = await self._rpc(
            "convert_sentiment_to_score",
            {"sentiment_avg": sentiment},
            "convert sentiment score",
        )
        return _as_score(data, "convert_sentiment_to_score")

    async def calculate_company_values_score(self, nominations: int) -> float:
        data = await self._rpc(
            "calculate_company_values_score",
            {"nominations_received": nominations},
            "calculate company values score",
        )
        return _as_score(data, "calculate_company_values_score")

    async def calculate_feedback_health_score(self, sub_scores: dict[str, float]) -> float:
        data = await self._rpc(
            "calculate_feedback_health_score",
            sub_scores,
            "calculate overall health score",
        )
        return _as_score(data, "calculate_feedback_health_score")

    @staticmethod
    def _score_pair(data: Any, name: str, prefix: str) -> tuple[float, float]:
        if isinstance(data, list) and len(data) == 1:
            data = data[0]
        if not isinstance(data, dict):
            raise StoreContractError(f"{name} returned {type(data).__name__}")
        return (
            _as_score(data.get(f"{prefix}_received_score"), name),
            _as_score(data.get(f"{prefix}_provided_score"), name),
        )

    async def upsert_health_scores(
        self,
        user_id: str,
        week_start_date: date,
        scores: HealthScores,
    ) -> None:
        await self._rpc(
            "upsert_health_scores",
            {
                "target_user_id": user_id,
                "target_week_start_date": week_start_date.isoformat(),
                "vol_received": scores.volume_received_score,
                "vol_provided": scores.volume_provided_score,
                "sent_received": scores.sentiment_received_score,
                "sent_provided": scores.sentiment_provided_score,
                "consist_received": scores.consistency_received_score,
                "consist_provided": scores.consistency_provided_score,
                "company_vals": scores.company_values_score,
                "overall_score": scores.overall_health_score,
            },
            "store health scores",
        )
