"""
Weekly Analysis API: trigger endpoint for the feedback health job.

POST /api/v1/feedback-health/weekly-analysis
    Run the analysis. An optional JSON body {"week_start_date": "YYYY-MM-DD"}
    overrides the target week (re-runs and testing).
GET  /api/v1/feedback-health/weekly-analysis
    Run the analysis for the store's current week (scheduler convenience).

Responses:
    200: {success: true, week_start_date, total_processed, total_errors,
          batches_processed, execution_time_seconds}
    409: {success: false, error} when a run for that week is in flight.
    500: {success: false, error, stack} on a fatal failure.
"""

import json
import logging
import traceback
from datetime import date

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from feedback_health.core.config import (
    AI_TIMEOUT_SECONDS,
    HEALTH_SCORE_MODE,
    get_analysis_settings,
    is_anthropic_configured,
)
from feedback_health.db.gateway import PersistenceGateway
from feedback_health.db.supabase_client import get_service_client
from feedback_health.models.feedback_health import (
    WeeklyAnalysisRequest,
    WeeklyAnalysisResponse,
)
from feedback_health.services.batch_coordinator import (
    AnalysisRunInProgressError,
    BatchCoordinator,
    RunLeaseRegistry,
)
from feedback_health.services.completion import TextCompletionClient
from feedback_health.services.health_score import build_health_score_calculator
from feedback_health.services.sentiment import SentimentAnalyzer
from feedback_health.services.summary import SummaryGenerator
from feedback_health.services.themes import ThemeExtractor
from feedback_health.services.user_processor import UserProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/feedback-health", tags=["feedback-health"])

# Module-level coordinator, initialized lazily
_coordinator: BatchCoordinator | None = None
_leases = RunLeaseRegistry()


def get_batch_coordinator() -> BatchCoordinator:
    """Wire the coordinator and its collaborators from configuration."""
    global _coordinator
    if _coordinator is None:
        if not is_anthropic_configured():
            logger.warning(
                "Anthropic API key not configured; all analysis will use heuristic fallbacks"
            )
        gateway = PersistenceGateway(get_service_client)
        completion = TextCompletionClient(timeout=AI_TIMEOUT_SECONDS)
        processor = UserProcessor(
            gateway=gateway,
            sentiment=SentimentAnalyzer(completion),
            summaries=SummaryGenerator(completion),
            themes=ThemeExtractor(completion),
            scorer=build_health_score_calculator(HEALTH_SCORE_MODE, gateway),
        )
        _coordinator = BatchCoordinator(
            gateway, processor, settings=get_analysis_settings(), leases=_leases,
        )
    return _coordinator


async def _requested_week(request: Request) -> date | None:
    """Week override from a POST body. Anything unusable means 'current week'."""
    if request.method != "POST":
        return None

    body = await request.body()
    if not body:
        return None
    try:
        payload = WeeklyAnalysisRequest.model_validate(json.loads(body))
    except (json.JSONDecodeError, ValidationError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unusable weekly analysis payload: %s", exc)
        return None
    return payload.week_start_date


# ===================================================================
# Weekly Feedback Health Analysis
# ===================================================================

@router.api_route(
    "/weekly-analysis",
    methods=["GET", "POST"],
    status_code=status.HTTP_200_OK,
    response_model=WeeklyAnalysisResponse,
)
async def run_weekly_analysis(
    request: Request,
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """
    Run the weekly feedback health analysis.

    Processing steps:
    1. Parse the optional week override
    2. Run the batch coordinator across all eligible members
    3. Return aggregate counts (per-user failures are only visible as
       status=failed analysis records)
    """
    week_start_date = await _requested_week(request)

    try:
        report = await coordinator.run(week_start_date)
    except AnalysisRunInProgressError as exc:
        logger.warning("Rejected overlapping run: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"success": False, "error": str(exc)},
        )
    except Exception as exc:
        logger.error("Fatal error in weekly analysis: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": str(exc),
                "stack": traceback.format_exc(),
            },
        )

    return WeeklyAnalysisResponse.from_report(report)
