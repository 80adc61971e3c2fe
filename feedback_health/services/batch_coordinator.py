"""
Batch Coordinator: drives one weekly analysis run across every member.

The run:
1. Resolves the target week (explicit override or the store's current week)
2. Takes the per-week run lease so two triggers cannot overlap
3. Pages through get_users_for_weekly_analysis, batch_size users at a time
4. Processes each page's users concurrently with asyncio.gather(),
   collecting a result or an error per user (one failure never cancels
   its siblings)
5. Stops on an empty page or after max_batches pages, whichever is first

Failures fetching the week or a page abort the whole run. Per-user
failures are only counted; the users' records carry status=failed.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

from feedback_health.core.config import AnalysisSettings
from feedback_health.db.gateway import PersistenceGateway
from feedback_health.models.feedback_health import AnalysisRunReport
from feedback_health.services.user_processor import UserProcessor

logger = logging.getLogger(__name__)


class AnalysisRunInProgressError(Exception):
    """Raised when a run for the same week is already in flight."""

    def __init__(self, week_start_date: date) -> None:
        super().__init__(
            f"Weekly analysis for {week_start_date.isoformat()} is already running"
        )
        self.week_start_date = week_start_date


class RunLeaseRegistry:
    """
    In-process lease keyed by week_start_date.

    Only guards runs inside one worker process. Deployments with several
    workers should route the scheduled trigger to a single one.
    """

    def __init__(self) -> None:
        self._active: set[date] = set()

    def is_held(self, week_start_date: date) -> bool:
        return week_start_date in self._active

    @asynccontextmanager
    async def hold(self, week_start_date: date) -> AsyncIterator[None]:
        # Check-and-add has no await in between, so it is atomic on the loop
        if week_start_date in self._active:
            raise AnalysisRunInProgressError(week_start_date)
        self._active.add(week_start_date)
        try:
            yield
        finally:
            self._active.discard(week_start_date)


class BatchCoordinator:
    """
    Args:
        gateway: Store access (week resolution and user pages).
        processor: Runs one user's analysis.
        settings: Page size, page cap and inter-page delay.
        leases: Shared lease registry. Pass the same instance to every
                coordinator serving one process.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        processor: UserProcessor,
        settings: AnalysisSettings | None = None,
        leases: RunLeaseRegistry | None = None,
    ) -> None:
        self._gateway = gateway
        self._processor = processor
        self._settings = settings or AnalysisSettings()
        self._leases = leases or RunLeaseRegistry()

    async def run(self, week_start_date: date | None = None) -> AnalysisRunReport:
        started = time.monotonic()

        if week_start_date is None:
            week_start_date = await self._gateway.get_current_week_start()

        logger.info("Starting weekly feedback analysis for week %s", week_start_date)

        async with self._leases.hold(week_start_date):
            report = await self._run_batches(week_start_date)

        report.execution_time_seconds = round(time.monotonic() - started, 3)
        logger.info(
            "Weekly analysis complete for %s: %d processed, %d errors, "
            "%d batches in %.2fs",
            week_start_date, report.total_processed, report.total_errors,
            report.batches_processed, report.execution_time_seconds,
        )
        return report

    async def _run_batches(self, week_start_date: date) -> AnalysisRunReport:
        settings = self._settings
        report = AnalysisRunReport(week_start_date=week_start_date)
        offset = 0

        while report.batches_processed < settings.max_batches:
            users = await self._gateway.get_users_for_weekly_analysis(
                settings.batch_size, offset, week_start_date,
            )
            if not users:
                logger.info("No more users to process")
                break

            logger.info(
                "Processing batch %d (%d users, offset %d)",
                report.batches_processed + 1, len(users), offset,
            )

            results = await asyncio.gather(
                *(self._processor.process(user, week_start_date) for user in users),
                return_exceptions=True,
            )

            batch_errors = 0
            for user, result in zip(users, results):
                if isinstance(result, BaseException):
                    batch_errors += 1
                    logger.error(
                        "Error processing user %s: %s", user.user_id[:8], result,
                        exc_info=result,
                    )

            report.total_processed += len(users) - batch_errors
            report.total_errors += batch_errors
            report.batches_processed += 1
            offset += settings.batch_size

            logger.info(
                "Batch %d complete: %d processed, %d errors",
                report.batches_processed, len(users) - batch_errors, batch_errors,
            )

            await asyncio.sleep(settings.batch_delay_seconds)
        else:
            logger.warning(
                "Stopped after max_batches=%d; users beyond offset %d were not processed",
                settings.max_batches, offset,
            )

        return report
