"""
Scheduled Jobs for the Caronas Backend

Background maintenance with:
- Error handling and logging
- Job status tracking
"""

import logging
from typing import Optional

from caronas.services.rating_service import RatingService
from caronas.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)


class ScheduledJob:
    """Base class for scheduled jobs with error handling and logging."""

    def __init__(self, name: str):
        self.name = name
        self.execution_count = 0
        self.failure_count = 0
        self.consecutive_failures = 0
        self.last_execution = None
        self.last_error: Optional[str] = None

    async def execute(self):
        """Execute the job with error handling and metrics."""
        self.execution_count += 1
        start_time = utc_now()

        try:
            logger.info(f"[{self.name}] Starting execution #{self.execution_count}")
            await self._run()
            self.last_execution = utc_now()
            duration = (self.last_execution - start_time).total_seconds()
            logger.info(f"[{self.name}] Completed successfully in {duration:.2f}s")
            self.consecutive_failures = 0

        except Exception as e:
            # A failed run must not kill the scheduler; the next interval retries
            self.failure_count += 1
            self.consecutive_failures += 1
            self.last_error = str(e)
            logger.error(f"[{self.name}] Failed: {e}", exc_info=True)

            if self.consecutive_failures >= 3:
                logger.critical(
                    f"[{self.name}] CRITICAL: Failed {self.consecutive_failures} times in a row. "
                    f"Last error: {e}"
                )

    async def _run(self):
        """Override this method in subclasses."""
        raise NotImplementedError


class RatingExpiryJob(ScheduledJob):
    """
    Mark rating requests past their window as expired.

    Expiry is also observed lazily on submission and listing; the sweep
    only makes it visible sooner to profile and history screens.
    """

    def __init__(self, rating_service: Optional[RatingService] = None):
        super().__init__("RatingExpiry")
        self.rating_service = rating_service or RatingService()

    async def _run(self):
        expired = await self.rating_service.expire_overdue()
        if expired:
            logger.info(f"[{self.name}] Expired {expired} rating requests")


# Job instances
rating_expiry_job = RatingExpiryJob()
