"""Background batch jobs: ingestion, daily decay recompute, metadata refresh."""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from trendwatch import metrics
from trendwatch.batch import BatchSummary
from trendwatch.config import settings
from trendwatch.db.models import JobRun
from trendwatch.db.session import AsyncSessionLocal
from trendwatch.ingest.signals.ingestor import signal_ingestor
from trendwatch.logging_config import get_logger
from trendwatch.scoring.engine import scoring_engine
from trendwatch.worker.job_lock import JobLockManager, job_lock_manager
from trendwatch.worker.metadata_refresh import metadata_refresh_job

logger = logging.getLogger(__name__)

JOB_INGEST = "ingest"
JOB_DECAY = "decay"
JOB_METADATA_REFRESH = "metadata_refresh"


class TaskRunner:
    """
    Runner for scheduled and manually triggered batch jobs.

    Every run:
    1. Acquires the Redis job lock for its job type (skips if held)
    2. Writes a JobRun record
    3. Executes the job, which returns a BatchSummary
    4. Marks the JobRun completed, or failed when the run aborted
    5. Releases the lock
    """

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        lock_manager: Optional[JobLockManager] = None,
    ):
        self.session_factory = session_factory
        self.lock_manager = lock_manager or job_lock_manager

    async def close(self):
        await self.lock_manager.close()

    async def run_job(
        self,
        job_type: str,
        job: Callable[[str], Awaitable[BatchSummary]],
        trigger: str = "scheduled",
    ) -> Optional[BatchSummary]:
        """
        Run ``job`` under the job lock with a JobRun record.

        Args:
            job_type: Lock and JobRun name
            job: Coroutine function taking the run id
            trigger: "scheduled" | "manual"

        Returns:
            The job's BatchSummary, or None when another run holds the lock
        """
        run_id = uuid4().hex
        token = None
        if settings.job_lock_enabled:
            token = await self.lock_manager.acquire_lock(job_type, run_id)
            if not token:
                logger.info(f"Skipping {job_type} run ({trigger}): already running")
                return None

        run_log = get_logger(__name__, run_id=run_id[:16], job_type=job_type)
        job_run_id = None
        try:
            async with self.session_factory() as db:
                job_run = JobRun(
                    run_id=run_id,
                    job_type=job_type,
                    trigger=trigger,
                    status="running",
                    started_at=datetime.utcnow(),
                )
                db.add(job_run)
                await db.commit()
                job_run_id = job_run.id

            run_log.info(f"Starting {job_type} run ({trigger})")
            try:
                summary = await job(run_id)
            except Exception as exc:
                run_log.error(f"{job_type} run failed: {exc}", exc_info=True)
                await self._finish(job_run_id, "failed", BatchSummary(), str(exc))
                metrics.record_job_run(job_type, success=False)
                raise

            status = "failed" if summary.aborted else "completed"
            error_message = "\n".join(summary.errors[:5]) if summary.errors else None
            await self._finish(job_run_id, status, summary, error_message)
            metrics.record_job_run(job_type, success=not summary.aborted)

            if summary.errors:
                run_log.warning(
                    "%s run completed with %d errors: %s",
                    job_type,
                    len(summary.errors),
                    "; ".join(summary.errors[:3]),
                )
            return summary
        finally:
            if token:
                await self.lock_manager.safe_unlock(job_type, run_id, token)

    async def _finish(
        self,
        job_run_id: Optional[int],
        status: str,
        summary: BatchSummary,
        error_message: Optional[str],
    ) -> None:
        if job_run_id is None:
            return
        async with self.session_factory() as db:
            job_run = await db.get(JobRun, job_run_id)
            if job_run is None:
                return
            job_run.status = status
            job_run.completed_at = datetime.utcnow()
            job_run.updated = summary.updated
            job_run.skipped = summary.skipped
            job_run.failed = summary.failed
            job_run.error_message = error_message[:2000] if error_message else None
            await db.commit()

    async def ingest_signals(self, trigger: str = "scheduled") -> Optional[BatchSummary]:
        """Fetch all enabled source adapters and ingest their readings."""
        return await self.run_job(
            JOB_INGEST, lambda run_id: signal_ingestor.run(run_id=run_id), trigger
        )

    async def recalculate_scores(self, trigger: str = "scheduled") -> Optional[BatchSummary]:
        """Daily decay pass: rescore every product and write score history."""

        async def job(run_id: str) -> BatchSummary:
            async with self.session_factory() as db:
                return await scoring_engine.recalculate_all(db, run_id=run_id)

        return await self.run_job(JOB_DECAY, job, trigger)

    async def refresh_metadata(self, trigger: str = "scheduled") -> Optional[BatchSummary]:
        """Refresh ratings and prices of published products."""
        return await self.run_job(
            JOB_METADATA_REFRESH, lambda run_id: metadata_refresh_job.run(), trigger
        )


# Global instance
task_runner = TaskRunner()
