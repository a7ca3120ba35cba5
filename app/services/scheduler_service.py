"""Flash sale scheduler.

One APScheduler one-shot timer per persisted ``ScheduledJob`` plus a periodic
sweep and a daily report. Jobs are re-armed from the database at startup.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from apscheduler.events import EVENT_JOB_MISSED, JobExecutionEvent  # type: ignore[import-not-found]
from apscheduler.jobstores.base import JobLookupError  # type: ignore[import-not-found]
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-not-found]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-not-found]
from apscheduler.triggers.date import DateTrigger  # type: ignore[import-not-found]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-not-found]
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from ..enums import JobStatus, JobType
from ..exceptions import BadRequestException, NotFoundException, translate_db_error
from ..models import ScheduledJob
from ..schemas.scheduled_job import ScheduledJobUpdate
from ..services.flash_sale_service import FlashSaleService
from ..utils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "flash_sale_job:"
SWEEP_JOB_ID = "flash_sale_sweep"
DAILY_REPORT_JOB_ID = "flash_sale_daily_report"


def timer_id(job_id: int) -> str:
    return f"{JOB_ID_PREFIX}{job_id}"


class FlashSaleScheduler:
    """Arms, cancels and fires the timers behind flash sale campaign jobs.

    Owned by the application lifespan: ``start()`` re-arms pending jobs,
    ``shutdown()`` stops every timer.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        flash_sale_service: Optional[FlashSaleService] = None,
        timezone_name: str = "UTC",
        sweep_interval_seconds: int = 60,
        sweep_window_seconds: int = 60,
        now: Callable[[], datetime] = utcnow,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """Initialize scheduler.

        Args:
            session_factory: Factory for the sessions timers run in.
            flash_sale_service: Provides the campaign start/end handlers.
            timezone_name: Timezone for the daily report cron trigger.
            sweep_interval_seconds: How often the safety-net sweep runs.
            sweep_window_seconds: How far back the sweep looks for boundaries.
            now: Clock returning naive UTC datetimes.
            scheduler: APScheduler instance, created when omitted.
        """
        self._session_factory = session_factory
        self.flash_sale_service = flash_sale_service or FlashSaleService()
        self.timezone_name = timezone_name
        self.sweep_interval_seconds = sweep_interval_seconds
        self.sweep_window_seconds = sweep_window_seconds
        self._now = now

        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)
        self._is_running = False
        self._background_tasks = set()

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Start the scheduler and recover persisted jobs."""
        if self._is_running:
            logger.warning("FlashSaleScheduler already running")
            return

        self._scheduler.add_job(
            self.run_sweep,
            IntervalTrigger(seconds=self.sweep_interval_seconds),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            name="Flash sale boundary sweep",
        )
        self._scheduler.add_job(
            self.run_daily_report,
            CronTrigger(hour=0, minute=0, timezone=self.timezone_name),
            id=DAILY_REPORT_JOB_ID,
            replace_existing=True,
            name="Flash sale daily report",
        )

        if not self._scheduler.running:
            self._scheduler.start()
        self._is_running = True

        armed, failed = await self.recover()
        logger.info(
            f"FlashSaleScheduler started (sweep every {self.sweep_interval_seconds}s, "
            f"{armed} job(s) re-armed, {failed} overdue job(s) failed)"
        )

    async def shutdown(self) -> None:
        """Stop the scheduler gracefully."""
        if self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("FlashSaleScheduler stopped")

    # Timers

    def is_armed(self, job_id: int) -> bool:
        return self._scheduler.get_job(timer_id(job_id)) is not None

    def cancel(self, job_id: int) -> bool:
        """Discard the timer for ``job_id``; returns False if none was armed."""
        try:
            self._scheduler.remove_job(timer_id(job_id))
            return True
        except JobLookupError:
            return False

    def arm(self, job: ScheduledJob) -> None:
        """Arm exactly one timer for ``job``, replacing any existing one."""
        self.cancel(job.id)
        self._scheduler.add_job(
            self.run_job,
            DateTrigger(run_date=job.scheduled_time, timezone=timezone.utc),
            args=[job.id],
            id=timer_id(job.id),
            name=job.name,
            misfire_grace_time=self.sweep_window_seconds,
        )
        logger.info(f"Armed flash sale job {job.id} ({job.job_type.value}) for {job.scheduled_time}")

    # Job store operations

    async def schedule_job(
        self,
        campaign_id: int,
        job_type: JobType,
        db: AsyncSession,
        scheduled_time: Optional[datetime] = None,
        name: Optional[str] = None
    ) -> ScheduledJob:
        """
        Persist a campaign start/end job and arm its timer.

        The target defaults to the campaign's start or end date. A target that
        is not in the future is stored as failed and never armed.
        """
        try:
            campaign = await self.flash_sale_service.get_campaign(campaign_id, db)

            if scheduled_time is not None:
                target = to_naive_utc(scheduled_time)
            else:
                target = campaign.start_date if job_type == JobType.START else campaign.end_date

            job = ScheduledJob(
                name=name or f"{job_type.value.capitalize()} flash sale '{campaign.name}'",
                campaign_id=campaign.id,
                job_type=job_type,
                scheduled_time=target,
                status=JobStatus.SCHEDULED,
            )

            if target <= self._now():
                job.status = JobStatus.FAILED
                job.error_message = "Scheduled time has already passed"
                logger.warning(f"Flash sale job for campaign {campaign_id} ({job_type.value}) is overdue at {target}")

            db.add(job)
            await db.commit()
            await db.refresh(job)

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "schedule flash sale job")

        if job.status == JobStatus.SCHEDULED:
            self.arm(job)
        return job

    async def get_job(self, job_id: int, db: AsyncSession) -> ScheduledJob:
        # Timers complete jobs in their own sessions
        job = await db.get(ScheduledJob, job_id, populate_existing=True)
        if not job or job.is_deleted:
            raise NotFoundException(f"Scheduled job with ID {job_id} not found")
        return job

    async def list_jobs(self, db: AsyncSession, campaign_id: Optional[int] = None) -> List[ScheduledJob]:
        query = select(ScheduledJob).where(ScheduledJob.is_deleted.is_(False))
        if campaign_id is not None:
            query = query.where(ScheduledJob.campaign_id == campaign_id)
        result = await db.execute(query.order_by(ScheduledJob.scheduled_time))
        return result.scalars().all()

    async def _update_if_scheduled(self, job_id: int, db: AsyncSession, **values) -> bool:
        result = await db.execute(
            update(ScheduledJob)
            .where(
                ScheduledJob.id == job_id,
                ScheduledJob.status == JobStatus.SCHEDULED,
                ScheduledJob.is_deleted.is_(False),
            )
            .values(updated_at=utcnow(), **values)
        )
        return result.rowcount == 1

    async def update_job(self, job_id: int, job_data: ScheduledJobUpdate, db: AsyncSession) -> ScheduledJob:
        """Reschedule a pending job. The timer is re-armed once the change is committed."""
        try:
            job = await self.get_job(job_id, db)

            if job.status != JobStatus.SCHEDULED:
                raise BadRequestException(f"Only scheduled jobs can be updated. This job is '{job.status.value}'")

            changes = {}
            if job_data.name is not None:
                changes["name"] = job_data.name
            if job_data.job_type is not None:
                changes["job_type"] = job_data.job_type
            if job_data.scheduled_time is not None:
                target = to_naive_utc(job_data.scheduled_time)
                if target <= self._now():
                    raise BadRequestException("Scheduled time must be in the future")
                changes["scheduled_time"] = target

            if not await self._update_if_scheduled(job_id, db, **changes):
                raise BadRequestException("Only scheduled jobs can be updated. This job has already run")

            await db.commit()
            job = await self.get_job(job_id, db)

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "update flash sale job")

        self.arm(job)
        return job

    async def delete_job(self, job_id: int, db: AsyncSession) -> bool:
        try:
            job = await self.get_job(job_id, db)

            if job.status == JobStatus.COMPLETED:
                raise BadRequestException("Completed jobs cannot be deleted")

            if job.status == JobStatus.SCHEDULED:
                if not await self._update_if_scheduled(job_id, db, is_deleted=True):
                    raise BadRequestException("Completed jobs cannot be deleted")
            else:
                job.is_deleted = True
            await db.commit()

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "delete flash sale job")

        self.cancel(job_id)
        logger.info(f"Flash sale job {job_id} deleted")
        return True

    # Execution

    async def run_job(self, job_id: int) -> Optional[JobStatus]:
        """
        Timer callback. Runs the campaign handler for a job that is still
        scheduled and records the outcome. Never raises.

        Returns:
            Optional[JobStatus]: The new status, or None when the job was stale.
        """
        try:
            async with self._session_factory() as db:
                job = await db.get(ScheduledJob, job_id)

                if not job or job.is_deleted or job.status != JobStatus.SCHEDULED:
                    logger.info(f"Ignoring stale timer for flash sale job {job_id}")
                    return None

                try:
                    if job.job_type == JobType.START:
                        await self.flash_sale_service.handle_campaign_start(job.campaign_id, db)
                    else:
                        await self.flash_sale_service.handle_campaign_end(job.campaign_id, db)

                    result = await db.execute(
                        update(ScheduledJob)
                        .where(ScheduledJob.id == job_id, ScheduledJob.status == JobStatus.SCHEDULED)
                        .values(status=JobStatus.COMPLETED, error_message=None)
                    )
                    if result.rowcount == 0:
                        await db.rollback()
                        logger.info(f"Flash sale job {job_id} was handled elsewhere")
                        return None

                    await db.commit()
                    logger.info(f"Flash sale job {job_id} completed")
                    return JobStatus.COMPLETED

                except Exception as e:
                    await db.rollback()
                    logger.error(f"Flash sale job {job_id} failed: {e}", exc_info=True)
                    await self._mark_failed(job_id, str(e))
                    return JobStatus.FAILED

        except Exception as e:
            logger.error(f"Error running flash sale job {job_id}: {e}", exc_info=True)
            return None

        finally:
            self.cancel(job_id)

    async def _mark_failed(self, job_id: int, message: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(ScheduledJob)
                .where(ScheduledJob.id == job_id, ScheduledJob.status == JobStatus.SCHEDULED)
                .values(status=JobStatus.FAILED, error_message=message[:500])
            )
            await db.commit()

    async def recover(self) -> Tuple[int, int]:
        """
        Re-arm every scheduled job. Jobs whose time elapsed while the process
        was down are marked failed instead of being fired late.

        Returns:
            Tuple[int, int]: (armed, failed) counts.
        """
        armed = failed = 0
        async with self._session_factory() as db:
            result = await db.execute(
                select(ScheduledJob).where(
                    ScheduledJob.status == JobStatus.SCHEDULED,
                    ScheduledJob.is_deleted.is_(False),
                )
            )
            now = self._now()

            for job in result.scalars().all():
                if job.scheduled_time <= now:
                    job.status = JobStatus.FAILED
                    job.error_message = "Scheduled time passed while the scheduler was offline"
                    logger.warning(f"Flash sale job {job.id} is overdue ({job.scheduled_time}), marking failed")
                    failed += 1
                else:
                    self.arm(job)
                    armed += 1

            await db.commit()

        return armed, failed

    def _on_job_missed(self, event: JobExecutionEvent) -> None:
        if not event.job_id.startswith(JOB_ID_PREFIX):
            return

        job_id = int(event.job_id[len(JOB_ID_PREFIX):])
        logger.warning(f"Timer for flash sale job {job_id} missed its run time")

        task = asyncio.ensure_future(self._mark_failed(job_id, "Timer missed its run time"))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def run_sweep(self) -> None:
        try:
            async with self._session_factory() as db:
                await self.flash_sale_service.sweep(db, self._now(), self.sweep_window_seconds)
        except Exception as e:
            logger.error(f"Flash sale sweep failed: {e}", exc_info=True)

    async def run_daily_report(self) -> None:
        try:
            async with self._session_factory() as db:
                await self.flash_sale_service.daily_report(db, self._now())
        except Exception as e:
            logger.error(f"Flash sale daily report failed: {e}", exc_info=True)
