"""
Tests for FlashSaleScheduler.

The APScheduler instance is started paused, so timers are registered and can
be inspected but never fire on their own; ``run_job`` is called directly.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from app.enums import JobStatus, JobType
from app.exceptions import BadRequestException, InternalServerErrorException, NotFoundException
from app.models import Product, ScheduledJob
from app.schemas.scheduled_job import ScheduledJobUpdate
from app.services.flash_sale_service import FlashSaleService
from app.services.scheduler_service import (
    DAILY_REPORT_JOB_ID,
    JOB_ID_PREFIX,
    SWEEP_JOB_ID,
    FlashSaleScheduler,
    timer_id,
)
from app.utils import utcnow


def _armed_timers(aps_scheduler):
    return [job for job in aps_scheduler.get_jobs() if job.id.startswith(JOB_ID_PREFIX)]


@pytest_asyncio.fixture
async def upcoming_campaign(make_campaign):
    return await make_campaign(
        name="Upcoming", start_offset=timedelta(hours=1), end_offset=timedelta(hours=3)
    )


class TestScheduleJob:

    async def test_arms_one_timer(self, db, flash_sale_scheduler, aps_scheduler, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)

        assert job.status == JobStatus.SCHEDULED
        assert job.scheduled_time == upcoming_campaign.start_date
        assert flash_sale_scheduler.is_armed(job.id)
        assert [timer.id for timer in _armed_timers(aps_scheduler)] == [timer_id(job.id)]

    async def test_end_job_targets_end_date(self, db, flash_sale_scheduler, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.END, db)

        assert job.scheduled_time == upcoming_campaign.end_date
        assert job.name == "End flash sale 'Upcoming'"

    async def test_past_start_is_stored_failed_and_not_armed(
        self, db, flash_sale_scheduler, aps_scheduler, clock, make_campaign
    ):
        campaign = await make_campaign(start_offset=timedelta(seconds=-1))
        clock.current = utcnow()

        job = await flash_sale_scheduler.schedule_job(campaign.id, JobType.START, db)

        assert job.status == JobStatus.FAILED
        assert job.error_message
        assert not flash_sale_scheduler.is_armed(job.id)
        assert _armed_timers(aps_scheduler) == []

    async def test_explicit_time(self, db, flash_sale_scheduler, clock, upcoming_campaign):
        target = (clock() + timedelta(minutes=5)).replace(microsecond=0)

        job = await flash_sale_scheduler.schedule_job(
            upcoming_campaign.id, JobType.START, db, scheduled_time=target, name="Early start"
        )

        assert job.scheduled_time == target
        assert job.name == "Early start"

    async def test_unknown_campaign(self, db, flash_sale_scheduler, aps_scheduler):
        with pytest.raises(NotFoundException):
            await flash_sale_scheduler.schedule_job(9999, JobType.START, db)

        assert _armed_timers(aps_scheduler) == []


class TestUpdateAndDelete:

    async def test_update_rearms_single_timer(self, db, flash_sale_scheduler, aps_scheduler, clock, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        new_time = (clock() + timedelta(hours=2)).replace(microsecond=0)

        job = await flash_sale_scheduler.update_job(job.id, ScheduledJobUpdate(scheduled_time=new_time), db)

        assert job.scheduled_time == new_time
        timers = _armed_timers(aps_scheduler)
        assert len(timers) == 1
        assert timers[0].trigger.run_date.replace(tzinfo=None) == new_time

    async def test_update_to_past_time_keeps_old_timer(
        self, db, flash_sale_scheduler, clock, upcoming_campaign
    ):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        job_id = job.id

        with pytest.raises(BadRequestException):
            await flash_sale_scheduler.update_job(
                job_id, ScheduledJobUpdate(scheduled_time=clock() - timedelta(minutes=1)), db
            )

        assert flash_sale_scheduler.is_armed(job_id)

    async def test_failed_commit_keeps_old_timer(
        self, db, flash_sale_scheduler, aps_scheduler, clock, upcoming_campaign, monkeypatch
    ):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        job_id, original_time = job.id, job.scheduled_time

        async def failing_commit():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(db, "commit", failing_commit)

        with pytest.raises(InternalServerErrorException):
            await flash_sale_scheduler.update_job(
                job_id, ScheduledJobUpdate(scheduled_time=clock() + timedelta(hours=2)), db
            )

        timers = _armed_timers(aps_scheduler)
        assert [timer.id for timer in timers] == [timer_id(job_id)]
        assert timers[0].trigger.run_date.replace(tzinfo=None, microsecond=0) == original_time.replace(microsecond=0)

    async def test_only_scheduled_jobs_can_be_updated(self, db, flash_sale_scheduler, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        job_id = job.id
        await flash_sale_scheduler.run_job(job_id)

        with pytest.raises(BadRequestException):
            await flash_sale_scheduler.update_job(job_id, ScheduledJobUpdate(name="Renamed"), db)

    async def test_delete_cancels_timer(self, db, flash_sale_scheduler, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)

        assert await flash_sale_scheduler.delete_job(job.id, db) is True

        assert not flash_sale_scheduler.is_armed(job.id)
        assert await flash_sale_scheduler.list_jobs(db) == []
        with pytest.raises(NotFoundException):
            await flash_sale_scheduler.get_job(job.id, db)

    async def test_completed_job_cannot_be_deleted(self, db, flash_sale_scheduler, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        job_id = job.id
        await flash_sale_scheduler.run_job(job_id)

        with pytest.raises(BadRequestException):
            await flash_sale_scheduler.delete_job(job_id, db)

    async def test_list_jobs_by_campaign(self, db, flash_sale_scheduler, upcoming_campaign, make_campaign):
        other = await make_campaign(name="Other", start_offset=timedelta(hours=5), end_offset=timedelta(hours=6))
        await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.END, db)
        await flash_sale_scheduler.schedule_job(other.id, JobType.START, db)

        jobs = await flash_sale_scheduler.list_jobs(db, campaign_id=upcoming_campaign.id)

        assert [job.job_type for job in jobs] == [JobType.START, JobType.END]


class TestRunJob:

    async def test_runs_handler_and_completes(
        self, db, flash_sale_scheduler, upcoming_campaign, product_and_variant, enroll
    ):
        product, _ = product_and_variant
        await enroll(upcoming_campaign, product, discount_percent=50)
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)

        result = await flash_sale_scheduler.run_job(job.id)

        assert result == JobStatus.COMPLETED
        assert not flash_sale_scheduler.is_armed(job.id)
        await db.refresh(job)
        assert job.status == JobStatus.COMPLETED
        product = await db.get(Product, product.id, populate_existing=True)
        assert product.flash_sale_campaign_id == upcoming_campaign.id

    async def test_second_run_is_a_no_op(self, db, flash_sale_scheduler, upcoming_campaign):
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)

        assert await flash_sale_scheduler.run_job(job.id) == JobStatus.COMPLETED
        assert await flash_sale_scheduler.run_job(job.id) is None

    async def test_deleted_job_does_not_run(
        self, db, flash_sale_scheduler, upcoming_campaign, product_and_variant, enroll
    ):
        product, _ = product_and_variant
        await enroll(upcoming_campaign, product)
        job = await flash_sale_scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)
        await flash_sale_scheduler.delete_job(job.id, db)

        assert await flash_sale_scheduler.run_job(job.id) is None

        product = await db.get(Product, product.id, populate_existing=True)
        assert product.is_in_flash_sale is False

    async def test_missing_job(self, flash_sale_scheduler):
        assert await flash_sale_scheduler.run_job(9999) is None

    async def test_handler_failure_marks_job_failed(self, db, session_factory, aps_scheduler, clock, upcoming_campaign):
        class BrokenFlashSaleService(FlashSaleService):
            async def handle_campaign_start(self, campaign_id, db):
                raise RuntimeError("products table is locked")

        scheduler = FlashSaleScheduler(
            session_factory, flash_sale_service=BrokenFlashSaleService(), now=clock, scheduler=aps_scheduler
        )
        job = await scheduler.schedule_job(upcoming_campaign.id, JobType.START, db)

        result = await scheduler.run_job(job.id)

        assert result == JobStatus.FAILED
        assert not scheduler.is_armed(job.id)
        await db.refresh(job)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "products table is locked"


class TestRecovery:

    async def _add_job(self, db, campaign, scheduled_time, status=JobStatus.SCHEDULED):
        job = ScheduledJob(
            name="Recovered job",
            campaign_id=campaign.id,
            job_type=JobType.START,
            scheduled_time=scheduled_time,
            status=status,
        )
        db.add(job)
        await db.commit()
        await db.refresh(job)
        return job

    async def test_recover_arms_future_and_fails_overdue(
        self, db, flash_sale_scheduler, aps_scheduler, clock, upcoming_campaign
    ):
        overdue = await self._add_job(db, upcoming_campaign, clock() - timedelta(minutes=10))
        future = await self._add_job(db, upcoming_campaign, clock() + timedelta(minutes=10))
        done = await self._add_job(db, upcoming_campaign, clock() - timedelta(hours=1), JobStatus.COMPLETED)

        armed, failed = await flash_sale_scheduler.recover()

        assert (armed, failed) == (1, 1)
        assert [timer.id for timer in _armed_timers(aps_scheduler)] == [timer_id(future.id)]
        await db.refresh(overdue)
        await db.refresh(done)
        assert overdue.status == JobStatus.FAILED
        assert done.status == JobStatus.COMPLETED

    async def test_clock_passing_a_job(self, db, flash_sale_scheduler, clock, upcoming_campaign):
        job = await self._add_job(db, upcoming_campaign, clock() + timedelta(minutes=10))
        clock.advance(minutes=11)

        assert await flash_sale_scheduler.recover() == (0, 1)
        assert not flash_sale_scheduler.is_armed(job.id)

    async def test_start_registers_periodic_jobs(self, db, flash_sale_scheduler, aps_scheduler, clock, upcoming_campaign):
        job = await self._add_job(db, upcoming_campaign, clock() + timedelta(minutes=10))

        await flash_sale_scheduler.start()

        assert flash_sale_scheduler.is_running
        assert aps_scheduler.get_job(SWEEP_JOB_ID) is not None
        assert aps_scheduler.get_job(DAILY_REPORT_JOB_ID) is not None
        assert flash_sale_scheduler.is_armed(job.id)
