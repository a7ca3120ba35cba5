from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from ..core.dependencies import get_db, get_current_admin, get_flash_sale_scheduler
from ..enums import JobType
from ..models import User
from ..schemas.flash_sale import (
    FlashSaleCampaignCreate,
    FlashSaleCampaignResponse,
    FlashSaleItemCreate,
    FlashSaleItemResponse,
)
from ..schemas.scheduled_job import ScheduledJobCreate, ScheduledJobResponse, ScheduledJobUpdate
from ..services.flash_sale_service import FlashSaleService
from ..services.scheduler_service import FlashSaleScheduler

router = APIRouter()
flash_sale_service = FlashSaleService()


@router.post("/", response_model=FlashSaleCampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    campaign_data: FlashSaleCampaignCreate,
    admin: User = Depends(get_current_admin),
    scheduler: FlashSaleScheduler = Depends(get_flash_sale_scheduler),
    db: AsyncSession = Depends(get_db)
):
    """
    **Create Flash Sale Campaign (Admin)**

    Start and end jobs are scheduled for the campaign automatically.
    """
    campaign = await flash_sale_service.create_campaign(campaign_data, db)
    await scheduler.schedule_job(campaign.id, JobType.START, db)
    await scheduler.schedule_job(campaign.id, JobType.END, db)
    return campaign


@router.post("/{campaign_id}/items", response_model=FlashSaleItemResponse, status_code=status.HTTP_201_CREATED)
async def add_campaign_item(
    campaign_id: int,
    item_data: FlashSaleItemCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Enroll a product or variant in a campaign (Admin)"""
    return await flash_sale_service.create_campaign_item(campaign_id, item_data, db)


@router.get("/{campaign_id}/items", response_model=List[FlashSaleItemResponse])
async def list_campaign_items(
    campaign_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await flash_sale_service.list_campaign_items(campaign_id, db)


@router.delete("/{campaign_id}/items/{item_id}")
async def delete_campaign_item(
    campaign_id: int,
    item_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await flash_sale_service.delete_campaign_item(campaign_id, item_id, db)


# Scheduled jobs

@router.post("/jobs", response_model=ScheduledJobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(
    job_data: ScheduledJobCreate,
    admin: User = Depends(get_current_admin),
    scheduler: FlashSaleScheduler = Depends(get_flash_sale_scheduler),
    db: AsyncSession = Depends(get_db)
):
    """Schedule a campaign start or end job (Admin)"""
    return await scheduler.schedule_job(
        job_data.campaign_id, job_data.job_type, db, job_data.scheduled_time, job_data.name
    )


@router.get("/jobs", response_model=List[ScheduledJobResponse])
async def list_jobs(
    campaign_id: Optional[int] = None,
    admin: User = Depends(get_current_admin),
    scheduler: FlashSaleScheduler = Depends(get_flash_sale_scheduler),
    db: AsyncSession = Depends(get_db)
):
    return await scheduler.list_jobs(db, campaign_id)


@router.get("/jobs/{job_id}", response_model=ScheduledJobResponse)
async def get_job(
    job_id: int,
    admin: User = Depends(get_current_admin),
    scheduler: FlashSaleScheduler = Depends(get_flash_sale_scheduler),
    db: AsyncSession = Depends(get_db)
):
    return await scheduler.get_job(job_id, db)


@router.patch("/jobs/{job_id}", response_model=ScheduledJobResponse)
async def update_job(
    job_id: int,
    job_data: ScheduledJobUpdate,
    admin: User = Depends(get_current_admin),
    scheduler: FlashSaleScheduler = Depends(get_flash_sale_scheduler),
    db: AsyncSession = Depends(get_db)
):
    """Reschedule a job that has not run yet (Admin)"""
    return await scheduler.update_job(job_id, job_data, db)


@router.delete("/jobs/{job_id}")
async def delete_job(
    job_id: int,
    admin: User = Depends(get_current_admin),
    scheduler: FlashSaleScheduler = Depends(get_flash_sale_scheduler),
    db: AsyncSession = Depends(get_db)
):
    await scheduler.delete_job(job_id, db)
    return {"message": "Scheduled job deleted"}
