# backend/leadverify/routers/validation_jobs.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models.common import utcnow
from ..models.email_validation import EmailValidationJob, JobStatus
from ..schemas import StartValidationJobRequest
from ..services.dispatch import JobDispatcher, get_dispatcher
from ..services.email_validation import create_validation_job, get_job_status, is_job_running, job_snapshot, list_jobs
from .deps import get_campaign_or_404

router = APIRouter()
job_router = APIRouter()


@router.post("/{campaign_id}/email-validation-jobs")
async def start_job(
    campaign_id: str,
    body: StartValidationJobRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    await get_campaign_or_404(db, campaign_id)
    job = await create_validation_job(db, campaign_id, body.contact_ids, batch_size=body.batch_size)
    await dispatcher.dispatch(job.id)
    return {"job_id": job.id, "total_contacts": job.total_contacts, "total_batches": job.total_batches}


@router.get("/{campaign_id}/email-validation-jobs")
async def list_campaign_jobs(
    campaign_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    await get_campaign_or_404(db, campaign_id)
    jobs = await list_jobs(db, campaign_id, limit=limit)
    return {"data": [job_snapshot(j) for j in jobs]}


@job_router.get("/{job_id}")
async def read_job_status(job_id: str, db: AsyncSession = Depends(get_db)):
    return await get_job_status(db, job_id)


@job_router.post("/{job_id}/resume")
async def resume_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    job = await db.get(EmailValidationJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")
    if job.status == JobStatus.completed:
        raise HTTPException(status_code=409, detail="job already completed")
    if is_job_running(job, utcnow()):
        raise HTTPException(status_code=409, detail="job is already running")

    await dispatcher.dispatch(job.id)
    return {"job_id": job.id, "resumed_from_batch": job.current_batch, "total_batches": job.total_batches}
