# backend/leadverify/routers/imports.py
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..services.exclusion import enforce_submission_exclusion
from ..services.imports import import_submission_records, import_validation_results
from .deps import get_campaign_or_404, read_upload_rows

router = APIRouter()


@router.post("/{campaign_id}/validation-results/import")
async def import_results(campaign_id: str, file: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    await get_campaign_or_404(db, campaign_id)
    rows = await read_upload_rows(file)
    return await import_validation_results(db, campaign_id, rows)


@router.post("/{campaign_id}/submissions/import")
async def import_submissions(campaign_id: str, file: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    rows = await read_upload_rows(file)
    return await import_submission_records(db, campaign, rows)


@router.post("/{campaign_id}/submissions/exclusion")
async def run_submission_exclusion(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    return await enforce_submission_exclusion(db, campaign)
