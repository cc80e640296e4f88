# backend/leadverify/routers/queue.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models.account import Account
from ..schemas import PrepareSubmissionRequest
from ..services.cap_enforcement import (
    flush_buffer,
    get_all_eligible_ids_under_cap,
    get_queue,
    prepare_submission_batch,
)
from ..services.filters import ContactFilters
from .deps import contact_to_dict, get_campaign_or_404

router = APIRouter()


@router.get("/{campaign_id}/queue")
async def read_queue(
    campaign_id: str,
    limit: int = Query(50, ge=1, le=500),
    filters: ContactFilters = Depends(),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    contacts = await get_queue(db, campaign, limit=limit, filters=filters)

    account_ids = {c.account_id for c in contacts if c.account_id}
    names = {}
    if account_ids:
        names = dict((await db.execute(select(Account.id, Account.name).where(Account.id.in_(account_ids)))).all())

    data = [contact_to_dict(c, names.get(c.account_id)) for c in contacts]
    # release the row locks taken for selection
    await db.commit()
    return {"data": data, "count": len(data)}


@router.get("/{campaign_id}/queue/all-ids")
async def read_all_ids_under_cap(
    campaign_id: str,
    filters: ContactFilters = Depends(),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    ids = await get_all_eligible_ids_under_cap(db, campaign, filters=filters)
    return {"ids": ids, "total": len(ids)}


@router.post("/{campaign_id}/submissions/flush")
async def flush_submission_buffer(campaign_id: str, db: AsyncSession = Depends(get_db)):
    await get_campaign_or_404(db, campaign_id)
    flushed = await flush_buffer(db, campaign_id)
    return {"flushed_count": flushed}


@router.post("/{campaign_id}/submissions/prepare")
async def prepare_submissions(
    campaign_id: str,
    body: PrepareSubmissionRequest,
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    return await prepare_submission_batch(db, campaign, body.batch_size, candidate_ids=body.contact_ids)
