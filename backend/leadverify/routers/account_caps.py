# backend/leadverify/routers/account_caps.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..schemas import CapOverrideRequest
from ..services.cap_enforcement import (
    campaign_default_cap,
    list_account_cap_status,
    recalculate_account_cap_status,
    set_account_cap_override,
)
from .deps import get_campaign_or_404

router = APIRouter()


@router.get("/{campaign_id}/account-caps")
async def read_account_caps(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    rows = await list_account_cap_status(db, campaign)
    return {"default_cap": campaign_default_cap(campaign), "data": rows}


@router.patch("/{campaign_id}/account-caps/{account_id}")
async def update_account_cap(
    campaign_id: str,
    account_id: str,
    body: CapOverrideRequest,
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    row = await set_account_cap_override(db, campaign, account_id, body.cap, actor=body.actor)
    return {"campaign_id": campaign.id, "account_id": row.account_id, "cap": row.cap}


@router.post("/{campaign_id}/account-caps/recalculate")
async def recalculate_caps(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    accounts = await recalculate_account_cap_status(db, campaign)
    return {"accounts": accounts}
