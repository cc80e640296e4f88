# backend/leadverify/routers/priority.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..services.contacts import recalculate_priority_scores, update_priority_config
from ..services.priority import PriorityConfig
from .deps import get_campaign_or_404

router = APIRouter()


@router.get("/{campaign_id}/priority-config")
async def read_priority_config(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    return PriorityConfig.from_campaign(campaign).model_dump()


@router.put("/{campaign_id}/priority-config")
async def write_priority_config(campaign_id: str, body: PriorityConfig, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    campaign = await update_priority_config(db, campaign, body)
    return campaign.priority_config


@router.post("/{campaign_id}/priority-config/recalculate")
async def recalculate(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    updated = await recalculate_priority_scores(db, campaign)
    return {"updated_count": updated}
