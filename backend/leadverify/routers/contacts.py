# backend/leadverify/routers/contacts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..schemas import BulkDeleteRequest, BulkFieldUpdateRequest, ContactIdsRequest
from ..services.contacts import bulk_delete_contacts, bulk_mark_validated, bulk_update_field
from .deps import get_campaign_or_404

router = APIRouter()


@router.post("/{campaign_id}/contacts/bulk-delete")
async def bulk_delete(campaign_id: str, body: BulkDeleteRequest, db: AsyncSession = Depends(get_db)):
    await get_campaign_or_404(db, campaign_id)
    return await bulk_delete_contacts(db, campaign_id, body.contact_ids, is_admin=body.is_admin, actor=body.actor)


@router.post("/{campaign_id}/contacts/bulk-update")
async def bulk_update(campaign_id: str, body: BulkFieldUpdateRequest, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    try:
        return await bulk_update_field(db, campaign, body.contact_ids, body.field, body.value, actor=body.actor)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{campaign_id}/contacts/bulk-mark-validated")
async def mark_validated(campaign_id: str, body: ContactIdsRequest, db: AsyncSession = Depends(get_db)):
    await get_campaign_or_404(db, campaign_id)
    return await bulk_mark_validated(db, campaign_id, body.contact_ids)
