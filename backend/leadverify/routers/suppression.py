# backend/leadverify/routers/suppression.py
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models.campaign import Campaign
from ..models.contact import Contact
from ..schemas import ContactIdsRequest, SuppressionEntriesRequest
from ..services.suppression import (
    SuppressionEntryIn,
    add_to_suppression_list,
    apply_suppression_for_contacts,
    list_suppression_entries,
)
from ..utils.parser import SUPPRESSION_HEADER_ALIASES, map_row
from .deps import get_campaign_or_404, read_upload_rows

router = APIRouter()
global_router = APIRouter()


def _entry_to_dict(entry) -> dict:
    return {
        "id": entry.id,
        "campaign_id": entry.campaign_id,
        "scope": "global" if entry.campaign_id is None else "campaign",
        "email": entry.email,
        "cav_id": entry.cav_id,
        "cav_user_id": entry.cav_user_id,
        "first_name": entry.first_name,
        "last_name": entry.last_name,
        "company_name": entry.company_name,
        "has_name_company_hash": entry.name_company_hash is not None,
        "reason": entry.reason,
        "created_at": entry.created_at,
    }


@router.get("/{campaign_id}/suppression")
async def list_entries(
    campaign_id: str,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    await get_campaign_or_404(db, campaign_id)
    total, entries = await list_suppression_entries(db, campaign_id, limit=limit, offset=offset)
    return {"total": total, "data": [_entry_to_dict(e) for e in entries]}


@router.post("/{campaign_id}/suppression")
async def add_campaign_entries(campaign_id: str, body: SuppressionEntriesRequest, db: AsyncSession = Depends(get_db)):
    await get_campaign_or_404(db, campaign_id)
    return await add_to_suppression_list(db, campaign_id, body.entries)


def _entries_from_rows(rows) -> list:
    return [SuppressionEntryIn(**map_row(r, SUPPRESSION_HEADER_ALIASES)) for r in rows]


async def _live_contact_ids(db: AsyncSession, campaign_id: str) -> list:
    rows = await db.execute(select(Contact.id).where(Contact.campaign_id == campaign_id, Contact.deleted.is_(False)))
    return list(rows.scalars().all())


@router.post("/{campaign_id}/suppression/upload")
async def upload_campaign_entries(
    campaign_id: str,
    file: UploadFile = File(...),
    apply_to_existing: bool = Form(False),
    db: AsyncSession = Depends(get_db),
):
    await get_campaign_or_404(db, campaign_id)
    rows = await read_upload_rows(file)
    result = await add_to_suppression_list(db, campaign_id, _entries_from_rows(rows))

    if apply_to_existing:
        ids = await _live_contact_ids(db, campaign_id)
        result["suppressed_count"] = await apply_suppression_for_contacts(db, campaign_id, ids)
    return result


@router.post("/{campaign_id}/suppression/apply")
async def apply_suppression(campaign_id: str, body: ContactIdsRequest, db: AsyncSession = Depends(get_db)):
    await get_campaign_or_404(db, campaign_id)
    suppressed = await apply_suppression_for_contacts(db, campaign_id, body.contact_ids)
    return {"suppressed_count": suppressed}


@global_router.post("/global")
async def add_global_entries(body: SuppressionEntriesRequest, db: AsyncSession = Depends(get_db)):
    return await add_to_suppression_list(db, None, body.entries)


@global_router.post("/global/upload")
async def upload_global_entries(
    file: UploadFile = File(...),
    apply_to_existing: bool = Form(False),
    db: AsyncSession = Depends(get_db),
):
    """Global entries from a file; with ``apply_to_existing`` every campaign is re-checked."""
    rows = await read_upload_rows(file)
    result = await add_to_suppression_list(db, None, _entries_from_rows(rows))

    if apply_to_existing:
        campaign_ids = (await db.execute(select(Campaign.id).order_by(Campaign.id))).scalars().all()
        suppressed = 0
        for campaign_id in campaign_ids:
            ids = await _live_contact_ids(db, campaign_id)
            if ids:
                suppressed += await apply_suppression_for_contacts(db, campaign_id, ids)
        result["suppressed_count"] = suppressed
    return result
