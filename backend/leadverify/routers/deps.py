# backend/leadverify/routers/deps.py
from typing import Dict, List

from fastapi import HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.campaign import Campaign
from ..utils.parser import parse_upload, rows_to_dicts
from ..verifier import EmailListVerifyProvider


async def get_campaign_or_404(db: AsyncSession, campaign_id: str) -> Campaign:
    campaign = await db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="campaign not found")
    return campaign


async def read_upload_rows(file: UploadFile) -> List[Dict[str, str]]:
    """Header-keyed rows of an uploaded CSV/TXT/XLSX/XLS file; 4xx on anything unusable."""
    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail="file too large")
    try:
        rows = rows_to_dicts(parse_upload(file.filename, content))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not rows:
        raise HTTPException(status_code=400, detail="no data rows found")
    return rows


async def get_provider():
    provider = EmailListVerifyProvider()
    try:
        yield provider
    finally:
        await provider.aclose()


def contact_to_dict(contact, account_name=None) -> dict:
    return {
        "id": contact.id,
        "campaign_id": contact.campaign_id,
        "account_id": contact.account_id,
        "account_name": account_name,
        "full_name": contact.full_name,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "title": contact.title,
        "email": contact.email,
        "phone": contact.phone,
        "country": contact.country,
        "eligibility_status": contact.eligibility_status.value,
        "eligibility_reason": contact.eligibility_reason,
        "verification_status": contact.verification_status.value,
        "email_status": contact.email_status.value,
        "priority_score": contact.priority_score,
        "seniority_level": contact.seniority_level,
        "suppressed": contact.suppressed,
        "in_submission_buffer": contact.in_submission_buffer,
    }
