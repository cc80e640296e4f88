# backend/leadverify/routers/submissions.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..services.cap_enforcement import submit_contact
from ..services.email_validation import validate_contact_email
from .deps import get_provider

router = APIRouter()


@router.post("/{contact_id}/submit")
async def submit(contact_id: str, db: AsyncSession = Depends(get_db)):
    outcome = await submit_contact(db, contact_id)
    if outcome.cap_exceeded is not None:
        return JSONResponse(status_code=409, content={"detail": "Account cap reached", **outcome.cap_exceeded.to_dict()})
    return {
        "success": outcome.success,
        "submission_id": outcome.submission_id,
        "already_submitted": outcome.already_submitted,
    }


@router.post("/{contact_id}/validate-email")
async def validate_email(contact_id: str, db: AsyncSession = Depends(get_db), provider=Depends(get_provider)):
    return await validate_contact_email(db, contact_id, provider)
