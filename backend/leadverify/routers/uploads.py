# backend/leadverify/routers/uploads.py
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..schemas import UploadContactsRequest
from ..services.uploads import upload_contacts
from ..utils.parser import parse_csv_text, rows_to_dicts
from .deps import get_campaign_or_404, read_upload_rows

router = APIRouter()


# ---------------------------------------------------
# JSON rows or pasted CSV text
# ---------------------------------------------------
@router.post("/{campaign_id}/contacts/upload")
async def upload_contact_rows(
    campaign_id: str,
    body: UploadContactsRequest,
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    rows = body.rows if body.rows is not None else rows_to_dicts(parse_csv_text(body.csv_data))
    if not rows:
        raise HTTPException(status_code=400, detail="no data rows found")

    summary = await upload_contacts(db, campaign, rows, body.field_mappings, body.update_mode)
    return summary.to_dict()


# ---------------------------------------------------
# CSV / TXT / XLSX / XLS file
# ---------------------------------------------------
@router.post("/{campaign_id}/contacts/upload-file")
async def upload_contact_file(
    campaign_id: str,
    file: UploadFile = File(...),
    update_mode: bool = Form(False),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    rows = await read_upload_rows(file)
    summary = await upload_contacts(db, campaign, rows, None, update_mode)
    return {"filename": file.filename, **summary.to_dict()}
