# backend/leadverify/routers/exports.py
import csv
import io

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..services.export import (
    BUFFER_TEMPLATE_ENRICHED,
    BUFFER_TEMPLATES,
    EXPORT_COLUMNS,
    export_row,
    export_submission_buffer,
    export_validated_verified,
)
from .deps import get_campaign_or_404

router = APIRouter()


def _csv_response(header, rows, filename: str) -> Response:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)

    # BOM so Excel opens it as UTF-8
    payload = ("\ufeff" + buf.getvalue()).encode("utf-8")
    return Response(
        payload,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Total-Count": str(len(rows)),
        },
    )


@router.get("/{campaign_id}/export/validated-verified", response_model=None)
async def download_validated_verified(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await get_campaign_or_404(db, campaign_id)
    rows = await export_validated_verified(db, campaign)
    return _csv_response(
        EXPORT_COLUMNS,
        [export_row(contact, account_name) for contact, account_name in rows],
        f"validated_verified_{campaign_id}.csv",
    )


@router.get("/{campaign_id}/export/submission-buffer", response_model=None)
async def download_submission_buffer(
    campaign_id: str,
    template: str = Query(BUFFER_TEMPLATE_ENRICHED, pattern="^(" + "|".join(BUFFER_TEMPLATES) + ")$"),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id)
    header, rows = await export_submission_buffer(db, campaign, template)
    return _csv_response(header, rows, f"submission_buffer_{template}_{campaign_id}.csv")
