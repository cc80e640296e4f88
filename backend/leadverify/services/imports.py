# backend/leadverify/services/imports.py
"""
Bulk imports of work done outside the pipeline.

Validation results from an external checker overwrite ``email_status`` of
matching contacts. Submission records describe leads that were delivered
before (or outside) this system; they are written as ``LeadSubmission`` rows
so they count against the account cap, and the exclusion window is applied
afterwards.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.models.campaign import Campaign
from leadverify.models.common import utcnow
from leadverify.models.contact import Contact, EmailStatus
from leadverify.models.submission import LeadSubmission
from leadverify.utils.helpers import parse_datetime
from leadverify.utils.parser import SUBMISSION_HEADER_ALIASES, VALIDATION_RESULT_HEADER_ALIASES, map_row
from leadverify.verifier import map_provider_status
from .cap_enforcement import account_lock, account_lock_key
from .exclusion import enforce_submission_exclusion
from .normalizer import email_lower, is_present

logger = logging.getLogger("leadverify.imports")

# wording used by other verification tools on top of the provider mapping
_RESULT_ALIASES = {
    "deliverable": "ok",
    "undeliverable": "invalid",
    "catch-all": "accept_all",
    "catchall": "accept_all",
}


def map_result_status(raw: Optional[str]) -> str:
    key = (raw or "").strip().lower()
    return _RESULT_ALIASES.get(key) or map_provider_status(key)


async def import_validation_results(
    session: AsyncSession,
    campaign_id: str,
    rows: Sequence[Dict[str, object]],
    field_mappings: Optional[Dict[str, str]] = None,
) -> dict:
    """Apply ``email, email_status`` rows to every live contact of the campaign with that email."""
    summary = {"total": len(rows), "updated": 0, "not_found": 0, "errors": []}

    for i, raw in enumerate(rows):
        label = f"Row {i + 1}"
        data = map_row(raw, VALIDATION_RESULT_HEADER_ALIASES, field_mappings)
        email = email_lower(data.get("email"))
        if not email or not is_present(data.get("email_status")):
            summary["errors"].append(f"{label}: email and email status are required")
            continue
        status = map_result_status(data["email_status"])
        if status == EmailStatus.unknown.value:
            summary["errors"].append(f"{label}: unrecognized email status '{data['email_status']}'")
            continue

        result = await session.execute(
            update(Contact)
            .where(Contact.campaign_id == campaign_id, Contact.email_lower == email, Contact.deleted.is_(False))
            .values(email_status=EmailStatus(status))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            summary["updated"] += result.rowcount
        else:
            summary["not_found"] += 1

    await session.commit()
    logger.info(
        "Validation results imported campaign=%s rows=%d updated=%d not_found=%d errors=%d",
        campaign_id, summary["total"], summary["updated"], summary["not_found"], len(summary["errors"]),
    )
    return summary


async def _resolve_contact(session: AsyncSession, campaign_id: str, data: Dict[str, str]) -> List[Contact]:
    if is_present(data.get("contact_id")):
        contact = await session.get(Contact, data["contact_id"].strip())
        if contact is None or contact.deleted or contact.campaign_id != campaign_id:
            return []
        return [contact]
    rows = await session.execute(
        select(Contact).where(
            Contact.campaign_id == campaign_id,
            Contact.email_lower == email_lower(data.get("email")),
            Contact.deleted.is_(False),
        )
    )
    return list(rows.scalars().all())


async def import_submission_records(
    session: AsyncSession,
    campaign: Campaign,
    rows: Sequence[Dict[str, object]],
    field_mappings: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Record earlier deliveries as submissions.

    Each row names a contact by ``contact_id`` or by email (which must match
    exactly one live contact) and may carry ``submitted_at``; without it the
    import time is used. Imported rows bypass the cap check but take the same
    account lock as a regular submission. The submission buffer is left
    alone since these leads were already delivered.
    """
    now = now or utcnow()
    campaign_id = campaign.id
    summary = {"total": len(rows), "created": 0, "already_submitted": 0, "not_found": 0, "errors": []}

    for i, raw in enumerate(rows):
        label = f"Row {i + 1}"
        data = map_row(raw, SUBMISSION_HEADER_ALIASES, field_mappings)
        if not is_present(data.get("contact_id")) and not email_lower(data.get("email")):
            summary["errors"].append(f"{label}: email or contact_id is required")
            continue

        submitted_at = now
        if is_present(data.get("submitted_at")):
            submitted_at = parse_datetime(data["submitted_at"])
            if submitted_at is None:
                summary["errors"].append(f"{label}: unreadable submitted_at '{data['submitted_at']}'")
                continue

        matches = await _resolve_contact(session, campaign_id, data)
        if not matches:
            summary["not_found"] += 1
            continue
        if len(matches) > 1:
            summary["errors"].append(f"{label}: email matches {len(matches)} contacts")
            continue
        contact_id, account_id = matches[0].id, matches[0].account_id

        async with account_lock(session, account_lock_key(campaign_id, account_id)):
            existing = await session.scalar(select(LeadSubmission.id).where(LeadSubmission.contact_id == contact_id))
            if existing:
                await session.rollback()
                summary["already_submitted"] += 1
                continue
            session.add(LeadSubmission(
                contact_id=contact_id, campaign_id=campaign_id, account_id=account_id, submitted_at=submitted_at,
            ))
            await session.commit()
        summary["created"] += 1

    logger.info(
        "Submission records imported campaign=%s rows=%d created=%d already=%d not_found=%d errors=%d",
        campaign_id, summary["total"], summary["created"], summary["already_submitted"],
        summary["not_found"], len(summary["errors"]),
    )
    campaign = await session.get(Campaign, campaign_id, populate_existing=True)
    summary["exclusion"] = await enforce_submission_exclusion(session, campaign, now=now)
    return summary
