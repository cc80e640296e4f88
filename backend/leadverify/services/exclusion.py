# backend/leadverify/services/exclusion.py
"""
Re-submission exclusion.

A contact whose submission is younger than the exclusion window is marked
``Ineligible_Recently_Submitted``. Once the submission ages out the contact
is evaluated against the campaign rules again. The submission row stays, so
the contact keeps counting against its account's cap and is never queued a
second time in the same campaign.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.config import settings
from leadverify.models.campaign import Campaign
from leadverify.models.common import utcnow
from leadverify.models.contact import Contact, EligibilityStatus
from leadverify.models.submission import LeadSubmission
from leadverify.utils.helpers import as_utc
from .eligibility import RECENTLY_SUBMITTED, EligibilityConfig, evaluate_eligibility

logger = logging.getLogger("leadverify.exclusion")


async def enforce_submission_exclusion(
    session: AsyncSession,
    campaign: Campaign,
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> dict:
    """Returns ``{checked, excluded, reactivated}`` for the campaign's submitted contacts."""
    now = now or utcnow()
    window = window or timedelta(days=settings.SUBMISSION_EXCLUSION_DAYS)
    cutoff = now - window
    stats = {"checked": 0, "excluded": 0, "reactivated": 0}

    rows = (
        await session.execute(
            select(Contact, LeadSubmission.submitted_at)
            .join(LeadSubmission, LeadSubmission.contact_id == Contact.id)
            .where(Contact.campaign_id == campaign.id, Contact.deleted.is_(False))
        )
    ).all()
    stats["checked"] = len(rows)
    config = EligibilityConfig.from_campaign(campaign)

    for contact, submitted_at in rows:
        submitted_at = as_utc(submitted_at)
        recent = submitted_at is None or submitted_at >= cutoff
        if recent:
            if contact.eligibility_status != EligibilityStatus.ineligible_recently_submitted:
                contact.eligibility_status = EligibilityStatus.ineligible_recently_submitted
                contact.eligibility_reason = RECENTLY_SUBMITTED
                stats["excluded"] += 1
        elif contact.eligibility_status == EligibilityStatus.ineligible_recently_submitted:
            result = evaluate_eligibility(contact.title, contact.country, contact.email, config)
            contact.eligibility_status = result.status
            contact.eligibility_reason = result.reason
            stats["reactivated"] += 1

    await session.commit()
    logger.info(
        "Submission exclusion campaign=%s checked=%d excluded=%d reactivated=%d",
        campaign.id, stats["checked"], stats["excluded"], stats["reactivated"],
    )
    return stats
