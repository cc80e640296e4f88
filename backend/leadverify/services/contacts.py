# backend/leadverify/services/contacts.py
# Derived-field refresh and the guarded bulk operations on contacts.
import logging
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.models.account import Account
from leadverify.models.campaign import Campaign
from leadverify.models.contact import Contact, EmailStatus, SourceType, VerificationStatus
from leadverify.models.submission import LeadSubmission
from leadverify.utils.helpers import is_valid_syntax
from .audit import record_audit
from .eligibility import EligibilityConfig, evaluate_contact
from .normalizer import apply_normalized_keys, is_present
from .priority import PriorityConfig
from .suppression import apply_suppression_for_contacts

logger = logging.getLogger("leadverify.contacts")

BULK_UPDATE_FIELDS = {
    "full_name",
    "first_name",
    "last_name",
    "title",
    "email",
    "phone",
    "mobile",
    "linkedin_url",
    "address1",
    "address2",
    "city",
    "state",
    "postal_code",
    "country",
    "cav_id",
    "cav_user_id",
}
MAX_FIELD_LENGTH = 500


def refresh_derived_fields(contact: Contact, campaign: Campaign, company_name: Optional[str]) -> None:
    """Recompute normalized keys, eligibility, seniority and priority."""
    apply_normalized_keys(contact, company_name)
    result = evaluate_contact(
        contact.title,
        contact.country,
        contact.email,
        EligibilityConfig.from_campaign(campaign),
        PriorityConfig.from_campaign(campaign),
    )
    contact.eligibility_status = result.status
    contact.eligibility_reason = result.reason
    contact.seniority_level = result.seniority_level
    contact.priority_score = result.priority_score


def initial_email_status(email: Optional[str]) -> EmailStatus:
    if is_present(email) and not is_valid_syntax(email.strip()):
        return EmailStatus.invalid
    return EmailStatus.unknown


async def submitted_contact_ids(session: AsyncSession, contact_ids: Sequence[str]) -> set:
    if not contact_ids:
        return set()
    rows = await session.execute(select(LeadSubmission.contact_id).where(LeadSubmission.contact_id.in_(list(contact_ids))))
    return set(rows.scalars().all())


async def _load_campaign_contacts(session: AsyncSession, campaign_id: str, contact_ids: Sequence[str]) -> List[Contact]:
    rows = await session.execute(
        select(Contact).where(
            Contact.id.in_(list(dict.fromkeys(contact_ids))),
            Contact.campaign_id == campaign_id,
            Contact.deleted.is_(False),
        )
    )
    return list(rows.scalars().all())


async def bulk_delete_contacts(
    session: AsyncSession,
    campaign_id: str,
    contact_ids: Sequence[str],
    is_admin: bool = False,
    actor: Optional[str] = None,
) -> dict:
    """
    Soft-delete contacts. Submitted and in-buffer contacts are never touched;
    Client_Provided contacts only by an admin.
    """
    contacts = await _load_campaign_contacts(session, campaign_id, contact_ids)
    submitted = await submitted_contact_ids(session, [c.id for c in contacts])

    deleted_ids = []
    for contact in contacts:
        if contact.id in submitted or contact.in_submission_buffer:
            continue
        if contact.source_type == SourceType.client_provided and not is_admin:
            continue
        contact.deleted = True
        deleted_ids.append(contact.id)

    requested = len(set(contact_ids))
    if deleted_ids:
        record_audit(session, "bulk_delete", "contact", deleted_ids, campaign_id=campaign_id, actor=actor)
    await session.commit()

    logger.info("Bulk delete campaign=%s requested=%d deleted=%d", campaign_id, requested, len(deleted_ids))
    return {
        "deleted_count": len(deleted_ids),
        "deleted_ids": deleted_ids,
        "skipped_count": requested - len(deleted_ids),
    }


async def bulk_update_field(
    session: AsyncSession,
    campaign: Campaign,
    contact_ids: Sequence[str],
    field: str,
    value: Optional[str],
    actor: Optional[str] = None,
) -> dict:
    """Set one allow-listed field on many contacts; submitted contacts are skipped."""
    if field not in BULK_UPDATE_FIELDS:
        raise ValueError(f"Field '{field}' cannot be bulk updated")
    if value is not None and len(value) > MAX_FIELD_LENGTH:
        raise ValueError(f"Value exceeds {MAX_FIELD_LENGTH} characters")
    new_value = value.strip() if is_present(value) else None
    if field == "full_name" and new_value is None:
        raise ValueError("full_name cannot be empty")

    contacts = await _load_campaign_contacts(session, campaign.id, contact_ids)
    submitted = await submitted_contact_ids(session, [c.id for c in contacts])
    targets = [c for c in contacts if c.id not in submitted]

    account_names = {}
    account_ids = {c.account_id for c in targets if c.account_id}
    if account_ids:
        account_names = dict((await session.execute(select(Account.id, Account.name).where(Account.id.in_(account_ids)))).all())

    for contact in targets:
        setattr(contact, field, new_value)
        if field == "email":
            contact.email_status = initial_email_status(new_value)
        refresh_derived_fields(contact, campaign, account_names.get(contact.account_id))

    updated_ids = [c.id for c in targets]
    if updated_ids:
        record_audit(
            session, "bulk_field_update", "contact", updated_ids,
            campaign_id=campaign.id, details={"field": field, "value": new_value}, actor=actor,
        )
    await session.commit()

    # key fields may have changed, so the suppression flag is recomputed too
    if updated_ids:
        await apply_suppression_for_contacts(session, campaign.id, updated_ids)

    return {"updated_count": len(updated_ids), "skipped_count": len(set(contact_ids)) - len(updated_ids)}


async def bulk_mark_validated(
    session: AsyncSession,
    campaign_id: str,
    contact_ids: Sequence[str],
    actor: Optional[str] = None,
) -> dict:
    contacts = await _load_campaign_contacts(session, campaign_id, contact_ids)
    submitted = await submitted_contact_ids(session, [c.id for c in contacts])

    updated_ids = []
    for contact in contacts:
        if contact.id in submitted or contact.verification_status == VerificationStatus.validated:
            continue
        contact.verification_status = VerificationStatus.validated
        updated_ids.append(contact.id)

    if updated_ids:
        record_audit(session, "bulk_mark_validated", "contact", updated_ids, campaign_id=campaign_id, actor=actor)
    await session.commit()
    return {"updated_count": len(updated_ids), "skipped_count": len(set(contact_ids)) - len(updated_ids)}


async def recalculate_priority_scores(session: AsyncSession, campaign: Campaign) -> int:
    """Re-run eligibility and priority scoring for every live contact of the campaign."""
    contacts = (
        await session.execute(select(Contact).where(Contact.campaign_id == campaign.id, Contact.deleted.is_(False)))
    ).scalars().all()
    account_ids = {c.account_id for c in contacts if c.account_id}
    names = {}
    if account_ids:
        names = dict((await session.execute(select(Account.id, Account.name).where(Account.id.in_(account_ids)))).all())

    submitted = await submitted_contact_ids(session, [c.id for c in contacts])
    updated = 0
    for contact in contacts:
        if contact.id in submitted:
            continue
        refresh_derived_fields(contact, campaign, names.get(contact.account_id))
        updated += 1

    await session.commit()
    logger.info("Priority recalculated campaign=%s contacts=%d", campaign.id, updated)
    return updated


async def update_priority_config(session: AsyncSession, campaign: Campaign, config: PriorityConfig) -> Campaign:
    campaign.priority_config = config.model_dump()
    await session.commit()
    return campaign
