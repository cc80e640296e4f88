# backend/leadverify/services/export.py
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.models.account import Account
from leadverify.models.campaign import DEFAULT_OK_EMAIL_STATES, Campaign
from leadverify.models.contact import Contact, EmailStatus, VerificationStatus

EXPORT_COLUMNS = [
    "contact_id", "full_name", "first_name", "last_name", "title", "email", "email_status",
    "phone", "mobile", "account_name", "country", "city", "state", "cav_id", "cav_user_id",
    "priority_score", "seniority_level",
]

# older campaign configs used the provider's wording
_LEGACY_STATES = {"valid": "ok", "catch_all": "accept_all"}


def valid_equivalent_statuses(campaign: Campaign) -> List[str]:
    configured = campaign.ok_email_states or DEFAULT_OK_EMAIL_STATES
    known = {s.value for s in EmailStatus}
    out = []
    for state in configured:
        value = _LEGACY_STATES.get(str(state).lower(), str(state).lower())
        if value in known and value not in out:
            out.append(value)
    return out


async def export_validated_verified(session: AsyncSession, campaign: Campaign) -> List[Tuple[Contact, str]]:
    """Validated contacts whose email status is valid-equivalent for the campaign."""
    stmt = (
        select(Contact, Account.name)
        .outerjoin(Account, Account.id == Contact.account_id)
        .where(
            Contact.campaign_id == campaign.id,
            Contact.deleted.is_(False),
            Contact.verification_status == VerificationStatus.validated,
            Contact.email_status.in_(valid_equivalent_statuses(campaign)),
        )
        .order_by(Account.name, Contact.full_name, Contact.id)
    )
    return [(contact, account_name) for contact, account_name in (await session.execute(stmt)).all()]


def export_row(contact: Contact, account_name: str) -> list:
    values = {
        "contact_id": contact.id,
        "account_name": account_name or "",
        "email_status": contact.email_status.value,
    }
    return [
        values[col] if col in values else ("" if getattr(contact, col) is None else getattr(contact, col))
        for col in EXPORT_COLUMNS
    ]


# ---------------------------------------------------------
# Submission buffer
# ---------------------------------------------------------
BUFFER_TEMPLATE_ENRICHED = "enriched"
BUFFER_TEMPLATE_CLIENT_CAV = "client_cav"
BUFFER_TEMPLATES = (BUFFER_TEMPLATE_ENRICHED, BUFFER_TEMPLATE_CLIENT_CAV)

# header -> value getter over (contact, account name, account domain)
_ENRICHED_COLUMNS = [
    ("First Name", lambda c, name, domain: c.first_name),
    ("Last Name", lambda c, name, domain: c.last_name),
    ("Full Name", lambda c, name, domain: c.full_name),
    ("Title", lambda c, name, domain: c.title),
    ("Email", lambda c, name, domain: c.email),
    ("Email Validation Status", lambda c, name, domain: c.email_status.value),
    ("Phone", lambda c, name, domain: c.phone),
    ("Mobile", lambda c, name, domain: c.mobile),
    ("LinkedIn URL", lambda c, name, domain: c.linkedin_url),
    ("Company", lambda c, name, domain: name),
    ("Address 1", lambda c, name, domain: c.address1),
    ("Address 2", lambda c, name, domain: c.address2),
    ("City", lambda c, name, domain: c.city),
    ("State", lambda c, name, domain: c.state),
    ("Country", lambda c, name, domain: c.country),
    ("Postal Code", lambda c, name, domain: c.postal_code),
    ("Domain", lambda c, name, domain: domain),
    ("Source Type", lambda c, name, domain: c.source_type.value),
    ("CAV ID", lambda c, name, domain: c.cav_id),
]

_CLIENT_CAV_COLUMNS = [
    ("CAV-ID", lambda c, name, domain: c.cav_id),
    ("CAV-User ID", lambda c, name, domain: c.cav_user_id),
    ("CAV-Company", lambda c, name, domain: name),
    ("CAV-Addr1", lambda c, name, domain: c.address1),
    ("CAV-Addr2", lambda c, name, domain: c.address2),
    ("CAV-Addr3", lambda c, name, domain: None),
    ("CAV-Town", lambda c, name, domain: c.city),
    ("CAV-County", lambda c, name, domain: c.state),
    ("CAV-Postcode", lambda c, name, domain: c.postal_code),
    ("CAV-Country", lambda c, name, domain: c.country),
    ("CAV-Tel", lambda c, name, domain: c.phone or c.mobile),
    ("CAV-Forename", lambda c, name, domain: c.first_name),
    ("CAV-Surname", lambda c, name, domain: c.last_name),
    ("CAV-Job Title", lambda c, name, domain: c.title),
    ("CAV-Email", lambda c, name, domain: c.email),
    ("Linkedin URL/Social Media Profile", lambda c, name, domain: c.linkedin_url),
]


def buffer_columns(template: str):
    if template == BUFFER_TEMPLATE_CLIENT_CAV:
        return _CLIENT_CAV_COLUMNS
    if template == BUFFER_TEMPLATE_ENRICHED:
        return _ENRICHED_COLUMNS
    raise ValueError(f"Unknown export template '{template}'")


async def export_submission_buffer(
    session: AsyncSession, campaign: Campaign, template: str = BUFFER_TEMPLATE_ENRICHED
) -> Tuple[List[str], List[list]]:
    """
    Header and rows for the contacts waiting in the submission buffer.

    Suppressed contacts and emails that are not valid-equivalent for the
    campaign are left out; the client CAV layout also needs a CAV ID.
    """
    columns = buffer_columns(template)
    stmt = (
        select(Contact, Account.name, Account.domain)
        .outerjoin(Account, Account.id == Contact.account_id)
        .where(
            Contact.campaign_id == campaign.id,
            Contact.in_submission_buffer.is_(True),
            Contact.deleted.is_(False),
            Contact.suppressed.is_(False),
            Contact.email_status.in_(valid_equivalent_statuses(campaign)),
        )
        .order_by(Account.name, Contact.last_name, Contact.first_name, Contact.id)
    )
    if template == BUFFER_TEMPLATE_CLIENT_CAV:
        stmt = stmt.where(Contact.cav_id.isnot(None), Contact.cav_id != "")

    rows = []
    for contact, account_name, domain in (await session.execute(stmt)).all():
        values = [getter(contact, account_name, domain) for _, getter in columns]
        rows.append(["" if v is None else v for v in values])
    return [header for header, _ in columns], rows
