# backend/leadverify/services/uploads.py
"""
Contact ingestion.

Each row is mapped, normalized, evaluated for eligibility and checked against
suppression before it is written. In update mode a row updates an existing
contact only when exactly one candidate matches, first by email and then by
full name + country + account; several candidates reject the row.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.models.account import Account
from leadverify.models.campaign import Campaign
from leadverify.models.contact import Contact, SourceType
from leadverify.models.submission import LeadSubmission
from leadverify.utils.helpers import normalize_domain
from leadverify.utils.parser import CONTACT_HEADER_ALIASES, map_row
from .contacts import initial_email_status, refresh_derived_fields
from .normalizer import country_key, email_lower, is_present, split_full_name
from .suppression import ContactKeys, find_suppression_match

logger = logging.getLogger("leadverify.uploads")

CONTACT_FIELDS = (
    "full_name", "first_name", "last_name", "title", "email", "phone", "mobile",
    "linkedin_url", "address1", "address2", "city", "state", "postal_code",
    "country", "cav_id", "cav_user_id",
)


@dataclass
class UploadSummary:
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class RowRejected(Exception):
    pass


def parse_source_type(value: Optional[str]) -> SourceType:
    v = (value or "").strip().lower().replace(" ", "_")
    if v in ("client_provided", "client", "provided"):
        return SourceType.client_provided
    return SourceType.new_sourced


class AccountResolver:
    """Finds accounts by domain, then case-insensitive name; creates missing ones."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._by_domain: Dict[str, Account] = {}
        self._by_name: Dict[str, Account] = {}

    async def resolve(self, name: Optional[str], domain: Optional[str]) -> Optional[Account]:
        domain = normalize_domain(domain)
        name_key = name.strip().lower() if is_present(name) else None
        if not domain and not name_key:
            return None

        if domain:
            account = self._by_domain.get(domain)
            if account is None:
                account = await self.session.scalar(select(Account).where(Account.domain == domain).limit(1))
            if account is not None:
                return self._remember(account)

        if name_key:
            account = self._by_name.get(name_key)
            if account is None:
                account = await self.session.scalar(
                    select(Account).where(func.lower(Account.name) == name_key).limit(1)
                )
            if account is not None:
                if domain and not account.domain:
                    account.domain = domain
                return self._remember(account)

        account = Account(name=name.strip() if name_key else domain, domain=domain)
        self.session.add(account)
        await self.session.flush()
        return self._remember(account)

    def _remember(self, account: Account) -> Account:
        if account.domain:
            self._by_domain[account.domain] = account
        self._by_name[account.name.strip().lower()] = account
        return account


async def find_update_target(
    session: AsyncSession,
    campaign_id: str,
    email: Optional[str],
    full_name: str,
    country: Optional[str],
    account_id: Optional[str],
) -> Optional[Contact]:
    """
    The single contact this row should update, or None to create one.

    Raises RowRejected when a rule matches more than one contact.
    """
    base = [Contact.campaign_id == campaign_id, Contact.deleted.is_(False)]

    key = email_lower(email)
    if key:
        rows = (await session.execute(select(Contact).where(*base, Contact.email_lower == key).limit(2))).scalars().all()
        if len(rows) > 1:
            raise RowRejected(f"ambiguous match: multiple contacts with email {key}")
        if rows:
            return rows[0]

    ckey = country_key(country)
    if not (ckey and account_id):
        return None
    rows = (
        await session.execute(
            select(Contact)
            .where(
                *base,
                func.lower(func.trim(Contact.full_name)) == full_name.strip().lower(),
                Contact.contact_country_key == ckey,
                Contact.account_id == account_id,
            )
            .limit(2)
        )
    ).scalars().all()
    if len(rows) > 1:
        raise RowRejected("ambiguous match: multiple contacts with the same name, country and account")
    return rows[0] if rows else None


async def upload_contacts(
    session: AsyncSession,
    campaign: Campaign,
    rows: Sequence[Dict[str, object]],
    field_mappings: Optional[Dict[str, str]] = None,
    update_mode: bool = False,
) -> UploadSummary:
    summary = UploadSummary(total=len(rows))
    accounts = AccountResolver(session)

    for i, raw in enumerate(rows):
        label = f"Row {i + 1}"
        data = map_row(raw, CONTACT_HEADER_ALIASES, field_mappings)

        full_name = data.get("full_name") or " ".join(
            p for p in (data.get("first_name"), data.get("last_name")) if p
        )
        if not is_present(full_name):
            summary.skipped += 1
            summary.errors.append(f"{label}: missing full name")
            continue
        data["full_name"] = full_name
        if not data.get("first_name") and not data.get("last_name"):
            first, last = split_full_name(full_name)
            if first:
                data["first_name"] = first
            if last:
                data["last_name"] = last

        account = await accounts.resolve(data.get("account_name"), data.get("domain"))
        company_name = account.name if account else data.get("account_name")

        try:
            target = None
            if update_mode:
                target = await find_update_target(
                    session, campaign.id, data.get("email"), full_name, data.get("country"),
                    account.id if account else None,
                )
                if target is not None:
                    submitted = await session.scalar(
                        select(LeadSubmission.id).where(LeadSubmission.contact_id == target.id)
                    )
                    if submitted:
                        raise RowRejected("contact already submitted; not updated")
        except RowRejected as e:
            summary.skipped += 1
            summary.errors.append(f"{label}: {e}")
            continue

        if target is None:
            contact = Contact(campaign_id=campaign.id, source_type=parse_source_type(data.get("source_type")))
            for name in CONTACT_FIELDS:
                setattr(contact, name, data.get(name))
            contact.email_status = initial_email_status(contact.email)
        else:
            contact = target
            previous_email = email_lower(contact.email)
            for name in CONTACT_FIELDS:
                if name in data:
                    setattr(contact, name, data[name])
            if "source_type" in data:
                contact.source_type = parse_source_type(data["source_type"])
            if email_lower(contact.email) != previous_email:
                contact.email_status = initial_email_status(contact.email)

        if account is not None:
            contact.account_id = account.id

        refresh_derived_fields(contact, campaign, company_name)
        match = await find_suppression_match(session, campaign.id, ContactKeys.from_contact(contact))
        contact.suppressed = match is not None

        if target is None:
            session.add(contact)
            await session.flush()
            summary.created += 1
        else:
            summary.updated += 1

    await session.commit()
    logger.info(
        "Upload finished campaign=%s total=%d created=%d updated=%d skipped=%d",
        campaign.id, summary.total, summary.created, summary.updated, summary.skipped,
    )
    return summary
