# backend/leadverify/services/suppression.py
"""
Suppression matching.

A contact is suppressed when ANY of four rules matches an entry that is
global or belongs to the contact's campaign:

1. email, case-insensitive, both sides present
2. CAV ID, both sides present
3. CAV User ID, both sides present
4. name+company hash, only when the contact has first name, last name AND
   company, and the entry carries a hash (built from all three itself)

No partial-name or company-only rule exists.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel
from sqlalchemy import insert, or_, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.config import settings
from leadverify.models.contact import Contact
from leadverify.models.suppression import SuppressionEntry
from .normalizer import compute_name_company_hash, email_lower, is_present, split_full_name

logger = logging.getLogger("leadverify.suppression")

RULE_EMAIL = "email"
RULE_CAV_ID = "cav_id"
RULE_CAV_USER_ID = "cav_user_id"
RULE_NAME_COMPANY = "name_company_hash"


@dataclass(frozen=True)
class ContactKeys:
    email_lower: Optional[str]
    cav_id: Optional[str]
    cav_user_id: Optional[str]
    name_company_hash: Optional[str]

    @classmethod
    def build(cls, email=None, cav_id=None, cav_user_id=None, first_name=None, last_name=None, company=None):
        return cls(
            email_lower=email_lower(email) or None,
            cav_id=str(cav_id).strip() if is_present(cav_id) else None,
            cav_user_id=str(cav_user_id).strip() if is_present(cav_user_id) else None,
            name_company_hash=compute_name_company_hash(first_name, last_name, company),
        )

    @classmethod
    def from_contact(cls, contact: Contact) -> "ContactKeys":
        # the hash is recomputed from the raw parts so the all-three gate is
        # enforced here too, whatever is stored on the row
        return cls.build(
            email=contact.email_lower or contact.email,
            cav_id=contact.cav_id,
            cav_user_id=contact.cav_user_id,
            first_name=contact.first_name,
            last_name=contact.last_name,
            company=contact.company_key,
        )


def entry_applies(entry: SuppressionEntry, campaign_id: str) -> bool:
    return entry.campaign_id is None or entry.campaign_id == campaign_id


def match_rule(keys: ContactKeys, entry: SuppressionEntry) -> Optional[str]:
    """Name of the first rule under which ``entry`` suppresses ``keys``, else None."""
    if is_present(keys.email_lower) and is_present(entry.email_lower):
        if keys.email_lower == email_lower(entry.email_lower):
            return RULE_EMAIL
    if is_present(keys.cav_id) and is_present(entry.cav_id):
        if keys.cav_id == entry.cav_id.strip():
            return RULE_CAV_ID
    if is_present(keys.cav_user_id) and is_present(entry.cav_user_id):
        if keys.cav_user_id == entry.cav_user_id.strip():
            return RULE_CAV_USER_ID
    if keys.name_company_hash and is_present(entry.name_company_hash):
        if keys.name_company_hash == entry.name_company_hash:
            return RULE_NAME_COMPANY
    return None


class SuppressionIndex:
    """In-memory lookup over a set of candidate entries for one campaign."""

    def __init__(self, campaign_id: str, entries: Iterable[SuppressionEntry]):
        self.campaign_id = campaign_id
        self._by_key: Dict[Tuple[str, str], List[SuppressionEntry]] = defaultdict(list)
        for entry in entries:
            if not entry_applies(entry, campaign_id):
                continue
            if is_present(entry.email_lower):
                self._by_key[(RULE_EMAIL, email_lower(entry.email_lower))].append(entry)
            if is_present(entry.cav_id):
                self._by_key[(RULE_CAV_ID, entry.cav_id.strip())].append(entry)
            if is_present(entry.cav_user_id):
                self._by_key[(RULE_CAV_USER_ID, entry.cav_user_id.strip())].append(entry)
            if is_present(entry.name_company_hash):
                self._by_key[(RULE_NAME_COMPANY, entry.name_company_hash)].append(entry)

    def match(self, keys: ContactKeys) -> Optional[Tuple[str, SuppressionEntry]]:
        lookups = [
            (RULE_EMAIL, keys.email_lower),
            (RULE_CAV_ID, keys.cav_id),
            (RULE_CAV_USER_ID, keys.cav_user_id),
            (RULE_NAME_COMPANY, keys.name_company_hash),
        ]
        for rule, value in lookups:
            if not value:
                continue
            for entry in self._by_key.get((rule, value), ()):
                if match_rule(keys, entry):
                    return rule, entry
        return None


async def load_candidate_entries(
    session: AsyncSession, campaign_id: str, keys: Sequence[ContactKeys]
) -> List[SuppressionEntry]:
    """Entries in scope sharing at least one key with any of ``keys``."""
    emails = {k.email_lower for k in keys if k.email_lower}
    cav_ids = {k.cav_id for k in keys if k.cav_id}
    cav_user_ids = {k.cav_user_id for k in keys if k.cav_user_id}
    hashes = {k.name_company_hash for k in keys if k.name_company_hash}

    conditions = []
    if emails:
        conditions.append(SuppressionEntry.email_lower.in_(emails))
    if cav_ids:
        conditions.append(SuppressionEntry.cav_id.in_(cav_ids))
    if cav_user_ids:
        conditions.append(SuppressionEntry.cav_user_id.in_(cav_user_ids))
    if hashes:
        conditions.append(SuppressionEntry.name_company_hash.in_(hashes))
    if not conditions:
        return []

    stmt = select(SuppressionEntry).where(
        or_(SuppressionEntry.campaign_id.is_(None), SuppressionEntry.campaign_id == campaign_id),
        or_(*conditions),
    )
    return list((await session.execute(stmt)).scalars().all())


async def find_suppression_match(
    session: AsyncSession, campaign_id: str, keys: ContactKeys
) -> Optional[Tuple[str, SuppressionEntry]]:
    entries = await load_candidate_entries(session, campaign_id, [keys])
    return SuppressionIndex(campaign_id, entries).match(keys)


async def apply_suppression_for_contacts(
    session: AsyncSession, campaign_id: str, contact_ids: Sequence[str], batch_size: Optional[int] = None
) -> int:
    """
    Recompute ``suppressed`` for exactly the given contacts of the campaign.

    Deleted contacts and contacts of other campaigns are left untouched.
    Returns how many of the given contacts end up suppressed.
    """
    batch_size = batch_size or settings.SUPPRESSION_BATCH_SIZE
    ids = list(dict.fromkeys(contact_ids))
    suppressed = 0
    changed = 0

    for start in range(0, len(ids), batch_size):
        chunk = ids[start:start + batch_size]
        contacts = (
            await session.execute(
                select(Contact).where(
                    Contact.id.in_(chunk),
                    Contact.campaign_id == campaign_id,
                    Contact.deleted.is_(False),
                )
            )
        ).scalars().all()
        if not contacts:
            continue

        keys_by_id = {c.id: ContactKeys.from_contact(c) for c in contacts}
        index = SuppressionIndex(campaign_id, await load_candidate_entries(session, campaign_id, list(keys_by_id.values())))

        for contact in contacts:
            hit = index.match(keys_by_id[contact.id])
            flag = hit is not None
            if flag:
                suppressed += 1
                logger.debug("Contact %s suppressed by %s (entry %s)", contact.id, hit[0], hit[1].id)
            if contact.suppressed != flag:
                contact.suppressed = flag
                changed += 1

    await session.commit()
    logger.info(
        "Suppression applied campaign=%s contacts=%d suppressed=%d changed=%d",
        campaign_id, len(ids), suppressed, changed,
    )
    return suppressed


class SuppressionEntryIn(BaseModel):
    email: Optional[str] = None
    cav_id: Optional[str] = None
    cav_user_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    reason: Optional[str] = None


def build_entry_row(campaign_id: Optional[str], entry: SuppressionEntryIn) -> Optional[dict]:
    """Normalized insert row for one entry, or None when it has no usable key."""
    first, last = entry.first_name, entry.last_name
    if not is_present(first) and not is_present(last) and is_present(entry.full_name):
        first, last = split_full_name(entry.full_name)

    keys = ContactKeys.build(
        email=entry.email,
        cav_id=entry.cav_id,
        cav_user_id=entry.cav_user_id,
        first_name=first,
        last_name=last,
        company=entry.company_name,
    )
    if not (keys.email_lower or keys.cav_id or keys.cav_user_id or keys.name_company_hash):
        return None

    return {
        "campaign_id": campaign_id,
        "email": entry.email.strip() if is_present(entry.email) else None,
        "email_lower": keys.email_lower,
        "cav_id": keys.cav_id,
        "cav_user_id": keys.cav_user_id,
        "first_name": first if is_present(first) else None,
        "last_name": last if is_present(last) else None,
        "company_name": entry.company_name if is_present(entry.company_name) else None,
        "name_company_hash": keys.name_company_hash,
        "reason": entry.reason,
    }


async def add_to_suppression_list(
    session: AsyncSession,
    campaign_id: Optional[str],
    entries: Sequence[SuppressionEntryIn],
    batch_size: Optional[int] = None,
) -> dict:
    """
    Normalize and insert entries. Existing contacts are NOT re-suppressed;
    call ``apply_suppression_for_contacts`` afterwards for that.
    """
    batch_size = batch_size or settings.SUPPRESSION_BATCH_SIZE
    rows = []
    skipped = 0
    for entry in entries:
        row = build_entry_row(campaign_id, entry)
        if row is None:
            skipped += 1
            continue
        rows.append(row)

    for start in range(0, len(rows), batch_size):
        await session.execute(insert(SuppressionEntry), rows[start:start + batch_size])
    await session.commit()

    logger.info(
        "Suppression entries added scope=%s inserted=%d skipped=%d",
        campaign_id or "global", len(rows), skipped,
    )
    return {"added": len(rows), "skipped": skipped}


async def list_suppression_entries(
    session: AsyncSession, campaign_id: str, limit: int = 100, offset: int = 0
) -> Tuple[int, List[SuppressionEntry]]:
    scope = or_(SuppressionEntry.campaign_id.is_(None), SuppressionEntry.campaign_id == campaign_id)
    total = (await session.execute(select(func.count()).select_from(SuppressionEntry).where(scope))).scalar_one()
    rows = (
        await session.execute(
            select(SuppressionEntry)
            .where(scope)
            .order_by(SuppressionEntry.created_at.desc(), SuppressionEntry.id)
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()
    return int(total or 0), list(rows)
