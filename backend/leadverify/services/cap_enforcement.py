# backend/leadverify/services/cap_enforcement.py
"""
Per-account submission caps.

The queue and the all-ids planning view only *suggest* contacts; the
transactional ``submit_contact`` path is the sole authority on whether an
account still has a free slot. It serializes submissions per
(campaign, account) with a transaction-scoped advisory lock, re-counts, and
inserts the submission row in the same transaction.
"""
import asyncio
import hashlib
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from sqlalchemy import case, func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.config import settings
from leadverify.db import is_postgres
from leadverify.errors import NotFoundError, PreconditionFailed
from leadverify.models.account import Account
from leadverify.models.campaign import Campaign
from leadverify.models.contact import Contact, EligibilityStatus, VerificationStatus
from leadverify.models.submission import AccountCapStatus, LeadSubmission
from .audit import record_audit
from .filters import ContactFilters, build_queue_predicates

logger = logging.getLogger("leadverify.cap")

MAX_CAP_OVERRIDE = 10000
NEAR_CAP_RATIO = 0.8


# ---------------------------------------------------------
# Locking
# ---------------------------------------------------------
def account_lock_key(campaign_id: str, account_id: Optional[str]) -> int:
    """
    Advisory lock key for a (campaign, account) pair, in the positive int4 range.

    32 bits of each id's SHA-256 digest are XOR'ed and folded modulo 2^31-1.
    Distinct pairs can collide; a collision only makes two unrelated accounts
    wait for each other, the cap is re-counted inside the lock either way.
    """
    a = int(hashlib.sha256(campaign_id.encode("utf-8")).hexdigest()[:8], 16)
    b = int(hashlib.sha256((account_id or "").encode("utf-8")).hexdigest()[:8], 16)
    return (a ^ b) % 2147483647


# process-local fallback for databases without advisory locks (SQLite in tests)
_local_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def account_lock(session: AsyncSession, key: int):
    """
    Hold the account lock until the enclosing transaction ends.

    On PostgreSQL this is ``pg_advisory_xact_lock``, released by COMMIT or
    ROLLBACK. Callers must finish the transaction inside the block.
    """
    if is_postgres(session.get_bind()):
        await session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
        yield
        return

    lock = _local_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[key] = lock
    async with lock:
        yield


# ---------------------------------------------------------
# Caps
# ---------------------------------------------------------
def campaign_default_cap(campaign: Campaign) -> int:
    if campaign.lead_cap_per_account is None:
        return settings.DEFAULT_LEAD_CAP
    return int(campaign.lead_cap_per_account)


async def effective_cap(session: AsyncSession, campaign: Campaign, account_id: str) -> int:
    override = await session.scalar(
        select(AccountCapStatus.cap).where(
            AccountCapStatus.campaign_id == campaign.id,
            AccountCapStatus.account_id == account_id,
        )
    )
    return int(override) if override is not None else campaign_default_cap(campaign)


async def count_submissions(session: AsyncSession, campaign_id: str, account_id: str) -> int:
    count = await session.scalar(
        select(func.count(LeadSubmission.id)).where(
            LeadSubmission.campaign_id == campaign_id,
            LeadSubmission.account_id == account_id,
        )
    )
    return int(count or 0)


def cap_status_label(submitted: int, cap: int) -> str:
    if cap <= 0 or submitted >= cap:
        return "at_cap"
    if submitted >= cap * NEAR_CAP_RATIO:
        return "near_cap"
    return "available"


# ---------------------------------------------------------
# Queue selection / planning view
# ---------------------------------------------------------
def _queue_order(cols):
    return [cols.priority_score.desc().nulls_last(), cols.updated_at.asc(), cols.id.asc()]


def _ranked_candidates(campaign: Campaign, filters: Optional[ContactFilters]):
    """
    Candidates ranked per account, with the slots the account has left.

    Only rows with ``rank <= slots`` fit under the cap.
    """
    submitted = (
        select(func.count(LeadSubmission.id))
        .where(
            LeadSubmission.campaign_id == campaign.id,
            LeadSubmission.account_id == Contact.account_id,
        )
        .correlate(Contact)
        .scalar_subquery()
    )
    override = (
        select(AccountCapStatus.cap)
        .where(
            AccountCapStatus.campaign_id == campaign.id,
            AccountCapStatus.account_id == Contact.account_id,
        )
        .correlate(Contact)
        .scalar_subquery()
    )
    cap = func.coalesce(override, campaign_default_cap(campaign))
    rank = func.row_number().over(partition_by=Contact.account_id, order_by=_queue_order(Contact))

    return (
        select(
            Contact.id.label("id"),
            Contact.priority_score.label("priority_score"),
            Contact.updated_at.label("updated_at"),
            rank.label("rank"),
            (cap - submitted).label("slots"),
        )
        .where(*build_queue_predicates(campaign.id, filters))
        .subquery("ranked")
    )


async def get_queue(
    session: AsyncSession,
    campaign: Campaign,
    limit: Optional[int] = None,
    filters: Optional[ContactFilters] = None,
) -> List[Contact]:
    """
    Up to ``limit`` submittable contacts, best first.

    Rows are taken with FOR UPDATE SKIP LOCKED so concurrent pulls never hand
    out the same contact; a loser just gets a shorter list.
    """
    if limit is None:
        limit = settings.QUEUE_DEFAULT_LIMIT
    ranked = _ranked_candidates(campaign, filters)
    under_cap = select(ranked.c.id).where(ranked.c.rank <= ranked.c.slots)

    stmt = (
        select(Contact)
        .where(Contact.id.in_(under_cap))
        .order_by(*_queue_order(Contact))
        .limit(limit)
        .with_for_update(skip_locked=True, of=Contact)
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_all_eligible_ids_under_cap(
    session: AsyncSession,
    campaign: Campaign,
    filters: Optional[ContactFilters] = None,
) -> List[str]:
    """
    Planning view: every id that fits under its account's remaining cap.

    Read-only and lock-free, so it can be stale by the time it is consumed;
    ``submit_contact`` re-validates each id.
    """
    ranked = _ranked_candidates(campaign, filters)
    stmt = select(ranked.c.id).where(ranked.c.rank <= ranked.c.slots).order_by(*_queue_order(ranked.c))
    return list((await session.execute(stmt)).scalars().all())


# ---------------------------------------------------------
# Submission
# ---------------------------------------------------------
@dataclass
class CapExceeded:
    account_id: str
    account_name: Optional[str]
    current_count: int
    cap: int

    def to_dict(self) -> dict:
        return {"error": "cap_reached", **asdict(self)}


@dataclass
class SubmissionOutcome:
    success: bool
    submission_id: Optional[str] = None
    already_submitted: bool = False
    cap_exceeded: Optional[CapExceeded] = None


async def submit_contact(
    session: AsyncSession, contact_id: str, campaign_id: Optional[str] = None
) -> SubmissionOutcome:
    """
    Reserve a cap slot for ``contact_id`` and put it in the submission buffer.

    With ``campaign_id`` a contact of another campaign is reported as not found.

    Cap-exceeded comes back as an outcome, not an exception; database errors
    propagate.
    """
    contact = await session.get(Contact, contact_id)
    if contact is None or contact.deleted or (campaign_id is not None and contact.campaign_id != campaign_id):
        raise NotFoundError("Contact", contact_id)

    existing = await session.scalar(select(LeadSubmission.id).where(LeadSubmission.contact_id == contact_id))
    if existing:
        return SubmissionOutcome(success=True, submission_id=existing, already_submitted=True)

    problems = {}
    if contact.verification_status != VerificationStatus.validated:
        problems["verification_status"] = contact.verification_status.value
    if contact.eligibility_status != EligibilityStatus.eligible:
        problems["eligibility_status"] = contact.eligibility_status.value
    if contact.suppressed:
        problems["suppressed"] = True
    if contact.account_id is None:
        problems["account_id"] = None
    if problems:
        raise PreconditionFailed("Contact cannot be submitted", problems)

    campaign = await session.get(Campaign, contact.campaign_id)
    account_id = contact.account_id
    campaign_id = campaign.id

    async with account_lock(session, account_lock_key(campaign_id, account_id)):
        existing = await session.scalar(select(LeadSubmission.id).where(LeadSubmission.contact_id == contact_id))
        if existing:
            await session.rollback()
            return SubmissionOutcome(success=True, submission_id=existing, already_submitted=True)

        current = await count_submissions(session, campaign_id, account_id)
        cap = await effective_cap(session, campaign, account_id)
        if current >= cap:
            account_name = await session.scalar(select(Account.name).where(Account.id == account_id))
            await session.rollback()
            logger.info(
                "Cap reached campaign=%s account=%s (%s) current=%d cap=%d contact=%s",
                campaign_id, account_id, account_name, current, cap, contact_id,
            )
            return SubmissionOutcome(
                success=False,
                cap_exceeded=CapExceeded(account_id, account_name, current, cap),
            )

        submission = LeadSubmission(contact_id=contact_id, campaign_id=campaign_id, account_id=account_id)
        session.add(submission)
        contact.in_submission_buffer = True
        await session.flush()
        submission_id = submission.id
        await session.commit()

    logger.info("Contact submitted campaign=%s account=%s contact=%s slot=%d/%d",
                campaign_id, account_id, contact_id, current + 1, cap)
    return SubmissionOutcome(success=True, submission_id=submission_id)


async def flush_buffer(session: AsyncSession, campaign_id: str) -> int:
    """Clear the in-buffer flag for every contact of the campaign."""
    result = await session.execute(
        update(Contact)
        .where(Contact.campaign_id == campaign_id, Contact.in_submission_buffer.is_(True))
        .values(in_submission_buffer=False)
    )
    await session.commit()
    flushed = result.rowcount or 0
    logger.info("Submission buffer flushed campaign=%s count=%d", campaign_id, flushed)
    return flushed


async def prepare_submission_batch(
    session: AsyncSession,
    campaign: Campaign,
    batch_size: int,
    candidate_ids: Optional[List[str]] = None,
) -> dict:
    """
    Submit up to ``batch_size`` contacts from a planning view.

    ``candidate_ids`` is a list the caller planned earlier; without it the
    planning view is read now. Candidates that went stale in between (deleted,
    suppressed, no longer eligible or validated) are counted as ``skipped``
    and the walk carries on.
    """
    if candidate_ids is None:
        candidate_ids = await get_all_eligible_ids_under_cap(session, campaign)
    campaign_id = campaign.id
    summary = {"submitted": 0, "already_submitted": 0, "cap_rejected": 0, "skipped": 0, "submission_ids": []}

    for contact_id in candidate_ids:
        if summary["submitted"] >= batch_size:
            break
        try:
            outcome = await submit_contact(session, contact_id, campaign_id=campaign_id)
        except (NotFoundError, PreconditionFailed) as e:
            await session.rollback()
            summary["skipped"] += 1
            logger.info("Skipping stale candidate campaign=%s contact=%s: %s", campaign_id, contact_id, e)
            continue
        if outcome.cap_exceeded:
            summary["cap_rejected"] += 1
        elif outcome.already_submitted:
            summary["already_submitted"] += 1
        else:
            summary["submitted"] += 1
            summary["submission_ids"].append(outcome.submission_id)

    return summary


# ---------------------------------------------------------
# Cap status summary
# ---------------------------------------------------------
async def _account_counts(session: AsyncSession, campaign_id: str) -> Dict[str, dict]:
    eligible_expr = func.sum(
        case(((Contact.eligibility_status == EligibilityStatus.eligible) & Contact.suppressed.is_(False), 1), else_=0)
    )
    reserved_expr = func.sum(case((Contact.in_submission_buffer.is_(True), 1), else_=0))
    rows = (
        await session.execute(
            select(Contact.account_id, func.count(Contact.id), eligible_expr, reserved_expr)
            .where(Contact.campaign_id == campaign_id, Contact.deleted.is_(False), Contact.account_id.isnot(None))
            .group_by(Contact.account_id)
        )
    ).all()
    counts = {
        account_id: {"total": int(total or 0), "eligible_count": int(eligible or 0), "reserved_count": int(reserved or 0)}
        for account_id, total, eligible, reserved in rows
    }

    submitted_rows = (
        await session.execute(
            select(LeadSubmission.account_id, func.count(LeadSubmission.id))
            .where(LeadSubmission.campaign_id == campaign_id, LeadSubmission.account_id.isnot(None))
            .group_by(LeadSubmission.account_id)
        )
    ).all()
    for account_id, submitted in submitted_rows:
        counts.setdefault(account_id, {"total": 0, "eligible_count": 0, "reserved_count": 0})
        counts[account_id]["submitted_count"] = int(submitted or 0)
    for value in counts.values():
        value.setdefault("submitted_count", 0)
    return counts


async def list_account_cap_status(session: AsyncSession, campaign: Campaign) -> List[dict]:
    """Live per-account cap view (computed, not read from the summary table)."""
    counts = await _account_counts(session, campaign.id)
    if not counts:
        return []

    overrides = dict(
        (
            await session.execute(
                select(AccountCapStatus.account_id, AccountCapStatus.cap).where(
                    AccountCapStatus.campaign_id == campaign.id
                )
            )
        ).all()
    )
    names = dict((await session.execute(select(Account.id, Account.name).where(Account.id.in_(counts)))).all())

    default_cap = campaign_default_cap(campaign)
    out = []
    for account_id, c in counts.items():
        override = overrides.get(account_id)
        cap = int(override) if override is not None else default_cap
        out.append({
            "account_id": account_id,
            "account_name": names.get(account_id),
            "cap": cap,
            "cap_override": override is not None,
            "submitted_count": c["submitted_count"],
            "reserved_count": c["reserved_count"],
            "eligible_count": c["eligible_count"],
            "slots_remaining": max(cap - c["submitted_count"], 0),
            "cap_status": cap_status_label(c["submitted_count"], cap),
        })
    out.sort(key=lambda r: ((r["account_name"] or "").lower(), r["account_id"]))
    return out


async def recalculate_account_cap_status(session: AsyncSession, campaign: Campaign) -> int:
    """Rewrite the stored summary counters; operator cap overrides are kept."""
    counts = await _account_counts(session, campaign.id)
    existing = {
        row.account_id: row
        for row in (
            await session.execute(select(AccountCapStatus).where(AccountCapStatus.campaign_id == campaign.id))
        ).scalars().all()
    }

    for account_id, c in counts.items():
        row = existing.get(account_id)
        if row is None:
            row = AccountCapStatus(campaign_id=campaign.id, account_id=account_id)
            session.add(row)
        row.submitted_count = c["submitted_count"]
        row.reserved_count = c["reserved_count"]
        row.eligible_count = c["eligible_count"]

    await session.commit()
    logger.info("Account cap status recalculated campaign=%s accounts=%d", campaign.id, len(counts))
    return len(counts)


async def set_account_cap_override(
    session: AsyncSession,
    campaign: Campaign,
    account_id: str,
    cap: Optional[int],
    actor: Optional[str] = None,
) -> AccountCapStatus:
    """Set (or clear with None) the per-account cap for one campaign."""
    if cap is not None and not 0 <= cap <= MAX_CAP_OVERRIDE:
        raise ValueError(f"cap must be between 0 and {MAX_CAP_OVERRIDE}")
    if await session.get(Account, account_id) is None:
        raise NotFoundError("Account", account_id)

    row = await session.scalar(
        select(AccountCapStatus).where(
            AccountCapStatus.campaign_id == campaign.id,
            AccountCapStatus.account_id == account_id,
        )
    )
    if row is None:
        row = AccountCapStatus(campaign_id=campaign.id, account_id=account_id)
        session.add(row)
    previous = row.cap
    row.cap = cap

    record_audit(
        session,
        action="cap_override",
        entity_type="account",
        entity_ids=[account_id],
        campaign_id=campaign.id,
        details={"previous": previous, "cap": cap},
        actor=actor,
    )
    await session.commit()
    return row
