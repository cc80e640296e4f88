# backend/leadverify/services/email_validation.py
"""
Bulk email validation jobs.

A job owns an ordered list of contact ids split into fixed-size batches. Each
batch commits its contact updates, cache rows and job progress in a single
transaction, so after a crash the job row points at the first batch that did
not finish and re-running it continues from there.

A runner claims the job with a token before touching it and every progress
write only lands while that token still holds the job. A holder that stops
reporting progress goes stale and its claim can be taken over.
"""
import asyncio
import logging
import math
import time
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.config import settings
from leadverify.errors import NotFoundError, PreconditionFailed
from leadverify.models.campaign import Campaign
from leadverify.models.common import new_id, utcnow
from leadverify.models.contact import Contact, EligibilityStatus, EmailStatus, VerificationStatus
from leadverify.models.email_validation import (
    EmailValidationJob,
    EmailValidationRecord,
    JobStatus,
    empty_status_counts,
)
from leadverify.utils.helpers import as_utc
from leadverify.verifier import EmailVerificationProvider, VerificationResult, verify_emails_bulk
from .normalizer import email_lower, is_present

LOG = logging.getLogger("leadverify.jobs")

PROGRESS_STEP = 50


def _chunks(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ---------------------------------------------------------
# Job creation / status
# ---------------------------------------------------------
async def create_validation_job(
    session: AsyncSession,
    campaign_id: str,
    contact_ids: Sequence[str],
    batch_size: Optional[int] = None,
) -> EmailValidationJob:
    ids = list(dict.fromkeys(contact_ids))
    if not ids:
        raise ValueError("contact_ids must not be empty")
    if await session.get(Campaign, campaign_id) is None:
        raise NotFoundError("Campaign", campaign_id)

    batch_size = batch_size or settings.VALIDATION_BATCH_SIZE
    job = EmailValidationJob(
        campaign_id=campaign_id,
        status=JobStatus.processing,
        contact_ids=ids,
        batch_size=batch_size,
        total_contacts=len(ids),
        total_batches=math.ceil(len(ids) / batch_size),
        current_batch=0,
        status_counts=empty_status_counts(),
        started_at=utcnow(),
    )
    session.add(job)
    await session.commit()
    LOG.info("Validation job created job=%s campaign=%s contacts=%d batches=%d",
             job.id, campaign_id, job.total_contacts, job.total_batches)
    return job


def job_snapshot(job: EmailValidationJob) -> dict:
    total = job.total_contacts or 0
    if total:
        progress = round((job.processed_contacts or 0) / total * 100)
    else:
        progress = 100 if job.status == JobStatus.completed else 0
    return {
        "job_id": job.id,
        "campaign_id": job.campaign_id,
        "status": job.status.value,
        "total_contacts": total,
        "processed_contacts": job.processed_contacts or 0,
        "success_count": job.success_count or 0,
        "failure_count": job.failure_count or 0,
        "current_batch": job.current_batch or 0,
        "total_batches": job.total_batches or 0,
        "status_counts": dict(job.status_counts or {}),
        "progress_percent": progress,
        "error_message": job.error_message,
        "started_at": job.started_at,
        "finished_at": job.finished_at,
    }


async def get_job_status(session: AsyncSession, job_id: str) -> dict:
    job = await session.get(EmailValidationJob, job_id, populate_existing=True)
    if job is None:
        raise NotFoundError("EmailValidationJob", job_id)
    return job_snapshot(job)


async def list_jobs(session: AsyncSession, campaign_id: str, limit: int = 50) -> List[EmailValidationJob]:
    rows = await session.execute(
        select(EmailValidationJob)
        .where(EmailValidationJob.campaign_id == campaign_id)
        .order_by(EmailValidationJob.created_at.desc())
        .limit(limit)
    )
    return list(rows.scalars().all())


async def find_stuck_jobs(
    session: AsyncSession,
    now: datetime,
    stale_after: Optional[timedelta] = None,
    campaign_id: Optional[str] = None,
) -> List[EmailValidationJob]:
    """``processing`` jobs that have not recorded progress within ``stale_after``."""
    stale_after = stale_after or timedelta(minutes=settings.STUCK_JOB_MINUTES)
    stmt = select(EmailValidationJob).where(
        EmailValidationJob.status == JobStatus.processing,
        EmailValidationJob.updated_at < now - stale_after,
    )
    if campaign_id is not None:
        stmt = stmt.where(EmailValidationJob.campaign_id == campaign_id)
    return list((await session.execute(stmt.order_by(EmailValidationJob.updated_at))).scalars().all())


# ---------------------------------------------------------
# Cache
# ---------------------------------------------------------
async def lookup_cached_results(
    session: AsyncSession,
    emails: Sequence[str],
    fresh_after: datetime,
    chunk_size: Optional[int] = None,
) -> Dict[str, EmailValidationRecord]:
    """Newest non-unknown record per email checked after ``fresh_after``."""
    chunk_size = chunk_size or settings.CACHE_QUERY_CHUNK_SIZE
    found: Dict[str, EmailValidationRecord] = {}
    for chunk in _chunks(list(emails), chunk_size):
        rows = await session.execute(
            select(EmailValidationRecord)
            .where(
                EmailValidationRecord.email_lower.in_(chunk),
                EmailValidationRecord.checked_at >= fresh_after,
                EmailValidationRecord.status != EmailStatus.unknown.value,
            )
            .order_by(EmailValidationRecord.checked_at.desc())
        )
        for record in rows.scalars().all():
            found.setdefault(record.email_lower, record)
    return found


def _record_result(
    index: Dict[tuple, EmailValidationRecord],
    session: AsyncSession,
    contact_id: str,
    email: str,
    status: str,
    provider: str,
    raw: dict,
    checked_at: datetime,
):
    record = index.get((contact_id, email))
    if record is None:
        record = EmailValidationRecord(contact_id=contact_id, email_lower=email)
        session.add(record)
        index[(contact_id, email)] = record
    record.status = status
    record.provider = provider
    record.raw_response = raw
    record.checked_at = checked_at


# ---------------------------------------------------------
# Claims
# ---------------------------------------------------------
class ClaimLost(Exception):
    """Another runner took the job over while this one was working it."""

    def __init__(self, job_id: str):
        super().__init__(f"claim on job {job_id} lost")
        self.job_id = job_id


def _stale_after(stale_after: Optional[timedelta]) -> timedelta:
    return stale_after or timedelta(minutes=settings.STUCK_JOB_MINUTES)


def is_job_running(job: EmailValidationJob, now: datetime, stale_after: Optional[timedelta] = None) -> bool:
    """True while a runner holds the job and has reported progress within ``stale_after``."""
    if job.status != JobStatus.processing or job.claimed_by is None:
        return False
    updated = as_utc(job.updated_at)
    return updated is not None and updated >= now - _stale_after(stale_after)


async def claim_job(
    session: AsyncSession,
    job_id: str,
    token: str,
    now: datetime,
    stale_after: Optional[timedelta] = None,
) -> bool:
    """
    Take the job for ``token`` with a single conditional UPDATE.

    The claim succeeds when the job is not completed and either nobody holds
    it or its holder has not reported progress within ``stale_after``. A
    failed job is switched back to ``processing`` by the same statement.
    """
    result = await session.execute(
        update(EmailValidationJob)
        .where(
            EmailValidationJob.id == job_id,
            EmailValidationJob.status != JobStatus.completed,
            or_(
                EmailValidationJob.claimed_by.is_(None),
                EmailValidationJob.updated_at < now - _stale_after(stale_after),
            ),
        )
        .values(
            claimed_by=token,
            status=JobStatus.processing,
            error_message=None,
            finished_at=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount == 1


async def release_stale_claims(
    session: AsyncSession,
    job_ids: Sequence[str],
    now: datetime,
    stale_after: Optional[timedelta] = None,
) -> List[str]:
    """Drop the claim on each job that is still stale at ``now``; returns the ids released."""
    released = []
    for job_id in job_ids:
        result = await session.execute(
            update(EmailValidationJob)
            .where(
                EmailValidationJob.id == job_id,
                EmailValidationJob.status == JobStatus.processing,
                EmailValidationJob.updated_at < now - _stale_after(stale_after),
            )
            .values(claimed_by=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            released.append(job_id)
    await session.commit()
    return released


async def _guarded_commit(session: AsyncSession, job_id: str, token: str, **values):
    """Write ``values`` to the job and commit, but only while ``token`` still holds it."""
    result = await session.execute(
        update(EmailValidationJob)
        .where(EmailValidationJob.id == job_id, EmailValidationJob.claimed_by == token)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise ClaimLost(job_id)
    await session.commit()


# ---------------------------------------------------------
# Runner
# ---------------------------------------------------------
async def process_email_validation_job(
    session: AsyncSession,
    job_id: str,
    provider: EmailVerificationProvider,
    delay_seconds: Optional[float] = None,
    cache_ttl: Optional[timedelta] = None,
    cache_chunk_size: Optional[int] = None,
    clock: Callable[[], datetime] = utcnow,
    sleep=asyncio.sleep,
    stale_after: Optional[timedelta] = None,
) -> EmailValidationJob:
    """
    Run (or resume) a validation job until it is completed or failed.

    The job is claimed first. Completed jobs, and jobs another runner holds
    with fresh progress, are returned untouched. A failed job is picked up
    again at its persisted batch.
    """
    job = await session.get(EmailValidationJob, job_id, populate_existing=True)
    if job is None:
        raise NotFoundError("EmailValidationJob", job_id)
    if job.status == JobStatus.completed:
        LOG.info("Validation job already completed job=%s", job_id)
        return job

    previous_status = job.status
    token = new_id()
    if not await claim_job(session, job_id, token, clock(), stale_after):
        LOG.info("Validation job held by another runner job=%s", job_id)
        return await session.get(EmailValidationJob, job_id, populate_existing=True)

    job = await session.get(EmailValidationJob, job_id, populate_existing=True)
    if previous_status == JobStatus.failed:
        LOG.info("Resuming failed job=%s at batch %d/%d", job_id, job.current_batch, job.total_batches)

    delay = settings.PROVIDER_DELAY_MS / 1000 if delay_seconds is None else delay_seconds
    ttl = cache_ttl or timedelta(days=settings.VALIDATION_CACHE_TTL_DAYS)

    try:
        for batch_index in range(job.current_batch, job.total_batches):
            await _process_batch(
                session, job, token, batch_index, provider,
                delay=delay, ttl=ttl, chunk_size=cache_chunk_size, clock=clock, sleep=sleep,
            )

        await _guarded_commit(session, job_id, token, status=JobStatus.completed, finished_at=clock(), claimed_by=None)
        job = await session.get(EmailValidationJob, job_id, populate_existing=True)
        LOG.info(
            "Validation job completed job=%s processed=%d success=%d failure=%d counts=%s",
            job_id, job.processed_contacts, job.success_count, job.failure_count, job.status_counts,
        )
    except ClaimLost:
        LOG.warning("Validation job claim lost job=%s; leaving it to the current holder", job_id)
        job = await session.get(EmailValidationJob, job_id, populate_existing=True)
    except asyncio.CancelledError:
        await session.rollback()
        LOG.warning("Validation job cancelled job=%s; releasing claim", job_id)
        await session.execute(
            update(EmailValidationJob)
            .where(EmailValidationJob.id == job_id, EmailValidationJob.claimed_by == token)
            .values(claimed_by=None)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        raise
    except Exception as e:
        await session.rollback()
        LOG.exception("Validation job failed job=%s", job_id)
        # a job someone else finished or took over keeps its state
        await session.execute(
            update(EmailValidationJob)
            .where(
                EmailValidationJob.id == job_id,
                EmailValidationJob.claimed_by == token,
                EmailValidationJob.status == JobStatus.processing,
            )
            .values(
                status=JobStatus.failed,
                error_message=str(e) or type(e).__name__,
                finished_at=clock(),
                claimed_by=None,
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        job = await session.get(EmailValidationJob, job_id, populate_existing=True)

    return job


async def _process_batch(
    session: AsyncSession,
    job: EmailValidationJob,
    token: str,
    batch_index: int,
    provider: EmailVerificationProvider,
    delay: float,
    ttl: timedelta,
    chunk_size: Optional[int],
    clock: Callable[[], datetime],
    sleep,
):
    job_id = job.id
    ids = list(job.contact_ids)
    start = batch_index * job.batch_size
    end = min(start + job.batch_size, len(ids))
    batch_started = time.monotonic()
    LOG.info("Batch START job=%s batch=%d/%d size=%d", job_id, batch_index + 1, job.total_batches, end - start)

    # contacts validated by an earlier partial run are skipped here
    contacts = (
        await session.execute(
            select(Contact).where(
                Contact.id.in_(ids[start:end]),
                Contact.campaign_id == job.campaign_id,
                Contact.deleted.is_(False),
                Contact.email_status == EmailStatus.unknown,
            )
        )
    ).scalars().all()

    by_email: Dict[str, List[Contact]] = defaultdict(list)
    no_email = 0
    for contact in contacts:
        key = email_lower(contact.email)
        if key:
            by_email[key].append(contact)
        else:
            no_email += 1

    now = clock()
    cached = await lookup_cached_results(session, list(by_email), now - ttl, chunk_size)
    misses = [e for e in by_email if e not in cached]

    async def on_progress(done: int, total: int):
        if done % PROGRESS_STEP == 0 or done == total:
            LOG.info("Batch progress job=%s batch=%d verified=%d/%d", job_id, batch_index + 1, done, total)
            # keeps a long batch from looking stuck; nothing else is pending yet
            await _guarded_commit(session, job_id, token, updated_at=clock())

    fresh: Dict[str, VerificationResult] = await verify_emails_bulk(
        provider, misses, delay_seconds=delay, on_progress=on_progress, sleep=sleep
    )

    contact_ids = [c.id for group in by_email.values() for c in group]
    existing = (
        await session.execute(select(EmailValidationRecord).where(EmailValidationRecord.contact_id.in_(contact_ids)))
    ).scalars().all() if contact_ids else []
    index = {(r.contact_id, r.email_lower): r for r in existing}

    counts = dict(job.status_counts or empty_status_counts())
    success = 0
    failure = no_email
    checked_at = clock()

    for email, group in by_email.items():
        if email in cached:
            hit = cached[email]
            status, provider_name, raw, when = hit.status, hit.provider, hit.raw_response, hit.checked_at
        elif email in fresh:
            result = fresh[email]
            status, provider_name, raw, when = result.status, result.provider, result.raw_response, checked_at
        else:
            failure += len(group)
            continue

        for contact in group:
            contact.email_status = EmailStatus(status)
            _record_result(index, session, contact.id, email, status, provider_name, raw, when)
            counts[status] = counts.get(status, 0) + 1
            success += 1

    # contact rows, cache rows and job progress land in one transaction
    await _guarded_commit(
        session, job_id, token,
        current_batch=batch_index + 1,
        processed_contacts=end,
        success_count=(job.success_count or 0) + success,
        failure_count=(job.failure_count or 0) + failure,
        status_counts=counts,
        updated_at=clock(),
    )
    await session.refresh(job)

    LOG.info(
        "Batch END job=%s batch=%d/%d contacts=%d cache_hits=%d provider_calls=%d duration=%.2fs",
        job_id, batch_index + 1, job.total_batches, len(contacts), len(cached), len(fresh),
        time.monotonic() - batch_started,
    )


# ---------------------------------------------------------
# Manual single-contact validation
# ---------------------------------------------------------
async def validate_contact_email(
    session: AsyncSession,
    contact_id: str,
    provider: EmailVerificationProvider,
    cache_ttl: Optional[timedelta] = None,
    clock: Callable[[], datetime] = utcnow,
) -> dict:
    contact = await session.get(Contact, contact_id)
    if contact is None or contact.deleted:
        raise NotFoundError("Contact", contact_id)

    problems = {}
    if contact.eligibility_status != EligibilityStatus.eligible:
        problems["eligibility_status"] = contact.eligibility_status.value
    if contact.verification_status != VerificationStatus.validated:
        problems["verification_status"] = contact.verification_status.value
    if contact.suppressed:
        problems["suppressed"] = True
    if not is_present(contact.email):
        problems["email"] = None
    if problems:
        raise PreconditionFailed("Contact does not meet email validation preconditions", problems)

    email = email_lower(contact.email)
    ttl = cache_ttl or timedelta(days=settings.VALIDATION_CACHE_TTL_DAYS)
    now = clock()
    cached = (await lookup_cached_results(session, [email], now - ttl)).get(email)

    existing = await session.scalar(
        select(EmailValidationRecord).where(
            EmailValidationRecord.contact_id == contact.id,
            EmailValidationRecord.email_lower == email,
        )
    )
    index = {(contact.id, email): existing} if existing is not None else {}

    if cached is not None:
        status, provider_name, raw, when = cached.status, cached.provider, cached.raw_response, cached.checked_at
    else:
        result = await provider.verify(email)
        status, provider_name, raw, when = result.status, result.provider, result.raw_response, now

    contact.email_status = EmailStatus(status)
    _record_result(index, session, contact.id, email, status, provider_name, raw, when)
    await session.commit()

    LOG.info("Contact email validated contact=%s status=%s cached=%s", contact.id, status, cached is not None)
    return {"contact_id": contact.id, "email": email, "email_status": status, "cached": cached is not None}
