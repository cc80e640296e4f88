# backend/leadverify/services/scheduler.py
"""
Periodic sweep across active campaigns.

The scheduler only knows how to list campaigns and run stages against them;
time comes from an injected clock and waiting from an injected ``sleep``, so a
test can drive ticks by hand.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence

from sqlalchemy import select

from leadverify.config import settings
from leadverify.models.campaign import Campaign
from leadverify.models.common import utcnow
from leadverify.models.contact import Contact
from leadverify.models.submission import LeadSubmission
from .cap_enforcement import recalculate_account_cap_status
from .dispatch import JobDispatcher
from .email_validation import find_stuck_jobs, release_stale_claims
from .exclusion import enforce_submission_exclusion
from .suppression import apply_suppression_for_contacts

LOG = logging.getLogger("leadverify.scheduler")


class CampaignSource(Protocol):
    async def list_active_campaigns(self) -> List[Campaign]:
        ...


class PipelineStage(Protocol):
    name: str

    async def run(self, campaign: Campaign, now: datetime) -> Any:
        ...


@dataclass
class StageRun:
    campaign_id: str
    stage: str
    ok: bool
    result: Any = None
    error: Optional[str] = None


class DatabaseCampaignSource:
    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def list_active_campaigns(self) -> List[Campaign]:
        async with self.session_maker() as session:
            rows = await session.execute(select(Campaign).where(Campaign.status == "active").order_by(Campaign.id))
            return list(rows.scalars().all())


class PipelineScheduler:
    def __init__(
        self,
        source: CampaignSource,
        stages: Sequence[PipelineStage],
        clock: Callable[[], datetime] = utcnow,
        interval_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.stages = list(stages)
        self.clock = clock
        self.interval_seconds = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        self.sleep = sleep
        self.last_run_at: Optional[datetime] = None

    async def run_once(self) -> List[StageRun]:
        """One sweep. A failing stage is logged and does not stop the others."""
        now = self.clock()
        runs: List[StageRun] = []
        campaigns = await self.source.list_active_campaigns()

        for campaign in campaigns:
            for stage in self.stages:
                try:
                    result = await stage.run(campaign, now)
                    runs.append(StageRun(campaign.id, stage.name, True, result=result))
                except Exception as e:
                    LOG.exception("Stage %s failed campaign=%s", stage.name, campaign.id)
                    runs.append(StageRun(campaign.id, stage.name, False, error=str(e)))

        self.last_run_at = now
        LOG.info("Scheduler tick at=%s campaigns=%d stages=%d failures=%d",
                 now.isoformat(), len(campaigns), len(self.stages), sum(1 for r in runs if not r.ok))
        return runs

    async def run_forever(self, stop: Optional[asyncio.Event] = None, max_ticks: Optional[int] = None) -> int:
        ticks = 0
        while not (stop and stop.is_set()):
            await self.run_once()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            await self.sleep(self.interval_seconds)
        return ticks


# ---------------------------------------------------------
# Stages
# ---------------------------------------------------------
class ReapplySuppressionStage:
    """Re-evaluate suppression for live, unsubmitted contacts."""

    name = "reapply_suppression"

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def run(self, campaign: Campaign, now: datetime) -> int:
        async with self.session_maker() as session:
            submitted = select(LeadSubmission.contact_id).where(LeadSubmission.campaign_id == campaign.id)
            ids = (
                await session.execute(
                    select(Contact.id).where(
                        Contact.campaign_id == campaign.id,
                        Contact.deleted.is_(False),
                        Contact.id.not_in(submitted),
                    )
                )
            ).scalars().all()
            if not ids:
                return 0
            return await apply_suppression_for_contacts(session, campaign.id, list(ids))


class SubmissionExclusionStage:
    """Keep the re-submission window current as submissions age."""

    name = "submission_exclusion"

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def run(self, campaign: Campaign, now: datetime) -> dict:
        async with self.session_maker() as session:
            return await enforce_submission_exclusion(session, campaign, now=now)


class RecalculateCapStatusStage:
    name = "recalculate_cap_status"

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def run(self, campaign: Campaign, now: datetime) -> int:
        async with self.session_maker() as session:
            return await recalculate_account_cap_status(session, campaign)


class ResumeStuckJobsStage:
    """Re-queue validation jobs that stopped reporting progress."""

    name = "resume_stuck_jobs"

    def __init__(self, session_maker, dispatcher: JobDispatcher, stale_after: Optional[timedelta] = None):
        self.session_maker = session_maker
        self.dispatcher = dispatcher
        self.stale_after = stale_after or timedelta(minutes=settings.STUCK_JOB_MINUTES)

    async def run(self, campaign: Campaign, now: datetime) -> List[str]:
        async with self.session_maker() as session:
            jobs = await find_stuck_jobs(session, now, self.stale_after, campaign_id=campaign.id)
            if not jobs:
                return []
            # the release bumps updated_at, so the next tick leaves them alone while they wait
            job_ids = await release_stale_claims(session, [job.id for job in jobs], now, self.stale_after)

        for job_id in job_ids:
            LOG.warning("Re-queueing stuck validation job=%s campaign=%s", job_id, campaign.id)
            await self.dispatcher.dispatch(job_id)
        return job_ids


def default_stages(session_maker, dispatcher: JobDispatcher) -> List[PipelineStage]:
    return [
        ResumeStuckJobsStage(session_maker, dispatcher),
        ReapplySuppressionStage(session_maker),
        SubmissionExclusionStage(session_maker),
        RecalculateCapStatusStage(session_maker),
    ]
