"""
Tests for the periodic pipeline scheduler, driven with a fixed clock and no
real timers.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from leadverify.models.common import utcnow
from leadverify.models.contact import EligibilityStatus
from leadverify.models.email_validation import EmailValidationJob, JobStatus
from leadverify.models.submission import AccountCapStatus, LeadSubmission
from leadverify.services.email_validation import create_validation_job
from leadverify.services.scheduler import (
    DatabaseCampaignSource,
    PipelineScheduler,
    ReapplySuppressionStage,
    RecalculateCapStatusStage,
    ResumeStuckJobsStage,
    SubmissionExclusionStage,
    default_stages,
)
from leadverify.services.suppression import SuppressionEntryIn, add_to_suppression_list
from tests.conftest import no_sleep


class StaticSource:
    def __init__(self, campaigns):
        self.campaigns = campaigns

    async def list_active_campaigns(self):
        return list(self.campaigns)


class RecordingStage:
    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.seen = []

    async def run(self, campaign, now):
        self.seen.append((campaign.id, now))
        if self.fail:
            raise RuntimeError(f"{self.name} broke")
        return len(self.seen)


class _Campaign:
    def __init__(self, id):
        self.id = id


@pytest.mark.unit
class TestSchedulerLoop:
    async def test_run_once_uses_injected_clock(self):
        now = utcnow()
        stage = RecordingStage("count")
        scheduler = PipelineScheduler(StaticSource([_Campaign("a"), _Campaign("b")]), [stage], clock=lambda: now)

        runs = await scheduler.run_once()

        assert [(r.campaign_id, r.ok) for r in runs] == [("a", True), ("b", True)]
        assert stage.seen == [("a", now), ("b", now)]
        assert scheduler.last_run_at == now

    async def test_failing_stage_does_not_stop_others(self):
        broken = RecordingStage("broken", fail=True)
        healthy = RecordingStage("healthy")
        scheduler = PipelineScheduler(StaticSource([_Campaign("a")]), [broken, healthy])

        runs = await scheduler.run_once()

        assert runs[0].ok is False
        assert runs[0].error == "broken broke"
        assert runs[1].ok is True
        assert len(healthy.seen) == 1

    async def test_run_forever_ticks_and_sleeps(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        stage = RecordingStage("count")
        scheduler = PipelineScheduler(
            StaticSource([_Campaign("a")]), [stage], interval_seconds=30, sleep=fake_sleep
        )

        ticks = await scheduler.run_forever(max_ticks=3)

        assert ticks == 3
        assert sleeps == [30, 30]
        assert len(stage.seen) == 3


@pytest.mark.integration
class TestStages:
    async def test_database_source_lists_active_only(self, session_maker, factory):
        active = await factory.campaign()
        await factory.campaign(name="Paused", status="paused")

        campaigns = await DatabaseCampaignSource(session_maker).list_active_campaigns()

        assert [c.id for c in campaigns] == [active.id]

    async def test_resume_stuck_jobs_once(self, session, session_maker, factory, fake_dispatcher):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)
        job = await create_validation_job(session, campaign.id, [contact.id])
        now = utcnow() + timedelta(minutes=30)
        scheduler = PipelineScheduler(
            DatabaseCampaignSource(session_maker),
            [ResumeStuckJobsStage(session_maker, fake_dispatcher, stale_after=timedelta(minutes=5))],
            clock=lambda: now,
            sleep=no_sleep,
        )

        first = await scheduler.run_once()
        second = await scheduler.run_once()

        assert first[0].result == [job.id]
        assert second[0].result == []
        assert fake_dispatcher.dispatched == [job.id]

    async def test_stale_claim_released_before_requeue(self, session, session_maker, factory, fake_dispatcher):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)
        stale = await create_validation_job(session, campaign.id, [contact.id])
        live = await create_validation_job(session, campaign.id, [contact.id])
        now = utcnow()
        await session.execute(
            update(EmailValidationJob)
            .where(EmailValidationJob.id == stale.id)
            .values(claimed_by="dead-runner", updated_at=now - timedelta(minutes=30))
        )
        await session.execute(
            update(EmailValidationJob)
            .where(EmailValidationJob.id == live.id)
            .values(claimed_by="busy-runner", updated_at=now)
        )
        await session.commit()
        stage = ResumeStuckJobsStage(session_maker, fake_dispatcher, stale_after=timedelta(minutes=5))

        assert await stage.run(campaign, now) == [stale.id]

        assert fake_dispatcher.dispatched == [stale.id]
        async with session_maker() as s:
            released = await s.get(EmailValidationJob, stale.id)
            busy = await s.get(EmailValidationJob, live.id)
        assert released.claimed_by is None
        assert busy.claimed_by == "busy-runner"

    async def test_finished_jobs_not_resumed(self, session, session_maker, factory, fake_dispatcher):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)
        job = await create_validation_job(session, campaign.id, [contact.id])
        await session.execute(
            update(EmailValidationJob).where(EmailValidationJob.id == job.id).values(status=JobStatus.completed)
        )
        await session.commit()
        stage = ResumeStuckJobsStage(session_maker, fake_dispatcher)

        assert await stage.run(campaign, utcnow() + timedelta(hours=1)) == []
        assert fake_dispatcher.dispatched == []

    async def test_reapply_suppression_and_cap_status(self, session, session_maker, factory, fake_dispatcher):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        contact = await factory.contact(campaign, acme, email="later@x.com")
        await add_to_suppression_list(session, campaign.id, [SuppressionEntryIn(email="later@x.com")])
        scheduler = PipelineScheduler(
            DatabaseCampaignSource(session_maker), default_stages(session_maker, fake_dispatcher), sleep=no_sleep
        )

        runs = await scheduler.run_once()

        assert all(r.ok for r in runs)
        assert {r.stage: r.result for r in runs}["reapply_suppression"] == 1
        await session.refresh(contact)
        assert contact.suppressed is True
        status = (await session.execute(select(AccountCapStatus))).scalars().one()
        assert status.account_id == acme.id
        assert status.eligible_count == 0

    async def test_stage_classes_have_names(self, session_maker, fake_dispatcher):
        names = [s.name for s in default_stages(session_maker, fake_dispatcher)]

        assert names == ["resume_stuck_jobs", "reapply_suppression", "submission_exclusion", "recalculate_cap_status"]
        assert ReapplySuppressionStage.name in names
        assert RecalculateCapStatusStage.name in names
        assert SubmissionExclusionStage.name in names

    async def test_submission_exclusion_stage(self, session, session_maker, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        contact = await factory.contact(campaign, acme)
        session.add(LeadSubmission(contact_id=contact.id, campaign_id=campaign.id, account_id=acme.id))
        await session.commit()

        result = await SubmissionExclusionStage(session_maker).run(campaign, utcnow())

        assert result == {"checked": 1, "excluded": 1, "reactivated": 0}
        await session.refresh(contact)
        assert contact.eligibility_status == EligibilityStatus.ineligible_recently_submitted
