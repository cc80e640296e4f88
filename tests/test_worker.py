"""
Tests for the worker's payload handling and job runner.
"""

import json

import pytest

from leadverify.models.email_validation import JobStatus
from leadverify.services.email_validation import create_validation_job, get_job_status
from tests.conftest import FakeProvider
from worker.worker import JobRunner, parse_payload


@pytest.mark.unit
class TestParsePayload:
    def test_valid(self):
        assert parse_payload(json.dumps({"job_id": "abc"})) == "abc"

    @pytest.mark.parametrize("raw", ["not json", json.dumps({"other": 1}), json.dumps(["job"]), None])
    def test_invalid(self, raw):
        assert parse_payload(raw) is None


@pytest.mark.integration
class TestJobRunner:
    async def test_runs_job_and_ignores_duplicate(self, session, session_maker, factory):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)
        job = await create_validation_job(session, campaign.id, [contact.id])
        provider = FakeProvider()
        runner = JobRunner(session_maker, provider, concurrency=2)

        assert runner.submit(job.id) is True
        assert runner.submit(job.id) is False
        await runner.drain()

        snapshot = await get_job_status(session, job.id)
        assert snapshot["status"] == JobStatus.completed.value
        assert provider.calls == [contact.email]

    async def test_unknown_job_is_logged_not_raised(self, session_maker):
        runner = JobRunner(session_maker, FakeProvider())

        runner.submit("missing")
        await runner.drain()

        assert runner.submit("missing") is True
        await runner.drain()
