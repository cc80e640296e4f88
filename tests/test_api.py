"""
End-to-end tests through the FastAPI app with the database, provider and job
dispatcher swapped for test doubles.
"""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import update

from leadverify.db import get_db
from leadverify.main import app
from leadverify.models.common import utcnow
from leadverify.models.contact import EmailStatus, VerificationStatus
from leadverify.models.email_validation import EmailValidationJob
from leadverify.routers.deps import get_provider
from leadverify.services.dispatch import get_dispatcher
from leadverify.services.email_validation import create_validation_job


@pytest.fixture
async def client(session_maker, fake_provider, fake_dispatcher):
    async def _db():
        async with session_maker() as s:
            yield s

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_provider] = lambda: fake_provider
    app.dependency_overrides[get_dispatcher] = lambda: fake_dispatcher
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.integration
class TestHealthAndErrors:
    async def test_health(self, client):
        r = await client.get("/health")

        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    async def test_unknown_campaign(self, client):
        r = await client.get("/campaigns/missing/queue")

        assert r.status_code == 404

    async def test_unknown_contact_submit(self, client):
        r = await client.post("/contacts/missing/submit")

        assert r.status_code == 404

    async def test_upload_requires_one_source(self, client, factory):
        campaign = await factory.campaign()

        r = await client.post(f"/campaigns/{campaign.id}/contacts/upload", json={"update_mode": False})

        assert r.status_code == 422


@pytest.mark.integration
class TestPipelineFlow:
    async def test_upload_queue_submit_cap(self, client, factory):
        campaign = await factory.campaign(lead_cap_per_account=1)
        rows = [
            {"name": "Ann Able", "email": "ann@acme.com", "company": "Acme", "title": "CEO"},
            {"name": "Ben Baker", "email": "ben@acme.com", "company": "Acme", "title": "Engineer"},
        ]

        r = await client.post(f"/campaigns/{campaign.id}/contacts/upload", json={"rows": rows})
        assert r.status_code == 200
        assert r.json()["created"] == 2

        # uploaded contacts start Pending and are not yet queueable
        r = await client.get(f"/campaigns/{campaign.id}/queue")
        assert r.json()["count"] == 0

        r = await client.get(f"/campaigns/{campaign.id}/queue", params={"verification_status": "Pending"})
        ids = [c["id"] for c in r.json()["data"]]
        assert len(ids) == 1

        r = await client.post(f"/contacts/{ids[0]}/submit")
        assert r.status_code == 409
        assert r.json()["details"] == {"verification_status": "Pending"}

        r = await client.post(f"/campaigns/{campaign.id}/contacts/bulk-mark-validated", json={"contact_ids": ids})
        assert r.json()["updated_count"] == 1

        r = await client.get(f"/campaigns/{campaign.id}/queue")
        data = r.json()["data"]
        assert [c["id"] for c in data] == ids
        assert data[0]["account_name"] == "Acme"
        assert data[0]["seniority_level"] == "c_level"

        r = await client.post(f"/contacts/{ids[0]}/submit")
        assert r.status_code == 200
        assert r.json()["already_submitted"] is False

        r = await client.post(f"/contacts/{ids[0]}/submit")
        assert r.json()["already_submitted"] is True

        r = await client.get(f"/campaigns/{campaign.id}/account-caps")
        (acme,) = r.json()["data"]
        assert acme["cap_status"] == "at_cap"

        r = await client.post(f"/campaigns/{campaign.id}/submissions/flush")
        assert r.json() == {"flushed_count": 1}

    async def test_cap_exceeded_payload(self, client, factory):
        campaign = await factory.campaign(lead_cap_per_account=1)
        acme = await factory.account("Acme")
        first = await factory.contact(campaign, acme)
        second = await factory.contact(campaign, acme)

        assert (await client.post(f"/contacts/{first.id}/submit")).status_code == 200
        r = await client.post(f"/contacts/{second.id}/submit")

        assert r.status_code == 409
        body = r.json()
        assert body["error"] == "cap_reached"
        assert body["account_name"] == "Acme"
        assert body["current_count"] == 1
        assert body["cap"] == 1

    async def test_all_ids_and_cap_override(self, client, factory):
        campaign = await factory.campaign(lead_cap_per_account=3)
        acme = await factory.account("Acme")
        for p in (3, 2, 1):
            await factory.contact(campaign, acme, priority_score=p)

        r = await client.patch(f"/campaigns/{campaign.id}/account-caps/{acme.id}", json={"cap": 2, "actor": "ops"})
        assert r.json()["cap"] == 2

        r = await client.get(f"/campaigns/{campaign.id}/queue/all-ids")
        assert r.json()["total"] == 2

        r = await client.patch(f"/campaigns/{campaign.id}/account-caps/{acme.id}", json={"cap": -1})
        assert r.status_code == 422


@pytest.mark.integration
class TestValidationJobsApi:
    async def test_start_and_poll(self, client, factory, fake_dispatcher):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)

        r = await client.post(
            f"/campaigns/{campaign.id}/email-validation-jobs", json={"contact_ids": [contact.id], "batch_size": 10}
        )
        assert r.status_code == 200
        job_id = r.json()["job_id"]
        assert fake_dispatcher.dispatched == [job_id]

        r = await client.get(f"/email-validation-jobs/{job_id}")
        assert r.json()["status"] == "processing"
        assert r.json()["progress_percent"] == 0

        r = await client.post(f"/email-validation-jobs/{job_id}/resume")
        assert r.json()["resumed_from_batch"] == 0
        assert fake_dispatcher.dispatched == [job_id, job_id]

    async def test_resume_refused_while_running(self, client, session, factory, fake_dispatcher):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)
        job = await create_validation_job(session, campaign.id, [contact.id])
        await session.execute(
            update(EmailValidationJob)
            .where(EmailValidationJob.id == job.id)
            .values(claimed_by="other-runner", updated_at=utcnow())
        )
        await session.commit()

        r = await client.post(f"/email-validation-jobs/{job.id}/resume")

        assert r.status_code == 409
        assert fake_dispatcher.dispatched == []

    async def test_resume_allowed_once_claim_is_stale(self, client, session, factory, fake_dispatcher):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)
        job = await create_validation_job(session, campaign.id, [contact.id])
        await session.execute(
            update(EmailValidationJob)
            .where(EmailValidationJob.id == job.id)
            .values(claimed_by="dead-runner", updated_at=utcnow() - timedelta(hours=1))
        )
        await session.commit()

        r = await client.post(f"/email-validation-jobs/{job.id}/resume")

        assert r.status_code == 200
        assert fake_dispatcher.dispatched == [job.id]

    async def test_empty_ids_rejected(self, client, factory):
        campaign = await factory.campaign()

        r = await client.post(f"/campaigns/{campaign.id}/email-validation-jobs", json={"contact_ids": []})

        assert r.status_code == 422

    async def test_manual_validate(self, client, factory, fake_provider):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign)

        r = await client.post(f"/contacts/{contact.id}/validate-email")

        assert r.status_code == 200
        assert r.json()["email_status"] == "ok"
        assert fake_provider.calls == [contact.email]


@pytest.mark.integration
class TestSuppressionAndExportApi:
    async def test_suppression_roundtrip(self, client, factory):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign, email="stop@x.com")

        r = await client.post(f"/campaigns/{campaign.id}/suppression", json={"entries": [{"email": "STOP@x.com"}]})
        assert r.json() == {"added": 1, "skipped": 0}

        r = await client.post(f"/campaigns/{campaign.id}/suppression/apply", json={"contact_ids": [contact.id]})
        assert r.json() == {"suppressed_count": 1}

        r = await client.post("/suppression/global", json={"entries": [{"cav_id": "C-1"}]})
        assert r.json()["added"] == 1

        r = await client.get(f"/campaigns/{campaign.id}/suppression")
        body = r.json()
        assert body["total"] == 2
        assert {e["scope"] for e in body["data"]} == {"global", "campaign"}

    async def test_suppression_file_upload(self, client, factory):
        campaign = await factory.campaign()
        await factory.contact(campaign, email="file@x.com")
        csv_bytes = b"Email,Reason\nfile@x.com,requested\n"

        r = await client.post(
            f"/campaigns/{campaign.id}/suppression/upload",
            files={"file": ("dnc.csv", csv_bytes, "text/csv")},
            data={"apply_to_existing": "true"},
        )

        assert r.status_code == 200
        assert r.json()["added"] == 1
        assert r.json()["suppressed_count"] == 1

    async def test_export_validated_verified(self, client, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        await factory.contact(campaign, acme, email="good@x.com", email_status=EmailStatus.ok)
        await factory.contact(campaign, acme, email="catch@x.com", email_status=EmailStatus.accept_all)
        await factory.contact(campaign, acme, email="bad@x.com", email_status=EmailStatus.invalid)
        await factory.contact(
            campaign, acme, email="pending@x.com", email_status=EmailStatus.ok,
            verification_status=VerificationStatus.pending,
        )

        r = await client.get(f"/campaigns/{campaign.id}/export/validated-verified")

        assert r.status_code == 200
        assert r.headers["x-total-count"] == "2"
        assert r.content.startswith(b"\xef\xbb\xbf")
        assert "good@x.com" in r.text
        assert "catch@x.com" in r.text
        assert "bad@x.com" not in r.text
        assert "pending@x.com" not in r.text

    async def test_upload_file_rejects_unknown_type(self, client, factory):
        campaign = await factory.campaign()

        r = await client.post(
            f"/campaigns/{campaign.id}/contacts/upload-file",
            files={"file": ("contacts.pdf", b"%PDF", "application/pdf")},
        )

        assert r.status_code == 400

    async def test_global_suppression_upload_applies_everywhere(self, client, factory):
        first = await factory.campaign()
        second = await factory.campaign(name="Second")
        await factory.contact(first, email="gone@x.com")
        await factory.contact(second, email="GONE@x.com")
        await factory.contact(second, email="stay@x.com")

        r = await client.post(
            "/suppression/global/upload",
            files={"file": ("global.csv", b"Email\ngone@x.com\n", "text/csv")},
            data={"apply_to_existing": "true"},
        )

        assert r.status_code == 200
        assert r.json()["added"] == 1
        assert r.json()["suppressed_count"] == 2

    async def test_global_suppression_upload_rejects_empty_file(self, client):
        r = await client.post("/suppression/global/upload", files={"file": ("global.csv", b"Email\n", "text/csv")})

        assert r.status_code == 400

    async def test_export_submission_buffer(self, client, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        await factory.contact(
            campaign, acme, email="buffered@x.com", cav_id="CAV-1",
            email_status=EmailStatus.ok, in_submission_buffer=True,
        )
        await factory.contact(campaign, acme, email="idle@x.com", email_status=EmailStatus.ok)

        r = await client.get(f"/campaigns/{campaign.id}/export/submission-buffer?template=client_cav")

        assert r.status_code == 200
        assert r.headers["x-total-count"] == "1"
        assert r.content.startswith(b"\xef\xbb\xbf")
        assert r.text.lstrip("\ufeff").startswith("CAV-ID,")
        assert "buffered@x.com" in r.text
        assert "idle@x.com" not in r.text

    async def test_export_submission_buffer_unknown_template(self, client, factory):
        campaign = await factory.campaign()

        r = await client.get(f"/campaigns/{campaign.id}/export/submission-buffer?template=fancy")

        assert r.status_code == 422


@pytest.mark.integration
class TestImportsApi:
    async def test_validation_results_import(self, client, session, factory):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign, email="checked@x.com")

        r = await client.post(
            f"/campaigns/{campaign.id}/validation-results/import",
            files={"file": ("results.csv", b"Email,Result\nchecked@x.com,Deliverable\n", "text/csv")},
        )

        assert r.status_code == 200
        assert r.json()["updated"] == 1
        await session.refresh(contact)
        assert contact.email_status == EmailStatus.ok

    async def test_submission_import_then_exclusion(self, client, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        await factory.contact(campaign, acme, email="sent@x.com")
        csv_bytes = b"Email,Submission Date\nsent@x.com,2019-01-15\nmissing@x.com,2019-01-15\n"

        r = await client.post(
            f"/campaigns/{campaign.id}/submissions/import",
            files={"file": ("delivered.csv", csv_bytes, "text/csv")},
        )

        assert r.status_code == 200
        body = r.json()
        assert body["created"] == 1
        assert body["not_found"] == 1
        assert body["exclusion"]["checked"] == 1

        r = await client.post(f"/campaigns/{campaign.id}/submissions/exclusion")
        assert r.json() == {"checked": 1, "excluded": 0, "reactivated": 0}

    async def test_submission_import_unknown_campaign(self, client):
        r = await client.post(
            "/campaigns/nope/submissions/import",
            files={"file": ("delivered.csv", b"Email\na@x.com\n", "text/csv")},
        )

        assert r.status_code == 404
