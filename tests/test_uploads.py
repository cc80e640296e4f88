"""
Tests for contact ingestion: header mapping, account resolution, eligibility at
upload time, suppression at upload time and update-mode matching.
"""

import pytest
from sqlalchemy import select

from leadverify.models.account import Account
from leadverify.models.contact import Contact, EligibilityStatus, EmailStatus, SourceType
from leadverify.models.submission import LeadSubmission
from leadverify.services.normalizer import compute_name_company_hash
from leadverify.services.suppression import SuppressionEntryIn, add_to_suppression_list
from leadverify.services.uploads import AccountResolver, parse_source_type, upload_contacts


async def _contacts(session, campaign):
    rows = await session.execute(
        select(Contact).where(Contact.campaign_id == campaign.id).execution_options(populate_existing=True)
    )
    return rows.scalars().all()


@pytest.mark.unit
class TestSourceType:
    @pytest.mark.parametrize("raw", ["Client Provided", "client_provided", "client"])
    def test_client_provided(self, raw):
        assert parse_source_type(raw) == SourceType.client_provided

    def test_default_is_new_sourced(self):
        assert parse_source_type(None) == SourceType.new_sourced


@pytest.mark.integration
class TestUploadCreate:
    async def test_creates_contact_with_derived_fields(self, session, factory):
        campaign = await factory.campaign(eligibility_config={"geo_allow_list": ["United States"]})
        rows = [{
            "Full Name": "Jane Doe",
            "Email Address": " Jane.Doe@Acme.com ",
            "Job Title": "VP Marketing",
            "Company": "Acme",
            "Website": "https://www.acme.com/about",
            "Country": "United States",
        }]

        summary = await upload_contacts(session, campaign, rows)

        assert summary.to_dict() == {"total": 1, "created": 1, "updated": 0, "skipped": 0, "errors": []}
        (contact,) = await _contacts(session, campaign)
        assert contact.first_name == "Jane"
        assert contact.last_name == "Doe"
        assert contact.email_lower == "jane.doe@acme.com"
        assert contact.eligibility_status == EligibilityStatus.eligible
        assert contact.seniority_level == "vp"
        assert contact.priority_score is not None
        assert contact.name_company_hash == compute_name_company_hash("Jane", "Doe", "Acme")
        account = await session.get(Account, contact.account_id)
        assert account.domain == "acme.com"

    async def test_out_of_scope_and_invalid_syntax(self, session, factory):
        campaign = await factory.campaign(eligibility_config={"geo_allow_list": ["Germany"]})
        rows = [
            {"name": "No Email", "country": "Germany"},
            {"name": "Bad Email", "email": "not-an-email", "country": "Germany"},
            {"name": "Wrong Country", "email": "w@x.com", "country": "Spain"},
        ]

        await upload_contacts(session, campaign, rows)

        by_name = {c.full_name: c for c in await _contacts(session, campaign)}
        assert by_name["No Email"].eligibility_reason == "missing_email_address"
        assert by_name["Bad Email"].email_status == EmailStatus.invalid
        assert by_name["Wrong Country"].eligibility_status == EligibilityStatus.out_of_scope

    async def test_row_errors_do_not_abort_batch(self, session, factory):
        campaign = await factory.campaign()
        rows = [{"email": "no-name@x.com"}, {"first name": "Ok", "last name": "Person", "email": "ok@x.com"}]

        summary = await upload_contacts(session, campaign, rows)

        assert summary.created == 1
        assert summary.skipped == 1
        assert summary.errors == ["Row 1: missing full name"]

    async def test_explicit_field_mappings_win(self, session, factory):
        campaign = await factory.campaign()
        rows = [{"Contact": "Jane Doe", "Mail": "jane@x.com", "Org": "Initech"}]
        mappings = {"Contact": "full_name", "Mail": "email", "Org": "account_name"}

        await upload_contacts(session, campaign, rows, field_mappings=mappings)

        (contact,) = await _contacts(session, campaign)
        assert contact.email == "jane@x.com"
        assert contact.company_key == "initech"

    async def test_suppressed_at_upload(self, session, factory):
        campaign = await factory.campaign()
        await add_to_suppression_list(session, None, [SuppressionEntryIn(email="blocked@x.com")])

        await upload_contacts(session, campaign, [{"name": "Blocked Person", "email": "BLOCKED@x.com"}])

        (contact,) = await _contacts(session, campaign)
        assert contact.suppressed is True

    async def test_accounts_reused_by_domain_then_name(self, session, factory):
        campaign = await factory.campaign()
        rows = [
            {"name": "A One", "email": "a@x.com", "company": "Globex", "domain": "globex.com"},
            {"name": "B Two", "email": "b@x.com", "company": "Globex Corporation", "domain": "www.globex.com"},
            {"name": "C Three", "email": "c@x.com", "company": "GLOBEX"},
        ]

        await upload_contacts(session, campaign, rows)

        accounts = (await session.execute(select(Account))).scalars().all()
        assert len(accounts) == 1


@pytest.mark.integration
class TestUpdateMode:
    async def test_updates_single_email_match(self, session, factory):
        campaign = await factory.campaign()
        existing = await factory.contact(campaign, full_name="Jane Doe", email="jane@x.com", title="Engineer")

        summary = await upload_contacts(
            session, campaign, [{"name": "Jane Doe", "email": "JANE@x.com", "title": "CTO"}], update_mode=True
        )

        assert summary.updated == 1
        assert summary.created == 0
        await session.refresh(existing)
        assert existing.title == "CTO"
        assert existing.seniority_level == "c_level"

    async def test_ambiguous_email_rejected(self, session, factory):
        campaign = await factory.campaign()
        await factory.contact(campaign, email="dup@x.com")
        await factory.contact(campaign, email="dup@x.com")

        summary = await upload_contacts(session, campaign, [{"name": "Dup Person", "email": "dup@x.com"}], update_mode=True)

        assert summary.skipped == 1
        assert summary.errors[0].startswith("Row 1: ambiguous match")
        assert len(await _contacts(session, campaign)) == 2

    async def test_name_country_account_match(self, session, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        existing = await factory.contact(campaign, acme, full_name="Jane Doe", email=None, country="Canada")

        summary = await upload_contacts(
            session, campaign,
            [{"name": "jane doe", "company": "Acme", "country": "canada", "phone": "555-0100"}],
            update_mode=True,
        )

        assert summary.updated == 1
        await session.refresh(existing)
        assert existing.phone == "555-0100"

    async def test_name_match_requires_country(self, session, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        await factory.contact(campaign, acme, full_name="Jane Doe", email=None, country="Canada")

        summary = await upload_contacts(
            session, campaign, [{"name": "Jane Doe", "company": "Acme"}], update_mode=True
        )

        assert summary.created == 1

    async def test_submitted_contact_not_updated(self, session, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme")
        existing = await factory.contact(campaign, acme, email="sent@x.com", title="Engineer")
        session.add(LeadSubmission(contact_id=existing.id, campaign_id=campaign.id, account_id=acme.id))
        await session.commit()

        summary = await upload_contacts(
            session, campaign, [{"name": "Sent Person", "email": "sent@x.com", "title": "CEO"}], update_mode=True
        )

        assert summary.skipped == 1
        await session.refresh(existing)
        assert existing.title == "Engineer"


@pytest.mark.integration
class TestAccountResolver:
    async def test_creates_then_caches(self, session):
        resolver = AccountResolver(session)

        first = await resolver.resolve("Initech", "initech.com")
        second = await resolver.resolve("initech", None)

        assert first is second
        assert await resolver.resolve(None, None) is None
