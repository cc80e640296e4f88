import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

import leadverify.models  # noqa: F401
from leadverify.db import Base
from leadverify.errors import ProviderError
from leadverify.models import (
    Account,
    Campaign,
    Contact,
    EligibilityStatus,
    EmailStatus,
    SourceType,
    VerificationStatus,
)
from leadverify.services.normalizer import apply_normalized_keys, split_full_name
from leadverify.verifier import VerificationResult


# ---------------------------------------------------------
# Database
# ---------------------------------------------------------
@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'leadverify.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


# ---------------------------------------------------------
# Row factory
# ---------------------------------------------------------
class Factory:
    """Creates committed campaigns, accounts and contacts with sane defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = 0

    async def campaign(self, **kw) -> Campaign:
        kw.setdefault("name", "Q3 Outreach")
        kw.setdefault("lead_cap_per_account", 10)
        campaign = Campaign(**kw)
        self.session.add(campaign)
        await self.session.commit()
        return campaign

    async def account(self, name="Acme", domain=None) -> Account:
        account = Account(name=name, domain=domain)
        self.session.add(account)
        await self.session.commit()
        return account

    async def contact(self, campaign, account=None, **kw) -> Contact:
        self._seq += 1
        kw.setdefault("full_name", f"Person {self._seq}")
        if "first_name" not in kw and "last_name" not in kw:
            kw["first_name"], kw["last_name"] = split_full_name(kw["full_name"])
        kw.setdefault("email", f"person{self._seq}@example.com")
        kw.setdefault("title", "Engineer")
        kw.setdefault("country", "United States")
        kw.setdefault("eligibility_status", EligibilityStatus.eligible)
        kw.setdefault("verification_status", VerificationStatus.validated)
        kw.setdefault("email_status", EmailStatus.unknown)
        kw.setdefault("source_type", SourceType.new_sourced)

        contact = Contact(campaign_id=campaign.id, account_id=account.id if account else None, **kw)
        apply_normalized_keys(contact, account.name if account else None)
        self.session.add(contact)
        await self.session.commit()
        return contact


@pytest.fixture
def factory(session):
    return Factory(session)


# ---------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------
class FakeProvider:
    """
    In-memory verification provider.

    ``fail_on_attempt`` makes the Nth verify() call raise ProviderError once;
    ``calls`` only records calls that returned a result.
    """

    name = "fake"

    def __init__(self, statuses=None, default="ok", fail_on_attempt=None):
        self.statuses = statuses or {}
        self.default = default
        self.fail_on_attempt = fail_on_attempt
        self.attempts = 0
        self.calls = []

    async def verify(self, email):
        self.attempts += 1
        if self.fail_on_attempt is not None and self.attempts == self.fail_on_attempt:
            self.fail_on_attempt = None
            raise ProviderError("provider unavailable")
        self.calls.append(email)
        status = self.statuses.get(email, self.default)
        return VerificationResult(email=email, status=status, provider=self.name, raw_response={"status": status})


class FakeDispatcher:
    def __init__(self):
        self.dispatched = []

    async def dispatch(self, job_id):
        self.dispatched.append(job_id)


async def no_sleep(_seconds):
    return None


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fake_dispatcher():
    return FakeDispatcher()
