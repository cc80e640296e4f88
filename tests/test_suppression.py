"""
Tests for suppression matching.

The name+company rule must never fire on partial data; first-name-only,
company-only and name-without-company pairs are the classic false positives.
"""

import pytest
from sqlalchemy import select

from leadverify.models.contact import Contact
from leadverify.models.suppression import SuppressionEntry
from leadverify.services.normalizer import compute_name_company_hash
from leadverify.services.suppression import (
    RULE_CAV_ID,
    RULE_CAV_USER_ID,
    RULE_EMAIL,
    RULE_NAME_COMPANY,
    ContactKeys,
    SuppressionEntryIn,
    SuppressionIndex,
    add_to_suppression_list,
    apply_suppression_for_contacts,
    build_entry_row,
    list_suppression_entries,
    match_rule,
)


def _entry(campaign_id=None, **kw):
    row = build_entry_row(campaign_id, SuppressionEntryIn(**kw))
    assert row is not None
    return SuppressionEntry(**row)


@pytest.mark.unit
class TestMatchRules:
    def test_email_case_insensitive(self):
        keys = ContactKeys.build(email="John.Smith@Acme.com")

        assert match_rule(keys, _entry(email=" john.smith@ACME.com")) == RULE_EMAIL

    def test_cav_ids(self):
        assert match_rule(ContactKeys.build(cav_id="C-1"), _entry(cav_id="C-1")) == RULE_CAV_ID
        assert match_rule(ContactKeys.build(cav_user_id="U-9"), _entry(cav_user_id=" U-9 ")) == RULE_CAV_USER_ID

    def test_empty_fields_never_match(self):
        keys = ContactKeys.build(email="", cav_id="  ")
        entry = SuppressionEntry(email_lower="", cav_id="")

        assert match_rule(keys, entry) is None

    def test_full_name_and_company_match(self):
        keys = ContactKeys.build(first_name="john", last_name=" SMITH", company="Acme  Corp")
        entry = _entry(first_name="John", last_name="Smith", company_name="ACME Corp")

        assert match_rule(keys, entry) == RULE_NAME_COMPANY

    def test_full_name_on_entry_is_split(self):
        entry = _entry(full_name="John Smith", company_name="Acme")

        assert entry.name_company_hash == compute_name_company_hash("John", "Smith", "Acme")

    def test_shared_first_name_never_suppresses(self):
        keys = ContactKeys.build(email="john.doe@other.com", first_name="John", last_name="Doe", company="Other")
        entry = _entry(first_name="John", last_name="Smith", company_name="Acme")

        assert match_rule(keys, entry) is None

    def test_contact_without_company_never_matches_hash(self):
        keys = ContactKeys.build(first_name="John", last_name="Smith", company=None)
        entry = _entry(first_name="John", last_name="Smith", company_name="Acme")

        assert keys.name_company_hash is None
        assert match_rule(keys, entry) is None

    def test_entry_without_all_three_fields_has_no_key(self):
        assert build_entry_row(None, SuppressionEntryIn(first_name="John", last_name="Smith")) is None
        assert build_entry_row(None, SuppressionEntryIn(company_name="Acme")) is None
        assert build_entry_row(None, SuppressionEntryIn(first_name="John", company_name="Acme")) is None

    def test_entry_with_email_and_partial_name_stores_no_hash(self):
        row = build_entry_row("c1", SuppressionEntryIn(email="a@b.com", first_name="John", company_name="Acme"))

        assert row["email_lower"] == "a@b.com"
        assert row["name_company_hash"] is None


@pytest.mark.unit
class TestSuppressionIndex:
    def test_scope_global_or_same_campaign(self):
        entries = [
            _entry(None, email="global@x.com"),
            _entry("camp-a", email="a@x.com"),
            _entry("camp-b", email="b@x.com"),
        ]
        index = SuppressionIndex("camp-a", entries)

        assert index.match(ContactKeys.build(email="global@x.com"))[0] == RULE_EMAIL
        assert index.match(ContactKeys.build(email="a@x.com")) is not None
        assert index.match(ContactKeys.build(email="b@x.com")) is None

    def test_any_rule_is_enough(self):
        index = SuppressionIndex("c", [_entry(None, cav_user_id="U-1")])
        keys = ContactKeys.build(email="nobody@x.com", cav_user_id="U-1")

        rule, _ = index.match(keys)

        assert rule == RULE_CAV_USER_ID


@pytest.mark.integration
class TestSuppressionPersistence:
    async def test_add_batches_and_skips_keyless_entries(self, session, factory):
        campaign = await factory.campaign()
        entries = [SuppressionEntryIn(email=f"user{i}@x.com") for i in range(5)]
        entries.append(SuppressionEntryIn(first_name="Only"))

        result = await add_to_suppression_list(session, campaign.id, entries, batch_size=2)

        assert result == {"added": 5, "skipped": 1}
        total, rows = await list_suppression_entries(session, campaign.id)
        assert total == 5
        assert {r.email_lower for r in rows} == {f"user{i}@x.com" for i in range(5)}

    async def test_adding_entries_does_not_touch_existing_contacts(self, session, factory):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign, email="late@x.com")

        await add_to_suppression_list(session, campaign.id, [SuppressionEntryIn(email="late@x.com")])

        await session.refresh(contact)
        assert contact.suppressed is False

    async def test_apply_only_given_contacts_and_idempotent(self, session, factory):
        campaign = await factory.campaign()
        acme = await factory.account("Acme Corp")
        hit_email = await factory.contact(campaign, email="blocked@x.com")
        hit_hash = await factory.contact(campaign, acme, full_name="John Smith")
        same_first = await factory.contact(campaign, acme, full_name="John Doe")
        not_given = await factory.contact(campaign, email="blocked2@x.com")

        await add_to_suppression_list(session, None, [
            SuppressionEntryIn(email="BLOCKED@x.com"),
            SuppressionEntryIn(email="blocked2@x.com"),
            SuppressionEntryIn(first_name="John", last_name="Smith", company_name="acme corp"),
        ])

        ids = [hit_email.id, hit_hash.id, same_first.id]
        first = await apply_suppression_for_contacts(session, campaign.id, ids)
        flags_first = {c.id: c.suppressed for c in await _contacts(session, ids + [not_given.id])}
        second = await apply_suppression_for_contacts(session, campaign.id, ids)
        flags_second = {c.id: c.suppressed for c in await _contacts(session, ids + [not_given.id])}

        assert first == second == 2
        assert flags_first == flags_second
        assert flags_first[hit_email.id] is True
        assert flags_first[hit_hash.id] is True
        assert flags_first[same_first.id] is False
        assert flags_first[not_given.id] is False

    async def test_apply_clears_stale_flag(self, session, factory):
        campaign = await factory.campaign()
        contact = await factory.contact(campaign, suppressed=True)

        suppressed = await apply_suppression_for_contacts(session, campaign.id, [contact.id])

        assert suppressed == 0
        await session.refresh(contact)
        assert contact.suppressed is False

    async def test_other_campaign_entry_ignored(self, session, factory):
        campaign = await factory.campaign()
        other = await factory.campaign(name="Other")
        contact = await factory.contact(campaign, email="x@x.com")
        await add_to_suppression_list(session, other.id, [SuppressionEntryIn(email="x@x.com")])

        assert await apply_suppression_for_contacts(session, campaign.id, [contact.id]) == 0


async def _contacts(session, ids):
    rows = await session.execute(select(Contact).where(Contact.id.in_(ids)).execution_options(populate_existing=True))
    return rows.scalars().all()
