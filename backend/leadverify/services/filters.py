# backend/leadverify/services/filters.py
# Typed contact filters -> SQLAlchemy predicates. Every user value travels as a
# bound parameter; nothing is interpolated into SQL text.
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from leadverify.models.account import Account
from leadverify.models.contact import (
    Contact,
    EligibilityStatus,
    EmailStatus,
    SourceType,
    VerificationStatus,
)
from leadverify.models.submission import LeadSubmission


class ContactFilters(BaseModel):
    contact_search: Optional[str] = None
    phone_search: Optional[str] = None
    company_search: Optional[str] = None
    source_type: Optional[SourceType] = None
    country: Optional[str] = None
    eligibility_status: Optional[EligibilityStatus] = None
    email_status: Optional[EmailStatus] = None
    verification_status: Optional[VerificationStatus] = None
    has_phone: Optional[bool] = None
    has_address: Optional[bool] = None
    has_cav: Optional[bool] = None


def contains_pattern(value: str) -> str:
    """Case-insensitive LIKE pattern with wildcards in the input escaped."""
    escaped = value.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _ilike(column, value: str) -> ColumnElement:
    return func.lower(column).like(contains_pattern(value), escape="\\")


def _filled(column) -> ColumnElement:
    return and_(column.isnot(None), column != "")


def _presence(flag: bool, *columns) -> ColumnElement:
    any_filled = or_(*[_filled(c) for c in columns])
    return any_filled if flag else ~any_filled


def build_contact_predicates(filters: Optional[ContactFilters]) -> List[ColumnElement]:
    f = filters or ContactFilters()
    predicates: List[ColumnElement] = []

    if f.contact_search and f.contact_search.strip():
        predicates.append(or_(_ilike(Contact.full_name, f.contact_search), _ilike(Contact.email, f.contact_search)))
    if f.phone_search and f.phone_search.strip():
        predicates.append(or_(_ilike(Contact.phone, f.phone_search), _ilike(Contact.mobile, f.phone_search)))
    if f.company_search and f.company_search.strip():
        accounts = select(Account.id).where(_ilike(Account.name, f.company_search))
        predicates.append(Contact.account_id.in_(accounts))
    if f.source_type is not None:
        predicates.append(Contact.source_type == f.source_type)
    if f.country and f.country.strip():
        predicates.append(_ilike(Contact.country, f.country))
    if f.eligibility_status is not None:
        predicates.append(Contact.eligibility_status == f.eligibility_status)
    if f.email_status is not None:
        predicates.append(Contact.email_status == f.email_status)
    if f.verification_status is not None:
        predicates.append(Contact.verification_status == f.verification_status)
    if f.has_phone is not None:
        predicates.append(_presence(f.has_phone, Contact.phone, Contact.mobile))
    if f.has_address is not None:
        predicates.append(_presence(f.has_address, Contact.address1, Contact.city))
    if f.has_cav is not None:
        predicates.append(_presence(f.has_cav, Contact.cav_id, Contact.cav_user_id))

    return predicates


def build_queue_predicates(campaign_id: str, filters: Optional[ContactFilters]) -> List[ColumnElement]:
    """
    Base conditions for anything that feeds the submission queue. Contacts that
    already have a submission never come back, even after a flush.

    Eligibility defaults to Eligible and verification to Validated unless the
    caller filters on them explicitly.
    """
    f = filters or ContactFilters()
    predicates = [
        Contact.campaign_id == campaign_id,
        Contact.suppressed.is_(False),
        Contact.deleted.is_(False),
        Contact.in_submission_buffer.is_(False),
        Contact.account_id.isnot(None),
        ~exists().where(LeadSubmission.contact_id == Contact.id),
    ]
    if f.eligibility_status is None:
        predicates.append(Contact.eligibility_status == EligibilityStatus.eligible)
    if f.verification_status is None:
        predicates.append(Contact.verification_status == VerificationStatus.validated)
    predicates.extend(build_contact_predicates(f))
    return predicates
