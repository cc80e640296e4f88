# backend/leadverify/models/contact.py
import enum

from sqlalchemy import Column, String, Float, Boolean, DateTime, ForeignKey, Index

from leadverify.db import Base
from .common import new_id, utcnow, enum_type


class EligibilityStatus(str, enum.Enum):
    eligible = "Eligible"
    out_of_scope = "Out_of_Scope"
    pending_email_validation = "Pending_Email_Validation"
    ineligible_recently_submitted = "Ineligible_Recently_Submitted"


class VerificationStatus(str, enum.Enum):
    pending = "Pending"
    validated = "Validated"
    replaced = "Replaced"
    invalid = "Invalid"


class EmailStatus(str, enum.Enum):
    unknown = "unknown"
    ok = "ok"
    invalid = "invalid"
    risky = "risky"
    accept_all = "accept_all"
    disposable = "disposable"


class SourceType(str, enum.Enum):
    client_provided = "Client_Provided"
    new_sourced = "New_Sourced"


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=new_id)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    source_type = Column(enum_type(SourceType, "source_type"), nullable=False, default=SourceType.new_sourced)

    # identity
    full_name = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    title = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    mobile = Column(String, nullable=True)
    linkedin_url = Column(String, nullable=True)
    address1 = Column(String, nullable=True)
    address2 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    cav_id = Column(String, nullable=True, index=True)
    cav_user_id = Column(String, nullable=True, index=True)

    # normalized keys, always recomputed through services.normalizer.apply_normalized_keys
    email_lower = Column(String, nullable=True, index=True)
    first_name_norm = Column(String, nullable=True)
    last_name_norm = Column(String, nullable=True)
    company_key = Column(String, nullable=True)
    contact_country_key = Column(String, nullable=True)
    name_company_hash = Column(String(64), nullable=True, index=True)

    eligibility_status = Column(
        enum_type(EligibilityStatus, "eligibility_status"), nullable=False, default=EligibilityStatus.out_of_scope
    )
    eligibility_reason = Column(String, nullable=True)
    priority_score = Column(Float, nullable=True)
    seniority_level = Column(String(32), nullable=True)

    verification_status = Column(
        enum_type(VerificationStatus, "verification_status"), nullable=False, default=VerificationStatus.pending
    )
    email_status = Column(enum_type(EmailStatus, "email_status"), nullable=False, default=EmailStatus.unknown)

    suppressed = Column(Boolean, nullable=False, default=False)
    in_submission_buffer = Column(Boolean, nullable=False, default=False)
    deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_contacts_campaign_queue", "campaign_id", "eligibility_status", "verification_status"),
        Index("ix_contacts_campaign_account", "campaign_id", "account_id"),
    )
