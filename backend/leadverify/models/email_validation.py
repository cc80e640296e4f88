# backend/leadverify/models/email_validation.py
import enum

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, Text, UniqueConstraint

from leadverify.db import Base
from .common import new_id, utcnow, enum_type


STATUS_COUNT_KEYS = ("ok", "invalid", "risky", "disposable", "accept_all", "unknown")


def empty_status_counts() -> dict:
    return {key: 0 for key in STATUS_COUNT_KEYS}


class JobStatus(str, enum.Enum):
    processing = "processing"
    completed = "completed"
    failed = "failed"


class EmailValidationRecord(Base):
    """Provider result cache, one row per (contact, normalized email)."""

    __tablename__ = "email_validations"

    id = Column(String(36), primary_key=True, default=new_id)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    email_lower = Column(String, nullable=False, index=True)
    provider = Column(String(50), nullable=False)
    status = Column(String(32), nullable=False)
    raw_response = Column(JSON, nullable=True)
    checked_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("contact_id", "email_lower", name="uq_email_validations_contact_email"),
    )


class EmailValidationJob(Base):
    __tablename__ = "email_validation_jobs"

    id = Column(String(36), primary_key=True, default=new_id)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(enum_type(JobStatus, "job_status"), nullable=False, default=JobStatus.processing, index=True)

    contact_ids = Column(JSON, nullable=False)
    batch_size = Column(Integer, nullable=False, default=500)
    total_contacts = Column(Integer, nullable=False, default=0)
    total_batches = Column(Integer, nullable=False, default=0)
    current_batch = Column(Integer, nullable=False, default=0)
    processed_contacts = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    status_counts = Column(JSON, nullable=False, default=empty_status_counts)
    error_message = Column(Text, nullable=True)
    # token of the runner currently working the job; NULL when nobody holds it
    claimed_by = Column(String(36), nullable=True)

    started_at = Column(DateTime(timezone=True), default=utcnow)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, index=True)
