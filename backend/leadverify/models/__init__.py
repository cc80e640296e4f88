# backend/leadverify/models/__init__.py
# Import every model so Base.metadata is complete for alembic and create_all.
from .account import Account
from .campaign import Campaign
from .contact import Contact, EligibilityStatus, VerificationStatus, EmailStatus, SourceType
from .suppression import SuppressionEntry
from .submission import LeadSubmission, AccountCapStatus
from .email_validation import EmailValidationRecord, EmailValidationJob, JobStatus
from .audit import AuditLogEntry

__all__ = [
    "Account",
    "Campaign",
    "Contact",
    "EligibilityStatus",
    "VerificationStatus",
    "EmailStatus",
    "SourceType",
    "SuppressionEntry",
    "LeadSubmission",
    "AccountCapStatus",
    "EmailValidationRecord",
    "EmailValidationJob",
    "JobStatus",
    "AuditLogEntry",
]
