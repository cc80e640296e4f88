# backend/leadverify/verifier/__init__.py

from .base import (
    INTERNAL_STATUSES,
    EmailVerificationProvider,
    VerificationResult,
    map_provider_status,
    verify_emails_bulk,
)
from .elv import EmailListVerifyProvider

__all__ = [
    "INTERNAL_STATUSES",
    "EmailVerificationProvider",
    "VerificationResult",
    "map_provider_status",
    "verify_emails_bulk",
    "EmailListVerifyProvider",
]
