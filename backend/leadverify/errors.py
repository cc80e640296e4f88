# backend/leadverify/errors.py
from typing import Any, Dict, Optional


class LeadVerifyError(Exception):
    """Base class for domain errors raised by the services."""


class NotFoundError(LeadVerifyError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class PreconditionFailed(LeadVerifyError):
    """An expected business-rule rejection; carries context for the caller."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProviderError(LeadVerifyError):
    """The external verification provider could not be reached."""
