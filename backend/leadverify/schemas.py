# backend/leadverify/schemas.py
# Request bodies. Responses are plain dicts built in the routers.
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .services.contacts import BULK_UPDATE_FIELDS, MAX_FIELD_LENGTH
from .services.suppression import SuppressionEntryIn


class UploadContactsRequest(BaseModel):
    rows: Optional[List[Dict[str, Any]]] = None
    csv_data: Optional[str] = None
    field_mappings: Optional[Dict[str, str]] = None
    update_mode: bool = False

    @model_validator(mode="after")
    def _one_source(self):
        if (self.rows is None) == (self.csv_data is None):
            raise ValueError("provide exactly one of rows or csv_data")
        return self


class ContactIdsRequest(BaseModel):
    contact_ids: List[str] = Field(..., min_length=1)


class BulkDeleteRequest(ContactIdsRequest):
    is_admin: bool = False
    actor: Optional[str] = None


class BulkFieldUpdateRequest(ContactIdsRequest):
    field: str
    value: Optional[str] = Field(None, max_length=MAX_FIELD_LENGTH)
    actor: Optional[str] = None

    @model_validator(mode="after")
    def _allowed_field(self):
        if self.field not in BULK_UPDATE_FIELDS:
            raise ValueError(f"field must be one of {sorted(BULK_UPDATE_FIELDS)}")
        return self


class SuppressionEntriesRequest(BaseModel):
    entries: List[SuppressionEntryIn] = Field(..., min_length=1)


class StartValidationJobRequest(ContactIdsRequest):
    batch_size: Optional[int] = Field(None, ge=1, le=5000)


class CapOverrideRequest(BaseModel):
    cap: Optional[int] = Field(..., ge=0, le=10000)
    actor: Optional[str] = None


class PrepareSubmissionRequest(BaseModel):
    batch_size: int = Field(50, ge=1, le=1000)
    # ids from an earlier all-ids planning call; omitted means plan now
    contact_ids: Optional[List[str]] = None
