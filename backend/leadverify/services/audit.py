# backend/leadverify/services/audit.py
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadverify.models.audit import AuditLogEntry


def record_audit(
    session: AsyncSession,
    action: str,
    entity_type: str,
    entity_ids: List[str],
    campaign_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
) -> AuditLogEntry:
    """Stage an audit row; it commits with the caller's transaction."""
    entry = AuditLogEntry(
        campaign_id=campaign_id,
        action=action,
        entity_type=entity_type,
        entity_ids=list(entity_ids),
        details=details or {},
        actor=actor,
    )
    session.add(entry)
    return entry
