from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.logging_setup import current_trace_id
from seatlock.models.models import AuditLog

BOOKING_CONFIRMED = "booking_confirmed"


def audit_detail(detail: Optional[dict] = None) -> dict:
    """Copy of ``detail`` tagged with the request trace id, when there is one."""
    out = dict(detail or {})
    trace_id = current_trace_id()
    if trace_id:
        out.setdefault("trace_id", trace_id)
    return out


async def log_audit(db: AsyncSession, actor_id: Optional[str], action: str, object_type: Optional[str] = None, object_id: Optional[str] = None, detail: Optional[dict] = None) -> AuditLog:
    """Stage an audit row in the caller's transaction; it commits or rolls back with it."""
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=audit_detail(detail),
    )
    db.add(entry)
    return entry
