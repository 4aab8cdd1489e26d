from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from src.db.models import AuditLog
from src.utils.time import utcnow


def log_change(
    session: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: Optional[str],
    old: Optional[dict[str, Any]],
    new: Optional[dict[str, Any]],
    note: Optional[str] = None,
) -> None:
    session.add(
        AuditLog(
            at=utcnow(),
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id,
            old_json=old,
            new_json=new,
            note=note,
        )
    )


def changes_for(session: Session, *, entity: str, entity_id: str, limit: int = 200) -> list[AuditLog]:
    """Audit rows for one entity, oldest first."""
    return (
        session.query(AuditLog)
        .filter(AuditLog.entity == entity, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.at.asc(), AuditLog.id.asc())
        .limit(max(1, int(limit)))
        .all()
    )
