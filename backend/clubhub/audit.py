"""Append-only trail of relationship-affecting events.

Rows are only ever inserted here; updates and deletes are rejected by the
model hooks. Leaving a club leaves no ledger row behind, so this trail is the
only record of it.
"""
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import AuditLogEntry


def append(
    db: Session,
    user_id: int,
    action: str,
    entity: str,
    entity_id: Optional[int] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AuditLogEntry:
    entry = AuditLogEntry(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
        meta=metadata,
    )
    db.add(entry)
    return entry


def latest(db: Session, user_id: int, action: str) -> Optional[AuditLogEntry]:
    return (
        db.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.user_id == user_id, AuditLogEntry.action == action)
            .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def history(db: Session, user_id: int, action: Optional[str] = None) -> list[AuditLogEntry]:
    stmt = select(AuditLogEntry).where(AuditLogEntry.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLogEntry.action == action)
    return list(
        db.execute(stmt.order_by(AuditLogEntry.created_at.asc(), AuditLogEntry.id.asc())).scalars().all()
    )
