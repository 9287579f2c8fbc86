"""Revocation of consent-based grants after an identity-data change.

Grants were issued against a verified identity number. When that number
changes every APPROVED integration grant of the user moves to REVOKED and
stays there until the user re-confirms consent through ``reapprove_all``.
"""
from datetime import timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import audit, config
from .errors import ErrorKind, Result
from .logging_config import get_logger
from .models import AuditAction, EntityIntegrationRequest, RequestStatus, User, utcnow
from .notifications import LoggingNotifier, Notifier
from .schemas import MAX_GRANT_TTL_DAYS, ReapprovalOut
from .unit_of_work import transactional

logger = get_logger(__name__)

REVOCATION_NOTE = "Revoked automatically: identity number changed, consent must be re-confirmed"


class RevocationCascade:
    def __init__(self, notifier: Optional[Notifier] = None, default_ttl_days: int = config.GRANT_TTL_DAYS):
        self.notifier = notifier or LoggingNotifier()
        self.default_ttl_days = default_ttl_days

    def revoke_all(self, db: Session, user_id: int, note: str = REVOCATION_NOTE) -> int:
        """Move every APPROVED grant of ``user_id`` to REVOKED.

        Runs inside the caller's transaction and never commits; the identity
        update that triggered it commits or rolls back both together.
        """
        result = db.execute(
            update(EntityIntegrationRequest)
            .where(
                EntityIntegrationRequest.user_id == user_id,
                EntityIntegrationRequest.status == RequestStatus.APPROVED,
            )
            .values(status=RequestStatus.REVOKED, notes=note, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount or 0

    @transactional
    def reapprove_all(self, db: Session, outbox, user_id: int, expires_in_days: Optional[int] = None) -> Result[ReapprovalOut]:
        if db.get(User, user_id) is None:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} not found")

        days = self.default_ttl_days if expires_in_days is None else expires_in_days
        days = min(days, MAX_GRANT_TTL_DAYS)
        expires_at = utcnow() + timedelta(days=days) if days else None
        result = db.execute(
            update(EntityIntegrationRequest)
            .where(
                EntityIntegrationRequest.user_id == user_id,
                EntityIntegrationRequest.status == RequestStatus.REVOKED,
            )
            .values(
                status=RequestStatus.APPROVED,
                expires_at=expires_at,
                notes="Re-approved after consent confirmation",
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        count = result.rowcount or 0
        if count:
            audit.append(
                db,
                user_id=user_id,
                action=AuditAction.GRANTS_REAPPROVED,
                entity="EntityIntegration",
                new_values={"status": RequestStatus.APPROVED, "count": count},
                metadata={"expiresAt": expires_at.isoformat() if expires_at else None},
            )
            logger.info("Re-approved %s grant(s) for user %s", count, user_id)
        return Result.success(ReapprovalOut(user_id=user_id, reapproved_grants=count, expires_at=expires_at))
