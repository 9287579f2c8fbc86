"""Derives current relationship state from persisted rows.

Nothing here writes or caches: the membership status is recomputed on every
call from the user's club pointer, the request ledger and the audit trail.
"""
from datetime import datetime
from typing import Literal, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from . import audit, ledger
from .errors import ErrorKind, Result
from .ledger import RequestKind
from .models import Athlete, AuditAction, Club, EntityIntegrationRequest, RequestStatus, User, utcnow
from .schemas import (
    AthleteMembership,
    ClubHistoryEntry,
    ClubRef,
    GrantOut,
    JoinQueueEntry,
    JoinRequestOut,
    LinkRequestOut,
    MembershipStatus,
    PendingRequestOut,
)


def club_ref(db: Session, club_id: Optional[int]) -> Optional[ClubRef]:
    if club_id is None:
        return None
    club = db.get(Club, club_id)
    if not club:
        return None
    return ClubRef(id=club.id, name=club.name, city=club.city)


def derive_membership(db: Session, user_id: int, pointer_club_id: Optional[int]) -> MembershipStatus:
    """Apply the precedence MEMBER > PENDING > LEFT > NO_CLUB for one account.

    ``pointer_club_id`` is the account's direct club pointer (``User.club_id``
    or, for a managed athlete, ``Athlete.club_id``).
    """
    if pointer_club_id is not None:
        return MembershipStatus(status="MEMBER", club=club_ref(db, pointer_club_id))

    pending = ledger.find_pending(db, RequestKind.CLUB_JOIN, user_id)
    if pending is not None:
        return MembershipStatus(
            status="PENDING",
            pending_request=PendingRequestOut(
                id=pending.id,
                club=club_ref(db, pending.club_id) or ClubRef(id=pending.club_id, name=""),
                created_at=pending.created_at,
                updated_at=pending.updated_at,
            ),
        )

    left = audit.latest(db, user_id, AuditAction.MEMBER_LEFT)
    approved = ledger.latest_approved_join(db, user_id)
    if left is None and approved is None:
        return MembershipStatus(status="NO_CLUB")

    # Whichever source holds the most recent event decides; a leave recorded at
    # the same instant as an approval is taken to follow it.
    if left is not None and (approved is None or left.created_at >= approved.updated_at):
        last_club = club_ref(db, left.entity_id) or club_ref(db, approved.club_id if approved else None)
        return MembershipStatus(status="LEFT", left_at=left.created_at, last_club=last_club)

    # Approval with no pointer and no later leave: departure is implied but undated
    return MembershipStatus(status="LEFT", left_at=None, last_club=club_ref(db, approved.club_id))


def resolve_membership(db: Session, user_id: int) -> Result[MembershipStatus]:
    user = db.get(User, user_id)
    if not user:
        return Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} not found")
    return Result.success(derive_membership(db, user.id, user.club_id))


def resolve_guardian_memberships(db: Session, guardian_user_id: int) -> Result[list[AthleteMembership]]:
    guardian = db.get(User, guardian_user_id)
    if not guardian:
        return Result.fail(ErrorKind.NOT_FOUND, f"User {guardian_user_id} not found")

    rows = db.execute(
        select(Athlete, User)
        .join(User, User.id == Athlete.user_id)
        .where(Athlete.parent_id == guardian_user_id)
        .order_by(Athlete.id.asc())
    ).all()
    return Result.success(
        [
            AthleteMembership(
                athlete_id=athlete.id,
                user_id=child.id,
                name=child.name,
                membership=derive_membership(db, child.id, athlete.club_id),
            )
            for athlete, child in rows
        ]
    )


def resolve_integration_grants(db: Session, user_id: int) -> list[GrantOut]:
    grants = ledger.grants_for(db, user_id, (RequestStatus.APPROVED, RequestStatus.REVOKED))
    return [GrantOut.model_validate(grant) for grant in grants]


def has_active_grant(db: Session, user_id: int, target_entity_id: int, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    # Any unexpired APPROVED row for the pair counts
    active = (
        select(EntityIntegrationRequest.id)
        .where(
            EntityIntegrationRequest.user_id == user_id,
            EntityIntegrationRequest.target_entity_id == target_entity_id,
            EntityIntegrationRequest.status == RequestStatus.APPROVED,
            or_(EntityIntegrationRequest.expires_at.is_(None), EntityIntegrationRequest.expires_at > now),
        )
        .exists()
    )
    return bool(db.execute(select(active)).scalar())


def club_history(db: Session, user_id: int) -> list[ClubHistoryEntry]:
    history = []
    for request in ledger.approved_joins(db, user_id):
        club = club_ref(db, request.club_id)
        if club is None:
            continue
        # Approval time is the join time
        history.append(ClubHistoryEntry(request_id=request.id, club=club, joined_at=request.updated_at))
    return history


def club_join_queue(
    db: Session, club_id: int, actor_id: int, actor_role: Optional[str] = None
) -> Result[list[JoinQueueEntry]]:
    """PENDING join requests for a club, newest first. Visible to its owner and administrators."""
    club = db.get(Club, club_id)
    if not club:
        return Result.fail(ErrorKind.NOT_FOUND, f"Club {club_id} not found")
    if actor_role != ledger.ADMIN_ROLE and club.owner_id != actor_id:
        return Result.fail(ErrorKind.UNAUTHORIZED, f"User {actor_id} does not manage club {club_id}")

    queue = []
    for request in ledger.pending_joins_for_club(db, club.id):
        requester = db.get(User, request.user_id)
        queue.append(
            JoinQueueEntry(
                **JoinRequestOut.model_validate(request).model_dump(),
                requester_name=requester.name if requester else None,
                requester_email=requester.email if requester else None,
            )
        )
    return Result.success(queue)


def integration_requests(
    db: Session, user_id: int, direction: Literal["sent", "received"] = "sent"
) -> list[LinkRequestOut]:
    if direction == "sent":
        rows = ledger.integration_requests(db, user_id=user_id)
    else:
        # Received: addressed to the athlete profile this account owns
        athlete_ids = list(db.execute(select(Athlete.id).where(Athlete.user_id == user_id)).scalars())
        rows = ledger.integration_requests(db, target_entity_ids=athlete_ids)
    return [LinkRequestOut.model_validate(row) for row in rows]
