"""Mutable request records: club-join requests and integration (guardian-link) requests.

Both kinds share one shape (``RequestRef``) so the invariant checks in this
module are written once; only the approval side effects differ per kind.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import ErrorKind, Result
from .models import Club, ClubJoinRequest, EntityIntegrationRequest, RequestStatus

ADMIN_ROLE = "SUPER_ADMIN"


class RequestKind(str, Enum):
    CLUB_JOIN = "CLUB_JOIN"
    INTEGRATION_LINK = "INTEGRATION_LINK"


LedgerRow = Union[ClubJoinRequest, EntityIntegrationRequest]


@dataclass(frozen=True)
class RequestRef:
    kind: RequestKind
    id: int
    requester_id: int
    status: str
    target_id: int
    # User allowed to decide on the request
    owner_id: Optional[int]
    row: LedgerRow


def _model(kind: RequestKind):
    return ClubJoinRequest if kind is RequestKind.CLUB_JOIN else EntityIntegrationRequest


def to_ref(db: Session, kind: RequestKind, row: LedgerRow) -> RequestRef:
    if kind is RequestKind.CLUB_JOIN:
        club = db.get(Club, row.club_id)
        return RequestRef(
            kind=kind,
            id=row.id,
            requester_id=row.user_id,
            status=row.status,
            target_id=row.club_id,
            owner_id=club.owner_id if club else None,
            row=row,
        )
    return RequestRef(
        kind=kind,
        id=row.id,
        requester_id=row.user_id,
        status=row.status,
        target_id=row.target_entity_id,
        owner_id=row.user_id,
        row=row,
    )


def get_request(db: Session, kind: RequestKind, request_id: int, for_update: bool = False) -> Optional[RequestRef]:
    model = _model(kind)
    stmt = select(model).where(model.id == request_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = db.execute(stmt).scalar_one_or_none()
    if row is None:
        return None
    return to_ref(db, kind, row)


def find_pending(db: Session, kind: RequestKind, requester_id: int, target_id: Optional[int] = None) -> Optional[LedgerRow]:
    model = _model(kind)
    stmt = select(model).where(model.user_id == requester_id, model.status == RequestStatus.PENDING)
    # Club joins allow one pending row per user; links one per (user, target) pair
    if kind is RequestKind.INTEGRATION_LINK and target_id is not None:
        stmt = stmt.where(model.target_entity_id == target_id)
    return db.execute(stmt.order_by(model.created_at.desc()).limit(1)).scalars().first()


def ensure_no_pending(db: Session, kind: RequestKind, requester_id: int, target_id: Optional[int] = None) -> Optional[Result]:
    if find_pending(db, kind, requester_id, target_id) is not None:
        return Result.fail(ErrorKind.DUPLICATE_PENDING, "A pending request already exists")
    return None


def ensure_pending(ref: Optional[RequestRef]) -> Optional[Result]:
    if ref is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Request not found")
    if ref.status != RequestStatus.PENDING:
        return Result.fail(ErrorKind.NOT_PENDING, f"Request {ref.id} is {ref.status}, not PENDING")
    return None


def ensure_owner(ref: RequestRef, actor_id: int, actor_role: Optional[str] = None) -> Optional[Result]:
    """Only the request owner or an administrator may decide on a request."""
    if actor_role == ADMIN_ROLE:
        return None
    if ref.owner_id is None or ref.owner_id != actor_id:
        return Result.fail(ErrorKind.UNAUTHORIZED, f"User {actor_id} may not decide on request {ref.id}")
    return None


def create_join_request(db: Session, user_id: int, club_id: int, role: str, notes: Optional[str] = None) -> ClubJoinRequest:
    request = ClubJoinRequest(
        user_id=user_id,
        club_id=club_id,
        role=role,
        status=RequestStatus.PENDING,
        notes=notes,
    )
    db.add(request)
    return request


def create_link_request(
    db: Session,
    user_id: int,
    target_entity_id: int,
    target_entity_type: str = "ATHLETE",
    notes: Optional[str] = None,
) -> EntityIntegrationRequest:
    request = EntityIntegrationRequest(
        user_id=user_id,
        target_entity_type=target_entity_type,
        target_entity_id=target_entity_id,
        requested_role="PARENT",
        status=RequestStatus.PENDING,
        notes=notes,
    )
    db.add(request)
    return request


def approved_joins(db: Session, user_id: int) -> list[ClubJoinRequest]:
    return list(
        db.execute(
            select(ClubJoinRequest)
            .where(ClubJoinRequest.user_id == user_id, ClubJoinRequest.status == RequestStatus.APPROVED)
            .order_by(ClubJoinRequest.updated_at.desc(), ClubJoinRequest.id.desc())
        )
        .scalars()
        .all()
    )


def latest_approved_join(db: Session, user_id: int) -> Optional[ClubJoinRequest]:
    return (
        db.execute(
            select(ClubJoinRequest)
            .where(ClubJoinRequest.user_id == user_id, ClubJoinRequest.status == RequestStatus.APPROVED)
            .order_by(ClubJoinRequest.updated_at.desc(), ClubJoinRequest.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def grants_for(db: Session, user_id: int, statuses: tuple[str, ...]) -> list[EntityIntegrationRequest]:
    return list(
        db.execute(
            select(EntityIntegrationRequest)
            .where(
                EntityIntegrationRequest.user_id == user_id,
                EntityIntegrationRequest.status.in_(statuses),
            )
            .order_by(EntityIntegrationRequest.updated_at.desc(), EntityIntegrationRequest.id.desc())
        )
        .scalars()
        .all()
    )


def pending_joins_for_club(db: Session, club_id: int) -> list[ClubJoinRequest]:
    return list(
        db.execute(
            select(ClubJoinRequest)
            .where(ClubJoinRequest.club_id == club_id, ClubJoinRequest.status == RequestStatus.PENDING)
            .order_by(ClubJoinRequest.created_at.desc(), ClubJoinRequest.id.desc())
        )
        .scalars()
        .all()
    )


def integration_requests(
    db: Session,
    user_id: Optional[int] = None,
    target_entity_ids: Optional[list[int]] = None,
    target_entity_type: str = "ATHLETE",
) -> list[EntityIntegrationRequest]:
    """Requests sent by ``user_id`` or addressed to any of ``target_entity_ids``."""
    stmt = select(EntityIntegrationRequest)
    if user_id is not None:
        stmt = stmt.where(EntityIntegrationRequest.user_id == user_id)
    if target_entity_ids is not None:
        if not target_entity_ids:
            return []
        stmt = stmt.where(
            EntityIntegrationRequest.target_entity_type == target_entity_type,
            EntityIntegrationRequest.target_entity_id.in_(target_entity_ids),
        )
    stmt = stmt.order_by(EntityIntegrationRequest.created_at.desc(), EntityIntegrationRequest.id.desc())
    return list(db.execute(stmt).scalars().all())
