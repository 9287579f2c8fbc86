from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, get_transitions, get_user, unwrap
from ..models import User
from ..resolver import club_history, resolve_membership
from ..schemas import (
    ClubHistoryEntry,
    IdentityChangeOut,
    IdentityNumberUpdate,
    JoinClubRequest,
    MembershipStatus,
    ReasonPayload,
)
from ..transitions import TransitionService

router = APIRouter()


@router.get("/api/profile/club-status", response_model=MembershipStatus)
def club_status(db: Session = Depends(get_db), user: User = Depends(get_user)):
    return unwrap(resolve_membership(db, user.id))


@router.get("/api/profile/club-history", response_model=list[ClubHistoryEntry])
def my_club_history(db: Session = Depends(get_db), user: User = Depends(get_user)):
    return club_history(db, user.id)


@router.post("/api/profile/join-club", response_model=MembershipStatus)
def join_club(
    payload: JoinClubRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.request_join(db, user.id, payload.club_id))


@router.post("/api/profile/leave-club", response_model=MembershipStatus)
def leave_club(
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.leave_club(db, user.id, payload.reason))


@router.put("/api/profile/identity-number", response_model=IdentityChangeOut)
def update_identity_number(
    payload: IdentityNumberUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.update_identity_number(db, user.id, payload.identity_number))
