from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, get_transitions, get_user, unwrap
from ..models import User
from ..resolver import resolve_guardian_memberships
from ..schemas import AthleteMembership, LinkRequestCreate, LinkRequestOut, ReasonPayload
from ..transitions import TransitionService

router = APIRouter()


@router.get("/api/guardians/children/club-status", response_model=list[AthleteMembership])
def children_club_status(db: Session = Depends(get_db), user: User = Depends(get_user)):
    return unwrap(resolve_guardian_memberships(db, user.id))


@router.post("/api/guardians/link-requests", response_model=LinkRequestOut)
def request_link(
    payload: LinkRequestCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.request_link(db, user.id, payload.athlete_id, payload.notes))


@router.post("/api/guardians/link-requests/{request_id}/approve", response_model=LinkRequestOut)
def approve_link(
    request_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.approve_link(db, request_id, user.id))


@router.post("/api/guardians/link-requests/{request_id}/reject", response_model=LinkRequestOut)
def reject_link(
    request_id: int,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.reject_link(db, request_id, user.id, payload.reason))
