from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, get_transitions, get_user, unwrap
from ..models import User
from ..resolver import club_join_queue
from ..schemas import JoinQueueEntry, JoinRequestOut, ReasonPayload
from ..transitions import TransitionService

router = APIRouter()


@router.get("/api/clubs/{club_id}/requests", response_model=list[JoinQueueEntry])
def pending_join_requests(club_id: int, db: Session = Depends(get_db), user: User = Depends(get_user)):
    return unwrap(club_join_queue(db, club_id, user.id, user.role))


@router.post("/api/clubs/requests/{request_id}/approve", response_model=JoinRequestOut)
def approve_join_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(transitions.approve_join(db, request_id, actor_id=user.id, actor_role=user.role))


@router.post("/api/clubs/requests/{request_id}/reject", response_model=JoinRequestOut)
def reject_join_request(
    request_id: int,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    transitions: TransitionService = Depends(get_transitions),
):
    return unwrap(
        transitions.reject_join(db, request_id, reason=payload.reason, actor_id=user.id, actor_role=user.role)
    )
