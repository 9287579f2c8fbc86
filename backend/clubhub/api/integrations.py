from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..cascade import RevocationCascade
from ..deps import get_cascade, get_db, get_user, unwrap
from ..models import User
from ..resolver import integration_requests, resolve_integration_grants
from ..schemas import GrantOut, LinkRequestOut, ReapprovalOut, ReapprovePayload

router = APIRouter()


@router.get("/api/integrations/grants", response_model=list[GrantOut])
def my_grants(db: Session = Depends(get_db), user: User = Depends(get_user)):
    return resolve_integration_grants(db, user.id)


@router.post("/api/integrations/grants/reapprove", response_model=ReapprovalOut)
def reapprove_grants(
    payload: ReapprovePayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
    cascade: RevocationCascade = Depends(get_cascade),
):
    return unwrap(cascade.reapprove_all(db, user.id, payload.expires_in_days))


@router.get("/api/integrations/requests", response_model=list[LinkRequestOut])
def my_integration_requests(
    direction: Literal["sent", "received"] = Query("sent", alias="type"),
    db: Session = Depends(get_db),
    user: User = Depends(get_user),
):
    return integration_requests(db, user.id, direction)
