from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .cascade import RevocationCascade
from .db import get_session
from .errors import ErrorKind, Result
from .models import User
from .notifications import LoggingNotifier
from .transitions import TransitionService

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_MEMBER: 409,
    ErrorKind.NOT_A_MEMBER: 409,
    ErrorKind.DUPLICATE_PENDING: 409,
    ErrorKind.NOT_PENDING: 409,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.PERSISTENCE_FAILURE: 503,
}


def get_db():
    with get_session() as session:
        yield session


@lru_cache
def get_transitions() -> TransitionService:
    notifier = LoggingNotifier()
    return TransitionService(notifier=notifier, cascade=RevocationCascade(notifier=notifier))


def get_cascade(transitions: TransitionService = Depends(get_transitions)) -> RevocationCascade:
    return transitions.cascade


def get_user(
    x_user_id: int | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="User header missing")
    user = db.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def unwrap(result: Result):
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=STATUS_BY_KIND[result.error.kind],
        detail={"kind": result.error.kind.value, "message": result.error.message},
    )
