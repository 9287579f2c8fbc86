from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class ClubRef(BaseModel):
    id: int
    name: str
    city: Optional[str] = None


class PendingRequestOut(BaseModel):
    id: int
    club: ClubRef
    created_at: datetime
    updated_at: datetime


class MembershipStatus(BaseModel):
    status: Literal["NO_CLUB", "PENDING", "MEMBER", "LEFT"]
    club: Optional[ClubRef] = None
    pending_request: Optional[PendingRequestOut] = None
    left_at: Optional[datetime] = None
    last_club: Optional[ClubRef] = None


class AthleteMembership(BaseModel):
    athlete_id: int
    user_id: int
    name: str
    membership: MembershipStatus


class ClubHistoryEntry(BaseModel):
    request_id: int
    club: ClubRef
    joined_at: datetime


class JoinRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    club_id: int
    role: str
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class JoinQueueEntry(JoinRequestOut):
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None


class LinkRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    target_entity_type: str
    target_entity_id: int
    status: str
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class GrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    target_entity_type: str
    target_entity_id: int
    status: str
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class IdentityChangeOut(BaseModel):
    user_id: int
    changed: bool
    revoked_grants: int


class ReapprovalOut(BaseModel):
    user_id: int
    reapproved_grants: int
    expires_at: Optional[datetime] = None


class JoinClubRequest(BaseModel):
    club_id: int


class ReasonPayload(BaseModel):
    reason: Optional[str] = None


class LinkRequestCreate(BaseModel):
    athlete_id: int
    notes: Optional[str] = None


# Ten years
MAX_GRANT_TTL_DAYS = 3650


class ReapprovePayload(BaseModel):
    expires_in_days: Optional[int] = None

    @field_validator("expires_in_days")
    @classmethod
    def must_be_in_range(cls, value: Optional[int]):
        if value is not None and value < 0:
            raise ValueError("expires_in_days must not be negative")
        if value is not None and value > MAX_GRANT_TTL_DAYS:
            raise ValueError(f"expires_in_days must not exceed {MAX_GRANT_TTL_DAYS}")
        return value


class IdentityNumberUpdate(BaseModel):
    identity_number: str

    @field_validator("identity_number")
    @classmethod
    def must_not_be_empty(cls, value: str):
        cleaned = value.strip() if isinstance(value, str) else ""
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned
