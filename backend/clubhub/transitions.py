"""The only writer of membership pointers, request states and audit entries.

Every public operation takes the caller's ``Session`` and runs as a single
transaction on it (see ``unit_of_work.transactional``). Invariants are
re-checked inside that transaction, under a row lock on the user where the
backend supports one, right before the write; the partial unique indexes on
PENDING rows back them up at the storage layer.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import audit, ledger
from .cascade import RevocationCascade
from .errors import ErrorKind, Result
from .ledger import RequestKind
from .logging_config import get_logger
from .models import Athlete, AuditAction, Club, RequestStatus, User
from .notifications import EventKind, LoggingNotifier, Notification, Notifier
from .resolver import derive_membership
from .schemas import IdentityChangeOut, JoinRequestOut, LinkRequestOut, MembershipStatus
from .unit_of_work import transactional

logger = get_logger(__name__)


def _locked_user(db: Session, user_id: int) -> Optional[User]:
    return db.execute(select(User).where(User.id == user_id).with_for_update()).scalar_one_or_none()


def _athlete_for_user(db: Session, user_id: int) -> Optional[Athlete]:
    return db.execute(select(Athlete).where(Athlete.user_id == user_id)).scalar_one_or_none()


def _append_note(notes: Optional[str], label: str, text: Optional[str]) -> Optional[str]:
    if not text:
        return notes
    return f"{notes}\n\n{label}: {text}" if notes else f"{label}: {text}"


def mask_identity(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return "*" * max(len(value) - 4, 0) + value[-4:]


class TransitionService:
    def __init__(self, notifier: Optional[Notifier] = None, cascade: Optional[RevocationCascade] = None):
        self.notifier = notifier or LoggingNotifier()
        self.cascade = cascade or RevocationCascade(notifier=self.notifier)

    # Club membership

    @transactional
    def request_join(self, db: Session, outbox: list[Notification], user_id: int, club_id: int) -> Result[MembershipStatus]:
        user = _locked_user(db, user_id)
        if not user:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} not found")
        club = db.get(Club, club_id)
        if not club:
            return Result.fail(ErrorKind.NOT_FOUND, f"Club {club_id} not found")

        if user.club_id is not None:
            if user.club_id == club_id:
                # Already in this club: nothing to request
                return Result.success(derive_membership(db, user.id, user.club_id))
            return Result.fail(ErrorKind.ALREADY_MEMBER, "Already a member of another club; leave it first")

        refused = ledger.ensure_no_pending(db, RequestKind.CLUB_JOIN, user.id)
        if refused:
            return refused

        request = ledger.create_join_request(db, user.id, club.id, role=user.role, notes="Requested via profile")
        db.flush()

        if club.owner_id:
            outbox.append(
                Notification(
                    club.owner_id,
                    EventKind.CLUB_JOIN_REQUESTED,
                    {"requestId": request.id, "clubId": club.id, "clubName": club.name, "requester": user.name},
                )
            )
        return Result.success(derive_membership(db, user.id, None))

    @transactional
    def approve_join(
        self,
        db: Session,
        outbox: list[Notification],
        request_id: int,
        actor_id: int,
        actor_role: Optional[str] = None,
    ) -> Result[JoinRequestOut]:
        ref = ledger.get_request(db, RequestKind.CLUB_JOIN, request_id, for_update=True)
        refused = ledger.ensure_pending(ref) or ledger.ensure_owner(ref, actor_id, actor_role)
        if refused:
            return refused

        user = _locked_user(db, ref.requester_id)
        if not user:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {ref.requester_id} not found")
        if user.club_id is not None and user.club_id != ref.target_id:
            return Result.fail(ErrorKind.ALREADY_MEMBER, f"User {user.id} already belongs to club {user.club_id}")

        request = ref.row
        request.status = RequestStatus.APPROVED
        user.club_id = ref.target_id
        athlete = _athlete_for_user(db, user.id)
        if athlete:
            athlete.club_id = ref.target_id

        audit.append(
            db,
            user_id=user.id,
            action=AuditAction.JOIN_APPROVED,
            entity="Club",
            entity_id=ref.target_id,
            new_values={"clubId": ref.target_id, "requestId": request.id},
            metadata={"approvedBy": actor_id},
        )
        db.flush()

        outbox.append(
            Notification(user.id, EventKind.CLUB_JOIN_APPROVED, {"requestId": request.id, "clubId": ref.target_id})
        )
        return Result.success(JoinRequestOut.model_validate(request))

    @transactional
    def reject_join(
        self,
        db: Session,
        outbox: list[Notification],
        request_id: int,
        actor_id: int,
        actor_role: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Result[JoinRequestOut]:
        ref = ledger.get_request(db, RequestKind.CLUB_JOIN, request_id, for_update=True)
        refused = ledger.ensure_pending(ref) or ledger.ensure_owner(ref, actor_id, actor_role)
        if refused:
            return refused

        request = ref.row
        request.status = RequestStatus.REJECTED
        request.notes = _append_note(request.notes, "Rejection reason", reason)
        audit.append(
            db,
            user_id=ref.requester_id,
            action=AuditAction.JOIN_REJECTED,
            entity="Club",
            entity_id=ref.target_id,
            new_values={"requestId": request.id},
            metadata={"rejectedBy": actor_id, "reason": reason},
        )
        db.flush()

        outbox.append(
            Notification(
                ref.requester_id,
                EventKind.CLUB_JOIN_REJECTED,
                {"requestId": request.id, "clubId": ref.target_id, "reason": reason},
            )
        )
        return Result.success(JoinRequestOut.model_validate(request))

    @transactional
    def leave_club(
        self, db: Session, outbox: list[Notification], user_id: int, reason: Optional[str] = None
    ) -> Result[MembershipStatus]:
        user = _locked_user(db, user_id)
        if not user:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} not found")
        if user.club_id is None:
            return Result.fail(ErrorKind.NOT_A_MEMBER, "Not currently a member of any club")

        previous_club_id = user.club_id
        club = db.get(Club, previous_club_id)
        club_name = club.name if club else None

        user.club_id = None
        athlete = _athlete_for_user(db, user.id)
        if athlete:
            athlete.club_id = None

        # Leaving mutates no ledger row; this entry is the only trace of it
        audit.append(
            db,
            user_id=user.id,
            action=AuditAction.MEMBER_LEFT,
            entity="Club",
            entity_id=previous_club_id,
            old_values={"clubId": previous_club_id, "clubName": club_name},
            new_values={"clubId": None},
            metadata={"leaveReason": reason or "Voluntary resignation", "memberName": user.name},
        )
        db.flush()

        if club and club.owner_id:
            outbox.append(
                Notification(
                    club.owner_id,
                    EventKind.MEMBER_LEFT,
                    {"userId": user.id, "memberName": user.name, "clubId": previous_club_id, "reason": reason},
                )
            )
        return Result.success(derive_membership(db, user.id, None))

    # Guardian links

    @transactional
    def request_link(
        self,
        db: Session,
        outbox: list[Notification],
        parent_user_id: int,
        athlete_id: int,
        notes: Optional[str] = None,
    ) -> Result[LinkRequestOut]:
        parent = db.get(User, parent_user_id)
        if not parent:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {parent_user_id} not found")
        athlete = db.get(Athlete, athlete_id)
        if not athlete:
            return Result.fail(ErrorKind.NOT_FOUND, f"Athlete {athlete_id} not found")

        # Pending requests from other guardians for the same athlete are allowed
        refused = ledger.ensure_no_pending(db, RequestKind.INTEGRATION_LINK, parent.id, athlete.id)
        if refused:
            return refused

        request = ledger.create_link_request(db, parent.id, athlete.id, notes=notes)
        db.flush()

        outbox.append(
            Notification(
                athlete.user_id,
                EventKind.GUARDIAN_LINK_REQUESTED,
                {"requestId": request.id, "guardianId": parent.id, "guardianName": parent.name},
            )
        )
        return Result.success(LinkRequestOut.model_validate(request))

    def approve_link(self, db: Session, request_id: int, approver_user_id: int) -> Result[LinkRequestOut]:
        result = self._approve_link(db, request_id, approver_user_id)
        if result.ok:
            self._backfill_emergency_contact(db, result.value.target_entity_id, approver_user_id)
        return result

    @transactional
    def _approve_link(
        self, db: Session, outbox: list[Notification], request_id: int, approver_user_id: int
    ) -> Result[LinkRequestOut]:
        ref = ledger.get_request(db, RequestKind.INTEGRATION_LINK, request_id, for_update=True)
        refused = ledger.ensure_pending(ref) or ledger.ensure_owner(ref, approver_user_id)
        if refused:
            return refused

        athlete = db.get(Athlete, ref.target_id)
        if not athlete:
            return Result.fail(ErrorKind.NOT_FOUND, f"Athlete {ref.target_id} not found")

        previous_parent_id = athlete.parent_id
        if previous_parent_id is not None and previous_parent_id != approver_user_id:
            logger.warning(
                "Athlete %s guardian changes from user %s to user %s",
                athlete.id,
                previous_parent_id,
                approver_user_id,
            )
            audit.append(
                db,
                user_id=approver_user_id,
                action=AuditAction.GUARDIAN_REPLACED,
                entity="Athlete",
                entity_id=athlete.id,
                old_values={"parentId": previous_parent_id},
                new_values={"parentId": approver_user_id},
                metadata={"requestId": ref.id},
            )

        athlete.parent_id = approver_user_id
        request = ref.row
        request.status = RequestStatus.APPROVED
        audit.append(
            db,
            user_id=approver_user_id,
            action=AuditAction.LINK_APPROVED,
            entity="Athlete",
            entity_id=athlete.id,
            new_values={"parentId": approver_user_id, "requestId": ref.id},
        )
        db.flush()

        outbox.append(
            Notification(
                athlete.user_id,
                EventKind.GUARDIAN_LINK_APPROVED,
                {"requestId": ref.id, "guardianId": approver_user_id},
            )
        )
        return Result.success(LinkRequestOut.model_validate(request))

    def _backfill_emergency_contact(self, db: Session, athlete_id: int, guardian_id: int) -> None:
        """Copy the guardian's name/phone into empty emergency-contact fields.

        Best effort: runs after the link has committed and never fails it.
        """
        try:
            athlete = db.get(Athlete, athlete_id)
            guardian = db.get(User, guardian_id)
            if not athlete or not guardian:
                return
            if athlete.emergency_contact and athlete.emergency_phone:
                return
            athlete.emergency_contact = athlete.emergency_contact or guardian.name
            athlete.emergency_phone = athlete.emergency_phone or guardian.phone
            db.commit()
        except Exception:
            db.rollback()
            logger.warning("Emergency contact backfill failed for athlete %s", athlete_id, exc_info=True)

    @transactional
    def reject_link(
        self,
        db: Session,
        outbox: list[Notification],
        request_id: int,
        actor_user_id: int,
        reason: Optional[str] = None,
    ) -> Result[LinkRequestOut]:
        ref = ledger.get_request(db, RequestKind.INTEGRATION_LINK, request_id, for_update=True)
        refused = ledger.ensure_pending(ref) or ledger.ensure_owner(ref, actor_user_id)
        if refused:
            return refused

        request = ref.row
        request.status = RequestStatus.REJECTED
        request.notes = _append_note(request.notes, "Decision feedback", reason)
        audit.append(
            db,
            user_id=actor_user_id,
            action=AuditAction.LINK_REJECTED,
            entity="Athlete",
            entity_id=ref.target_id,
            new_values={"requestId": ref.id},
            metadata={"reason": reason},
        )
        db.flush()

        athlete = db.get(Athlete, ref.target_id)
        if athlete:
            outbox.append(
                Notification(athlete.user_id, EventKind.GUARDIAN_LINK_REJECTED, {"requestId": ref.id, "reason": reason})
            )
        return Result.success(LinkRequestOut.model_validate(request))

    # Identity data

    @transactional
    def update_identity_number(
        self, db: Session, outbox: list[Notification], user_id: int, identity_number: str
    ) -> Result[IdentityChangeOut]:
        user = _locked_user(db, user_id)
        if not user:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} not found")

        new_value = identity_number.strip()
        if user.identity_number == new_value:
            return Result.success(IdentityChangeOut(user_id=user.id, changed=False, revoked_grants=0))

        old_value = user.identity_number
        user.identity_number = new_value
        user.identity_verified = False

        revoked = self.cascade.revoke_all(db, user.id)
        audit.append(
            db,
            user_id=user.id,
            action=AuditAction.IDENTITY_NUMBER_CHANGED,
            entity="User",
            entity_id=user.id,
            old_values={"identityNumber": mask_identity(old_value)},
            new_values={"identityNumber": mask_identity(new_value)},
        )
        if revoked:
            audit.append(
                db,
                user_id=user.id,
                action=AuditAction.GRANTS_REVOKED,
                entity="EntityIntegration",
                old_values={"status": RequestStatus.APPROVED},
                new_values={"status": RequestStatus.REVOKED, "count": revoked},
                metadata={"trigger": AuditAction.IDENTITY_NUMBER_CHANGED},
            )
            outbox.append(Notification(user.id, EventKind.GRANTS_REVOKED, {"count": revoked}))
        db.flush()

        logger.info("Identity number changed for user %s; %s grant(s) revoked", user.id, revoked)
        return Result.success(IdentityChangeOut(user_id=user.id, changed=True, revoked_grants=revoked))
