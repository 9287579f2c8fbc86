from datetime import datetime, timedelta

from sqlalchemy.orm import sessionmaker

from clubhub import audit
from clubhub.db import make_engine
from clubhub.errors import ErrorKind
from clubhub.models import (
    AuditAction,
    ClubJoinRequest,
    EntityIntegrationRequest,
    RequestStatus,
)
from clubhub.resolver import (
    club_history,
    club_join_queue,
    has_active_grant,
    integration_requests,
    resolve_guardian_memberships,
    resolve_integration_grants,
    resolve_membership,
)

from factories import make_athlete, make_club, make_user

T0 = datetime(2026, 1, 10, 9, 0, 0)


def add_join_request(db, user, club, status, at):
    request = ClubJoinRequest(
        user_id=user.id,
        club_id=club.id,
        role="ATHLETE",
        status=status,
        created_at=at,
        updated_at=at,
    )
    db.add(request)
    db.flush()
    return request


def add_left_entry(db, user, club, at):
    entry = audit.append(
        db,
        user_id=user.id,
        action=AuditAction.MEMBER_LEFT,
        entity="Club",
        entity_id=club.id,
        old_values={"clubId": club.id, "clubName": club.name},
    )
    entry.created_at = at
    db.flush()
    return entry


def test_unknown_user_is_not_found(db):
    result = resolve_membership(db, 9999)
    assert result.kind is ErrorKind.NOT_FOUND


def test_no_history_means_no_club(db):
    user = make_user(db)
    db.commit()
    status = resolve_membership(db, user.id).value
    assert status.status == "NO_CLUB"
    assert status.club is None and status.last_club is None


def test_pointer_wins_over_everything(db):
    club = make_club(db, name="Pointer Club")
    other = make_club(db)
    user = make_user(db, club_id=club.id)
    add_join_request(db, user, other, RequestStatus.PENDING, T0)
    add_left_entry(db, user, other, T0 + timedelta(days=1))
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "MEMBER"
    assert status.club.id == club.id
    assert status.club.name == "Pointer Club"


def test_pending_request_beats_history(db):
    old_club = make_club(db)
    wanted = make_club(db, name="Wanted")
    user = make_user(db)
    add_join_request(db, user, old_club, RequestStatus.APPROVED, T0)
    add_left_entry(db, user, old_club, T0 + timedelta(days=1))
    pending = add_join_request(db, user, wanted, RequestStatus.PENDING, T0 + timedelta(days=2))
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "PENDING"
    assert status.pending_request.id == pending.id
    assert status.pending_request.club.name == "Wanted"
    assert status.pending_request.created_at == T0 + timedelta(days=2)


def test_rejected_requests_alone_mean_no_club(db):
    club = make_club(db)
    user = make_user(db)
    add_join_request(db, user, club, RequestStatus.REJECTED, T0)
    db.commit()
    assert resolve_membership(db, user.id).value.status == "NO_CLUB"


def test_left_after_approval_uses_leave_timestamp(db):
    club = make_club(db, name="First Club")
    user = make_user(db)
    add_join_request(db, user, club, RequestStatus.APPROVED, T0)
    add_left_entry(db, user, club, T0 + timedelta(days=30))
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "LEFT"
    assert status.left_at == T0 + timedelta(days=30)
    assert status.last_club.name == "First Club"


def test_approval_without_pointer_or_leave_implies_undated_departure(db):
    club = make_club(db, name="Old Club")
    user = make_user(db)
    add_join_request(db, user, club, RequestStatus.APPROVED, T0)
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "LEFT"
    assert status.left_at is None
    assert status.last_club.name == "Old Club"


def test_leave_entry_without_approval_still_means_left(db):
    club = make_club(db, name="Integrated Club")
    user = make_user(db)
    add_left_entry(db, user, club, T0)
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "LEFT"
    assert status.left_at == T0
    assert status.last_club.name == "Integrated Club"


def test_newer_approval_outranks_older_leave(db):
    first = make_club(db, name="First")
    second = make_club(db, name="Second")
    user = make_user(db)
    add_join_request(db, user, first, RequestStatus.APPROVED, T0)
    add_left_entry(db, user, first, T0 + timedelta(days=1))
    # Approved again later but the pointer was never set
    add_join_request(db, user, second, RequestStatus.APPROVED, T0 + timedelta(days=5))
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "LEFT"
    assert status.last_club.name == "Second"
    # The only leave on record predates the newest approval
    assert status.left_at is None


def test_newer_leave_outranks_older_approval(db):
    first = make_club(db, name="First")
    second = make_club(db, name="Second")
    user = make_user(db)
    add_join_request(db, user, first, RequestStatus.APPROVED, T0)
    add_join_request(db, user, second, RequestStatus.APPROVED, T0 + timedelta(days=3))
    add_left_entry(db, user, second, T0 + timedelta(days=9))
    db.commit()

    status = resolve_membership(db, user.id).value
    assert status.status == "LEFT"
    assert status.left_at == T0 + timedelta(days=9)
    assert status.last_club.name == "Second"


def test_state_is_rebuilt_from_rows_after_restart(engine, db, tmp_path):
    club = make_club(db, name="Durable Club")
    user = make_user(db)
    add_join_request(db, user, club, RequestStatus.APPROVED, T0)
    add_left_entry(db, user, club, T0 + timedelta(days=2))
    db.commit()
    user_id = user.id
    engine.dispose()

    fresh_engine = make_engine(f"sqlite:///{tmp_path / 'clubhub.db'}")
    try:
        with sessionmaker(bind=fresh_engine)() as session:
            status = resolve_membership(session, user_id).value
    finally:
        fresh_engine.dispose()

    assert status.status == "LEFT"
    assert status.last_club.name == "Durable Club"
    assert status.left_at == T0 + timedelta(days=2)


def test_guardian_sees_each_linked_athlete(db):
    club = make_club(db, name="Kids Club")
    guardian = make_user(db, role="PARENT")
    member = make_athlete(db, user=make_user(db, name="Ana", club_id=club.id), parent_id=guardian.id, club_id=club.id)
    waiting_user = make_user(db, name="Budi")
    waiting = make_athlete(db, user=waiting_user, parent_id=guardian.id)
    add_join_request(db, waiting_user, club, RequestStatus.PENDING, T0)
    make_athlete(db, user=make_user(db, name="Not Mine"))
    db.commit()

    children = resolve_guardian_memberships(db, guardian.id).value
    assert [c.athlete_id for c in children] == [member.id, waiting.id]
    assert children[0].name == "Ana"
    assert children[0].membership.status == "MEMBER"
    assert children[1].membership.status == "PENDING"


def test_guardian_lookup_for_unknown_user(db):
    assert resolve_guardian_memberships(db, 4242).kind is ErrorKind.NOT_FOUND


def test_integration_grants_list_approved_and_revoked_only(db):
    user = make_user(db, role="PARENT")
    for target, status in enumerate(
        [RequestStatus.APPROVED, RequestStatus.REVOKED, RequestStatus.PENDING, RequestStatus.REJECTED], start=1
    ):
        db.add(
            EntityIntegrationRequest(
                user_id=user.id,
                target_entity_type="ATHLETE",
                target_entity_id=target,
                status=status,
            )
        )
    db.commit()

    grants = resolve_integration_grants(db, user.id)
    assert sorted(g.status for g in grants) == [RequestStatus.APPROVED, RequestStatus.REVOKED]
    assert {g.target_entity_id for g in grants} == {1, 2}


def test_active_grant_respects_expiry(db):
    user = make_user(db, role="PARENT")
    db.add_all(
        [
            EntityIntegrationRequest(
                user_id=user.id,
                target_entity_type="ATHLETE",
                target_entity_id=1,
                status=RequestStatus.APPROVED,
                expires_at=T0 + timedelta(days=30),
            ),
            EntityIntegrationRequest(
                user_id=user.id,
                target_entity_type="ATHLETE",
                target_entity_id=2,
                status=RequestStatus.REVOKED,
            ),
        ]
    )
    db.commit()

    assert has_active_grant(db, user.id, 1, now=T0) is True
    assert has_active_grant(db, user.id, 1, now=T0 + timedelta(days=31)) is False
    assert has_active_grant(db, user.id, 2, now=T0) is False
    assert has_active_grant(db, user.id, 3, now=T0) is False


def test_club_history_lists_approvals_newest_first(db):
    first = make_club(db, name="First")
    second = make_club(db, name="Second")
    user = make_user(db)
    add_join_request(db, user, first, RequestStatus.APPROVED, T0)
    add_join_request(db, user, second, RequestStatus.APPROVED, T0 + timedelta(days=40))
    add_join_request(db, user, second, RequestStatus.REJECTED, T0 + timedelta(days=20))
    db.commit()

    history = club_history(db, user.id)
    assert [h.club.name for h in history] == ["Second", "First"]
    assert history[0].joined_at == T0 + timedelta(days=40)


def test_active_grant_with_several_approved_rows_for_one_pair(db):
    user = make_user(db, role="PARENT")
    db.add_all(
        [
            EntityIntegrationRequest(
                user_id=user.id,
                target_entity_type="ATHLETE",
                target_entity_id=1,
                status=RequestStatus.APPROVED,
                expires_at=T0 - timedelta(days=1),
            ),
            EntityIntegrationRequest(
                user_id=user.id,
                target_entity_type="ATHLETE",
                target_entity_id=1,
                status=RequestStatus.APPROVED,
                expires_at=T0 + timedelta(days=30),
            ),
        ]
    )
    db.commit()

    assert has_active_grant(db, user.id, 1, now=T0) is True
    assert has_active_grant(db, user.id, 1, now=T0 + timedelta(days=31)) is False


def test_club_join_queue_for_owner(db):
    owner = make_user(db, role="CLUB")
    club = make_club(db, owner=owner)
    other = make_club(db)
    early = make_user(db, name="Early")
    late = make_user(db, name="Late")
    decided = make_user(db)
    elsewhere = make_user(db)
    add_join_request(db, early, club, RequestStatus.PENDING, T0)
    add_join_request(db, late, club, RequestStatus.PENDING, T0 + timedelta(hours=1))
    add_join_request(db, decided, club, RequestStatus.REJECTED, T0)
    add_join_request(db, elsewhere, other, RequestStatus.PENDING, T0)
    db.commit()

    queue = club_join_queue(db, club.id, owner.id, owner.role)

    assert queue.ok
    assert [entry.requester_name for entry in queue.value] == ["Late", "Early"]
    assert all(entry.status == RequestStatus.PENDING for entry in queue.value)


def test_club_join_queue_is_limited_to_owner_and_admin(db):
    club = make_club(db)
    stranger = make_user(db, role="CLUB")
    admin = make_user(db, role="SUPER_ADMIN")
    add_join_request(db, make_user(db), club, RequestStatus.PENDING, T0)
    db.commit()

    assert club_join_queue(db, club.id, stranger.id, stranger.role).kind is ErrorKind.UNAUTHORIZED
    assert len(club_join_queue(db, club.id, admin.id, admin.role).value) == 1
    assert club_join_queue(db, 9999, admin.id, admin.role).kind is ErrorKind.NOT_FOUND


def test_integration_requests_sent_and_received(db):
    parent = make_user(db, role="PARENT")
    child_user = make_user(db)
    child = make_athlete(db, user=child_user)
    unrelated = make_athlete(db)
    db.add_all(
        [
            EntityIntegrationRequest(
                user_id=parent.id,
                target_entity_type="ATHLETE",
                target_entity_id=child.id,
                status=RequestStatus.PENDING,
                created_at=T0,
            ),
            EntityIntegrationRequest(
                user_id=parent.id,
                target_entity_type="ATHLETE",
                target_entity_id=unrelated.id,
                status=RequestStatus.APPROVED,
                created_at=T0 + timedelta(days=1),
            ),
        ]
    )
    db.commit()

    sent = integration_requests(db, parent.id, "sent")
    assert [r.target_entity_id for r in sent] == [unrelated.id, child.id]

    received = integration_requests(db, child_user.id, "received")
    assert [(r.user_id, r.target_entity_id) for r in received] == [(parent.id, child.id)]

    assert integration_requests(db, parent.id, "received") == []
