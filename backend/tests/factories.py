from itertools import count

from clubhub.models import Athlete, Club, User

_seq = count(1)


def make_user(db, name=None, role="ATHLETE", club_id=None, identity_number=None, phone=None) -> User:
    n = next(_seq)
    user = User(
        name=name or f"User {n}",
        email=f"user{n}@club.test",
        role=role,
        club_id=club_id,
        identity_number=identity_number,
        phone=phone,
    )
    db.add(user)
    db.flush()
    return user


def make_club(db, name=None, owner=None) -> Club:
    n = next(_seq)
    if owner is None:
        owner = make_user(db, role="CLUB")
    club = Club(name=name or f"Club {n}", city="Bandung", owner_id=owner.id)
    db.add(club)
    db.flush()
    return club


def make_athlete(db, user=None, parent_id=None, club_id=None, **fields) -> Athlete:
    if user is None:
        user = make_user(db, club_id=club_id)
    athlete = Athlete(user_id=user.id, parent_id=parent_id, club_id=club_id, **fields)
    db.add(athlete)
    db.flush()
    return athlete
