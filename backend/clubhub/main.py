from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.orm import Session

from .api import clubs, guardians, integrations, profile
from .config import CORS_ORIGIN, SEED_DEMO_DATA
from .db import Base, engine, get_session
from .logging_config import configure_logging, get_logger
from .models import Athlete, Club, User

configure_logging()
logger = get_logger(__name__)

app = FastAPI(title="Club Membership & Guardian Consent")

# CORS for localhost frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[CORS_ORIGIN],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(profile.router)
app.include_router(clubs.router)
app.include_router(guardians.router)
app.include_router(integrations.router)


@app.on_event("startup")
def startup() -> None:
    Base.metadata.create_all(engine)
    if SEED_DEMO_DATA:
        with get_session() as session:
            seed_data(session)


def seed_data(session: Session) -> None:
    owner = session.execute(select(User).where(User.email == "owner@club.test")).scalar_one_or_none()
    if not owner:
        owner = User(name="Club Owner", email="owner@club.test", role="CLUB")
        session.add(owner)
        session.flush()

    club = session.execute(select(Club).where(Club.name == "Archery Club")).scalar_one_or_none()
    if not club:
        session.add(Club(name="Archery Club", city="Bandung", owner_id=owner.id))

    athlete_user = session.execute(select(User).where(User.email == "athlete@club.test")).scalar_one_or_none()
    if not athlete_user:
        athlete_user = User(name="Young Archer", email="athlete@club.test", role="ATHLETE")
        session.add(athlete_user)
        session.flush()
        session.add(Athlete(user_id=athlete_user.id))

    if not session.execute(select(User).where(User.email == "parent@club.test")).scalar_one_or_none():
        session.add(User(name="Guardian", email="parent@club.test", phone="+620000000", role="PARENT"))
    logger.info("Demo data seeded")
