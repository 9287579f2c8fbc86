import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_clubhub.db")

import pytest
from sqlalchemy.orm import sessionmaker

from clubhub.db import Base, make_engine
from clubhub.notifications import RecordingNotifier
from clubhub.transitions import TransitionService


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'clubhub.db'}")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def service(notifier):
    return TransitionService(notifier=notifier)
