from pathlib import Path
import sys

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import models  # noqa: E402,F401
from services.identity_map import IdentityMap  # noqa: E402
from services.outbox import Outbox  # noqa: E402
from services.task_cache import LocalTaskCache  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def outbox(session_factory):
    return Outbox(session_factory)


@pytest.fixture()
def identity_map(session_factory):
    return IdentityMap(session_factory)


@pytest.fixture()
def cache(session_factory):
    return LocalTaskCache(session_factory)
