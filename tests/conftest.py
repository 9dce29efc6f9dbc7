import os

os.environ.setdefault("VIDEOCLUB_DATABASE_URL", "sqlite://")
os.environ.setdefault("VIDEOCLUB_PASSWORD_ITERATIONS", "1000")
os.environ.setdefault("VIDEOCLUB_SEED_ON_STARTUP", "false")

import pytest
from sqlalchemy.pool import StaticPool

from videoclub.db import build_engine, build_session_factory, init_db
from videoclub.models import Copy
from videoclub.repositories import CopyRepository, MovieRepository, UserRepository
from videoclub.seed import seed_database
from videoclub.services import RentalService


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def service(session_factory):
    return RentalService(session_factory)


@pytest.fixture
def movies(session_factory):
    return MovieRepository(session_factory)


@pytest.fixture
def copies(session_factory):
    return CopyRepository(session_factory)


@pytest.fixture
def users(session_factory):
    return UserRepository(session_factory)


@pytest.fixture
def seeded(session_factory):
    assert seed_database(session_factory)
    return session_factory


@pytest.fixture
def user1(seeded, users):
    return users.find_by_username("user1")


@pytest.fixture
def admin1(seeded, users):
    return users.find_by_username("admin1")


@pytest.fixture
def inception(seeded, movies):
    return movies.find_all()[0]


def copy_snapshot(copies: CopyRepository) -> list[tuple]:
    return [(c.id, c.movie_id, c.user_id, c.status, c.medium) for c in copies.find_all()]


def make_copy(copies: CopyRepository, movie_id: int, medium: str = "DVD") -> Copy:
    return copies.save(Copy(movie_id=movie_id, status="Disponible", medium=medium))
