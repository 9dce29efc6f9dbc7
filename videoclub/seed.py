import logging

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from videoclub.db import unit_of_work
from videoclub.models import STATUS_AVAILABLE, Copy, Movie, User
from videoclub.security import hash_password

logger = logging.getLogger(__name__)

SEED_USERS = (
    ("admin1", "root", True),
    ("user1", "1234", False),
)


def seed_database(session_factory: sessionmaker) -> bool:
    """Populate an empty database with demo accounts and one rentable movie."""
    with unit_of_work(session_factory) as session:
        user_count = session.execute(select(func.count()).select_from(User)).scalar_one()
        if user_count:
            logger.info("Database already holds %s users. Skipping seed data.", user_count)
            return False
        for username, password, is_admin in SEED_USERS:
            session.add(
                User(username=username, password_hash=hash_password(password), is_admin=is_admin)
            )
        movie = Movie(
            title="Inception",
            genre="Ciencia Ficción",
            director="Christopher Nolan",
            year=2010,
            description="Un ladrón que roba secretos...",
        )
        movie.copies.append(Copy(status=STATUS_AVAILABLE, medium="DVD"))
        session.add(movie)
    logger.info("Seeded users %s.", ", ".join(name for name, _, _ in SEED_USERS))
    return True
