import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from videoclub.config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def build_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(url, echo=SQL_ECHO, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_session_factory(bind: Engine) -> sessionmaker:
    # Objects handed out after commit keep their loaded column values.
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


def init_db(bind: Engine) -> None:
    from videoclub.models import Base

    Base.metadata.create_all(bind=bind)


@contextmanager
def unit_of_work(session_factory: sessionmaker) -> Iterator[Session]:
    """Open a session, commit when the block succeeds, roll back otherwise."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        logger.warning("Rolling back unit of work: %s", exc)
        session.rollback()
        raise
    except Exception as exc:
        logger.debug("Rolling back unit of work: %s", exc)
        session.rollback()
        raise
    finally:
        session.close()


engine = build_engine()
SessionLocal = build_session_factory(engine)
