"""
Per-entity data access.

Every call opens its own session. Mutating calls run inside a unit of work
and raise PersistenceError once the transaction has been rolled back.
Lookups (and deletes) of a missing id return None.

Returned entities are detached: column attributes are loaded, relationships
are not. Use RentalService when related rows are needed.
"""

import logging
from contextlib import contextmanager
from typing import Generic, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from videoclub.db import unit_of_work
from videoclub.errors import PersistenceError
from videoclub.models import STATUS_AVAILABLE, Copy, Movie, User

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", Movie, Copy, User)


class Repository(Generic[ModelT]):
    model: Type[ModelT]

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with unit_of_work(self.session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not write {self.model.__name__}: {exc}"
            ) from exc

    def save(self, entity: ModelT) -> ModelT:
        """Insert the entity when it has no id yet, otherwise merge it."""
        with self._transaction() as session:
            if entity.id is None:
                session.add(entity)
                session.flush()
                return entity
            return session.merge(entity)

    def find_by_id(self, entity_id: int) -> Optional[ModelT]:
        with self.session_factory() as session:
            return session.get(self.model, entity_id)

    def find_all(self) -> List[ModelT]:
        with self.session_factory() as session:
            return list(
                session.execute(select(self.model).order_by(self.model.id)).scalars().all()
            )

    def delete(self, entity: ModelT) -> Optional[ModelT]:
        if entity.id is None:
            return None
        return self.delete_by_id(entity.id)

    def delete_by_id(self, entity_id: int) -> Optional[ModelT]:
        with self._transaction() as session:
            managed = session.get(self.model, entity_id)
            if managed is None:
                return None
            self._before_delete(session, managed)
            session.delete(managed)
            logger.info("Deleted %s %s.", self.model.__name__, entity_id)
            return managed

    def _before_delete(self, session: Session, entity: ModelT) -> None:
        pass

    def count(self) -> int:
        with self.session_factory() as session:
            return session.execute(select(func.count()).select_from(self.model)).scalar_one()


class MovieRepository(Repository[Movie]):
    model = Movie


class CopyRepository(Repository[Copy]):
    model = Copy

    def find_by_movie(self, movie_id: int) -> List[Copy]:
        with self.session_factory() as session:
            return list(
                session.execute(
                    select(Copy).where(Copy.movie_id == movie_id).order_by(Copy.id)
                )
                .scalars()
                .all()
            )


class UserRepository(Repository[User]):
    model = User

    def _before_delete(self, session: Session, entity: User) -> None:
        # The copy outlives its renter and goes back on the shelf.
        if entity.assigned_copy is not None:
            entity.assigned_copy.status = STATUS_AVAILABLE
            entity.assigned_copy.user = None

    def find_by_username(self, username: str) -> Optional[User]:
        with self.session_factory() as session:
            return (
                session.execute(select(User).where(User.username == username).limit(1))
                .scalars()
                .first()
            )
