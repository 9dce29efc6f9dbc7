import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from videoclub.db import unit_of_work
from videoclub.errors import AlreadyRentedError, NoAvailableCopyError, NotFoundError, NotRentedError
from videoclub.models import STATUS_AVAILABLE, STATUS_RENTED, Copy, Movie, User
from videoclub.schemas import (
    CopyResponse,
    MovieCreate,
    MovieDetailResponse,
    MovieResponse,
    MovieUpdate,
    RentedCopyResponse,
    UserResponse,
)
from videoclub.security import verify_password

logger = logging.getLogger(__name__)


def load_user_for_update(session: Session, user_id: int) -> User:
    user = (
        session.execute(
            select(User).options(joinedload(User.assigned_copy)).where(User.id == user_id)
        )
        .unique()
        .scalars()
        .first()
    )
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def first_available_copy(session: Session, movie_id: int) -> Optional[Copy]:
    return (
        session.execute(
            select(Copy)
            .where(Copy.movie_id == movie_id, Copy.user_id.is_(None))
            .order_by(Copy.id)
            .limit(1)
        )
        .scalars()
        .first()
    )


class RentalService:
    """
    Catalog and rental operations.

    Each method runs in its own unit of work and returns pydantic models
    built before the session closes, so callers never touch lazy ORM state.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def assign_copy(self, user_id: int, movie_id: int) -> RentedCopyResponse:
        """
        Rent the lowest-id free copy of a movie to a user.

        Raises AlreadyRentedError when the user holds a copy already and
        NoAvailableCopyError when every copy of the movie is out. Nothing is
        written in either case.
        """
        with unit_of_work(self.session_factory) as session:
            user = load_user_for_update(session, user_id)
            if user.assigned_copy is not None:
                raise AlreadyRentedError(user.username)
            copy = first_available_copy(session, movie_id)
            if copy is None:
                raise NoAvailableCopyError(movie_id)
            # Only claim the copy if nobody took it since it was read.
            try:
                claimed = session.execute(
                    update(Copy)
                    .where(Copy.id == copy.id, Copy.user_id.is_(None))
                    .values(user_id=user.id, status=STATUS_RENTED)
                ).rowcount
            except IntegrityError as exc:
                raise AlreadyRentedError(user.username) from exc
            if not claimed:
                raise NoAvailableCopyError(movie_id)
            session.refresh(copy)
            result = RentedCopyResponse.model_validate(copy)
        logger.info("Copy %s of movie %s rented to %s.", copy.id, movie_id, user.username)
        return result

    def release_copy(self, user_id: int) -> RentedCopyResponse:
        """Return the user's copy to the shelf."""
        with unit_of_work(self.session_factory) as session:
            user = load_user_for_update(session, user_id)
            copy = user.assigned_copy
            if copy is None:
                raise NotRentedError(user.username)
            copy.user = None
            copy.status = STATUS_AVAILABLE
            session.flush()
            result = RentedCopyResponse.model_validate(copy)
        logger.info("Copy %s returned by %s.", result.id, user.username)
        return result

    def fetch_user_with_assigned_copy(self, user_id: int) -> Optional[UserResponse]:
        with self.session_factory() as session:
            user = (
                session.execute(
                    select(User)
                    .options(joinedload(User.assigned_copy).joinedload(Copy.movie))
                    .where(User.id == user_id)
                )
                .unique()
                .scalars()
                .first()
            )
            if user is None:
                return None
            return UserResponse.model_validate(user)

    def authenticate(self, username: str, password: str) -> Optional[UserResponse]:
        with self.session_factory() as session:
            user = (
                session.execute(
                    select(User)
                    .options(joinedload(User.assigned_copy).joinedload(Copy.movie))
                    .where(User.username == username)
                )
                .unique()
                .scalars()
                .first()
            )
            if user is None or not verify_password(password, user.password_hash):
                logger.info("Failed login for %s.", username)
                return None
            return UserResponse.model_validate(user)

    def list_movies(self) -> List[MovieResponse]:
        with self.session_factory() as session:
            movies = session.execute(select(Movie).order_by(Movie.id)).scalars().all()
            return [MovieResponse.model_validate(movie) for movie in movies]

    def get_movie(self, movie_id: int) -> Optional[MovieDetailResponse]:
        with self.session_factory() as session:
            movie = (
                session.execute(
                    select(Movie).options(joinedload(Movie.copies)).where(Movie.id == movie_id)
                )
                .unique()
                .scalars()
                .first()
            )
            if movie is None:
                return None
            detail = MovieDetailResponse.model_validate(movie)
        detail.available_copies = sum(1 for copy in detail.copies if copy.user_id is None)
        return detail

    def list_copies(self, movie_id: int) -> List[CopyResponse]:
        with self.session_factory() as session:
            copies = (
                session.execute(select(Copy).where(Copy.movie_id == movie_id).order_by(Copy.id))
                .scalars()
                .all()
            )
            return [CopyResponse.model_validate(copy) for copy in copies]

    def create_movie(self, payload: MovieCreate) -> MovieResponse:
        with unit_of_work(self.session_factory) as session:
            movie = Movie(**payload.model_dump())
            session.add(movie)
            session.flush()
            result = MovieResponse.model_validate(movie)
        logger.info("Movie %s created: %s.", result.id, result.title)
        return result

    def update_movie(self, movie_id: int, payload: MovieUpdate) -> Optional[MovieResponse]:
        with unit_of_work(self.session_factory) as session:
            movie = session.get(Movie, movie_id)
            if movie is None:
                return None
            for key, value in payload.model_dump(exclude_unset=True).items():
                setattr(movie, key, value)
            session.flush()
            return MovieResponse.model_validate(movie)

    def remove_movie(self, movie_id: int) -> bool:
        """
        Delete a movie and, through the cascade, all of its copies.

        Rented copies are deleted too; the renters simply lose their rental.
        Returns False when the movie does not exist.
        """
        with unit_of_work(self.session_factory) as session:
            movie = session.get(Movie, movie_id)
            if movie is None:
                return False
            rented = [copy.id for copy in movie.copies if not copy.is_available]
            if rented:
                logger.warning(
                    "Removing movie %s deletes rented copies %s.", movie_id, rented
                )
            session.delete(movie)
        logger.info("Movie %s removed.", movie_id)
        return True

    def add_copy(self, movie_id: int, medium: str = "DVD") -> Optional[CopyResponse]:
        with unit_of_work(self.session_factory) as session:
            if session.get(Movie, movie_id) is None:
                return None
            copy = Copy(movie_id=movie_id, status=STATUS_AVAILABLE, medium=medium)
            session.add(copy)
            session.flush()
            result = CopyResponse.model_validate(copy)
        logger.info("Copy %s (%s) added to movie %s.", result.id, medium, movie_id)
        return result
