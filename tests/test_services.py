import logging
import threading

import pytest

from conftest import copy_snapshot, make_copy
from videoclub import services as services_module
from videoclub.db import build_engine, build_session_factory, init_db
from videoclub.errors import AlreadyRentedError, NoAvailableCopyError, NotFoundError, NotRentedError
from videoclub.models import STATUS_AVAILABLE, STATUS_RENTED, User
from videoclub.repositories import CopyRepository, MovieRepository, UserRepository
from videoclub.schemas import MovieCreate, MovieUpdate, RentedCopyResponse
from videoclub.security import hash_password
from videoclub.seed import seed_database
from videoclub.services import RentalService


def test_seed_creates_demo_catalog(seeded, users, movies, copies):
    accounts = {u.username: u.is_admin for u in users.find_all()}
    assert accounts == {"admin1": True, "user1": False}

    (movie,) = movies.find_all()
    assert movie.title == "Inception"
    assert movie.genre == "Ciencia Ficción"
    assert movie.director == "Christopher Nolan"
    assert movie.year == 2010

    (copy,) = copies.find_all()
    assert copy.movie_id == movie.id
    assert copy.status == STATUS_AVAILABLE
    assert copy.medium == "DVD"
    assert copy.user_id is None
    assert copy.is_available


def test_seed_skips_populated_database(seeded, users):
    assert seed_database(seeded) is False
    assert users.count() == 2


def test_seeded_passwords_are_not_stored_in_clear(seeded, users):
    admin = users.find_by_username("admin1")
    assert admin.password_hash != "root"
    assert admin.password_hash.startswith("pbkdf2_sha256$")


class TestAuthenticate:
    def test_valid_credentials(self, service, seeded):
        user = service.authenticate("admin1", "root")
        assert user is not None
        assert user.username == "admin1"
        assert user.is_admin

    def test_wrong_password(self, service, seeded):
        assert service.authenticate("admin1", "wrong") is None

    def test_unknown_user(self, service, seeded):
        assert service.authenticate("nobody", "root") is None


class TestAssignCopy:
    def test_happy_path(self, service, copies, user1, inception):
        rented = service.assign_copy(user1.id, inception.id)

        assert rented.status == STATUS_RENTED
        assert rented.user_id == user1.id
        assert rented.movie.title == "Inception"
        (stored,) = copies.find_all()
        assert stored.status == STATUS_RENTED
        assert stored.user_id == user1.id
        assert not stored.is_available

    def test_second_rental_is_refused(self, service, copies, user1, inception):
        service.assign_copy(user1.id, inception.id)
        make_copy(copies, inception.id)
        before = copy_snapshot(copies)

        with pytest.raises(AlreadyRentedError):
            service.assign_copy(user1.id, inception.id)

        assert copy_snapshot(copies) == before
        assert sum(1 for c in copies.find_all() if c.user_id == user1.id) == 1

    def test_no_available_copy(self, service, copies, users, user1, admin1, inception):
        service.assign_copy(admin1.id, inception.id)
        before = copy_snapshot(copies)

        with pytest.raises(NoAvailableCopyError):
            service.assign_copy(user1.id, inception.id)

        assert copy_snapshot(copies) == before
        assert service.fetch_user_with_assigned_copy(user1.id).assigned_copy is None

    def test_movie_without_copies(self, service, copies, user1):
        movie = service.create_movie(
            MovieCreate(title="Memento", genre="Thriller", director="Christopher Nolan",
                        year=2000, description="Short-term memory loss.")
        )
        before = copy_snapshot(copies)

        with pytest.raises(NoAvailableCopyError):
            service.assign_copy(user1.id, movie.id)
        assert copy_snapshot(copies) == before

    def test_lowest_id_copy_is_chosen(self, service, copies, user1, admin1, inception):
        second = make_copy(copies, inception.id, medium="Blu-ray")
        third = make_copy(copies, inception.id, medium="VHS")
        first_id = min(c.id for c in copies.find_all())

        assert service.assign_copy(user1.id, inception.id).id == first_id
        assert service.assign_copy(admin1.id, inception.id).id == second.id
        assert third.id > second.id

    def test_unknown_user(self, service, inception):
        with pytest.raises(NotFoundError):
            service.assign_copy(999, inception.id)


class TestReleaseCopy:
    def test_release_returns_copy_to_shelf(self, service, copies, user1, inception):
        rented = service.assign_copy(user1.id, inception.id)

        released = service.release_copy(user1.id)

        assert released.id == rented.id
        assert released.status == STATUS_AVAILABLE
        assert released.user_id is None
        assert copies.find_by_id(rented.id).user_id is None

    def test_user_can_rent_again_after_release(self, service, user1, inception):
        service.assign_copy(user1.id, inception.id)
        service.release_copy(user1.id)

        assert service.assign_copy(user1.id, inception.id).status == STATUS_RENTED

    def test_release_without_rental(self, service, user1):
        with pytest.raises(NotRentedError):
            service.release_copy(user1.id)


class TestFetchUserWithAssignedCopy:
    def test_relations_are_materialized(self, service, user1, inception):
        service.assign_copy(user1.id, inception.id)

        user = service.fetch_user_with_assigned_copy(user1.id)

        assert user.assigned_copy is not None
        assert user.assigned_copy.status == STATUS_RENTED
        assert user.assigned_copy.movie.title == "Inception"

    def test_user_without_rental(self, service, user1):
        assert service.fetch_user_with_assigned_copy(user1.id).assigned_copy is None

    def test_unknown_user(self, service, seeded):
        assert service.fetch_user_with_assigned_copy(999) is None


class TestCatalog:
    payload = MovieCreate(
        title="Interstellar",
        genre="Ciencia Ficción",
        director="Christopher Nolan",
        year=2014,
        description="A team travels through a wormhole.",
    )

    def test_list_movies_is_stable(self, service, seeded):
        service.create_movie(self.payload)
        assert service.list_movies() == service.list_movies()
        assert [m.title for m in service.list_movies()] == ["Inception", "Interstellar"]

    def test_create_round_trip(self, service, movies):
        created = service.create_movie(self.payload)

        found = movies.find_by_id(created.id)

        assert found is not None
        assert found.title == self.payload.title
        assert found.genre == self.payload.genre
        assert found.director == self.payload.director
        assert found.year == self.payload.year
        assert found.description == self.payload.description
        assert found.image_url is None
        assert created.model_dump(exclude={"id"}) == self.payload.model_dump()

    def test_update_movie_merges_given_fields(self, service, inception):
        updated = service.update_movie(inception.id, MovieUpdate(title="Origen", year=2011))

        assert updated.title == "Origen"
        assert updated.year == 2011
        assert updated.director == "Christopher Nolan"
        assert service.get_movie(inception.id).title == "Origen"

    def test_update_unknown_movie(self, service, seeded):
        assert service.update_movie(999, MovieUpdate(title="Nope")) is None

    def test_get_movie_counts_available_copies(self, service, copies, user1, inception):
        make_copy(copies, inception.id)
        service.assign_copy(user1.id, inception.id)

        detail = service.get_movie(inception.id)

        assert len(detail.copies) == 2
        assert detail.available_copies == 1

    def test_get_unknown_movie(self, service, seeded):
        assert service.get_movie(999) is None

    def test_add_copy(self, service, inception):
        copy = service.add_copy(inception.id, "Blu-ray")

        assert copy.status == STATUS_AVAILABLE
        assert copy.medium == "Blu-ray"
        assert [c.id for c in service.list_copies(inception.id)][-1] == copy.id

    def test_add_copy_to_unknown_movie(self, service, seeded):
        assert service.add_copy(999) is None


class TestRemoveMovie:
    def test_cascades_to_copies(self, service, copies, inception):
        make_copy(copies, inception.id)

        assert service.remove_movie(inception.id) is True

        assert service.get_movie(inception.id) is None
        assert [c for c in copies.find_all() if c.movie_id == inception.id] == []

    def test_removes_rented_copies_too(self, service, copies, user1, inception):
        service.assign_copy(user1.id, inception.id)

        service.remove_movie(inception.id)

        assert copies.count() == 0
        assert service.fetch_user_with_assigned_copy(user1.id).assigned_copy is None

    def test_unknown_movie_is_a_no_op(self, service, movies, seeded):
        assert service.remove_movie(999) is False
        assert movies.count() == 1


def test_rejected_rental_is_not_logged_as_warning(service, user1, inception, caplog):
    service.assign_copy(user1.id, inception.id)

    with caplog.at_level(logging.DEBUG, logger="videoclub.db"):
        with pytest.raises(AlreadyRentedError):
            service.assign_copy(user1.id, inception.id)

    db_records = [r for r in caplog.records if r.name == "videoclub.db"]
    assert db_records
    assert all(r.levelno < logging.WARNING for r in db_records)


def test_concurrent_rentals_of_last_copy(tmp_path, monkeypatch):
    engine = build_engine(f"sqlite:///{tmp_path / 'videoclub.db'}")
    init_db(engine)
    factory = build_session_factory(engine)
    seed_database(factory)
    users = UserRepository(factory)
    users.save(User(username="user2", password_hash=hash_password("abcd", iterations=1000)))
    renters = [users.find_by_username(name).id for name in ("user1", "user2")]
    movie_id = MovieRepository(factory).find_all()[0].id
    service = RentalService(factory)

    # Both requests see the copy as free before either writes.
    barrier = threading.Barrier(2, timeout=5)
    lookup = services_module.first_available_copy

    def lookup_then_wait(session, wanted_movie_id):
        copy = lookup(session, wanted_movie_id)
        barrier.wait()
        return copy

    monkeypatch.setattr(services_module, "first_available_copy", lookup_then_wait)

    outcomes = {}

    def rent(user_id):
        try:
            outcomes[user_id] = service.assign_copy(user_id, movie_id)
        except NoAvailableCopyError as exc:
            outcomes[user_id] = exc

    threads = [threading.Thread(target=rent, args=(user_id,)) for user_id in renters]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    winners = [u for u, outcome in outcomes.items() if isinstance(outcome, RentedCopyResponse)]
    losers = [u for u, outcome in outcomes.items() if isinstance(outcome, NoAvailableCopyError)]
    assert len(winners) == 1
    assert len(losers) == 1
    (copy,) = CopyRepository(factory).find_all()
    assert copy.user_id == winners[0]
    assert copy.status == STATUS_RENTED
    engine.dispose()
