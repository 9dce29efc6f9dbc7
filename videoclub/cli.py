import argparse
import logging
import sys
from typing import Optional, Sequence

import uvicorn

from videoclub.config import LOG_FORMAT, LOG_LEVEL
from videoclub.db import SessionLocal, engine, init_db
from videoclub.errors import RentalError
from videoclub.repositories import UserRepository
from videoclub.seed import seed_database
from videoclub.services import RentalService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="videoclub", description="Maintain the videoclub rental catalog."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the database tables.")
    commands.add_parser("seed", help="Load demo users and movies into an empty database.")
    commands.add_parser("movies", help="List the catalog with free copies per movie.")

    add_copy = commands.add_parser("add-copy", help="Add a rentable copy to a movie.")
    add_copy.add_argument("movie_id", type=int)
    add_copy.add_argument("--medium", default="DVD", help="Copy format, e.g. DVD or Blu-ray.")

    rent = commands.add_parser("rent", help="Rent a movie to a user.")
    rent.add_argument("username")
    rent.add_argument("movie_id", type=int)

    give_back = commands.add_parser("return", help="Return the copy a user holds.")
    give_back.add_argument("username")

    remove = commands.add_parser("remove-movie", help="Delete a movie and all its copies.")
    remove.add_argument("movie_id", type=int)

    serve = commands.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: Optional[Sequence[str]] = None, session_factory=SessionLocal, bind=engine) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    init_db(bind)
    service = RentalService(session_factory)

    if args.command == "serve":
        uvicorn.run("videoclub.main:app", host=args.host, port=args.port)
        return 0

    if args.command == "init-db":
        print("Database ready.")
        return 0

    if args.command == "seed":
        if seed_database(session_factory):
            print("Seed data created. Admin: admin1 / root. User: user1 / 1234.")
        else:
            print("Database already has users. No seed data created.")
        return 0

    if args.command == "movies":
        for movie in service.list_movies():
            detail = service.get_movie(movie.id)
            print(
                f"{movie.id:>4}  {movie.title} ({movie.year}) - {movie.genre}, "
                f"{detail.available_copies}/{len(detail.copies)} available"
            )
        return 0

    if args.command == "add-copy":
        copy = service.add_copy(args.movie_id, args.medium)
        if copy is None:
            print(f"Movie {args.movie_id} not found.", file=sys.stderr)
            return 1
        print(f"Copy {copy.id} ({copy.medium}) added to movie {args.movie_id}.")
        return 0

    if args.command == "remove-movie":
        if not service.remove_movie(args.movie_id):
            print(f"Movie {args.movie_id} not found.", file=sys.stderr)
            return 1
        print(f"Movie {args.movie_id} removed.")
        return 0

    user = UserRepository(session_factory).find_by_username(args.username)
    if user is None:
        print(f"User {args.username} not found.", file=sys.stderr)
        return 1
    if args.command == "rent" and user.is_admin:
        print(f"Administrator {user.username} cannot rent copies.", file=sys.stderr)
        return 1
    try:
        if args.command == "rent":
            copy = service.assign_copy(user.id, args.movie_id)
            print(f"Copy {copy.id} of {copy.movie.title} rented to {user.username}.")
        else:
            copy = service.release_copy(user.id)
            print(f"Copy {copy.id} of {copy.movie.title} returned by {user.username}.")
    except RentalError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
