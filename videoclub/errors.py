class VideoclubError(Exception):
    """Base class for errors raised by the rental service and repositories."""


class RentalError(VideoclubError):
    """A rental business rule was violated. The caller is expected to report it."""


class AlreadyRentedError(RentalError):
    def __init__(self, username: str):
        super().__init__(f"User {username} already has a copy assigned.")
        self.username = username


class NoAvailableCopyError(RentalError):
    def __init__(self, movie_id: int):
        super().__init__(f"No copies available for movie {movie_id}.")
        self.movie_id = movie_id


class NotRentedError(RentalError):
    def __init__(self, username: str):
        super().__init__(f"User {username} has no copy assigned.")
        self.username = username


class NotFoundError(VideoclubError):
    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found.")
        self.entity = entity
        self.entity_id = entity_id


class PersistenceError(VideoclubError):
    """The storage layer failed and the transaction was rolled back."""
