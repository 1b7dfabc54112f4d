"""Domain errors raised by services and translated to HTTP errors by the routers."""

import uuid


class ReadSyncError(Exception):
    pass


class NotFoundError(ReadSyncError):
    pass


class OrphanedReferenceError(NotFoundError):
    """A write referenced a book that does not exist."""

    def __init__(self, book_id: uuid.UUID) -> None:
        super().__init__(f"Book {book_id} does not exist")
        self.book_id = book_id


class ActiveSessionConflictError(ReadSyncError):
    """Another active session must be ended before a new one may start."""

    def __init__(self, session_id: uuid.UUID, book_title: str, source_device: str) -> None:
        super().__init__(
            f"An active session for {book_title!r} started on {source_device} is still running"
        )
        self.session_id = session_id
        self.book_title = book_title
        self.source_device = source_device


class NoActiveSessionError(ReadSyncError):
    pass


class InvalidStateError(ReadSyncError):
    pass


class PardonUnavailableError(ReadSyncError):
    def __init__(self, eligibility) -> None:
        super().__init__(f"Pardon not available: {eligibility.status}")
        self.eligibility = eligibility


class ProfileMissingError(ReadSyncError):
    pass
