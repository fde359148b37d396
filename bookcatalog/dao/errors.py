"""Repository error vocabulary.

DAOs translate driver and SQLAlchemy exceptions into these classes; nothing
storage-specific leaks past the DAO boundary.
"""


class RepositoryError(Exception):
    """Base repository exception."""


class BookNotFoundError(RepositoryError):
    """No live row with the requested id."""


class DuplicateISBNError(RepositoryError):
    """Unique-constraint violation on ``isbn`` among live rows."""


class InvalidReferenceError(RepositoryError):
    """Foreign-key violation: the referenced record does not exist."""


class InvalidBookDataError(RepositoryError):
    """Row rejected by a CHECK or NOT NULL constraint."""


class StorageTimeoutError(RepositoryError):
    """Deadline exceeded while waiting on the storage engine."""


class StorageError(RepositoryError):
    """Unclassified storage failure."""
