"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
isolate database failures with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialized or reached."""


class RecordNotFoundError(PersistenceError):
    """Raised when an update targets a record that does not exist.

    Optional lookups return None instead.
    """


class DataIntegrityError(PersistenceError):
    """Raised on a constraint violation (duplicate key, foreign key, ...)."""
