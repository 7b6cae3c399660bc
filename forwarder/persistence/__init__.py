"""Persistence layer built on SQLAlchemy.

Public API:
    - init_database(database_url) / get_session() / close_database() / get_engine()
    - Repositories: ReferenceRepository, DocumentRepository,
      DeliveryHistoryRepository, PipelineStatusRepository, JobQueueRepository
    - SqlPipelineStore: session-per-call facade used by the delivery core
    - Exceptions: PersistenceError and subclasses

Example usage:
    >>> from forwarder.persistence import init_database, get_session, JobQueueRepository
    >>> init_database("sqlite:///./data/doc_forwarder.db")
    >>> with get_session() as session:
    ...     counts = JobQueueRepository(session).count_by_status()
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    DeliveryHistoryRepository,
    DocumentRepository,
    JobQueueRepository,
    PipelineStatusRepository,
    ReferenceRepository,
)
from .store import SqlPipelineStore

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "ReferenceRepository",
    "DocumentRepository",
    "DeliveryHistoryRepository",
    "PipelineStatusRepository",
    "JobQueueRepository",
    "SqlPipelineStore",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
