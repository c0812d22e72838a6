"""Repository adapters - Database and in-memory implementations."""

from .memory import InMemoryStore
from .postgres import (
    PostgresCredentialStore,
    PostgresSocialRepository,
    run_migrations,
)
from .postgres_messages import PostgresMessageRepository
from .postgres_pages import PostgresPageRepository

__all__ = [
    "InMemoryStore",
    "PostgresCredentialStore",
    "PostgresMessageRepository",
    "PostgresPageRepository",
    "PostgresSocialRepository",
    "run_migrations",
]
