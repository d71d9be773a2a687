"""Storage abstraction for the sync core."""

from fieldsync.repositories.base import Repositories
from fieldsync.repositories.memory import memory_repositories
from fieldsync.repositories.sql import sql_repositories

__all__ = ["Repositories", "memory_repositories", "sql_repositories"]
