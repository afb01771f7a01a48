from __future__ import annotations

import aiosqlite
import logging
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from .cache import TTLCache

K = TypeVar("K")
T = TypeVar("T")


class BaseService(ABC, Generic[K, T]):
    """Base class for all SQLite-backed stores with a TTL cache front."""

    def __init__(self, sqlite_path: str, cache_ttl_seconds: int = 120) -> None:
        self._path = sqlite_path
        self._cache: TTLCache[K, T] = TTLCache(default_ttl_seconds=cache_ttl_seconds)
        self._logger = logging.getLogger(f"warden.{self.__class__.__name__.lower()}")

    async def init(self) -> None:
        """Initialize the database schema."""
        async with aiosqlite.connect(self._path) as db:
            await self._create_tables(db)
            await db.commit()
        self._logger.info("%s initialized at %s", self.__class__.__name__, self._path)

    @abstractmethod
    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        """Create the necessary database tables."""
        pass

    def invalidate(self, key: K) -> None:
        self._cache.delete(key)
