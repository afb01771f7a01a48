from __future__ import annotations

import time
from typing import Iterable

import aiosqlite

from .base import BaseService

_OPERATORS_KEY = 0


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class OperatorStore(BaseService[int, frozenset[int]]):
    """Bot operators and per-guild whitelists.

    Cache key 0 holds the operator set; guild ids hold their whitelist.
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS bot_operators (
              user_id INTEGER PRIMARY KEY,
              added_at_iso TEXT NOT NULL
            )
            """
        )
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_whitelist (
              chat_id INTEGER NOT NULL,
              user_id INTEGER NOT NULL,
              added_by INTEGER NOT NULL,
              added_at_iso TEXT NOT NULL,
              PRIMARY KEY (chat_id, user_id)
            )
            """
        )

    async def bootstrap(self, owner_id: int, admin_ids: Iterable[int]) -> int:
        """Seed operators from the environment. Returns how many were new."""
        ids = {int(i) for i in admin_ids if int(i) > 0}
        if owner_id > 0:
            ids.add(owner_id)
        if not ids:
            return 0
        added = 0
        async with aiosqlite.connect(self._path) as db:
            for user_id in sorted(ids):
                cur = await db.execute(
                    "INSERT OR IGNORE INTO bot_operators (user_id, added_at_iso) VALUES (?, ?)",
                    (user_id, _now_iso()),
                )
                added += int(cur.rowcount)
            await db.commit()
        self.invalidate(_OPERATORS_KEY)
        if added:
            self._logger.info("Bootstrapped %d operators from environment", added)
        return added

    async def list_operators(self) -> frozenset[int]:
        cached = self._cache.get(_OPERATORS_KEY)
        if cached is not None:
            return cached
        async with aiosqlite.connect(self._path) as db:
            async with db.execute("SELECT user_id FROM bot_operators") as cur:
                rows = await cur.fetchall()
        ops = frozenset(int(r[0]) for r in rows)
        self._cache.set(_OPERATORS_KEY, ops)
        return ops

    async def is_operator(self, user_id: int) -> bool:
        return user_id in await self.list_operators()

    async def add_operator(self, user_id: int) -> bool:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "INSERT OR IGNORE INTO bot_operators (user_id, added_at_iso) VALUES (?, ?)",
                (user_id, _now_iso()),
            )
            changed = cur.rowcount > 0
            await db.commit()
        self.invalidate(_OPERATORS_KEY)
        return changed

    async def remove_operator(self, user_id: int) -> bool:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("DELETE FROM bot_operators WHERE user_id = ?", (user_id,))
            changed = cur.rowcount > 0
            await db.commit()
        self.invalidate(_OPERATORS_KEY)
        return changed

    async def list_whitelist(self, group_id: int) -> set[int]:
        cached = self._cache.get(group_id)
        if cached is not None:
            return set(cached)
        async with aiosqlite.connect(self._path) as db:
            async with db.execute("SELECT user_id FROM chat_whitelist WHERE chat_id = ?", (group_id,)) as cur:
                rows = await cur.fetchall()
        ids = frozenset(int(r[0]) for r in rows)
        self._cache.set(group_id, ids)
        return set(ids)

    async def add_whitelisted(self, group_id: int, user_id: int, added_by: int) -> bool:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "INSERT OR IGNORE INTO chat_whitelist (chat_id, user_id, added_by, added_at_iso) VALUES (?, ?, ?, ?)",
                (group_id, user_id, added_by, _now_iso()),
            )
            changed = cur.rowcount > 0
            await db.commit()
        self.invalidate(group_id)
        return changed

    async def remove_whitelisted(self, group_id: int, user_id: int) -> bool:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "DELETE FROM chat_whitelist WHERE chat_id = ? AND user_id = ?",
                (group_id, user_id),
            )
            changed = cur.rowcount > 0
            await db.commit()
        self.invalidate(group_id)
        return changed
