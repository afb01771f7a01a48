from __future__ import annotations

import time
from typing import Iterable, Optional

import aiosqlite

from .base import BaseService


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


# SQLite's default host parameter limit is 999; stay well below it.
_CHUNK = 500


def _chunks(ids: list[int], size: int = _CHUNK) -> Iterable[list[int]]:
    for i in range(0, len(ids), size):
        yield ids[i:i + size]


class PresenceStore(BaseService[int, list[int]]):
    """Which users have been seen in which guilds.

    Cached per guild: the member list backing a purge is read once per job,
    while presence writes arrive on every message.
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS user_chat_presence (
              user_id INTEGER NOT NULL,
              chat_id INTEGER NOT NULL,
              first_seen TEXT NOT NULL,
              last_seen TEXT NOT NULL,
              PRIMARY KEY (user_id, chat_id)
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_presence_user ON user_chat_presence(user_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_presence_chat ON user_chat_presence(chat_id)")
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS known_groups (
              chat_id INTEGER PRIMARY KEY,
              title TEXT NOT NULL,
              updated_at TEXT NOT NULL
            )
            """
        )

    async def record_seen(self, group_id: int, user_id: int, group_title: Optional[str] = None) -> None:
        now = _now_iso()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                INSERT INTO user_chat_presence (user_id, chat_id, first_seen, last_seen)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, chat_id) DO UPDATE SET last_seen = excluded.last_seen
                """,
                (user_id, group_id, now, now),
            )
            if group_title:
                await db.execute(
                    """
                    INSERT INTO known_groups (chat_id, title, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(chat_id) DO UPDATE SET title = excluded.title, updated_at = excluded.updated_at
                    """,
                    (group_id, group_title, now),
                )
            await db.commit()
        cached = self._cache.get(group_id)
        if cached is not None and user_id not in cached:
            self.invalidate(group_id)

    async def get_known_targets(self, group_id: int) -> list[int]:
        cached = self._cache.get(group_id)
        if cached is not None:
            return list(cached)

        async with aiosqlite.connect(self._path) as db:
            async with db.execute(
                "SELECT user_id FROM user_chat_presence WHERE chat_id = ? ORDER BY first_seen, user_id",
                (group_id,),
            ) as cur:
                rows = await cur.fetchall()
        ids = [int(r[0]) for r in rows]
        self._cache.set(group_id, ids)
        return list(ids)

    async def get_groups_for_identity(self, identity: int) -> list[int]:
        async with aiosqlite.connect(self._path) as db:
            async with db.execute(
                "SELECT chat_id FROM user_chat_presence WHERE user_id = ? ORDER BY last_seen DESC",
                (identity,),
            ) as cur:
                rows = await cur.fetchall()
        return [int(r[0]) for r in rows]

    async def get_group_title(self, group_id: int) -> Optional[str]:
        async with aiosqlite.connect(self._path) as db:
            async with db.execute("SELECT title FROM known_groups WHERE chat_id = ?", (group_id,)) as cur:
                row = await cur.fetchone()
        return str(row[0]) if row else None

    async def prune_targets(self, group_id: int, target_ids: list[int]) -> int:
        ids = list(dict.fromkeys(int(t) for t in target_ids))
        if not ids:
            return 0
        removed = 0
        async with aiosqlite.connect(self._path) as db:
            for chunk in _chunks(ids):
                cur = await db.execute(
                    f"DELETE FROM user_chat_presence WHERE chat_id = ? AND user_id IN ({_placeholders(len(chunk))})",
                    (group_id, *chunk),
                )
                removed += int(cur.rowcount)
            await db.commit()
        self.invalidate(group_id)
        self._logger.info("Pruned %d presence rows in %s", removed, group_id)
        return removed

    async def forget_identity(self, identity: int, group_ids: list[int]) -> int:
        ids = list(dict.fromkeys(int(g) for g in group_ids))
        if not ids:
            return 0
        removed = 0
        async with aiosqlite.connect(self._path) as db:
            for chunk in _chunks(ids):
                cur = await db.execute(
                    f"DELETE FROM user_chat_presence WHERE user_id = ? AND chat_id IN ({_placeholders(len(chunk))})",
                    (identity, *chunk),
                )
                removed += int(cur.rowcount)
            await db.commit()
        for group_id in ids:
            self.invalidate(group_id)
        return removed

    async def forget_group(self, group_id: int) -> int:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("DELETE FROM user_chat_presence WHERE chat_id = ?", (group_id,))
            removed = int(cur.rowcount)
            await db.commit()
        self.invalidate(group_id)
        self._logger.info("Forgot %d presence rows of departed guild %s", removed, group_id)
        return removed
