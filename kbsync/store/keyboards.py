"""Active reply-keyboard records, per user (selective) and per chat."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite

from kbsync.models import ChatKeyboardRecord, User
from kbsync.utils.logging import get_logger

log = get_logger(__name__)

# user_keyboards mirrors a user's "keyboardperchat" list,
# chat_keyboards mirrors a chat's "keyboardperbot" list.
_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    username TEXT NOT NULL DEFAULT '',
    first_name TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_users_username
    ON users (username COLLATE NOCASE);
CREATE TABLE IF NOT EXISTS user_keyboards (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    chat_id INTEGER NOT NULL,
    bot_id INTEGER NOT NULL,
    msg_id INTEGER NOT NULL,
    issued_at TEXT NOT NULL,
    keyboard TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_user_keyboards_lookup
    ON user_keyboards (user_id, chat_id);
CREATE TABLE IF NOT EXISTS chat_keyboards (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL,
    bot_id INTEGER NOT NULL,
    msg_id INTEGER NOT NULL,
    issued_at TEXT NOT NULL,
    keyboard TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_keyboards_lookup
    ON chat_keyboards (chat_id, bot_id);
"""


def _row_to_record(row: aiosqlite.Row) -> ChatKeyboardRecord:
    return ChatKeyboardRecord(
        chat_id=row["chat_id"],
        bot_id=row["bot_id"],
        msg_id=row["msg_id"],
        keyboard=json.loads(row["keyboard"]),
        issued_at=datetime.fromisoformat(row["issued_at"]),
    )


def _placeholders(values: Sequence[object]) -> str:
    return ", ".join("?" for _ in values)


class KeyboardStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path), isolation_level=None)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[aiosqlite.Connection]:
        """One atomic write against a single collection."""
        assert self._db is not None
        async with self._lock:
            await self._db.execute("BEGIN IMMEDIATE")
            try:
                yield self._db
            except BaseException:
                await self._db.execute("ROLLBACK")
                raise
            await self._db.execute("COMMIT")

    async def _fetch(self, query: str, params: Sequence[object]) -> list[aiosqlite.Row]:
        assert self._db is not None
        async with self._lock:
            cursor = await self._db.execute(query, params)
            return list(await cursor.fetchall())

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def upsert_user(self, user: User) -> None:
        async with self._write() as db:
            await db.execute(
                "INSERT INTO users (id, username, first_name) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET "
                "username = excluded.username, first_name = excluded.first_name",
                (user.id, user.username, user.first_name),
            )

    async def user_ids_by_usernames(self, usernames: Iterable[str]) -> list[int]:
        names = sorted({u.lstrip("@").lower() for u in usernames if u})
        if not names:
            return []
        rows = await self._fetch(
            f"SELECT id FROM users WHERE lower(username) IN ({_placeholders(names)}) ORDER BY id",
            names,
        )
        return [row["id"] for row in rows]

    # ------------------------------------------------------------------
    # Per-user records (selective keyboards)
    # ------------------------------------------------------------------

    async def user_records(self, user_id: int) -> list[ChatKeyboardRecord]:
        rows = await self._fetch(
            "SELECT chat_id, bot_id, msg_id, issued_at, keyboard FROM user_keyboards "
            "WHERE user_id = ? ORDER BY seq",
            (user_id,),
        )
        return [_row_to_record(row) for row in rows]

    async def pull_user_records(
        self, user_ids: list[int], chat_id: int, bot_id: int | None = None
    ) -> int:
        """Remove the users' records for a chat (optionally only one bot's)."""
        if not user_ids:
            return 0
        query = (
            f"DELETE FROM user_keyboards WHERE user_id IN ({_placeholders(user_ids)}) "
            "AND chat_id = ?"
        )
        params: list[int] = [*user_ids, chat_id]
        if bot_id is not None:
            query += " AND bot_id = ?"
            params.append(bot_id)
        async with self._write() as db:
            cursor = await db.execute(query, params)
        return cursor.rowcount

    async def pull_all_user_records(self, chat_id: int) -> int:
        """Remove every user's record for a chat."""
        async with self._write() as db:
            cursor = await db.execute(
                "DELETE FROM user_keyboards WHERE chat_id = ?", (chat_id,)
            )
        return cursor.rowcount

    async def push_user_records(self, user_ids: list[int], record: ChatKeyboardRecord) -> int:
        if not user_ids:
            return 0
        keyboard = json.dumps(record.keyboard, sort_keys=True)
        async with self._write() as db:
            await db.executemany(
                "INSERT INTO user_keyboards (user_id, chat_id, bot_id, msg_id, issued_at, keyboard) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (uid, record.chat_id, record.bot_id, record.msg_id,
                     record.issued_at.isoformat(), keyboard)
                    for uid in user_ids
                ],
            )
        return len(user_ids)

    # ------------------------------------------------------------------
    # Per-chat records
    # ------------------------------------------------------------------

    async def chat_records(self, chat_id: int) -> list[ChatKeyboardRecord]:
        rows = await self._fetch(
            "SELECT chat_id, bot_id, msg_id, issued_at, keyboard FROM chat_keyboards "
            "WHERE chat_id = ? ORDER BY seq",
            (chat_id,),
        )
        return [_row_to_record(row) for row in rows]

    async def set_chat_records(self, chat_id: int, records: list[ChatKeyboardRecord]) -> None:
        """Replace the chat's whole record list, for every bot."""
        async with self._write() as db:
            await db.execute("DELETE FROM chat_keyboards WHERE chat_id = ?", (chat_id,))
            await db.executemany(
                "INSERT INTO chat_keyboards (chat_id, bot_id, msg_id, issued_at, keyboard) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (chat_id, r.bot_id, r.msg_id, r.issued_at.isoformat(),
                     json.dumps(r.keyboard, sort_keys=True))
                    for r in records
                ],
            )

    async def pull_chat_records(self, chat_id: int, bot_id: int) -> int:
        async with self._write() as db:
            cursor = await db.execute(
                "DELETE FROM chat_keyboards WHERE chat_id = ? AND bot_id = ?",
                (chat_id, bot_id),
            )
        return cursor.rowcount

    async def push_chat_record(self, record: ChatKeyboardRecord) -> None:
        async with self._write() as db:
            await db.execute(
                "INSERT INTO chat_keyboards (chat_id, bot_id, msg_id, issued_at, keyboard) "
                "VALUES (?, ?, ?, ?, ?)",
                (record.chat_id, record.bot_id, record.msg_id,
                 record.issued_at.isoformat(), json.dumps(record.keyboard, sort_keys=True)),
            )
