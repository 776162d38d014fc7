"""Persistent record of every interactive message the bot has sent."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import aiosqlite

from kbsync.keyboards import InlineKeyboard
from kbsync.models import OutgoingMessage
from kbsync.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bot_id INTEGER NOT NULL,
    chat_id INTEGER NOT NULL DEFAULT 0,
    from_id INTEGER NOT NULL DEFAULT 0,
    msg_id INTEGER NOT NULL DEFAULT 0,
    inline_msg_id TEXT NOT NULL DEFAULT '',
    text TEXT NOT NULL DEFAULT '',
    parse_mode TEXT NOT NULL DEFAULT '',
    web_preview INTEGER NOT NULL DEFAULT 1,
    keyboard_state TEXT,
    keyboard TEXT,
    event_id TEXT NOT NULL DEFAULT '',
    selective INTEGER NOT NULL DEFAULT 0,
    date TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_event
    ON messages (bot_id, event_id, id);
CREATE INDEX IF NOT EXISTS idx_messages_remote
    ON messages (bot_id, chat_id, msg_id);
CREATE INDEX IF NOT EXISTS idx_messages_inline
    ON messages (bot_id, inline_msg_id);
"""

_COLUMNS = (
    "id, bot_id, chat_id, from_id, msg_id, inline_msg_id, text, parse_mode, "
    "web_preview, keyboard_state, keyboard, event_id, selective, date"
)


def _row_to_message(row: aiosqlite.Row) -> OutgoingMessage:
    keyboard = InlineKeyboard.from_json(row["keyboard"]) if row["keyboard"] else None
    return OutgoingMessage(
        id=row["id"],
        bot_id=row["bot_id"],
        chat_id=row["chat_id"],
        from_id=row["from_id"],
        msg_id=row["msg_id"],
        inline_msg_id=row["inline_msg_id"],
        text=row["text"],
        parse_mode=row["parse_mode"],
        web_preview=bool(row["web_preview"]),
        keyboard=keyboard,
        event_id=row["event_id"],
        selective=bool(row["selective"]),
        date=datetime.fromisoformat(row["date"]),
    )


def _cell_path(row: int, col: int, key: str) -> str:
    return f"$.buttons[{int(row)}][{int(col)}].{key}"


@dataclass
class Snapshot:
    """Pre-image of a message row, captured inside the mutating transaction.

    ``keyboard_json`` is kept as stored so a restore writes back the exact
    same bytes.
    """

    message: OutgoingMessage
    text: str
    keyboard_state: str | None
    keyboard_json: str | None
    updated: bool = False

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Snapshot:
        return cls(
            message=_row_to_message(row),
            text=row["text"],
            keyboard_state=row["keyboard_state"],
            keyboard_json=row["keyboard"],
        )


class MessageStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        # One connection: reads must not see another task's open transaction
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path), isolation_level=None)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(_SCHEMA)

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        assert self._db is not None
        async with self._lock:
            await self._db.execute("BEGIN IMMEDIATE")
            try:
                yield self._db
            except BaseException:
                await self._db.execute("ROLLBACK")
                raise
            await self._db.execute("COMMIT")

    async def _fetch(self, query: str, params: tuple[object, ...]) -> list[aiosqlite.Row]:
        assert self._db is not None
        async with self._lock:
            cursor = await self._db.execute(query, params)
            return list(await cursor.fetchall())

    # ------------------------------------------------------------------
    # Basic access
    # ------------------------------------------------------------------

    async def insert(self, msg: OutgoingMessage) -> int:
        """Persist a sent message and assign its store identity."""
        keyboard_json = msg.keyboard.to_json() if msg.keyboard is not None else None
        async with self._transaction() as db:
            cursor = await db.execute(
                "INSERT INTO messages (bot_id, chat_id, from_id, msg_id, inline_msg_id, "
                "text, parse_mode, web_preview, keyboard_state, keyboard, event_id, "
                "selective, date) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    msg.bot_id,
                    msg.chat_id,
                    msg.from_id,
                    msg.msg_id,
                    msg.inline_msg_id,
                    msg.text,
                    msg.parse_mode,
                    int(msg.web_preview),
                    msg.keyboard_state,
                    keyboard_json,
                    msg.event_id,
                    int(msg.selective),
                    msg.date.isoformat(),
                ),
            )
        assert cursor.lastrowid is not None
        msg.id = cursor.lastrowid
        return msg.id

    async def get(self, message_id: int) -> OutgoingMessage | None:
        rows = await self._fetch(f"SELECT {_COLUMNS} FROM messages WHERE id = ?", (message_id,))
        return _row_to_message(rows[0]) if rows else None

    async def find_by_msg_id(self, bot_id: int, chat_id: int, msg_id: int) -> OutgoingMessage | None:
        rows = await self._fetch(
            f"SELECT {_COLUMNS} FROM messages "
            "WHERE bot_id = ? AND chat_id = ? AND msg_id = ? ORDER BY id DESC LIMIT 1",
            (bot_id, chat_id, msg_id),
        )
        return _row_to_message(rows[0]) if rows else None

    async def find_by_inline_msg_id(self, bot_id: int, inline_msg_id: str) -> OutgoingMessage | None:
        rows = await self._fetch(
            f"SELECT {_COLUMNS} FROM messages "
            "WHERE bot_id = ? AND inline_msg_id = ? ORDER BY id DESC LIMIT 1",
            (bot_id, inline_msg_id),
        )
        return _row_to_message(rows[0]) if rows else None

    async def latest_with_event_id(
        self, bot_id: int, event_id: str, limit: int
    ) -> list[OutgoingMessage]:
        """Most recent messages carrying ``event_id``, newest first, across all chats."""
        rows = await self._fetch(
            f"SELECT {_COLUMNS} FROM messages "
            "WHERE bot_id = ? AND event_id = ? ORDER BY id DESC LIMIT ?",
            (bot_id, event_id, limit),
        )
        return [_row_to_message(row) for row in rows]

    # ------------------------------------------------------------------
    # Conditional mutation
    # ------------------------------------------------------------------

    async def find_and_modify(
        self,
        message_id: int,
        expected_state: str | None,
        *,
        text: str | None = None,
        keyboard: InlineKeyboard | None = None,
    ) -> Snapshot | None:
        """Set text and/or keyboard only if the stored state label equals ``expected_state``.

        Returns None when no message has this identity. Otherwise returns the
        pre-image; ``Snapshot.updated`` tells whether the predicate matched.
        """
        sets: list[str] = []
        params: list[object] = []
        if keyboard is not None:
            sets += ["keyboard = ?", "keyboard_state = ?"]
            params += [keyboard.to_json(), keyboard.state]
        if text is not None:
            sets.append("text = ?")
            params.append(text)
        if not sets:
            raise ValueError("find_and_modify needs text or keyboard")

        async with self._transaction() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM messages WHERE id = ?", (message_id,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            snapshot = Snapshot.from_row(row)
            cursor = await db.execute(
                f"UPDATE messages SET {', '.join(sets)} "
                "WHERE id = ? AND keyboard_state IS ?",
                (*params, message_id, expected_state),
            )
            snapshot.updated = cursor.rowcount == 1

        log.debug(
            "message_find_and_modify",
            message_id=message_id,
            expected_state=expected_state,
            updated=snapshot.updated,
        )
        return snapshot

    async def modify_button(
        self,
        message_id: int,
        expected_state: str | None,
        row: int,
        col: int,
        expected_data: str,
        text: str,
        sub_state: int | None = None,
    ) -> Snapshot | None:
        """Point update of one keyboard cell.

        Applies only while the label still equals ``expected_state`` and the
        cell at (row, col) still carries ``expected_data``, so a concurrently
        reshaped grid is never edited at the wrong position.
        """
        set_expr = "json_set(keyboard, ?, ?)"
        params: list[object] = [_cell_path(row, col, "text"), text]
        if sub_state is not None:
            set_expr = "json_set(keyboard, ?, ?, ?, ?)"
            params += [_cell_path(row, col, "state"), sub_state]

        async with self._transaction() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM messages WHERE id = ?", (message_id,)
            )
            found = await cursor.fetchone()
            if found is None:
                return None
            snapshot = Snapshot.from_row(found)
            cursor = await db.execute(
                f"UPDATE messages SET keyboard = {set_expr} "
                "WHERE id = ? AND keyboard_state IS ? AND json_extract(keyboard, ?) = ?",
                (
                    *params,
                    message_id,
                    expected_state,
                    _cell_path(row, col, "data"),
                    expected_data,
                ),
            )
            snapshot.updated = cursor.rowcount == 1
        return snapshot

    async def restore(self, snapshot: Snapshot) -> bool:
        """Write a pre-image back unconditionally. Returns False if the row is gone."""
        async with self._transaction() as db:
            cursor = await db.execute(
                "UPDATE messages SET text = ?, keyboard_state = ?, keyboard = ? WHERE id = ?",
                (
                    snapshot.text,
                    snapshot.keyboard_state,
                    snapshot.keyboard_json,
                    snapshot.message.id,
                ),
            )
        return cursor.rowcount > 0

    async def raw_keyboard(self, message_id: int) -> str | None:
        """Stored keyboard JSON exactly as persisted."""
        rows = await self._fetch("SELECT keyboard FROM messages WHERE id = ?", (message_id,))
        return rows[0]["keyboard"] if rows else None
