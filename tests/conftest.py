"""Shared fixtures: stores on a temp database and a recording transport."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from kbsync.keyboards import Button, InlineKeyboard
from kbsync.models import OutgoingMessage
from kbsync.store.keyboards import KeyboardStore
from kbsync.store.messages import MessageStore
from kbsync.transports.base import Transport


class RecordingTransport(Transport):
    """In-memory transport that records calls and raises configured errors."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.next_message_id = 1000

    @property
    def platform_name(self) -> str:
        return "test"

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def _record(self, method: str, **kwargs: Any) -> None:
        self.calls.append((method, kwargs))
        if method in self.failures:
            raise self.failures[method]

    async def close(self) -> None:
        pass

    async def send_message(self, chat_id, text, **kwargs):
        self._record("send_message", chat_id=chat_id, text=text, **kwargs)
        self.next_message_id += 1
        return self.next_message_id

    async def edit_message_text(self, text, **kwargs):
        self._record("edit_message_text", text=text, **kwargs)

    async def edit_message_reply_markup(self, **kwargs):
        self._record("edit_message_reply_markup", **kwargs)

    async def answer_callback_query(self, callback_query_id, text="", show_alert=False):
        # Suspend like a network call so a concurrent answer can interleave
        await asyncio.sleep(0)
        self._record(
            "answer_callback_query",
            callback_query_id=callback_query_id,
            text=text,
            show_alert=show_alert,
        )

    async def answer_inline_query(self, inline_query_id, results, **kwargs):
        self._record("answer_inline_query", inline_query_id=inline_query_id, results=results, **kwargs)


def menu_keyboard(state: str = "menu") -> InlineKeyboard:
    return InlineKeyboard(
        state=state,
        buttons=[
            [Button("Yes", "yes"), Button("No", "no")],
            [Button("Notify", "notify", state=0), Button("Mute", "mute"), Button("More", "more")],
        ],
    )


@pytest.fixture
async def store(tmp_path):
    s = MessageStore(tmp_path / "kbsync.db")
    await s.start()
    yield s
    await s.stop()


@pytest.fixture
async def keyboards(tmp_path):
    s = KeyboardStore(tmp_path / "kbsync.db")
    await s.start()
    yield s
    await s.stop()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
async def sent(store):
    """A stored group message with the standard menu keyboard."""
    msg = OutgoingMessage(
        bot_id=42,
        chat_id=-100,
        from_id=42,
        msg_id=555,
        text="Pick one",
        keyboard=menu_keyboard(),
    )
    await store.insert(msg)
    return msg
