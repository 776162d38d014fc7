"""Tests for bulk edits across messages sharing an event id."""

import aiosqlite
import pytest

from kbsync.config import SyncConfig
from kbsync.core.correlator import EventCorrelator
from kbsync.core.guard import KeyboardGuard
from kbsync.core.sync import RemoteSync
from kbsync.errors import RemoteErrorKind, RemoteFatal, RevertFailed
from kbsync.keyboards import Button, InlineKeyboard
from kbsync.models import OutgoingMessage

from conftest import menu_keyboard

BOT = 42


@pytest.fixture
def correlator(store, transport):
    config = SyncConfig()
    guard = KeyboardGuard(store, RemoteSync(store, transport, config))
    return EventCorrelator(store, guard, config)


async def _send_many(store, count, event_id="deploy-7", **kwargs):
    ids = []
    for i in range(count):
        msg = OutgoingMessage(
            bot_id=BOT, chat_id=1000 + i, msg_id=i + 1, text="Deploying",
            event_id=event_id, **kwargs,
        )
        ids.append(await store.insert(msg))
    return ids


class TestEditAllWithEventId:
    async def test_only_newest_ten_are_edited(self, correlator, store, transport):
        ids = await _send_many(store, 15)
        await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed")

        newest, oldest = ids[5:], ids[:5]
        for message_id in newest:
            assert (await store.get(message_id)).text == "Deployed"
        for message_id in oldest:
            assert (await store.get(message_id)).text == "Deploying"
        assert len(transport.calls_to("edit_message_text")) == 10

    async def test_limit_is_configurable(self, store, transport):
        config = SyncConfig(max_event_messages=3)
        guard = KeyboardGuard(store, RemoteSync(store, transport, config))
        correlator = EventCorrelator(store, guard, config)
        await _send_many(store, 5)
        await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed")
        assert len(transport.calls_to("edit_message_text")) == 3

    async def test_other_events_and_bots_untouched(self, correlator, store, transport):
        [other] = await _send_many(store, 1, event_id="deploy-8")
        foreign = OutgoingMessage(bot_id=7, chat_id=1, msg_id=1, text="Deploying", event_id="deploy-7")
        await store.insert(foreign)
        await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed")
        assert (await store.get(other)).text == "Deploying"
        assert (await store.get(foreign.id)).text == "Deploying"
        assert transport.calls == []

    async def test_keyboard_edit_uses_each_message_state(self, correlator, store, transport):
        ids = await _send_many(store, 2, keyboard=menu_keyboard())
        # One message already moved on; without from_state it is still edited
        await store.find_and_modify(ids[0], "menu", keyboard=menu_keyboard("details"))

        done = InlineKeyboard(state="done", buttons=[[Button("Logs", "logs")]])
        await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed", done)
        for message_id in ids:
            loaded = await store.get(message_id)
            assert loaded.keyboard_state == "done"
            assert loaded.text == "Deployed"

    async def test_from_state_skips_moved_messages(self, correlator, store):
        ids = await _send_many(store, 2, keyboard=menu_keyboard())
        await store.find_and_modify(ids[0], "menu", keyboard=menu_keyboard("details"))

        done = InlineKeyboard(state="done")
        await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed", done, from_state="menu")
        assert (await store.get(ids[0])).keyboard_state == "details"
        assert (await store.get(ids[1])).keyboard_state == "done"

    async def test_failure_does_not_stop_the_rest(self, correlator, store, transport, monkeypatch):
        ids = await _send_many(store, 3)
        real_get = store.get
        vanished = ids[1]

        async def latest(bot_id, event_id, limit):
            messages = [await real_get(i) for i in reversed(ids)]
            # A message whose row disappeared after the query
            messages[1].id = 99999
            return messages

        monkeypatch.setattr(store, "latest_with_event_id", latest)
        await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed")

        assert (await store.get(ids[2])).text == "Deployed"
        assert (await store.get(ids[0])).text == "Deployed"
        assert (await store.get(vanished)).text == "Deploying"
        assert len(transport.calls_to("edit_message_text")) == 2

    async def test_failed_revert_is_raised_after_the_rest(
        self, correlator, store, transport, monkeypatch
    ):
        ids = await _send_many(store, 3)
        broken = ids[1]
        real_restore = store.restore

        async def restore(snapshot):
            if snapshot.message.id == broken:
                raise aiosqlite.OperationalError("database is locked")
            return await real_restore(snapshot)

        monkeypatch.setattr(store, "restore", restore)
        transport.failures["edit_message_text"] = RemoteFatal(RemoteErrorKind.OTHER, "timeout")

        with pytest.raises(RevertFailed) as exc_info:
            await correlator.edit_all_with_event_id(BOT, "deploy-7", "Deployed")

        assert exc_info.value.message_id == broken
        assert len(transport.calls_to("edit_message_text")) == 3
        assert (await store.get(ids[0])).text == "Deploying"
        assert (await store.get(ids[2])).text == "Deploying"
