"""Tests for the request-scoped Context."""

from datetime import datetime, timedelta, timezone

import pytest
import structlog

from kbsync.config import SyncConfig
from kbsync.core.context import Context
from kbsync.errors import AlreadyAnswered, MessageNotFound, NoCallback, UpdateOutcome
from kbsync.keyboards import Button, InlineKeyboard, ReplyKeyboard
from kbsync.models import (
    Bot,
    CallbackTrigger,
    ChosenInlineResultTrigger,
    InlineQueryTrigger,
    MessageTrigger,
    OutgoingMessage,
)

from conftest import menu_keyboard

BOT = Bot(id=42, username="deploybot")


@pytest.fixture
def make_context(store, keyboards, transport):
    async def factory(update, **kwargs):
        return await Context.from_update(
            update,
            service_name="deploy",
            bot=BOT,
            store=store,
            keyboards=keyboards,
            transport=transport,
            **kwargs,
        )

    return factory


def message_update(text="hi", chat_id=-100, user_id=11, reply_to=0):
    message = {
        "message_id": 900,
        "from": {"id": user_id, "username": "alice", "first_name": "Alice"},
        "chat": {"id": chat_id, "type": "group" if chat_id < 0 else "private"},
        "text": text,
    }
    if reply_to:
        message["reply_to_message"] = {"message_id": reply_to}
    return {"update_id": 1, "message": message}


def callback_update(data="notify0", msg_id=555, chat_id=-100):
    return {
        "update_id": 2,
        "callback_query": {
            "id": "cb-77",
            "from": {"id": 11, "username": "alice"},
            "message": {"message_id": msg_id, "chat": {"id": chat_id}, "text": "Pick one"},
            "data": data,
        },
    }


class TestFromUpdate:
    async def test_message_trigger(self, make_context, keyboards):
        ctx = await make_context(message_update(reply_to=7), request_id="r1")
        assert isinstance(ctx.trigger, MessageTrigger)
        assert ctx.message.text == "hi"
        assert ctx.message.reply_to_msg_id == 7
        assert ctx.chat.id == -100 and ctx.chat.is_group
        assert ctx.callback is None and ctx.inline_query is None
        # Sender becomes resolvable by @username
        assert await keyboards.user_ids_by_usernames(["@Alice"]) == [11]

    async def test_inline_query_trigger(self, make_context):
        update = {"inline_query": {"id": "iq-1", "from": {"id": 11}, "query": "deploy", "offset": ""}}
        ctx = await make_context(update)
        assert isinstance(ctx.trigger, InlineQueryTrigger)
        assert ctx.inline_query.query == "deploy"
        assert ctx.chat.id == 0

    async def test_chosen_inline_result_links_stored_message(self, make_context, store):
        generated = OutgoingMessage(bot_id=42, inline_msg_id="AAQ", text="card")
        await store.insert(generated)
        update = {"chosen_inline_result": {
            "result_id": "r-1", "from": {"id": 11}, "query": "q", "inline_message_id": "AAQ",
        }}
        ctx = await make_context(update)
        assert isinstance(ctx.trigger, ChosenInlineResultTrigger)
        assert ctx.chosen_inline_result.message.id == generated.id

    async def test_callback_resolves_stored_message(self, make_context, sent):
        ctx = await make_context(callback_update("notify3"))
        assert isinstance(ctx.trigger, CallbackTrigger)
        assert ctx.callback.data == "notify"
        assert ctx.callback.state == 3
        assert ctx.callback.message.id == sent.id
        assert ctx.callback.message.keyboard_state == "menu"

    async def test_callback_for_unknown_message(self, make_context):
        ctx = await make_context(callback_update(msg_id=1))
        assert ctx.callback.message.id is None
        with pytest.raises(MessageNotFound):
            await ctx.edit_pressed_message_text("x")

    async def test_unknown_update_has_no_trigger(self, make_context):
        ctx = await make_context({"update_id": 5, "edited_message": {}})
        assert ctx.trigger is None
        assert ctx.user.id == 0


class TestLog:
    async def test_message_fields(self, make_context):
        ctx = await make_context(message_update("status"), request_id="r9")
        fields = structlog.get_context(ctx.log())
        assert fields == {
            "service": "deploy", "bot": 42, "user": 11, "chat": -100,
            "request_id": "r9", "msg": "status",
        }

    async def test_callback_fields(self, make_context, sent):
        ctx = await make_context(callback_update("yes0"))
        fields = structlog.get_context(ctx.log())
        assert fields["callback"] == "yes"
        assert fields["callback_msgid"] == 555

    async def test_inline_callback_fields(self, make_context):
        update = {"callback_query": {"id": "c", "from": {"id": 11}, "inline_message_id": "XYZ", "data": "a0"}}
        ctx = await make_context(update)
        fields = structlog.get_context(ctx.log())
        assert fields["callback_inlinemsgid"] == "XYZ"
        assert "chat" not in fields


class TestSend:
    async def test_send_persists_and_records_reply_keyboard(self, make_context, store, transport):
        ctx = await make_context(message_update(chat_id=5, user_id=5))
        msg = ctx.new_message()
        msg.text = "Choose a color"
        msg.reply_keyboard = ReplyKeyboard(buttons=[[Button("Red", "r"), Button("Blue", "b")]])
        await ctx.send(msg)

        [call] = transport.calls_to("send_message")
        assert call["chat_id"] == 5
        assert call["reply_markup"]["keyboard"] == [[{"text": "Red"}, {"text": "Blue"}]]
        assert (await store.get(msg.id)).msg_id == msg.msg_id

        record = await ctx.keyboard()
        assert record.msg_id == msg.msg_id

        reply = await make_context(message_update("Blue", chat_id=5, user_id=5))
        assert await reply.keyboard_answer() == ("b", "Blue")
        other = await make_context(message_update("Green", chat_id=5, user_id=5))
        assert await other.keyboard_answer() is None

    async def test_group_answer_needs_reply(self, make_context):
        ctx = await make_context(message_update())
        msg = ctx.new_message()
        msg.text = "Vote"
        msg.reply_keyboard = ReplyKeyboard(buttons=[[Button("Up", "up")]])
        await ctx.send(msg)

        plain = await make_context(message_update("Up"))
        assert await plain.keyboard_answer() is None
        reply = await make_context(message_update("Up", reply_to=msg.msg_id))
        assert await reply.keyboard_answer() == ("up", "Up")

    async def test_send_inline_keyboard_skips_reply_records(self, make_context, keyboards):
        ctx = await make_context(message_update(chat_id=5, user_id=5))
        msg = ctx.new_message()
        msg.text = "Menu"
        msg.keyboard = menu_keyboard()
        await ctx.send(msg)
        assert await keyboards.chat_records(5) == []


class TestPressedEdits:
    async def test_edit_pressed_button(self, make_context, store, transport, sent):
        ctx = await make_context(callback_update("notify0"))
        outcome = await ctx.edit_pressed_inline_button(1, "Notify ✓")
        assert outcome is UpdateOutcome.UPDATED
        assert (await store.get(sent.id)).keyboard.buttons[1][0].state == 1

    async def test_edit_pressed_keyboard(self, make_context, store, sent):
        ctx = await make_context(callback_update("more0"))
        details = InlineKeyboard(state="details", buttons=[[Button("Back", "back")]])
        assert await ctx.edit_pressed_inline_keyboard(details) is UpdateOutcome.UPDATED
        assert (await store.get(sent.id)).keyboard_state == "details"

        # The same press replayed after the keyboard moved on
        late = await make_context(callback_update("more0"))
        late.callback.message.keyboard = menu_keyboard()
        assert await late.edit_pressed_inline_keyboard(details) is UpdateOutcome.NOOP

    async def test_edit_pressed_text_and_keyboard(self, make_context, store, transport, sent):
        ctx = await make_context(callback_update("yes0"))
        done = InlineKeyboard(state="done")
        outcome = await ctx.edit_pressed_message_text_and_inline_keyboard("Confirmed", done)
        assert outcome is UpdateOutcome.UPDATED
        loaded = await store.get(sent.id)
        assert loaded.text == "Confirmed"
        assert loaded.keyboard_state == "done"

    async def test_pressed_edit_without_callback(self, make_context):
        ctx = await make_context(message_update())
        with pytest.raises(NoCallback):
            await ctx.edit_pressed_inline_keyboard(InlineKeyboard(state="x"))

    async def test_edit_messages_with_event_id(self, make_context, store, transport):
        for chat in (1, 2):
            await store.insert(OutgoingMessage(
                bot_id=42, chat_id=chat, msg_id=chat, text="Build running",
                keyboard=menu_keyboard("running"), event_id="build-9",
            ))
        ctx = await make_context(message_update())
        done = InlineKeyboard(state="finished", buttons=[[Button("Logs", "logs")]])
        await ctx.edit_messages_with_event_id(42, "build-9", "running", "Build passed", done)
        assert len(transport.calls_to("edit_message_text")) == 2


class TestAnswers:
    async def test_answer_callback_once(self, make_context, transport, sent):
        ctx = await make_context(callback_update())
        await ctx.answer_callback_query("Saved")
        with pytest.raises(AlreadyAnswered):
            await ctx.answer_callback_query("Again")
        assert len(transport.calls_to("answer_callback_query")) == 1

    async def test_answer_callback_without_callback(self, make_context):
        ctx = await make_context(message_update())
        with pytest.raises(NoCallback):
            await ctx.answer_callback_query("x")

    async def test_inline_results(self, make_context, transport):
        ctx = await make_context({"inline_query": {"id": "iq-2", "from": {"id": 11}, "query": ""}})
        results = [{"type": "article", "id": "1", "title": "A"}]
        await ctx.answer_inline_query_with_results(results, cache_time=30, next_offset="10")
        [call] = transport.calls_to("answer_inline_query")
        assert call["inline_query_id"] == "iq-2"
        assert call["results"] == results
        assert call["cache_time"] == 30
        assert ctx.inline_query_answered_at is not None

    async def test_inline_pm_marks_answered_even_on_failure(self, make_context, transport):
        ctx = await make_context(
            {"inline_query": {"id": "iq-3", "from": {"id": 11}, "query": ""}},
            config=SyncConfig(slow_inline_answer=0.5),
        )
        ctx.inline_query.received_at = datetime.now(timezone.utc) - timedelta(seconds=2)
        transport.failures["answer_inline_query"] = RuntimeError("down")
        with pytest.raises(RuntimeError):
            await ctx.answer_inline_query_with_pm("Open bot", "start")
        assert ctx.inline_query_answered_at is not None
        [call] = transport.calls_to("answer_inline_query")
        assert call["switch_pm_parameter"] == "start"

    async def test_inline_answer_requires_query(self, make_context):
        ctx = await make_context(message_update())
        with pytest.raises(ValueError):
            await ctx.answer_inline_query_with_results([])
