"""Request-scoped context: one instance per incoming update or webhook."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from kbsync.config import SyncConfig
from kbsync.core.callbacks import answer_callback
from kbsync.core.correlator import EventCorrelator
from kbsync.core.distribution import store_keyboard
from kbsync.core.guard import KeyboardGuard
from kbsync.core.resolver import match_reply, resolve_active_keyboard
from kbsync.core.sync import RemoteSync
from kbsync.core.updates import parse_update
from kbsync.errors import NoCallback, UpdateOutcome
from kbsync.keyboards import InlineKeyboard
from kbsync.models import (
    Bot,
    Callback,
    CallbackTrigger,
    Chat,
    ChatKeyboardRecord,
    ChosenInlineResult,
    ChosenInlineResultTrigger,
    IncomingMessage,
    InlineQuery,
    InlineQueryTrigger,
    MessageTrigger,
    OutgoingMessage,
    Trigger,
    User,
)
from kbsync.store.keyboards import KeyboardStore
from kbsync.store.messages import MessageStore
from kbsync.transports.base import Transport
from kbsync.utils.logging import get_logger


@dataclass
class Context:
    service_name: str
    bot: Bot
    store: MessageStore
    keyboards: KeyboardStore
    transport: Transport
    config: SyncConfig = field(default_factory=SyncConfig)
    user: User = field(default_factory=User)
    chat: Chat = field(default_factory=Chat)
    trigger: Trigger | None = None
    request_id: str = ""
    inline_query_answered_at: datetime | None = None

    def __post_init__(self) -> None:
        self._sync = RemoteSync(self.store, self.transport, self.config)
        self._guard = KeyboardGuard(self.store, self._sync)
        self._correlator = EventCorrelator(self.store, self._guard, self.config)

    @classmethod
    async def from_update(
        cls,
        update: dict[str, Any],
        *,
        service_name: str,
        bot: Bot,
        store: MessageStore,
        keyboards: KeyboardStore,
        transport: Transport,
        config: SyncConfig | None = None,
        request_id: str = "",
    ) -> Context:
        user, chat, trigger = await parse_update(update, bot.id, store)
        if user.id:
            # Keeps @username mentions resolvable for selective keyboards
            await keyboards.upsert_user(user)
        return cls(
            service_name=service_name,
            bot=bot,
            store=store,
            keyboards=keyboards,
            transport=transport,
            config=config or SyncConfig(),
            user=user,
            chat=chat,
            trigger=trigger,
            request_id=request_id,
        )

    # ------------------------------------------------------------------
    # Trigger variants
    # ------------------------------------------------------------------

    @property
    def message(self) -> IncomingMessage | None:
        return self.trigger.message if isinstance(self.trigger, MessageTrigger) else None

    @property
    def inline_query(self) -> InlineQuery | None:
        return self.trigger.query if isinstance(self.trigger, InlineQueryTrigger) else None

    @property
    def chosen_inline_result(self) -> ChosenInlineResult | None:
        if isinstance(self.trigger, ChosenInlineResultTrigger):
            return self.trigger.result
        return None

    @property
    def callback(self) -> Callback | None:
        return self.trigger.callback if isinstance(self.trigger, CallbackTrigger) else None

    def log(self) -> structlog.stdlib.BoundLogger:
        """Logger bound with everything known about this request."""
        fields: dict[str, Any] = {"service": self.service_name, "bot": self.bot.id}
        if self.user.id > 0:
            fields["user"] = self.user.id
        if self.chat.id:
            fields["chat"] = self.chat.id
        if self.request_id:
            fields["request_id"] = self.request_id

        trigger = self.trigger
        if isinstance(trigger, MessageTrigger):
            fields["msg"] = trigger.message.text
        elif isinstance(trigger, InlineQueryTrigger):
            fields["inlinequery"] = trigger.query.query
        elif isinstance(trigger, ChosenInlineResultTrigger):
            fields["chosenresult"] = trigger.result.result_id
        elif isinstance(trigger, CallbackTrigger):
            cb = trigger.callback
            fields["callback"] = cb.data
            if cb.message.msg_id > 0:
                fields["callback_msgid"] = cb.message.msg_id
            else:
                fields["callback_inlinemsgid"] = cb.message.inline_msg_id
        return get_logger("kbsync.context").bind(**fields)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def new_message(self) -> OutgoingMessage:
        """Message addressed to the current chat, or to the user when there is none."""
        return OutgoingMessage(
            bot_id=self.bot.id,
            from_id=self.bot.id,
            chat_id=self.chat.id or self.user.id,
            web_preview=True,
        )

    async def send(self, msg: OutgoingMessage) -> OutgoingMessage:
        """Send, persist, then record the reply keyboard it carries (if any)."""
        msg.msg_id = await self.transport.send_message(
            msg.chat_id,
            msg.text,
            parse_mode=msg.parse_mode,
            disable_web_page_preview=not msg.web_preview,
            reply_to_message_id=msg.reply_to_msg_id,
            reply_markup=msg.reply_markup(),
        )
        await self.store.insert(msg)
        if msg.reply_keyboard is not None or msg.keyboard_hide:
            await store_keyboard(self.keyboards, msg)
        self.log().debug("message_sent", message_id=msg.id, msg_id=msg.msg_id)
        return msg

    # ------------------------------------------------------------------
    # Reply keyboards
    # ------------------------------------------------------------------

    async def keyboard(self) -> ChatKeyboardRecord | None:
        return await resolve_active_keyboard(
            self.keyboards, self.user.id, self.chat.id, self.bot.id
        )

    async def keyboard_answer(self) -> tuple[str, str] | None:
        """(button data, button text) when the current message presses a stored button."""
        message = self.message
        if message is None:
            return None
        record = await self.keyboard()
        if record is None:
            return None
        return match_reply(
            record,
            message.text,
            chat_id=self.chat.id,
            reply_to_msg_id=message.reply_to_msg_id,
        )

    # ------------------------------------------------------------------
    # Editing sent messages
    # ------------------------------------------------------------------

    async def edit_message_text(self, msg: OutgoingMessage, text: str) -> UpdateOutcome:
        return await self._guard.edit_text(msg, text, callback=self.callback)

    async def edit_message_text_and_inline_keyboard(
        self, msg: OutgoingMessage, from_state: str | None, text: str, keyboard: InlineKeyboard
    ) -> UpdateOutcome:
        return await self._guard.edit_whole_keyboard(
            msg, from_state, keyboard, text=text, callback=self.callback
        )

    async def edit_inline_keyboard(
        self, msg: OutgoingMessage, from_state: str | None, keyboard: InlineKeyboard
    ) -> UpdateOutcome:
        return await self._guard.edit_whole_keyboard(
            msg, from_state, keyboard, callback=self.callback
        )

    async def edit_inline_button(
        self, msg: OutgoingMessage, keyboard_state: str | None, button_data: str, new_text: str
    ) -> UpdateOutcome:
        return await self.edit_inline_state_button(msg, keyboard_state, 0, button_data, 0, new_text)

    async def edit_inline_state_button(
        self,
        msg: OutgoingMessage,
        keyboard_state: str | None,
        old_state: int,
        button_data: str,
        new_state: int,
        new_text: str,
    ) -> UpdateOutcome:
        return await self._guard.edit_single_button(
            msg, keyboard_state, button_data, old_state, new_state, new_text,
            callback=self.callback,
        )

    async def edit_messages_text_with_event_id(self, bot_id: int, event_id: str, text: str) -> None:
        await self._correlator.edit_all_with_event_id(bot_id, event_id, text)

    async def edit_messages_with_event_id(
        self,
        bot_id: int,
        event_id: str,
        from_state: str | None,
        text: str,
        keyboard: InlineKeyboard,
    ) -> None:
        await self._correlator.edit_all_with_event_id(
            bot_id, event_id, text, keyboard, from_state=from_state
        )

    # Shortcuts for the message whose button was pressed

    def _pressed(self) -> Callback:
        callback = self.callback
        if callback is None:
            raise NoCallback()
        return callback

    async def edit_pressed_message_text(self, text: str) -> UpdateOutcome:
        return await self.edit_message_text(self._pressed().message, text)

    async def edit_pressed_message_text_and_inline_keyboard(
        self, text: str, keyboard: InlineKeyboard
    ) -> UpdateOutcome:
        pressed = self._pressed().message
        return await self.edit_message_text_and_inline_keyboard(
            pressed, pressed.keyboard_state, text, keyboard
        )

    async def edit_pressed_inline_keyboard(self, keyboard: InlineKeyboard) -> UpdateOutcome:
        pressed = self._pressed().message
        return await self.edit_inline_keyboard(pressed, pressed.keyboard_state, keyboard)

    async def edit_pressed_inline_button(self, new_state: int, new_text: str) -> UpdateOutcome:
        self.log().info("edit_pressed_inline_button", new_text=new_text, new_state=new_state)
        callback = self._pressed()
        return await self.edit_inline_state_button(
            callback.message,
            callback.message.keyboard_state,
            callback.state,
            callback.data,
            new_state,
            new_text,
        )

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def answer_callback_query(self, text: str = "", show_alert: bool = False) -> None:
        await answer_callback(self.transport, self.callback, text, show_alert)

    def _inline_query_or_raise(self) -> InlineQuery:
        query = self.inline_query
        if query is None:
            raise ValueError("no inline query to answer")
        return query

    def _mark_inline_answered(self, query: InlineQuery) -> None:
        now = datetime.now(timezone.utc)
        self.inline_query_answered_at = now
        elapsed = (now - query.received_at).total_seconds()
        if elapsed > self.config.slow_inline_answer:
            self.log().warning("slow_inline_answer", seconds=round(elapsed, 3))

    async def answer_inline_query_with_results(
        self, results: list[dict[str, Any]], cache_time: int = 0, next_offset: str = ""
    ) -> None:
        query = self._inline_query_or_raise()
        try:
            await self.transport.answer_inline_query(
                query.id, results, cache_time=cache_time, next_offset=next_offset
            )
        finally:
            self._mark_inline_answered(query)

    async def answer_inline_query_with_pm(self, text: str, parameter: str) -> None:
        query = self._inline_query_or_raise()
        try:
            await self.transport.answer_inline_query(
                query.id, [], switch_pm_text=text, switch_pm_parameter=parameter
            )
        finally:
            self._mark_inline_answered(query)
