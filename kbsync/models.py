"""Typed models for outgoing messages, keyboard records and incoming triggers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from kbsync.keyboards import InlineKeyboard, ReplyKeyboard


@dataclass
class Bot:
    id: int
    username: str = ""


@dataclass
class User:
    id: int = 0
    username: str = ""
    first_name: str = ""


@dataclass
class Chat:
    id: int = 0
    type: str = ""
    title: str = ""

    @property
    def is_group(self) -> bool:
        return self.id < 0


@dataclass
class OutgoingMessage:
    """A message the bot sent, as recorded in the message store.

    Exactly one of ``msg_id`` / ``inline_msg_id`` is set once the message was
    delivered: inline-query results have no chat and are addressed by
    ``inline_msg_id`` only.
    """

    id: int | None = None
    bot_id: int = 0
    chat_id: int = 0
    from_id: int = 0
    msg_id: int = 0
    inline_msg_id: str = ""
    text: str = ""
    parse_mode: str = ""
    web_preview: bool = True
    keyboard: InlineKeyboard | None = None
    reply_keyboard: ReplyKeyboard | None = None
    keyboard_hide: bool = False
    selective: bool = False
    event_id: str = ""
    reply_to_msg_id: int = 0
    reply_to_user_id: int = 0
    mention_user_ids: list[int] = field(default_factory=list)
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_group(self) -> bool:
        return self.chat_id < 0

    @property
    def keyboard_state(self) -> str | None:
        return self.keyboard.state if self.keyboard is not None else None

    def edit_target(self) -> dict[str, Any]:
        """Bot API addressing fields for edits of this message."""
        if self.msg_id:
            return {"chat_id": self.chat_id, "message_id": self.msg_id}
        return {"inline_message_id": self.inline_msg_id}

    def reply_markup(self) -> dict[str, Any] | None:
        if self.keyboard is not None:
            return self.keyboard.to_api()
        if self.reply_keyboard is not None:
            return self.reply_keyboard.to_api(selective=self.selective)
        if self.keyboard_hide:
            return {"remove_keyboard": True, "selective": self.selective}
        return None


@dataclass
class ChatKeyboardRecord:
    """Which reply keyboard is active for a chat (or for a user inside a chat)."""

    chat_id: int
    bot_id: int
    msg_id: int
    keyboard: dict[str, str] = field(default_factory=dict)
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Incoming triggers
# ---------------------------------------------------------------------------

@dataclass
class IncomingMessage:
    msg_id: int
    chat_id: int
    from_id: int
    text: str = ""
    bot_id: int = 0
    reply_to_msg_id: int = 0
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class InlineQuery:
    id: str
    from_id: int
    query: str = ""
    offset: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ChosenInlineResult:
    result_id: str
    from_id: int
    query: str = ""
    inline_msg_id: str = ""
    # Generated message saved in the store, when one was recorded
    message: OutgoingMessage | None = None


@dataclass
class Callback:
    id: str
    message: OutgoingMessage
    data: str = ""
    state: int = 0
    answered_at: datetime | None = None
    # Set while an answer call is in flight so a concurrent answer is refused
    answering: bool = field(default=False, repr=False)


@dataclass(frozen=True)
class MessageTrigger:
    message: IncomingMessage


@dataclass(frozen=True)
class InlineQueryTrigger:
    query: InlineQuery


@dataclass(frozen=True)
class ChosenInlineResultTrigger:
    result: ChosenInlineResult


@dataclass(frozen=True)
class CallbackTrigger:
    callback: Callback


# Exactly one variant, or None when the work was not started by Telegram
Trigger = Union[MessageTrigger, InlineQueryTrigger, ChosenInlineResultTrigger, CallbackTrigger]
