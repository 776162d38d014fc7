"""Turn a raw Bot API update into the trigger variant of the current request."""

from __future__ import annotations

from typing import Any

from kbsync.keyboards import parse_callback_data
from kbsync.models import (
    Callback,
    CallbackTrigger,
    Chat,
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
from kbsync.store.messages import MessageStore


def _user(data: dict[str, Any] | None) -> User:
    data = data or {}
    return User(
        id=int(data.get("id", 0)),
        username=data.get("username", ""),
        first_name=data.get("first_name", ""),
    )


def _chat(data: dict[str, Any] | None) -> Chat:
    data = data or {}
    return Chat(id=int(data.get("id", 0)), type=data.get("type", ""), title=data.get("title", ""))


async def parse_update(
    update: dict[str, Any], bot_id: int, store: MessageStore
) -> tuple[User, Chat, Trigger | None]:
    """Resolve user, chat and the single trigger carried by ``update``."""
    if "message" in update:
        raw = update["message"]
        user, chat = _user(raw.get("from")), _chat(raw.get("chat"))
        message = IncomingMessage(
            msg_id=int(raw.get("message_id", 0)),
            chat_id=chat.id,
            from_id=user.id,
            text=raw.get("text", ""),
            bot_id=bot_id,
            reply_to_msg_id=int((raw.get("reply_to_message") or {}).get("message_id", 0)),
        )
        return user, chat, MessageTrigger(message)

    if "inline_query" in update:
        raw = update["inline_query"]
        user = _user(raw.get("from"))
        query = InlineQuery(
            id=raw["id"], from_id=user.id, query=raw.get("query", ""), offset=raw.get("offset", "")
        )
        return user, Chat(), InlineQueryTrigger(query)

    if "chosen_inline_result" in update:
        raw = update["chosen_inline_result"]
        user = _user(raw.get("from"))
        inline_msg_id = raw.get("inline_message_id", "")
        stored = None
        if inline_msg_id:
            stored = await store.find_by_inline_msg_id(bot_id, inline_msg_id)
        result = ChosenInlineResult(
            result_id=raw.get("result_id", ""),
            from_id=user.id,
            query=raw.get("query", ""),
            inline_msg_id=inline_msg_id,
            message=stored,
        )
        return user, Chat(), ChosenInlineResultTrigger(result)

    if "callback_query" in update:
        raw = update["callback_query"]
        user = _user(raw.get("from"))
        remote = raw.get("message") or {}
        chat = _chat(remote.get("chat"))
        inline_msg_id = raw.get("inline_message_id", "")

        if remote:
            stored = await store.find_by_msg_id(bot_id, chat.id, int(remote.get("message_id", 0)))
        else:
            stored = await store.find_by_inline_msg_id(bot_id, inline_msg_id)
        if stored is None:
            # Not ours or already purged; edits on it fail with MessageNotFound
            stored = OutgoingMessage(
                bot_id=bot_id,
                chat_id=chat.id,
                msg_id=int(remote.get("message_id", 0)),
                inline_msg_id=inline_msg_id,
                text=remote.get("text", ""),
            )

        data, state = parse_callback_data(raw.get("data", ""))
        callback = Callback(id=raw["id"], message=stored, data=data, state=state)
        return user, chat, CallbackTrigger(callback)

    return User(), Chat(), None
