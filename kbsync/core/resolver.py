"""Find the reply keyboard a chat event answers, and match the reply text."""

from __future__ import annotations

from kbsync.keyboards import checksum_string
from kbsync.models import ChatKeyboardRecord
from kbsync.store.keyboards import KeyboardStore
from kbsync.utils.logging import get_logger

log = get_logger(__name__)


async def resolve_active_keyboard(
    keyboards: KeyboardStore, user_id: int, chat_id: int, bot_id: int
) -> ChatKeyboardRecord | None:
    """Per-user records first (selective keyboards), then the chat's per-bot records."""
    if user_id:
        for record in await keyboards.user_records(user_id):
            if record.chat_id == chat_id and record.bot_id == bot_id:
                return record

    for record in await keyboards.chat_records(chat_id):
        if record.chat_id == chat_id and record.bot_id == bot_id:
            return record

    return None


def match_reply(
    record: ChatKeyboardRecord | None,
    text: str,
    *,
    chat_id: int,
    reply_to_msg_id: int = 0,
) -> tuple[str, str] | None:
    """Return (button data, button text) if ``text`` is a press of the record's keyboard.

    In group chats the reply must point at the message that carried the
    keyboard, otherwise several visible keyboards would be ambiguous.
    """
    if record is None or not text:
        return None
    if chat_id < 0 and reply_to_msg_id != record.msg_id:
        return None
    data = record.keyboard.get(checksum_string(text))
    if data is None:
        return None
    log.debug("keyboard_button_pressed", data=data, text=text)
    return data, text
