"""Record which reply keyboard is active after a message is sent."""

from __future__ import annotations

import re

from kbsync.errors import NoTargetUsers
from kbsync.models import ChatKeyboardRecord, OutgoingMessage
from kbsync.store.keyboards import KeyboardStore
from kbsync.utils.logging import get_logger

log = get_logger(__name__)

_MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z][A-Za-z0-9_]{4,31})")


def extract_mentions(text: str) -> list[str]:
    return _MENTION_RE.findall(text or "")


async def detect_target_users(keyboards: KeyboardStore, msg: OutgoingMessage) -> list[int]:
    """Users a selective keyboard is addressed to: explicit ids, reply target, @mentions."""
    targets: set[int] = set(msg.mention_user_ids)
    if msg.reply_to_user_id:
        targets.add(msg.reply_to_user_id)
    usernames = extract_mentions(msg.text)
    if usernames:
        targets.update(await keyboards.user_ids_by_usernames(usernames))
    targets.discard(0)
    return sorted(targets)


async def store_keyboard(keyboards: KeyboardStore, msg: OutgoingMessage) -> None:
    """Update keyboard records for a message the remote side accepted.

    Each step is atomic on its own; a selective send touching several users
    is not wrapped in one transaction.
    """
    if msg.reply_keyboard is not None:
        record = ChatKeyboardRecord(
            chat_id=msg.chat_id,
            bot_id=msg.bot_id,
            msg_id=msg.msg_id,
            keyboard=msg.reply_keyboard.checksums(),
        )

        if msg.selective and msg.is_group:
            users = await detect_target_users(keyboards, msg)
            if not users:
                raise NoTargetUsers()
            pulled = await keyboards.pull_user_records(users, msg.chat_id)
            await keyboards.push_user_records(users, record)
            log.debug(
                "selective_keyboard_stored",
                chat_id=msg.chat_id,
                users=users,
                replaced=pulled,
            )
        elif msg.is_group:
            # A keyboard for the whole group overrides every selective one in it
            pulled = await keyboards.pull_all_user_records(msg.chat_id)
            await keyboards.set_chat_records(msg.chat_id, [record])
            log.info("group_keyboard_stored", chat_id=msg.chat_id, users_cleared=pulled)
        else:
            await keyboards.pull_chat_records(msg.chat_id, msg.bot_id)
            await keyboards.push_chat_record(record)
            log.debug("chat_keyboard_stored", chat_id=msg.chat_id, bot_id=msg.bot_id)

    elif msg.keyboard_hide:
        if msg.selective and msg.is_group:
            users = await detect_target_users(keyboards, msg)
            removed = await keyboards.pull_user_records(users, msg.chat_id, msg.bot_id)
        else:
            removed = await keyboards.pull_chat_records(msg.chat_id, msg.bot_id)
        log.info("keyboard_hidden", chat_id=msg.chat_id, selective=msg.selective, removed=removed)
