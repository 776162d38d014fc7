"""Push confirmed store changes to the remote side, reverting on failure."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import aiosqlite

from kbsync.config import SyncConfig
from kbsync.core.callbacks import answer_callback
from kbsync.errors import (
    AlreadyAnswered,
    RemoteError,
    RemoteErrorKind,
    RemoteTransient,
    RevertFailed,
    UpdateOutcome,
)
from kbsync.keyboards import InlineKeyboard
from kbsync.models import Callback, OutgoingMessage
from kbsync.store.messages import MessageStore, Snapshot
from kbsync.transports.base import Transport
from kbsync.utils.logging import get_logger

log = get_logger(__name__)


def _markup(keyboard: InlineKeyboard | None) -> dict[str, Any] | None:
    return keyboard.to_api() if keyboard is not None else None


class RemoteSync:
    def __init__(self, store: MessageStore, transport: Transport, config: SyncConfig) -> None:
        self._store = store
        self._transport = transport
        self._config = config

    async def push_text(
        self, target: OutgoingMessage, text: str, keyboard: InlineKeyboard | None
    ) -> None:
        await self._transport.edit_message_text(
            text,
            **target.edit_target(),
            parse_mode=target.parse_mode,
            disable_web_page_preview=not target.web_preview,
            reply_markup=_markup(keyboard),
        )

    async def push_keyboard(self, target: OutgoingMessage, keyboard: InlineKeyboard | None) -> None:
        await self._transport.edit_message_reply_markup(
            **target.edit_target(),
            reply_markup=_markup(keyboard),
        )

    async def apply(
        self,
        snapshot: Snapshot,
        push: Callable[[], Awaitable[None]],
        *,
        callback: Callback | None = None,
    ) -> UpdateOutcome:
        """Run the remote edit for an already applied store change.

        Any failure restores the pre-image so the store never claims a
        keyboard the user was not shown.
        """
        try:
            await push()
        except RemoteError as exc:
            await self._report(exc, snapshot, callback)
            await self.revert(snapshot, exc)
            return UpdateOutcome.REVERTED
        except Exception as exc:
            log.exception("remote_edit_failed", message_id=snapshot.message.id)
            await self.revert(snapshot, exc)
            return UpdateOutcome.REVERTED
        return UpdateOutcome.UPDATED

    async def revert(self, snapshot: Snapshot, error: Exception) -> None:
        message_id = snapshot.message.id
        try:
            restored = await self._store.restore(snapshot)
        except aiosqlite.Error as exc:
            log.error("revert_failed", message_id=message_id, error=str(exc))
            raise RevertFailed(message_id, error) from exc
        if not restored:
            log.error("revert_failed", message_id=message_id, error="message gone")
            raise RevertFailed(message_id, error)
        log.info("keyboard_reverted", message_id=message_id, state=snapshot.keyboard_state)

    async def _report(
        self, exc: RemoteError, snapshot: Snapshot, callback: Callback | None
    ) -> None:
        message = snapshot.message
        if not isinstance(exc, RemoteTransient):
            log.error(
                "remote_edit_failed",
                message_id=message.id,
                chat_id=message.chat_id,
                kind=exc.kind.value,
                description=exc.description,
            )
            return

        if exc.kind is RemoteErrorKind.RATE_LIMITED:
            log.warning("telegram_anti_flood", message_id=message.id, retry_after=exc.retry_after)
        else:
            log.warning(
                "remote_edit_unavailable",
                message_id=message.id,
                chat_id=message.chat_id,
                kind=exc.kind.value,
                migrate_to_chat_id=exc.migrate_to_chat_id,
            )

        if callback is None:
            return
        try:
            await answer_callback(self._transport, callback, self._config.outdated_notice)
        except AlreadyAnswered:
            pass
        except RemoteError as notice_exc:
            log.debug("outdated_notice_failed", error=str(notice_exc))
