"""Conditional (compare-and-swap) edits of stored interactive messages.

The store's conditional update is the only serialization point between
concurrent requests: every change matches the message identity *and* the
keyboard state label the caller believes is current. A request that loses
the race gets ``UpdateOutcome.NOOP`` and must re-read before trying again.
"""

from __future__ import annotations

from kbsync.core.sync import RemoteSync
from kbsync.errors import ButtonNotFound, MessageNotFound, UpdateOutcome
from kbsync.keyboards import InlineKeyboard, valid_sub_state
from kbsync.models import Callback, OutgoingMessage
from kbsync.store.messages import MessageStore, Snapshot
from kbsync.utils.logging import get_logger

log = get_logger(__name__)


def _rollback_local(msg: OutgoingMessage, snapshot: Snapshot) -> None:
    msg.text = snapshot.message.text
    msg.keyboard = snapshot.message.keyboard


class KeyboardGuard:
    def __init__(self, store: MessageStore, sync: RemoteSync) -> None:
        self._store = store
        self._sync = sync

    async def edit_whole_keyboard(
        self,
        msg: OutgoingMessage,
        expected_state: str | None,
        keyboard: InlineKeyboard,
        *,
        text: str | None = None,
        callback: Callback | None = None,
    ) -> UpdateOutcome:
        """Replace the keyboard (and optionally the text) if the state is still ``expected_state``."""
        if msg.id is None:
            raise MessageNotFound(None, expected_state)

        snapshot = await self._store.find_and_modify(
            msg.id, expected_state, text=text, keyboard=keyboard
        )
        if snapshot is None:
            raise MessageNotFound(msg.id, expected_state)
        if not snapshot.updated:
            log.info(
                "keyboard_state_moved",
                message_id=msg.id,
                expected_state=expected_state,
                current_state=snapshot.keyboard_state,
            )
            return UpdateOutcome.NOOP

        msg.keyboard = keyboard
        if text is not None:
            msg.text = text

        target = snapshot.message

        async def push() -> None:
            if text is None:
                await self._sync.push_keyboard(target, keyboard)
            else:
                await self._sync.push_text(target, text, keyboard)

        outcome = await self._sync.apply(snapshot, push, callback=callback)
        if outcome is UpdateOutcome.REVERTED:
            _rollback_local(msg, snapshot)
        return outcome

    async def edit_text(
        self,
        msg: OutgoingMessage,
        text: str,
        *,
        callback: Callback | None = None,
    ) -> UpdateOutcome:
        """Change only the text, conditioned on the keyboard state ``msg`` carries."""
        if msg.id is None:
            raise MessageNotFound(None, msg.keyboard_state)
        if msg.text == text:
            log.debug("text_not_modified", message_id=msg.id)
            return UpdateOutcome.NOOP

        snapshot = await self._store.find_and_modify(msg.id, msg.keyboard_state, text=text)
        if snapshot is None:
            raise MessageNotFound(msg.id, msg.keyboard_state)
        if not snapshot.updated:
            log.info(
                "keyboard_state_moved",
                message_id=msg.id,
                expected_state=msg.keyboard_state,
                current_state=snapshot.keyboard_state,
            )
            return UpdateOutcome.NOOP

        msg.text = text
        target = snapshot.message
        outcome = await self._sync.apply(
            snapshot,
            lambda: self._sync.push_text(target, text, target.keyboard),
            callback=callback,
        )
        if outcome is UpdateOutcome.REVERTED:
            _rollback_local(msg, snapshot)
        return outcome

    async def edit_single_button(
        self,
        msg: OutgoingMessage,
        keyboard_state: str | None,
        button_data: str,
        old_sub_state: int,
        new_sub_state: int,
        new_text: str,
        *,
        callback: Callback | None = None,
    ) -> UpdateOutcome:
        """Change one button's text (and sub-state) located by its data."""
        for name, value in (("old_sub_state", old_sub_state), ("new_sub_state", new_sub_state)):
            if not valid_sub_state(value):
                log.error(
                    "button_sub_state_out_of_range",
                    argument=name,
                    value=value,
                    data=button_data,
                    text=new_text,
                )

        if msg.id is None:
            raise MessageNotFound(None, keyboard_state)

        current = await self._store.get(msg.id)
        if current is None or current.keyboard is None or current.keyboard_state != keyboard_state:
            raise MessageNotFound(msg.id, keyboard_state)

        row, col = current.keyboard.find(button_data)
        if row < 0:
            raise ButtonNotFound(msg.id, button_data)

        sub_state = new_sub_state if new_sub_state != old_sub_state else None
        # Store first: it decides which concurrent press wins
        snapshot = await self._store.modify_button(
            msg.id, keyboard_state, row, col, button_data, new_text, sub_state
        )
        if snapshot is None:
            raise MessageNotFound(msg.id, keyboard_state)
        if not snapshot.updated or snapshot.message.keyboard is None:
            raise ButtonNotFound(msg.id, button_data, row, col)

        keyboard = snapshot.message.keyboard.copy()
        button = keyboard.button(row, col)
        button.text = new_text
        if sub_state is not None:
            button.state = sub_state
        msg.keyboard = keyboard

        target = snapshot.message
        outcome = await self._sync.apply(
            snapshot,
            lambda: self._sync.push_keyboard(target, keyboard),
            callback=callback,
        )
        if outcome is UpdateOutcome.REVERTED:
            _rollback_local(msg, snapshot)
        return outcome
