"""Apply one logical edit to every recent message sharing an event id."""

from __future__ import annotations

from kbsync.config import SyncConfig
from kbsync.core.guard import KeyboardGuard
from kbsync.errors import KeyboardSyncError, RevertFailed, UpdateOutcome
from kbsync.keyboards import InlineKeyboard
from kbsync.store.messages import MessageStore
from kbsync.utils.logging import get_logger

log = get_logger(__name__)


class EventCorrelator:
    def __init__(self, store: MessageStore, guard: KeyboardGuard, config: SyncConfig) -> None:
        self._store = store
        self._guard = guard
        self._config = config

    async def edit_all_with_event_id(
        self,
        bot_id: int,
        event_id: str,
        text: str,
        keyboard: InlineKeyboard | None = None,
        *,
        from_state: str | None = None,
    ) -> None:
        """Best-effort edit of the newest ``max_event_messages`` messages for ``event_id``.

        Without ``from_state`` each message is conditioned on its own stored
        state label. One failing message never stops the rest.
        A failed revert is re-raised after every message was tried.
        """
        messages = await self._store.latest_with_event_id(
            bot_id, event_id, self._config.max_event_messages
        )
        outcomes: dict[str, int] = {}
        revert_failure: RevertFailed | None = None
        for message in messages:
            try:
                if keyboard is None:
                    outcome = await self._guard.edit_text(message, text)
                else:
                    expected = from_state if from_state is not None else message.keyboard_state
                    outcome = await self._guard.edit_whole_keyboard(
                        message, expected, keyboard.copy(), text=text
                    )
            except RevertFailed as exc:
                log.error(
                    "event_revert_failed",
                    event_id=event_id,
                    message_id=message.id,
                    error=str(exc),
                )
                revert_failure = revert_failure or exc
                continue
            except KeyboardSyncError as exc:
                log.error(
                    "event_edit_failed",
                    event_id=event_id,
                    message_id=message.id,
                    error=str(exc),
                )
                continue
            outcomes[outcome.value] = outcomes.get(outcome.value, 0) + 1

        log.info(
            "event_messages_edited",
            bot_id=bot_id,
            event_id=event_id,
            found=len(messages),
            updated=outcomes.get(UpdateOutcome.UPDATED.value, 0),
            skipped=outcomes.get(UpdateOutcome.NOOP.value, 0),
            reverted=outcomes.get(UpdateOutcome.REVERTED.value, 0),
        )
        if revert_failure is not None:
            raise revert_failure
