"""Answering inline-button callbacks at most once."""

from __future__ import annotations

from datetime import datetime, timezone

from kbsync.errors import AlreadyAnswered, NoCallback
from kbsync.models import Callback
from kbsync.transports.base import Transport


async def answer_callback(
    transport: Transport,
    callback: Callback | None,
    text: str = "",
    show_alert: bool = False,
) -> None:
    """Show a toast (or alert) for the pressed button.

    The callback is claimed before the remote call, so a concurrent second
    answer fails with ``AlreadyAnswered`` instead of calling the remote side.
    """
    if callback is None:
        raise NoCallback()
    if callback.answered_at is not None or callback.answering:
        raise AlreadyAnswered(callback.id)

    callback.answering = True
    try:
        await transport.answer_callback_query(callback.id, text=text, show_alert=show_alert)
    finally:
        callback.answering = False
    callback.answered_at = datetime.now(timezone.utc)
