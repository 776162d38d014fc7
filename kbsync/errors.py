"""Exception taxonomy and update outcomes for keyboard state changes."""

from __future__ import annotations

from enum import Enum
from typing import Any


class UpdateOutcome(str, Enum):
    UPDATED = "updated"
    # Another request advanced the keyboard first, or there was nothing to change
    NOOP = "noop"
    # Store was changed, remote edit failed, store restored to the pre-image
    REVERTED = "reverted"


class KeyboardSyncError(Exception):
    """Base class for all kbsync errors."""


class MessageNotFound(KeyboardSyncError):
    def __init__(self, message_id: int | None, state: str | None = None) -> None:
        super().__init__(f"message {message_id} (state {state!r}) not found")
        self.message_id = message_id
        self.state = state


class ButtonNotFound(KeyboardSyncError):
    def __init__(
        self,
        message_id: int | None,
        data: str,
        row: int = -1,
        col: int = -1,
    ) -> None:
        where = f"[{row}][{col}] " if row >= 0 else ""
        super().__init__(f"button {where}{data!r} not found in message {message_id}")
        self.message_id = message_id
        self.data = data
        self.row = row
        self.col = col


class NoTargetUsers(KeyboardSyncError):
    def __init__(self) -> None:
        super().__init__(
            "selective keyboard has no valid users via @mentions or reply to a message"
        )


class NoCallback(KeyboardSyncError):
    def __init__(self) -> None:
        super().__init__("callback to answer is not presented")


class AlreadyAnswered(KeyboardSyncError):
    def __init__(self, callback_id: str) -> None:
        super().__init__(f"callback {callback_id} already answered")
        self.callback_id = callback_id


class RemoteErrorKind(str, Enum):
    CHAT_INACCESSIBLE = "chat_inaccessible"
    CHAT_MIGRATED = "chat_migrated"
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    OTHER = "other"


class RemoteError(KeyboardSyncError):
    """A remote messaging call did not apply."""

    def __init__(
        self,
        kind: RemoteErrorKind,
        description: str,
        error_code: int = 0,
        migrate_to_chat_id: int = 0,
        retry_after: int = 0,
    ) -> None:
        super().__init__(f"{kind.value}: {description}")
        self.kind = kind
        self.description = description
        self.error_code = error_code
        self.migrate_to_chat_id = migrate_to_chat_id
        self.retry_after = retry_after


class RemoteTransient(RemoteError):
    """Target temporarily unreachable, chat migrated, or rate limited."""


class RemoteFatal(RemoteError):
    """Any other remote failure, including timeouts."""


class RevertFailed(KeyboardSyncError):
    """The compensating store write after a remote failure did not go through."""

    def __init__(self, message_id: int | None, remote_error: Exception) -> None:
        super().__init__(
            f"failed to revert message {message_id} after remote error: {remote_error}"
        )
        self.message_id = message_id
        self.remote_error = remote_error


_INACCESSIBLE_MARKERS = (
    "chat not found",
    "bot was blocked",
    "bot was kicked",
    "bot is not a member",
    "have no rights",
    "not enough rights",
    "user is deactivated",
)


def classify_error(
    error_code: int,
    description: str,
    parameters: dict[str, Any] | None = None,
) -> RemoteError:
    """Map a Bot API error response to a RemoteTransient or RemoteFatal."""
    parameters = parameters or {}
    desc = description.lower()

    migrate_to = int(parameters.get("migrate_to_chat_id") or 0)
    if migrate_to:
        return RemoteTransient(
            RemoteErrorKind.CHAT_MIGRATED, description, error_code, migrate_to_chat_id=migrate_to
        )

    retry_after = int(parameters.get("retry_after") or 0)
    if error_code == 429 or retry_after or "too many requests" in desc:
        return RemoteTransient(
            RemoteErrorKind.RATE_LIMITED, description, error_code, retry_after=retry_after
        )

    if error_code == 403 or any(m in desc for m in _INACCESSIBLE_MARKERS):
        return RemoteTransient(RemoteErrorKind.CHAT_INACCESSIBLE, description, error_code)

    if error_code == 400:
        return RemoteFatal(RemoteErrorKind.VALIDATION, description, error_code)

    return RemoteFatal(RemoteErrorKind.OTHER, description, error_code)
