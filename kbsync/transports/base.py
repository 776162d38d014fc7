"""Abstract remote messaging transport.

Every call either returns normally or raises a ``RemoteError`` subclass
(``RemoteTransient`` / ``RemoteFatal``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Transport(ABC):
    @property
    @abstractmethod
    def platform_name(self) -> str: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        parse_mode: str = "",
        disable_web_page_preview: bool = False,
        reply_to_message_id: int = 0,
        reply_markup: dict[str, Any] | None = None,
    ) -> int:
        """Send a message and return its remote message id."""

    @abstractmethod
    async def edit_message_text(
        self,
        text: str,
        *,
        chat_id: int = 0,
        message_id: int = 0,
        inline_message_id: str = "",
        parse_mode: str = "",
        disable_web_page_preview: bool = False,
        reply_markup: dict[str, Any] | None = None,
    ) -> None: ...

    @abstractmethod
    async def edit_message_reply_markup(
        self,
        *,
        chat_id: int = 0,
        message_id: int = 0,
        inline_message_id: str = "",
        reply_markup: dict[str, Any] | None = None,
    ) -> None: ...

    @abstractmethod
    async def answer_callback_query(
        self, callback_query_id: str, text: str = "", show_alert: bool = False
    ) -> None: ...

    @abstractmethod
    async def answer_inline_query(
        self,
        inline_query_id: str,
        results: list[dict[str, Any]],
        *,
        cache_time: int = 0,
        is_personal: bool = True,
        next_offset: str = "",
        switch_pm_text: str = "",
        switch_pm_parameter: str = "",
    ) -> None: ...
