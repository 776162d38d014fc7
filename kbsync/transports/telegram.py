"""Telegram Bot API transport over httpx."""

from __future__ import annotations

import json
from typing import Any

import httpx

from kbsync.config import TelegramConfig
from kbsync.errors import RemoteErrorKind, RemoteFatal, classify_error
from kbsync.transports.base import Transport
from kbsync.utils.logging import get_logger

log = get_logger(__name__)

_NOT_MODIFIED = "message is not modified"


def _drop_empty(params: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v not in (None, "", 0, False)}


class TelegramTransport(Transport):
    def __init__(
        self,
        config: TelegramConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            base_url=config.api_base.rstrip("/"),
            timeout=config.timeout,
        )

    @property
    def platform_name(self) -> str:
        return "telegram"

    async def close(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        url = f"/bot{self._config.token}/{method}"
        try:
            resp = await self._http_client.post(url, json=params)
        except httpx.TimeoutException as exc:
            raise RemoteFatal(RemoteErrorKind.OTHER, f"{method} timed out") from exc
        except httpx.HTTPError as exc:
            raise RemoteFatal(RemoteErrorKind.OTHER, f"{method} failed: {exc}") from exc

        try:
            data = resp.json()
        except json.JSONDecodeError:
            raise RemoteFatal(
                RemoteErrorKind.OTHER,
                f"HTTP_{resp.status_code}:{resp.text[:200]}",
                resp.status_code,
            ) from None

        if data.get("ok"):
            return data.get("result")

        description = data.get("description", f"HTTP_{resp.status_code}")
        if _NOT_MODIFIED in description.lower():
            # Remote already shows what we asked for
            log.debug("telegram_not_modified", method=method)
            return None

        error = classify_error(
            int(data.get("error_code") or resp.status_code),
            description,
            data.get("parameters"),
        )
        log.warning(
            "telegram_api_error",
            method=method,
            kind=error.kind.value,
            error_code=error.error_code,
            description=description,
        )
        raise error

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
        params = _drop_empty({
            "parse_mode": parse_mode,
            "disable_web_page_preview": disable_web_page_preview,
            "reply_to_message_id": reply_to_message_id,
            "reply_markup": reply_markup,
        })
        result = await self._call("sendMessage", {"chat_id": chat_id, "text": text, **params})
        return int(result["message_id"])

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
    ) -> None:
        params = _drop_empty({
            "chat_id": chat_id,
            "message_id": message_id,
            "inline_message_id": inline_message_id,
            "parse_mode": parse_mode,
            "disable_web_page_preview": disable_web_page_preview,
            "reply_markup": reply_markup,
        })
        await self._call("editMessageText", {"text": text, **params})

    async def edit_message_reply_markup(
        self,
        *,
        chat_id: int = 0,
        message_id: int = 0,
        inline_message_id: str = "",
        reply_markup: dict[str, Any] | None = None,
    ) -> None:
        params = _drop_empty({
            "chat_id": chat_id,
            "message_id": message_id,
            "inline_message_id": inline_message_id,
            "reply_markup": reply_markup,
        })
        await self._call("editMessageReplyMarkup", params)

    async def answer_callback_query(
        self, callback_query_id: str, text: str = "", show_alert: bool = False
    ) -> None:
        params = _drop_empty({"text": text, "show_alert": show_alert})
        await self._call(
            "answerCallbackQuery", {"callback_query_id": callback_query_id, **params}
        )

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
    ) -> None:
        params = _drop_empty({
            "is_personal": is_personal,
            "next_offset": next_offset,
            "switch_pm_text": switch_pm_text,
            "switch_pm_parameter": switch_pm_parameter,
        })
        await self._call(
            "answerInlineQuery",
            {
                "inline_query_id": inline_query_id,
                "results": results,
                "cache_time": cache_time,
                **params,
            },
        )
