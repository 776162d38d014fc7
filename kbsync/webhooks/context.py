"""Access to an incoming webhook request's body, headers and form."""

from __future__ import annotations

import json
from typing import Any, TypeVar
from urllib.parse import unquote_plus
from uuid import uuid4

from aiohttp import web
from multidict import MultiDictProxy
from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)

_FORM_PAYLOAD_PREFIX = b"payload="


class WebhookContext:
    """Wraps an aiohttp request for a service's webhook handler.

    The body is read once and cached, so ``raw()``, ``json()`` and
    ``form()`` can be combined in any order.
    """

    def __init__(self, request: web.Request) -> None:
        self._request = request
        self._body: bytes | None = None
        self._first_parse = False
        self._request_id = request.headers.get("X-Request-ID") or uuid4().hex[:16]

    @property
    def first_parse(self) -> bool:
        """True once this context has read the body from the wire."""
        return self._first_parse

    @property
    def headers(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for key, value in self._request.headers.items():
            out.setdefault(key, []).append(value)
        return out

    def header(self, key: str) -> str:
        return self._request.headers.get(key, "")

    @property
    def hook_id(self) -> str:
        return self._request.match_info.get("param", "")

    @property
    def request_id(self) -> str:
        return self._request_id

    async def raw(self) -> bytes:
        if self._body is None:
            self._first_parse = True
            self._body = await self._request.read()
        return self._body

    async def json(self, model: type[ModelT] | None = None) -> Any:
        """Decode the JSON body, accepting the ``payload=<urlencoded json>`` form too."""
        body = await self.raw()
        try:
            data = json.loads(body)
        except ValueError:
            if not body.startswith(_FORM_PAYLOAD_PREFIX):
                raise
            data = json.loads(unquote_plus(body[len(_FORM_PAYLOAD_PREFIX):].decode("utf-8")))
        if model is not None:
            return model.model_validate(data)
        return data

    async def form(self) -> MultiDictProxy[str | web.FileField]:
        await self.raw()
        # aiohttp serves post() from the body cached by read()
        return await self._request.post()

    async def form_value(self, key: str) -> str:
        form = await self.form()
        value = form.get(key, "")
        return value if isinstance(value, str) else ""
