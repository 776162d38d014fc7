"""Inline and reply keyboard value types."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

MIN_SUB_STATE = 0
MAX_SUB_STATE = 9

# Bot API limit for callback_data, one byte is taken by the sub-state digit
CALLBACK_DATA_LIMIT = 64


def checksum_string(text: str) -> str:
    """Deterministic checksum used to match reply texts against stored buttons."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def valid_sub_state(state: int) -> bool:
    return MIN_SUB_STATE <= state <= MAX_SUB_STATE


def parse_callback_data(raw: str) -> tuple[str, int]:
    """Split wire callback_data into (data, sub_state)."""
    if raw and raw[-1].isdigit():
        return raw[:-1], int(raw[-1])
    return raw, 0


@dataclass
class Button:
    text: str
    data: str = ""
    state: int = 0
    url: str = ""
    switch_inline_query: str | None = None

    def __post_init__(self) -> None:
        if len(self.data.encode("utf-8")) >= CALLBACK_DATA_LIMIT:
            raise ValueError(
                f"button data {self.data!r} exceeds {CALLBACK_DATA_LIMIT - 1} bytes"
            )

    def to_api(self) -> dict[str, Any]:
        """Inline button in Bot API form."""
        out: dict[str, Any] = {"text": self.text}
        if self.url:
            out["url"] = self.url
        elif self.switch_inline_query is not None:
            out["switch_inline_query"] = self.switch_inline_query
        else:
            out["callback_data"] = f"{self.data}{self.state}"
        return out

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"text": self.text, "data": self.data, "state": self.state}
        if self.url:
            out["url"] = self.url
        if self.switch_inline_query is not None:
            out["switch_inline_query"] = self.switch_inline_query
        return out

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Button:
        return cls(
            text=d.get("text", ""),
            data=d.get("data", ""),
            state=int(d.get("state", 0)),
            url=d.get("url", ""),
            switch_inline_query=d.get("switch_inline_query"),
        )


@dataclass
class InlineKeyboard:
    """Grid of buttons plus the keyboard-level state label.

    The label is the optimistic-concurrency token: every stored change is
    conditioned on the label the caller believes is current.
    """

    buttons: list[list[Button]] = field(default_factory=list)
    state: str = ""

    def find(self, data: str) -> tuple[int, int]:
        """Position of the first button carrying ``data``, or (-1, -1)."""
        for i, row in enumerate(self.buttons):
            for j, button in enumerate(row):
                if button.data == data:
                    return i, j
        return -1, -1

    def button(self, row: int, col: int) -> Button:
        return self.buttons[row][col]

    def add_row(self, *buttons: Button) -> InlineKeyboard:
        self.buttons.append(list(buttons))
        return self

    def to_api(self) -> dict[str, Any]:
        return {"inline_keyboard": [[b.to_api() for b in row] for row in self.buttons]}

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "buttons": [[b.to_dict() for b in row] for row in self.buttons],
        }

    def to_json(self) -> str:
        # Compact separators match what SQLite's json_set() writes back
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> InlineKeyboard:
        return cls(
            buttons=[[Button.from_dict(b) for b in row] for row in d.get("buttons", [])],
            state=d.get("state", ""),
        )

    @classmethod
    def from_json(cls, raw: str) -> InlineKeyboard:
        return cls.from_dict(json.loads(raw))

    def copy(self) -> InlineKeyboard:
        return InlineKeyboard.from_dict(self.to_dict())


@dataclass
class ReplyKeyboard:
    """Custom keyboard whose presses arrive back as plain text messages."""

    buttons: list[list[Button]] = field(default_factory=list)
    one_time: bool = False
    resize: bool = True

    def to_api(self, selective: bool = False) -> dict[str, Any]:
        return {
            "keyboard": [[{"text": b.text} for b in row] for row in self.buttons],
            "one_time_keyboard": self.one_time,
            "resize_keyboard": self.resize,
            "selective": selective,
        }

    def checksums(self) -> dict[str, str]:
        """Stored form: checksum of the button text -> button data."""
        return {
            checksum_string(b.text): (b.data or b.text)
            for row in self.buttons
            for b in row
        }
