"""Remote messaging transports."""

from kbsync.transports.base import Transport
from kbsync.transports.telegram import TelegramTransport

__all__ = [
    "Transport",
    "TelegramTransport",
]
