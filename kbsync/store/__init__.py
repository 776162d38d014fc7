"""SQLite-backed stores for sent messages and active reply keyboards."""

from kbsync.store.keyboards import KeyboardStore
from kbsync.store.messages import MessageStore, Snapshot

__all__ = ["KeyboardStore", "MessageStore", "Snapshot"]
