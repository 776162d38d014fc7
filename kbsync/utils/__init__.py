"""Utility modules for kbsync."""

from kbsync.utils.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
