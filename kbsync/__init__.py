"""kbsync - interactive message and inline keyboard state engine."""
__version__ = "0.1.0"
