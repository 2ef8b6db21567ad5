"""AutoCut Pro export worker."""

__version__ = "1.0.0"
