"""EventFactory module."""

from .factory import EventFactory

__all__ = ["EventFactory"]
