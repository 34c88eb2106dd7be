"""Built-in agents."""

from .echo_agent import EchoAgent

__all__ = ["EchoAgent"]
