"""Utility modules."""

from graph_events.utils.logger import bind_context, clear_context, get_logger, unbind_context

__all__ = [
    "bind_context",
    "clear_context",
    "get_logger",
    "unbind_context",
]
