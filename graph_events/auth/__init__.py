"""Authentication and token persistence for Graph API access."""

from graph_events.auth.token_cache import (
    get_graph_credential,
    TOKEN_CACHE_PATH,
)

__all__ = [
    "get_graph_credential",
    "TOKEN_CACHE_PATH",
]
