"""Directory client: Graph-like interface, Graph SDK and in-memory implementations."""

from graph_events.directory.errors import DirectoryError, NotFoundError
from graph_events.directory.graph_mock import InMemoryDirectory
from graph_events.directory.models import (
    DeltaPage,
    DirectoryObject,
    Group,
    RemovedMarker,
    ServicePrincipal,
    Subscription,
    UnsupportedObject,
    User,
    UserProfile,
    parse_directory_object,
    parse_directory_objects,
)
from graph_events.directory.protocol import DirectoryClient

__all__ = [
    "DeltaPage",
    "DirectoryClient",
    "DirectoryError",
    "DirectoryObject",
    "Group",
    "InMemoryDirectory",
    "NotFoundError",
    "RemovedMarker",
    "ServicePrincipal",
    "Subscription",
    "UnsupportedObject",
    "User",
    "UserProfile",
    "parse_directory_object",
    "parse_directory_objects",
]
