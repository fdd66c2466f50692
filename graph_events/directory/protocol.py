"""Directory client protocol (Graph-like interface)."""

from datetime import datetime
from typing import Protocol

from graph_events.directory.models import DeltaPage, Group, Subscription, User, UserProfile


class DirectoryClient(Protocol):
    """Remote directory operations used by the notification handlers.

    Every method raises NotFoundError for missing objects and DirectoryError
    for any other service-reported failure.
    """

    async def get_user_by_url(self, resource: str) -> User:
        """Resolve a user from a relative resource path such as `users/{id}`."""
        ...

    async def get_group_by_url(self, resource: str) -> Group:
        """Resolve a group from a relative resource path such as `groups/{id}`."""
        ...

    async def group_members_delta(self, group_id: str) -> DeltaPage:
        """First page of a groups delta query filtered to one group, members expanded."""
        ...

    async def get_delta_page(self, link: str) -> DeltaPage:
        """Follow a next link or delta link."""
        ...

    async def get_user_profile(self, user_id: str) -> UserProfile:
        ...

    async def list_subscriptions(self) -> list[Subscription]:
        ...

    async def create_subscription(self, subscription: Subscription) -> Subscription | None:
        ...

    async def update_subscription_expiration(
        self, subscription_id: str, expiration: datetime
    ) -> Subscription | None:
        ...

    async def delete_subscription(self, subscription_id: str) -> None:
        ...
