"""In-memory directory: users, groups, scripted membership deltas and subscriptions.

Backs the test suite and `serve --mock`. Optionally seeded from a JSON file:

    {
      "users": [{"id": "...", "displayName": "...", "userPrincipalName": "..."}],
      "groups": [{"id": "...", "displayName": "..."}],
      "subscriptions": [{"id": "...", "resource": "groups/.../members"}],
      "delta": {"<group id>": {"before": [[<members@delta>], ...], "after": [[...]]}}
    }
"""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from graph_events.directory.errors import DirectoryError, NotFoundError
from graph_events.directory.models import (
    DeltaPage,
    Group,
    Subscription,
    User,
    UserProfile,
)
from graph_events.utils.logger import get_logger

logger = get_logger("graph_events.directory.mock")

MOCK_DELTA_BASE = "mock://groups/delta"
NOT_FOUND = "Request_ResourceNotFound"


def _object_id(resource: str, collection: str) -> str | None:
    parts = resource.strip("/").split("/")
    if len(parts) >= 2 and parts[0].lower() == collection:
        return parts[1]
    return None


class InMemoryDirectory:
    """Directory client over in-memory state. Records every call in `calls`."""

    def __init__(
        self,
        users: list[UserProfile] | None = None,
        groups: list[Group] | None = None,
        subscriptions: list[Subscription] | None = None,
    ):
        self.users: dict[str, UserProfile] = {u.id: u for u in (users or [])}
        self.groups: dict[str, Group] = {g.id: g for g in (groups or [])}
        self.subscriptions: dict[str, Subscription] = {
            s.id: s for s in (subscriptions or []) if s.id
        }
        self.calls: list[tuple[str, str]] = []
        self.null_create = False
        self._pages: dict[str, DeltaPage] = {}
        self._delta_start: dict[str, str] = {}
        self._failures: dict[str, Exception] = {}

    @classmethod
    def from_file(cls, path: Path) -> "InMemoryDirectory":
        directory = cls()
        if not path.exists():
            logger.warning("mock_directory.file_missing", path=str(path))
            return directory
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        for item in data.get("users", []):
            directory.add_user(UserProfile.model_validate(item))
        for item in data.get("groups", []):
            directory.add_group(Group.model_validate(item))
        for item in data.get("subscriptions", []):
            sub = Subscription.model_validate(item)
            if sub.id:
                directory.subscriptions[sub.id] = sub
        for group_id, phases in (data.get("delta") or {}).items():
            directory.set_membership_delta(
                group_id,
                before=phases.get("before", []),
                after=phases.get("after"),
            )
        logger.info(
            "mock_directory.loaded",
            users=len(directory.users),
            groups=len(directory.groups),
            subscriptions=len(directory.subscriptions),
        )
        return directory

    def add_user(self, user: UserProfile) -> None:
        self.users[user.id] = user

    def add_group(self, group: Group) -> None:
        self.groups[group.id] = group

    def fail_on(self, method: str, error: Exception) -> None:
        """Make the next calls to `method` raise `error`."""
        self._failures[method] = error

    def set_membership_delta(
        self,
        group_id: str,
        before: list[list[dict[str, Any]] | None],
        after: list[list[dict[str, Any]] | None] | None = None,
    ) -> None:
        """Script the delta traversal for a group.

        `before` and `after` hold one `members@delta` list per page (None for a
        page whose group entry carries no annotation). The last "before" page
        returns a delta link that resolves to the "after" pages.
        """
        after_link = self._register_pages(group_id, "after", after or [], f"{MOCK_DELTA_BASE}/{group_id}/done")
        self._pages[f"{MOCK_DELTA_BASE}/{group_id}/done"] = DeltaPage(
            delta_link=f"{MOCK_DELTA_BASE}/{group_id}/done"
        )
        self._delta_start[group_id] = self._register_pages(group_id, "before", before, after_link)

    def _register_pages(
        self,
        group_id: str,
        phase: str,
        members_pages: list[list[dict[str, Any]] | None],
        final_link: str,
    ) -> str:
        if not members_pages:
            return final_link
        links = [f"{MOCK_DELTA_BASE}/{group_id}/{phase}/{i}" for i in range(len(members_pages))]
        for i, members in enumerate(members_pages):
            entry = Group(id=group_id, members_delta=members)
            last = i == len(members_pages) - 1
            self._pages[links[i]] = DeltaPage(
                value=[entry],
                next_link=None if last else links[i + 1],
                delta_link=final_link if last else None,
            )
        return links[0]

    def _record(self, method: str, arg: str = "") -> None:
        self.calls.append((method, arg))
        error = self._failures.get(method)
        if error is not None:
            raise error

    def called(self, method: str) -> list[str]:
        return [arg for name, arg in self.calls if name == method]

    async def get_user_by_url(self, resource: str) -> User:
        self._record("get_user_by_url", resource)
        user_id = _object_id(resource, "users")
        profile = self.users.get(user_id or "")
        if profile is None:
            raise NotFoundError(f"Resource '{user_id}' does not exist", code=NOT_FOUND, status_code=404)
        return User(
            id=profile.id,
            display_name=profile.display_name,
            user_principal_name=profile.user_principal_name,
        )

    async def get_group_by_url(self, resource: str) -> Group:
        self._record("get_group_by_url", resource)
        group = self.groups.get(_object_id(resource, "groups") or "")
        if group is None:
            raise NotFoundError(f"Resource '{resource}' does not exist", code=NOT_FOUND, status_code=404)
        return group

    async def group_members_delta(self, group_id: str) -> DeltaPage:
        self._record("group_members_delta", group_id)
        start = self._delta_start.get(group_id)
        if start is None:
            return DeltaPage(
                value=[Group(id=group_id)],
                delta_link=f"{MOCK_DELTA_BASE}/{group_id}/done",
            )
        return self._pages[start]

    async def get_delta_page(self, link: str) -> DeltaPage:
        self._record("get_delta_page", link)
        page = self._pages.get(link)
        if page is None:
            if link.endswith("/done"):
                return DeltaPage(delta_link=link)
            raise DirectoryError(f"Unknown delta link: {link}", code="SyncStateNotFound", status_code=410)
        return page

    async def get_user_profile(self, user_id: str) -> UserProfile:
        self._record("get_user_profile", user_id)
        profile = self.users.get(user_id)
        if profile is None:
            raise NotFoundError(f"Resource '{user_id}' does not exist", code=NOT_FOUND, status_code=404)
        return profile

    async def list_subscriptions(self) -> list[Subscription]:
        self._record("list_subscriptions")
        return list(self.subscriptions.values())

    async def create_subscription(self, subscription: Subscription) -> Subscription | None:
        self._record("create_subscription", subscription.resource or "")
        if self.null_create:
            return None
        created = subscription.model_copy(update={"id": str(uuid.uuid4())})
        self.subscriptions[created.id] = created
        return created

    async def update_subscription_expiration(
        self, subscription_id: str, expiration: datetime
    ) -> Subscription | None:
        self._record("update_subscription_expiration", subscription_id)
        sub = self.subscriptions.get(subscription_id)
        if sub is None:
            raise NotFoundError(f"Subscription '{subscription_id}' not found", code="ResourceNotFound", status_code=404)
        updated = sub.model_copy(update={"expiration_date_time": expiration})
        self.subscriptions[subscription_id] = updated
        return updated

    async def delete_subscription(self, subscription_id: str) -> None:
        self._record("delete_subscription", subscription_id)
        if self.subscriptions.pop(subscription_id, None) is None:
            raise NotFoundError(f"Subscription '{subscription_id}' not found", code="ResourceNotFound", status_code=404)
