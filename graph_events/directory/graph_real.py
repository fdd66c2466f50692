"""Real Microsoft Graph API directory client (async)."""

from datetime import datetime
from typing import Any

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.groups.delta.delta_request_builder import DeltaRequestBuilder
from msgraph.generated.models.group import Group as GraphSDKGroup
from msgraph.generated.models.o_data_errors.o_data_error import ODataError
from msgraph.generated.models.subscription import Subscription as GraphSDKSubscription
from msgraph.generated.models.user import User as GraphSDKUser
from msgraph.generated.users.item.user_item_request_builder import UserItemRequestBuilder

from graph_events.auth.token_cache import get_graph_credential
from graph_events.directory.errors import DirectoryError, directory_error
from graph_events.directory.models import (
    DeltaPage,
    Group,
    RemovedMarker,
    Subscription,
    User,
    UserProfile,
)
from graph_events.utils.logger import get_logger

logger = get_logger("graph_events.directory.graph")

GROUP_DELTA_SELECT = ["id", "displayName", "description", "members"]
GROUP_DELTA_EXPAND = ["members($select=id,userPrincipalName,displayName)"]
USER_PROFILE_SELECT = ["id", "createdDateTime", "displayName", "userPrincipalName"]
PREFER_MINIMAL = "return=minimal"


def _to_directory_error(e: ODataError) -> DirectoryError:
    code = e.error.code if e.error else None
    message = (e.error.message if e.error else None) or str(e) or type(e).__name__
    return directory_error(message, code=code, status_code=e.response_status_code)


def _plain(value: Any) -> Any:
    """Turn additional_data values (kiota untyped nodes or JSON primitives) into plain dicts/lists."""
    if hasattr(value, "get_value"):
        value = value.get_value()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _removed_marker(additional_data: dict[str, Any] | None) -> RemovedMarker | None:
    raw = (additional_data or {}).get("@removed")
    if raw is None:
        return None
    raw = _plain(raw)
    return RemovedMarker.model_validate(raw if isinstance(raw, dict) else {"reason": str(raw)})


def _convert_sdk_group(group: GraphSDKGroup) -> Group:
    additional = group.additional_data or {}
    members_delta = additional.get("members@delta")
    return Group(
        id=group.id or "",
        odata_type=group.odata_type,
        display_name=group.display_name,
        description=group.description,
        removed=_removed_marker(additional),
        members_delta=_plain(members_delta) if members_delta is not None else None,
    )


def _convert_sdk_user(user: GraphSDKUser) -> User:
    return User(
        id=user.id or "",
        odata_type=user.odata_type,
        display_name=user.display_name,
        user_principal_name=user.user_principal_name,
        removed=_removed_marker(user.additional_data),
    )


def _convert_sdk_subscription(sub: GraphSDKSubscription) -> Subscription:
    return Subscription(
        id=sub.id,
        resource=sub.resource,
        change_type=sub.change_type,
        notification_url=sub.notification_url,
        lifecycle_notification_url=sub.lifecycle_notification_url,
        client_state=sub.client_state,
        expiration_date_time=sub.expiration_date_time,
    )


def _convert_delta_response(response: Any) -> DeltaPage:
    if response is None:
        return DeltaPage()
    return DeltaPage(
        value=[_convert_sdk_group(g) for g in (response.value or [])],
        next_link=response.odata_next_link,
        delta_link=response.odata_delta_link,
    )


class GraphDirectoryClient:
    """Directory client backed by msgraph-sdk's GraphServiceClient."""

    def __init__(self, client: GraphServiceClient):
        self._client = client

    @classmethod
    def from_credentials(
        cls,
        tenant_id: str,
        client_id: str,
        client_secret: str | None = None,
    ) -> "GraphDirectoryClient":
        credential, scopes = get_graph_credential(tenant_id, client_id, client_secret)
        logger.info(
            "graph_directory.init",
            tenant_id=tenant_id[:8],
            app_only=bool(client_secret),
        )
        return cls(GraphServiceClient(credentials=credential, scopes=scopes))

    def _absolute_url(self, resource: str) -> str:
        base_url = self._client.request_adapter.base_url.rstrip("/")
        return f"{base_url}/{resource.lstrip('/')}"

    async def get_user_by_url(self, resource: str) -> User:
        try:
            user = await self._client.users.by_user_id("").with_url(self._absolute_url(resource)).get()
        except ODataError as e:
            raise _to_directory_error(e) from e
        if user is None:
            raise directory_error(f"User not found: {resource}", status_code=404)
        return _convert_sdk_user(user)

    async def get_group_by_url(self, resource: str) -> Group:
        try:
            group = await self._client.groups.by_group_id("").with_url(self._absolute_url(resource)).get()
        except ODataError as e:
            raise _to_directory_error(e) from e
        if group is None:
            raise directory_error(f"Group not found: {resource}", status_code=404)
        return _convert_sdk_group(group)

    async def group_members_delta(self, group_id: str) -> DeltaPage:
        query = DeltaRequestBuilder.DeltaRequestBuilderGetQueryParameters(
            filter=f"id eq '{group_id}'",
            select=GROUP_DELTA_SELECT,
            expand=GROUP_DELTA_EXPAND,
        )
        config = RequestConfiguration(query_parameters=query)
        config.headers.add("Prefer", PREFER_MINIMAL)
        try:
            response = await self._client.groups.delta.get(request_configuration=config)
        except ODataError as e:
            raise _to_directory_error(e) from e
        page = _convert_delta_response(response)
        logger.debug(
            "graph_directory.group_delta",
            group_id=group_id,
            entries=len(page.value),
            has_next=page.next_link is not None,
        )
        return page

    async def get_delta_page(self, link: str) -> DeltaPage:
        try:
            response = await self._client.groups.delta.with_url(link).get()
        except ODataError as e:
            raise _to_directory_error(e) from e
        return _convert_delta_response(response)

    async def get_user_profile(self, user_id: str) -> UserProfile:
        query = UserItemRequestBuilder.UserItemRequestBuilderGetQueryParameters(
            select=USER_PROFILE_SELECT,
        )
        config = RequestConfiguration(query_parameters=query)
        try:
            user = await self._client.users.by_user_id(user_id).get(request_configuration=config)
        except ODataError as e:
            raise _to_directory_error(e) from e
        if user is None:
            raise directory_error(f"User not found: {user_id}", status_code=404)
        return UserProfile(
            id=user.id or user_id,
            display_name=user.display_name,
            user_principal_name=user.user_principal_name,
            created_date_time=user.created_date_time,
        )

    async def list_subscriptions(self) -> list[Subscription]:
        try:
            result = await self._client.subscriptions.get()
        except ODataError as e:
            raise _to_directory_error(e) from e
        if result is None:
            return []
        return [_convert_sdk_subscription(s) for s in (result.value or [])]

    async def create_subscription(self, subscription: Subscription) -> Subscription | None:
        body = GraphSDKSubscription(
            change_type=subscription.change_type,
            resource=subscription.resource,
            client_state=subscription.client_state,
            notification_url=subscription.notification_url,
            lifecycle_notification_url=subscription.lifecycle_notification_url,
            expiration_date_time=subscription.expiration_date_time,
        )
        try:
            created = await self._client.subscriptions.post(body)
        except ODataError as e:
            raise _to_directory_error(e) from e
        return _convert_sdk_subscription(created) if created else None

    async def update_subscription_expiration(
        self, subscription_id: str, expiration: datetime
    ) -> Subscription | None:
        body = GraphSDKSubscription(expiration_date_time=expiration)
        try:
            updated = await self._client.subscriptions.by_subscription_id(subscription_id).patch(body)
        except ODataError as e:
            raise _to_directory_error(e) from e
        return _convert_sdk_subscription(updated) if updated else None

    async def delete_subscription(self, subscription_id: str) -> None:
        try:
            await self._client.subscriptions.by_subscription_id(subscription_id).delete()
        except ODataError as e:
            raise _to_directory_error(e) from e
