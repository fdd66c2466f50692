"""Per-type handlers for Graph change notifications."""

from typing import Awaitable, Callable

from graph_events.directory.errors import NotFoundError
from graph_events.directory.protocol import DirectoryClient
from graph_events.notifications.delta import MembershipDeltaEngine
from graph_events.notifications.models import ChangeNotification, NotificationType
from graph_events.notifications.subscription import SubscriptionManager
from graph_events.utils.logger import BoundLogger, get_logger

Handler = Callable[[ChangeNotification], Awaitable[None]]


class NotificationHandlers:
    """Handlers for the notification types the partner topic publishes."""

    def __init__(
        self,
        client: DirectoryClient,
        delta_engine: MembershipDeltaEngine,
        subscriptions: SubscriptionManager,
        logger: BoundLogger | None = None,
    ):
        self._client = client
        self._delta_engine = delta_engine
        self._subscriptions = subscriptions
        self._logger = logger or get_logger("graph_events.notifications.handlers")

    def as_mapping(self) -> dict[NotificationType, Handler]:
        return {
            NotificationType.USER_UPDATED: self.user_updated,
            NotificationType.GROUP_UPDATED: self.group_updated,
            NotificationType.USER_DELETED: self.user_deleted,
            NotificationType.SUBSCRIPTION_REAUTHORIZATION_REQUIRED: self.reauthorization_required,
        }

    async def user_updated(self, notification: ChangeNotification) -> None:
        """User created, updated or soft-deleted; the notification only carries the id."""
        if not notification.resource:
            self._logger.warning("handlers.user_updated.no_resource")
            return
        try:
            user = await self._client.get_user_by_url(notification.resource)
        except NotFoundError:
            self._logger.info("handlers.user.soft_deleted", user_id=notification.resource_id)
            return
        self._logger.info(
            "handlers.user.created_or_updated",
            user_name=user.display_name,
            user_id=user.id,
        )

    async def group_updated(self, notification: ChangeNotification) -> None:
        if not notification.resource:
            self._logger.warning("handlers.group_updated.no_resource")
            return
        await self._delta_engine.handle_group_update(notification.resource)

    async def user_deleted(self, notification: ChangeNotification) -> None:
        # Permanently deleted: the user can no longer be read from Graph
        self._logger.info("handlers.user.deleted", user_id=notification.resource_id)

    async def reauthorization_required(self, notification: ChangeNotification) -> None:
        if not notification.subscription_id:
            self._logger.warning("handlers.reauthorization.no_subscription_id")
            return
        await self._subscriptions.renew(notification.subscription_id)
