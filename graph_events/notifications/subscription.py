"""Microsoft Graph subscription manager: create, renew, delete group membership subscriptions.

Only one subscription is expected at a time; every operation asks Graph for the
current state instead of tracking it locally.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from pydantic import BaseModel

from graph_events.config import (
    CLIENT_STATE_MAX_LENGTH,
    SUBSCRIPTION_CLIENT_STATE,
    SUBSCRIPTION_EXPIRATION_MINUTES,
    EventGridSettings,
)
from graph_events.directory.errors import DirectoryError
from graph_events.directory.models import Subscription
from graph_events.directory.protocol import DirectoryClient
from graph_events.utils.logger import BoundLogger, get_logger

CHANGE_TYPES = "updated,deleted"


class SubscriptionStatus(str, Enum):
    CREATED = "created"
    DELETED = "deleted"
    INVALID = "invalid"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EMPTY_RESPONSE = "empty_response"  # Graph returned no subscription
    FAILED = "failed"
    ERROR = "error"


class SubscriptionResult(BaseModel):
    """Outcome of an operator-triggered create/delete."""

    status: SubscriptionStatus
    message: str
    subscription_id: str | None = None
    resource: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SubscriptionStatus.CREATED, SubscriptionStatus.DELETED)


def members_resource(group_id: str) -> str:
    return f"groups/{group_id}/members"


class SubscriptionManager:
    """Create/renew/delete the Graph subscription that feeds the Event Grid partner topic."""

    def __init__(
        self,
        client: DirectoryClient,
        event_grid: EventGridSettings,
        client_state: str = SUBSCRIPTION_CLIENT_STATE,
        expiration_minutes: int = SUBSCRIPTION_EXPIRATION_MINUTES,
        *,
        clock: Callable[[], datetime] | None = None,
        logger: BoundLogger | None = None,
    ):
        self._client = client
        self._event_grid = event_grid
        if client_state and len(client_state) > CLIENT_STATE_MAX_LENGTH:
            raise ValueError(
                f"client_state is {len(client_state)} characters; Graph accepts at most {CLIENT_STATE_MAX_LENGTH}"
            )
        self._client_state = client_state or None
        self._expiration = timedelta(minutes=expiration_minutes)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or get_logger("graph_events.notifications.subscription")

    def _expires_at(self) -> datetime:
        return self._clock() + self._expiration

    async def list_subscriptions(self) -> list[Subscription]:
        return await self._client.list_subscriptions()

    async def create(self, resource_id: str | None) -> SubscriptionResult:
        """Subscribe to member updates/deletes of group `resource_id`, unless a subscription already exists."""
        if not resource_id or not resource_id.strip():
            self._logger.warning("subscription.create.missing_resource_id")
            return SubscriptionResult(
                status=SubscriptionStatus.INVALID,
                message="Resource ID is required.",
            )
        resource_id = resource_id.strip()
        log = self._logger.bind(resource_id=resource_id)

        try:
            existing = await self._client.list_subscriptions()
            if existing:
                log.info("subscription.create.already_exists", subscription_id=existing[0].id)
                return SubscriptionResult(
                    status=SubscriptionStatus.CONFLICT,
                    message=f"Subscription already exists with ID {existing[0].id}",
                    subscription_id=existing[0].id,
                    resource=existing[0].resource,
                )

            log.info("subscription.create.none_existing")
            notification_url = self._event_grid.notification_url()
            created = await self._client.create_subscription(
                Subscription(
                    change_type=CHANGE_TYPES,
                    resource=members_resource(resource_id),
                    client_state=self._client_state,
                    notification_url=notification_url,
                    lifecycle_notification_url=notification_url,
                    expiration_date_time=self._expires_at(),
                )
            )
        except DirectoryError as e:
            log.error("subscription.create.graph_error", error=str(e), code=e.code)
            return SubscriptionResult(
                status=SubscriptionStatus.FAILED,
                message="Failed to create subscription.",
            )
        except Exception as e:
            log.exception("subscription.create.unexpected_error", error=str(e))
            return SubscriptionResult(
                status=SubscriptionStatus.ERROR,
                message="An unexpected error occurred.",
            )

        if created is None:
            log.error("subscription.create.null_response")
            return SubscriptionResult(
                status=SubscriptionStatus.EMPTY_RESPONSE,
                message="Failed to create subscription. The API returned null.",
            )

        log.info(
            "subscription.created",
            subscription_id=created.id,
            expires=created.expiration_date_time.isoformat() if created.expiration_date_time else None,
            notification_url=created.notification_url,
            resource=created.resource,
        )
        log.info(
            "subscription.created.activate_partner_topic",
            topic_name=self._event_grid.topic_name,
            hint="Activate the partner topic in the Azure portal and create an event subscription.",
        )
        return SubscriptionResult(
            status=SubscriptionStatus.CREATED,
            message=f"Subscription created for resource {created.resource}.",
            subscription_id=created.id,
            resource=created.resource,
        )

    async def renew(self, subscription_id: str) -> Subscription | None:
        """Push expiration out by the configured window. Single attempt; errors propagate."""
        expiration = self._expires_at()
        renewed = await self._client.update_subscription_expiration(subscription_id, expiration)
        self._logger.info(
            "subscription.renewed",
            subscription_id=subscription_id,
            expires=expiration.isoformat(),
        )
        return renewed

    async def delete(self, subscription_id: str | None) -> SubscriptionResult:
        if not subscription_id or not subscription_id.strip():
            self._logger.warning("subscription.delete.missing_id")
            return SubscriptionResult(
                status=SubscriptionStatus.INVALID,
                message="Subscription ID is required.",
            )
        subscription_id = subscription_id.strip()
        log = self._logger.bind(subscription_id=subscription_id)
        try:
            await self._client.delete_subscription(subscription_id)
        except DirectoryError as e:
            log.error("subscription.delete.graph_error", error=str(e), code=e.code)
            return SubscriptionResult(
                status=SubscriptionStatus.NOT_FOUND,
                message=f"Subscription {subscription_id} not found or could not be deleted.",
                subscription_id=subscription_id,
            )
        except Exception as e:
            log.exception("subscription.delete.unexpected_error", error=str(e))
            return SubscriptionResult(
                status=SubscriptionStatus.ERROR,
                message="An unexpected error occurred.",
                subscription_id=subscription_id,
            )
        log.info("subscription.deleted")
        return SubscriptionResult(
            status=SubscriptionStatus.DELETED,
            message=f"Subscription {subscription_id} deleted.",
            subscription_id=subscription_id,
        )
