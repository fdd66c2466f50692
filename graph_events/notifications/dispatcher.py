"""Route Event Grid notifications to per-type handlers.

The transport always gets an acknowledgement: a handler failure is logged as a
structured `notifications.dispatch.failed` event and counted, never re-raised,
so Event Grid does not redeliver.
"""

import asyncio
from collections import Counter
from enum import Enum
from typing import Iterable, Mapping

from graph_events.notifications.handlers import Handler
from graph_events.notifications.models import (
    ChangeNotification,
    CloudEventNotification,
    NotificationType,
)
from graph_events.utils.logger import BoundLogger, bind_context, get_logger, unbind_context

# CloudEvents abuse-protection handshake headers
REQUEST_ORIGIN_HEADER = "WebHook-Request-Origin"
REQUEST_RATE_HEADER = "WebHook-Request-Rate"
ALLOWED_ORIGIN_HEADER = "WebHook-Allowed-Origin"
ALLOWED_RATE_HEADER = "WebHook-Allowed-Rate"


class DispatchOutcome(str, Enum):
    HANDLED = "handled"
    IGNORED = "ignored"  # unrecognized type
    SKIPPED = "skipped"  # no type or no payload
    REJECTED = "rejected"  # clientState mismatch
    FAILED = "failed"


async def _ignore(notification: ChangeNotification) -> None:
    return None


def validation_headers(origin: str | None, rate: str | None) -> dict[str, str]:
    """Headers answering an Event Grid validation (OPTIONS) request."""
    headers: dict[str, str] = {}
    if origin:
        headers[ALLOWED_ORIGIN_HEADER] = origin
    if rate:
        headers[ALLOWED_RATE_HEADER] = rate
    return headers


class NotificationDispatcher:
    """Dispatches one CloudEvent to exactly one handler by its `type`."""

    def __init__(
        self,
        handlers: Mapping[NotificationType, Handler],
        client_state: str | None = None,
        logger: BoundLogger | None = None,
    ):
        missing = [
            t.name for t in NotificationType if t is not NotificationType.UNKNOWN and t not in handlers
        ]
        if missing:
            raise ValueError(f"No handler for notification types: {', '.join(missing)}")
        self._handlers: dict[NotificationType, Handler] = dict(handlers)
        self._handlers[NotificationType.UNKNOWN] = _ignore
        self._client_state = client_state or None
        self._logger = logger or get_logger("graph_events.notifications.dispatcher")
        self.failures: Counter[str] = Counter()

    async def dispatch(self, notification: CloudEventNotification) -> DispatchOutcome:
        """Handle one notification. Never raises."""
        if not notification.type:
            self._logger.warning(
                "notifications.dispatch.missing_type",
                source=notification.source,
                data=notification.data,
            )
            return DispatchOutcome.SKIPPED

        notification_type = notification.notification_type
        self._logger.info("notifications.dispatch.received", type=notification.type)
        if notification_type is NotificationType.UNKNOWN:
            self._logger.debug("notifications.dispatch.unrecognized_type", type=notification.type)
            return DispatchOutcome.IGNORED

        bind_context(notification_type=notification_type.name, notification_id=notification.id)
        change: ChangeNotification | None = None
        try:
            change = notification.get_change_notification()
            if change is None:
                self._logger.warning("notifications.dispatch.no_payload", type=notification.type)
                return DispatchOutcome.SKIPPED
            if self._client_state and change.client_state and change.client_state != self._client_state:
                self._logger.warning(
                    "notifications.dispatch.client_state_mismatch",
                    subscription_id=change.subscription_id,
                )
                return DispatchOutcome.REJECTED
            await self._handlers[notification_type](change)
            return DispatchOutcome.HANDLED
        except Exception as e:
            self.failures[notification_type.name] += 1
            self._logger.exception(
                "notifications.dispatch.failed",
                type=notification.type,
                resource=change.resource if change else None,
                error=str(e),
                error_type=type(e).__name__,
                failure_count=self.failures[notification_type.name],
            )
            return DispatchOutcome.FAILED
        finally:
            unbind_context("notification_type", "notification_id")

    async def dispatch_many(
        self, notifications: Iterable[CloudEventNotification]
    ) -> list[DispatchOutcome]:
        """Dispatch each notification as its own task; no ordering between them."""
        tasks = [asyncio.create_task(self.dispatch(n)) for n in notifications]
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))
