"""Event Grid webhook for Graph change notifications: dispatch, membership diff, subscriptions."""

from graph_events.notifications.models import (
    ChangeNotification,
    CloudEventNotification,
    MembershipDiff,
    MembershipReport,
    NotificationType,
)

__all__ = [
    "ChangeNotification",
    "CloudEventNotification",
    "MembershipDiff",
    "MembershipReport",
    "NotificationType",
]
