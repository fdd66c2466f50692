"""Pydantic models for Event Grid CloudEvents carrying Graph change notifications."""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from graph_events.directory.models import UserProfile


class NotificationType(str, Enum):
    """CloudEvent `type` values published by the Graph partner topic."""

    USER_UPDATED = "Microsoft.Graph.UserUpdated"
    GROUP_UPDATED = "Microsoft.Graph.GroupUpdated"
    USER_DELETED = "Microsoft.Graph.UserDeleted"
    SUBSCRIPTION_REAUTHORIZATION_REQUIRED = "Microsoft.Graph.SubscriptionReauthorizationRequired"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> "NotificationType":
        """Case-insensitive exact match; anything unrecognized is UNKNOWN."""
        wanted = (value or "").lower()
        for member in cls:
            if member is not cls.UNKNOWN and member.value.lower() == wanted:
                return member
        return cls.UNKNOWN


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ResourceData(BaseModel):
    """Resource data included in a change notification (e.g. object id)."""

    odata_type: str | None = Field(None, alias="@odata.type")
    odata_id: str | None = Field(None, alias="@odata.id")
    id: str | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ChangeNotification(BaseModel):
    """Graph changeNotification carried in the CloudEvent `data`."""

    change_type: ChangeType | None = Field(None, alias="changeType")
    client_state: str | None = Field(None, alias="clientState")
    lifecycle_event: str | None = Field(None, alias="lifecycleEvent")
    resource: str | None = None
    resource_data: ResourceData | None = Field(None, alias="resourceData")
    subscription_expiration_date_time: str | None = Field(
        None, alias="subscriptionExpirationDateTime"
    )
    subscription_id: str | None = Field(None, alias="subscriptionId")
    tenant_id: str | None = Field(None, alias="tenantId")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def resource_id(self) -> str | None:
        """Object id from a relative resource path such as `Users/{id}` or `groups/{id}/members`."""
        parts = (self.resource or "").strip("/").split("/")
        if len(parts) >= 2 and parts[1]:
            return parts[1]
        return None


class CloudEventNotification(BaseModel):
    """CloudEvents 1.0 envelope delivered by Event Grid."""

    type: str | None = None
    source: str | None = None
    data: Any = None
    id: str | None = None
    subject: str | None = None
    time: str | None = None
    specversion: str | None = None

    model_config = {"extra": "ignore"}

    @property
    def notification_type(self) -> NotificationType:
        return NotificationType.parse(self.type)

    def get_change_notification(self) -> ChangeNotification | None:
        """Unpack `data` into a ChangeNotification; None when there is no payload."""
        if self.data is None:
            return None
        if isinstance(self.data, (str, bytes)):
            return ChangeNotification.model_validate(json.loads(self.data))
        return ChangeNotification.model_validate(self.data)


class MembershipDiff(BaseModel):
    """Member ids added/removed across one delta traversal. An id is never in both sets."""

    added: set[str] = Field(default_factory=set)
    removed: set[str] = Field(default_factory=set)

    def mark_added(self, member_id: str) -> None:
        self.removed.discard(member_id)
        self.added.add(member_id)

    def mark_removed(self, member_id: str) -> None:
        self.added.discard(member_id)
        self.removed.add(member_id)


class MembershipReport(BaseModel):
    """Outcome of one group update: resolved profiles for added/removed members."""

    group_id: str | None = None
    group_name: str | None = None
    soft_deleted: bool = False
    diff: MembershipDiff = Field(default_factory=MembershipDiff)
    added: list[UserProfile] = Field(default_factory=list)
    removed: list[UserProfile] = Field(default_factory=list)
    delta_link: str | None = None
