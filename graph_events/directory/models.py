"""Pydantic models for the Microsoft Graph directory objects we read (subset)."""

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class RemovedMarker(BaseModel):
    """Graph `@removed` annotation on a delta entry."""

    reason: Optional[str] = None  # "changed" | "deleted"

    model_config = {"extra": "allow"}


class _DirectoryObjectBase(BaseModel):
    id: str = ""
    odata_type: Optional[str] = Field(None, alias="@odata.type")
    removed: Optional[RemovedMarker] = Field(None, alias="@removed")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def is_removed(self) -> bool:
        return self.removed is not None


class User(_DirectoryObjectBase):
    kind: Literal["user"] = "user"
    display_name: Optional[str] = Field(None, alias="displayName")
    user_principal_name: Optional[str] = Field(None, alias="userPrincipalName")


class Group(_DirectoryObjectBase):
    kind: Literal["group"] = "group"
    display_name: Optional[str] = Field(None, alias="displayName")
    description: Optional[str] = None
    # Raw `members@delta` entries; parse with parse_directory_objects()
    members_delta: Optional[list[dict[str, Any]]] = Field(None, alias="members@delta")


class ServicePrincipal(_DirectoryObjectBase):
    kind: Literal["servicePrincipal"] = "servicePrincipal"
    display_name: Optional[str] = Field(None, alias="displayName")
    app_id: Optional[str] = Field(None, alias="appId")


class UnsupportedObject(_DirectoryObjectBase):
    """Directory object whose @odata.type we do not model (device, orgContact, ...)."""

    kind: Literal["unsupported"] = "unsupported"


DirectoryObject = Union[User, Group, ServicePrincipal, UnsupportedObject]

_VARIANTS: dict[str, type[_DirectoryObjectBase]] = {
    "#microsoft.graph.user": User,
    "#microsoft.graph.group": Group,
    "#microsoft.graph.serviceprincipal": ServicePrincipal,
}


def parse_directory_object(
    data: dict[str, Any],
    default: type[_DirectoryObjectBase] = UnsupportedObject,
) -> DirectoryObject:
    """Build the variant named by `@odata.type`; `default` applies when the tag is absent."""
    odata_type = data.get("@odata.type")
    if odata_type:
        model = _VARIANTS.get(str(odata_type).lower(), UnsupportedObject)
    else:
        model = default
    return model.model_validate(data)


def parse_directory_objects(items: list[dict[str, Any]] | None) -> list[DirectoryObject]:
    return [parse_directory_object(item) for item in (items or [])]


class DeltaPage(BaseModel):
    """One page of a delta query: entries plus either a next link or a delta link."""

    value: list[DirectoryObject] = Field(default_factory=list)
    next_link: Optional[str] = Field(None, alias="@odata.nextLink")
    delta_link: Optional[str] = Field(None, alias="@odata.deltaLink")

    model_config = {"populate_by_name": True}


class UserProfile(BaseModel):
    """User projection used when reporting membership changes."""

    id: str
    display_name: Optional[str] = Field(None, alias="displayName")
    user_principal_name: Optional[str] = Field(None, alias="userPrincipalName")
    created_date_time: Optional[datetime] = Field(None, alias="createdDateTime")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class Subscription(BaseModel):
    """Microsoft Graph subscription resource (subset)."""

    id: Optional[str] = None
    resource: Optional[str] = None
    change_type: Optional[str] = Field(None, alias="changeType")
    notification_url: Optional[str] = Field(None, alias="notificationUrl")
    lifecycle_notification_url: Optional[str] = Field(None, alias="lifecycleNotificationUrl")
    client_state: Optional[str] = Field(None, alias="clientState")
    expiration_date_time: Optional[datetime] = Field(None, alias="expirationDateTime")

    model_config = {"populate_by_name": True, "extra": "ignore"}
