"""Group membership diff from a Graph delta query.

A group update notification only says *that* a group changed. To learn which
members were added or removed we run a groups delta query filtered to that one
group with members expanded, drain it page by page, then wait a short settling
interval and read the delta link once more: Graph may not have materialized
every membership change at the first read. Every `members@delta` entry is
classified as removed (it carries `@removed`) or added, and the resulting ids
are resolved to user profiles for reporting.
"""

import asyncio
from contextlib import nullcontext
from typing import Awaitable, Callable

from graph_events.config import DELTA_SETTLE_SECONDS
from graph_events.directory.errors import DirectoryError, NotFoundError
from graph_events.directory.models import (
    DeltaPage,
    DirectoryObject,
    Group,
    ServicePrincipal,
    UnsupportedObject,
    User,
    UserProfile,
    parse_directory_objects,
)
from graph_events.directory.protocol import DirectoryClient
from graph_events.notifications.locks import KeyedLock
from graph_events.notifications.models import MembershipDiff, MembershipReport
from graph_events.utils.logger import BoundLogger, get_logger

Sleep = Callable[[float], Awaitable[None]]


class MembershipDeltaEngine:
    """Computes added/removed members of a group from a two-phase delta read."""

    def __init__(
        self,
        client: DirectoryClient,
        settle_seconds: float = DELTA_SETTLE_SECONDS,
        *,
        sleep: Sleep = asyncio.sleep,
        locks: KeyedLock | None = None,
        logger: BoundLogger | None = None,
    ):
        self._client = client
        self._settle_seconds = settle_seconds
        self._sleep = sleep
        self._locks = locks
        self._logger = logger or get_logger("graph_events.notifications.delta")

    async def handle_group_update(self, resource: str) -> MembershipReport:
        """Diff the membership of the group at `resource` (e.g. `groups/{id}`).

        A missing group (before or during the traversal) is a soft delete: it
        is logged and reported, never raised. Other directory errors propagate.
        """
        log = self._logger.bind(resource=resource)
        try:
            group = await self._client.get_group_by_url(resource)
        except NotFoundError:
            return self._soft_deleted(resource)

        log.info("delta.group.updated", group_name=group.display_name, group_id=group.id)
        guard = self._locks.hold(group.id) if self._locks is not None else nullcontext()
        async with guard:
            try:
                diff, delta_link = await self._traverse(group.id, log)
            except NotFoundError:
                return self._soft_deleted(resource)

            added = await self._resolve_profiles(diff.added, log)
            removed = await self._resolve_profiles(diff.removed, log)

        for user in added:
            self._log_user(log, "Added User", user)
        for user in removed:
            self._log_user(log, "Removed User", user)

        return MembershipReport(
            group_id=group.id,
            group_name=group.display_name,
            diff=diff,
            added=added,
            removed=removed,
            delta_link=delta_link,
        )

    async def _traverse(self, group_id: str, log: BoundLogger) -> tuple[MembershipDiff, str | None]:
        diff = MembershipDiff()
        page = await self._client.group_members_delta(group_id)
        delta_link = await self._drain(page, diff, log)
        log.info(
            "delta.members.before",
            removed_count=len(diff.removed),
            added_count=len(diff.added),
        )
        if delta_link:
            # Second read after the settling interval picks up late changes
            await self._sleep(self._settle_seconds)
            page = await self._client.get_delta_page(delta_link)
            delta_link = await self._drain(page, diff, log) or delta_link
        log.info(
            "delta.members.after",
            removed_count=len(diff.removed),
            added_count=len(diff.added),
        )
        return diff, delta_link

    async def _drain(self, page: DeltaPage, diff: MembershipDiff, log: BoundLogger) -> str | None:
        """Apply `page` and every page behind its next links; return the final delta link."""
        while True:
            self._apply_page(page, diff, log)
            if not page.next_link:
                return page.delta_link
            page = await self._client.get_delta_page(page.next_link)

    def _apply_page(self, page: DeltaPage, diff: MembershipDiff, log: BoundLogger) -> None:
        for entry in page.value:
            if not isinstance(entry, Group) or entry.members_delta is None:
                continue
            for member in parse_directory_objects(entry.members_delta):
                self._classify(member, diff, log)

    def _classify(self, member: DirectoryObject, diff: MembershipDiff, log: BoundLogger) -> None:
        if not member.id:
            log.warning("delta.members.missing_id", odata_type=member.odata_type)
            return
        if isinstance(member, (User, Group, ServicePrincipal)):
            if member.is_removed:
                # Only removed entries carry a reason
                log.info(
                    "delta.members.removed",
                    member_kind=member.kind,
                    member_id=member.id,
                    reason=member.removed.model_dump(),
                )
                diff.mark_removed(member.id)
            else:
                diff.mark_added(member.id)
        elif isinstance(member, UnsupportedObject):
            log.error(
                "delta.members.unsupported_variant",
                odata_type=member.odata_type,
                member_id=member.id,
            )
        else:
            raise TypeError(f"Unhandled directory object variant: {type(member).__name__}")

    async def _resolve_profiles(self, member_ids: set[str], log: BoundLogger) -> list[UserProfile]:
        """Look up each id as a user; ids that do not resolve are left out."""
        profiles: list[UserProfile] = []
        for member_id in sorted(member_ids):
            try:
                profiles.append(await self._client.get_user_profile(member_id))
            except NotFoundError:
                log.debug("delta.profile.not_found", member_id=member_id)
            except DirectoryError as e:
                log.debug("delta.profile.lookup_failed", member_id=member_id, error=str(e))
        return profiles

    def _soft_deleted(self, resource: str) -> MembershipReport:
        parts = resource.strip("/").split("/")
        group_id = parts[1] if len(parts) > 1 else None
        self._logger.info("delta.group.soft_deleted", group_id=group_id)
        return MembershipReport(group_id=group_id, soft_deleted=True)

    @staticmethod
    def _log_user(log: BoundLogger, label: str, user: UserProfile) -> None:
        log.info(
            "delta.members.report",
            label=label,
            user_id=user.id,
            display_name=user.display_name,
            user_principal_name=user.user_principal_name,
            created=user.created_date_time.isoformat() if user.created_date_time else None,
        )
