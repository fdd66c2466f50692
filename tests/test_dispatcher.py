"""Tests for notification routing, failure isolation and the per-type handlers."""

import asyncio
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from graph_events.config import EventGridSettings
from graph_events.directory.errors import DirectoryError
from graph_events.directory.graph_mock import InMemoryDirectory
from graph_events.directory.models import Group, Subscription, UserProfile
from graph_events.notifications.delta import MembershipDeltaEngine
from graph_events.notifications.dispatcher import (
    DispatchOutcome,
    NotificationDispatcher,
    validation_headers,
)
from graph_events.notifications.handlers import NotificationHandlers
from graph_events.notifications.models import CloudEventNotification, NotificationType
from graph_events.notifications.subscription import SubscriptionManager
from logging_helpers import RecordingLogger


def envelope(type_: str | None, data=None) -> CloudEventNotification:
    return CloudEventNotification(
        type=type_,
        source="/tenants/t1/applications/a1",
        data=data if data is not None else {"resource": "Users/U1", "changeType": "updated"},
    )


class TestNotificationDispatcher(unittest.TestCase):
    def setUp(self):
        self.calls: list[tuple[NotificationType, str | None]] = []
        self.logger = RecordingLogger()

        def recorder(kind):
            async def handler(notification):
                self.calls.append((kind, notification.resource))

            return handler

        self.handlers = {
            t: recorder(t) for t in NotificationType if t is not NotificationType.UNKNOWN
        }
        self.dispatcher = NotificationDispatcher(self.handlers, logger=self.logger)

    def dispatch(self, notification, dispatcher=None):
        return asyncio.run((dispatcher or self.dispatcher).dispatch(notification))

    def test_empty_type_logs_warning_and_runs_nothing(self):
        for type_ in (None, ""):
            outcome = self.dispatch(envelope(type_))
            self.assertEqual(outcome, DispatchOutcome.SKIPPED)
        self.assertEqual(self.calls, [])
        warnings = [e for level, e, _ in self.logger.events if level == "warning"]
        self.assertEqual(warnings, ["notifications.dispatch.missing_type"] * 2)

    def test_unrecognized_type_is_ignored(self):
        outcome = self.dispatch(envelope("Microsoft.Graph.GroupCreated"))
        self.assertEqual(outcome, DispatchOutcome.IGNORED)
        self.assertEqual(self.calls, [])

    def test_routes_each_known_type_to_exactly_one_handler(self):
        for notification_type in self.handlers:
            self.calls.clear()
            outcome = self.dispatch(envelope(notification_type.value))
            self.assertEqual(outcome, DispatchOutcome.HANDLED)
            self.assertEqual([kind for kind, _ in self.calls], [notification_type])

    def test_type_match_is_case_insensitive_but_exact(self):
        self.dispatch(envelope("microsoft.graph.GROUPUPDATED", {"resource": "groups/G1"}))
        self.assertEqual(self.calls, [(NotificationType.GROUP_UPDATED, "groups/G1")])
        self.calls.clear()
        outcome = self.dispatch(envelope("Microsoft.Graph.GroupUpdated.v2"))
        self.assertEqual(outcome, DispatchOutcome.IGNORED)
        self.assertEqual(self.calls, [])

    def test_handler_failure_is_logged_counted_and_swallowed(self):
        async def boom(notification):
            raise DirectoryError("service unavailable", code="ServiceNotAvailable", status_code=503)

        handlers = dict(self.handlers)
        handlers[NotificationType.USER_UPDATED] = boom
        dispatcher = NotificationDispatcher(handlers, logger=self.logger)
        outcome = self.dispatch(envelope("Microsoft.Graph.UserUpdated"), dispatcher)
        self.assertEqual(outcome, DispatchOutcome.FAILED)
        self.assertEqual(dispatcher.failures["USER_UPDATED"], 1)
        failed = [f for level, e, f in self.logger.events if e == "notifications.dispatch.failed"]
        self.assertEqual(failed[0]["error_type"], "DirectoryError")
        self.assertEqual(failed[0]["resource"], "Users/U1")

    def test_invalid_payload_counts_as_failure(self):
        outcome = self.dispatch(envelope("Microsoft.Graph.UserUpdated", {"changeType": "renamed"}))
        self.assertEqual(outcome, DispatchOutcome.FAILED)
        self.assertEqual(self.calls, [])

    def test_missing_payload_is_skipped(self):
        notification = CloudEventNotification(type="Microsoft.Graph.UserUpdated", source="s")
        self.assertEqual(self.dispatch(notification), DispatchOutcome.SKIPPED)
        self.assertEqual(self.calls, [])

    def test_client_state_mismatch_is_rejected(self):
        dispatcher = NotificationDispatcher(self.handlers, client_state="secret", logger=self.logger)
        data = {"resource": "Users/U1", "clientState": "forged"}
        outcome = self.dispatch(envelope("Microsoft.Graph.UserUpdated", data), dispatcher)
        self.assertEqual(outcome, DispatchOutcome.REJECTED)
        self.assertEqual(self.calls, [])

        data["clientState"] = "secret"
        outcome = self.dispatch(envelope("Microsoft.Graph.UserUpdated", data), dispatcher)
        self.assertEqual(outcome, DispatchOutcome.HANDLED)

    def test_handler_mapping_must_be_total(self):
        handlers = dict(self.handlers)
        del handlers[NotificationType.USER_DELETED]
        with self.assertRaises(ValueError):
            NotificationDispatcher(handlers)

    def test_dispatch_many_does_not_serialize(self):
        """Two notifications for the same group run concurrently: the first waits on the second."""
        second_started = asyncio.Event()

        async def group_handler(notification):
            if notification.resource == "groups/G1#first":
                await asyncio.wait_for(second_started.wait(), timeout=1)
            else:
                second_started.set()

        handlers = dict(self.handlers)
        handlers[NotificationType.GROUP_UPDATED] = group_handler
        dispatcher = NotificationDispatcher(handlers, logger=self.logger)
        outcomes = asyncio.run(
            dispatcher.dispatch_many(
                [
                    envelope("Microsoft.Graph.GroupUpdated", {"resource": "groups/G1#first"}),
                    envelope("Microsoft.Graph.GroupUpdated", {"resource": "groups/G1"}),
                ]
            )
        )
        self.assertEqual(outcomes, [DispatchOutcome.HANDLED, DispatchOutcome.HANDLED])

    def test_validation_headers(self):
        self.assertEqual(
            validation_headers("eventgrid.azure.net", "120"),
            {"WebHook-Allowed-Origin": "eventgrid.azure.net", "WebHook-Allowed-Rate": "120"},
        )
        self.assertEqual(validation_headers("eventgrid.azure.net", None), {"WebHook-Allowed-Origin": "eventgrid.azure.net"})
        self.assertEqual(validation_headers(None, ""), {})


class TestNotificationHandlers(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.directory = InMemoryDirectory(
            users=[UserProfile(id="U1", displayName="Ada")],
            groups=[Group(id="G1", displayName="Engineering")],
            subscriptions=[Subscription(id="sub-1", resource="groups/G1/members")],
        )
        self.logger = RecordingLogger()
        subscriptions = SubscriptionManager(
            self.directory,
            EventGridSettings(subscription_id="s", resource_group="rg", topic_name="t", location="westus"),
            clock=lambda: self.now,
            logger=self.logger,
        )

        async def no_sleep(seconds: float) -> None:
            return None

        engine = MembershipDeltaEngine(self.directory, settle_seconds=0, sleep=no_sleep, logger=self.logger)
        handlers = NotificationHandlers(self.directory, engine, subscriptions, logger=self.logger)
        self.dispatcher = NotificationDispatcher(handlers.as_mapping(), logger=self.logger)

    def dispatch(self, type_: str, data: dict) -> DispatchOutcome:
        return asyncio.run(self.dispatcher.dispatch(envelope(type_, data)))

    def events(self, name):
        return [f for _, e, f in self.logger.events if e == name]

    def test_user_updated_resolves_user(self):
        self.dispatch("Microsoft.Graph.UserUpdated", {"resource": "Users/U1"})
        self.assertEqual(self.events("handlers.user.created_or_updated")[0]["user_name"], "Ada")

    def test_user_updated_not_found_is_soft_delete(self):
        outcome = self.dispatch("Microsoft.Graph.UserUpdated", {"resource": "Users/U9"})
        self.assertEqual(outcome, DispatchOutcome.HANDLED)
        self.assertEqual(self.events("handlers.user.soft_deleted")[0]["user_id"], "U9")

    def test_user_deleted_makes_no_remote_calls(self):
        self.dispatch("Microsoft.Graph.UserDeleted", {"resource": "Users/U7", "changeType": "deleted"})
        self.assertEqual(self.directory.calls, [])
        self.assertEqual(self.events("handlers.user.deleted")[0]["user_id"], "U7")

    def test_group_updated_runs_membership_diff(self):
        self.dispatch("Microsoft.Graph.GroupUpdated", {"resource": "groups/G1"})
        self.assertEqual(self.directory.called("group_members_delta"), ["G1"])

    def test_reauthorization_renews_for_an_hour(self):
        outcome = self.dispatch(
            "Microsoft.Graph.SubscriptionReauthorizationRequired",
            {"subscriptionId": "sub-1", "lifecycleEvent": "reauthorizationRequired"},
        )
        self.assertEqual(outcome, DispatchOutcome.HANDLED)
        self.assertEqual(
            self.directory.subscriptions["sub-1"].expiration_date_time,
            self.now + timedelta(hours=1),
        )

    def test_reauthorization_failure_reaches_dispatcher_boundary(self):
        outcome = self.dispatch(
            "Microsoft.Graph.SubscriptionReauthorizationRequired",
            {"subscriptionId": "sub-missing"},
        )
        self.assertEqual(outcome, DispatchOutcome.FAILED)
        self.assertEqual(self.directory.called("update_subscription_expiration"), ["sub-missing"])


class TestClientStateRoundTrip(unittest.TestCase):
    """The clientState stored on the created subscription is accepted by the dispatcher."""

    def setUp(self):
        self.directory = InMemoryDirectory(groups=[Group(id="G1", displayName="Engineering")])
        self.event_grid = EventGridSettings(subscription_id="s", resource_group="rg", topic_name="t", location="westus")
        self.logger = RecordingLogger()

    def build(self, client_state: str):
        subscriptions = SubscriptionManager(self.directory, self.event_grid, client_state=client_state, logger=self.logger)

        async def no_sleep(seconds: float) -> None:
            return None

        engine = MembershipDeltaEngine(self.directory, settle_seconds=0, sleep=no_sleep, logger=self.logger)
        handlers = NotificationHandlers(self.directory, engine, subscriptions, logger=self.logger)
        dispatcher = NotificationDispatcher(handlers.as_mapping(), client_state=client_state, logger=self.logger)
        return subscriptions, dispatcher

    def test_longest_accepted_state_round_trips(self):
        subscriptions, dispatcher = self.build("x" * 128)
        result = asyncio.run(subscriptions.create("G1"))
        stored = self.directory.subscriptions[result.subscription_id].client_state
        self.assertEqual(len(stored), 128)

        outcome = asyncio.run(
            dispatcher.dispatch(
                envelope(
                    "Microsoft.Graph.GroupUpdated",
                    {"resource": "groups/G1", "clientState": stored, "subscriptionId": result.subscription_id},
                )
            )
        )
        self.assertEqual(outcome, DispatchOutcome.HANDLED)
        self.assertEqual(self.directory.called("group_members_delta"), ["G1"])

    def test_overlong_state_is_refused_up_front(self):
        with self.assertRaises(ValueError):
            self.build("x" * 200)
        self.assertEqual(self.directory.calls, [])


if __name__ == "__main__":
    unittest.main()
