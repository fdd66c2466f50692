"""Tests for the subscription lifecycle manager (create / renew / delete)."""

import asyncio
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from graph_events.config import EventGridSettings
from graph_events.directory.errors import DirectoryError, NotFoundError
from graph_events.directory.graph_mock import InMemoryDirectory
from graph_events.directory.models import Subscription
from graph_events.notifications.subscription import (
    SubscriptionManager,
    SubscriptionStatus,
)

EVENT_GRID = EventGridSettings(
    subscription_id="00000000-aaaa",
    resource_group="rg-graph",
    topic_name="graph-topic",
    location="westeurope",
)
NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestSubscriptionManager(unittest.TestCase):
    def setUp(self):
        self.directory = InMemoryDirectory()
        self.manager = SubscriptionManager(
            self.directory,
            EVENT_GRID,
            client_state="test@123",
            expiration_minutes=60,
            clock=lambda: NOW,
        )

    def test_create_builds_event_grid_subscription(self):
        result = asyncio.run(self.manager.create("G2"))
        self.assertEqual(result.status, SubscriptionStatus.CREATED)
        self.assertTrue(result.ok)
        self.assertEqual(result.resource, "groups/G2/members")
        self.assertEqual(result.message, "Subscription created for resource groups/G2/members.")
        created = self.directory.subscriptions[result.subscription_id]
        self.assertEqual(created.change_type, "updated,deleted")
        self.assertEqual(created.client_state, "test@123")
        self.assertEqual(created.expiration_date_time, NOW + timedelta(hours=1))
        expected_url = (
            "EventGrid:?azuresubscriptionid=00000000-aaaa&resourcegroup=rg-graph"
            "&partnertopic=graph-topic&location=westeurope"
        )
        self.assertEqual(created.notification_url, expected_url)
        self.assertEqual(created.lifecycle_notification_url, expected_url)

    def test_create_refuses_when_subscription_exists(self):
        self.directory.subscriptions["sub-1"] = Subscription(id="sub-1", resource="groups/G1/members")
        result = asyncio.run(self.manager.create("G2"))
        self.assertEqual(result.status, SubscriptionStatus.CONFLICT)
        self.assertIn("sub-1", result.message)
        self.assertEqual(result.subscription_id, "sub-1")
        self.assertEqual(self.directory.called("create_subscription"), [])

    def test_create_requires_resource_id(self):
        for blank in (None, "", "   "):
            result = asyncio.run(self.manager.create(blank))
            self.assertEqual(result.status, SubscriptionStatus.INVALID)
        self.assertEqual(self.directory.calls, [])

    def test_create_null_response_is_distinct_from_error(self):
        self.directory.null_create = True
        result = asyncio.run(self.manager.create("G2"))
        self.assertEqual(result.status, SubscriptionStatus.EMPTY_RESPONSE)
        self.assertIn("null", result.message)

    def test_create_graph_error_is_failure(self):
        self.directory.fail_on("create_subscription", DirectoryError("bad url", code="InvalidRequest", status_code=400))
        result = asyncio.run(self.manager.create("G2"))
        self.assertEqual(result.status, SubscriptionStatus.FAILED)
        self.assertEqual(result.message, "Failed to create subscription.")

    def test_create_unexpected_error(self):
        self.directory.fail_on("list_subscriptions", RuntimeError("socket closed"))
        result = asyncio.run(self.manager.create("G2"))
        self.assertEqual(result.status, SubscriptionStatus.ERROR)
        self.assertEqual(result.message, "An unexpected error occurred.")

    def test_renew_extends_expiration_one_hour(self):
        self.directory.subscriptions["sub-1"] = Subscription(
            id="sub-1", expiration_date_time=NOW + timedelta(minutes=5)
        )
        renewed = asyncio.run(self.manager.renew("sub-1"))
        self.assertEqual(renewed.expiration_date_time, NOW + timedelta(hours=1))
        self.assertEqual(self.directory.called("update_subscription_expiration"), ["sub-1"])

    def test_renew_is_single_attempt_and_propagates(self):
        with self.assertRaises(NotFoundError):
            asyncio.run(self.manager.renew("sub-missing"))
        self.assertEqual(len(self.directory.called("update_subscription_expiration")), 1)

    def test_delete(self):
        self.directory.subscriptions["sub-1"] = Subscription(id="sub-1")
        result = asyncio.run(self.manager.delete("sub-1"))
        self.assertEqual(result.status, SubscriptionStatus.DELETED)
        self.assertNotIn("sub-1", self.directory.subscriptions)

    def test_delete_missing_is_not_found(self):
        result = asyncio.run(self.manager.delete("sub-missing"))
        self.assertEqual(result.status, SubscriptionStatus.NOT_FOUND)
        self.assertIn("not found or could not be deleted", result.message)

    def test_delete_requires_id(self):
        result = asyncio.run(self.manager.delete(" "))
        self.assertEqual(result.status, SubscriptionStatus.INVALID)
        self.assertEqual(self.directory.calls, [])

    def test_delete_unexpected_error(self):
        self.directory.fail_on("delete_subscription", RuntimeError("boom"))
        result = asyncio.run(self.manager.delete("sub-1"))
        self.assertEqual(result.status, SubscriptionStatus.ERROR)

    def test_client_state_over_graph_limit_is_rejected(self):
        with self.assertRaises(ValueError):
            SubscriptionManager(self.directory, EVENT_GRID, client_state="x" * 129)

    def test_client_state_stored_unchanged(self):
        manager = SubscriptionManager(self.directory, EVENT_GRID, client_state="y" * 128, clock=lambda: NOW)
        result = asyncio.run(manager.create("G2"))
        self.assertEqual(self.directory.subscriptions[result.subscription_id].client_state, "y" * 128)


class TestEventGridSettings(unittest.TestCase):
    def test_missing_names_env_vars(self):
        settings = EventGridSettings(subscription_id="s", location="westus")
        self.assertEqual(settings.missing(), ["AZURE_RESOURCE_GROUP", "EVENT_GRID_TOPIC"])
        self.assertEqual(EVENT_GRID.missing(), [])


if __name__ == "__main__":
    unittest.main()
