"""Tests for the /notifications routes."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient

from graph_events.config import EventGridSettings
from graph_events.directory.errors import DirectoryError
from graph_events.directory.graph_mock import InMemoryDirectory
from graph_events.directory.models import Group, Subscription, UserProfile
from graph_events.notifications.server import create_app

EVENT_GRID = EventGridSettings(
    subscription_id="sub", resource_group="rg", topic_name="topic", location="westus"
)


def cloud_event(type_: str | None, data: dict | None = None) -> dict:
    return {
        "specversion": "1.0",
        "id": "evt-1",
        "source": "/tenants/t1/applications/a1",
        "type": type_,
        "data": data or {},
    }


class TestNotificationRoutes(unittest.TestCase):
    def setUp(self):
        self.directory = InMemoryDirectory(
            users=[UserProfile(id="U1", displayName="Ada", userPrincipalName="ada@contoso.com")],
            groups=[Group(id="G1", displayName="Engineering")],
        )
        self.app = create_app(client=self.directory, event_grid=EVENT_GRID, settle_seconds=0)
        self.client = TestClient(self.app)

    def test_validation_echoes_allow_headers(self):
        r = self.client.options(
            "/notifications",
            headers={"WebHook-Request-Origin": "eventgrid.azure.net", "WebHook-Request-Rate": "120"},
        )
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.headers["WebHook-Allowed-Origin"], "eventgrid.azure.net")
        self.assertEqual(r.headers["WebHook-Allowed-Rate"], "120")
        self.assertEqual(r.content, b"")

    def test_validation_without_headers(self):
        r = self.client.options("/notifications")
        self.assertEqual(r.status_code, 200)
        self.assertNotIn("WebHook-Allowed-Origin", r.headers)
        self.assertNotIn("WebHook-Allowed-Rate", r.headers)

    def test_missing_type_still_accepted(self):
        r = self.client.post("/notifications", json=cloud_event(None))
        self.assertEqual(r.status_code, 202)
        self.assertEqual(self.directory.calls, [])

    def test_unknown_type_still_accepted(self):
        r = self.client.post("/notifications", json=cloud_event("Microsoft.Graph.Whatever", {"resource": "groups/G1"}))
        self.assertEqual(r.status_code, 202)
        self.assertEqual(self.directory.calls, [])

    def test_unparsable_body_still_accepted(self):
        r = self.client.post("/notifications", content=b"not json", headers={"content-type": "application/json"})
        self.assertEqual(r.status_code, 202)

    def test_group_updated_diff(self):
        self.directory.set_membership_delta(
            "G1",
            before=[[
                {"@odata.type": "#microsoft.graph.user", "id": "U1", "@removed": {"reason": "deleted"}},
                {"@odata.type": "#microsoft.graph.servicePrincipal", "id": "S1", "@removed": {"reason": "deleted"}},
            ]],
        )
        r = self.client.post(
            "/notifications",
            json=cloud_event("Microsoft.Graph.GroupUpdated", {"resource": "groups/G1"}),
        )
        self.assertEqual(r.status_code, 202)
        self.assertEqual(self.directory.called("group_members_delta"), ["G1"])
        self.assertEqual(sorted(self.directory.called("get_user_profile")), ["S1", "U1"])

    def test_batch_of_envelopes(self):
        r = self.client.post(
            "/notifications",
            json=[
                cloud_event("Microsoft.Graph.UserUpdated", {"resource": "Users/U1"}),
                cloud_event("Microsoft.Graph.UserDeleted", {"resource": "Users/U2"}),
            ],
        )
        self.assertEqual(r.status_code, 202)
        self.assertEqual(self.directory.called("get_user_by_url"), ["Users/U1"])

    def test_handler_failure_accepted_and_counted(self):
        self.directory.fail_on("get_group_by_url", DirectoryError("down", code="ServiceNotAvailable", status_code=503))
        r = self.client.post(
            "/notifications",
            json=cloud_event("Microsoft.Graph.GroupUpdated", {"resource": "groups/G1"}),
        )
        self.assertEqual(r.status_code, 202)
        health = self.client.get("/health").json()
        self.assertEqual(health["failures"], {"GROUP_UPDATED": 1})

    def test_create_subscription(self):
        r = self.client.get("/notifications/create/G2")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertEqual(data["resource"], "groups/G2/members")
        self.assertTrue(data["subscriptionId"])
        self.assertIn(data["subscriptionId"], self.directory.subscriptions)

    def test_create_subscription_conflict(self):
        self.directory.subscriptions["sub-1"] = Subscription(id="sub-1")
        r = self.client.get("/notifications/create/G2")
        self.assertEqual(r.status_code, 400)
        self.assertIn("sub-1", r.json()["detail"])
        self.assertEqual(self.directory.called("create_subscription"), [])

    def test_create_subscription_blank_id(self):
        r = self.client.get("/notifications/create/%20")
        self.assertEqual(r.status_code, 400)

    def test_create_subscription_graph_error_is_problem(self):
        self.directory.fail_on("create_subscription", DirectoryError("bad", code="InvalidRequest", status_code=400))
        r = self.client.get("/notifications/create/G2")
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.headers["content-type"], "application/problem+json")

    def test_delete_subscription(self):
        self.directory.subscriptions["sub-1"] = Subscription(id="sub-1")
        r = self.client.get("/notifications/delete/sub-1")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.directory.subscriptions, {})

    def test_delete_missing_subscription_is_404(self):
        r = self.client.get("/notifications/delete/sub-missing")
        self.assertEqual(r.status_code, 404)

    def test_delete_blank_id(self):
        r = self.client.get("/notifications/delete/%20")
        self.assertEqual(r.status_code, 400)

    def test_delete_unexpected_error_is_problem(self):
        self.directory.fail_on("delete_subscription", RuntimeError("boom"))
        r = self.client.get("/notifications/delete/sub-1")
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["detail"], "An unexpected error occurred.")


class TestUnconfiguredApp(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app(event_grid=EVENT_GRID))

    def test_notifications_accepted_without_client(self):
        r = self.client.post("/notifications", json=cloud_event("Microsoft.Graph.UserUpdated"))
        self.assertEqual(r.status_code, 202)

    def test_lifecycle_endpoints_unavailable(self):
        self.assertEqual(self.client.get("/notifications/create/G1").status_code, 503)
        self.assertEqual(self.client.get("/health").json()["status"], "unconfigured")


if __name__ == "__main__":
    unittest.main()
