"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
OUTPUT_DIR = PROJECT_ROOT / "output"

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "app.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Graph API credentials. With a client secret the app authenticates app-only;
# without one it falls back to delegated device-code sign-in.
AZURE_TENANT_ID = os.getenv("AZURE_TENANT_ID", "")
AZURE_CLIENT_ID = os.getenv("AZURE_CLIENT_ID", "")
AZURE_CLIENT_SECRET = os.getenv("AZURE_CLIENT_SECRET", "")

# Event Grid partner topic that receives Graph notifications
AZURE_SUBSCRIPTION_ID = os.getenv("AZURE_SUBSCRIPTION_ID", "")
AZURE_RESOURCE_GROUP = os.getenv("AZURE_RESOURCE_GROUP", "")
EVENT_GRID_TOPIC = os.getenv("EVENT_GRID_TOPIC", "")
AZURE_LOCATION = os.getenv("AZURE_LOCATION", "")

# Graph subscription
SUBSCRIPTION_CLIENT_STATE = os.getenv("SUBSCRIPTION_CLIENT_STATE", "test@123")
# Graph caps clientState at 128 characters
CLIENT_STATE_MAX_LENGTH = 128
# Kept short so subscriptions lapse quickly while iterating
SUBSCRIPTION_EXPIRATION_MINUTES = int(os.getenv("SUBSCRIPTION_EXPIRATION_MINUTES", "60"))
# Reject change notifications whose clientState differs from ours
VERIFY_CLIENT_STATE = os.getenv("VERIFY_CLIENT_STATE", "true").lower() == "true"

# Membership delta: wait before the second ("after") delta read so Graph can
# materialize membership changes.
DELTA_SETTLE_SECONDS = float(os.getenv("DELTA_SETTLE_SECONDS", "5"))
# Serialize diffs per group id (off: concurrent diffs on one group may interleave)
SERIALIZE_GROUP_DIFFS = os.getenv("SERIALIZE_GROUP_DIFFS", "false").lower() == "true"

# Webhook server
WEBHOOK_PORT = int(os.getenv("WEBHOOK_PORT", "5000"))

# Optional JSON fixture for the in-memory directory (serve --mock)
MOCK_DIRECTORY_PATH = Path(os.getenv("MOCK_DIRECTORY_PATH", str(PROJECT_ROOT / "data" / "directory.json")))


class EventGridSettings(BaseModel):
    """Coordinates of the Event Grid partner topic embedded in the notification URL."""

    subscription_id: str = ""
    resource_group: str = ""
    topic_name: str = ""
    location: str = ""

    @classmethod
    def from_env(cls) -> "EventGridSettings":
        return cls(
            subscription_id=AZURE_SUBSCRIPTION_ID,
            resource_group=AZURE_RESOURCE_GROUP,
            topic_name=EVENT_GRID_TOPIC,
            location=AZURE_LOCATION,
        )

    def missing(self) -> list[str]:
        """Return env var names of unset coordinates."""
        names = {
            "subscription_id": "AZURE_SUBSCRIPTION_ID",
            "resource_group": "AZURE_RESOURCE_GROUP",
            "topic_name": "EVENT_GRID_TOPIC",
            "location": "AZURE_LOCATION",
        }
        return [env for field, env in names.items() if not getattr(self, field)]

    def notification_url(self) -> str:
        return (
            f"EventGrid:?azuresubscriptionid={self.subscription_id}"
            f"&resourcegroup={self.resource_group}"
            f"&partnertopic={self.topic_name}"
            f"&location={self.location}"
        )
