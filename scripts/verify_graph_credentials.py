"""
Verify Microsoft Graph credentials against the directory endpoints this app uses.

Acquires a token (app-only when AZURE_CLIENT_SECRET is set, otherwise device-code
sign-in), lists subscriptions and, when a group id is given, reads the group and
runs one membership delta query for it.

Usage:
    uv run python scripts/verify_graph_credentials.py
    uv run python scripts/verify_graph_credentials.py --group <group-id>

Required environment variables in .env:
    AZURE_TENANT_ID=your-tenant-id
    AZURE_CLIENT_ID=your-client-id

    # Optional, switches to app-only auth (requires admin consent):
    AZURE_CLIENT_SECRET=your-client-secret
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv


def print_header(text: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {text}")
    print(f"{'='*60}\n")


def print_success(text: str) -> None:
    print(f"[OK] {text}")


def print_error(text: str) -> None:
    print(f"[ERROR] {text}")


def print_info(text: str) -> None:
    print(f"[INFO] {text}")


async def verify(group_id: str | None) -> bool:
    from graph_events.auth.token_cache import get_graph_credential
    from graph_events.directory.errors import DirectoryError, NotFoundError
    from graph_events.directory.graph_real import GraphDirectoryClient
    from graph_events.directory.models import parse_directory_objects

    tenant_id = os.getenv("AZURE_TENANT_ID")
    client_id = os.getenv("AZURE_CLIENT_ID")
    client_secret = os.getenv("AZURE_CLIENT_SECRET") or None

    missing = [name for name, value in (("AZURE_TENANT_ID", tenant_id), ("AZURE_CLIENT_ID", client_id)) if not value]
    if missing:
        print_error(f"Missing environment variables: {', '.join(missing)}")
        return False

    mode = "application (client secret)" if client_secret else "delegated (device code)"
    print_header(f"Microsoft Graph API - {mode}")
    print(f"    Tenant ID: {tenant_id[:8]}...")
    print(f"    Client ID: {client_id[:8]}...")

    print_header("Testing Authentication")
    credential, scopes = get_graph_credential(tenant_id, client_id, client_secret)
    try:
        token = credential.get_token(*scopes)
        print_success(f"Access token acquired (expires: {token.expires_on})")
    except Exception as e:
        print_error(f"Failed to acquire token: {e}")
        if client_secret:
            print_info("Check AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET")
        else:
            print_info("Make sure 'Allow public client flows' is enabled for the app")
        return False

    print_header("Testing Graph API Access")
    directory = GraphDirectoryClient.from_credentials(tenant_id, client_id, client_secret)

    try:
        subscriptions = await directory.list_subscriptions()
        print_success(f"Listed {len(subscriptions)} subscription(s)")
        for sub in subscriptions:
            print(f"    {sub.id}  {sub.resource}  expires {sub.expiration_date_time}")
    except DirectoryError as e:
        print_error(f"Failed to list subscriptions: {e}")
        return False

    if group_id:
        try:
            group = await directory.get_group_by_url(f"groups/{group_id}")
            print_success(f"Read group {group.id} ({group.display_name})")
            page = await directory.group_members_delta(group_id)
            members = [m for g in page.value for m in parse_directory_objects(g.members_delta)]
            print_success(f"Delta query returned {len(members)} member entr(ies) on the first page")
        except NotFoundError:
            print_error(f"Group not found: {group_id}")
            return False
        except DirectoryError as e:
            print_error(f"Failed to read group: {e}")
            if e.code and "Authorization_RequestDenied" in e.code:
                print_info("Grant Group.Read.All (and admin consent for application permissions)")
            return False

    print_header("Verification Complete")
    print_success("All checks passed!")
    return True


def main():
    parser = argparse.ArgumentParser(description="Verify Microsoft Graph API credentials")
    parser.add_argument("--group", help="Group id to read and run a membership delta query for")
    args = parser.parse_args()

    load_dotenv()
    success = asyncio.run(verify(args.group))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
