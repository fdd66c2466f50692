"""Credentials for Graph API access.

App-only (client secret) when AZURE_CLIENT_SECRET is set; otherwise delegated
device-code sign-in backed by a persistent MSAL token cache.
"""

import time
from pathlib import Path
from typing import Any

from azure.core.credentials import AccessToken, TokenCredential
from azure.identity import ClientSecretCredential
import msal

TOKEN_CACHE_DIR = Path.home() / ".graph-events"
TOKEN_CACHE_PATH = TOKEN_CACHE_DIR / "token_cache.json"

# App-only tokens must request the .default scope
APP_SCOPES = ["https://graph.microsoft.com/.default"]

# Delegated scopes: group membership delta, user profiles, subscriptions
DELEGATED_SCOPES = [
    "https://graph.microsoft.com/Group.Read.All",
    "https://graph.microsoft.com/User.Read.All",
]


def _load_cache() -> msal.SerializableTokenCache:
    """Create a SerializableTokenCache and load from disk if file exists."""
    cache = msal.SerializableTokenCache()
    if TOKEN_CACHE_PATH.exists():
        try:
            cache.deserialize(TOKEN_CACHE_PATH.read_text())
        except ValueError:
            # Corrupt cache: start over with a fresh sign-in
            pass
    return cache


def _save_cache(cache: msal.SerializableTokenCache) -> None:
    """Persist token cache to disk."""
    TOKEN_CACHE_DIR.mkdir(parents=True, exist_ok=True)
    if cache.has_state_changed:
        TOKEN_CACHE_PATH.write_text(cache.serialize())


class MSALDelegatedCredential(TokenCredential):
    """
    TokenCredential that uses MSAL with a persistent file-based token cache.
    Uses device code flow on first run; subsequent runs use cached tokens and refresh silently.
    """

    def __init__(self, tenant_id: str, client_id: str):
        self._cache = _load_cache()
        self._app = msal.PublicClientApplication(
            client_id=client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            token_cache=self._cache,
        )

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        scopes_list = list(scopes) if scopes else DELEGATED_SCOPES
        accounts = self._app.get_accounts()
        account = accounts[0] if accounts else None

        result = self._app.acquire_token_silent(scopes_list, account=account)
        if not result:
            flow = self._app.initiate_device_flow(scopes=scopes_list)
            if not flow or "user_code" not in flow:
                raise RuntimeError("Failed to create device flow")
            print(flow["message"])
            result = self._app.acquire_token_by_device_flow(flow)
        if "access_token" not in result:
            raise RuntimeError(
                result.get("error_description", result.get("error", "Device flow failed"))
            )
        _save_cache(self._cache)
        expires_on = int(time.time()) + int(result.get("expires_in", 0))
        return AccessToken(token=result["access_token"], expires_on=expires_on)


def get_graph_credential(
    tenant_id: str,
    client_id: str,
    client_secret: str | None = None,
) -> tuple[TokenCredential, list[str]]:
    """Return (credential, scopes) for GraphServiceClient."""
    if client_secret:
        credential = ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
        )
        return credential, APP_SCOPES
    return MSALDelegatedCredential(tenant_id=tenant_id, client_id=client_id), DELEGATED_SCOPES
