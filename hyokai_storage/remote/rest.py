"""
REST account store.

Client for a PostgREST-compatible backend plus its ``user-data`` edge
function. Rows are upserted with ``Prefer: resolution=merge-duplicates``
so every write can be repeated. GitHub tokens never travel to a table
directly: the edge function encrypts them server side.

Example:
    >>> store = RestAccountStore(RestAccountStoreConfig.from_env(), access_token=jwt)
    >>> await store.upsert(RemoteTable.USER_PREFERENCES, [row])
    >>> await store.close()
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import aiohttp

from ..exceptions import AuthError, ConfigurationError, RemoteStoreError
from .base import ENTITY_KEYS, AccountStore, RemoteTable, UserProfile, entity_id

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"
FUNCTIONS_PREFIX = "/functions/v1"
USER_DATA_FUNCTION = "user-data"
PROFILE_SELECT = "id,email,display_name,avatar_url,migrated_at"


@dataclass
class RestAccountStoreConfig:
    """Configuration for the REST account store."""

    base_url: str
    api_key: str
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> RestAccountStoreConfig:
        """Create config from environment variables.

        Raises:
            ConfigurationError: If the URL or API key is missing
        """
        base_url = os.environ.get("HYOKAI_REMOTE_URL")
        if not base_url:
            raise ConfigurationError("HYOKAI_REMOTE_URL", "environment variable is required")
        api_key = os.environ.get("HYOKAI_REMOTE_API_KEY")
        if not api_key:
            raise ConfigurationError("HYOKAI_REMOTE_API_KEY", "environment variable is required")
        return cls(
            base_url=base_url,
            api_key=api_key,
            timeout=float(os.environ.get("HYOKAI_REMOTE_TIMEOUT", "30")),
        )


class RestAccountStore(AccountStore):
    """AccountStore speaking PostgREST over aiohttp."""

    def __init__(
        self,
        config: RestAccountStoreConfig,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the REST account store.

        Args:
            config: Endpoint configuration
            access_token: The signed-in user's JWT (the API key is used when None)
            session: Existing client session to reuse (not closed by this store)
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.access_token = access_token
        self._session = session
        self._owns_session = session is None

    def set_access_token(self, token: str | None) -> None:
        """Switch the bearer token, e.g. after sign-in or refresh."""
        self.access_token = token

    async def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.config.api_key,
            "Authorization": f"Bearer {self.access_token or self.config.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        table: str | None = None,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Send one request and decode the JSON response.

        Raises:
            AuthError: On 401/403
            RemoteStoreError: On any other HTTP error, network error or timeout
        """
        client = await self._client()
        url = f"{self.base_url}{path}"
        try:
            async with client.request(
                method,
                url,
                params=params,
                json=body,
                headers=self._headers(prefer),
            ) as response:
                text = await response.text()
                status = response.status
        except TimeoutError as e:
            raise RemoteStoreError(
                f"Request timeout: {method} {path}", table=table, cause=e
            ) from e
        except aiohttp.ClientError as e:
            raise RemoteStoreError(
                f"Network error: {method} {path}: {e}", table=table, cause=e
            ) from e

        if status in (401, 403):
            raise AuthError(f"HTTP {status} unauthorized for {path}: {text}")
        if status >= 400:
            raise RemoteStoreError(
                f"HTTP {status} from {method} {path}: {text}", table=table, status=status
            )
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise RemoteStoreError(
                f"Invalid JSON from {method} {path}", table=table, status=status, cause=e
            ) from e

    async def upsert(self, table: RemoteTable, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        for row in rows:
            entity_id(table, row)
        await self._request(
            "POST",
            f"{REST_PREFIX}/{table.value}",
            table=table.value,
            params={"on_conflict": ENTITY_KEYS[table]},
            body=rows,
            prefer="resolution=merge-duplicates,return=minimal",
        )
        logger.debug(f"Upserted {len(rows)} rows into {table.value}")

    async def select(self, table: RemoteTable, user_id: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"{REST_PREFIX}/{table.value}",
            table=table.value,
            params={"user_id": f"eq.{user_id}", "select": "*"},
        )
        return list(data or [])

    async def delete(self, table: RemoteTable, user_id: str, entity: str) -> None:
        params = {"user_id": f"eq.{user_id}"}
        params[ENTITY_KEYS[table]] = f"eq.{entity}"
        await self._request(
            "DELETE",
            f"{REST_PREFIX}/{table.value}",
            table=table.value,
            params=params,
        )

    async def ensure_profile(self, user_id: str, email: str | None = None) -> UserProfile:
        await self._request(
            "POST",
            f"{REST_PREFIX}/user_profiles",
            table="user_profiles",
            params={"on_conflict": "id"},
            body={"id": user_id, "email": email},
            prefer="resolution=ignore-duplicates,return=minimal",
        )
        profile = await self.get_profile(user_id)
        if profile is None:
            raise RemoteStoreError(
                f"Profile {user_id} not found after insert", table="user_profiles"
            )
        return profile

    async def get_profile(self, user_id: str) -> UserProfile | None:
        data = await self._request(
            "GET",
            f"{REST_PREFIX}/user_profiles",
            table="user_profiles",
            params={"id": f"eq.{user_id}", "select": PROFILE_SELECT},
        )
        if not data:
            return None
        return UserProfile.from_dict(data[0])

    async def mark_migrated(self, user_id: str, at: datetime) -> None:
        # Filter on migrated_at so an existing flag is never moved
        await self._request(
            "PATCH",
            f"{REST_PREFIX}/user_profiles",
            table="user_profiles",
            params={"id": f"eq.{user_id}", "migrated_at": "is.null"},
            body={"migrated_at": at.isoformat()},
            prefer="return=minimal",
        )

    async def _user_data(self, action: str, **payload: Any) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"{FUNCTIONS_PREFIX}/{USER_DATA_FUNCTION}",
            table="github_credentials",
            body={"action": action, **payload},
        )
        return data or {}

    async def save_credential(self, user_id: str, token: str, username: str | None = None) -> None:
        # The edge function derives the user from the bearer token
        await self._user_data("savePAT", pat=token, username=username)

    async def get_credential(self, user_id: str) -> str | None:
        data = await self._user_data("getPAT")
        return data.get("pat")
