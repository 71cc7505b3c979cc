"""
Identity provider adapters.

The service never handles credentials itself: it hands the caller's bearer
token to the provider and gets back a user id (or nothing).
"""

import httpx

from mindease.core.config import Settings
from mindease.core.errors import AppError
from mindease.core.logging import get_logger

log = get_logger("core.auth")


class IdentityError(RuntimeError):
    pass


class HeaderIdentityProvider:
    """
    Development provider: trusts an X-User-Id header set by a gateway in front
    of the service. Never expose it directly to the internet.
    """

    header = "x-user-id"

    async def resolve(self, headers) -> str | None:
        user_id = (headers.get(self.header) or "").strip()
        return user_id or None

    async def delete_user(self, user_id: str) -> None:
        log.info(f"header identity: nothing to delete upstream for user {user_id}")


class SupabaseIdentityProvider:
    """Supabase auth REST API: /auth/v1/user to resolve, admin API to delete."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = settings.SUPABASE_URL.rstrip("/")
        self.anon_key = settings.SUPABASE_ANON_KEY
        self.service_key = settings.SUPABASE_SERVICE_ROLE_KEY
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(10.0), transport=self.transport)

    async def resolve(self, headers) -> str | None:
        auth = headers.get("authorization") or ""
        if not auth.lower().startswith("bearer "):
            return None
        token = auth[7:].strip()
        if not token:
            return None
        try:
            async with self._client() as client:
                r = await client.get(
                    f"{self.base_url}/auth/v1/user",
                    headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            log.warning(f"identity lookup failed: {e}")
            return None
        if r.status_code != 200:
            return None
        try:
            data = r.json()
        except ValueError:
            return None
        return data.get("id") if isinstance(data, dict) and data.get("id") else None

    async def delete_user(self, user_id: str) -> None:
        if not self.service_key:
            log.error("SUPABASE_SERVICE_ROLE_KEY is not configured")
            raise AppError("Service configuration error", code="CONFIG_ERROR")
        async with self._client() as client:
            r = await client.delete(
                f"{self.base_url}/auth/v1/admin/users/{user_id}",
                headers={"apikey": self.service_key, "Authorization": f"Bearer {self.service_key}"},
            )
        if r.status_code >= 400:
            raise IdentityError(f"delete user failed with {r.status_code}")


def make_identity_provider(settings: Settings):
    provider = (settings.AUTH_PROVIDER or "").lower().strip()
    if provider == "supabase":
        return SupabaseIdentityProvider(settings)
    if provider == "header":
        return HeaderIdentityProvider()
    raise ValueError(f"Unsupported AUTH_PROVIDER={settings.AUTH_PROVIDER}. Use header or supabase.")
