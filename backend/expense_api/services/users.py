import logging

import httpx
from psycopg_pool import AsyncConnectionPool

from expense_api.models.users import UserProfileRequest

logger = logging.getLogger(__name__)


class IdentitySync:
    """Best-effort push of profile changes to the external identity provider."""

    def __init__(self, http: httpx.AsyncClient, api_url: str, secret_key: str, timeout: float = 5.0) -> None:
        self._http = http
        self._api_url = api_url.rstrip("/")
        self._secret_key = secret_key
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self._secret_key)

    async def sync_avatar(self, user_id: str, image_url: str) -> bool:
        if not self.enabled:
            return False
        try:
            resp = await self._http.patch(
                f"{self._api_url}/users/{user_id}/metadata",
                json={"public_metadata": {"imageUrl": image_url}},
                headers={"Authorization": f"Bearer {self._secret_key}"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Avatar sync to identity provider failed for user_id=%s: %s", user_id, exc)
            return False
        return True


class UserService:
    def __init__(self, pool: AsyncConnectionPool, identity: IdentitySync | None = None) -> None:
        self._pool = pool
        self._identity = identity

    async def upsert_profile(self, user_id: str, profile: UserProfileRequest) -> None:
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO users (id, name, image_uri, contact, address)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    image_uri = EXCLUDED.image_uri,
                    contact = EXCLUDED.contact,
                    address = EXCLUDED.address
                """,
                (user_id, profile.name, profile.image_uri, profile.contact, profile.address),
            )

    async def set_avatar(self, user_id: str, image_url: str) -> bool:
        """Store the avatar and mirror it to the identity provider.

        Returns whether the identity provider accepted it; its failure never
        fails the call.
        """
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO users (id, image_uri)
                VALUES (%s, %s)
                ON CONFLICT (id) DO UPDATE SET image_uri = EXCLUDED.image_uri
                """,
                (user_id, image_url),
            )
        if self._identity is None:
            return False
        return await self._identity.sync_avatar(user_id, image_url)
