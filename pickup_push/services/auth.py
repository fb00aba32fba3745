"""
Client for the external auth provider that owns user identity.
"""

import logging

import httpx

from pickup_push.errors import AuthError

logger = logging.getLogger(__name__)


class AuthProviderClient:
    """Resolves a bearer access token to the provider's user id."""

    userinfo_path = "/auth/v1/user"

    def __init__(
        self,
        base_url: str,
        service_key: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._transport = transport

    async def get_user_id(self, access_token: str) -> str:
        """Return the user id for access_token or raise AuthError."""
        if not access_token:
            raise AuthError()

        headers = {"Authorization": f"Bearer {access_token}"}
        if self.service_key:
            headers["apikey"] = self.service_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}{self.userinfo_path}", headers=headers)
        except httpx.HTTPError as e:
            logger.error("Auth provider request failed: %s", e)
            raise AuthError() from e

        if response.status_code != 200:
            logger.info("Auth provider rejected token (status %s)", response.status_code)
            raise AuthError()

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Auth provider returned a non-JSON body")
            raise AuthError() from e

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise AuthError()
        return str(user_id)
