import asyncio
import time
from typing import Optional

import httpx

from build_scheduler.cluster.errors import TransportFailure
from build_scheduler.logger.common import logger

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN = 60


class UAATokenProvider:
    """Fetches and caches a UAA access token using the password grant."""

    def __init__(
        self,
        token_url: str,
        username: str,
        password: str,
        client: httpx.AsyncClient,
    ):
        self.token_url = token_url
        self.username = username
        self.password = password
        self.client = client
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            if self._token is None or time.time() >= self._expires_at:
                await self._fetch_token()
            return self._token  # type: ignore

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def _fetch_token(self) -> None:
        resp = await self.client.post(
            self.token_url,
            data={
                "grant_type": "password",
                "username": self.username,
                "password": self.password,
            },
            auth=("cf", ""),
        )
        resp.raise_for_status()
        try:
            body = resp.json()
            token = body["access_token"]
            expires_in = int(body.get("expires_in", 0))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransportFailure(
                f"Malformed token response from {self.token_url}: {e}"
            ) from e
        self._token = token
        self._expires_at = time.time() + expires_in - EXPIRY_MARGIN
        logger.info("Fetched new Cloud Foundry access token")
