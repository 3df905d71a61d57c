from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel

from build_scheduler.cloud_foundry.uaa import UAATokenProvider
from build_scheduler.cluster.errors import TransportFailure
from build_scheduler.config import CloudFoundrySettings
from build_scheduler.logger.common import logger

RUNNING = "RUNNING"
STOPPED = "STOPPED"


class RemoteContainer(BaseModel):
    guid: str
    name: Optional[str] = None


class RemoteContainerClient(Protocol):
    async def list_containers(self) -> List[RemoteContainer]:
        """List the build containers known to the platform."""
        ...

    async def get_container_state(self, guid: str) -> str:
        """Get the running state of a container, e.g. RUNNING."""
        ...

    async def apply_environment(self, guid: str, env: Dict[str, str]) -> None:
        """Replace the environment of a container."""
        ...

    async def restage(self, guid: str) -> None:
        """Restart a container with its currently configured environment."""
        ...


class CloudFoundryContainerClient(RemoteContainerClient):
    """Talks to the Cloud Foundry v2 API; each build container is an app."""

    def __init__(
        self,
        settings: CloudFoundrySettings,
        client: Optional[httpx.AsyncClient] = None,
        token_provider: Optional[UAATokenProvider] = None,
    ):
        self.settings = settings
        self.client = client or httpx.AsyncClient(timeout=30)
        self.token_provider = token_provider or UAATokenProvider(
            settings.token_url, settings.username, settings.password, self.client
        )

    async def list_containers(self) -> List[RemoteContainer]:
        containers: List[RemoteContainer] = []
        path: Optional[str] = f"/v2/spaces/{self.settings.space_guid}/apps"
        prefix = self.settings.container_name_prefix
        while path:
            resp = await self._request("GET", path)
            try:
                body = resp.json()
                page = [
                    RemoteContainer(
                        guid=resource["metadata"]["guid"],
                        name=resource.get("entity", {}).get("name"),
                    )
                    for resource in body.get("resources", [])
                ]
                path = body.get("next_url")
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise TransportFailure(
                    f"Malformed app listing from {path}: {e}"
                ) from e
            containers.extend(
                c for c in page if not prefix or (c.name or "").startswith(prefix)
            )
        return containers

    async def get_container_state(self, guid: str) -> str:
        resp = await self._request("GET", f"/v2/apps/{guid}/stats")
        try:
            stats: Dict[str, Any] = resp.json()
            if not stats:
                return STOPPED
            first = stats[sorted(stats, key=str)[0]]
            return str(first.get("state", STOPPED)).upper()
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransportFailure(f"Malformed stats for container {guid}: {e}") from e

    async def apply_environment(self, guid: str, env: Dict[str, str]) -> None:
        await self._request("PUT", f"/v2/apps/{guid}", json={"environment_json": env})
        logger.info(f"Applied build environment to container {guid}")

    async def restage(self, guid: str) -> None:
        await self._request("POST", f"/v2/apps/{guid}/restage")
        logger.info(f"Restaged container {guid}")

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.settings.api_url}{path}"
        try:
            resp = await self._send(method, url, **kwargs)
            if resp.status_code == 401:
                # Token revoked or expired early, fetch a fresh one and retry once
                self.token_provider.invalidate()
                resp = await self._send(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as e:
            raise TransportFailure(f"{method} {url} failed: {e}") from e

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        token = await self.token_provider.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        return await self.client.request(method, url, headers=headers, **kwargs)
