import asyncio
import base64
from typing import Dict, Optional

import httpx

from build_scheduler.cluster.build import Build
from build_scheduler.cluster.errors import NotificationFailure
from build_scheduler.config import CALLBACK_REQUEST_TIMEOUT
from build_scheduler.logger.common import logger

TIMEOUT_MESSAGE = "The build timed out"
TIMEOUT_SOURCE = "Build scheduler"


def _encoded_timeout_message() -> str:
    return base64.b64encode(TIMEOUT_MESSAGE.encode()).decode()


class TimeoutReporter:
    """Tells a build's log and status callbacks that the build timed out."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = CALLBACK_REQUEST_TIMEOUT,
    ):
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def report_build_timeout(self, build: Build) -> None:
        """
        Post the timeout payloads to both callbacks concurrently. Reporting is
        advisory: failures are logged and never raised.
        """
        results = await asyncio.gather(
            self._send_build_log_request(build),
            self._send_build_status_request(build),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.error(
                    f"Error reporting timeout for build {build.federalist_build_id()}: {result}"
                )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _send_build_log_request(self, build: Build) -> None:
        logger.info(
            f"Sending timeout log request for build {build.federalist_build_id()}"
        )
        await self._request(
            build,
            build.log_callback,
            {"output": _encoded_timeout_message(), "source": TIMEOUT_SOURCE},
        )

    async def _send_build_status_request(self, build: Build) -> None:
        logger.info(
            f"Sending timeout status request for build {build.federalist_build_id()}"
        )
        await self._request(
            build,
            build.status_callback,
            {"message": _encoded_timeout_message(), "status": "error"},
        )

    async def _request(
        self, build: Build, url: Optional[str], payload: Dict[str, str]
    ) -> None:
        if not url:
            raise NotificationFailure(build.build_id, str(url), "no callback URL")
        try:
            resp = await self.client.post(url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationFailure(build.build_id, url, str(e)) from e
