import asyncio
from typing import List, Optional

from pydantic import BaseModel

from build_scheduler.cloud_foundry.container_client import (
    RUNNING,
    RemoteContainer,
    RemoteContainerClient,
)
from build_scheduler.cluster.build import Build
from build_scheduler.cluster.errors import (
    BuildAlreadyAssigned,
    NoAvailableContainer,
    TransportFailure,
)
from build_scheduler.config import POLL_INTERVAL_SECONDS
from build_scheduler.logger.common import logger


class Container(BaseModel):
    guid: str
    name: Optional[str] = None
    build: Optional[Build] = None


class ContainerPool:
    """
    Local, eventually consistent view of the platform's build containers.

    The container list is replaced on every refresh, but a container that
    survives a poll keeps its build assignment. Claim and release are plain
    synchronous methods, so a claim's scan-and-mark can never be interleaved
    with another coroutine on the event loop.
    """

    def __init__(
        self,
        client: RemoteContainerClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self._containers: List[Container] = []
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def containers(self) -> List[Container]:
        return list(self._containers)

    # ─── POLLING ────────────────────────────────────────────────────────────────
    def start(self) -> asyncio.Task:
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor())
        return self._monitor_task

    async def stop(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _monitor(self) -> None:
        while True:
            try:
                await self.refresh()
            except TransportFailure as e:
                logger.error(f"Failed to refresh container pool: {e}")
            except Exception as e:
                logger.error(f"Unexpected error refreshing container pool: {e!r}")
            await asyncio.sleep(self.poll_interval)

    async def refresh(self) -> None:
        remote = await self.client.list_containers()
        states = await asyncio.gather(
            *(self.client.get_container_state(c.guid) for c in remote)
        )
        running = [c for c, state in zip(remote, states) if state.upper() == RUNNING]
        # No awaits past this point: claims made while we were polling are kept
        self._merge(running)

    def _merge(self, remote: List[RemoteContainer]) -> None:
        existing = {c.guid: c for c in self._containers}
        merged = []
        for rc in remote:
            container = existing.pop(rc.guid, None)
            if container is None:
                container = Container(guid=rc.guid, name=rc.name)
            merged.append(container)
        for dropped in existing.values():
            if dropped.build is not None:
                logger.warning(
                    f"Container {dropped.guid} left the pool while running build "
                    f"{dropped.build.build_id}"
                )
        self._containers = merged
        logger.info(
            f"Container pool refreshed: {len(merged)} containers, "
            f"{self.count_available()} available"
        )

    # ─── OCCUPANCY ──────────────────────────────────────────────────────────────
    def count_available(self) -> int:
        return sum(1 for c in self._containers if c.build is None)

    def can_claim(self) -> bool:
        return self.count_available() > 0

    def claim(self, build: Build) -> Container:
        holder = self.find_container_for_build(build.build_id)
        if holder is not None:
            raise BuildAlreadyAssigned(build.build_id, holder.guid)
        for container in self._containers:
            if container.build is None:
                container.build = build
                logger.info(
                    f"Claimed container {container.guid} for build {build.build_id}"
                )
                return container
        raise NoAvailableContainer()

    def release(self, container_guid: str) -> None:
        for container in self._containers:
            if container.guid == container_guid:
                container.build = None
                logger.info(f"Released container {container_guid}")
                return

    def find_container_for_build(self, build_id: str) -> Optional[Container]:
        for container in self._containers:
            if container.build is not None and container.build.build_id == build_id:
                return container
        return None

    def release_build(self, build: Build) -> Optional[Container]:
        container = self.find_container_for_build(build.build_id)
        if container is not None:
            self.release(container.guid)
        return container
