import asyncio
from typing import Dict, Optional, Set

from build_scheduler.cloud_foundry.container_client import RemoteContainerClient
from build_scheduler.cluster.build import Build
from build_scheduler.cluster.container_pool import Container, ContainerPool
from build_scheduler.cluster.errors import RemoteMutationFailure
from build_scheduler.cluster.timeout_reporter import TimeoutReporter
from build_scheduler.config import BUILD_TIMEOUT_SECONDS
from build_scheduler.logger.common import logger


class BuildDispatcher:
    def __init__(
        self,
        pool: ContainerPool,
        client: RemoteContainerClient,
        reporter: TimeoutReporter,
        build_timeout: float = BUILD_TIMEOUT_SECONDS,
    ):
        self.pool = pool
        self.client = client
        self.reporter = reporter
        self.build_timeout = build_timeout
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._timeout_tasks: Set[asyncio.Task] = set()

    def can_start_build(self) -> bool:
        return self.pool.can_claim()

    async def start_build(self, build: Build) -> Container:
        """
        Claim an idle container, point it at the build and restage it.
        If either remote call fails the container goes back to the pool and
        RemoteMutationFailure is raised; the build never started.
        """
        container = self.pool.claim(build)
        step = "apply environment to"
        try:
            await self.client.apply_environment(
                container.guid, build.container_environment
            )
            step = "restage"
            await self.client.restage(container.guid)
        except asyncio.CancelledError:
            self._release_claim(container, build)
            raise
        except Exception as e:
            logger.error(
                f"Build {build.build_id}: failed to {step} container {container.guid}: {e}"
            )
            self._release_claim(container, build)
            raise RemoteMutationFailure(build.build_id, container.guid, step) from e

        if container.build is not build:
            # Stopped while the remote calls were in flight
            logger.info(f"Build {build.build_id}: stopped before it finished starting")
            return container
        self._arm_timer(build)
        logger.info(f"Build {build.build_id}: started on container {container.guid}")
        return container

    def _release_claim(self, container: Container, build: Build) -> None:
        # The container may already have been handed to another build
        if container.build is build:
            self.pool.release(container.guid)

    def stop_build(self, build: Build) -> None:
        """Release the build's container. Never reports a timeout."""
        timer = self._timers.pop(build.build_id, None)
        if timer is not None:
            timer.cancel()
        container = self.pool.release_build(build)
        if container is not None:
            logger.info(
                f"Build {build.build_id}: stopped, container {container.guid} available"
            )

    def find_build(self, build_id: str) -> Optional[Build]:
        container = self.pool.find_container_for_build(build_id)
        return container.build if container else None

    def shutdown(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    # ─── TIMEOUTS ───────────────────────────────────────────────────────────────
    def _arm_timer(self, build: Build) -> None:
        previous = self._timers.pop(build.build_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._timers[build.build_id] = loop.call_later(
            self.build_timeout, self._on_timeout, build
        )

    def _on_timeout(self, build: Build) -> None:
        # A stop that won the race has already removed the handle
        if self._timers.pop(build.build_id, None) is None:
            return
        logger.warning(f"Build {build.build_id}: timed out after {self.build_timeout}s")
        task = asyncio.get_running_loop().create_task(self._handle_timeout(build))
        self._timeout_tasks.add(task)
        task.add_done_callback(self._timeout_tasks.discard)

    async def _handle_timeout(self, build: Build) -> None:
        self.stop_build(build)
        await self.reporter.report_build_timeout(build)

    async def wait_for_timeout_reports(self) -> None:
        if self._timeout_tasks:
            await asyncio.gather(*self._timeout_tasks, return_exceptions=True)
