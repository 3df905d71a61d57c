import asyncio
from typing import Dict, List, Optional

import httpx
import pytest

from build_scheduler.cloud_foundry.container_client import (
    RUNNING,
    RemoteContainer,
    RemoteContainerClient,
)
from build_scheduler.cluster.build import Build
from build_scheduler.cluster.build_dispatcher import BuildDispatcher
from build_scheduler.cluster.container_pool import ContainerPool
from build_scheduler.cluster.errors import TransportFailure
from build_scheduler.cluster.timeout_reporter import TimeoutReporter

LOG_CALLBACK = "https://www.example.gov/log"
STATUS_CALLBACK = "https://www.example.gov/status"


class FakePlatform(RemoteContainerClient):
    """In-memory stand-in for the container platform."""

    def __init__(self, guids: Optional[List[str]] = None):
        self.states: Dict[str, str] = {g: RUNNING for g in guids or []}
        self.environments: Dict[str, Dict[str, str]] = {}
        self.calls: List[tuple] = []
        self.fail_list = False
        self.fail_apply = False
        self.fail_restage = False
        self.mutation_delay = 0.0
        # BUILD_ID -> event that apply_environment waits on before continuing
        self.holds: Dict[str, asyncio.Event] = {}

    async def list_containers(self) -> List[RemoteContainer]:
        self.calls.append(("list",))
        if self.fail_list:
            raise TransportFailure("platform unreachable")
        return [RemoteContainer(guid=g, name=f"build-container-{g}") for g in self.states]

    async def get_container_state(self, guid: str) -> str:
        return self.states[guid]

    async def apply_environment(self, guid: str, env: Dict[str, str]) -> None:
        self.calls.append(("apply", guid))
        hold = self.holds.get(env.get("BUILD_ID", ""))
        if hold is not None:
            await hold.wait()
        await asyncio.sleep(self.mutation_delay)
        if self.fail_apply:
            raise TransportFailure("apply failed")
        self.environments[guid] = dict(env)

    async def restage(self, guid: str) -> None:
        self.calls.append(("restage", guid))
        await asyncio.sleep(self.mutation_delay)
        if self.fail_restage:
            raise TransportFailure("restage failed")


class CallbackRecorder:
    """httpx.MockTransport handler recording callback POSTs."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={})

    def posts_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]


def make_build(build_id: str = "123abc", **extra_env: str) -> Build:
    env = {
        "BUILD_ID": build_id,
        "LOG_CALLBACK": LOG_CALLBACK,
        "STATUS_CALLBACK": STATUS_CALLBACK,
        **extra_env,
    }
    return Build(build_id=build_id, container_environment=env)


@pytest.fixture
def platform():
    return FakePlatform(["container-1", "container-2"])


@pytest.fixture
def callbacks():
    return CallbackRecorder()


@pytest.fixture
def reporter(callbacks):
    return TimeoutReporter(client=httpx.AsyncClient(transport=httpx.MockTransport(callbacks)))


@pytest.fixture
def pool(platform):
    return ContainerPool(platform, poll_interval=0.01)


@pytest.fixture
def dispatcher(pool, platform, reporter):
    return BuildDispatcher(pool, platform, reporter, build_timeout=60)
