import json
from typing import List

import httpx
import pytest

from build_scheduler.cloud_foundry.container_client import CloudFoundryContainerClient
from build_scheduler.cluster.errors import TransportFailure
from build_scheduler.config import CloudFoundrySettings

API = "https://api.example.com"
TOKEN_URL = "https://login.example.com/oauth/token"


def _settings(prefix=None) -> CloudFoundrySettings:
    return CloudFoundrySettings(
        api_url=API,
        token_url=TOKEN_URL,
        username="deploy-user",
        password="deploy-pass",
        space_guid="space-123",
        container_name_prefix=prefix,
    )


class FakeCloudFoundry:
    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.tokens_issued = 0
        self.reject_first_call = False
        self.restage_status = 201

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if str(request.url) == TOKEN_URL:
            self.tokens_issued += 1
            return httpx.Response(
                200, json={"access_token": f"token-{self.tokens_issued}", "expires_in": 3600}
            )
        if self.reject_first_call:
            self.reject_first_call = False
            return httpx.Response(401)
        if path == "/v2/spaces/space-123/apps":
            if request.url.params.get("page") == "2":
                return httpx.Response(
                    200,
                    json={
                        "next_url": None,
                        "resources": [
                            {"metadata": {"guid": "g3"}, "entity": {"name": "build-container-3"}}
                        ],
                    },
                )
            return httpx.Response(
                200,
                json={
                    "next_url": "/v2/spaces/space-123/apps?page=2",
                    "resources": [
                        {"metadata": {"guid": "g1"}, "entity": {"name": "build-container-1"}},
                        {"metadata": {"guid": "g2"}, "entity": {"name": "other-app"}},
                    ],
                },
            )
        if path == "/v2/apps/g1/stats":
            return httpx.Response(200, json={"0": {"state": "RUNNING"}})
        if path == "/v2/apps/g2/stats":
            return httpx.Response(200, json={})
        if path == "/v2/apps/g1" and request.method == "PUT":
            return httpx.Response(201, json={})
        if path == "/v2/apps/g1/restage" and request.method == "POST":
            return httpx.Response(self.restage_status, json={})
        return httpx.Response(404)


@pytest.fixture
def cloud_foundry():
    return FakeCloudFoundry()


def _client(cloud_foundry, prefix=None) -> CloudFoundryContainerClient:
    return CloudFoundryContainerClient(
        _settings(prefix), client=httpx.AsyncClient(transport=httpx.MockTransport(cloud_foundry))
    )


@pytest.mark.asyncio
async def test_list_containers_follows_pagination(cloud_foundry):
    client = _client(cloud_foundry)
    containers = await client.list_containers()
    assert [c.guid for c in containers] == ["g1", "g2", "g3"]
    await client.aclose()


@pytest.mark.asyncio
async def test_list_containers_filters_by_name_prefix(cloud_foundry):
    client = _client(cloud_foundry, prefix="build-container")
    containers = await client.list_containers()
    assert [c.name for c in containers] == ["build-container-1", "build-container-3"]


@pytest.mark.asyncio
async def test_requests_are_authenticated_with_cached_token(cloud_foundry):
    client = _client(cloud_foundry)
    await client.get_container_state("g1")
    await client.get_container_state("g1")

    assert cloud_foundry.tokens_issued == 1
    token_request = cloud_foundry.requests[0]
    assert b"grant_type=password" in token_request.content
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert cloud_foundry.requests[-1].headers["Authorization"] == "Bearer token-1"


@pytest.mark.asyncio
async def test_unauthorized_response_refreshes_token(cloud_foundry):
    client = _client(cloud_foundry)
    cloud_foundry.reject_first_call = True

    assert await client.get_container_state("g1") == "RUNNING"
    assert cloud_foundry.tokens_issued == 2


@pytest.mark.asyncio
async def test_state_of_app_without_instances_is_stopped(cloud_foundry):
    client = _client(cloud_foundry)
    assert await client.get_container_state("g2") == "STOPPED"


@pytest.mark.asyncio
async def test_apply_environment_and_restage(cloud_foundry):
    client = _client(cloud_foundry)
    await client.apply_environment("g1", {"BUILD_ID": "abc"})
    await client.restage("g1")

    put, post = cloud_foundry.requests[-2:]
    assert put.method == "PUT"
    assert json.loads(put.content) == {"environment_json": {"BUILD_ID": "abc"}}
    assert post.url.path == "/v2/apps/g1/restage"


@pytest.mark.asyncio
async def test_error_responses_raise_transport_failure(cloud_foundry):
    client = _client(cloud_foundry)
    cloud_foundry.restage_status = 500
    with pytest.raises(TransportFailure):
        await client.restage("g1")
    with pytest.raises(TransportFailure):
        await client.get_container_state("missing")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path, response",
    [
        ("/v2/spaces/space-123/apps", httpx.Response(200, text="<html>maintenance</html>")),
        ("/v2/spaces/space-123/apps", httpx.Response(200, json={"resources": [{}]})),
        ("/v2/apps/g1/stats", httpx.Response(200, json=["RUNNING"])),
        ("/oauth/token", httpx.Response(200, json={"token": "missing-key"})),
    ],
)
async def test_malformed_bodies_raise_transport_failure(cloud_foundry, path, response):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == path:
            return response
        return cloud_foundry(request)

    client = CloudFoundryContainerClient(
        _settings(), client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    with pytest.raises(TransportFailure):
        if path.endswith("/stats"):
            await client.get_container_state("g1")
        else:
            await client.list_containers()
