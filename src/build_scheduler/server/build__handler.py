from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Request
from pydantic import BaseModel

from build_scheduler.cluster.build import Build
from build_scheduler.cluster.build_dispatcher import BuildDispatcher
from build_scheduler.cluster.errors import (
    BuildAlreadyAssigned,
    InvalidBuildMessage,
    NoAvailableContainer,
    RemoteMutationFailure,
)
from build_scheduler.logger.common import logger

router = APIRouter()


class BuildStarted(BaseModel):
    build_id: str
    container_guid: str


class BuildStopped(BaseModel):
    build_id: str
    stopped: bool


class Capacity(BaseModel):
    can_start_build: bool
    available_containers: int
    total_containers: int


def get_dispatcher(request: Request) -> BuildDispatcher:
    return request.app.state.dispatcher


@router.post("/builds", response_model=BuildStarted)
async def http_start_build(request: Request, message: Dict[str, Any] = Body(...)):
    """
    Start a build from a job message:
      {"environment": [{"name": "BUILD_ID", "value": "..."}, ...], "name": "..."}
    """
    dispatcher = get_dispatcher(request)
    try:
        build = Build.from_message(
            message, builder_callback_url=request.app.state.builder_callback_url
        )
    except InvalidBuildMessage as e:
        raise HTTPException(400, str(e))

    try:
        container = await dispatcher.start_build(build)
    except NoAvailableContainer as e:
        raise HTTPException(503, str(e))
    except BuildAlreadyAssigned as e:
        raise HTTPException(409, str(e))
    except RemoteMutationFailure as e:
        raise HTTPException(502, str(e))

    logger.info(f"HTTP: Started build {build.build_id} on {container.guid}")
    return BuildStarted(build_id=build.build_id, container_guid=container.guid)


@router.get("/builds/capacity", response_model=Capacity)
def http_capacity(request: Request):
    dispatcher = get_dispatcher(request)
    return Capacity(
        can_start_build=dispatcher.can_start_build(),
        available_containers=dispatcher.pool.count_available(),
        total_containers=len(dispatcher.pool.containers),
    )


@router.delete("/builds/{build_id}/callback", response_model=BuildStopped)
async def http_build_finished(request: Request, build_id: str):
    """Called by the container when its build finishes."""
    dispatcher = get_dispatcher(request)
    build: Optional[Build] = dispatcher.find_build(build_id)
    if build is None:
        logger.info(f"HTTP: Finish callback for unknown build {build_id}")
        return BuildStopped(build_id=build_id, stopped=False)
    dispatcher.stop_build(build)
    return BuildStopped(build_id=build_id, stopped=True)
