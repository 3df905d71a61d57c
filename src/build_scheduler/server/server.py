from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from build_scheduler.cloud_foundry.container_client import CloudFoundryContainerClient
from build_scheduler.cluster.build_dispatcher import BuildDispatcher
from build_scheduler.cluster.container_pool import ContainerPool
from build_scheduler.cluster.timeout_reporter import TimeoutReporter
from build_scheduler.config import (
    BUILD_TIMEOUT_SECONDS,
    BUILDER_CALLBACK_URL,
    POLL_INTERVAL_SECONDS,
    SCHEDULER_HTTP,
    load_cloud_foundry_settings,
)
from build_scheduler.logger.common import logger, uvicorn_log_config
from build_scheduler.server.container__handler import router as container_router
from build_scheduler.server.build__handler import router as build_router


def create_app(
    dispatcher: BuildDispatcher,
    builder_callback_url: Optional[str] = BUILDER_CALLBACK_URL,
    poll: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if poll:
            dispatcher.pool.start()
        try:
            yield
        finally:
            await dispatcher.pool.stop()
            dispatcher.shutdown()
            await dispatcher.reporter.aclose()
            close_client = getattr(dispatcher.client, "aclose", None)
            if close_client is not None:
                await close_client()

    app = FastAPI(lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.builder_callback_url = builder_callback_url
    app.include_router(build_router)
    app.include_router(container_router)
    return app


def build_default_app() -> FastAPI:
    """Wire the scheduler against Cloud Foundry using environment settings."""
    client = CloudFoundryContainerClient(load_cloud_foundry_settings())
    pool = ContainerPool(client, poll_interval=POLL_INTERVAL_SECONDS)
    dispatcher = BuildDispatcher(
        pool, client, TimeoutReporter(), build_timeout=BUILD_TIMEOUT_SECONDS
    )
    return create_app(dispatcher)


def run(host: str, port: int, log_level: str = "INFO") -> None:
    import uvicorn

    logger.info(f"Starting HTTP server on {host}:{port}")
    uvicorn.run(
        build_default_app(),
        host=host,
        port=port,
        log_level=log_level.lower(),
        log_config=uvicorn_log_config(log_level),
    )


if __name__ == "__main__":
    host = SCHEDULER_HTTP.split("://")[-1].split(":")[0]
    port = int(SCHEDULER_HTTP.split(":")[-1])
    run(host, port)
