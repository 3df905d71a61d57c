#!/usr/bin/env python3
import json

import httpx
import typer

from build_scheduler.config import LOG_LEVEL

app = typer.Typer(
    help="Build scheduler: assigns build jobs to a pool of Cloud Foundry containers.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command()
def serve(
    port: int = typer.Argument(8080, help="[optional] Port to run the HTTP server on"),
    host: str = typer.Option("0.0.0.0", help="[optional] Interface to bind"),
    log_level: str = typer.Option(LOG_LEVEL, help="[optional] Log level"),
):
    """
    Run the scheduler. Cloud Foundry credentials are read from CF_* variables.

    Example:
        build-scheduler serve 8080
    """
    from build_scheduler.config import ConfigurationError
    from build_scheduler.server.server import run

    try:
        run(host, port, log_level.upper())
    except ConfigurationError as e:
        typer.secho(str(e), err=True, fg=typer.colors.RED)
        raise typer.Exit(1)


@app.command()
def containers(
    scheduler: str = typer.Option(
        ...,
        "--scheduler",
        "-s",
        help="[required] Scheduler HTTP address, e.g. http://localhost:8080",
    ),
):
    """
    List the container pool and the build running on each container.

    Example:
        build-scheduler containers --scheduler http://localhost:8080
    """
    url = f"{scheduler.rstrip('/')}/containers"
    try:
        with httpx.Client(timeout=None) as client:
            resp = client.get(url)
            resp.raise_for_status()
            print(json.dumps(resp.json(), indent=2))
    except httpx.HTTPError as e:
        typer.secho(f"Error listing containers: {e}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
