import json
import uuid
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from build_scheduler.cluster.errors import InvalidBuildMessage


class EnvironmentEntry(BaseModel):
    name: str
    value: str


class BuildMessage(BaseModel):
    """Body of an inbound job message."""

    environment: List[EnvironmentEntry] = Field(default_factory=list)
    name: Optional[str] = None


class Build(BaseModel):
    model_config = ConfigDict(frozen=True)

    build_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    container_environment: Dict[str, str] = Field(default_factory=dict)
    container_name: Optional[str] = None

    @classmethod
    def from_message(
        cls,
        body: Union[str, bytes, Dict[str, Any]],
        builder_callback_url: Optional[str] = None,
    ) -> "Build":
        """
        Decode a job message body of the form
        {"environment": [{"name": ..., "value": ...}], "name": ...}.
        The BUILD_ID entry, when present, becomes the build id. If a builder
        callback URL is configured, the container is told where to signal
        completion via FEDERALIST_BUILDER_CALLBACK.
        """
        try:
            if isinstance(body, (str, bytes)):
                body = json.loads(body)
            message = BuildMessage.model_validate(body)
        except (ValueError, ValidationError) as e:
            raise InvalidBuildMessage(f"Invalid build message: {e}") from e

        environment = {entry.name: entry.value for entry in message.environment}
        build_id = environment.get("BUILD_ID") or str(uuid.uuid4())
        if builder_callback_url:
            environment["FEDERALIST_BUILDER_CALLBACK"] = (
                f"{builder_callback_url.rstrip('/')}/builds/{build_id}/callback"
            )
        return cls(
            build_id=build_id,
            container_environment=environment,
            container_name=message.name,
        )

    def federalist_build_id(self) -> str:
        return self.build_id

    @property
    def log_callback(self) -> Optional[str]:
        return self.container_environment.get("LOG_CALLBACK")

    @property
    def status_callback(self) -> Optional[str]:
        return self.container_environment.get("STATUS_CALLBACK")
