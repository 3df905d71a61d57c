import os
from typing import Optional

from pydantic import BaseModel

# ─── SCHEDULER ─────────────────────────────────────────────────────────────────
BUILD_TIMEOUT_SECONDS = float(os.getenv("BUILD_TIMEOUT_SECONDS", 20 * 60))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", 10))
CALLBACK_REQUEST_TIMEOUT = float(os.getenv("CALLBACK_REQUEST_TIMEOUT", 10))
BUILDER_CALLBACK_URL = os.getenv("BUILDER_CALLBACK_URL", None)
SCHEDULER_HTTP = os.getenv("SCHEDULER_HTTP", "http://0.0.0.0:8080")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ─── CLOUD FOUNDRY ─────────────────────────────────────────────────────────────
CF_API_URL = os.getenv("CF_API_URL", None)
CF_OAUTH_TOKEN_URL = os.getenv("CF_OAUTH_TOKEN_URL", None)
CF_USERNAME = os.getenv("CF_USERNAME", None)
CF_PASSWORD = os.getenv("CF_PASSWORD", None)
CF_SPACE_GUID = os.getenv("CF_SPACE_GUID", None)
BUILD_CONTAINER_BASE_NAME = os.getenv("BUILD_CONTAINER_BASE_NAME", None)


class ConfigurationError(Exception):
    pass


class CloudFoundrySettings(BaseModel):
    api_url: str
    token_url: str
    username: str
    password: str
    space_guid: str
    container_name_prefix: Optional[str] = None


def load_cloud_foundry_settings() -> CloudFoundrySettings:
    required = {
        "CF_API_URL": CF_API_URL,
        "CF_OAUTH_TOKEN_URL": CF_OAUTH_TOKEN_URL,
        "CF_USERNAME": CF_USERNAME,
        "CF_PASSWORD": CF_PASSWORD,
        "CF_SPACE_GUID": CF_SPACE_GUID,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigurationError(
            f"Missing Cloud Foundry settings: {', '.join(missing)}"
        )
    return CloudFoundrySettings(
        api_url=CF_API_URL.rstrip("/"),  # type: ignore
        token_url=CF_OAUTH_TOKEN_URL,  # type: ignore
        username=CF_USERNAME,  # type: ignore
        password=CF_PASSWORD,  # type: ignore
        space_guid=CF_SPACE_GUID,  # type: ignore
        container_name_prefix=BUILD_CONTAINER_BASE_NAME,
    )
