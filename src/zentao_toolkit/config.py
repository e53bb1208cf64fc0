"""Configuration for the toolkit.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

The access token lives in `ZENTAO_TOKEN`. It is obtained from the ZenTao
`/tokens` endpoint out of band; this project never handles passwords.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONCURRENCY = 3


class ToolkitSettings(BaseSettings):
    """Settings for the toolkit.

    Environment variables:
    - ZENTAO_TOKEN
    - ZENTAO_BASE_URL      (optional)
    - LOG_LEVEL            (optional)
    - ZENTAO_STATE_PATH    (optional)
    - ZENTAO_CONCURRENCY   (optional)
    - ZENTAO_HTTP_TIMEOUT  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `ToolkitSettings(_env_file=path_to_env)`.
    """

    # The default is empty so `ToolkitSettings()` type-checks; the validator below
    # enforces that a token is actually provided.
    token: str = Field(
        default="",
        validation_alias="ZENTAO_TOKEN",
        description="ZenTao API token sent in the `Token` header",
    )
    base_url: str = Field(
        default="http://127.0.0.1/zentao/api.php/v1",
        validation_alias="ZENTAO_BASE_URL",
        description="Base URL of the ZenTao REST API (v1)",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    state_path: Path = Field(
        default=Path("zentao_state"),
        validation_alias="ZENTAO_STATE_PATH",
        description="Directory where the persisted key-value store lives",
    )

    concurrency: int = Field(
        default=DEFAULT_CONCURRENCY,
        ge=1,
        validation_alias="ZENTAO_CONCURRENCY",
        description="Maximum in-flight list requests per batch fetch",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        validation_alias="ZENTAO_HTTP_TIMEOUT",
        description="Transport timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_token(self) -> ToolkitSettings:
        if not self.token.strip():
            raise ValueError("ZENTAO_TOKEN is required")
        return self

    @property
    def state_file(self) -> Path:
        """Path of the JSON document backing the key-value store."""

        return self.state_path / "store.json"
