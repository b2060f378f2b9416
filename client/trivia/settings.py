"""Sync engine configuration via environment variables."""

from typing import Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from shared.validators import HTTP_SCHEMES, WEBSOCKET_SCHEMES, parse_base_url, websocket_url_from_http


class SyncSettings(BaseSettings):
    model_config = {"env_prefix": "TRIVIA_"}

    api_url: str = "http://localhost:8000"
    # Derived from api_url when unset (http -> ws, https -> wss).
    ws_url: str | None = None
    api_key: str | None = None

    reconnect_base_seconds: float = Field(default=3.0, gt=0)
    reconnect_cap_seconds: float = Field(default=10.0, gt=0)
    max_reconnect_attempts: int = Field(default=5, ge=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    heartbeat_interval_seconds: float = Field(default=15.0, gt=0)

    poll_interval_seconds: float = Field(default=3.0, gt=0)
    # No two status fetches closer together than this.
    min_fetch_interval_seconds: float = Field(default=1.0, gt=0)
    fetch_timeout_seconds: float = Field(default=5.0, gt=0)

    start_grace_seconds: float = Field(default=1.5, ge=0)
    # The status endpoint often reports an empty roster while push players are
    # connected, so an empty authoritative roster removes nobody unless trusted.
    trust_empty_roster_when_active: bool = False
    request_stats_on_open: bool = True

    log_dir: str | None = None

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        return parse_base_url(v, schemes=HTTP_SCHEMES)

    @field_validator("ws_url")
    @classmethod
    def validate_ws_url(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return parse_base_url(v, schemes=WEBSOCKET_SCHEMES)

    @model_validator(mode="after")
    def _validate_backoff(self) -> Self:
        if self.reconnect_cap_seconds < self.reconnect_base_seconds:
            raise ValueError(
                f"reconnect_cap_seconds ({self.reconnect_cap_seconds}) must be >= "
                f"reconnect_base_seconds ({self.reconnect_base_seconds})",
            )
        return self

    @property
    def resolved_ws_url(self) -> str:
        return self.ws_url or websocket_url_from_http(self.api_url)
