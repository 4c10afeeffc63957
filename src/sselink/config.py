"""Event source configuration via environment variables (SSELINK_ prefix) or defaults."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class EventSourceConfig(BaseSettings):
    # Delays and timeouts are in seconds.
    initial_reconnect_delay: float = Field(default=2.0, gt=0)
    maximum_reconnect_delay: float = Field(default=30.0, gt=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    heartbeat_timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    max_line_bytes: int | None = Field(default=50_000_000, gt=0)  # 50 MB
    http2: bool = False
    log_dir: str | None = None
    log_level: str = "INFO"

    model_config = {"env_prefix": "SSELINK_"}

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "EventSourceConfig":
        if self.maximum_reconnect_delay < self.initial_reconnect_delay:
            raise ValueError(
                "maximum_reconnect_delay must be >= initial_reconnect_delay "
                f"({self.maximum_reconnect_delay} < {self.initial_reconnect_delay})"
            )
        return self
