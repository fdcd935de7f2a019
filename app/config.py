from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Walkie Relay", description="Human readable service name")
    app_version: str = Field(default="1.0.0", description="Version reported by the status endpoint")
    debug: bool = Field(default=False, description="Enable debug mode")

    host: str = Field(default="0.0.0.0", description="Interface the server binds to")
    port: int = Field(default=3000, description="TCP port the server listens on")
    log_level: str = Field(default="INFO", description="Root log level")

    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )

    media_root: Path = Field(
        default=Path("audio_temp"),
        validate_default=True,
        description="Directory for uploaded clips",
    )
    media_base_url: str = Field(
        default="/audio",
        description="Public path prefix under which uploaded clips are served",
    )
    max_upload_size: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted upload size in bytes",
    )
    media_retention_seconds: int = Field(
        default=3600,
        description="Uploaded clips older than this are removed by the janitor",
    )
    media_purge_on_shutdown: bool = Field(
        default=True,
        description="Remove every uploaded clip once the server has drained",
    )

    janitor_channel_interval_seconds: float = Field(
        default=60,
        gt=0,
        description="Interval of the empty channel sweep",
    )
    janitor_media_interval_seconds: float = Field(
        default=300,
        gt=0,
        description="Interval of the stale upload sweep",
    )
    janitor_stats_interval_seconds: float = Field(
        default=300,
        gt=0,
        description="Interval of the statistics log line",
    )

    shutdown_grace_seconds: float = Field(
        default=10,
        gt=0,
        description="Time allowed for a graceful drain before the process is killed",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=25,
        description="Idle time after which the server sends a keepalive frame",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        description="Minimum gap between application keepalive frames on an idle socket",
    )
    websocket_ping_interval_seconds: float = Field(
        default=25,
        description="Protocol-level ping interval passed to the ASGI server",
    )
    websocket_max_message_size: int = Field(
        default=10 * 1024 * 1024,
        description="Largest websocket frame accepted by the ASGI server",
    )

    signaling_allow_cross_channel: bool = Field(
        default=False,
        description="Allow WebRTC signals addressed with 'to' to reach users in other channels",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return ["*"]
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return str(value).upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()
