from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Parley", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    host: str = Field(default="0.0.0.0", description="Interface the server binds to")
    port: int = Field(default=3001, description="Port the server listens on")

    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=30.0,
        description="Idle time before the server checks whether a ping is due; 0 disables keepalive.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25.0,
        description="Minimum interval between keepalive pings sent to idle clients.",
    )

    model_config = SettingsConfigDict(
        env_prefix="PARLEY_",
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
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

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        return str(value).strip().upper() or "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
