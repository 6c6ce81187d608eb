from __future__ import annotations

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",
        case_sensitive=False,
    )

    env: str = Field(default="development")
    debug: bool = Field(default=False)
    docs_enabled: bool = Field(default=True)
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=lambda: ["localhost", "127.0.0.1"])

    database_url: str = Field(default="sqlite:///./sensor_data.db", min_length=1)
    database_echo: bool = Field(default=False)
    database_busy_timeout_seconds: float = Field(default=5.0, ge=0.0, le=60.0)

    mqtt_enabled: bool = Field(default=True)
    mqtt_host: str = Field(default="localhost", min_length=1)
    mqtt_port: int = Field(default=1883, ge=1, le=65535)
    mqtt_username: str | None = Field(default=None)
    mqtt_password: str | None = Field(default=None)
    mqtt_topic: str = Field(default="sensors/+/data", min_length=1)
    mqtt_client_id_prefix: str = Field(default="sensor-logger", min_length=1, max_length=32)
    mqtt_keepalive_seconds: int = Field(default=60, ge=5, le=3600)
    mqtt_reconnect_min_delay_seconds: int = Field(default=1, ge=1, le=60)
    mqtt_reconnect_max_delay_seconds: int = Field(default=30, ge=1, le=3600)
    mqtt_max_payload_bytes: int = Field(default=64 * 1024, ge=64, le=1024 * 1024)

    weather_base_url: AnyHttpUrl = Field(default="https://api.open-meteo.com/v1/forecast")
    weather_timeout_seconds: float = Field(default=10.0, ge=1.0, le=30.0)
    weather_latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    weather_longitude: float | None = Field(default=None, ge=-180.0, le=180.0)

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


def load_settings() -> Settings:
    settings = Settings()
    if not settings.cors_origins:
        settings.cors_origins = ["http://localhost:3000", "http://localhost:8000"]
    return settings
