"""Application configuration."""
from functools import lru_cache

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RECONNECT_INTERVALS = [5.0, 10.0, 30.0, 60.0, 180.0, 300.0, 600.0]


class BotConfig(BaseModel):
    """Credentials and agent endpoint of a single bot account."""

    enabled: bool = True
    name: str
    username: str
    password: SecretStr
    endpoint: str | None = Field(
        default=None,
        description="Agent endpoint override (falls back to agent_endpoint)",
    )


class Settings(BaseSettings):
    """Application settings.

    Durations are in seconds. Nested values (``bots``, ``reconnect_intervals``)
    are read from the environment as JSON, e.g.
    ``BOTS='[{"name": "b1", "username": "u", "password": "p"}]'``.
    """

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    # Endpoints
    server_endpoint: str = Field(
        default="wss://tziakcha.net:5334/ws",
        description="Game server WebSocket URL used by bots",
    )
    agent_endpoint: str = Field(
        default="ws://127.0.0.1:8089/",
        description="Default decision agent WebSocket URL",
    )
    lobby_endpoint: str | None = Field(
        default=None,
        description="Lobby observer URL (defaults to server_endpoint)",
    )
    lobby_username: str | None = None
    lobby_password: SecretStr | None = None

    # Connection timing
    reconnect_intervals: list[float] = Field(
        default_factory=lambda: list(DEFAULT_RECONNECT_INTERVALS),
        description="Literal reconnect schedule, last entry repeats",
    )
    heartbeat_interval: float = Field(
        default=30.0,
        description="Heartbeat tick period in seconds",
    )
    response_interval: float = Field(
        default=0.3,
        description="Settle pause after join/exit/login in seconds",
    )
    delay: float = Field(
        default=1.5,
        description="Default pacing delay before forwarding agent decisions",
    )

    # Bots
    bots: list[BotConfig] = Field(default_factory=list)
    random_pick: bool = True
    trace_dir: str = "data/tcbot/traces"

    # Admin API
    admin_api_key: str | None = Field(
        default=None,
        description="When set, admin endpoints require the X-API-Key header",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("reconnect_intervals")
    @classmethod
    def validate_reconnect_intervals(cls, v: list[float]) -> list[float]:
        """The schedule is indexed by retry count, so it must not be empty."""
        if not v:
            raise ValueError("reconnect_intervals must contain at least one entry")
        if any(interval < 0 for interval in v):
            raise ValueError("reconnect_intervals must be non-negative")
        return v

    @field_validator("heartbeat_interval")
    @classmethod
    def validate_heartbeat_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("heartbeat_interval must be positive")
        return v

    @model_validator(mode="after")
    def validate_bot_names(self) -> "Settings":
        """Bot names key trace files and commands, so they must be unique."""
        names = [bot.name for bot in self.bots]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate bot names: {', '.join(duplicates)}")
        return self

    @property
    def resolved_lobby_endpoint(self) -> str:
        return self.lobby_endpoint or self.server_endpoint


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
