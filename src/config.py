"""Configuration for the application."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Configuration for the evaluation engine and its worker pool."""

    model_config = SettingsConfigDict(env_prefix="ENGINE_", env_file=".env", extra="ignore")

    worker_count: int = Field(default=4, ge=1, description="Number of reading workers (deployment shards)")
    queue_size: int = Field(default=1000, ge=1, description="Maximum pending readings per worker")
    default_cooldown_minutes: float = Field(default=5.0, ge=0.0, description="Cooldown applied when a rule sets none")
    max_rules_per_deployment: int = Field(default=50, ge=1, description="Maximum rules watching one sensor deployment")
    shutdown_timeout_seconds: float = Field(default=10.0, ge=0.0, description="Grace period for in-flight dispatches")


class DispatchConfig(BaseSettings):
    """Configuration for action dispatch."""

    model_config = SettingsConfigDict(env_prefix="DISPATCH_", env_file=".env", extra="ignore")

    timeout_seconds: float = Field(default=5.0, gt=0.0, description="Timeout for a single sink call")
    max_concurrent: int = Field(default=32, ge=1, description="Maximum dispatches in flight")


class AlertSinkConfig(BaseSettings):
    """Configuration for the alert sink."""

    model_config = SettingsConfigDict(env_prefix="ALERT_SINK_", env_file=".env", extra="ignore")

    base_url: str | None = Field(default=None, description="Alert service base URL (in-memory sink when unset)")
    path: str = Field(default="/alerts", description="Path alerts are POSTed to")
    api_key: str | None = Field(default=None, description="Bearer token for the alert service")


class ActuatorSinkConfig(BaseSettings):
    """Configuration for the actuator command sink."""

    model_config = SettingsConfigDict(env_prefix="ACTUATOR_SINK_", env_file=".env", extra="ignore")

    base_url: str | None = Field(default=None, description="Actuator gateway base URL (in-memory sink when unset)")
    path: str = Field(default="/commands", description="Path commands are POSTed to")
    api_key: str | None = Field(default=None, description="Bearer token for the actuator gateway")


class LoggingConfig(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(env_prefix="LOG_", env_file=".env", extra="ignore")

    level: str = Field(default="INFO", description="Console log level")
    file: str | None = Field(default="logs/automation.log", description="Log file path (disabled when empty)")
    rotation: str = Field(default="100 MB", description="Log file rotation threshold")
    retention: str = Field(default="30 days", description="Log file retention")


class AppConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    engine: EngineConfig = Field(default_factory=EngineConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    alert_sink: AlertSinkConfig = Field(default_factory=AlertSinkConfig)
    actuator_sink: ActuatorSinkConfig = Field(default_factory=ActuatorSinkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
