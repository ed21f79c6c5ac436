"""Configuration for Lahelu ActivityPub/Fediverse Bridge."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlatformConfig(BaseSettings):
    """Lahelu platform API settings."""

    model_config = SettingsConfigDict(env_prefix="LAHELU_")

    api_url: str = Field(
        default="https://lahelu.com/api",
        description="Root URL of the Lahelu HTTP API"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single platform API request"
    )

    @field_validator("api_url")
    @classmethod
    def strip_api_url(cls, v: str) -> str:
        return v.rstrip("/")


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(
        default="sqlite+aiosqlite:///./data/bridge.db",
        description="SQLAlchemy database URL"
    )


class BridgeConfig(BaseSettings):
    """Main bridge configuration combining all settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-configs
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Public origin of this bridge, e.g. https://bridge.example
    domain: str = Field(
        description="Public origin used for actor, inbox and outbox URIs"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Host address for HTTP server"
    )
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Port for HTTP server"
    )
    sync_ttl_ms: int = Field(
        default=300_000,
        ge=0,
        description="Minimum milliseconds between post syncs of the same user"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        """Require an absolute http(s) origin without trailing slash."""
        v = v.strip()
        if not v.startswith(("https://", "http://")):
            raise ValueError("domain must be an origin such as https://bridge.example")
        if not v.startswith("https://"):
            # Allow http for development
            import warnings
            warnings.warn("Bridge domain should use HTTPS for production")
        return v.rstrip("/")

    @classmethod
    def from_yaml(cls, path: str) -> "BridgeConfig":
        """Load configuration from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)


def load_config() -> BridgeConfig:
    """Load configuration from environment and .env file.

    Raises:
        pydantic.ValidationError: If DOMAIN is missing or invalid
    """
    return BridgeConfig()
