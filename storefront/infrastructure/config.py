"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "1.0.0"
    server_name: str = "fakestore-mcp-server"
    debug: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Gateway
    gateway_url: str = Field(
        default="https://fakestoreapi.com",
        description="FakeStore API base URL",
    )
    gateway_timeout: float = Field(
        default=10.0,
        description="Gateway request timeout in seconds",
    )

    # Cart cache
    cart_ttl_seconds: int = Field(
        default=30 * 60,
        description="Seconds before a session's cached cart must be reconciled",
    )

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def cart_ttl_ms(self) -> float:
        """Cart TTL in milliseconds."""
        return self.cart_ttl_seconds * 1000


settings = Settings()
