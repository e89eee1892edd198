"""
Configuration for the release graph SDK.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Query engine configuration loaded from environment."""

    # Published graph location
    base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL the graph's root-relative hrefs are joined to",
    )
    entry_point: str = Field(default="/index.json", description="Default starting document")

    # HTTP
    timeout_seconds: float = Field(default=10.0, description="Per-request timeout seconds")
    user_agent: str = Field(default="relgraph-sdk", description="User-Agent header")

    # Retry with exponential backoff
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_delay_ms: int = Field(default=200, ge=0, description="Delay before the first retry")
    backoff_factor: float = Field(default=2.0, ge=1.0, description="Delay multiplier per retry")

    model_config = {"env_prefix": "RELGRAPH_CLIENT_"}

    def retry_delay(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (0-based)."""
        return self.retry_delay_ms * (self.backoff_factor ** retry) / 1000.0
