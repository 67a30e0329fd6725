"""Application settings loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

from mcp_nexus.crypto.codec import decode_symmetric_key


class Settings(BaseSettings):
    # Rate limiting (requests per minute)
    global_rate_limit_per_minute: int = 600  # aggregate ceiling across all clients
    default_client_rate_limit_per_minute: int = 60  # used when a token has no override

    # Upstream key pools
    credential_selection_strategy: Literal["round_robin", "random"] = "round_robin"
    tavily_base_url: str = "https://api.tavily.com"
    brave_base_url: str = "https://api.search.brave.com"
    upstream_timeout_seconds: float = 30.0

    # Secrets
    # 32 bytes as hex, base64 or base64url: `openssl rand -base64 32`
    key_encryption_secret: str = ""
    admin_api_token: str = ""  # Empty = admin API disabled

    # Persistence
    store_backend: str = "json"  # "json" | "dynamodb"
    store_path: str = "nexus-store.json"
    dynamodb_tokens_table: str = "mcp-nexus-client-tokens"
    dynamodb_credentials_table: str = "mcp-nexus-provider-credentials"
    aws_region: str = "us-east-1"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def encryption_key(self) -> bytes:
        """Decode KEY_ENCRYPTION_SECRET. Raises ConfigError if unusable."""
        return decode_symmetric_key(self.key_encryption_secret)


@lru_cache
def get_settings() -> Settings:
    return Settings()
