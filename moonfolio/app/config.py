"""
Application configuration module.

Settings are read from environment variables or a .env file at the project
root (environment variables win). The storage backend and the upstream
providers are chosen here, once, at process start.
"""
import os
from pathlib import Path
from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Project root (three levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Global flag to indicate test mode (set via MOONFOLIO_TEST_MODE env var)
_test_mode = os.environ.get("MOONFOLIO_TEST_MODE", "").lower() in ("1", "true", "yes")


def set_test_mode(enabled: bool = True):
    """
    Enable/disable test mode globally.
    When enabled, DATABASE_URL will automatically use TEST_DATABASE_URL.

    Args:
        enabled: True to enable test mode, False to disable
    """
    global _test_mode
    _test_mode = enabled
    os.environ["MOONFOLIO_TEST_MODE"] = "1" if enabled else "0"


def is_test_mode() -> bool:
    """Check if test mode is enabled."""
    return _test_mode


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables or .env file.
    (Note: Environment variables take precedence over .env file)
    """
    # Database
    DATABASE_URL: str = "sqlite:///./moonfolio/data/sqlite/app.db"
    TEST_DATABASE_URL: str = "sqlite:///./moonfolio/data/sqlite/test_app.db"

    # Ledger storage: "sql" (DATABASE_URL) or "memory" (process-local, lost on restart)
    STORAGE_BACKEND: Literal["sql", "memory"] = "sql"
    LEDGER_MAX_RETRIES: int = 3

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Moonfolio"
    VERSION: str = "0.1.0"

    # Server
    PORT: int = 8000
    TEST_PORT: int = 8001

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True

    # CORS (for frontend development)
    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Upstream providers (codes registered in the provider registries)
    PRICE_PROVIDER: str = "coingecko"
    CHAIN_PROVIDER: str = "ethereum_rpc"
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0

    # Market data
    COINGECKO_API_URL: str = "https://api.coingecko.com/api/v3"
    COINGECKO_API_KEY: str | None = None
    PRICE_BATCH_SIZE: int = 10
    PRICE_REFRESH_INTERVAL_SECONDS: float = 30.0  # 0 disables the refresh task
    PRICE_MAX_AGE_SECONDS: float = 120.0
    TRACKED_PRICE_IDS: list[str] = [
        "bitcoin", "ethereum", "tether", "usd-coin", "binancecoin",
        "solana", "ripple", "cardano", "dogecoin", "chainlink",
        ]

    # Ethereum
    ETH_RPC_URL: str = "https://mainnet.infura.io/v3"
    INFURA_API_KEY: str | None = None
    ENS_RESOLVER_URL: str = "https://api.ensideas.com/ens/resolve"
    ENS_CACHE_TTL_SECONDS: int = 600

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        case_sensitive=True,
        env_file_encoding='utf-8',
        extra='ignore',
        )

    @property
    def eth_rpc_endpoint(self) -> str:
        """RPC endpoint with the Infura key appended when one is configured."""
        if self.INFURA_API_KEY:
            return f"{self.ETH_RPC_URL.rstrip('/')}/{self.INFURA_API_KEY}"
        return self.ETH_RPC_URL


def get_settings() -> Settings:
    """
    Get settings instance.

    In test mode, DATABASE_URL is automatically overridden with TEST_DATABASE_URL.

    Returns:
        Settings: Application settings
    """
    settings = Settings()

    if is_test_mode():
        settings.DATABASE_URL = settings.TEST_DATABASE_URL

    return settings
