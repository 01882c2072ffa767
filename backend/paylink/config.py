"""Application configuration management using Pydantic Settings."""

from typing import List
from decimal import Decimal
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # API
    API_V1_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = ['http://localhost:3000']

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Polygon (Alchemy asset transfers API)
    POLYGON_RPC_URL: str = "https://polygon-mainnet.g.alchemy.com/v2/demo"
    POLYGON_USDC_ADDRESS: str = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
    POLYGON_MAX_TRANSFERS: int = 100

    # Solana
    SOLANA_RPC_URL: str = "https://api.mainnet-beta.solana.com"
    SOLANA_USDC_MINT: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    SOLANA_SIGNATURE_LIMIT: int = 100
    SOLANA_DETAIL_CONCURRENCY: int = 5  # Parallel getTransaction calls per reconciliation

    # Matching
    USDC_DECIMALS: int = 6
    AMOUNT_TOLERANCE_USDC: Decimal = Decimal("0.5")  # Absolute, applied to every network
    MATCH_TIMEFRAME_MINUTES: int = 30

    # Outbound chain API timeouts
    CHAIN_API_TIMEOUT_SECONDS: float = 10.0  # Per HTTP request
    RECONCILE_FETCH_TIMEOUT_SECONDS: float = 25.0  # Whole adapter fetch

    # Background polling
    ENABLE_AUTO_POLLING: bool = False
    POLL_INTERVAL_SECONDS: int = 60
    POLL_BATCH_SIZE: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        """Parse CORS_ORIGINS from JSON string to list."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("AMOUNT_TOLERANCE_USDC", mode="before")
    @classmethod
    def parse_decimal(cls, v) -> Decimal:
        """Parse string to Decimal for precise arithmetic."""
        if isinstance(v, (str, float)):
            return Decimal(str(v))
        return v


# Global settings instance
settings = Settings()
