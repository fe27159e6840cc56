"""
Configuration management using Pydantic Settings.
Supports multiple environments: development, staging, production.
"""

import re
from typing import Dict, FrozenSet, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CUBESYNC_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "CubeSync"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # Chain
    chain_id: int = 10143
    chain_name: str = "Monad Testnet"
    rpc_urls: List[str] = Field(
        default_factory=lambda: [
            "https://monad-testnet.rpc.thirdweb.com",
            "https://rpc.monad.xyz",
        ]
    )
    auto_switch_chain: bool = True

    # Contracts
    core_address: str = "0xb8Fee974031de01411656F908E13De4Ad9c74A9B"
    reader_address: str = "0xF9017a4701E1464690d6b71E2Fb3AF9c4c1acab1"
    nft_address: str = "0x4bcd4aff190d715fa7201cce2e69dd72c0549b07"
    octa_token_address: str = "0xB4832932D819361e0d250c338eBf87f0757ed800"
    octaa_token_address: str = "0x7D7F4BDd43292f9E7Aae44707a7EEEB5655ca465"
    pair_token_address: Optional[str] = "0x760AfE86e5de5fa0Ee542fc7B7B713e1c5425701"
    multicall3_address: Optional[str] = "0xcA11bde05977b3631167028862bE2a173976CA11"

    # Remote reads
    rpc_timeout: float = 25.0  # seconds, per attempt
    rpc_max_attempts: int = 3
    rpc_retry_base_delay: float = 2.0  # seconds
    batch_size_multicall: int = 32
    batch_size_individual: int = 16
    batch_concurrency: int = 4

    # Cache
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "cubesync:"

    # Graveyard polling
    graveyard_base_interval: float = 45.0
    graveyard_jitter: float = 2.0
    graveyard_backoff_start: float = 5.0
    graveyard_backoff_max: float = 120.0
    graveyard_min_interval: float = 5.0
    graveyard_page_size: int = 50
    graveyard_max_tokens: int = 200

    # Burn tracking
    burn_log_lookback_blocks: int = 100_000
    claim_lock_seconds: int = 30

    # Transactions
    approval_buffer_percent: int = 10
    receipt_poll_interval: float = 2.0
    receipt_timeout: float = 120.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("chain_id")
    @classmethod
    def validate_chain_id(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Chain id must be a positive integer")
        return v

    @field_validator("rpc_urls")
    @classmethod
    def validate_rpc_urls(cls, v: List[str]) -> List[str]:
        urls = []
        for url in v:
            url = url.strip()
            if url and url not in urls:
                urls.append(url)
        if not urls:
            raise ValueError("At least one RPC endpoint must be configured")
        return urls

    @field_validator(
        "core_address",
        "reader_address",
        "nft_address",
        "octa_token_address",
        "octaa_token_address",
    )
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not _HEX_ADDRESS_RE.match(v):
            raise ValueError(f"Invalid contract address: {v}")
        return v

    @field_validator("pair_token_address", "multicall3_address")
    @classmethod
    def validate_optional_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not _HEX_ADDRESS_RE.match(v):
            raise ValueError(f"Invalid contract address: {v}")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


# Global settings instance
settings = Settings()


class ChainConfig:
    """Chain-specific configuration and constants."""

    # Wait periods (minutes) the core contract accepts for burnNFT
    BURN_WAIT_MINUTES = (30, 120, 480)

    # Cache lifetimes per feature, seconds (None = never expires)
    FEATURE_TTLS: Dict[str, Optional[int]] = {
        "nft_state": 30,
        "graveyard": 45,
        "pending_rewards": 60,
        "burned_nfts": 120,
        "burn_split": None,
        "claim_lock": 30,
    }

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or settings

    @property
    def chain_id(self) -> int:
        return self.settings.chain_id

    @property
    def allowed_contracts(self) -> FrozenSet[str]:
        """Lower-cased addresses the client may send transactions to."""
        addresses = [
            self.settings.core_address,
            self.settings.reader_address,
            self.settings.nft_address,
            self.settings.octa_token_address,
            self.settings.octaa_token_address,
            self.settings.pair_token_address,
        ]
        return frozenset(a.lower() for a in addresses if a)

    def get_rpc_config(self) -> dict:
        """Get RPC client configuration."""
        return {
            "endpoints": list(self.settings.rpc_urls),
            "timeout": self.settings.rpc_timeout,
            "max_attempts": self.settings.rpc_max_attempts,
            "base_delay": self.settings.rpc_retry_base_delay,
        }
