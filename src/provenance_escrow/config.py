"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. Escrow windows, the proof
backend location and the VC store endpoints are all resolved here so the
domain objects only ever receive plain values.

Usage:
    from provenance_escrow.config import get_settings
    settings = get_settings()
    print(settings.zkp_backend_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the provenance escrow service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Chain / binding ---
    chain_id: int = 11155111  # Sepolia
    factory_owner: str = "0x00000000000000000000000000000000000000F0"
    default_schema_version: str = "1.0"

    # --- Escrow windows ---
    seller_window_seconds: int = 2 * 24 * 3600
    bid_window_seconds: int = 2 * 24 * 3600
    delivery_window_seconds: int = 2 * 24 * 3600
    max_bids: int = 20

    # --- ZKP backend ---
    prover_type: Literal["simulated", "http"] = "simulated"
    zkp_backend_url: str = "http://localhost:5010"
    zkp_timeout_seconds: float = 10.0
    zkp_max_attempts: int = 3

    # --- VC store (IPFS / Pinata) ---
    pinata_jwt: str = ""
    pinata_api_url: str = "https://api.pinata.cloud"
    ipfs_gateway_url: str = "https://gateway.pinata.cloud/ipfs"
    vc_cache_backend: Literal["memory", "redis"] = "memory"
    vc_cache_ttl_seconds: int = 3600
    vc_cache_max_entries: int = 1024

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Development ledger ---
    # Accounts funded when the ledger is first built; development only.
    dev_seed_accounts: list[str] = []
    dev_seed_balance_wei: int = 100 * 10**18
    dev_faucet_max_wei: int = 100 * 10**18

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def uses_pinata(self) -> bool:
        """True when Pinata credentials are configured."""
        return bool(self.pinata_jwt)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
