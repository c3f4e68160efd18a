"""Registry-Sync configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistrySyncSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REGISTRY_")

    environment: str = "development"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/registry.db"

    # Chain connection. The event source is only built when both are set.
    rpc_url: str = ""
    contract_address: str = ""

    # Backfill
    sync_from_block: int = Field(default=0, ge=0)
    chunk_size: int = Field(default=2000, ge=1)  # provider range-query limit
    chunk_delay: float = Field(default=0.2, ge=0)  # seconds between chunks

    # Live subscription
    poll_interval: float = Field(default=2.0, gt=0)  # seconds

    # API
    api_title: str = "Registry-Sync"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 3000
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    recent_blocks_default: int = 1000

    @property
    def chain_configured(self) -> bool:
        return bool(self.rpc_url and self.contract_address)

    def validate_for_production(self) -> None:
        """Raise if a non-development environment has no chain connection."""
        if self.chain_configured:
            return

        if self.environment != "development":
            raise RuntimeError(
                f"Chain connection missing in '{self.environment}' environment. "
                "Set REGISTRY_RPC_URL and REGISTRY_CONTRACT_ADDRESS."
            )

        warnings.warn(
            "REGISTRY_RPC_URL or REGISTRY_CONTRACT_ADDRESS not set; "
            "the event listener will not start",
            UserWarning,
            stacklevel=2,
        )


@lru_cache
def get_settings() -> RegistrySyncSettings:
    settings = RegistrySyncSettings()
    settings.validate_for_production()
    return settings
