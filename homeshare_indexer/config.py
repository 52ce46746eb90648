"""Configuration management for the indexer."""

import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

# Base Sepolia, the chain the read API serves by default
DEFAULT_CHAIN_ID = 84532
DEFAULT_BATCH_SIZE = 1000
REORG_DEPTH = 15

_TRUTHY = {"1", "true", "yes", "on"}


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _parse_address_list(value: Optional[str]) -> List[str]:
    """Split a comma separated address list, lowercasing each entry."""
    if not value:
        return []
    return [item.strip().lower() for item in value.split(",") if item.strip()]


@dataclass
class Config:
    """Indexer configuration."""

    # Required
    db_url: str
    rpc_url: str

    # Indexing settings
    deployment_block: int = 0
    block_batch_size: int = DEFAULT_BATCH_SIZE
    reorg_depth: int = REORG_DEPTH
    dry_run: bool = False
    confirmations: int = 0
    poll_interval_seconds: int = 15
    log_level: str = "INFO"
    chain_id: int = DEFAULT_CHAIN_ID

    # RPC settings
    rpc_max_retries: int = 3
    tx_sender_cache_size: int = 10_000

    # Contracts registered on every sync
    crowdfund_addresses: List[str] = field(default_factory=list)
    profit_distributor_addresses: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_url = os.getenv("DB_URL") or os.getenv("DATABASE_URL")
        if not db_url:
            raise ValueError("DB_URL environment variable is required")

        rpc_url = os.getenv("RPC_URL")
        if not rpc_url:
            raise ValueError("RPC_URL environment variable is required")

        deployment_block = os.getenv("DEPLOYMENT_BLOCK") or os.getenv("START_BLOCK") or "0"

        return cls(
            db_url=db_url,
            rpc_url=rpc_url,
            # Indexing settings
            deployment_block=int(deployment_block),
            block_batch_size=int(os.getenv("BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
            reorg_depth=int(os.getenv("REORG_DEPTH", str(REORG_DEPTH))),
            dry_run=_parse_bool(os.getenv("DRY_RUN")),
            confirmations=int(os.getenv("CONFIRMATIONS", "0")),
            poll_interval_seconds=int(os.getenv("POLL_INTERVAL_SECONDS", "15")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            chain_id=int(os.getenv("CHAIN_ID", str(DEFAULT_CHAIN_ID))),
            # RPC settings
            rpc_max_retries=int(os.getenv("RPC_MAX_RETRIES", "3")),
            tx_sender_cache_size=int(os.getenv("TX_SENDER_CACHE_SIZE", "10000")),
            # Contracts
            crowdfund_addresses=_parse_address_list(os.getenv("CROWDFUND_ADDRESSES")),
            profit_distributor_addresses=_parse_address_list(
                os.getenv("PROFIT_DISTRIBUTOR_ADDRESSES")
            ),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.db_url:
            raise ValueError("db_url is required")
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        if self.deployment_block < 0:
            raise ValueError("deployment_block must be >= 0")
        if self.block_batch_size <= 0:
            raise ValueError("block_batch_size must be > 0")
        if self.reorg_depth < 0:
            raise ValueError("reorg_depth must be >= 0")
        if self.confirmations < 0:
            raise ValueError("confirmations must be >= 0")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        if self.rpc_max_retries <= 0:
            raise ValueError("rpc_max_retries must be > 0")
        if self.tx_sender_cache_size <= 0:
            raise ValueError("tx_sender_cache_size must be > 0")
        for address in self.crowdfund_addresses + self.profit_distributor_addresses:
            if not ADDRESS_PATTERN.match(address):
                raise ValueError(f"Invalid contract address in config: {address}")
