"""Web3 client for Ethereum RPC interactions."""

import time
from typing import Any, Callable, List, Optional, Sequence, TypeVar, Union

from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound
from web3.types import LogReceipt

from homeshare_indexer.config import Config
from homeshare_indexer.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Addresses per eth_getLogs request
ADDRESS_CHUNK_SIZE = 50

BlockBound = Union[int, str]


class EthereumClient:
    """Ethereum RPC client with retry logic.

    Transient RPC failures are retried with a linear backoff and re-raised once
    the retry budget is spent. Contract reverts are raised immediately.
    """

    def __init__(self, config: Config, web3: Optional[Web3] = None):
        """Initialize Web3 client.

        Args:
            config: Configuration object with RPC URL
            web3: Pre-built Web3 instance (defaults to an HTTPProvider on config.rpc_url)
        """
        self.config = config
        self.max_retries = config.rpc_max_retries
        self.retry_delay = 1
        self.web3 = web3 or Web3(Web3.HTTPProvider(config.rpc_url))

        if web3 is None:
            # Verify connection
            if not self.web3.is_connected():
                raise ConnectionError(f"Failed to connect to RPC: {config.rpc_url}")
            logger.info(f"Connected to Ethereum RPC: {config.rpc_url}")

    def _with_retries(self, description: str, fn: Callable[[], T]) -> T:
        for attempt in range(self.max_retries):
            try:
                return fn()
            except ContractLogicError:
                raise
            except Exception as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"RPC error during {description} "
                        f"(attempt {attempt + 1}/{self.max_retries}): {e}. Retrying..."
                    )
                    time.sleep(self.retry_delay * (attempt + 1))
                else:
                    logger.error(f"{description} failed after {self.max_retries} attempts: {e}")
                    raise
        raise RuntimeError(f"{description}: retry loop exited without result")

    def get_chain_id(self) -> int:
        """Chain ID reported by the node."""
        return int(self._with_retries("eth_chainId", lambda: self.web3.eth.chain_id))

    def get_latest_block(self) -> int:
        """Get latest block number with confirmations applied.

        Returns:
            Block number (latest - confirmations)
        """
        latest = self._with_retries("eth_blockNumber", lambda: self.web3.eth.block_number)
        return max(0, latest - self.config.confirmations)

    def get_block_hash(self, block_number: int) -> str:
        """Get block hash for a given block number.

        Raises:
            ValueError: If block not found
        """
        try:
            block = self._with_retries(
                "eth_getBlockByNumber", lambda: self.web3.eth.get_block(block_number)
            )
            return Web3.to_hex(block["hash"])
        except Exception as e:
            raise ValueError(f"Failed to get block hash for block {block_number}: {e}") from e

    def get_logs(
        self,
        addresses: Sequence[str],
        topics: Optional[List[Any]],
        from_block: BlockBound,
        to_block: BlockBound,
    ) -> List[LogReceipt]:
        """Get event logs for a set of contract addresses and a block range.

        Args:
            addresses: Contract addresses to filter on (chunked per request)
            topics: Topic filter, e.g. [[topic_a, topic_b]] to OR on topic0
            from_block: Starting block number
            to_block: Ending block number (inclusive) or "latest"

        Returns:
            List of log receipts, in node order
        """
        logs: List[LogReceipt] = []
        address_list = list(addresses)

        for i in range(0, len(address_list), ADDRESS_CHUNK_SIZE):
            chunk = [Web3.to_checksum_address(a) for a in address_list[i : i + ADDRESS_CHUNK_SIZE]]
            filter_params: dict[str, Any] = {
                "fromBlock": from_block,
                "toBlock": to_block,
                "address": chunk if len(chunk) > 1 else chunk[0],
            }
            if topics:
                filter_params["topics"] = topics

            logs.extend(
                self._with_retries(
                    f"eth_getLogs {from_block}-{to_block}",
                    lambda: self.web3.eth.get_logs(filter_params),
                )
            )

        return logs

    def call(self, to: str, data: bytes) -> bytes:
        """Execute a read-only contract call.

        Raises:
            ContractLogicError: If the call reverts
        """
        tx = {"to": Web3.to_checksum_address(to), "data": Web3.to_hex(data)}
        result = self._with_retries(f"eth_call {to}", lambda: self.web3.eth.call(tx))
        return bytes(result)

    def get_transaction_sender(self, tx_hash: str) -> str:
        """Lowercased sender of a transaction (zero address if the node does not know it)."""

        def fetch() -> Optional[str]:
            try:
                tx = self.web3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                return None
            return tx.get("from")

        sender = self._with_retries(f"eth_getTransactionByHash {tx_hash}", fetch)
        if not sender:
            logger.warning(f"Transaction {tx_hash} not found; using zero address as sender")
            return ZERO_ADDRESS
        return str(sender).lower()
