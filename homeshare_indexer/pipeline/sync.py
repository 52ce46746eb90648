"""Sync loop - checkpointed, reorg-safe catch-up to the chain head."""

from dataclasses import dataclass, field
from typing import Callable, ContextManager, Iterator, Optional, Tuple

from sqlalchemy.orm import Session

from homeshare_indexer.config import Config
from homeshare_indexer.db.healthcheck import ensure_checkpoint_table
from homeshare_indexer.db.session import get_session
from homeshare_indexer.eth.client import EthereumClient
from homeshare_indexer.eth.reader import ContractReader
from homeshare_indexer.log import get_logger
from homeshare_indexer.pipeline.batch import BatchProcessor, BatchStats
from homeshare_indexer.pipeline.bootstrap import MetadataBootstrapper
from homeshare_indexer.pipeline.cache import ContractRef, ContractRegistry, TxSenderCache
from homeshare_indexer.pipeline.checkpoint import CheckpointStore
from homeshare_indexer.pipeline.reorg import ReorgPruner

logger = get_logger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


@dataclass
class SyncResult:
    chain_id: int
    from_block: int
    to_block: int
    batches: int = 0
    stats: BatchStats = field(default_factory=BatchStats)


class Indexer:
    """Owns one chain's sync: pruning, batches and checkpoint.

    Every unit of work runs in its own session from ``session_factory``, which
    must commit on success and roll back on error (``db.session.get_session``).
    """

    def __init__(
        self,
        config: Config,
        eth_client: EthereumClient,
        session_factory: SessionFactory = get_session,
        tx_sender_cache: Optional[TxSenderCache] = None,
        reader: Optional[ContractReader] = None,
    ):
        self.config = config
        self.eth_client = eth_client
        self.session_factory = session_factory
        self.tx_sender_cache = tx_sender_cache or TxSenderCache(config.tx_sender_cache_size)

        self.bootstrapper = MetadataBootstrapper(
            eth_client,
            deployment_block=config.deployment_block,
            dry_run=config.dry_run,
            reader=reader,
        )
        self.batch_processor = BatchProcessor(
            eth_client, self.bootstrapper, self.tx_sender_cache, dry_run=config.dry_run
        )
        self.pruner = ReorgPruner(dry_run=config.dry_run)
        self.checkpoints = CheckpointStore(config.deployment_block, dry_run=config.dry_run)

    def sync(self) -> SyncResult:
        """Index from the checkpoint (minus the reorg window) up to the current head.

        Each window is committed before its checkpoint is written, so an
        exception leaves the checkpoint at the last fully committed window.
        """
        chain_id = self.eth_client.get_chain_id()
        if chain_id != self.config.chain_id:
            logger.warning(f"RPC reports chain {chain_id}, config says {self.config.chain_id}")

        with self.session_factory() as session:
            ensure_checkpoint_table(session.connection())

        self._register_configured_contracts(chain_id)

        with self.session_factory() as session:
            last_block = self.checkpoints.get_last_block(session, chain_id)
        latest_block = self.eth_client.get_latest_block()
        from_block = max(self.config.deployment_block, last_block - self.config.reorg_depth)

        result = SyncResult(chain_id=chain_id, from_block=from_block, to_block=latest_block)
        logger.info(
            f"Syncing chain {chain_id}: checkpoint={last_block}, head={latest_block}, "
            f"from={from_block}"
        )

        with self.session_factory() as session:
            self.pruner.prune(session, chain_id, from_block)

        for start, end in self._windows(from_block, latest_block):
            stats = self.process_batch(chain_id, start, end)
            with self.session_factory() as session:
                self.checkpoints.update_last_block(session, chain_id, end)
            result.batches += 1
            result.stats.merge(stats)

        logger.info(f"Sync complete at block {latest_block} ({result.batches} batches)")
        return result

    def process_batch(self, chain_id: int, from_block: int, to_block: int) -> BatchStats:
        """Process one block window in its own transaction."""
        with self.session_factory() as session:
            return self.batch_processor.process_batch(session, chain_id, from_block, to_block)

    def backfill(
        self,
        from_block: int,
        to_block: int,
        should_stop: Callable[[], bool] = lambda: False,
    ) -> SyncResult:
        """Re-apply an already indexed block range without moving the checkpoint.

        The range is clamped to [deployment_block, checkpoint]. Blocks past the
        checkpoint belong to the next sync(), which prunes and re-derives them.
        """
        chain_id = self.eth_client.get_chain_id()
        with self.session_factory() as session:
            last_block = self.checkpoints.get(session, chain_id)

        start_block = max(from_block, self.config.deployment_block)
        if last_block is None:
            logger.warning(f"Chain {chain_id} has not been synced yet; nothing to backfill")
            return SyncResult(chain_id=chain_id, from_block=start_block, to_block=start_block - 1)
        if to_block > last_block:
            logger.warning(
                f"Backfill end {to_block} is past checkpoint {last_block}; "
                f"clamping to {last_block}"
            )
            to_block = last_block

        result = SyncResult(chain_id=chain_id, from_block=start_block, to_block=to_block)
        for start, end in self._windows(start_block, to_block):
            if should_stop():
                break
            result.stats.merge(self.process_batch(chain_id, start, end))
            result.batches += 1
        return result

    def register_campaign(self, address: str) -> Optional[ContractRef]:
        """Bootstrap a crowdfund contract and index its history up to the checkpoint."""
        chain_id = self.eth_client.get_chain_id()
        with self.session_factory() as session:
            return self._register_campaign(session, chain_id, address)

    def register_profit_distributor(self, address: str) -> Optional[ContractRef]:
        """Bootstrap a ProfitDistributor (its equity token must already be indexed)."""
        chain_id = self.eth_client.get_chain_id()
        with self.session_factory() as session:
            return self._register_profit_distributor(session, chain_id, address)

    def _register_configured_contracts(self, chain_id: int) -> None:
        for address in self.config.crowdfund_addresses:
            with self.session_factory() as session:
                if self._register_campaign(session, chain_id, address) is None:
                    logger.warning(f"Configured crowdfund {address} not registered; will retry")
        for address in self.config.profit_distributor_addresses:
            with self.session_factory() as session:
                if self._register_profit_distributor(session, chain_id, address) is None:
                    logger.warning(f"Configured distributor {address} not registered; will retry")

    # Registration creates the row and replays its history in one transaction,
    # so a failed catch-up leaves the contract unknown and retryable.

    def _register_campaign(
        self, session: Session, chain_id: int, address: str
    ) -> Optional[ContractRef]:
        existing = self.bootstrapper.find_campaign(session, address)
        if existing is not None:
            return existing
        ref = self.bootstrapper.ensure_campaign(session, chain_id, address)
        if ref is not None:
            self._catch_up(session, chain_id, ref, ContractRegistry([ref]), ContractRegistry())
        return ref

    def _register_profit_distributor(
        self, session: Session, chain_id: int, address: str
    ) -> Optional[ContractRef]:
        existing = self.bootstrapper.find_profit_distributor(session, address)
        if existing is not None:
            return existing
        ref = self.bootstrapper.ensure_profit_distributor(session, chain_id, address)
        if ref is not None:
            self._catch_up(session, chain_id, ref, ContractRegistry(), ContractRegistry([ref]))
        return ref

    def _catch_up(
        self,
        session: Session,
        chain_id: int,
        ref: ContractRef,
        campaigns: ContractRegistry,
        distributors: ContractRegistry,
    ) -> None:
        """Index a newly registered contract from the deployment block to the checkpoint."""
        last_block = self.checkpoints.get(session, chain_id)
        if last_block is None:
            return

        stats = BatchStats()
        for start, end in self._windows(self.config.deployment_block, last_block):
            stats.merge(
                self.batch_processor.process_batch(
                    session, chain_id, start, end, campaigns=campaigns, distributors=distributors
                )
            )
        logger.info(
            f"Caught up {ref.contract_address} to block {last_block}: {stats.summary()}"
        )

    def _windows(self, from_block: int, to_block: int) -> Iterator[Tuple[int, int]]:
        batch_size = self.config.block_batch_size
        for start in range(from_block, to_block + 1, batch_size):
            yield start, min(to_block, start + batch_size - 1)
