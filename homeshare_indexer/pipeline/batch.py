"""Batch processor - applies the logs of one closed block range in one transaction."""

from dataclasses import dataclass, fields
from typing import Any, Callable, Iterable, List, Mapping, Optional, Set

from sqlalchemy.orm import Session

from homeshare_indexer.db.models import Campaign, ProfitDistributor
from homeshare_indexer.eth.client import EthereumClient
from homeshare_indexer.eth.decoder import decode_crowdfund_event, decode_profit_event, sort_events
from homeshare_indexer.eth.events import (
    Claimed,
    ContractEvent,
    Deposited,
    EquityTokenSet,
    Finalized,
    Invested,
    Refunded,
    TokensClaimed,
    Withdrawn,
)
from homeshare_indexer.eth.topics import get_crowdfund_topics, get_profit_topics
from homeshare_indexer.log import get_logger
from homeshare_indexer.pipeline.bootstrap import MetadataBootstrapper
from homeshare_indexer.pipeline.cache import ContractRef, ContractRegistry, TxSenderCache
from homeshare_indexer.services import state_updater

logger = get_logger(__name__)


@dataclass
class BatchStats:
    """Rows written by one batch."""

    campaign_investments: int = 0
    campaign_refunds: int = 0
    equity_claims: int = 0
    profit_deposits: int = 0
    profit_claims: int = 0
    campaigns_updated: int = 0
    skipped: int = 0

    def summary(self) -> str:
        return ", ".join(f"{f.name}={getattr(self, f.name)}" for f in fields(self))

    def merge(self, other: "BatchStats") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))


def load_campaign_registry(session: Session) -> ContractRegistry:
    rows = session.query(Campaign.id, Campaign.property_id, Campaign.contract_address).all()
    return ContractRegistry(ContractRef(*row) for row in rows)


def load_distributor_registry(session: Session) -> ContractRegistry:
    rows = session.query(
        ProfitDistributor.id, ProfitDistributor.property_id, ProfitDistributor.contract_address
    ).all()
    return ContractRegistry(ContractRef(*row) for row in rows)


class BatchProcessor:
    """Fetches, orders and applies crowdfund and profit-distributor logs.

    Crowdfund events are applied in (block_number, log_index) order, then
    TokensClaimed in a second pass so an EquityTokenSet from the same batch is
    already visible. Distributor events follow. Raised totals of every campaign
    that received an investment or refund are recomputed from the fact tables
    at the end.
    """

    def __init__(
        self,
        eth_client: EthereumClient,
        bootstrapper: MetadataBootstrapper,
        tx_sender_cache: TxSenderCache,
        dry_run: bool = False,
    ):
        self.eth_client = eth_client
        self.bootstrapper = bootstrapper
        self.tx_sender_cache = tx_sender_cache
        self.dry_run = dry_run

    def fetch_events(
        self,
        addresses: List[str],
        topics: List[str],
        decode: Callable[[Mapping[str, Any]], ContractEvent],
        from_block: int,
        to_block: int,
    ) -> List[ContractEvent]:
        """Fetch and decode logs for ``addresses``; no RPC call when the list is empty."""
        if not addresses:
            return []
        logs = self.eth_client.get_logs(addresses, [topics], from_block, to_block)
        return sort_events(decode(log) for log in logs if not log.get("removed"))

    def process_batch(
        self,
        session: Session,
        chain_id: int,
        from_block: int,
        to_block: int,
        campaigns: Optional[ContractRegistry] = None,
        distributors: Optional[ContractRegistry] = None,
    ) -> BatchStats:
        """Apply every known contract's logs in [from_block, to_block].

        Args:
            session: Session whose transaction covers the whole batch
            chain_id: Chain ID
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
            campaigns: Crowdfunds to fetch (default: every known campaign)
            distributors: Distributors to fetch (default: every known distributor)

        Returns:
            Counts of rows written

        Raises:
            EventDecodeError: If a log does not match the contract ABI
        """
        if campaigns is None:
            campaigns = load_campaign_registry(session)
        if distributors is None:
            distributors = load_distributor_registry(session)

        crowdfund_events = self.fetch_events(
            campaigns.addresses(), get_crowdfund_topics(), decode_crowdfund_event, from_block, to_block
        )
        profit_events = self.fetch_events(
            distributors.addresses(), get_profit_topics(), decode_profit_event, from_block, to_block
        )
        logger.debug(
            f"Blocks {from_block}-{to_block}: {len(crowdfund_events)} crowdfund logs, "
            f"{len(profit_events)} distributor logs"
        )

        stats = BatchStats()
        affected: Set[int] = set()

        self._discover_campaigns(session, chain_id, campaigns, crowdfund_events)

        for event in crowdfund_events:
            campaign = campaigns.get(event.address)
            if campaign is None:
                stats.skipped += 1
                continue
            self._apply_crowdfund_event(session, chain_id, campaign, event, stats, affected)

        for event in crowdfund_events:
            if isinstance(event, TokensClaimed):
                campaign = campaigns.get(event.address)
                if campaign is not None:
                    self._apply_tokens_claimed(session, chain_id, campaign, event, stats)

        unresolved: Set[str] = set()
        for event in profit_events:
            distributor = self._resolve_distributor(
                session, chain_id, distributors, unresolved, event.address
            )
            if distributor is None:
                stats.skipped += 1
                continue
            self._apply_profit_event(session, chain_id, distributor, event, stats)

        if affected and not self.dry_run:
            state_updater.recalculate_raised(session, affected)

        logger.info(f"Blocks {from_block}-{to_block} inserted: {stats.summary()}")
        return stats

    def _discover_campaigns(
        self,
        session: Session,
        chain_id: int,
        campaigns: ContractRegistry,
        events: Iterable[ContractEvent],
    ) -> None:
        seen: Set[str] = set()
        for event in events:
            if event.address in seen or event.address in campaigns:
                continue
            seen.add(event.address)
            ref = self.bootstrapper.ensure_campaign(session, chain_id, event.address)
            if ref is not None:
                campaigns.add(ref)

    def _resolve_distributor(
        self,
        session: Session,
        chain_id: int,
        distributors: ContractRegistry,
        unresolved: Set[str],
        address: str,
    ) -> Optional[ContractRef]:
        """Registered distributor for an address; one bootstrap attempt per batch."""
        distributor = distributors.get(address)
        if distributor is not None or address in unresolved:
            return distributor
        distributor = self.bootstrapper.ensure_profit_distributor(session, chain_id, address)
        if distributor is None:
            unresolved.add(address)
        else:
            distributors.add(distributor)
        return distributor

    def _apply_crowdfund_event(
        self,
        session: Session,
        chain_id: int,
        campaign: ContractRef,
        event: ContractEvent,
        stats: BatchStats,
        affected: Set[int],
    ) -> None:
        if isinstance(event, Invested):
            if self.dry_run or state_updater.insert_campaign_investment(session, chain_id, campaign, event):
                stats.campaign_investments += 1
            affected.add(campaign.id)
        elif isinstance(event, Refunded):
            if self.dry_run or state_updater.insert_campaign_refund(session, chain_id, campaign, event):
                stats.campaign_refunds += 1
            affected.add(campaign.id)
        elif isinstance(event, Finalized):
            if not self.dry_run:
                state_updater.apply_finalized(session, campaign, event)
            stats.campaigns_updated += 1
        elif isinstance(event, Withdrawn):
            if not self.dry_run:
                state_updater.apply_withdrawn(session, campaign, event)
            stats.campaigns_updated += 1
        elif isinstance(event, EquityTokenSet):
            self.bootstrapper.ensure_equity_token(
                session,
                chain_id,
                campaign.property_id,
                event.equity_token,
                event,
                initial_holder=campaign.contract_address,
            )

    def _apply_tokens_claimed(
        self,
        session: Session,
        chain_id: int,
        campaign: ContractRef,
        event: TokensClaimed,
        stats: BatchStats,
    ) -> None:
        equity_token_id = state_updater.find_equity_token_id(session, campaign.property_id)
        if equity_token_id is None:
            logger.warning(
                f"No equity token known for campaign {campaign.contract_address}; "
                f"dropping TokensClaimed {event.tx_hash}:{event.log_index}"
            )
            stats.skipped += 1
            return
        if self.dry_run or state_updater.insert_equity_claim(
            session, chain_id, campaign, equity_token_id, event
        ):
            stats.equity_claims += 1

    def _apply_profit_event(
        self,
        session: Session,
        chain_id: int,
        distributor: ContractRef,
        event: ContractEvent,
        stats: BatchStats,
    ) -> None:
        if isinstance(event, Deposited):
            depositor = self.tx_sender_cache.get_or_fetch(
                event.tx_hash, self.eth_client.get_transaction_sender
            )
            if self.dry_run or state_updater.insert_profit_deposit(
                session, chain_id, distributor, depositor, event
            ):
                stats.profit_deposits += 1
        elif isinstance(event, Claimed):
            if self.dry_run or state_updater.insert_profit_claim(session, chain_id, distributor, event):
                stats.profit_claims += 1
