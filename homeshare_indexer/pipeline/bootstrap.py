"""Discovery of contract metadata through read-only calls.

The first time a crowdfund, equity token or profit distributor address is
seen, its view functions are read and the matching rows are inserted. A read
that reverts or does not decode only abandons that contract for the current
batch; because nothing is written for it, the next sync tries again. RPC
transport errors are not caught here and abort the sync.
"""

from dataclasses import dataclass
from typing import Optional

from hexbytes import HexBytes
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from web3 import Web3

from homeshare_indexer.db.models import Campaign, EquityToken, ProfitDistributor, Property
from homeshare_indexer.eth.client import EthereumClient
from homeshare_indexer.eth.events import ContractEvent
from homeshare_indexer.eth.reader import ContractReader, ContractReadError, CrowdfundMetadata
from homeshare_indexer.log import get_logger
from homeshare_indexer.pipeline.cache import ContractRef
from homeshare_indexer.services.state_updater import insert_ignore
from homeshare_indexer.utils.formatting import timestamp_to_datetime

logger = get_logger(__name__)

# Row id handed out for contracts "discovered" in dry-run mode
DRY_RUN_ID = 0


@dataclass(frozen=True)
class Deployment:
    """Position of the earliest log a contract emitted."""

    tx_hash: str
    log_index: int
    block_number: int


def _campaign_ref(session: Session, address: str) -> Optional[ContractRef]:
    row = (
        session.query(Campaign.id, Campaign.property_id, Campaign.contract_address)
        .filter(Campaign.contract_address == address)
        .first()
    )
    return ContractRef(*row) if row else None


def _distributor_ref(session: Session, address: str) -> Optional[ContractRef]:
    row = (
        session.query(
            ProfitDistributor.id,
            ProfitDistributor.property_id,
            ProfitDistributor.contract_address,
        )
        .filter(ProfitDistributor.contract_address == address)
        .first()
    )
    return ContractRef(*row) if row else None


class MetadataBootstrapper:
    """Creates Property/Campaign/EquityToken/ProfitDistributor rows on first sight."""

    def __init__(
        self,
        eth_client: EthereumClient,
        deployment_block: int = 0,
        dry_run: bool = False,
        reader: Optional[ContractReader] = None,
    ):
        self.eth_client = eth_client
        self.reader = reader or ContractReader(eth_client)
        self.deployment_block = deployment_block
        self.dry_run = dry_run

    def find_campaign(self, session: Session, contract_address: str) -> Optional[ContractRef]:
        return _campaign_ref(session, contract_address.lower())

    def find_profit_distributor(
        self, session: Session, contract_address: str
    ) -> Optional[ContractRef]:
        return _distributor_ref(session, contract_address.lower())

    def ensure_campaign(
        self, session: Session, chain_id: int, contract_address: str
    ) -> Optional[ContractRef]:
        """Return the campaign for an address, creating it (and its property) if new.

        Returns:
            ContractRef, or None if the contract's metadata could not be read
        """
        address = contract_address.lower()
        existing = _campaign_ref(session, address)
        if existing:
            return existing

        try:
            metadata = self.reader.read_crowdfund(address)
        except ContractReadError as e:
            logger.warning(f"Failed to read crowdfund metadata for {address}: {e}")
            return None

        property_id = self.ensure_property(session, chain_id, address, metadata)

        if self.dry_run:
            logger.info(f"Discovered campaign {address} (property {metadata.property_id})")
            return ContractRef(id=DRY_RUN_ID, property_id=property_id, contract_address=address)

        insert_ignore(
            session,
            Campaign,
            {
                "property_id": property_id,
                "chain_id": chain_id,
                "contract_address": address,
                "start_time": timestamp_to_datetime(metadata.start_time),
                "end_time": timestamp_to_datetime(metadata.end_time),
                "state": metadata.state.value,
                "target_usdc_base_units": metadata.target_amount_usdc,
                "raised_usdc_base_units": metadata.raised_amount_usdc,
            },
        )
        logger.info(
            f"Discovered campaign {address} for property {metadata.property_id} "
            f"(state {metadata.state.value})"
        )
        return _campaign_ref(session, address)

    def ensure_property(
        self,
        session: Session,
        chain_id: int,
        crowdfund_address: str,
        metadata: CrowdfundMetadata,
    ) -> int:
        """Return the id of the property anchored to a crowdfund, creating it if new."""
        existing = (
            session.query(Property.id)
            .filter(Property.crowdfund_contract_address == crowdfund_address)
            .scalar()
        )
        if existing is not None:
            return existing

        if self.dry_run:
            return DRY_RUN_ID

        insert_ignore(
            session,
            Property,
            {
                "property_id": metadata.property_id,
                "chain_id": chain_id,
                "crowdfund_contract_address": crowdfund_address,
                "target_usdc_base_units": metadata.target_amount_usdc,
            },
        )

        # The insert is skipped when the propertyId is already anchored to
        # another crowdfund on this chain
        property_pk = (
            session.query(Property.id)
            .filter(
                or_(
                    Property.crowdfund_contract_address == crowdfund_address,
                    and_(
                        Property.chain_id == chain_id,
                        Property.property_id == metadata.property_id,
                    ),
                )
            )
            .order_by(Property.id)
            .limit(1)
            .scalar()
        )
        if property_pk is None:
            raise RuntimeError(f"Property for crowdfund {crowdfund_address} was not persisted")
        return property_pk

    def ensure_equity_token(
        self,
        session: Session,
        chain_id: int,
        property_id: int,
        token_address: str,
        event: ContractEvent,
        initial_holder: str,
    ) -> Optional[int]:
        """Return the id of an equity token, creating the row on first sight.

        Args:
            session: Database session
            chain_id: Chain ID
            property_id: Owning property (the crowdfund's)
            token_address: Equity token contract address
            event: EquityTokenSet log, used as creation provenance
            initial_holder: Address that received the initial supply

        Returns:
            Row id, or None in dry-run mode or when the token cannot be read
        """
        address = token_address.lower()
        existing = session.query(EquityToken.id).filter(EquityToken.contract_address == address).scalar()
        if existing is not None:
            return existing

        try:
            metadata = self.reader.read_equity_token(address)
        except ContractReadError as e:
            logger.warning(f"Failed to read equity token metadata for {address}: {e}")
            return None

        if self.dry_run:
            logger.info(f"Discovered equity token {address}")
            return None

        insert_ignore(
            session,
            EquityToken,
            {
                "property_id": property_id,
                "chain_id": chain_id,
                "contract_address": address,
                "property_id_string": metadata.property_id,
                "admin_address": metadata.admin,
                "initial_holder_address": initial_holder.lower(),
                "total_supply_base_units": metadata.total_supply,
                "created_tx_hash": event.tx_hash,
                "created_log_index": event.log_index,
                "created_block_number": event.block_number,
            },
        )
        logger.info(f"Discovered equity token {address} (supply {metadata.total_supply})")
        return session.query(EquityToken.id).filter(EquityToken.contract_address == address).scalar()

    def ensure_profit_distributor(
        self, session: Session, chain_id: int, contract_address: str
    ) -> Optional[ContractRef]:
        """Return the distributor for an address, creating it if new.

        The owning property is found through the distributor's equity token, so
        a distributor whose token has not been indexed yet is skipped.
        """
        address = contract_address.lower()
        existing = _distributor_ref(session, address)
        if existing:
            return existing

        try:
            metadata = self.reader.read_profit_distributor(address)
        except ContractReadError as e:
            logger.warning(f"Failed to read ProfitDistributor metadata for {address}: {e}")
            return None

        property_id = (
            session.query(EquityToken.property_id)
            .filter(EquityToken.contract_address == metadata.equity_token)
            .limit(1)
            .scalar()
        )
        if property_id is None:
            logger.warning(
                f"ProfitDistributor {address} missing property mapping "
                f"(equity token {metadata.equity_token} unknown); skipping"
            )
            return None

        if self.dry_run:
            logger.info(f"Discovered profit distributor {address}")
            return ContractRef(id=DRY_RUN_ID, property_id=property_id, contract_address=address)

        deployment = self.find_contract_deployment(address)
        insert_ignore(
            session,
            ProfitDistributor,
            {
                "property_id": property_id,
                "chain_id": chain_id,
                "contract_address": address,
                "usdc_token_address": metadata.usdc_token,
                "equity_token_address": metadata.equity_token,
                "created_tx_hash": deployment.tx_hash if deployment else None,
                "created_log_index": deployment.log_index if deployment else None,
                "created_block_number": deployment.block_number if deployment else None,
            },
        )
        logger.info(f"Discovered profit distributor {address}")
        return _distributor_ref(session, address)

    def find_contract_deployment(self, contract_address: str) -> Optional[Deployment]:
        """Earliest log emitted by a contract since the deployment block."""
        logs = self.eth_client.get_logs(
            [contract_address], None, self.deployment_block, "latest"
        )
        if not logs:
            return None
        first = min(logs, key=lambda log: (int(log["blockNumber"]), int(log["logIndex"])))
        return Deployment(
            tx_hash=Web3.to_hex(HexBytes(first["transactionHash"])).lower(),
            log_index=int(first["logIndex"]),
            block_number=int(first["blockNumber"]),
        )
