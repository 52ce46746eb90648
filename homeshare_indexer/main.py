"""Indexer service with CLI."""

import argparse
import signal
import sys
import time

from homeshare_indexer.config import Config
from homeshare_indexer.db.healthcheck import check_tables_exist, create_schema
from homeshare_indexer.db.models import Campaign, CampaignInvestment, ProfitDistributor, Property
from homeshare_indexer.db.session import dispose_db, get_session, init_db
from homeshare_indexer.eth.client import EthereumClient
from homeshare_indexer.log import get_logger, setup_logging
from homeshare_indexer.pipeline.checkpoint import CheckpointStore
from homeshare_indexer.pipeline.sync import Indexer

logger = get_logger(__name__)

# Global flag for graceful shutdown
_shutdown = False


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global _shutdown
    logger.info("Shutdown signal received, stopping after the current batch")
    _shutdown = True


def _sleep(seconds: int) -> None:
    """Sleep in one-second steps so a shutdown signal is noticed promptly."""
    for _ in range(seconds):
        if _shutdown:
            return
        time.sleep(1)


def run_indexer(config: Config) -> None:
    """Run sync() every poll interval until a shutdown signal arrives.

    Args:
        config: Configuration object
    """
    logger.info("Starting indexer in polling mode")
    if config.dry_run:
        logger.info("Dry-run mode: nothing will be written to the database")

    indexer = Indexer(config, EthereumClient(config))

    while not _shutdown:
        try:
            result = indexer.sync()
            logger.debug(f"Sync pass done: {result.stats.summary()}")
        except Exception as e:
            # Next tick retries from the last committed checkpoint
            logger.error(f"Error in polling loop: {e}", exc_info=True)
        _sleep(config.poll_interval_seconds)

    logger.info("Indexer stopped")


def sync_once(config: Config) -> None:
    """Run a single sync pass."""
    indexer = Indexer(config, EthereumClient(config))
    result = indexer.sync()
    print(f"Synced chain {result.chain_id} blocks {result.from_block}-{result.to_block}")
    print(f"Batches: {result.batches}")
    print(f"Rows: {result.stats.summary()}")


def backfill(config: Config, from_block: int, to_block: int) -> None:
    """Re-apply an indexed block range without touching the checkpoint.

    Blocks past the stored checkpoint are left to the next sync.

    Args:
        config: Configuration object
        from_block: Starting block number
        to_block: Ending block number (inclusive)
    """
    logger.info(f"Backfilling blocks {from_block} to {to_block}")

    indexer = Indexer(config, EthereumClient(config))
    result = indexer.backfill(from_block, to_block, should_stop=lambda: _shutdown)

    logger.info(
        f"Backfill complete: {result.batches} batches over blocks "
        f"{result.from_block}-{result.to_block} ({result.stats.summary()})"
    )


def register(config: Config, kind: str, address: str) -> None:
    """Bootstrap a campaign or profit distributor by address."""
    indexer = Indexer(config, EthereumClient(config))
    if kind == "campaign":
        ref = indexer.register_campaign(address)
    else:
        ref = indexer.register_profit_distributor(address)

    if ref is None:
        print(f"Could not register {kind} {address}; see log for details", file=sys.stderr)
        sys.exit(1)
    print(f"Registered {kind} {ref.contract_address} (id={ref.id}, property={ref.property_id})")


def show_status(config: Config) -> None:
    """Show indexer status.

    Args:
        config: Configuration object
    """
    eth_client = EthereumClient(config)
    chain_id = eth_client.get_chain_id()
    latest_block = eth_client.get_latest_block()

    with get_session() as session:
        last_block = CheckpointStore().get(session, chain_id)
        property_count = session.query(Property).filter(Property.chain_id == chain_id).count()
        campaign_count = session.query(Campaign).filter(Campaign.chain_id == chain_id).count()
        distributor_count = (
            session.query(ProfitDistributor).filter(ProfitDistributor.chain_id == chain_id).count()
        )
        investment_count = (
            session.query(CampaignInvestment).filter(CampaignInvestment.chain_id == chain_id).count()
        )

    print(f"Chain ID: {chain_id}")
    print(f"RPC URL: {config.rpc_url}")
    print(f"Deployment Block: {config.deployment_block}")
    print(f"Last Indexed Block: {last_block if last_block is not None else 'never'}")
    print(f"Latest Block (with confirmations): {latest_block}")
    if last_block is not None:
        print(f"Blocks Behind: {max(0, latest_block - last_block)}")
        print(f"Latest Block Hash: {eth_client.get_block_hash(latest_block)}")
    print(f"Properties: {property_count}")
    print(f"Campaigns: {campaign_count}")
    print(f"Profit Distributors: {distributor_count}")
    print(f"Investments: {investment_count}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reorg-safe indexer for property crowdfunding contracts"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("run", help="Sync continuously, polling for new blocks")
    subparsers.add_parser("sync", help="Run one sync pass up to the current head")
    subparsers.add_parser("status", help="Show indexer status")
    subparsers.add_parser("init-db", help="Create all tables (local development)")

    backfill_parser = subparsers.add_parser("backfill", help="Re-apply a historical block range")
    backfill_parser.add_argument("--from-block", type=int, required=True, help="Starting block number")
    backfill_parser.add_argument("--to-block", type=int, required=True, help="Ending block number")

    campaign_parser = subparsers.add_parser("register-campaign", help="Register a crowdfund contract")
    campaign_parser.add_argument("--address", required=True, help="PropertyCrowdfund address")

    distributor_parser = subparsers.add_parser(
        "register-distributor", help="Register a ProfitDistributor contract"
    )
    distributor_parser.add_argument("--address", required=True, help="ProfitDistributor address")

    return parser


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load config
    try:
        config = Config.from_env()
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    init_db(config)

    if args.command == "init-db":
        create_schema()
        logger.info("Database schema created")
        return

    try:
        check_tables_exist()
    except RuntimeError as e:
        logger.error(str(e))
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if args.command == "run":
            run_indexer(config)
        elif args.command == "sync":
            sync_once(config)
        elif args.command == "backfill":
            backfill(config, args.from_block, args.to_block)
        elif args.command == "register-campaign":
            register(config, "campaign", args.address)
        elif args.command == "register-distributor":
            register(config, "distributor", args.address)
        elif args.command == "status":
            show_status(config)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        dispose_db()


if __name__ == "__main__":
    main()
