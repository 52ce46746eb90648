"""Database health check - verify required tables exist."""

from sqlalchemy import inspect

from homeshare_indexer.db.models import Base, IndexerState
from homeshare_indexer.db.session import get_engine
from homeshare_indexer.log import get_logger

logger = get_logger(__name__)

# Tables the indexer writes to; migrations own their creation
REQUIRED_TABLES = [
    "properties",
    "campaigns",
    "campaign_investments",
    "campaign_refunds",
    "equity_tokens",
    "equity_claims",
    "profit_distributors",
    "profit_deposits",
    "profit_claims",
]


def check_tables_exist() -> None:
    """Verify all required tables exist in the database.

    Raises:
        RuntimeError: If any required table is missing
    """
    logger.info("Checking database schema...")

    existing = set(inspect(get_engine()).get_table_names())
    for table_name in REQUIRED_TABLES:
        if table_name not in existing:
            raise RuntimeError(
                f"DB schema missing. Table '{table_name}' does not exist. "
                "Run migrations (or `homeshare-indexer init-db`) first."
            )
        logger.debug(f"Table '{table_name}' exists")

    logger.info("All required tables exist")


def ensure_checkpoint_table(bind=None) -> None:
    """Create the indexer_state table if it is missing.

    Args:
        bind: Engine or connection to use (defaults to the global engine)
    """
    IndexerState.__table__.create(bind=bind if bind is not None else get_engine(), checkfirst=True)


def create_schema() -> None:
    """Create every table (local development and tests)."""
    Base.metadata.create_all(bind=get_engine())
