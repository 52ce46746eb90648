"""SQLAlchemy ORM models for the indexed schema.

Fact tables (investments, refunds, equity claims, profit deposits and claims)
hold one row per log and are unique on (tx_hash, log_index). Discovery tables
(properties, campaigns, equity tokens, profit distributors) are unique on
contract address. All token quantities are integers in base units.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from homeshare_indexer.eth.events import CampaignState

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseUnits(TypeDecorator):
    """Arbitrary-precision token amount.

    NUMERIC(78, 0) holds any uint256. SQLite has no exact wide decimal, so the
    test database falls back to INTEGER. Values are always returned as int.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(Integer())
        return dialect.type_descriptor(Numeric(78, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Property(Base):
    """Real-world asset, anchored to its crowdfund contract."""

    __tablename__ = "properties"
    __table_args__ = (
        UniqueConstraint("chain_id", "property_id", name="uq_properties_chain_property"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    property_id = Column(String(64), nullable=False)
    chain_id = Column(BigInteger, nullable=False)
    crowdfund_contract_address = Column(String(42), nullable=False, unique=True)
    target_usdc_base_units = Column(BaseUnits, nullable=False, default=0)
    # Set by admin flows, never by the indexer
    name = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    campaigns = relationship("Campaign", back_populates="property")


class Campaign(Base):
    """One PropertyCrowdfund contract instance."""

    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    chain_id = Column(BigInteger, nullable=False)
    contract_address = Column(String(42), nullable=False, unique=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    state = Column(String(16), nullable=False, default=CampaignState.ACTIVE.value)
    target_usdc_base_units = Column(BaseUnits, nullable=False, default=0)
    raised_usdc_base_units = Column(BaseUnits, nullable=False, default=0)
    finalized_tx_hash = Column(String(66), nullable=True)
    finalized_log_index = Column(Integer, nullable=True)
    finalized_block_number = Column(BigInteger, nullable=True)
    withdrawn_tx_hash = Column(String(66), nullable=True)
    withdrawn_log_index = Column(Integer, nullable=True)
    withdrawn_block_number = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    property = relationship("Property", back_populates="campaigns")


class EquityToken(Base):
    """Equity token set on a crowdfund via EquityTokenSet."""

    __tablename__ = "equity_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    chain_id = Column(BigInteger, nullable=False)
    contract_address = Column(String(42), nullable=False, unique=True)
    property_id_string = Column(String(64), nullable=True)
    admin_address = Column(String(42), nullable=True)
    initial_holder_address = Column(String(42), nullable=True)
    total_supply_base_units = Column(BaseUnits, nullable=False, default=0)
    created_tx_hash = Column(String(66), nullable=True)
    created_log_index = Column(Integer, nullable=True)
    created_block_number = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ProfitDistributor(Base):
    """ProfitDistributor contract, owned by the property of its equity token."""

    __tablename__ = "profit_distributors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    chain_id = Column(BigInteger, nullable=False)
    contract_address = Column(String(42), nullable=False, unique=True)
    usdc_token_address = Column(String(42), nullable=False)
    equity_token_address = Column(String(42), nullable=False)
    created_tx_hash = Column(String(66), nullable=True)
    created_log_index = Column(Integer, nullable=True)
    created_block_number = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class LogPositionMixin:
    """Columns identifying the log a fact row was derived from."""

    chain_id = Column(BigInteger, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class CampaignInvestment(LogPositionMixin, Base):
    """One Invested log."""

    __tablename__ = "campaign_investments"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_campaign_investments_tx_log"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    investor_address = Column(String(42), nullable=False, index=True)
    usdc_amount_base_units = Column(BaseUnits, nullable=False)


class CampaignRefund(LogPositionMixin, Base):
    """One Refunded log."""

    __tablename__ = "campaign_refunds"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_campaign_refunds_tx_log"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    investor_address = Column(String(42), nullable=False, index=True)
    usdc_amount_base_units = Column(BaseUnits, nullable=False)


class EquityClaim(LogPositionMixin, Base):
    """One TokensClaimed log."""

    __tablename__ = "equity_claims"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_equity_claims_tx_log"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    equity_token_id = Column(Integer, ForeignKey("equity_tokens.id"), nullable=False)
    claimant_address = Column(String(42), nullable=False, index=True)
    equity_amount_base_units = Column(BaseUnits, nullable=False)


class ProfitDeposit(LogPositionMixin, Base):
    """One Deposited log."""

    __tablename__ = "profit_deposits"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_profit_deposits_tx_log"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    profit_distributor_id = Column(Integer, ForeignKey("profit_distributors.id"), nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    depositor_address = Column(String(42), nullable=False)
    usdc_amount_base_units = Column(BaseUnits, nullable=False)
    acc_profit_per_share = Column(BaseUnits, nullable=False)


class ProfitClaim(LogPositionMixin, Base):
    """One Claimed log."""

    __tablename__ = "profit_claims"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_profit_claims_tx_log"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    profit_distributor_id = Column(Integer, ForeignKey("profit_distributors.id"), nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    claimer_address = Column(String(42), nullable=False, index=True)
    usdc_amount_base_units = Column(BaseUnits, nullable=False)


class IndexerState(Base):
    """Checkpoint: last block durably indexed per chain."""

    __tablename__ = "indexer_state"

    chain_id = Column(BigInteger, primary_key=True, autoincrement=False)
    last_block = Column(BigInteger, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


FACT_MODELS = (CampaignInvestment, CampaignRefund, EquityClaim, ProfitDeposit, ProfitClaim)
