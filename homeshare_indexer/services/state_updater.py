"""State update service - applies decoded events to the database.

Every write here is a single statement executed inside the caller's
transaction. Fact rows are inserted with ON CONFLICT DO NOTHING on their
(tx_hash, log_index) key so replaying a block range is a no-op.
"""

from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from homeshare_indexer.db.models import (
    Campaign,
    CampaignInvestment,
    CampaignRefund,
    EquityClaim,
    EquityToken,
    ProfitClaim,
    ProfitDeposit,
    utcnow,
)
from homeshare_indexer.eth.events import (
    CampaignState,
    Claimed,
    Deposited,
    Finalized,
    Invested,
    Refunded,
    TokensClaimed,
    Withdrawn,
)
from homeshare_indexer.log import get_logger
from homeshare_indexer.pipeline.cache import ContractRef

logger = get_logger(__name__)


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect: {dialect}")
    return insert


def insert_ignore(session: Session, model, values: Dict[str, Any]) -> bool:
    """Insert a row unless it collides with an existing unique key.

    Args:
        session: Database session
        model: ORM model class
        values: Column values

    Returns:
        True if a row was inserted, False if it already existed
    """
    insert = _dialect_insert(session)
    stmt = insert(model).values(**values).on_conflict_do_nothing()
    result = session.execute(stmt)
    return result.rowcount == 1


def upsert(session: Session, model, values: Dict[str, Any], index_elements, set_: Dict[str, Any]):
    """Insert a row, updating ``set_`` columns when ``index_elements`` collide."""
    insert = _dialect_insert(session)
    stmt = (
        insert(model)
        .values(**values)
        .on_conflict_do_update(index_elements=index_elements, set_=set_)
    )
    session.execute(stmt)


def _position(chain_id: int, event) -> Dict[str, Any]:
    return {
        "chain_id": chain_id,
        "tx_hash": event.tx_hash,
        "log_index": event.log_index,
        "block_number": event.block_number,
    }


def insert_campaign_investment(
    session: Session, chain_id: int, campaign: ContractRef, event: Invested
) -> bool:
    """Record an Invested log (idempotent).

    Returns:
        True if inserted, False if the log was already indexed
    """
    inserted = insert_ignore(
        session,
        CampaignInvestment,
        {
            **_position(chain_id, event),
            "campaign_id": campaign.id,
            "property_id": campaign.property_id,
            "investor_address": event.investor,
            "usdc_amount_base_units": event.amount_usdc,
        },
    )
    if not inserted:
        logger.debug(f"Investment already indexed: {event.tx_hash}:{event.log_index}")
    return inserted


def insert_campaign_refund(
    session: Session, chain_id: int, campaign: ContractRef, event: Refunded
) -> bool:
    """Record a Refunded log (idempotent)."""
    inserted = insert_ignore(
        session,
        CampaignRefund,
        {
            **_position(chain_id, event),
            "campaign_id": campaign.id,
            "property_id": campaign.property_id,
            "investor_address": event.investor,
            "usdc_amount_base_units": event.amount_usdc,
        },
    )
    if not inserted:
        logger.debug(f"Refund already indexed: {event.tx_hash}:{event.log_index}")
    return inserted


def insert_equity_claim(
    session: Session,
    chain_id: int,
    campaign: ContractRef,
    equity_token_id: int,
    event: TokensClaimed,
) -> bool:
    return insert_ignore(
        session,
        EquityClaim,
        {
            **_position(chain_id, event),
            "campaign_id": campaign.id,
            "property_id": campaign.property_id,
            "equity_token_id": equity_token_id,
            "claimant_address": event.investor,
            "equity_amount_base_units": event.amount_equity_tokens,
        },
    )


def insert_profit_deposit(
    session: Session,
    chain_id: int,
    distributor: ContractRef,
    depositor: str,
    event: Deposited,
) -> bool:
    """Record a Deposited log; ``depositor`` is the sender of its transaction."""
    return insert_ignore(
        session,
        ProfitDeposit,
        {
            **_position(chain_id, event),
            "profit_distributor_id": distributor.id,
            "property_id": distributor.property_id,
            "depositor_address": depositor,
            "usdc_amount_base_units": event.amount_usdc,
            "acc_profit_per_share": event.acc_profit_per_share,
        },
    )


def insert_profit_claim(
    session: Session, chain_id: int, distributor: ContractRef, event: Claimed
) -> bool:
    return insert_ignore(
        session,
        ProfitClaim,
        {
            **_position(chain_id, event),
            "profit_distributor_id": distributor.id,
            "property_id": distributor.property_id,
            "claimer_address": event.user,
            "usdc_amount_base_units": event.amount_usdc,
        },
    )


def apply_finalized(session: Session, campaign: ContractRef, event: Finalized) -> None:
    """Apply Finalized: set state and raised total, and remember where it happened.

    Args:
        session: Database session
        campaign: Campaign the log was emitted by
        event: Decoded Finalized event
    """
    session.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id)
        .values(
            state=event.state.value,
            raised_usdc_base_units=event.raised_amount_usdc,
            finalized_tx_hash=event.tx_hash,
            finalized_log_index=event.log_index,
            finalized_block_number=event.block_number,
            updated_at=utcnow(),
        )
    )
    logger.info(
        f"Campaign {campaign.contract_address} finalized as {event.state.value} "
        f"(raised {event.raised_amount_usdc})"
    )


def apply_withdrawn(session: Session, campaign: ContractRef, event: Withdrawn) -> None:
    """Apply Withdrawn: the campaign moves to WITHDRAWN."""
    session.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id)
        .values(
            state=CampaignState.WITHDRAWN.value,
            withdrawn_tx_hash=event.tx_hash,
            withdrawn_log_index=event.log_index,
            withdrawn_block_number=event.block_number,
            updated_at=utcnow(),
        )
    )
    logger.info(f"Campaign {campaign.contract_address} withdrawn by {event.recipient}")


def _raised_expression():
    invested = (
        select(func.coalesce(func.sum(CampaignInvestment.usdc_amount_base_units), 0))
        .where(CampaignInvestment.campaign_id == Campaign.id)
        .scalar_subquery()
    )
    refunded = (
        select(func.coalesce(func.sum(CampaignRefund.usdc_amount_base_units), 0))
        .where(CampaignRefund.campaign_id == Campaign.id)
        .scalar_subquery()
    )
    return invested - refunded


def recalculate_raised(session: Session, campaign_ids: Iterable[int]) -> None:
    """Set raised = sum(investments) - sum(refunds) for each campaign.

    The totals are computed by the database from the stored fact rows, so the
    result is the same no matter how many times a log was delivered.
    """
    ids = sorted(set(campaign_ids))
    if not ids:
        return
    session.execute(
        update(Campaign)
        .where(Campaign.id.in_(ids))
        .values(raised_usdc_base_units=_raised_expression(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    logger.debug(f"Recomputed raised totals for {len(ids)} campaign(s)")


def find_equity_token_id(session: Session, property_id: int) -> Optional[int]:
    """Most recently registered equity token of a property, if any."""
    return (
        session.query(EquityToken.id)
        .filter(EquityToken.property_id == property_id)
        .order_by(EquityToken.id.desc())
        .limit(1)
        .scalar()
    )
