"""Reorg pruner - discards everything derived from the provisional chain tail.

Blocks within ``reorg_depth`` of the checkpoint are treated as provisional and
re-derived on every sync, so no block-hash bookkeeping is needed: rows from
``from_block`` onwards are deleted (or reset) and the batch processor
re-creates them from whatever the canonical chain now says.
"""

from dataclasses import dataclass
from typing import Set

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from homeshare_indexer.db.models import (
    FACT_MODELS,
    Campaign,
    CampaignInvestment,
    CampaignRefund,
    utcnow,
)
from homeshare_indexer.eth.events import CampaignState
from homeshare_indexer.log import get_logger
from homeshare_indexer.services.state_updater import recalculate_raised

logger = get_logger(__name__)


@dataclass
class PruneStats:
    rows_deleted: int = 0
    withdrawals_reverted: int = 0
    finalizations_reset: int = 0
    campaigns_recomputed: int = 0


class ReorgPruner:
    """Deletes fact rows and resets campaign transitions at or after a block."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def prune(self, session: Session, chain_id: int, from_block: int) -> PruneStats:
        """Prune the provisional range [from_block, ...).

        Args:
            session: Database session (the caller owns the transaction)
            chain_id: Chain ID
            from_block: First provisional block

        Returns:
            What was removed or reset
        """
        stats = PruneStats()
        if self.dry_run:
            logger.info(f"Skipping reorg prune from block {from_block}")
            return stats

        affected = self._campaigns_touched(session, chain_id, from_block)

        for model in FACT_MODELS:
            result = session.execute(
                delete(model)
                .where(model.chain_id == chain_id, model.block_number >= from_block)
                .execution_options(synchronize_session=False)
            )
            stats.rows_deleted += result.rowcount or 0

        # A withdrawal only ever follows a successful finalization
        result = session.execute(
            update(Campaign)
            .where(
                Campaign.chain_id == chain_id,
                Campaign.withdrawn_block_number.is_not(None),
                Campaign.withdrawn_block_number >= from_block,
            )
            .values(
                state=CampaignState.SUCCESS.value,
                withdrawn_tx_hash=None,
                withdrawn_log_index=None,
                withdrawn_block_number=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        stats.withdrawals_reverted = result.rowcount or 0

        result = session.execute(
            update(Campaign)
            .where(
                Campaign.chain_id == chain_id,
                Campaign.finalized_block_number.is_not(None),
                Campaign.finalized_block_number >= from_block,
            )
            .values(
                state=CampaignState.ACTIVE.value,
                finalized_tx_hash=None,
                finalized_log_index=None,
                finalized_block_number=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        stats.finalizations_reset = result.rowcount or 0

        recalculate_raised(session, affected)
        stats.campaigns_recomputed = len(affected)

        logger.info(
            f"Pruned from block {from_block}: {stats.rows_deleted} rows deleted, "
            f"{stats.withdrawals_reverted} withdrawals reverted, "
            f"{stats.finalizations_reset} finalizations reset"
        )
        return stats

    def _campaigns_touched(self, session: Session, chain_id: int, from_block: int) -> Set[int]:
        """Campaigns whose raised total depends on rows about to be pruned."""
        touched: Set[int] = set()
        for model in (CampaignInvestment, CampaignRefund):
            touched.update(
                session.scalars(
                    select(model.campaign_id)
                    .where(model.chain_id == chain_id, model.block_number >= from_block)
                    .distinct()
                )
            )
        touched.update(
            session.scalars(
                select(Campaign.id).where(
                    Campaign.chain_id == chain_id,
                    Campaign.finalized_block_number >= from_block,
                )
            )
        )
        return touched
