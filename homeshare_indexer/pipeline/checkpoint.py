"""Checkpoint store - last durably indexed block per chain."""

from typing import Optional

from sqlalchemy.orm import Session

from homeshare_indexer.db.models import IndexerState, utcnow
from homeshare_indexer.services.state_updater import upsert


class CheckpointStore:
    def __init__(self, default_block: int = 0, dry_run: bool = False):
        self.default_block = default_block
        self.dry_run = dry_run

    def get(self, session: Session, chain_id: int) -> Optional[int]:
        """Stored checkpoint, or None when the chain has never been indexed."""
        return (
            session.query(IndexerState.last_block)
            .filter(IndexerState.chain_id == chain_id)
            .scalar()
        )

    def get_last_block(self, session: Session, chain_id: int) -> int:
        last_block = self.get(session, chain_id)
        return self.default_block if last_block is None else int(last_block)

    def update_last_block(self, session: Session, chain_id: int, last_block: int) -> None:
        """Upsert the checkpoint. Never written in dry-run mode."""
        if self.dry_run:
            return
        now = utcnow()
        upsert(
            session,
            IndexerState,
            {"chain_id": chain_id, "last_block": last_block, "updated_at": now},
            index_elements=[IndexerState.chain_id],
            set_={"last_block": last_block, "updated_at": now},
        )
