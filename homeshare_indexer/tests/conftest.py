"""Shared fixtures: in-memory database and a scripted chain."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from homeshare_indexer.config import Config
from homeshare_indexer.db.healthcheck import create_schema
from homeshare_indexer.db.session import bind_engine, dispose_db

from fakes import CHAIN_ID, FakeChain


@pytest.fixture
def engine():
    """In-memory SQLite database with the full schema, bound as the global engine."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    bind_engine(engine)
    create_schema()
    yield engine
    dispose_db()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def config() -> Config:
    return Config(
        db_url="sqlite://",
        rpc_url="http://localhost:8545",
        deployment_block=100,
        block_batch_size=50,
        reorg_depth=15,
        chain_id=CHAIN_ID,
    )
