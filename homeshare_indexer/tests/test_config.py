"""Tests for configuration loading."""

import pytest

from homeshare_indexer.config import DEFAULT_BATCH_SIZE, REORG_DEPTH, Config

from fakes import CROWDFUND, CROWDFUND_B

ENV_VARS = [
    "DB_URL",
    "DATABASE_URL",
    "RPC_URL",
    "DEPLOYMENT_BLOCK",
    "START_BLOCK",
    "BATCH_SIZE",
    "REORG_DEPTH",
    "DRY_RUN",
    "CONFIRMATIONS",
    "CROWDFUND_ADDRESSES",
    "PROFIT_DISTRIBUTOR_ADDRESSES",
]


@pytest.fixture
def env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DB_URL", "postgresql://localhost/homeshare")
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    return monkeypatch


def test_defaults(env):
    config = Config.from_env()

    assert config.deployment_block == 0
    assert config.block_batch_size == DEFAULT_BATCH_SIZE
    assert config.reorg_depth == REORG_DEPTH
    assert config.dry_run is False
    assert config.crowdfund_addresses == []
    config.validate()


def test_overrides(env):
    env.setenv("DEPLOYMENT_BLOCK", "123")
    env.setenv("BATCH_SIZE", "500")
    env.setenv("REORG_DEPTH", "30")
    env.setenv("DRY_RUN", "true")
    env.setenv("CROWDFUND_ADDRESSES", f" {CROWDFUND.replace('cafe', 'CAFE')} ,{CROWDFUND_B},")

    config = Config.from_env()

    assert config.deployment_block == 123
    assert config.block_batch_size == 500
    assert config.reorg_depth == 30
    assert config.dry_run is True
    assert config.crowdfund_addresses == [CROWDFUND, CROWDFUND_B]


def test_start_block_alias(env):
    env.setenv("START_BLOCK", "77")

    assert Config.from_env().deployment_block == 77


def test_database_url_alias(env):
    env.delenv("DB_URL")
    env.setenv("DATABASE_URL", "sqlite://")

    assert Config.from_env().db_url == "sqlite://"


def test_missing_db_url(env):
    env.delenv("DB_URL")

    with pytest.raises(ValueError, match="DB_URL"):
        Config.from_env()


def test_missing_rpc_url(env):
    env.delenv("RPC_URL")

    with pytest.raises(ValueError, match="RPC_URL"):
        Config.from_env()


@pytest.mark.parametrize(
    "overrides",
    [
        {"block_batch_size": 0},
        {"reorg_depth": -1},
        {"deployment_block": -5},
        {"crowdfund_addresses": ["0x1234"]},
    ],
)
def test_validate_rejects(overrides):
    config = Config(db_url="sqlite://", rpc_url="http://localhost:8545", **overrides)

    with pytest.raises(ValueError):
        config.validate()
