"""Tests for applying one block window."""

import pytest

from homeshare_indexer.db.models import (
    Campaign,
    CampaignInvestment,
    EquityClaim,
    EquityToken,
    ProfitClaim,
    ProfitDeposit,
)
from homeshare_indexer.db.session import get_session
from homeshare_indexer.eth.decoder import EventDecodeError
from homeshare_indexer.pipeline.batch import BatchProcessor, BatchStats
from homeshare_indexer.pipeline.bootstrap import MetadataBootstrapper
from homeshare_indexer.pipeline.cache import ContractRegistry, TxSenderCache

from fakes import ADMIN, CHAIN_ID, CROWDFUND, CROWDFUND_B, DISTRIBUTOR, EQUITY_TOKEN, INVESTOR_B


def _processor(chain, dry_run=False):
    bootstrapper = MetadataBootstrapper(chain, deployment_block=100, dry_run=dry_run)
    return BatchProcessor(chain, bootstrapper, TxSenderCache(100), dry_run=dry_run)


@pytest.fixture
def processor(chain):
    return _processor(chain)


@pytest.fixture
def campaign(engine, chain, processor):
    chain.set_crowdfund()
    with get_session() as session:
        return processor.bootstrapper.ensure_campaign(session, CHAIN_ID, CROWDFUND)


def _run(processor, from_block, to_block) -> BatchStats:
    with get_session() as session:
        return processor.process_batch(session, CHAIN_ID, from_block, to_block)


def _raised(campaign):
    with get_session() as session:
        return (
            session.query(Campaign.raised_usdc_base_units)
            .filter(Campaign.id == campaign.id)
            .scalar()
        )


def test_invest_and_refund_update_raised(chain, processor, campaign):
    chain.invested(200, 0, amount=1_000_000)
    chain.refunded(205, 2, amount=400_000)

    stats = _run(processor, 200, 249)

    assert stats.campaign_investments == 1
    assert stats.campaign_refunds == 1
    assert _raised(campaign) == 600_000


def test_replaying_a_window_is_a_noop(chain, processor, campaign):
    chain.invested(200, 0, amount=1_000_000)
    chain.invested(201, 0, investor=INVESTOR_B, amount=250_000)
    chain.refunded(205, 2, amount=400_000)

    _run(processor, 200, 249)
    stats = _run(processor, 200, 249)

    assert stats.campaign_investments == 0
    assert stats.campaign_refunds == 0
    assert _raised(campaign) == 850_000
    with get_session() as session:
        assert session.query(CampaignInvestment).count() == 2


def test_events_outside_window_are_ignored(chain, processor, campaign):
    chain.invested(199, 0)
    chain.invested(250, 0)

    stats = _run(processor, 200, 249)

    assert stats.campaign_investments == 0
    assert _raised(campaign) == 0


def test_tokens_claimed_before_equity_token_set_in_same_block(chain, processor, campaign):
    chain.set_equity_token()
    chain.tokens_claimed(210, 0, amount=100)
    chain.equity_token_set(210, 1)

    stats = _run(processor, 200, 249)

    assert stats.equity_claims == 1
    with get_session() as session:
        token = session.query(EquityToken).one()
        claim = session.query(EquityClaim).one()
    assert token.contract_address == EQUITY_TOKEN
    assert token.initial_holder_address == CROWDFUND
    assert token.created_block_number == 210
    assert claim.equity_token_id == token.id
    assert claim.equity_amount_base_units == 100


def test_tokens_claimed_without_equity_token_is_skipped(chain, processor, campaign):
    chain.tokens_claimed(210, 0)

    stats = _run(processor, 200, 249)

    assert stats.equity_claims == 0
    assert stats.skipped == 1
    with get_session() as session:
        assert session.query(EquityClaim).count() == 0


def test_finalized_then_withdrawn(chain, processor, campaign):
    chain.finalized(300, 0, state=1, raised=5_000_000)
    chain.withdrawn(301, 0, amount=5_000_000)

    stats = _run(processor, 300, 349)

    assert stats.campaigns_updated == 2
    with get_session() as session:
        row = session.query(Campaign).filter(Campaign.id == campaign.id).one()
    assert row.state == "WITHDRAWN"
    assert row.raised_usdc_base_units == 5_000_000
    assert row.finalized_block_number == 300
    assert row.withdrawn_block_number == 301


def test_investment_after_finalize_recomputes_raised(chain, processor, campaign):
    chain.invested(300, 0, amount=1_000_000)
    chain.finalized(300, 1, state=1, raised=9_999_999)

    _run(processor, 300, 349)

    assert _raised(campaign) == 1_000_000


def test_profit_events(chain, processor, campaign):
    chain.set_equity_token()
    chain.set_distributor()
    chain.equity_token_set(150, 0)
    _run(processor, 100, 199)
    with get_session() as session:
        assert processor.bootstrapper.ensure_profit_distributor(session, CHAIN_ID, DISTRIBUTOR)

    chain.deposited(220, 0, amount=250_000, sender=ADMIN)
    chain.claimed(230, 3, amount=1_000)

    stats = _run(processor, 200, 249)

    assert stats.profit_deposits == 1
    assert stats.profit_claims == 1
    with get_session() as session:
        deposit = session.query(ProfitDeposit).one()
        claim = session.query(ProfitClaim).one()
    assert deposit.depositor_address == ADMIN
    assert deposit.usdc_amount_base_units == 250_000
    assert deposit.acc_profit_per_share == 10**12
    assert deposit.property_id == campaign.property_id
    assert claim.usdc_amount_base_units == 1_000


def test_deposit_sender_is_cached(chain, processor, campaign):
    chain.set_equity_token()
    chain.set_distributor()
    chain.equity_token_set(150, 0)
    _run(processor, 100, 199)
    with get_session() as session:
        processor.bootstrapper.ensure_profit_distributor(session, CHAIN_ID, DISTRIBUTOR)
    chain.deposited(220, 0)

    _run(processor, 200, 249)
    stats = _run(processor, 200, 249)

    assert stats.profit_deposits == 0
    assert chain.sender_lookups == 1
    assert processor.tx_sender_cache.hits == 1


def test_no_rpc_when_nothing_registered(engine, chain, processor):
    chain.invested(200, 0)

    stats = _run(processor, 200, 249)

    assert chain.get_logs_calls == []
    assert stats == BatchStats()


def test_only_registered_campaigns_are_fetched(chain, processor, campaign):
    chain.set_crowdfund(address=CROWDFUND_B, property_id="prop-2")
    chain.invested(200, 0, address=CROWDFUND_B)

    stats = _run(processor, 200, 249)

    assert stats.campaign_investments == 0
    addresses, _, _, _ = chain.get_logs_calls[-1]
    assert addresses == [CROWDFUND]


def test_unresolvable_distributor_is_bootstrapped_once_per_batch(
    engine, chain, processor, monkeypatch
):
    chain.set_distributor()
    attempts = []
    ensure = processor.bootstrapper.ensure_profit_distributor

    def counting_ensure(session, chain_id, address):
        attempts.append(address)
        return ensure(session, chain_id, address)

    monkeypatch.setattr(processor.bootstrapper, "ensure_profit_distributor", counting_ensure)

    unresolved = set()
    with get_session() as session:
        for _ in range(3):
            resolved = processor._resolve_distributor(
                session, CHAIN_ID, ContractRegistry(), unresolved, DISTRIBUTOR
            )
            assert resolved is None

    assert attempts == [DISTRIBUTOR]
    assert unresolved == {DISTRIBUTOR}


def test_explicit_registries_limit_the_fetch(chain, processor, campaign):
    chain.invested(200, 0)

    with get_session() as session:
        stats = processor.process_batch(
            session, CHAIN_ID, 200, 249, campaigns=ContractRegistry(), distributors=ContractRegistry()
        )

    assert stats == BatchStats()
    assert chain.get_logs_calls == []


def test_undecodable_log_aborts_batch(chain, processor, campaign):
    chain.invested(200, 0)
    chain.invested(201, 0)["data"] = b"\x00"

    with pytest.raises(EventDecodeError):
        _run(processor, 200, 249)

    with get_session() as session:
        assert session.query(CampaignInvestment).count() == 0


def test_removed_logs_are_ignored(chain, processor, campaign):
    chain.invested(200, 0)["removed"] = True

    stats = _run(processor, 200, 249)

    assert stats.campaign_investments == 0


def test_dry_run_counts_without_writing(chain, campaign):
    processor = _processor(chain, dry_run=True)
    chain.invested(200, 0)
    chain.refunded(201, 0)
    chain.finalized(202, 0)

    stats = _run(processor, 200, 249)

    assert stats.campaign_investments == 1
    assert stats.campaign_refunds == 1
    assert stats.campaigns_updated == 1
    with get_session() as session:
        assert session.query(CampaignInvestment).count() == 0
        assert session.query(Campaign.state).scalar() == "ACTIVE"
    assert _raised(campaign) == 0
