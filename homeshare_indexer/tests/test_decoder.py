"""Tests for event decoder."""

import pytest
from hexbytes import HexBytes
from web3 import Web3

from homeshare_indexer.eth.abi_loader import CROWDFUND_CONTRACT, PROFIT_DISTRIBUTOR_CONTRACT
from homeshare_indexer.eth.decoder import (
    EventDecodeError,
    decode_crowdfund_event,
    decode_profit_event,
    sort_events,
)
from homeshare_indexer.eth.events import (
    CampaignState,
    Deposited,
    EquityTokenSet,
    Finalized,
    Invested,
)
from homeshare_indexer.eth.topics import compute_topic, get_crowdfund_topics, get_event_topic

from fakes import CROWDFUND, DISTRIBUTOR, EQUITY_TOKEN, INVESTOR_A, build_log, tx_hash_for


def test_topic_matches_event_signature():
    """topic0 is keccak of the canonical signature."""
    assert get_event_topic(CROWDFUND_CONTRACT, "Invested") == compute_topic("Invested(address,uint256)")
    assert get_event_topic(CROWDFUND_CONTRACT, "Finalized") == Web3.to_hex(
        Web3.keccak(text="Finalized(uint8,uint256)")
    )
    assert len(set(get_crowdfund_topics())) == 6


def test_decode_invested():
    log = build_log(
        CROWDFUND_CONTRACT, "Invested", CROWDFUND.upper().replace("0X", "0x"), 200, 0,
        investor=INVESTOR_A, amountUSDC=1_000_000,
    )

    event = decode_crowdfund_event(log)

    assert isinstance(event, Invested)
    assert event.address == CROWDFUND
    assert event.investor == INVESTOR_A
    assert event.amount_usdc == 1_000_000
    assert event.tx_hash == tx_hash_for(200, 0)
    assert event.block_number == 200
    assert event.log_index == 0


def test_decode_finalized_maps_state_index():
    log = build_log(
        CROWDFUND_CONTRACT, "Finalized", CROWDFUND, 300, 4, state=2, raisedAmountUSDC=42
    )

    event = decode_crowdfund_event(log)

    assert isinstance(event, Finalized)
    assert event.state is CampaignState.FAILED
    assert event.raised_amount_usdc == 42


def test_decode_finalized_unknown_state_fails_loudly():
    log = build_log(
        CROWDFUND_CONTRACT, "Finalized", CROWDFUND, 300, 4, state=9, raisedAmountUSDC=42
    )

    with pytest.raises(EventDecodeError):
        decode_crowdfund_event(log)


def test_decode_equity_token_set_lowercases_address():
    log = build_log(CROWDFUND_CONTRACT, "EquityTokenSet", CROWDFUND, 10, 1, equityToken=EQUITY_TOKEN)

    event = decode_crowdfund_event(log)

    assert isinstance(event, EquityTokenSet)
    assert event.equity_token == EQUITY_TOKEN


def test_decode_deposited():
    log = build_log(
        PROFIT_DISTRIBUTOR_CONTRACT, "Deposited", DISTRIBUTOR, 50, 7,
        amountUSDC=250_000, accProfitPerShare=10**24,
    )

    event = decode_profit_event(log)

    assert isinstance(event, Deposited)
    assert event.amount_usdc == 250_000
    assert event.acc_profit_per_share == 10**24


def test_decode_unknown_topic():
    """A log from another ABI is rejected rather than ignored."""
    log = build_log(
        PROFIT_DISTRIBUTOR_CONTRACT, "Deposited", DISTRIBUTOR, 50, 7,
        amountUSDC=1, accProfitPerShare=1,
    )

    with pytest.raises(EventDecodeError):
        decode_crowdfund_event(log)


def test_decode_truncated_data():
    log = build_log(
        CROWDFUND_CONTRACT, "Invested", CROWDFUND, 200, 0, investor=INVESTOR_A, amountUSDC=5
    )
    log["data"] = HexBytes("0x1234")

    with pytest.raises(EventDecodeError):
        decode_crowdfund_event(log)


def test_sort_events_by_block_then_log_index():
    logs = [
        build_log(CROWDFUND_CONTRACT, "Invested", CROWDFUND, 201, 0, investor=INVESTOR_A, amountUSDC=3),
        build_log(CROWDFUND_CONTRACT, "Invested", CROWDFUND, 200, 5, investor=INVESTOR_A, amountUSDC=2),
        build_log(CROWDFUND_CONTRACT, "Invested", CROWDFUND, 200, 1, investor=INVESTOR_A, amountUSDC=1),
    ]

    events = sort_events(decode_crowdfund_event(log) for log in logs)

    assert [e.amount_usdc for e in events] == [1, 2, 3]
