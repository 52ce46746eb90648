"""Tests for the read API query layer."""

from datetime import datetime

import pytest

from homeshare_indexer.api import ReadService, handle_api_call
from homeshare_indexer.db.models import (
    Campaign,
    CampaignInvestment,
    CampaignRefund,
    EquityClaim,
    EquityToken,
    ProfitClaim,
    ProfitDeposit,
    ProfitDistributor,
    Property,
)
from homeshare_indexer.db.session import get_session

from fakes import (
    ADMIN,
    CHAIN_ID,
    CROWDFUND,
    CROWDFUND_B,
    DISTRIBUTOR,
    EQUITY_TOKEN,
    INVESTOR_A,
    INVESTOR_B,
    USDC,
    tx_hash_for,
)

INVESTMENTS = 130


@pytest.fixture
def service(engine):
    """Two properties; the first has a campaign with 130 investments and profit activity."""
    with get_session() as session:
        prop = Property(
            property_id="prop-1",
            chain_id=CHAIN_ID,
            crowdfund_contract_address=CROWDFUND,
            target_usdc_base_units=5_000_000,
            name="Harbour Lofts",
        )
        other = Property(
            property_id="prop-2",
            chain_id=CHAIN_ID,
            crowdfund_contract_address=CROWDFUND_B,
            target_usdc_base_units=1_000_000,
        )
        session.add_all([prop, other])
        session.flush()

        campaign = Campaign(
            property_id=prop.id,
            chain_id=CHAIN_ID,
            contract_address=CROWDFUND,
            start_time=datetime(2024, 1, 1),
            end_time=datetime(2024, 1, 31),
            target_usdc_base_units=5_000_000,
            raised_usdc_base_units=600_000,
        )
        campaign_b = Campaign(
            property_id=other.id,
            chain_id=CHAIN_ID,
            contract_address=CROWDFUND_B,
            start_time=datetime(2024, 2, 1),
            target_usdc_base_units=1_000_000,
        )
        session.add_all([campaign, campaign_b])
        session.flush()

        for i in range(INVESTMENTS):
            block_number, log_index = 200 + i // 3, i % 3
            session.add(
                CampaignInvestment(
                    chain_id=CHAIN_ID,
                    tx_hash=tx_hash_for(block_number, log_index),
                    log_index=log_index,
                    block_number=block_number,
                    campaign_id=campaign.id,
                    property_id=prop.id,
                    investor_address=INVESTOR_A if i % 2 == 0 else INVESTOR_B,
                    usdc_amount_base_units=1_000 + i,
                )
            )
        session.add(
            CampaignRefund(
                chain_id=CHAIN_ID,
                tx_hash=tx_hash_for(300, 0),
                log_index=0,
                block_number=300,
                campaign_id=campaign.id,
                property_id=prop.id,
                investor_address=INVESTOR_A,
                usdc_amount_base_units=400_000,
            )
        )

        token = EquityToken(
            property_id=prop.id,
            chain_id=CHAIN_ID,
            contract_address=EQUITY_TOKEN,
            total_supply_base_units=1_000_000,
        )
        distributor = ProfitDistributor(
            property_id=prop.id,
            chain_id=CHAIN_ID,
            contract_address=DISTRIBUTOR,
            usdc_token_address=USDC,
            equity_token_address=EQUITY_TOKEN,
        )
        session.add_all([token, distributor])
        session.flush()

        session.add_all(
            [
                EquityClaim(
                    chain_id=CHAIN_ID,
                    tx_hash=tx_hash_for(310, 0),
                    log_index=0,
                    block_number=310,
                    campaign_id=campaign.id,
                    property_id=prop.id,
                    equity_token_id=token.id,
                    claimant_address=INVESTOR_B,
                    equity_amount_base_units=10**18,
                ),
                ProfitDeposit(
                    chain_id=CHAIN_ID,
                    tx_hash=tx_hash_for(320, 0),
                    log_index=0,
                    block_number=320,
                    profit_distributor_id=distributor.id,
                    property_id=prop.id,
                    depositor_address=ADMIN,
                    usdc_amount_base_units=250_000,
                    acc_profit_per_share=10**15,
                ),
                ProfitClaim(
                    chain_id=CHAIN_ID,
                    tx_hash=tx_hash_for(330, 1),
                    log_index=1,
                    block_number=330,
                    profit_distributor_id=distributor.id,
                    property_id=prop.id,
                    claimer_address=INVESTOR_A,
                    usdc_amount_base_units=1_000,
                ),
            ]
        )

    return ReadService(chain_id=CHAIN_ID)


def _call(fn, *args):
    return handle_api_call(fn, *args)


def test_investments_paginate_in_chain_order(service):
    pages = []
    query = {}
    while True:
        body = service.list_campaign_investments(CROWDFUND, query)
        pages.append(body["investments"])
        if body["nextCursor"] is None:
            break
        query = body["nextCursor"]

    assert [len(page) for page in pages] == [50, 50, 30]
    positions = [(int(item["blockNumber"]), item["logIndex"]) for page in pages for item in page]
    assert positions == sorted(positions)
    assert len(set(positions)) == INVESTMENTS


def test_next_cursor_points_at_last_item(service):
    body = service.list_campaign_investments(CROWDFUND, {"limit": "10"})

    last = body["investments"][-1]
    assert body["nextCursor"] == {
        "cursorBlockNumber": last["blockNumber"],
        "cursorLogIndex": last["logIndex"],
    }


def test_legacy_cursor_parameter_names(service):
    body = service.list_campaign_investments(CROWDFUND, {"blockNumber": "242", "logIndex": "0"})

    assert body["investments"][0]["blockNumber"] == "242"
    assert body["investments"][0]["logIndex"] == 1


def test_amounts_are_strings(service):
    item = service.list_campaign_investments(CROWDFUND, {"limit": 1})["investments"][0]

    assert item == {
        "propertyId": "prop-1",
        "campaignAddress": CROWDFUND,
        "investorAddress": INVESTOR_A,
        "usdcAmountBaseUnits": "1000",
        "txHash": tx_hash_for(200, 0),
        "logIndex": 0,
        "blockNumber": "200",
        "createdAt": item["createdAt"],
    }
    assert item["createdAt"].endswith("Z")


def test_limit_is_clamped(service):
    body = service.list_campaign_investments(CROWDFUND, {"limit": "500"})

    assert len(body["investments"]) == INVESTMENTS
    assert body["nextCursor"] is None


def test_cursor_at_bigint_max_is_accepted(service):
    body = service.list_campaign_investments(
        CROWDFUND, {"cursorBlockNumber": str(2**63 - 1), "cursorLogIndex": "0"}
    )

    assert body == {"investments": [], "nextCursor": None}


def test_very_long_limit_is_clamped(service):
    body = service.list_campaign_investments(CROWDFUND, {"limit": "9" * 5000})

    assert len(body["investments"]) == INVESTMENTS


@pytest.mark.parametrize("limit", ["0", "abc", "-1", "1.5"])
def test_invalid_limit(service, limit):
    status, body = _call(service.list_campaign_investments, CROWDFUND, {"limit": limit})

    assert status == 400
    assert body == {"error": "Invalid limit"}


@pytest.mark.parametrize(
    "query",
    [
        {"cursorBlockNumber": "200"},
        {"cursorLogIndex": "1"},
        {"cursorBlockNumber": "x", "cursorLogIndex": "1"},
        {"cursorBlockNumber": str(2**63), "cursorLogIndex": "0"},
        {"cursorBlockNumber": "1" * 5000, "cursorLogIndex": "0"},
    ],
)
def test_invalid_event_cursor(service, query):
    status, _ = _call(service.list_campaign_investments, CROWDFUND, query)

    assert status == 400


def test_invalid_address(service):
    status, body = _call(service.list_campaign_investments, "0x1234", {})

    assert status == 400
    assert body == {"error": "Invalid campaignAddress"}


def test_get_campaign(service):
    status, body = _call(service.get_campaign, CROWDFUND.replace("cafe", "CAFE"))

    assert status == 200
    campaign = body["campaign"]
    assert campaign["campaignAddress"] == CROWDFUND
    assert campaign["propertyId"] == "prop-1"
    assert campaign["state"] == "ACTIVE"
    assert campaign["raisedUsdcBaseUnits"] == "600000"
    assert campaign["raisedUsdc"] == "0.6"
    assert campaign["progressPercent"] == "12.00"
    assert campaign["startTime"] == "2024-01-01T00:00:00.000Z"


def test_unknown_campaign_is_404(service):
    status, body = _call(service.get_campaign, "0x" + "1" * 40)

    assert status == 404
    assert body == {"error": "Campaign not found"}


def test_campaigns_paginate_by_start_time(service):
    first = service.list_campaigns({"limit": "1"})
    second = service.list_campaigns(first["nextCursor"])

    assert [c["campaignAddress"] for c in first["campaigns"]] == [CROWDFUND]
    assert first["nextCursor"] == {
        "cursorStartTime": "2024-01-01T00:00:00.000Z",
        "cursorContractAddress": CROWDFUND,
    }
    assert [c["campaignAddress"] for c in second["campaigns"]] == [CROWDFUND_B]
    assert second["nextCursor"] is None


def test_properties_paginate_by_property_id(service):
    first = service.list_properties({"limit": "1"})
    second = service.list_properties({"limit": "1", "cursorPropertyId": first["nextCursor"]})

    assert first["nextCursor"] == "prop-1"
    assert [p["propertyId"] for p in second["properties"]] == ["prop-2"]
    assert second["nextCursor"] is None


def test_get_property_includes_contracts(service):
    prop = service.get_property("prop-1")["property"]

    assert prop["name"] == "Harbour Lofts"
    assert prop["crowdfundAddress"] == CROWDFUND
    assert prop["equityTokenAddress"] == EQUITY_TOKEN
    assert prop["profitDistributorAddress"] == DISTRIBUTOR
    assert prop["targetUsdcBaseUnits"] == "5000000"

    other = service.get_property("prop-2")["property"]
    assert other["equityTokenAddress"] is None
    assert other["profitDistributorAddress"] is None


def test_unknown_property_is_404(service):
    assert _call(service.get_property, "nope")[0] == 404
    assert _call(service.get_property, "bad id!")[0] == 400


def test_refunds(service):
    body = service.list_campaign_refunds(CROWDFUND, {})

    assert [r["usdcAmountBaseUnits"] for r in body["refunds"]] == ["400000"]


def test_property_event_lists(service):
    claims = service.list_equity_claims("prop-1", {})["equityClaims"]
    deposits = service.list_profit_deposits("prop-1", {})["profitDeposits"]
    profit_claims = service.list_profit_claims("prop-1", {})["profitClaims"]

    assert claims[0]["equityAmountBaseUnits"] == str(10**18)
    assert claims[0]["equityTokenAddress"] == EQUITY_TOKEN
    assert claims[0]["campaignAddress"] == CROWDFUND
    assert deposits[0]["depositorAddress"] == ADMIN
    assert deposits[0]["accProfitPerShare"] == str(10**15)
    assert deposits[0]["profitDistributorAddress"] == DISTRIBUTOR
    assert profit_claims[0]["claimerAddress"] == INVESTOR_A
    assert service.list_profit_claims("prop-2", {})["profitClaims"] == []


def test_investor_lists(service):
    investments = service.list_investor_investments(INVESTOR_B, {"limit": "200"})["investments"]
    equity_claims = service.list_investor_equity_claims(INVESTOR_B, {})["equityClaims"]
    profit_claims = service.list_investor_profit_claims(INVESTOR_B, {})["profitClaims"]

    assert len(investments) == INVESTMENTS // 2
    assert {i["investorAddress"] for i in investments} == {INVESTOR_B}
    assert len(equity_claims) == 1
    assert profit_claims == []


def test_unexpected_error_is_500():
    def boom():
        raise RuntimeError("database exploded")

    status, body = handle_api_call(boom)

    assert status == 500
    assert body == {"error": "Internal server error"}
