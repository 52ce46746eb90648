"""JSON-ready representations of indexed rows.

Amounts and block numbers are decimal strings, addresses are lowercase and
timestamps are ISO-8601 strings.
"""

from typing import Any, Dict, Optional

from homeshare_indexer.db.models import (
    Campaign,
    CampaignInvestment,
    CampaignRefund,
    EquityClaim,
    ProfitClaim,
    ProfitDeposit,
    Property,
)
from homeshare_indexer.utils.formatting import (
    base_units_to_str,
    datetime_to_iso,
    format_address,
    progress_percent,
    usdc_to_decimal,
)


def _position(record) -> Dict[str, Any]:
    return {
        "txHash": record.tx_hash,
        "logIndex": record.log_index,
        "blockNumber": base_units_to_str(record.block_number),
        "createdAt": datetime_to_iso(record.created_at),
    }


def serialize_property(
    prop: Property,
    equity_token_address: Optional[str] = None,
    profit_distributor_address: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "propertyId": prop.property_id,
        "name": prop.name,
        "location": prop.location,
        "description": prop.description,
        "crowdfundAddress": format_address(prop.crowdfund_contract_address),
        "equityTokenAddress": format_address(equity_token_address),
        "profitDistributorAddress": format_address(profit_distributor_address),
        "targetUsdcBaseUnits": base_units_to_str(prop.target_usdc_base_units),
        "createdAt": datetime_to_iso(prop.created_at),
        "updatedAt": datetime_to_iso(prop.updated_at),
    }


def serialize_campaign(campaign: Campaign, property_key: str) -> Dict[str, Any]:
    return {
        "propertyId": property_key,
        "campaignAddress": format_address(campaign.contract_address),
        "startTime": datetime_to_iso(campaign.start_time),
        "endTime": datetime_to_iso(campaign.end_time),
        "state": campaign.state,
        "targetUsdcBaseUnits": base_units_to_str(campaign.target_usdc_base_units),
        "raisedUsdcBaseUnits": base_units_to_str(campaign.raised_usdc_base_units),
        "raisedUsdc": str(usdc_to_decimal(campaign.raised_usdc_base_units)),
        "progressPercent": progress_percent(
            campaign.raised_usdc_base_units, campaign.target_usdc_base_units
        ),
        "finalizedTxHash": campaign.finalized_tx_hash,
        "finalizedLogIndex": campaign.finalized_log_index,
        "finalizedBlockNumber": base_units_to_str(campaign.finalized_block_number),
        "withdrawnTxHash": campaign.withdrawn_tx_hash,
        "withdrawnBlockNumber": base_units_to_str(campaign.withdrawn_block_number),
        "createdAt": datetime_to_iso(campaign.created_at),
        "updatedAt": datetime_to_iso(campaign.updated_at),
    }


def serialize_investment(
    record: CampaignInvestment, property_key: str, campaign_address: str
) -> Dict[str, Any]:
    """Also used for refunds, which share the investment columns."""
    return {
        "propertyId": property_key,
        "campaignAddress": format_address(campaign_address),
        "investorAddress": format_address(record.investor_address),
        "usdcAmountBaseUnits": base_units_to_str(record.usdc_amount_base_units),
        **_position(record),
    }


def serialize_refund(
    record: CampaignRefund, property_key: str, campaign_address: str
) -> Dict[str, Any]:
    return serialize_investment(record, property_key, campaign_address)


def serialize_equity_claim(
    record: EquityClaim,
    property_key: str,
    equity_token_address: str,
    campaign_address: Optional[str],
) -> Dict[str, Any]:
    return {
        "propertyId": property_key,
        "equityTokenAddress": format_address(equity_token_address),
        "campaignAddress": format_address(campaign_address),
        "claimantAddress": format_address(record.claimant_address),
        "equityAmountBaseUnits": base_units_to_str(record.equity_amount_base_units),
        **_position(record),
    }


def serialize_profit_deposit(
    record: ProfitDeposit, property_key: str, distributor_address: str
) -> Dict[str, Any]:
    return {
        "propertyId": property_key,
        "profitDistributorAddress": format_address(distributor_address),
        "depositorAddress": format_address(record.depositor_address),
        "usdcAmountBaseUnits": base_units_to_str(record.usdc_amount_base_units),
        "accProfitPerShare": base_units_to_str(record.acc_profit_per_share),
        **_position(record),
    }


def serialize_profit_claim(
    record: ProfitClaim, property_key: str, distributor_address: str
) -> Dict[str, Any]:
    return {
        "propertyId": property_key,
        "profitDistributorAddress": format_address(distributor_address),
        "claimerAddress": format_address(record.claimer_address),
        "usdcAmountBaseUnits": base_units_to_str(record.usdc_amount_base_units),
        **_position(record),
    }


def event_cursor(block_number: int, log_index: int) -> Dict[str, Any]:
    return {"cursorBlockNumber": base_units_to_str(block_number), "cursorLogIndex": log_index}


def campaign_cursor(start_time, contract_address: str) -> Dict[str, Any]:
    return {
        "cursorStartTime": datetime_to_iso(start_time),
        "cursorContractAddress": format_address(contract_address),
    }
