"""Read service - paginated queries over the indexed tables.

The HTTP layer calls one method per endpoint with the request's query
parameters and turns the result into a response via ``handle_api_call``.
"""

from typing import Any, Callable, Dict, Mapping, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from homeshare_indexer.api import serializers
from homeshare_indexer.api.pagination import paginate
from homeshare_indexer.api.validators import (
    ApiError,
    NotFoundError,
    normalize_address,
    parse_campaign_cursor,
    parse_event_cursor,
    parse_limit,
    parse_property_cursor,
    validate_property_id,
)
from homeshare_indexer.config import DEFAULT_CHAIN_ID
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
from homeshare_indexer.log import get_logger

logger = get_logger(__name__)

Query = Mapping[str, Any]


def handle_api_call(fn: Callable[..., Dict[str, Any]], *args, **kwargs) -> Tuple[int, Dict[str, Any]]:
    """Run a read call and map its outcome to (status, body).

    ApiError subclasses keep their status and message; anything else is
    logged and reported as a generic 500.
    """
    try:
        return 200, fn(*args, **kwargs)
    except ApiError as e:
        return e.status, {"error": e.message}
    except Exception:
        logger.error("Unhandled error in read API", exc_info=True)
        return 500, {"error": "Internal server error"}


class ReadService:
    """Query side of the indexed store for one chain."""

    def __init__(self, session_factory=get_session, chain_id: int = DEFAULT_CHAIN_ID):
        self.session_factory = session_factory
        self.chain_id = chain_id

    # Properties

    def _property_query(self, session: Session):
        equity_token = (
            select(EquityToken.contract_address)
            .where(EquityToken.property_id == Property.id)
            .order_by(EquityToken.id.desc())
            .limit(1)
            .scalar_subquery()
        )
        distributor = (
            select(ProfitDistributor.contract_address)
            .where(ProfitDistributor.property_id == Property.id)
            .order_by(ProfitDistributor.id.desc())
            .limit(1)
            .scalar_subquery()
        )
        return session.query(Property, equity_token, distributor).filter(
            Property.chain_id == self.chain_id
        )

    def list_properties(self, query: Query) -> Dict[str, Any]:
        limit = parse_limit(query.get("limit"))
        cursor = parse_property_cursor(query)

        with self.session_factory() as session:
            page = paginate(
                self._property_query(session),
                [Property.property_id],
                (cursor,) if cursor else None,
                limit,
                key=lambda row: (row[0].property_id,),
            )
            items = [serializers.serialize_property(*row) for row in page.items]

        return {
            "properties": items,
            "nextCursor": page.next_cursor[0] if page.next_cursor else None,
        }

    def get_property(self, property_id: str) -> Dict[str, Any]:
        property_id = validate_property_id(property_id)
        with self.session_factory() as session:
            row = self._property_query(session).filter(Property.property_id == property_id).first()
            if row is None:
                raise NotFoundError("Property not found")
            return {"property": serializers.serialize_property(*row)}

    # Campaigns

    def _campaign_query(self, session: Session):
        return (
            session.query(Campaign, Property.property_id)
            .join(Property, Property.id == Campaign.property_id)
            .filter(Campaign.chain_id == self.chain_id)
        )

    def list_campaigns(self, query: Query) -> Dict[str, Any]:
        limit = parse_limit(query.get("limit"))
        cursor = parse_campaign_cursor(query)

        with self.session_factory() as session:
            page = paginate(
                self._campaign_query(session),
                [Campaign.start_time, Campaign.contract_address],
                cursor,
                limit,
                key=lambda row: (row[0].start_time, row[0].contract_address),
            )
            items = [serializers.serialize_campaign(*row) for row in page.items]

        return {
            "campaigns": items,
            "nextCursor": serializers.campaign_cursor(*page.next_cursor) if page.next_cursor else None,
        }

    def get_campaign(self, campaign_address: str) -> Dict[str, Any]:
        address = normalize_address(campaign_address, "campaignAddress")
        with self.session_factory() as session:
            row = self._campaign_query(session).filter(Campaign.contract_address == address).first()
            if row is None:
                raise NotFoundError("Campaign not found")
            return {"campaign": serializers.serialize_campaign(*row)}

    # Event lists

    def _event_page(self, query: Query, model, base_query, items_key: str, serialize) -> Dict[str, Any]:
        limit = parse_limit(query.get("limit"))
        cursor = parse_event_cursor(query)

        page = paginate(
            base_query.filter(model.chain_id == self.chain_id),
            [model.block_number, model.log_index],
            cursor,
            limit,
            key=lambda row: (row[0].block_number, row[0].log_index),
        )
        return {
            items_key: [serialize(*row) for row in page.items],
            "nextCursor": serializers.event_cursor(*page.next_cursor) if page.next_cursor else None,
        }

    def _investments_query(self, session: Session, model):
        return (
            session.query(model, Property.property_id, Campaign.contract_address)
            .join(Campaign, Campaign.id == model.campaign_id)
            .join(Property, Property.id == model.property_id)
        )

    def _equity_claims_query(self, session: Session):
        return (
            session.query(
                EquityClaim, Property.property_id, EquityToken.contract_address, Campaign.contract_address
            )
            .join(Property, Property.id == EquityClaim.property_id)
            .join(EquityToken, EquityToken.id == EquityClaim.equity_token_id)
            .outerjoin(Campaign, Campaign.id == EquityClaim.campaign_id)
        )

    def _distributor_query(self, session: Session, model):
        return (
            session.query(model, Property.property_id, ProfitDistributor.contract_address)
            .join(Property, Property.id == model.property_id)
            .join(ProfitDistributor, ProfitDistributor.id == model.profit_distributor_id)
        )

    def list_campaign_investments(self, campaign_address: str, query: Query) -> Dict[str, Any]:
        address = normalize_address(campaign_address, "campaignAddress")
        with self.session_factory() as session:
            base = self._investments_query(session, CampaignInvestment).filter(
                Campaign.contract_address == address
            )
            return self._event_page(
                query, CampaignInvestment, base, "investments", serializers.serialize_investment
            )

    def list_campaign_refunds(self, campaign_address: str, query: Query) -> Dict[str, Any]:
        address = normalize_address(campaign_address, "campaignAddress")
        with self.session_factory() as session:
            base = self._investments_query(session, CampaignRefund).filter(
                Campaign.contract_address == address
            )
            return self._event_page(query, CampaignRefund, base, "refunds", serializers.serialize_refund)

    def list_equity_claims(self, property_id: str, query: Query) -> Dict[str, Any]:
        property_id = validate_property_id(property_id)
        with self.session_factory() as session:
            base = self._equity_claims_query(session).filter(Property.property_id == property_id)
            return self._event_page(
                query, EquityClaim, base, "equityClaims", serializers.serialize_equity_claim
            )

    def list_profit_deposits(self, property_id: str, query: Query) -> Dict[str, Any]:
        property_id = validate_property_id(property_id)
        with self.session_factory() as session:
            base = self._distributor_query(session, ProfitDeposit).filter(
                Property.property_id == property_id
            )
            return self._event_page(
                query, ProfitDeposit, base, "profitDeposits", serializers.serialize_profit_deposit
            )

    def list_profit_claims(self, property_id: str, query: Query) -> Dict[str, Any]:
        property_id = validate_property_id(property_id)
        with self.session_factory() as session:
            base = self._distributor_query(session, ProfitClaim).filter(
                Property.property_id == property_id
            )
            return self._event_page(
                query, ProfitClaim, base, "profitClaims", serializers.serialize_profit_claim
            )

    # Per wallet

    def list_investor_investments(self, investor_address: str, query: Query) -> Dict[str, Any]:
        address = normalize_address(investor_address)
        with self.session_factory() as session:
            base = self._investments_query(session, CampaignInvestment).filter(
                CampaignInvestment.investor_address == address
            )
            return self._event_page(
                query, CampaignInvestment, base, "investments", serializers.serialize_investment
            )

    def list_investor_equity_claims(self, investor_address: str, query: Query) -> Dict[str, Any]:
        address = normalize_address(investor_address)
        with self.session_factory() as session:
            base = self._equity_claims_query(session).filter(EquityClaim.claimant_address == address)
            return self._event_page(
                query, EquityClaim, base, "equityClaims", serializers.serialize_equity_claim
            )

    def list_investor_profit_claims(self, investor_address: str, query: Query) -> Dict[str, Any]:
        address = normalize_address(investor_address)
        with self.session_factory() as session:
            base = self._distributor_query(session, ProfitClaim).filter(
                ProfitClaim.claimer_address == address
            )
            return self._event_page(
                query, ProfitClaim, base, "profitClaims", serializers.serialize_profit_claim
            )
