import json
import logging
from typing import Any, Dict, Iterable, List

from ..base.config import TradingConfig
from ..models.position import MarketInfo, PositionData
from .base import HttpGateway

logger = logging.getLogger(__name__)

# Positions smaller than this are dust left over from partial fills
DUST_SIZE = 0.001

GAMMA_BATCH_SIZE = 10


class PositionsClient(HttpGateway):
    """Read-only client for the positions data API and Gamma market metadata."""

    def __init__(self, config: TradingConfig):
        super().__init__(config.data_api_url, config)
        self.gamma_url = config.gamma_url

    async def fetch_positions(self, user: str) -> List[PositionData]:
        """
        Active and redeemable positions held by user (the Safe address).

        Redeemable rows win over active rows for the same asset.
        """
        params = {"user": user, "sizeThreshold": str(DUST_SIZE), "limit": "500"}
        active = await self._arequest("GET", "/positions", params=params) or []
        redeemable = await self._arequest(
            "GET", "/positions", params={**params, "redeemable": "true"}
        ) or []

        merged: Dict[str, PositionData] = {}
        for row in active:
            position = PositionData.from_api(row)
            merged[position.asset] = position
        for row in redeemable:
            position = PositionData.from_api(row)
            position.redeemable = True
            merged[position.asset] = position

        positions = [p for p in merged.values() if p.size > DUST_SIZE]
        logger.debug(f"Fetched {len(positions)} positions for {user}")
        return positions

    async def fetch_markets_by_token(self, token_ids: Iterable[str]) -> Dict[str, MarketInfo]:
        """Map each token id to its Gamma market, querying in batches."""
        token_ids = list(dict.fromkeys(t for t in token_ids if t))
        markets: Dict[str, MarketInfo] = {}

        for start in range(0, len(token_ids), GAMMA_BATCH_SIZE):
            batch = token_ids[start:start + GAMMA_BATCH_SIZE]
            params = [("clob_token_ids", token_id) for token_id in batch]
            params.append(("limit", str(len(batch) * 2)))
            rows = await self._arequest("GET", "/markets", params=params, host=self.gamma_url) or []

            for row in rows:
                market = self._parse_market(row)
                for token_id in market.clob_token_ids:
                    markets[token_id] = market

        return markets

    def _parse_market(self, data: Dict[str, Any]) -> MarketInfo:
        return MarketInfo(
            condition_id=data.get("conditionId", ""),
            question=data.get("question", ""),
            closed=bool(data.get("closed", False)),
            resolved=bool(data.get("resolved", False)),
            outcomes=[str(o) for o in _json_list(data.get("outcomes"))],
            outcome_prices=_float_list(data.get("outcomePrices")),
            clob_token_ids=[str(t) for t in _json_list(data.get("clobTokenIds"))],
            winning_outcome=data.get("winningOutcome") or None,
            end_date=data.get("endDate"),
        )


def _json_list(value: Any) -> List[Any]:
    """Gamma returns list fields either as JSON arrays or JSON-encoded strings"""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return list(value) if isinstance(value, list) else []


def _float_list(value: Any) -> List[float]:
    """Numeric list field. A list with any non-numeric entry is treated as absent."""
    try:
        return [float(v) for v in _json_list(value)]
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric list: {value!r}")
        return []
