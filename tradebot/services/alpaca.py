"""Alpaca API client for market data, screeners and positions."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import httpx

from tradebot.core.config import Settings, settings as app_settings
from tradebot.core.data_helpers import safe_float
from tradebot.core.exceptions import ExternalServiceError
from tradebot.core.logging import get_logger
from tradebot.research.data import Position, SymbolSnapshot


logger = get_logger("services.alpaca")

# Symbols per snapshot request
SNAPSHOT_BATCH_SIZE = 100


def _symbols_from(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    return [
        item["symbol"] for item in items
        if isinstance(item, dict) and isinstance(item.get("symbol"), str)
    ]


def parse_snapshot(symbol: str, raw: Any) -> Optional[SymbolSnapshot]:
    """Convert one snapshot payload. Returns None for empty entries."""
    if not isinstance(raw, dict):
        return None
    latest_trade = raw.get("latestTrade") or {}
    daily_bar = raw.get("dailyBar") or {}
    return SymbolSnapshot(
        symbol=raw.get("symbol") or symbol,
        latest_trade_price=safe_float(latest_trade.get("p")) if isinstance(latest_trade, dict) else None,
        daily_close=safe_float(daily_bar.get("c")) if isinstance(daily_bar, dict) else None,
    )


def parse_position(raw: Dict[str, Any]) -> Position:
    return Position(
        symbol=raw.get("symbol", ""),
        qty=raw.get("qty"),
        market_value=raw.get("market_value"),
        cost_basis=raw.get("cost_basis"),
    )


def merge_research_symbols(
    gainers: Sequence[str],
    losers: Sequence[str],
    most_active: Sequence[str],
    cap: int,
) -> list[str]:
    """Top gainers and losers (half the cap each) then most actives, deduplicated and capped."""
    if cap <= 0:
        return []
    half_cap = max(1, cap // 2)
    merged = dict.fromkeys([*gainers[:half_cap], *losers[:half_cap], *most_active])
    return list(merged)[:cap]


class AlpacaClient:
    """
    Thin async client over the Alpaca REST APIs.

    Pass ``client`` to reuse a connection pool (or a mock transport in tests);
    otherwise a client is created per request.
    """

    def __init__(
        self,
        key_id: str,
        secret_key: str,
        base_url: str = "https://paper-api.alpaca.markets",
        data_url: str = "https://data.alpaca.markets",
        timeout: float = 30,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.data_url = data_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "APCA-API-KEY-ID": key_id,
            "APCA-API-SECRET-KEY": secret_key,
        }
        self._client = client

    @classmethod
    def from_settings(cls, s: Settings = app_settings) -> AlpacaClient:
        return cls(
            key_id=s.alpaca_key_id,
            secret_key=s.alpaca_secret_key,
            base_url=s.alpaca_base_url,
            data_url=s.alpaca_data_url,
            timeout=s.external_api_timeout,
        )

    async def _request(self, client: httpx.AsyncClient, url: str, params: Optional[Dict[str, Any]]) -> Any:
        response = await client.get(url, params=params, headers=self._headers)
        response.raise_for_status()
        return response.json()

    async def _get(self, host: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Fetch JSON from an Alpaca endpoint."""
        url = f"{host}/{path.lstrip('/')}"
        try:
            if self._client is not None:
                return await self._request(self._client, url, params)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await self._request(client, url, params)
        except httpx.RequestError as exc:
            logger.warning(f"Alpaca request failed: {path}: {exc}")
            raise ExternalServiceError(message="Alpaca API unavailable", details={"path": path}) from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(f"Alpaca API error: {path}: {exc.response.status_code}")
            raise ExternalServiceError(
                message="Alpaca API returned an error",
                details={"path": path, "status_code": exc.response.status_code},
            ) from exc
        except ValueError as exc:
            raise ExternalServiceError(message="Alpaca API returned invalid JSON", details={"path": path}) from exc

    # -------------------------------------------------------------------------
    # Market data
    # -------------------------------------------------------------------------

    async def get_snapshots(self, symbols: Sequence[str]) -> Dict[str, SymbolSnapshot]:
        """Latest trade and daily bar per symbol. Unknown symbols are absent from the result."""
        unique = list(dict.fromkeys(symbols))
        out: Dict[str, SymbolSnapshot] = {}
        for i in range(0, len(unique), SNAPSHOT_BATCH_SIZE):
            batch = unique[i:i + SNAPSHOT_BATCH_SIZE]
            data = await self._get(self.data_url, "/v2/stocks/snapshots", {"symbols": ",".join(batch)})
            if not isinstance(data, dict):
                continue
            for symbol, raw in data.items():
                snapshot = parse_snapshot(symbol, raw)
                if snapshot is not None:
                    out[symbol] = snapshot
        return out

    async def get_movers(self, top: int) -> tuple[list[str], list[str]]:
        data = await self._get(self.data_url, "/v1beta1/screener/stocks/movers", {"top": top})
        if not isinstance(data, dict):
            return [], []
        return _symbols_from(data.get("gainers")), _symbols_from(data.get("losers"))

    async def get_most_actives(self, top: int) -> list[str]:
        data = await self._get(
            self.data_url, "/v1beta1/screener/stocks/most-actives", {"by": "volume", "top": top}
        )
        if not isinstance(data, dict):
            return []
        return _symbols_from(data.get("most_actives"))

    async def get_research_symbols(self, cap: int) -> List[str]:
        """Movers and most-active symbols for the research universe."""
        if cap <= 0:
            return []
        (gainers, losers), most_active = await asyncio.gather(
            self.get_movers(max(1, cap // 2)),
            self.get_most_actives(cap),
        )
        symbols = merge_research_symbols(gainers, losers, most_active, cap)
        logger.debug(f"Research symbols: {symbols}")
        return symbols

    # -------------------------------------------------------------------------
    # Trading account
    # -------------------------------------------------------------------------

    async def get_positions(self) -> List[Position]:
        data = await self._get(self.base_url, "/v2/positions")
        if not isinstance(data, list):
            return []
        return [parse_position(p) for p in data if isinstance(p, dict) and p.get("symbol")]
