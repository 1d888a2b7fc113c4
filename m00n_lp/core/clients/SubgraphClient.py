from __future__ import annotations

import math
from typing import Any

import httpx
from aiocache import Cache
from loguru import logger

from m00n_lp.core.config import get_subgraph_url
from m00n_lp.core.constants import NATIVE_CURRENCY
from m00n_lp.core.constants.base import DEFAULT_HTTP_TIMEOUT, PRICE_CACHE_TTL_SECONDS
from m00n_lp.core.constants.contracts import USDC_TOKEN, WMON_TOKEN, WMON_USDC_POOL_ID

POOL_PRICE_QUERY = """
query GetWmonUsdcPool($id: ID!) {
  pool(id: $id) {
    id
    token0Price
    token1Price
    token0 { id symbol }
    token1 { id symbol }
  }
}
"""

POSITIONS_BY_OWNER_QUERY = """
query GetPositions($owner: String!) {
  positions(where: { owner: $owner }) {
    id
    tokenId
    owner
  }
}
"""

_WMON_IDS = {WMON_TOKEN.lower(), NATIVE_CURRENCY.lower()}
_USDC_ID = USDC_TOKEN.lower()


def _positive_price(raw: Any) -> float | None:
    try:
        price = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def wmon_usd_from_pool(pool: dict[str, Any] | None) -> float | None:
    """USDC per WMON from a subgraph pool row, whichever side WMON sits on.

    Subgraph ``token1Price`` is token1 per token0 and ``token0Price`` is token0
    per token1. The native MON sentinel counts as WMON.
    """
    if not pool:
        return None
    token0 = str((pool.get("token0") or {}).get("id", "")).lower()
    token1 = str((pool.get("token1") or {}).get("id", "")).lower()
    if token0 in _WMON_IDS and token1 == _USDC_ID:
        return _positive_price(pool.get("token1Price"))
    if token1 in _WMON_IDS and token0 == _USDC_ID:
        return _positive_price(pool.get("token0Price"))
    return None


class SubgraphClient:
    """Uniswap v4 subgraph on Monad.

    ``cache`` holds the derived WMON/USD price between calls; pass a fresh
    ``Cache(Cache.MEMORY)`` per test for isolation.
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        cache: Cache | None = None,
        client: httpx.AsyncClient | None = None,
        price_ttl: int = PRICE_CACHE_TTL_SECONDS,
    ) -> None:
        self.url = url or get_subgraph_url()
        self.cache = cache if cache is not None else Cache(Cache.MEMORY)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(DEFAULT_HTTP_TIMEOUT)
        )
        self.price_ttl = int(price_ttl)

    async def query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        logger.debug(f"Subgraph query {variables}")
        resp = await self.client.post(
            self.url, json={"query": query, "variables": variables}
        )
        resp.raise_for_status()
        body = resp.json()
        if body.get("errors"):
            raise RuntimeError(f"Subgraph returned errors: {body.get('errors')}")
        return body.get("data") or {}

    async def get_wmon_usd_price(self) -> float | None:
        cache_key = f"wmon_usd:{WMON_USDC_POOL_ID}"
        if cached := await self.cache.get(cache_key):
            return float(cached)

        try:
            data = await self.query(POOL_PRICE_QUERY, {"id": WMON_USDC_POOL_ID.lower()})
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            logger.warning(f"Failed to fetch WMON/USD price from subgraph: {exc}")
            return None

        price = wmon_usd_from_pool(data.get("pool"))
        if price is None:
            logger.warning("WMON/USDC pool missing or unpriced in subgraph")
            return None
        await self.cache.set(cache_key, price, ttl=self.price_ttl)
        return price

    async def get_position_ids(self, owner: str) -> list[int]:
        data = await self.query(POSITIONS_BY_OWNER_QUERY, {"owner": owner.lower()})
        ids: list[int] = []
        for row in data.get("positions") or []:
            raw = (row or {}).get("tokenId")
            if raw in (None, ""):
                continue
            try:
                ids.append(int(str(raw), 0) if str(raw).startswith("0x") else int(raw))
            except (TypeError, ValueError):
                logger.debug(f"Skipping malformed position id {raw!r}")
        return ids

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
