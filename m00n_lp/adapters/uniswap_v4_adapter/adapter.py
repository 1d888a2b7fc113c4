from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
from eth_utils import is_address, to_checksum_address

from m00n_lp.adapters.uniswap_v4_adapter.models import (
    ClaimRequest,
    CollectRequest,
    CompoundRequest,
    IncreaseRequest,
    MintRequest,
    RemoveRequest,
    parse_request,
    parse_token_id,
)
from m00n_lp.core.adapters.BaseAdapter import BaseAdapter
from m00n_lp.core.adapters.decorators import status_tuple
from m00n_lp.core.clients.SubgraphClient import SubgraphClient
from m00n_lp.core.config import get_chain_id, get_lp_settings
from m00n_lp.core.constants import MSG_SENDER, NATIVE_CURRENCY
from m00n_lp.core.constants.contracts import (
    KNOWN_TOKENS,
    MOON_TOKEN,
    POSITION_MANAGER,
    STATE_VIEW,
    WMON_TOKEN,
)
from m00n_lp.core.constants.uniswap_v4_abi import (
    ERC20_METADATA_ABI,
    POSITION_MANAGER_ABI,
    STATE_VIEW_ABI,
)
from m00n_lp.core.errors import LiquidityError, PoolStateUnavailable, PriceUnavailable
from m00n_lp.core.utils.liquidity_planner import (
    DepositPlan,
    RangeStrategy,
    TickRange,
    base_usd_price,
    build_position,
    build_position_from_amount1,
    build_range_from_usd,
    compute_fees,
    plan_deposit,
    position_from_liquidity,
    value_fees_usd,
)
from m00n_lp.core.utils.uniswap_v4_calls import (
    collect_call_parameters,
    compound_call_parameters,
    deadline,
    increase_call_parameters,
    mint_call_parameters,
    remove_call_parameters,
)
from m00n_lp.core.utils.uniswap_v4_math import decode_position_info
from m00n_lp.core.utils.uniswap_v4_positions import (
    PoolKey,
    PoolState,
    PositionDetails,
    TokenMetadata,
    moon_pool_key,
    pool_id,
)
from m00n_lp.core.utils.web3 import web3_from_chain_id

_NATIVE_METADATA = {"symbol": "MON", "name": "Monad", "decimals": 18}


def _pool_id_bytes(key: PoolKey) -> bytes:
    return bytes.fromhex(pool_id(key)[2:])


def _merge_settings(overrides: dict[str, Any] | None) -> dict[str, Any]:
    settings = get_lp_settings()
    for name, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(settings.get(name), dict):
            settings[name] = {**settings[name], **value}
        else:
            settings[name] = value
    return settings


class UniswapV4LiquidityAdapter(BaseAdapter):
    """Plans and encodes m00n/WMON liquidity operations on Monad's v4 PositionManager.

    Nothing here signs or sends: every ``build_*`` call returns the
    ``{to, data, value}`` call for the user's wallet to submit.
    """

    adapter_type = "UNISWAP_V4"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        subgraph: SubgraphClient | None = None,
        pool_key: PoolKey | None = None,
    ) -> None:
        super().__init__("uniswap_v4_adapter", config)
        self.chain_id: int = int(self.config.get("chain_id") or get_chain_id())
        self.settings = _merge_settings(self.config.get("lp"))
        self.strategy = RangeStrategy.from_settings(self.settings["range"])
        self._owns_subgraph = subgraph is None
        self.subgraph = subgraph or SubgraphClient()
        self.pool_key = pool_key or moon_pool_key()
        self.base_is_token0 = self.pool_key.is_token0(MOON_TOKEN)

    # ------------------------------------------------------------------ #
    # On-chain reads
    # ------------------------------------------------------------------ #

    async def get_pool_state(self, key: PoolKey | None = None) -> PoolState:
        key = key or self.pool_key
        pid = _pool_id_bytes(key)
        try:
            async with web3_from_chain_id(self.chain_id) as w3:
                state_view = w3.eth.contract(address=STATE_VIEW, abi=STATE_VIEW_ABI)
                slot0, liquidity = await asyncio.gather(
                    state_view.functions.getSlot0(pid).call(),
                    state_view.functions.getLiquidity(pid).call(),
                )
        except Exception as exc:
            raise PoolStateUnavailable(poolId=pool_id(key), detail=str(exc)) from exc

        sqrt_price_x96, tick = int(slot0[0]), int(slot0[1])
        if sqrt_price_x96 == 0:
            raise PoolStateUnavailable(poolId=pool_id(key), detail="pool not initialized")
        return PoolState(sqrt_price_x96, tick, int(liquidity))

    async def get_fee_growth_inside(
        self, key: PoolKey, tick_lower: int, tick_upper: int
    ) -> tuple[int, int]:
        try:
            async with web3_from_chain_id(self.chain_id) as w3:
                state_view = w3.eth.contract(address=STATE_VIEW, abi=STATE_VIEW_ABI)
                fg0, fg1 = await state_view.functions.getFeeGrowthInside(
                    _pool_id_bytes(key), int(tick_lower), int(tick_upper)
                ).call()
        except Exception as exc:
            raise PoolStateUnavailable(
                poolId=pool_id(key),
                tickLower=tick_lower,
                tickUpper=tick_upper,
                detail=str(exc),
            ) from exc
        return int(fg0), int(fg1)

    async def get_position_details(self, token_id: int) -> PositionDetails:
        try:
            async with web3_from_chain_id(self.chain_id) as w3:
                position_manager = w3.eth.contract(
                    address=POSITION_MANAGER, abi=POSITION_MANAGER_ABI
                )
                (raw_key, info), liquidity = await asyncio.gather(
                    position_manager.functions.getPoolAndPositionInfo(token_id).call(),
                    position_manager.functions.getPositionLiquidity(token_id).call(),
                )
                # unminted ids come back with an all-zero pool key
                if int(raw_key[3]) == 0:
                    raise LiquidityError("invalid_token_id", tokenId=str(token_id))
                key = PoolKey.from_tuple(raw_key)
                tick_lower, tick_upper, _ = decode_position_info(int(info))

                state_view = w3.eth.contract(address=STATE_VIEW, abi=STATE_VIEW_ABI)
                _, fg0_last, fg1_last = await state_view.functions.getPositionInfo(
                    _pool_id_bytes(key),
                    POSITION_MANAGER,
                    tick_lower,
                    tick_upper,
                    int(token_id).to_bytes(32, "big"),
                ).call()
        except LiquidityError:
            raise
        except Exception as exc:
            raise PoolStateUnavailable(tokenId=str(token_id), detail=str(exc)) from exc

        return PositionDetails(
            token_id=int(token_id),
            pool_key=key,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            liquidity=int(liquidity),
            fee_growth_inside0_last_x128=int(fg0_last),
            fee_growth_inside1_last_x128=int(fg1_last),
        )

    async def get_token_metadata(self, address: str) -> TokenMetadata:
        checksum = to_checksum_address(address)
        if checksum == NATIVE_CURRENCY:
            return TokenMetadata(address=checksum, **_NATIVE_METADATA)
        if known := KNOWN_TOKENS.get(checksum.lower()):
            return TokenMetadata(
                address=checksum,
                symbol=str(known["symbol"]),
                decimals=int(known["decimals"]),
                name=str(known["name"]),
            )

        try:
            async with web3_from_chain_id(self.chain_id) as w3:
                token = w3.eth.contract(address=checksum, abi=ERC20_METADATA_ABI)
                decimals, symbol = await asyncio.gather(
                    token.functions.decimals().call(),
                    token.functions.symbol().call(),
                )
        except Exception as exc:
            self.logger.warning(f"Token metadata unavailable for {checksum}: {exc}")
            return TokenMetadata.unknown(checksum)
        return TokenMetadata(address=checksum, symbol=str(symbol), decimals=int(decimals))

    async def _position_count(self, owner: str) -> int:
        async with web3_from_chain_id(self.chain_id) as w3:
            position_manager = w3.eth.contract(
                address=POSITION_MANAGER, abi=POSITION_MANAGER_ABI
            )
            return int(await position_manager.functions.balanceOf(owner).call())

    async def _indexed_position_ids(self, owner: str) -> tuple[list[int], bool]:
        """Token ids the subgraph knows for ``owner``; an outage yields no ids."""
        try:
            return await self.subgraph.get_position_ids(owner), True
        except (httpx.HTTPError, RuntimeError) as exc:
            self.logger.warning(f"Subgraph position lookup failed for {owner}: {exc}")
            return [], False

    async def _market(self) -> tuple[PoolState, float]:
        """Pool snapshot and WMON/USD, fetched together; both are required."""
        state, wmon_usd = await asyncio.gather(
            self.get_pool_state(), self.subgraph.get_wmon_usd_price()
        )
        if wmon_usd is None:
            raise PriceUnavailable(asset="WMON")
        return state, wmon_usd

    def _deadline(self) -> int:
        return deadline(self.settings["deadline_seconds"])

    def _slippage(self, requested: int | None) -> int:
        return self.settings["slippage_bps"] if requested is None else requested

    def _token_usd_prices(
        self, key: PoolKey, state: PoolState, wmon_usd: float | None
    ) -> tuple[float | None, float | None]:
        prices: dict[str, float | None] = {
            WMON_TOKEN: wmon_usd,
            NATIVE_CURRENCY: wmon_usd,
        }
        if key == self.pool_key:
            prices[MOON_TOKEN] = base_usd_price(
                state, wmon_usd, base_is_token0=self.base_is_token0
            )
        return prices.get(key.currency0), prices.get(key.currency1)

    # ------------------------------------------------------------------ #
    # Pool and range planning
    # ------------------------------------------------------------------ #

    @status_tuple
    async def pool_overview(self) -> dict[str, Any]:
        state, wmon_usd = await asyncio.gather(
            self.get_pool_state(), self.subgraph.get_wmon_usd_price()
        )
        return {
            "poolId": pool_id(self.pool_key),
            "tick": state.tick,
            "sqrtPriceX96": str(state.sqrt_price_x96),
            "liquidity": str(state.liquidity),
            "tickSpacing": self.pool_key.tick_spacing,
            "wmonUsdPrice": wmon_usd,
            "moonUsdPrice": base_usd_price(
                state, wmon_usd, base_is_token0=self.base_is_token0
            ),
            "updatedAt": int(time.time()),
        }

    async def _plan(self, request: MintRequest) -> tuple[PoolState, DepositPlan]:
        state, wmon_usd = await self._market()
        tick_range = build_range_from_usd(
            request.range_lower_usd,
            request.range_upper_usd,
            wmon_usd,
            self.pool_key.tick_spacing,
            strategy=self.strategy,
            base_is_token0=self.base_is_token0,
        )
        plan = plan_deposit(
            state,
            tick_range,
            side=request.side,
            deposit_asset=request.single_deposit_asset,
            amount=request.single_amount or 0,
            base_amount=request.base_amount or 0,
            quote_amount=request.quote_amount or 0,
            direction=request.direction,
            base_is_token0=self.base_is_token0,
        )
        self.logger.debug(
            f"Planned range {tick_range.tick_lower}..{tick_range.tick_upper} "
            f"at tick {state.tick} (wmon_usd={wmon_usd})"
        )
        return state, plan

    @status_tuple
    async def plan_range(self, request: MintRequest | dict[str, Any]) -> dict[str, Any]:
        req = parse_request(MintRequest, request)
        state, plan = await self._plan(req)
        return {**plan.to_dict(), "currentTick": state.tick}

    # ------------------------------------------------------------------ #
    # Call builders
    # ------------------------------------------------------------------ #

    @status_tuple
    async def build_mint(self, request: MintRequest | dict[str, Any]) -> dict[str, Any]:
        req = parse_request(MintRequest, request)
        state, plan = await self._plan(req)
        position = build_position(state, plan.tick_range, plan.amount0, plan.amount1)
        call = mint_call_parameters(
            position,
            self.pool_key,
            recipient=req.recipient,
            slippage_bps=self._slippage(req.slippage_bps),
            deadline_ts=self._deadline(),
        )
        return {
            **plan.to_dict(),
            **position.to_dict(),
            "transaction": call.to_dict(),
        }

    @status_tuple
    async def build_claim(self, request: ClaimRequest | dict[str, Any]) -> dict[str, Any]:
        req = parse_request(ClaimRequest, request)
        preset = self.settings["backstop_preset"]
        tick_range = TickRange(int(preset["tick_lower"]), int(preset["tick_upper"]))
        state = await self.get_pool_state()
        position = build_position_from_amount1(state, tick_range, req.amount)
        call = mint_call_parameters(
            position,
            self.pool_key,
            recipient=req.recipient,
            slippage_bps=req.slippage_bps,
            deadline_ts=self._deadline(),
        )
        return {
            "preset": req.preset,
            **position.to_dict(),
            "transaction": call.to_dict(),
        }

    async def _position_with_state(self, token_id: int) -> tuple[PositionDetails, PoolState]:
        details = await self.get_position_details(token_id)
        state = await self.get_pool_state(details.pool_key)
        return details, state

    @status_tuple
    async def build_increase(
        self, request: IncreaseRequest | dict[str, Any]
    ) -> dict[str, Any]:
        req = parse_request(IncreaseRequest, request)
        details, state = await self._position_with_state(req.token_id)
        position = build_position(
            state,
            TickRange(details.tick_lower, details.tick_upper),
            req.amount0 or 0,
            req.amount1 or 0,
        )
        call = increase_call_parameters(
            details.token_id,
            position,
            details.pool_key,
            recipient=req.recipient or MSG_SENDER,
            slippage_bps=self._slippage(req.slippage_bps),
            deadline_ts=self._deadline(),
        )
        return {
            "tokenId": str(details.token_id),
            **position.to_dict(),
            "transaction": call.to_dict(),
        }

    @status_tuple
    async def build_collect(self, request: CollectRequest | dict[str, Any]) -> dict[str, Any]:
        req = parse_request(CollectRequest, request)
        details = await self.get_position_details(req.token_id)
        call = collect_call_parameters(
            details.token_id,
            details.pool_key,
            recipient=req.recipient,
            deadline_ts=self._deadline(),
        )
        return {"tokenId": str(details.token_id), "transaction": call.to_dict()}

    @status_tuple
    async def build_compound(
        self, request: CompoundRequest | dict[str, Any]
    ) -> dict[str, Any]:
        req = parse_request(CompoundRequest, request)
        details, state = await self._position_with_state(req.token_id)
        position = build_position(
            state,
            TickRange(details.tick_lower, details.tick_upper),
            req.amount0 or 0,
            req.amount1 or 0,
        )
        call = compound_call_parameters(
            details.token_id,
            position,
            details.pool_key,
            recipient=req.recipient,
            slippage_bps=self._slippage(req.slippage_bps),
            deadline_ts=self._deadline(),
        )
        return {
            "tokenId": str(details.token_id),
            **position.to_dict(),
            "transaction": call.to_dict(),
        }

    @status_tuple
    async def build_remove(self, request: RemoveRequest | dict[str, Any]) -> dict[str, Any]:
        req = parse_request(RemoveRequest, request)
        details, state = await self._position_with_state(req.token_id)
        amounts = position_from_liquidity(details, state)
        call = remove_call_parameters(
            amounts,
            recipient=req.recipient,
            percentage=req.percentage,
            burn=bool(req.burn),
            slippage_bps=req.slippage_bps,
            deadline_ts=self._deadline(),
        )
        return {
            **amounts.to_dict(),
            "percentageToRemove": req.percentage,
            "burnToken": bool(req.burn),
            "transaction": call.to_dict(),
        }

    # ------------------------------------------------------------------ #
    # Fees and positions
    # ------------------------------------------------------------------ #

    @status_tuple
    async def get_position_fees(self, token_id: int | str) -> dict[str, Any]:
        details, state = await self._position_with_state(parse_token_id(token_id))
        key = details.pool_key
        (fg0, fg1), metadata0, metadata1, wmon_usd = await asyncio.gather(
            self.get_fee_growth_inside(key, details.tick_lower, details.tick_upper),
            self.get_token_metadata(key.currency0),
            self.get_token_metadata(key.currency1),
            self.subgraph.get_wmon_usd_price(),
        )
        accrual = compute_fees(details, fg0, fg1)
        price0, price1 = self._token_usd_prices(key, state, wmon_usd)
        valuation = value_fees_usd(accrual, metadata0, metadata1, price0, price1)
        return {
            "tokenId": str(details.token_id),
            "liquidity": str(details.liquidity),
            "token0": metadata0.to_dict(),
            "token1": metadata1.to_dict(),
            **accrual.to_dict(),
            **valuation.to_dict(),
        }

    @status_tuple
    async def get_many_position_fees(
        self, token_ids: list[int | str]
    ) -> list[dict[str, Any]]:
        results = await asyncio.gather(
            *(self.get_position_fees(token_id) for token_id in token_ids)
        )
        items = []
        for token_id, (ok, payload) in zip(token_ids, results, strict=True):
            item: dict[str, Any] = {"tokenId": str(token_id), "ok": ok}
            item["result" if ok else "error"] = payload
            items.append(item)
        return items

    @status_tuple
    async def get_positions_with_amounts(self, owner: str) -> dict[str, Any]:
        if not isinstance(owner, str) or not is_address(owner):
            raise LiquidityError("invalid_owner", owner=str(owner))
        owner = to_checksum_address(owner)

        onchain_count, (token_ids, indexer_available) = await asyncio.gather(
            self._position_count(owner), self._indexed_position_ids(owner)
        )
        details = await asyncio.gather(
            *(self.get_position_details(token_id) for token_id in token_ids)
        )

        states: dict[str, PoolState] = {}
        positions = []
        for item in details:
            pid = pool_id(item.pool_key)
            if pid not in states:
                states[pid] = await self.get_pool_state(item.pool_key)
            positions.append(position_from_liquidity(item, states[pid]).to_dict())

        return {
            "owner": owner,
            "hasLpNft": onchain_count > 0 or bool(token_ids),
            "hasLpFromOnchain": onchain_count > 0,
            "hasLpFromSubgraph": bool(token_ids),
            "indexerAvailable": indexer_available,
            "indexerPositionCount": len(token_ids),
            "positions": positions,
        }

    async def close(self) -> None:
        if self._owns_subgraph:
            await self.subgraph.close()
