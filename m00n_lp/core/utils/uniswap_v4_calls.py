from __future__ import annotations

import time
from dataclasses import dataclass
from enum import IntEnum
from functools import lru_cache
from typing import Any

from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address
from web3 import Web3

from m00n_lp.core.constants import EMPTY_HOOK_DATA, NATIVE_CURRENCY
from m00n_lp.core.constants.base import (
    BPS_DENOMINATOR,
    DEFAULT_DEADLINE_SECONDS,
    MAX_UINT128,
)
from m00n_lp.core.constants.contracts import POSITION_MANAGER
from m00n_lp.core.constants.uniswap_v4_abi import POSITION_MANAGER_ABI
from m00n_lp.core.errors import LiquidityError
from m00n_lp.core.utils.liquidity_planner import Position, PositionAmounts
from m00n_lp.core.utils.uniswap_v4_math import (
    amounts_for_liquidity,
    sqrt_price_x96_from_tick,
)
from m00n_lp.core.utils.uniswap_v4_positions import PoolKey


# v4-periphery/src/libraries/Actions.sol
class Actions(IntEnum):
    INCREASE_LIQUIDITY = 0x00
    DECREASE_LIQUIDITY = 0x01
    MINT_POSITION = 0x02
    BURN_POSITION = 0x03
    SETTLE_PAIR = 0x0D
    TAKE_PAIR = 0x11
    CLOSE_CURRENCY = 0x12
    SWEEP = 0x14


_POOL_KEY_TYPE = "(address,address,uint24,int24,address)"


def amount_max_with_slippage(amount: int, slippage_bps: int) -> int:
    if slippage_bps < 0:
        raise LiquidityError("invalid_slippage", slippageBps=slippage_bps)
    value = (int(amount) * (BPS_DENOMINATOR + int(slippage_bps))) // BPS_DENOMINATOR
    return min(max(value, 0), MAX_UINT128)


def amount_min_with_slippage(amount: int, slippage_bps: int) -> int:
    if slippage_bps < 0:
        raise LiquidityError("invalid_slippage", slippageBps=slippage_bps)
    factor = max(BPS_DENOMINATOR - int(slippage_bps), 0)
    value = (int(amount) * factor) // BPS_DENOMINATOR
    return min(max(value, 0), MAX_UINT128)


def deadline(seconds: int = DEFAULT_DEADLINE_SECONDS, now: float | None = None) -> int:
    base = time.time() if now is None else now
    return int(base) + int(seconds)


class V4PositionPlanner:
    """Accumulates PositionManager actions and their ABI-encoded params."""

    def __init__(self) -> None:
        self.actions: list[Actions] = []
        self.params: list[bytes] = []

    def _add(self, action: Actions, types: list[str], values: list[Any]) -> None:
        self.actions.append(action)
        self.params.append(abi_encode(types, values))

    def add_mint(
        self,
        pool_key: PoolKey,
        tick_lower: int,
        tick_upper: int,
        liquidity: int,
        amount0_max: int,
        amount1_max: int,
        recipient: str,
        hook_data: bytes = EMPTY_HOOK_DATA,
    ) -> None:
        self._add(
            Actions.MINT_POSITION,
            [
                _POOL_KEY_TYPE,
                "int24",
                "int24",
                "uint256",
                "uint128",
                "uint128",
                "address",
                "bytes",
            ],
            [
                pool_key.as_tuple(),
                int(tick_lower),
                int(tick_upper),
                int(liquidity),
                int(amount0_max),
                int(amount1_max),
                to_checksum_address(recipient),
                bytes(hook_data),
            ],
        )

    def add_increase(
        self,
        token_id: int,
        liquidity: int,
        amount0_max: int,
        amount1_max: int,
        hook_data: bytes = EMPTY_HOOK_DATA,
    ) -> None:
        self._add(
            Actions.INCREASE_LIQUIDITY,
            ["uint256", "uint256", "uint128", "uint128", "bytes"],
            [
                int(token_id),
                int(liquidity),
                int(amount0_max),
                int(amount1_max),
                bytes(hook_data),
            ],
        )

    def add_decrease(
        self,
        token_id: int,
        liquidity: int,
        amount0_min: int,
        amount1_min: int,
        hook_data: bytes = EMPTY_HOOK_DATA,
    ) -> None:
        self._add(
            Actions.DECREASE_LIQUIDITY,
            ["uint256", "uint256", "uint128", "uint128", "bytes"],
            [
                int(token_id),
                int(liquidity),
                int(amount0_min),
                int(amount1_min),
                bytes(hook_data),
            ],
        )

    def add_burn(
        self,
        token_id: int,
        amount0_min: int,
        amount1_min: int,
        hook_data: bytes = EMPTY_HOOK_DATA,
    ) -> None:
        self._add(
            Actions.BURN_POSITION,
            ["uint256", "uint128", "uint128", "bytes"],
            [int(token_id), int(amount0_min), int(amount1_min), bytes(hook_data)],
        )

    def add_settle_pair(self, currency0: str, currency1: str) -> None:
        self._add(
            Actions.SETTLE_PAIR,
            ["address", "address"],
            [to_checksum_address(currency0), to_checksum_address(currency1)],
        )

    def add_take_pair(self, currency0: str, currency1: str, recipient: str) -> None:
        self._add(
            Actions.TAKE_PAIR,
            ["address", "address", "address"],
            [
                to_checksum_address(currency0),
                to_checksum_address(currency1),
                to_checksum_address(recipient),
            ],
        )

    def add_close_currency(self, currency: str) -> None:
        self._add(Actions.CLOSE_CURRENCY, ["address"], [to_checksum_address(currency)])

    def add_sweep(self, currency: str, recipient: str) -> None:
        self._add(
            Actions.SWEEP,
            ["address", "address"],
            [to_checksum_address(currency), to_checksum_address(recipient)],
        )

    def finalize(self) -> bytes:
        """``abi.encode(bytes actions, bytes[] params)`` for ``modifyLiquidities``."""
        actions = bytes(int(a) for a in self.actions)
        return abi_encode(["bytes", "bytes[]"], [actions, list(self.params)])


@dataclass(frozen=True)
class CallPayload:
    to: str
    data: str
    value: int

    def to_dict(self) -> dict[str, str]:
        return {"to": self.to, "data": self.data, "value": str(self.value)}


@lru_cache(maxsize=1)
def _position_manager():
    return Web3().eth.contract(address=POSITION_MANAGER, abi=POSITION_MANAGER_ABI)


def modify_liquidities_calldata(unlock_data: bytes, deadline_ts: int) -> str:
    data = _position_manager().encode_abi(
        "modifyLiquidities", args=[bytes(unlock_data), int(deadline_ts)]
    )
    return data if data.startswith("0x") else "0x" + data


def _payload(planner: V4PositionPlanner, deadline_ts: int, value: int = 0) -> CallPayload:
    return CallPayload(
        to=POSITION_MANAGER,
        data=modify_liquidities_calldata(planner.finalize(), deadline_ts),
        value=int(value),
    )


def _is_native(pool_key: PoolKey) -> bool:
    return pool_key.currency0 == NATIVE_CURRENCY


def mint_call_parameters(
    position: Position,
    pool_key: PoolKey,
    *,
    recipient: str,
    slippage_bps: int,
    deadline_ts: int,
    hook_data: bytes = EMPTY_HOOK_DATA,
) -> CallPayload:
    amount0_max = amount_max_with_slippage(position.amount0, slippage_bps)
    amount1_max = amount_max_with_slippage(position.amount1, slippage_bps)

    planner = V4PositionPlanner()
    planner.add_mint(
        pool_key,
        position.tick_range.tick_lower,
        position.tick_range.tick_upper,
        position.liquidity,
        amount0_max,
        amount1_max,
        recipient,
        hook_data,
    )
    planner.add_settle_pair(pool_key.currency0, pool_key.currency1)

    value = 0
    if _is_native(pool_key):
        planner.add_sweep(pool_key.currency0, recipient)
        value = amount0_max
    return _payload(planner, deadline_ts, value)


def increase_call_parameters(
    token_id: int,
    position: Position,
    pool_key: PoolKey,
    *,
    recipient: str,
    slippage_bps: int,
    deadline_ts: int,
    hook_data: bytes = EMPTY_HOOK_DATA,
) -> CallPayload:
    amount0_max = amount_max_with_slippage(position.amount0, slippage_bps)
    amount1_max = amount_max_with_slippage(position.amount1, slippage_bps)

    planner = V4PositionPlanner()
    planner.add_increase(token_id, position.liquidity, amount0_max, amount1_max, hook_data)
    planner.add_settle_pair(pool_key.currency0, pool_key.currency1)

    value = 0
    if _is_native(pool_key):
        planner.add_sweep(pool_key.currency0, recipient)
        value = amount0_max
    return _payload(planner, deadline_ts, value)


def collect_call_parameters(
    token_id: int,
    pool_key: PoolKey,
    *,
    recipient: str,
    deadline_ts: int,
    hook_data: bytes = EMPTY_HOOK_DATA,
) -> CallPayload:
    # a zero-liquidity decrease settles accrued fees into the position's deltas
    planner = V4PositionPlanner()
    planner.add_decrease(token_id, 0, 0, 0, hook_data)
    planner.add_take_pair(pool_key.currency0, pool_key.currency1, recipient)
    return _payload(planner, deadline_ts)


def compound_call_parameters(
    token_id: int,
    position: Position,
    pool_key: PoolKey,
    *,
    recipient: str,
    slippage_bps: int,
    deadline_ts: int,
    hook_data: bytes = EMPTY_HOOK_DATA,
) -> CallPayload:
    amount0_max = amount_max_with_slippage(position.amount0, slippage_bps)
    amount1_max = amount_max_with_slippage(position.amount1, slippage_bps)

    # fees credited by the zero decrease pay for the increase; the leftover
    # credit goes to the recipient, and a shortfall reverts
    planner = V4PositionPlanner()
    planner.add_decrease(token_id, 0, 0, 0, hook_data)
    planner.add_increase(token_id, position.liquidity, amount0_max, amount1_max, hook_data)
    planner.add_take_pair(pool_key.currency0, pool_key.currency1, recipient)
    return _payload(planner, deadline_ts)


def remove_call_parameters(
    position: PositionAmounts,
    *,
    recipient: str,
    percentage: int,
    burn: bool,
    slippage_bps: int,
    deadline_ts: int,
    hook_data: bytes = EMPTY_HOOK_DATA,
) -> CallPayload:
    details = position.details
    if not 1 <= int(percentage) <= 100:
        raise LiquidityError("invalid_percentage", percentage=percentage)
    if burn and int(percentage) != 100:
        raise LiquidityError(
            "invalid_percentage",
            percentage=percentage,
            detail="burning requires removing all liquidity",
        )
    if details.liquidity <= 0:
        raise LiquidityError("no_liquidity", tokenId=str(details.token_id))

    liquidity = (details.liquidity * int(percentage)) // 100
    amount0, amount1 = amounts_for_liquidity(
        position.sqrt_price_x96,
        sqrt_price_x96_from_tick(details.tick_lower),
        sqrt_price_x96_from_tick(details.tick_upper),
        liquidity,
    )
    amount0_min = amount_min_with_slippage(amount0, slippage_bps)
    amount1_min = amount_min_with_slippage(amount1, slippage_bps)

    planner = V4PositionPlanner()
    if burn:
        planner.add_burn(details.token_id, amount0_min, amount1_min, hook_data)
    else:
        planner.add_decrease(
            details.token_id, liquidity, amount0_min, amount1_min, hook_data
        )
    planner.add_take_pair(
        details.pool_key.currency0, details.pool_key.currency1, recipient
    )
    return _payload(planner, deadline_ts)
