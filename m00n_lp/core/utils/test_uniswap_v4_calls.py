from __future__ import annotations

import time

import pytest
from eth_abi import decode as abi_decode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from m00n_lp.core.constants import ZERO_ADDRESS
from m00n_lp.core.constants.base import MAX_UINT128
from m00n_lp.core.constants.contracts import POSITION_MANAGER, WMON_TOKEN
from m00n_lp.core.errors import LiquidityError
from m00n_lp.core.utils.liquidity_planner import (
    TickRange,
    build_position,
    position_from_liquidity,
)
from m00n_lp.core.utils.uniswap_v4_calls import (
    Actions,
    V4PositionPlanner,
    amount_max_with_slippage,
    amount_min_with_slippage,
    collect_call_parameters,
    compound_call_parameters,
    deadline,
    increase_call_parameters,
    mint_call_parameters,
    remove_call_parameters,
)
from m00n_lp.core.utils.uniswap_v4_math import sqrt_price_x96_from_tick
from m00n_lp.core.utils.uniswap_v4_positions import (
    PoolKey,
    PoolState,
    PositionDetails,
    moon_pool_key,
)

ONE = 10**18
RECIPIENT = to_checksum_address("0x" + "ab" * 20)
DEADLINE = 1_900_000_000
MINT_TYPES = [
    "(address,address,uint24,int24,address)",
    "int24",
    "int24",
    "uint256",
    "uint128",
    "uint128",
    "address",
    "bytes",
]
LIQUIDITY_TYPES = ["uint256", "uint256", "uint128", "uint128", "bytes"]


def _decode_call(data: str) -> tuple[list[int], list[bytes], int]:
    assert data.startswith("0xdd46508f")
    unlock_data, deadline_ts = abi_decode(["bytes", "uint256"], bytes.fromhex(data[10:]))
    actions, params = abi_decode(["bytes", "bytes[]"], unlock_data)
    return list(actions), list(params), deadline_ts


def _state(tick: int) -> PoolState:
    return PoolState(sqrt_price_x96_from_tick(tick), tick, 10**24)


def _details(liquidity: int = 10**20) -> PositionDetails:
    return PositionDetails(
        token_id=7,
        pool_key=moon_pool_key(),
        tick_lower=-2000,
        tick_upper=2000,
        liquidity=liquidity,
        fee_growth_inside0_last_x128=0,
        fee_growth_inside1_last_x128=0,
    )


def _native_key() -> PoolKey:
    return PoolKey.build(
        ZERO_ADDRESS, WMON_TOKEN, fee=3000, tick_spacing=60, hooks=ZERO_ADDRESS
    )


class TestSlippage:
    def test_amount_max(self):
        assert amount_max_with_slippage(1_000, 500) == 1_050
        assert amount_max_with_slippage(999, 500) == 1_048

    @pytest.mark.parametrize("amount", [0, 1, 17, 10**6, 123 * ONE + 7])
    @pytest.mark.parametrize("bps", [0, 1, 50, 500, 10_000])
    def test_amount_max_never_below_desired(self, amount, bps):
        result = amount_max_with_slippage(amount, bps)
        assert result >= amount
        if bps == 0:
            assert result == amount

    def test_amount_max_clamps_to_uint128(self):
        assert amount_max_with_slippage(MAX_UINT128, 500) == MAX_UINT128

    def test_amount_max_rejects_negative_bps(self):
        with pytest.raises(LiquidityError) as exc:
            amount_max_with_slippage(100, -1)
        assert exc.value.code == "invalid_slippage"

    def test_amount_min(self):
        assert amount_min_with_slippage(10_000, 30) == 9_970
        assert amount_min_with_slippage(10_000, 0) == 10_000
        assert amount_min_with_slippage(10_000, 10_000) == 0
        assert amount_min_with_slippage(10_000, 20_000) == 0


class TestDeadline:
    def test_fixed_clock(self):
        assert deadline(600, now=1_000.9) == 1_600

    def test_default_window(self):
        before = int(time.time())
        d = deadline()
        after = int(time.time())
        assert before + 600 <= d <= after + 600


class TestPlanner:
    def test_selector(self):
        selector = function_signature_to_4byte_selector("modifyLiquidities(bytes,uint256)")
        assert selector.hex() == "dd46508f"

    def test_finalize_orders_actions(self):
        planner = V4PositionPlanner()
        planner.add_decrease(1, 0, 0, 0)
        planner.add_close_currency(WMON_TOKEN)
        actions, params = abi_decode(["bytes", "bytes[]"], planner.finalize())
        assert list(actions) == [Actions.DECREASE_LIQUIDITY, Actions.CLOSE_CURRENCY]
        assert len(params) == 2
        (currency,) = abi_decode(["address"], params[1])
        assert currency.lower() == WMON_TOKEN.lower()

    def test_action_codes(self):
        assert Actions.SETTLE_PAIR == 0x0D
        assert Actions.TAKE_PAIR == 0x11
        assert Actions.CLOSE_CURRENCY == 0x12
        assert Actions.SWEEP == 0x14


class TestMint:
    def test_mint_and_settle(self):
        key = moon_pool_key()
        position = build_position(_state(0), TickRange(-2000, 2000), ONE, ONE)
        payload = mint_call_parameters(
            position, key, recipient=RECIPIENT, slippage_bps=500, deadline_ts=DEADLINE
        )
        assert payload.to == POSITION_MANAGER
        assert payload.value == 0

        actions, params, deadline_ts = _decode_call(payload.data)
        assert actions == [Actions.MINT_POSITION, Actions.SETTLE_PAIR]
        assert deadline_ts == DEADLINE

        decoded = abi_decode(MINT_TYPES, params[0])
        pool_key, tick_lower, tick_upper, liquidity, max0, max1, recipient, hook = decoded
        assert pool_key[0].lower() == key.currency0.lower()
        assert int(pool_key[2]) == key.fee
        assert (tick_lower, tick_upper) == (-2000, 2000)
        assert liquidity == position.liquidity
        assert max0 == amount_max_with_slippage(position.amount0, 500)
        assert max1 == amount_max_with_slippage(position.amount1, 500)
        assert recipient.lower() == RECIPIENT.lower()
        assert hook == b""

    def test_native_currency_attaches_value(self):
        key = _native_key()
        position = build_position(_state(0), TickRange(-600, 600), ONE, ONE)
        payload = mint_call_parameters(
            position, key, recipient=RECIPIENT, slippage_bps=100, deadline_ts=DEADLINE
        )
        actions, params, _ = _decode_call(payload.data)
        assert actions == [Actions.MINT_POSITION, Actions.SETTLE_PAIR, Actions.SWEEP]
        assert payload.value == amount_max_with_slippage(position.amount0, 100)
        assert payload.to_dict()["value"] == str(payload.value)


class TestExistingPositionCalls:
    def test_increase(self):
        key = moon_pool_key()
        position = build_position(_state(0), TickRange(-2000, 2000), ONE, ONE)
        payload = increase_call_parameters(
            7,
            position,
            key,
            recipient=RECIPIENT,
            slippage_bps=500,
            deadline_ts=DEADLINE,
        )
        actions, params, _ = _decode_call(payload.data)
        assert actions == [Actions.INCREASE_LIQUIDITY, Actions.SETTLE_PAIR]
        token_id, liquidity, max0, max1, _hook = abi_decode(LIQUIDITY_TYPES, params[0])
        assert token_id == 7
        assert liquidity == position.liquidity
        assert max0 >= position.amount0
        assert max1 >= position.amount1
        assert payload.value == 0

    def test_collect_uses_zero_liquidity_and_zero_mins(self):
        key = moon_pool_key()
        payload = collect_call_parameters(
            7, key, recipient=RECIPIENT, deadline_ts=DEADLINE
        )
        actions, params, deadline_ts = _decode_call(payload.data)
        assert actions == [Actions.DECREASE_LIQUIDITY, Actions.TAKE_PAIR]
        assert abi_decode(LIQUIDITY_TYPES, params[0]) == (7, 0, 0, 0, b"")
        c0, c1, recipient = abi_decode(["address", "address", "address"], params[1])
        assert c0.lower() == key.currency0.lower()
        assert c1.lower() == key.currency1.lower()
        assert recipient.lower() == RECIPIENT.lower()
        assert deadline_ts == DEADLINE
        assert payload.value == 0

    def test_compound_is_one_batch(self):
        key = moon_pool_key()
        position = build_position(_state(0), TickRange(-2000, 2000), ONE, ONE)
        payload = compound_call_parameters(
            7,
            position,
            key,
            recipient=RECIPIENT,
            slippage_bps=500,
            deadline_ts=DEADLINE,
        )
        actions, params, _ = _decode_call(payload.data)
        assert actions == [
            Actions.DECREASE_LIQUIDITY,
            Actions.INCREASE_LIQUIDITY,
            Actions.TAKE_PAIR,
        ]
        assert abi_decode(LIQUIDITY_TYPES, params[0])[1] == 0
        assert abi_decode(LIQUIDITY_TYPES, params[1])[1] == position.liquidity
        c0, c1, recipient = abi_decode(["address", "address", "address"], params[2])
        assert c0.lower() == key.currency0.lower()
        assert c1.lower() == key.currency1.lower()
        assert recipient.lower() == RECIPIENT.lower()
        assert payload.value == 0

    def test_compound_leftover_follows_recipient(self):
        key = moon_pool_key()
        position = build_position(_state(0), TickRange(-2000, 2000), ONE, ONE)
        datas = [
            compound_call_parameters(
                7,
                position,
                key,
                recipient=to_checksum_address(recipient),
                slippage_bps=500,
                deadline_ts=DEADLINE,
            ).data
            for recipient in ("0x" + "ab" * 20, "0x" + "ef" * 20)
        ]
        assert datas[0] != datas[1]

    def test_compound_native_pool_attaches_no_value(self):
        key = _native_key()
        position = build_position(_state(0), TickRange(-600, 600), ONE, ONE)
        payload = compound_call_parameters(
            7,
            position,
            key,
            recipient=RECIPIENT,
            slippage_bps=100,
            deadline_ts=DEADLINE,
        )
        actions, _, _ = _decode_call(payload.data)
        assert Actions.SWEEP not in actions
        assert payload.value == 0

    def test_remove_partial(self):
        amounts = position_from_liquidity(_details(), _state(0))
        payload = remove_call_parameters(
            amounts,
            recipient=RECIPIENT,
            percentage=50,
            burn=False,
            slippage_bps=50,
            deadline_ts=DEADLINE,
        )
        actions, params, _ = _decode_call(payload.data)
        assert actions == [Actions.DECREASE_LIQUIDITY, Actions.TAKE_PAIR]
        token_id, liquidity, min0, min1, _hook = abi_decode(LIQUIDITY_TYPES, params[0])
        assert token_id == 7
        assert liquidity == 10**20 // 2
        assert 0 < min0 <= amounts.amount0 // 2
        assert 0 < min1 <= amounts.amount1 // 2

    def test_remove_with_burn(self):
        amounts = position_from_liquidity(_details(), _state(0))
        payload = remove_call_parameters(
            amounts,
            recipient=RECIPIENT,
            percentage=100,
            burn=True,
            slippage_bps=50,
            deadline_ts=DEADLINE,
        )
        actions, params, _ = _decode_call(payload.data)
        assert actions == [Actions.BURN_POSITION, Actions.TAKE_PAIR]
        token_id, min0, min1, _hook = abi_decode(
            ["uint256", "uint128", "uint128", "bytes"], params[0]
        )
        assert token_id == 7
        assert min0 == amount_min_with_slippage(amounts.amount0, 50)
        assert min1 == amount_min_with_slippage(amounts.amount1, 50)

    @pytest.mark.parametrize("percentage,burn", [(0, False), (101, False), (50, True)])
    def test_remove_rejects_bad_percentage(self, percentage, burn):
        amounts = position_from_liquidity(_details(), _state(0))
        with pytest.raises(LiquidityError) as exc:
            remove_call_parameters(
                amounts,
                recipient=RECIPIENT,
                percentage=percentage,
                burn=burn,
                slippage_bps=50,
                deadline_ts=DEADLINE,
            )
        assert exc.value.code == "invalid_percentage"

    def test_remove_empty_position(self):
        amounts = position_from_liquidity(_details(liquidity=0), _state(0))
        with pytest.raises(LiquidityError) as exc:
            remove_call_parameters(
                amounts,
                recipient=RECIPIENT,
                percentage=100,
                burn=True,
                slippage_bps=50,
                deadline_ts=DEADLINE,
            )
        assert exc.value.code == "no_liquidity"
