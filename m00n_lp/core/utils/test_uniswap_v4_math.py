from __future__ import annotations

import math

import pytest

from m00n_lp.core.utils.uniswap_v4_math import (
    MAX_SQRT_PRICE,
    MAX_TICK,
    MIN_SQRT_PRICE,
    MIN_TICK,
    Q96,
    amount0_delta,
    amount1_delta,
    amounts_for_liquidity,
    decode_position_info,
    max_liquidity_for_amount0,
    max_liquidity_for_amount1,
    max_liquidity_for_amounts,
    price_to_tick,
    range_status,
    snap_down,
    snap_up,
    sqrt_price_x96_from_tick,
    sqrt_price_x96_to_price,
    tick_to_price,
)


def _pack_info(tick_lower: int, tick_upper: int, subscriber: int = 0) -> int:
    return (
        ((tick_upper & 0xFFFFFF) << 32) | ((tick_lower & 0xFFFFFF) << 8) | subscriber
    )


class TestPriceTick:
    @pytest.mark.parametrize("ratio", [1e-12, 0.0003, 1.0, 2.5, 1234.5678, 1e9])
    def test_round_trip(self, ratio):
        assert math.isclose(tick_to_price(price_to_tick(ratio)), ratio, rel_tol=1e-9)

    def test_unit_ratio_is_tick_zero(self):
        assert price_to_tick(1.0) == 0.0
        assert tick_to_price(0) == 1.0

    @pytest.mark.parametrize("ratio", [0.0, -1.0, float("nan"), float("inf")])
    def test_rejects_invalid_ratio(self, ratio):
        with pytest.raises(ValueError):
            price_to_tick(ratio)


class TestSnapping:
    @pytest.mark.parametrize("tick", [-1001, -200, -1, 0, 1, 199, 200, 201, 87_654])
    @pytest.mark.parametrize("spacing", [1, 10, 60, 200])
    def test_snap_bounds(self, tick, spacing):
        down = snap_down(tick, spacing)
        up = snap_up(tick, spacing)
        assert down <= tick <= up
        assert down % spacing == 0
        assert up % spacing == 0
        assert up - down <= spacing

    def test_negative_ticks(self):
        assert snap_down(-150, 200) == -200
        assert snap_up(-150, 200) == 0
        assert snap_down(-200, 200) == -200
        assert snap_up(-200, 200) == -200

    def test_rejects_non_positive_spacing(self):
        with pytest.raises(ValueError):
            snap_down(10, 0)
        with pytest.raises(ValueError):
            snap_up(10, -5)


class TestSqrtPrice:
    def test_tick_zero(self):
        assert sqrt_price_x96_from_tick(0) == Q96

    def test_bounds(self):
        assert sqrt_price_x96_from_tick(MIN_TICK) == MIN_SQRT_PRICE
        assert sqrt_price_x96_from_tick(MAX_TICK) == MAX_SQRT_PRICE

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            sqrt_price_x96_from_tick(MAX_TICK + 1)
        with pytest.raises(ValueError):
            sqrt_price_x96_from_tick(MIN_TICK - 1)

    def test_monotonic(self):
        ticks = [-887_272, -104_600, -200, -1, 0, 1, 200, 104_600, 887_272]
        values = [sqrt_price_x96_from_tick(t) for t in ticks]
        assert values == sorted(values)
        assert len(set(values)) == len(values)

    @pytest.mark.parametrize("tick", [-50_000, -200, 200, 50_000])
    def test_matches_float_price(self, tick):
        price = sqrt_price_x96_to_price(sqrt_price_x96_from_tick(tick))
        assert math.isclose(price, tick_to_price(tick), rel_tol=1e-9)

    def test_to_price_non_positive(self):
        assert sqrt_price_x96_to_price(0) == 0.0


class TestAmountDeltas:
    def test_amount1_exact(self):
        assert amount1_delta(Q96, 2 * Q96, 1000, False) == 1000
        assert amount1_delta(2 * Q96, Q96, 1000, True) == 1000

    def test_amount0_rounding(self):
        assert amount0_delta(Q96, 2 * Q96, 1000, False) == 500
        assert amount0_delta(Q96, 2 * Q96, 1001, False) == 500
        assert amount0_delta(Q96, 2 * Q96, 1001, True) == 501

    def test_amount1_rounding(self):
        a = Q96
        b = Q96 + Q96 // 3
        down = amount1_delta(a, b, 7, False)
        up = amount1_delta(a, b, 7, True)
        assert up == down + 1


class TestLiquidity:
    def test_single_token_formulas(self):
        assert max_liquidity_for_amount0(Q96, 2 * Q96, 500) == 1000
        assert max_liquidity_for_amount1(Q96, 2 * Q96, 1000) == 1000

    def test_below_range_uses_token0(self):
        liquidity = max_liquidity_for_amounts(Q96 // 2, Q96, 2 * Q96, 500, 10**30)
        assert liquidity == 1000

    def test_above_range_uses_token1(self):
        liquidity = max_liquidity_for_amounts(3 * Q96, Q96, 2 * Q96, 10**30, 1000)
        assert liquidity == 1000

    def test_in_range_takes_minimum(self):
        sqrt_p = (3 * Q96) // 2
        a, b = Q96, 2 * Q96
        big = 10**24
        limited_by_1 = max_liquidity_for_amounts(sqrt_p, a, b, big, 10**6)
        assert limited_by_1 == max_liquidity_for_amount1(a, sqrt_p, 10**6)
        limited_by_0 = max_liquidity_for_amounts(sqrt_p, a, b, 10**6, big)
        assert limited_by_0 == max_liquidity_for_amount0(sqrt_p, b, 10**6)

    def test_amounts_for_liquidity_sides(self):
        a, b = Q96, 2 * Q96
        amount0, amount1 = amounts_for_liquidity(Q96 // 2, a, b, 1000)
        assert (amount0, amount1) == (500, 0)
        amount0, amount1 = amounts_for_liquidity(3 * Q96, a, b, 1000)
        assert (amount0, amount1) == (0, 1000)

    def test_amounts_for_liquidity_in_range(self):
        sqrt_p = (3 * Q96) // 2
        amount0, amount1 = amounts_for_liquidity(sqrt_p, Q96, 2 * Q96, 10**18)
        assert amount0 > 0
        assert amount1 > 0


class TestPositionInfo:
    def test_decode_positive_ticks(self):
        assert decode_position_info(_pack_info(200, 4000)) == (200, 4000, False)

    def test_decode_negative_ticks(self):
        packed = _pack_info(-106_600, -104_600, subscriber=1)
        assert decode_position_info(packed) == (-106_600, -104_600, True)

    def test_decode_ignores_pool_id_bits(self):
        packed = (0xABCDEF << 56) | _pack_info(-200, 200)
        assert decode_position_info(packed) == (-200, 200, False)


class TestRangeStatus:
    def test_classification(self):
        assert range_status(-10, 0, 200) == "below-range"
        assert range_status(0, 0, 200) == "in-range"
        assert range_status(200, 0, 200) == "in-range"
        assert range_status(201, 0, 200) == "above-range"
