"""Uniswap v4 tick/price math.

Floating point is confined to price/ratio helpers (``price_to_tick``,
``tick_to_price``, ``sqrt_price_x96_to_price``). Everything that produces a
token amount or a liquidity value is exact integer arithmetic mirroring the
protocol's TickMath / SqrtPriceMath / LiquidityAmounts libraries.
"""

from __future__ import annotations

import math
from typing import Literal

from m00n_lp.core.constants.base import MAX_UINT256

Q96 = 1 << 96
Q128 = 1 << 128
Q32 = 1 << 32
TICK_BASE = 1.0001
LOG_TICK_BASE = math.log(TICK_BASE)

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_PRICE = 4295128739
MAX_SQRT_PRICE = 1461446703485210103287273052203988822378723970342

RangeStatus = Literal["below-range", "in-range", "above-range"]


def price_to_tick(ratio: float) -> float:
    """Real-valued tick for a token1/token0 ratio. Callers truncate."""
    if not math.isfinite(ratio) or ratio <= 0:
        raise ValueError(f"price ratio must be positive and finite, got {ratio}")
    return math.log(ratio) / LOG_TICK_BASE


def tick_to_price(tick: int) -> float:
    return TICK_BASE**tick


def snap_down(tick: int, spacing: int) -> int:
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    return (tick // spacing) * spacing


def snap_up(tick: int, spacing: int) -> int:
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    return -((-tick) // spacing) * spacing


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> float:
    if sqrt_price_x96 <= 0:
        return 0.0
    return (sqrt_price_x96 / Q96) ** 2


def sqrt_price_x96_from_tick(tick: int) -> int:
    if tick < MIN_TICK or tick > MAX_TICK:
        raise ValueError(f"tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]")

    abs_tick = tick if tick >= 0 else -tick
    ratio = 0x100000000000000000000000000000000

    if abs_tick & 0x1:
        ratio = (ratio * 0xFFFCB933BD6FAD37AA2D162D1A594001) >> 128
    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 -> Q64.96, rounding up
    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return int(sqrt_price_x96)


def mul_div(a: int, b: int, denominator: int) -> int:
    if denominator == 0:
        raise ZeroDivisionError("mul_div division by zero")
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    if denominator == 0:
        raise ZeroDivisionError("mul_div division by zero")
    return -((-(a * b)) // denominator)


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    return (sqrt_a, sqrt_b) if sqrt_a <= sqrt_b else (sqrt_b, sqrt_a)


def amount0_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a <= 0:
        raise ValueError("sqrt price must be positive")
    numerator1 = liquidity << 96
    numerator2 = b - a
    if round_up:
        return -((-mul_div_rounding_up(numerator1, numerator2, b)) // a)
    return mul_div(numerator1, numerator2, b) // a


def amount1_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if round_up:
        return mul_div_rounding_up(liquidity, b - a, Q96)
    return mul_div(liquidity, b - a, Q96)


def max_liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    return (amount0 * a * b) // (Q96 * (b - a))


def max_liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    return (amount1 * Q96) // (b - a)


def max_liquidity_for_amounts(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, amount0: int, amount1: int
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if sqrt_p <= a:
        return max_liquidity_for_amount0(a, b, amount0)
    if sqrt_p < b:
        liquidity0 = max_liquidity_for_amount0(sqrt_p, b, amount0)
        liquidity1 = max_liquidity_for_amount1(a, sqrt_p, amount1)
        return min(liquidity0, liquidity1)
    return max_liquidity_for_amount1(a, b, amount1)


def amounts_for_liquidity(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, liquidity: int
) -> tuple[int, int]:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if sqrt_p <= a:
        return amount0_delta(a, b, liquidity, False), 0
    if sqrt_p < b:
        return (
            amount0_delta(sqrt_p, b, liquidity, False),
            amount1_delta(a, sqrt_p, liquidity, False),
        )
    return 0, amount1_delta(a, b, liquidity, False)


def range_status(current_tick: int, tick_lower: int, tick_upper: int) -> RangeStatus:
    if current_tick < tick_lower:
        return "below-range"
    if current_tick > tick_upper:
        return "above-range"
    return "in-range"


def _signed_int24(raw: int) -> int:
    return raw - 0x1000000 if raw >= 0x800000 else raw


def decode_position_info(packed: int) -> tuple[int, int, bool]:
    """Unpack PositionManager ``PositionInfo``: ``(tick_lower, tick_upper, has_subscriber)``."""
    value = int(packed)
    tick_lower = _signed_int24((value >> 8) & 0xFFFFFF)
    tick_upper = _signed_int24((value >> 32) & 0xFFFFFF)
    has_subscriber = (value & 0xFF) != 0
    return tick_lower, tick_upper, has_subscriber
