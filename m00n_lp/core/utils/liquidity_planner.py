"""Range construction, single-sided solving, position building and fee accrual.

Prices and ratios are floats; token amounts and liquidity are ints and never
pass through a float. "Base" is the priced token (m00n), "quote" is the token
prices are expressed in (WMON). Base-price ticks are ticks of quote-per-base;
pool ticks are ticks of token1-per-token0, so the two agree only when the base
token is ``currency0``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, DecimalException, localcontext
from typing import Any, Literal

from m00n_lp.core.constants.base import MAX_UINT128
from m00n_lp.core.constants.contracts import MOON_CIRCULATING_SUPPLY
from m00n_lp.core.errors import DirectionalRangeError, LiquidityError
from m00n_lp.core.utils.uniswap_v4_math import (
    Q128,
    RangeStatus,
    amount0_delta,
    amount1_delta,
    amounts_for_liquidity,
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
from m00n_lp.core.utils.uniswap_v4_positions import (
    PoolState,
    PositionDetails,
    TokenMetadata,
)

BoundUnit = Literal["price", "market_cap"]
DepositAsset = Literal["base", "quote"]
Direction = Literal["sky", "crash"]
Side = Literal["single", "double"]


@dataclass(frozen=True)
class TickRange:
    tick_lower: int
    tick_upper: int

    def __post_init__(self) -> None:
        if self.tick_lower >= self.tick_upper:
            raise ValueError(
                f"tick_lower must be below tick_upper: {self.tick_lower} >= {self.tick_upper}"
            )

    def to_dict(self) -> dict[str, int]:
        return {"tickLower": self.tick_lower, "tickUpper": self.tick_upper}


@dataclass(frozen=True)
class RangeStrategy:
    """How USD band inputs map to per-token prices.

    ``price`` bounds are already USD per base token. ``market_cap`` bounds are
    fully diluted valuations and are divided by ``circulating_supply``.
    """

    bound_unit: BoundUnit = "price"
    circulating_supply: float = float(MOON_CIRCULATING_SUPPLY)

    def __post_init__(self) -> None:
        if self.bound_unit not in ("price", "market_cap"):
            raise ValueError(f"unsupported bound unit: {self.bound_unit}")
        if not math.isfinite(self.circulating_supply) or self.circulating_supply <= 0:
            raise ValueError("circulating supply must be positive")

    @classmethod
    def from_settings(cls, settings: dict[str, Any] | None) -> RangeStrategy:
        settings = settings or {}
        return cls(
            bound_unit=settings.get("bound_unit", "price"),
            circulating_supply=float(
                settings.get("circulating_supply", MOON_CIRCULATING_SUPPLY)
            ),
        )

    def per_token_usd(self, bound: float) -> float:
        if self.bound_unit == "market_cap":
            return bound / self.circulating_supply
        return bound


@dataclass(frozen=True)
class SingleSidedPlan:
    base_amount: int
    quote_amount: int
    companion_solved: bool


@dataclass(frozen=True)
class DepositPlan:
    tick_range: TickRange
    base_amount: int
    quote_amount: int
    amount0: int
    amount1: int
    companion_solved: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.tick_range.to_dict(),
            "requiredBaseWei": str(self.base_amount),
            "requiredQuoteWei": str(self.quote_amount),
            "amount0Desired": str(self.amount0),
            "amount1Desired": str(self.amount1),
            "companionSolved": self.companion_solved,
        }


@dataclass(frozen=True)
class Position:
    pool_state: PoolState
    tick_range: TickRange
    liquidity: int
    amount0: int
    amount1: int

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.tick_range.to_dict(),
            "currentTick": self.pool_state.tick,
            "liquidity": str(self.liquidity),
            "amount0": str(self.amount0),
            "amount1": str(self.amount1),
        }


@dataclass(frozen=True)
class PositionAmounts:
    details: PositionDetails
    amount0: int
    amount1: int
    range_status: RangeStatus
    current_tick: int
    sqrt_price_x96: int

    def to_dict(self) -> dict[str, Any]:
        key = self.details.pool_key
        return {
            "tokenId": str(self.details.token_id),
            "tickLower": self.details.tick_lower,
            "tickUpper": self.details.tick_upper,
            "liquidity": str(self.details.liquidity),
            "poolKey": {
                "currency0": key.currency0,
                "currency1": key.currency1,
                "fee": key.fee,
                "tickSpacing": key.tick_spacing,
                "hooks": key.hooks,
            },
            "amount0": str(self.amount0),
            "amount1": str(self.amount1),
            "rangeStatus": self.range_status,
            "currentTick": self.current_tick,
            "sqrtPriceX96": str(self.sqrt_price_x96),
        }


@dataclass(frozen=True)
class FeeAccrual:
    lifetime0: int
    lifetime1: int
    unclaimed0: int
    unclaimed1: int

    def to_dict(self) -> dict[str, str]:
        return {
            "lifetime0Wei": str(self.lifetime0),
            "lifetime1Wei": str(self.lifetime1),
            "unclaimed0Wei": str(self.unclaimed0),
            "unclaimed1Wei": str(self.unclaimed1),
        }


@dataclass(frozen=True)
class FeeValuation:
    unclaimed_usd: float | None
    lifetime_usd: float | None

    def to_dict(self) -> dict[str, float | None]:
        return {"unclaimedUsd": self.unclaimed_usd, "lifetimeUsd": self.lifetime_usd}


# --------------------------------------------------------------------------- #
# Orientation
# --------------------------------------------------------------------------- #


def base_tick(pool_tick: int, base_is_token0: bool) -> int:
    return pool_tick if base_is_token0 else -pool_tick


def base_range(tick_range: TickRange, base_is_token0: bool) -> tuple[int, int]:
    if base_is_token0:
        return tick_range.tick_lower, tick_range.tick_upper
    return -tick_range.tick_upper, -tick_range.tick_lower


def base_price(pool_state: PoolState, base_is_token0: bool) -> float:
    """Raw quote-per-base price read from ``sqrtPriceX96``."""
    price = sqrt_price_x96_to_price(pool_state.sqrt_price_x96)
    if base_is_token0 or price == 0:
        return price
    return 1.0 / price


def base_usd_price(
    pool_state: PoolState,
    quote_usd_price: float | None,
    *,
    base_is_token0: bool = True,
    base_decimals: int = 18,
    quote_decimals: int = 18,
) -> float | None:
    if quote_usd_price is None:
        return None
    ratio = base_price(pool_state, base_is_token0) * 10 ** (
        base_decimals - quote_decimals
    )
    return ratio * quote_usd_price


def split_amounts(
    base_amount: int, quote_amount: int, base_is_token0: bool
) -> tuple[int, int]:
    if base_is_token0:
        return base_amount, quote_amount
    return quote_amount, base_amount


# --------------------------------------------------------------------------- #
# Range construction
# --------------------------------------------------------------------------- #


def build_range_from_usd(
    lower_usd: float,
    upper_usd: float,
    quote_usd_price: float,
    tick_spacing: int,
    *,
    strategy: RangeStrategy | None = None,
    base_is_token0: bool = True,
    base_decimals: int = 18,
    quote_decimals: int = 18,
) -> TickRange:
    strategy = strategy or RangeStrategy()
    context = {"rangeLowerUsd": lower_usd, "rangeUpperUsd": upper_usd}

    try:
        lo, hi = float(lower_usd), float(upper_usd)
    except (TypeError, ValueError) as exc:
        raise LiquidityError("invalid_range", **context) from exc
    if not (math.isfinite(lo) and math.isfinite(hi)) or lo <= 0 or hi <= 0 or lo == hi:
        raise LiquidityError("invalid_range", **context)
    lo, hi = min(lo, hi), max(lo, hi)

    if (
        quote_usd_price is None
        or not math.isfinite(quote_usd_price)
        or quote_usd_price <= 0
    ):
        raise LiquidityError("invalid_range", quoteUsdPrice=quote_usd_price, **context)

    scale = 10 ** (quote_decimals - base_decimals)
    lower_ratio = strategy.per_token_usd(lo) / quote_usd_price * scale
    upper_ratio = strategy.per_token_usd(hi) / quote_usd_price * scale
    for ratio in (lower_ratio, upper_ratio):
        if not math.isfinite(ratio) or ratio <= 0:
            raise LiquidityError(
                "invalid_range", quoteUsdPrice=quote_usd_price, **context
            )

    tick_lower = snap_down(math.floor(price_to_tick(lower_ratio)), tick_spacing)
    tick_upper = snap_up(math.floor(price_to_tick(upper_ratio)), tick_spacing)
    if tick_upper <= tick_lower:
        tick_upper = tick_lower + tick_spacing

    if base_is_token0:
        return TickRange(tick_lower, tick_upper)
    return TickRange(-tick_upper, -tick_lower)


def _directional_context(tick_range: TickRange, current_tick: int) -> dict[str, int]:
    return {"currentTick": current_tick, **tick_range.to_dict()}


def check_directional_range(
    direction: Direction,
    tick_range: TickRange,
    current_tick: int,
    *,
    base_is_token0: bool = True,
) -> None:
    lower, upper = base_range(tick_range, base_is_token0)
    current = base_tick(current_tick, base_is_token0)
    if direction == "sky":
        if not lower > current:
            raise DirectionalRangeError(
                "range_must_be_above_current",
                **_directional_context(tick_range, current_tick),
            )
    elif direction == "crash":
        if not upper < current:
            raise DirectionalRangeError(
                "range_must_be_below_current",
                **_directional_context(tick_range, current_tick),
            )
    else:
        raise LiquidityError("invalid_direction", direction=direction)


# --------------------------------------------------------------------------- #
# Single-sided solver
# --------------------------------------------------------------------------- #


def in_range_ratio(price_current: float, price_lower: float, price_upper: float) -> float:
    """amount1/amount0 (quote per base) a deposit needs at ``price_current``."""
    context = {
        "priceCurrent": price_current,
        "priceLower": price_lower,
        "priceUpper": price_upper,
    }
    prices = (price_current, price_lower, price_upper)
    if any(not math.isfinite(p) or p <= 0 for p in prices):
        raise LiquidityError("in_range_amount_calc_failed", **context)

    sqrt_p = math.sqrt(price_current)
    sqrt_pa = math.sqrt(price_lower)
    sqrt_pb = math.sqrt(price_upper)
    denominator = sqrt_pb - sqrt_p
    if denominator <= 0:
        raise LiquidityError("in_range_amount_calc_failed", **context)
    return sqrt_p * sqrt_pb * (sqrt_p - sqrt_pa) / denominator


def solve_companion_amount(amount: int, deposit_asset: DepositAsset, ratio: float) -> int:
    context = {"amount": str(amount), "depositAsset": deposit_asset, "ratio": ratio}
    try:
        with localcontext() as ctx:
            ctx.prec = 80
            dec_ratio = Decimal(ratio)
            if deposit_asset == "base":
                value = Decimal(int(amount)) * dec_ratio
            else:
                value = Decimal(int(amount)) / dec_ratio
            if not value.is_finite() or value <= 0:
                raise LiquidityError("in_range_amount_calc_failed", **context)
            companion = int(value.to_integral_value(rounding=ROUND_FLOOR))
    except DecimalException as exc:
        raise LiquidityError("in_range_amount_calc_failed", **context) from exc
    return max(1, companion)


def plan_single_sided(
    pool_state: PoolState,
    tick_range: TickRange,
    amount: int,
    deposit_asset: DepositAsset,
    *,
    base_is_token0: bool = True,
) -> SingleSidedPlan:
    lower, upper = base_range(tick_range, base_is_token0)
    current = base_tick(pool_state.tick, base_is_token0)

    if deposit_asset == "base":
        if current < lower:
            return SingleSidedPlan(int(amount), 0, False)
        if current > upper:
            raise DirectionalRangeError(
                "single_base_requires_range_above_spot",
                **_directional_context(tick_range, pool_state.tick),
            )
    elif deposit_asset == "quote":
        if current > upper:
            return SingleSidedPlan(0, int(amount), False)
        if current < lower:
            raise DirectionalRangeError(
                "single_quote_requires_range_below_spot",
                **_directional_context(tick_range, pool_state.tick),
            )
    else:
        raise LiquidityError("invalid_single_asset", singleDepositAsset=deposit_asset)

    ratio = in_range_ratio(
        base_price(pool_state, base_is_token0),
        tick_to_price(lower),
        tick_to_price(upper),
    )
    companion = solve_companion_amount(amount, deposit_asset, ratio)
    if deposit_asset == "base":
        return SingleSidedPlan(int(amount), companion, True)
    return SingleSidedPlan(companion, int(amount), True)


def plan_deposit(
    pool_state: PoolState,
    tick_range: TickRange,
    *,
    side: Side,
    deposit_asset: DepositAsset | None = None,
    amount: int = 0,
    base_amount: int = 0,
    quote_amount: int = 0,
    direction: Direction | None = None,
    base_is_token0: bool = True,
) -> DepositPlan:
    if direction is not None:
        check_directional_range(
            direction, tick_range, pool_state.tick, base_is_token0=base_is_token0
        )

    if side == "single":
        if deposit_asset is None:
            raise LiquidityError("invalid_single_asset", singleDepositAsset=None)
        plan = plan_single_sided(
            pool_state,
            tick_range,
            amount,
            deposit_asset,
            base_is_token0=base_is_token0,
        )
    elif side == "double":
        plan = SingleSidedPlan(int(base_amount), int(quote_amount), False)
    else:
        raise LiquidityError("invalid_side", side=side)

    amount0, amount1 = split_amounts(
        plan.base_amount, plan.quote_amount, base_is_token0
    )
    return DepositPlan(
        tick_range=tick_range,
        base_amount=plan.base_amount,
        quote_amount=plan.quote_amount,
        amount0=amount0,
        amount1=amount1,
        companion_solved=plan.companion_solved,
    )


# --------------------------------------------------------------------------- #
# Position builder
# --------------------------------------------------------------------------- #


def _build_context(
    pool_state: PoolState, tick_range: TickRange, amount0: int, amount1: int
) -> dict[str, Any]:
    return {
        **tick_range.to_dict(),
        "currentTick": pool_state.tick,
        "amount0": str(amount0),
        "amount1": str(amount1),
    }


def mint_amounts(
    pool_state: PoolState, tick_range: TickRange, liquidity: int
) -> tuple[int, int]:
    """Token amounts needed to mint ``liquidity``, rounded up."""
    sqrt_lower = sqrt_price_x96_from_tick(tick_range.tick_lower)
    sqrt_upper = sqrt_price_x96_from_tick(tick_range.tick_upper)
    if pool_state.tick < tick_range.tick_lower:
        return amount0_delta(sqrt_lower, sqrt_upper, liquidity, True), 0
    if pool_state.tick < tick_range.tick_upper:
        return (
            amount0_delta(pool_state.sqrt_price_x96, sqrt_upper, liquidity, True),
            amount1_delta(sqrt_lower, pool_state.sqrt_price_x96, liquidity, True),
        )
    return 0, amount1_delta(sqrt_lower, sqrt_upper, liquidity, True)


def _finish_position(
    pool_state: PoolState,
    tick_range: TickRange,
    liquidity: int,
    context: dict[str, Any],
) -> Position:
    if liquidity <= 0:
        raise LiquidityError("zero_liquidity", **context)
    if liquidity > MAX_UINT128:
        raise LiquidityError(
            "position_build_failed", detail="liquidity exceeds uint128", **context
        )
    try:
        used0, used1 = mint_amounts(pool_state, tick_range, liquidity)
    except (ValueError, ZeroDivisionError) as exc:
        raise LiquidityError("position_build_failed", detail=str(exc), **context) from exc
    return Position(pool_state, tick_range, liquidity, used0, used1)


def build_position(
    pool_state: PoolState,
    tick_range: TickRange,
    amount0: int,
    amount1: int,
) -> Position:
    context = _build_context(pool_state, tick_range, amount0, amount1)
    try:
        liquidity = max_liquidity_for_amounts(
            pool_state.sqrt_price_x96,
            sqrt_price_x96_from_tick(tick_range.tick_lower),
            sqrt_price_x96_from_tick(tick_range.tick_upper),
            int(amount0),
            int(amount1),
        )
    except (ValueError, ZeroDivisionError) as exc:
        raise LiquidityError("position_build_failed", detail=str(exc), **context) from exc
    return _finish_position(pool_state, tick_range, liquidity, context)


def build_position_from_amount1(
    pool_state: PoolState, tick_range: TickRange, amount1: int
) -> Position:
    """Liquidity sized from ``amount1`` over the whole range, independent of spot."""
    context = _build_context(pool_state, tick_range, 0, amount1)
    try:
        liquidity = max_liquidity_for_amount1(
            sqrt_price_x96_from_tick(tick_range.tick_lower),
            sqrt_price_x96_from_tick(tick_range.tick_upper),
            int(amount1),
        )
    except (ValueError, ZeroDivisionError) as exc:
        raise LiquidityError("position_build_failed", detail=str(exc), **context) from exc
    return _finish_position(pool_state, tick_range, liquidity, context)


def position_from_liquidity(
    details: PositionDetails, pool_state: PoolState
) -> PositionAmounts:
    amount0, amount1 = amounts_for_liquidity(
        pool_state.sqrt_price_x96,
        sqrt_price_x96_from_tick(details.tick_lower),
        sqrt_price_x96_from_tick(details.tick_upper),
        details.liquidity,
    )
    return PositionAmounts(
        details=details,
        amount0=amount0,
        amount1=amount1,
        range_status=range_status(
            pool_state.tick, details.tick_lower, details.tick_upper
        ),
        current_tick=pool_state.tick,
        sqrt_price_x96=pool_state.sqrt_price_x96,
    )


# --------------------------------------------------------------------------- #
# Fees
# --------------------------------------------------------------------------- #


def compute_fees(
    details: PositionDetails, fee_growth_inside0: int, fee_growth_inside1: int
) -> FeeAccrual:
    liquidity = int(details.liquidity)
    delta0 = max(0, int(fee_growth_inside0) - int(details.fee_growth_inside0_last_x128))
    delta1 = max(0, int(fee_growth_inside1) - int(details.fee_growth_inside1_last_x128))
    return FeeAccrual(
        lifetime0=(int(fee_growth_inside0) * liquidity) // Q128,
        lifetime1=(int(fee_growth_inside1) * liquidity) // Q128,
        unclaimed0=(delta0 * liquidity) // Q128,
        unclaimed1=(delta1 * liquidity) // Q128,
    )


def value_amounts_usd(
    amount0: int,
    amount1: int,
    metadata0: TokenMetadata,
    metadata1: TokenMetadata,
    price0_usd: float | None,
    price1_usd: float | None,
) -> float | None:
    if price0_usd is None or price1_usd is None:
        return None
    if not (math.isfinite(price0_usd) and math.isfinite(price1_usd)):
        return None
    if metadata0.decimals is None or metadata1.decimals is None:
        return None
    value0 = amount0 / 10**metadata0.decimals * price0_usd
    value1 = amount1 / 10**metadata1.decimals * price1_usd
    return value0 + value1


def value_fees_usd(
    accrual: FeeAccrual,
    metadata0: TokenMetadata,
    metadata1: TokenMetadata,
    price0_usd: float | None,
    price1_usd: float | None,
) -> FeeValuation:
    return FeeValuation(
        unclaimed_usd=value_amounts_usd(
            accrual.unclaimed0,
            accrual.unclaimed1,
            metadata0,
            metadata1,
            price0_usd,
            price1_usd,
        ),
        lifetime_usd=value_amounts_usd(
            accrual.lifetime0,
            accrual.lifetime1,
            metadata0,
            metadata1,
            price0_usd,
            price1_usd,
        ),
    )
