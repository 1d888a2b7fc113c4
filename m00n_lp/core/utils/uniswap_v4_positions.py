from __future__ import annotations

from dataclasses import dataclass

from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address

from m00n_lp.core.constants.contracts import (
    MOON_POOL_FEE,
    MOON_POOL_HOOK,
    MOON_POOL_TICK_SPACING,
    MOON_TOKEN,
    WMON_TOKEN,
)

PoolKeyTuple = tuple[str, str, int, int, str]


def sort_currencies(currency_a: str, currency_b: str) -> tuple[str, str]:
    a = to_checksum_address(currency_a)
    b = to_checksum_address(currency_b)
    return (a, b) if int(a, 16) < int(b, 16) else (b, a)


@dataclass(frozen=True)
class PoolKey:
    currency0: str
    currency1: str
    fee: int
    tick_spacing: int
    hooks: str

    def __post_init__(self) -> None:
        if int(self.currency0, 16) >= int(self.currency1, 16):
            raise ValueError(
                f"currency0 must sort below currency1: {self.currency0} >= {self.currency1}"
            )
        if self.tick_spacing <= 0:
            raise ValueError(f"tick spacing must be positive, got {self.tick_spacing}")

    @classmethod
    def build(
        cls,
        currency_a: str,
        currency_b: str,
        *,
        fee: int,
        tick_spacing: int,
        hooks: str,
    ) -> PoolKey:
        c0, c1 = sort_currencies(currency_a, currency_b)
        return cls(c0, c1, int(fee), int(tick_spacing), to_checksum_address(hooks))

    @classmethod
    def from_tuple(cls, raw: tuple | list) -> PoolKey:
        c0, c1, fee, tick_spacing, hooks = raw
        return cls(
            to_checksum_address(c0),
            to_checksum_address(c1),
            int(fee),
            int(tick_spacing),
            to_checksum_address(hooks),
        )

    def as_tuple(self) -> PoolKeyTuple:
        return (
            self.currency0,
            self.currency1,
            self.fee,
            self.tick_spacing,
            self.hooks,
        )

    def is_token0(self, token: str) -> bool:
        return to_checksum_address(token) == self.currency0


def moon_pool_key() -> PoolKey:
    return PoolKey.build(
        MOON_TOKEN,
        WMON_TOKEN,
        fee=MOON_POOL_FEE,
        tick_spacing=MOON_POOL_TICK_SPACING,
        hooks=MOON_POOL_HOOK,
    )


def pool_id(key: PoolKey) -> str:
    encoded = abi_encode(
        ["address", "address", "uint24", "int24", "address"],
        list(key.as_tuple()),
    )
    return "0x" + keccak(encoded).hex()


@dataclass(frozen=True)
class PoolState:
    sqrt_price_x96: int
    tick: int
    liquidity: int


@dataclass(frozen=True)
class PositionDetails:
    token_id: int
    pool_key: PoolKey
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int


@dataclass(frozen=True)
class TokenMetadata:
    """ERC20 display metadata. ``known=False`` means the reads failed."""

    address: str
    symbol: str | None = None
    decimals: int | None = None
    name: str | None = None
    known: bool = True

    @classmethod
    def unknown(cls, address: str) -> TokenMetadata:
        return cls(address=address, known=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "name": self.name,
            "known": self.known,
        }
