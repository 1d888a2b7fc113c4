"""Monad Uniswap v4 deployment and the m00n/WMON pool."""

from __future__ import annotations

from eth_utils import to_checksum_address

POSITION_MANAGER = to_checksum_address("0x5b7eC4a94fF9beDb700fb82aB09d5846972F4016")
STATE_VIEW = to_checksum_address("0x77395f3b2e73ae90843717371294fa97cc419d64")

MOON_TOKEN = to_checksum_address("0x22cd99ec337a2811f594340a4a6e41e4a3022b07")
WMON_TOKEN = to_checksum_address("0x3bd359c1119da7da1d913d1c4d2b7c461115433a")
USDC_TOKEN = to_checksum_address("0x754704bc059f8c67012fed69bc8a327a5aafb603")
MOON_POOL_HOOK = to_checksum_address("0x94f802a9efe4dd542fdbd77a25d9e69a6dc828cc")

# 0x800000 marks the pool as dynamic-fee; the hook sets the LP fee per swap
DYNAMIC_FEE_FLAG = 0x800000
MOON_POOL_FEE = DYNAMIC_FEE_FLAG
MOON_POOL_TICK_SPACING = 200

WMON_USDC_POOL_ID = "0x18a9fc874581f3ba12b7898f80a683c66fd5877fd74b26a85ba9a3a79c549954"
UNISWAP_V4_SUBGRAPH_ID = "3kaAG19ytkGfu8xD7YAAZ3qAQ3UDJRkmKH2kHUuyGHah"

MOON_CIRCULATING_SUPPLY = 95_000_000_000

# Fixed WMON-only band offered by the claim flow
BACKSTOP_PRESET: dict[str, int] = {"tick_lower": -106_600, "tick_upper": -104_600}

KNOWN_TOKENS: dict[str, dict[str, object]] = {
    MOON_TOKEN.lower(): {"symbol": "m00n", "name": "m00nad", "decimals": 18},
    WMON_TOKEN.lower(): {"symbol": "WMON", "name": "Wrapped MON", "decimals": 18},
    USDC_TOKEN.lower(): {"symbol": "USDC", "name": "USD Coin", "decimals": 6},
}
