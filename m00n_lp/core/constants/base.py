DEFAULT_HTTP_TIMEOUT = 30.0  # HTTP client timeout

DEFAULT_SLIPPAGE_BPS = 500
CLAIM_SLIPPAGE_BPS = 50
REMOVE_SLIPPAGE_BPS = 50
DEFAULT_DEADLINE_SECONDS = 10 * 60
BPS_DENOMINATOR = 10_000

# Subgraph prices move slowly relative to request volume
PRICE_CACHE_TTL_SECONDS = 60

MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1
