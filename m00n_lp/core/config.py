import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from m00n_lp.core.constants.base import DEFAULT_DEADLINE_SECONDS, DEFAULT_SLIPPAGE_BPS
from m00n_lp.core.constants.chains import CHAIN_ID_MONAD, DEFAULT_RPC_URLS
from m00n_lp.core.constants.contracts import (
    BACKSTOP_PRESET,
    MOON_CIRCULATING_SUPPLY,
    UNISWAP_V4_SUBGRAPH_ID,
)

_CONFIG_ENV_KEYS = ("M00N_LP_CONFIG_PATH", "M00N_LP_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_GRAPH_API_KEY_ENV_KEYS = ("THE_GRAPH_API_KEY", "THEGRAPH_API_KEY")
_GRAPH_GATEWAY = "https://gateway.thegraph.com/api"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring unreadable config file {cfg_path}: {exc}")
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_rpc_urls() -> dict[str, Any]:
    configured = CONFIG.get("rpc_urls", {})
    if configured:
        return configured
    env_rpc = os.getenv("MONAD_RPC_URL", "").strip()
    if env_rpc:
        return {str(CHAIN_ID_MONAD): env_rpc}
    return {str(k): v for k, v in DEFAULT_RPC_URLS.items()}


def get_chain_id() -> int:
    raw = CONFIG.get("chain_id") or os.getenv("MONAD_CHAIN_ID")
    try:
        chain_id = int(raw) if raw is not None else CHAIN_ID_MONAD
    except (TypeError, ValueError):
        chain_id = CHAIN_ID_MONAD
    return chain_id if chain_id > 0 else CHAIN_ID_MONAD


def get_graph_api_key() -> str | None:
    system = CONFIG.get("system", {})
    api_key = system.get("graph_api_key")
    if api_key:
        return str(api_key).strip()
    for key in _GRAPH_API_KEY_ENV_KEYS:
        if value := os.environ.get(key, "").strip():
            return value
    return None


def get_subgraph_url() -> str:
    system = CONFIG.get("system", {})
    url = system.get("subgraph_url") or os.getenv("UNISWAP_V4_SUBGRAPH_URL", "")
    if str(url).strip():
        return str(url).strip()
    api_key = get_graph_api_key()
    if api_key:
        return f"{_GRAPH_GATEWAY}/{api_key}/subgraphs/id/{UNISWAP_V4_SUBGRAPH_ID}"
    return f"{_GRAPH_GATEWAY}/subgraphs/id/{UNISWAP_V4_SUBGRAPH_ID}"


def get_lp_settings() -> dict[str, Any]:
    lp = CONFIG.get("lp", {})
    range_cfg = lp.get("range", {})
    preset = lp.get("backstop_preset", {})
    return {
        "slippage_bps": int(lp.get("slippage_bps", DEFAULT_SLIPPAGE_BPS)),
        "deadline_seconds": int(lp.get("deadline_seconds", DEFAULT_DEADLINE_SECONDS)),
        "range": {
            "bound_unit": str(range_cfg.get("bound_unit", "price")),
            "circulating_supply": float(
                range_cfg.get("circulating_supply", MOON_CIRCULATING_SUPPLY)
            ),
        },
        "backstop_preset": {
            "tick_lower": int(
                preset.get("tick_lower", BACKSTOP_PRESET["tick_lower"])
            ),
            "tick_upper": int(
                preset.get("tick_upper", BACKSTOP_PRESET["tick_upper"])
            ),
        },
    }
