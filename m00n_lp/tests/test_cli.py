from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from m00n_lp.cli import cli

RECIPIENT = "0x" + "ab" * 20


def _mock_adapter(**methods) -> MagicMock:
    adapter = MagicMock()
    adapter.close = AsyncMock()
    for name, rv in methods.items():
        setattr(adapter, name, AsyncMock(return_value=rv))
    return adapter


def _invoke(adapter: MagicMock, args: list[str]):
    with patch("m00n_lp.cli.UniswapV4LiquidityAdapter", return_value=adapter):
        return CliRunner().invoke(cli, args, obj={})


def test_pool_state_prints_json():
    adapter = _mock_adapter(pool_overview=(True, {"tick": -100000}))
    result = _invoke(adapter, ["pool-state"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"ok": True, "result": {"tick": -100000}}
    adapter.close.assert_awaited_once()


def test_error_payload_sets_exit_code():
    adapter = _mock_adapter(
        build_collect=(False, {"error": "invalid_token_id", "tokenId": "9"})
    )
    result = _invoke(adapter, ["collect", "9", "--recipient", RECIPIENT])
    assert result.exit_code == 1
    body = json.loads(result.output)
    assert body["ok"] is False
    assert body["error"]["error"] == "invalid_token_id"
    adapter.build_collect.assert_awaited_once_with(
        {"tokenId": "9", "recipient": RECIPIENT}
    )


def test_mint_builds_request_body():
    adapter = _mock_adapter(build_mint=(True, {"tickLower": 0}))
    result = _invoke(
        adapter,
        [
            "mint",
            "--recipient",
            RECIPIENT,
            "--asset",
            "moon",
            "--amount",
            "1000",
            "--lower-usd",
            "0.000002",
            "--upper-usd",
            "0.000004",
        ],
    )
    assert result.exit_code == 0
    (body,), _ = adapter.build_mint.await_args
    assert body == {
        "recipient": RECIPIENT,
        "side": "single",
        "singleDepositAsset": "moon",
        "singleAmount": "1000",
        "rangeLowerUsd": 0.000002,
        "rangeUpperUsd": 0.000004,
    }


def test_fees_batch_for_many_ids():
    adapter = _mock_adapter(get_many_position_fees=(True, []))
    result = _invoke(adapter, ["fees", "1", "2"])
    assert result.exit_code == 0
    adapter.get_many_position_fees.assert_awaited_once_with(["1", "2"])
