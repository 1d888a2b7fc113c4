from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
from loguru import logger

from m00n_lp.adapters.uniswap_v4_adapter.adapter import UniswapV4LiquidityAdapter
from m00n_lp.core.config import load_config


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _run(
    ctx: click.Context,
    op: Callable[[UniswapV4LiquidityAdapter], Awaitable[tuple[bool, Any]]],
) -> None:
    async def _go() -> tuple[bool, Any]:
        adapter = UniswapV4LiquidityAdapter()
        try:
            return await op(adapter)
        finally:
            await adapter.close()

    ok, payload = asyncio.run(_go())
    _echo_json({"ok": ok, "result" if ok else "error": payload})
    if not ok:
        ctx.exit(1)


def _mint_body(
    recipient: str,
    side: str,
    asset: str | None,
    amount: str | None,
    moon_amount: str | None,
    wmon_amount: str | None,
    lower_usd: float,
    upper_usd: float,
    direction: str | None,
    slippage_percent: float | None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "recipient": recipient,
        "side": side,
        "singleDepositAsset": asset,
        "singleAmount": amount,
        "doubleMoonAmount": moon_amount,
        "doubleWmonAmount": wmon_amount,
        "rangeLowerUsd": lower_usd,
        "rangeUpperUsd": upper_usd,
        "direction": direction,
        "slippagePercent": slippage_percent,
    }
    return {k: v for k, v in body.items() if v is not None}


def _mint_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option("--recipient", required=True, help="Address receiving the position NFT."),
        click.option(
            "--side",
            type=click.Choice(["single", "double"]),
            default="single",
            show_default=True,
        ),
        click.option("--asset", type=click.Choice(["moon", "wmon"]), default=None),
        click.option("--amount", default=None, help="Single-sided amount in wei."),
        click.option("--moon-amount", default=None, help="Double-sided m00n amount in wei."),
        click.option("--wmon-amount", default=None, help="Double-sided WMON amount in wei."),
        click.option("--lower-usd", type=float, required=True),
        click.option("--upper-usd", type=float, required=True),
        click.option("--direction", type=click.Choice(["sky", "crash"]), default=None),
        click.option("--slippage-percent", type=float, default=None),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


@click.group(name="m00n-lp", help="Plan and encode m00n/WMON liquidity on Monad.")
@click.option("--config", "config_path", default=None, help="Path to config.json.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path:
        load_config(config_path, require_exists=True)
    ctx.ensure_object(dict)


@cli.command(name="pool-state", help="Current pool tick, price and liquidity.")
@click.pass_context
def pool_state_cmd(ctx: click.Context) -> None:
    _run(ctx, lambda adapter: adapter.pool_overview())


@cli.command(name="plan", help="Resolve a USD band into ticks and deposit amounts.")
@_mint_options
@click.pass_context
def plan_cmd(ctx: click.Context, **kwargs: Any) -> None:
    body = _mint_body(**kwargs)
    _run(ctx, lambda adapter: adapter.plan_range(body))


@cli.command(name="mint", help="Build the modifyLiquidities call for a new position.")
@_mint_options
@click.pass_context
def mint_cmd(ctx: click.Context, **kwargs: Any) -> None:
    body = _mint_body(**kwargs)
    _run(ctx, lambda adapter: adapter.build_mint(body))


@cli.command(name="collect", help="Build the call that collects a position's fees.")
@click.argument("token_id")
@click.option("--recipient", required=True)
@click.pass_context
def collect_cmd(ctx: click.Context, token_id: str, recipient: str) -> None:
    body = {"tokenId": token_id, "recipient": recipient}
    _run(ctx, lambda adapter: adapter.build_collect(body))


@cli.command(name="fees", help="Unclaimed and lifetime fees for one or more positions.")
@click.argument("token_ids", nargs=-1, required=True)
@click.pass_context
def fees_cmd(ctx: click.Context, token_ids: tuple[str, ...]) -> None:
    if len(token_ids) == 1:
        _run(ctx, lambda adapter: adapter.get_position_fees(token_ids[0]))
    else:
        _run(ctx, lambda adapter: adapter.get_many_position_fees(list(token_ids)))


@cli.command(name="positions", help="Positions owned by an address, with amounts.")
@click.argument("owner")
@click.pass_context
def positions_cmd(ctx: click.Context, owner: str) -> None:
    _run(ctx, lambda adapter: adapter.get_positions_with_amounts(owner))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
