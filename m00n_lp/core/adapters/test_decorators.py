from __future__ import annotations

import pytest

from m00n_lp.core.adapters.BaseAdapter import BaseAdapter
from m00n_lp.core.adapters.decorators import status_tuple
from m00n_lp.core.errors import DirectionalRangeError, LiquidityError, PriceUnavailable


class _Adapter(BaseAdapter):
    def __init__(self):
        super().__init__("test_adapter", {})

    @status_tuple
    async def works(self):
        return {"value": 1}

    @status_tuple
    async def rejects(self):
        raise LiquidityError("invalid_range", rangeLowerUsd=0)

    @status_tuple
    async def conflicts(self):
        raise DirectionalRangeError("range_must_be_above_current", currentTick=5)

    @status_tuple
    async def upstream(self):
        raise PriceUnavailable(asset="WMON")

    @status_tuple
    async def explodes(self):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_success():
    assert await _Adapter().works() == (True, {"value": 1})


@pytest.mark.asyncio
async def test_liquidity_error_payload():
    ok, payload = await _Adapter().rejects()
    assert ok is False
    assert payload == {"error": "invalid_range", "rangeLowerUsd": 0}


@pytest.mark.asyncio
async def test_status_is_not_part_of_payload():
    ok, payload = await _Adapter().conflicts()
    assert ok is False
    assert payload == {"error": "range_must_be_above_current", "currentTick": 5}


@pytest.mark.asyncio
async def test_upstream_error():
    ok, payload = await _Adapter().upstream()
    assert ok is False
    assert payload == {"error": "price_unavailable", "asset": "WMON"}


@pytest.mark.asyncio
async def test_unexpected_exception():
    ok, payload = await _Adapter().explodes()
    assert ok is False
    assert payload == {"error": "explodes_failed", "detail": "boom"}


def test_error_status_codes():
    assert LiquidityError("invalid_range").status == 400
    assert DirectionalRangeError("range_must_be_below_current").status == 409
    assert PriceUnavailable().status == 502
    assert LiquidityError("x", status=418).status == 418
