"""Request models for the liquidity operations.

Field aliases match the mini-app's JSON bodies. Every validation failure is
reported as a single ``LiquidityError`` whose code names the bad input.
"""

from __future__ import annotations

import math
from typing import Any, ClassVar, Literal, TypeVar

from eth_utils import is_address, to_checksum_address
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from m00n_lp.core.constants.base import (
    BPS_DENOMINATOR,
    CLAIM_SLIPPAGE_BPS,
    REMOVE_SLIPPAGE_BPS,
)
from m00n_lp.core.errors import LiquidityError
from m00n_lp.core.utils.units import parse_raw_amount

_DEPOSIT_ASSETS = {
    "moon": "base",
    "m00n": "base",
    "base": "base",
    "wmon": "quote",
    "quote": "quote",
}
_SIDES = {"single", "double"}
_DIRECTIONS = {"sky", "crash"}

ERROR_CODES = frozenset(
    {
        "invalid_recipient",
        "invalid_side",
        "invalid_single_asset",
        "invalid_amount",
        "invalid_range",
        "invalid_direction",
        "invalid_slippage",
        "missing_token_id",
        "invalid_token_id",
        "missing_amounts",
        "no_amounts_to_add",
        "no_fees_to_compound",
        "invalid_percentage",
        "unsupported_preset",
    }
)


def _address(value: Any, code: str) -> str:
    if not isinstance(value, str) or not is_address(value.strip()):
        raise PydanticCustomError(code, "expected a 20-byte hex address")
    return to_checksum_address(value.strip())


def _amount(value: Any, code: str = "invalid_amount") -> int | None:
    if value is None or value == "":
        return None
    try:
        return parse_raw_amount(value)
    except ValueError as exc:
        raise PydanticCustomError(
            code, "expected a non-negative base-unit integer"
        ) from exc


def _positive_float(value: Any, code: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise PydanticCustomError(code, "expected a positive number") from exc
    if isinstance(value, bool) or not math.isfinite(number) or number <= 0:
        raise PydanticCustomError(code, "expected a positive number")
    return number


def _slippage_percent(value: Any) -> float:
    try:
        percent = float(value)
    except (TypeError, ValueError) as exc:
        raise PydanticCustomError("invalid_slippage", "expected a percentage") from exc
    if not math.isfinite(percent) or percent < 0 or percent > 100:
        raise PydanticCustomError("invalid_slippage", "expected 0 to 100 percent")
    return percent


def parse_token_id(value: Any) -> int:
    """Position token id from an int or decimal string."""
    if value is None or value == "":
        raise LiquidityError("missing_token_id")
    try:
        token_id = parse_raw_amount(value)
    except ValueError as exc:
        raise LiquidityError("invalid_token_id", tokenId=str(value)) from exc
    return token_id


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # field name -> code for failures pydantic raises on its own
    field_codes: ClassVar[dict[str, str]] = {}


class _TokenIdRequest(_Request):
    token_id: int | None = Field(default=None, alias="tokenId")

    @field_validator("token_id", mode="before")
    @classmethod
    def _check_token_id(cls, value: Any) -> int | None:
        if value is None or value == "":
            return None
        try:
            return parse_raw_amount(value)
        except ValueError as exc:
            raise PydanticCustomError(
                "invalid_token_id", "expected a non-negative integer"
            ) from exc

    @model_validator(mode="after")
    def _require_token_id(self) -> _TokenIdRequest:
        if self.token_id is None:
            raise PydanticCustomError("missing_token_id", "tokenId is required")
        return self


class _RecipientMixin(BaseModel):
    @field_validator("recipient", mode="before", check_fields=False)
    @classmethod
    def _check_recipient(cls, value: Any) -> str:
        return _address(value, "invalid_recipient")


class _SlippagePercentMixin(BaseModel):
    slippage_percent: float | None = Field(default=None, alias="slippagePercent")

    @field_validator("slippage_percent", mode="before")
    @classmethod
    def _check_slippage(cls, value: Any) -> float | None:
        if value is None or value == "":
            return None
        return _slippage_percent(value)

    @property
    def slippage_bps(self) -> int | None:
        """Requested tolerance in bps, or None to use the configured default."""
        if self.slippage_percent is None:
            return None
        return int(round(self.slippage_percent * BPS_DENOMINATOR / 100))


class MintRequest(_RecipientMixin, _SlippagePercentMixin, _Request):
    recipient: str
    side: Literal["single", "double"] = "single"
    single_deposit_asset: Literal["base", "quote"] | None = Field(
        default=None, alias="singleDepositAsset"
    )
    single_amount: int | None = Field(default=None, alias="singleAmount")
    base_amount: int | None = Field(default=None, alias="doubleMoonAmount")
    quote_amount: int | None = Field(default=None, alias="doubleWmonAmount")
    range_lower_usd: float = Field(alias="rangeLowerUsd")
    range_upper_usd: float = Field(alias="rangeUpperUsd")
    direction: Literal["sky", "crash"] | None = None

    field_codes: ClassVar[dict[str, str]] = {
        "recipient": "invalid_recipient",
        "range_lower_usd": "invalid_range",
        "range_upper_usd": "invalid_range",
    }

    @field_validator("side", mode="before")
    @classmethod
    def _check_side(cls, value: Any) -> str:
        side = str(value or "single").strip().lower()
        if side not in _SIDES:
            raise PydanticCustomError("invalid_side", "side must be single or double")
        return side

    @field_validator("single_deposit_asset", mode="before")
    @classmethod
    def _check_asset(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        asset = _DEPOSIT_ASSETS.get(str(value).strip().lower())
        if asset is None:
            raise PydanticCustomError(
                "invalid_single_asset", "deposit asset must be moon or wmon"
            )
        return asset

    @field_validator("single_amount", "base_amount", "quote_amount", mode="before")
    @classmethod
    def _check_amounts(cls, value: Any) -> int | None:
        return _amount(value)

    @field_validator("range_lower_usd", "range_upper_usd", mode="before")
    @classmethod
    def _check_bounds(cls, value: Any) -> float:
        return _positive_float(value, "invalid_range")

    @field_validator("direction", mode="before")
    @classmethod
    def _check_direction(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        direction = str(value).strip().lower()
        if direction not in _DIRECTIONS:
            raise PydanticCustomError("invalid_direction", "direction must be sky or crash")
        return direction

    @model_validator(mode="after")
    def _check_side_inputs(self) -> MintRequest:
        if self.range_lower_usd == self.range_upper_usd:
            raise PydanticCustomError("invalid_range", "range bounds must differ")
        if self.side == "single":
            if self.single_deposit_asset is None:
                raise PydanticCustomError(
                    "invalid_single_asset", "singleDepositAsset is required"
                )
            if not self.single_amount:
                raise PydanticCustomError("invalid_amount", "singleAmount must be positive")
        elif not self.base_amount or not self.quote_amount:
            raise PydanticCustomError(
                "invalid_amount", "double-sided deposits need both amounts"
            )
        return self


class ClaimRequest(_RecipientMixin, _Request):
    recipient: str = Field(alias="address")
    amount: int
    preset: str = "backstop"
    slippage_bps: int = Field(default=CLAIM_SLIPPAGE_BPS, alias="slippageBps")

    field_codes: ClassVar[dict[str, str]] = {
        "recipient": "invalid_recipient",
        "amount": "invalid_amount",
        "slippage_bps": "invalid_slippage",
    }

    @field_validator("amount", mode="before")
    @classmethod
    def _check_amount(cls, value: Any) -> int | None:
        return _amount(value)

    @field_validator("preset", mode="before")
    @classmethod
    def _check_preset(cls, value: Any) -> str:
        preset = str(value or "backstop").strip().lower()
        if preset != "backstop":
            raise PydanticCustomError("unsupported_preset", "only backstop is offered")
        return preset

    @field_validator("slippage_bps")
    @classmethod
    def _check_slippage(cls, value: int) -> int:
        if value < 0:
            raise PydanticCustomError("invalid_slippage", "slippage must be >= 0")
        return value

    @model_validator(mode="after")
    def _check_positive(self) -> ClaimRequest:
        if self.amount <= 0:
            raise PydanticCustomError("invalid_amount", "amount must be positive")
        return self


class IncreaseRequest(_SlippagePercentMixin, _TokenIdRequest):
    amount0: int | None = Field(default=None, alias="amount0Wei")
    amount1: int | None = Field(default=None, alias="amount1Wei")
    recipient: str | None = None

    @field_validator("amount0", "amount1", mode="before")
    @classmethod
    def _check_amounts(cls, value: Any) -> int | None:
        return _amount(value)

    @field_validator("recipient", mode="before")
    @classmethod
    def _check_recipient(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return _address(value, "invalid_recipient")

    @model_validator(mode="after")
    def _check_amounts_present(self) -> IncreaseRequest:
        if self.amount0 is None and self.amount1 is None:
            raise PydanticCustomError("missing_amounts", "amount0Wei or amount1Wei is required")
        if not self.amount0 and not self.amount1:
            raise PydanticCustomError("no_amounts_to_add", "both amounts are zero")
        return self


class CollectRequest(_RecipientMixin, _TokenIdRequest):
    recipient: str

    field_codes: ClassVar[dict[str, str]] = {"recipient": "invalid_recipient"}


class CompoundRequest(_RecipientMixin, _SlippagePercentMixin, _TokenIdRequest):
    recipient: str
    amount0: int | None = Field(default=None, alias="amount0Wei")
    amount1: int | None = Field(default=None, alias="amount1Wei")

    field_codes: ClassVar[dict[str, str]] = {"recipient": "invalid_recipient"}

    @field_validator("amount0", "amount1", mode="before")
    @classmethod
    def _check_amounts(cls, value: Any) -> int | None:
        return _amount(value)

    @model_validator(mode="after")
    def _check_fees(self) -> CompoundRequest:
        if self.amount0 is None and self.amount1 is None:
            raise PydanticCustomError("missing_amounts", "amount0Wei or amount1Wei is required")
        if not self.amount0 and not self.amount1:
            raise PydanticCustomError("no_fees_to_compound", "no unclaimed fees to reinvest")
        return self


class RemoveRequest(_RecipientMixin, _TokenIdRequest):
    recipient: str
    percentage: int = Field(default=100, alias="percentageToRemove")
    burn: bool | None = Field(default=None, alias="burnToken")
    slippage_bps: int = Field(default=REMOVE_SLIPPAGE_BPS, alias="slippageBps")

    field_codes: ClassVar[dict[str, str]] = {
        "recipient": "invalid_recipient",
        "percentage": "invalid_percentage",
        "slippage_bps": "invalid_slippage",
    }

    @field_validator("percentage")
    @classmethod
    def _check_percentage(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise PydanticCustomError("invalid_percentage", "percentage must be 1 to 100")
        return value

    @field_validator("slippage_bps")
    @classmethod
    def _check_slippage(cls, value: int) -> int:
        if not 0 <= value <= BPS_DENOMINATOR:
            raise PydanticCustomError("invalid_slippage", "slippage must be 0 to 10000 bps")
        return value

    @model_validator(mode="after")
    def _default_burn(self) -> RemoveRequest:
        if self.burn is None:
            self.burn = self.percentage == 100
        elif self.burn and self.percentage != 100:
            raise PydanticCustomError(
                "invalid_percentage", "burning requires removing all liquidity"
            )
        return self


RequestT = TypeVar("RequestT", bound=_Request)


def _error_code(model: type[_Request], error: dict[str, Any]) -> str:
    if error["type"] in ERROR_CODES:
        return error["type"]
    loc = error.get("loc") or ()
    if loc:
        for name, field in model.model_fields.items():
            if loc[0] in (name, field.alias):
                return model.field_codes.get(name, "invalid_request")
    return "invalid_request"


def parse_request(model: type[RequestT], payload: RequestT | dict[str, Any] | None) -> RequestT:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload or {})
    except ValidationError as exc:
        error = exc.errors()[0]
        loc = ".".join(str(part) for part in error.get("loc") or ())
        context = {"field": loc} if loc else {}
        raise LiquidityError(
            _error_code(model, error), detail=error.get("msg", ""), **context
        ) from exc
