from __future__ import annotations

from typing import Any

STATUS_BAD_REQUEST = 400
STATUS_CONFLICT = 409
STATUS_BAD_GATEWAY = 502


class LiquidityError(Exception):
    """A request-scoped failure carrying an error code and numeric context.

    ``status`` mirrors the HTTP status the mini-app routes answer with.
    """

    status: int = STATUS_BAD_REQUEST

    def __init__(
        self,
        code: str,
        *,
        status: int | None = None,
        **context: Any,
    ) -> None:
        self.code = code
        if status is not None:
            self.status = status
        self.context = context
        super().__init__(self._describe())

    def _describe(self) -> str:
        if not self.context:
            return self.code
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.code} ({details})"

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, **self.context}


class DirectionalRangeError(LiquidityError):
    status = STATUS_CONFLICT


class PoolStateUnavailable(LiquidityError):
    status = STATUS_BAD_GATEWAY

    def __init__(self, **context: Any) -> None:
        super().__init__("pool_state_unavailable", **context)


class PriceUnavailable(LiquidityError):
    status = STATUS_BAD_GATEWAY

    def __init__(self, **context: Any) -> None:
        super().__init__("price_unavailable", **context)
