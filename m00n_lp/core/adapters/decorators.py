from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

from m00n_lp.core.errors import STATUS_BAD_GATEWAY, LiquidityError

T = TypeVar("T")


def status_tuple(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | dict[str, Any]]]]:
    """Wrap an async adapter method to return ``(True, result)`` or ``(False, payload)``.

    ``LiquidityError`` becomes its own payload (``{"error": code, **context}``).
    Anything else becomes ``{"error": "<method>_failed", "detail": str(exc)}``.
    Both are logged via ``self.logger``.
    """

    @wraps(fn)
    async def wrapper(
        self: Any, *args: Any, **kwargs: Any
    ) -> tuple[bool, T | dict[str, Any]]:
        try:
            result = await fn(self, *args, **kwargs)
            return (True, result)
        except LiquidityError as exc:
            if exc.status >= STATUS_BAD_GATEWAY:
                self.logger.error(f"{fn.__name__}: {exc}")
            else:
                self.logger.warning(f"{fn.__name__}: {exc}")
            return (False, exc.to_payload())
        except Exception as exc:
            self.logger.error(f"Error in {fn.__name__}: {exc}")
            return (False, {"error": f"{fn.__name__}_failed", "detail": str(exc)})

    return wrapper  # type: ignore[return-value]
