from __future__ import annotations


def parse_raw_amount(value: str | int) -> int:
    """Base-unit integer from a decimal string such as ``"1000000000000000000"``."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid raw amount: {value}")
    if isinstance(value, int):
        raw = value
    else:
        text = str(value).strip()
        if not text.isdigit():
            raise ValueError(f"Invalid raw amount: {value}")
        raw = int(text)
    if raw < 0:
        raise ValueError("Amount must be non-negative")
    return raw
