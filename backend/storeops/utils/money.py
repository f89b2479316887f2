from typing import Any, Optional


def round_money(value: float) -> float:
    return round(float(value), 2)


def to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Lenient number parsing for payload values like ``"1,234.50"`` or ``"$9.99"``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "").replace("$", "")
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        return default


def to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    number = to_float(value, None)
    if number is None:
        return default
    return int(number)
