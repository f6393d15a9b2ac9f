"""Number parsing utilities for keypad-style amount inputs."""
import string
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal('0.01')


def sanitize_amount(raw: Any) -> str:
    """
    Strip everything but digits and the first decimal point.

    Examples:
        sanitize_amount("₱1,250.50") -> "1250.50"
        sanitize_amount("1.2.3") -> "1.23"
        sanitize_amount(None) -> ""
    """
    if raw is None:
        return ''
    kept = []
    seen_point = False
    for ch in str(raw):
        if ch in string.digits:
            kept.append(ch)
        elif ch == '.' and not seen_point:
            kept.append(ch)
            seen_point = True
    return ''.join(kept)


def parse_amount(raw: Any) -> Optional[Decimal]:
    """
    Parse a user-typed amount into a non-negative Decimal.

    Returns None when nothing numeric is left after sanitising
    (empty input, or a lone decimal point).
    """
    cleaned = sanitize_amount(raw)
    if cleaned in ('', '.'):
        return None
    try:
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None


def to_decimal(value: Any, default: Decimal = Decimal('0')) -> Decimal:
    """Convert a backend JSON number (int, float, numeric string) to Decimal."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def to_int(value: Any, default: int = 0) -> int:
    """Leading-integer conversion for quantities ("3", 3.0, "2.5" -> 2)."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and abs(value) != float('inf') else default
    text = str(value or '').strip()
    sign = ''
    if text and text[0] in '+-':
        sign, text = text[0], text[1:]
    digits = ''
    for ch in text:
        if ch not in string.digits:
            break
        digits += ch
    if not digits:
        return default
    return int(sign + digits)


def money(value: Any) -> Decimal:
    """Round a monetary value to cents (half up)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_float(value: Any) -> float:
    """Rounded monetary value as a JSON-friendly float."""
    return float(money(value))
