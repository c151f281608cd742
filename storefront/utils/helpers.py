"""
Helper utilities
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Optional

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))

def generate_order_number(timestamp_ms: Optional[int] = None) -> str:
    """
    Generate a human readable order number

    Format: ORD-<base36 epoch millis>-<4 hex chars>, upper-cased
    e.g. ORD-LXK2M9QZ-3F1A
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    suffix = secrets.token_hex(2)
    return f"ORD-{to_base36(timestamp_ms)}-{suffix}".upper()

def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by SQLite) as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def format_currency(amount, currency: str = "INR") -> str:
    symbols = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}
    symbol = symbols.get(currency, f"{currency} ")
    return f"{symbol}{amount:,.2f}"
