# -*- coding: utf-8 -*-
"""
Formatting utilities for alert messages.
Handles pair splitting and plain number rendering.
"""
import math
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple


def format_price(price) -> str:
    """
    Format a price without float noise or trailing zeros.

    Args:
        price: Price value (e.g., 50500.0, 0.00001234)

    Returns:
        Formatted string (e.g., "50500", "0.00001234")
    """
    try:
        value = Decimal(str(price)).normalize()
    except (InvalidOperation, ValueError):
        return str(price)
    return format(value, "f")


def parse_price(text: str) -> Optional[float]:
    """
    Parse a user-entered price ("30000", "0,5", "1 200.5").

    Returns:
        Positive float, or None if the text is not a positive number
    """
    cleaned = (text or "").strip().replace(" ", "").replace(",", ".")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    price = float(value)
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def split_pair(pair: str) -> Tuple[str, str]:
    """
    Split a pair into base and quote (e.g., BTC/USDT -> ("BTC", "USDT")).

    Args:
        pair: Trading pair symbol

    Returns:
        (base, quote); quote is empty if the pair has no separator
    """
    base, _, quote = (pair or "").partition("/")
    return base, quote


def normalize_pair(text: str) -> str:
    """Canonical uppercase BASE/QUOTE form (e.g., " btc/eur " -> "BTC/EUR")."""
    return "".join((text or "").split()).upper()


def is_valid_pair(pair: str) -> bool:
    """True for exactly one "/" with a non-empty base and quote (e.g., BTC/EUR)."""
    base, sep, quote = (pair or "").partition("/")
    return bool(base) and bool(sep) and bool(quote) and "/" not in quote
