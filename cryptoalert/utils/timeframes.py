"""
Candle interval definitions.
Single source of truth for timeframe durations used by the market data cache.
"""

# Interval duration in milliseconds (matches ccxt timestamp format)
INTERVAL_MS = {
    "1m": 60_000,
    "5m": 300_000,
    "15m": 900_000,
    "30m": 1_800_000,
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
}


def interval_to_ms(interval: str) -> int:
    """Convert interval string to duration in milliseconds.

    Args:
        interval: ccxt-style interval string (e.g., "5m", "1h")

    Returns:
        Duration of one candle in milliseconds.

    Raises:
        ValueError: If interval is not recognized.
    """
    if interval not in INTERVAL_MS:
        raise ValueError(f"Unknown interval: {interval}")
    return INTERVAL_MS[interval]
