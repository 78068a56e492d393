"""
Per-run memoization of the latest candle for each (exchange, pair).
A cache instance lives for one evaluator run only and is then discarded.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from loguru import logger

from cryptoalert.datafeeds.exchange_pool import ExchangePool
from cryptoalert.utils.timeframes import interval_to_ms


@dataclass(frozen=True)
class Candle:
    """OHLCV candle as returned by ccxt."""
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


def normalize_ohlcv(row: List) -> Candle:
    """
    Convert a ccxt OHLCV row to a Candle.

    ccxt format:
    [timestamp_ms, open, high, low, close, volume]
    """
    return Candle(
        open_time=int(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5] or 0.0),
    )


class MarketDataCache:
    """Fetches each (exchange, pair) at most once per evaluator run."""

    def __init__(
        self,
        pool: ExchangePool,
        timeframe: str = "5m",
        clock: Callable[[], float] = time.time
    ):
        self.pool = pool
        self.timeframe = timeframe
        self.clock = clock
        self._candles: Dict[Tuple[str, str], Optional[Candle]] = {}
        self._failures: Dict[Tuple[str, str], Exception] = {}
        self.fetch_count = 0

    def _fetch(self, exchange_id: str, pair: str) -> Optional[Candle]:
        since = int(self.clock() * 1000) - interval_to_ms(self.timeframe)
        exchange = self.pool.get(exchange_id)
        self.fetch_count += 1
        rows = exchange.fetch_ohlcv(pair, self.timeframe, since, 1)
        if not rows:
            return None
        return normalize_ohlcv(rows[0])

    async def get_recent_candle(self, exchange_id: str, pair: str) -> Optional[Candle]:
        """
        Get the most recent candle for a pair, anchored one interval back from now.

        Empty results and fetch errors are memoized too, so a pair without
        data (or a provider that is down) is hit once per run, not once per
        alert watching it.

        Returns:
            Candle, or None if the exchange returned no data

        Raises:
            Whatever the first fetch for this key raised during this run
        """
        key = (exchange_id.lower(), pair.upper())
        if key in self._failures:
            raise self._failures[key]
        if key in self._candles:
            return self._candles[key]

        try:
            candle = await asyncio.to_thread(self._fetch, key[0], key[1])
        except Exception as e:
            self._failures[key] = e
            logger.warning(f"Fetch failed for {key[1]} on {key[0]}: {e}")
            raise
        self._candles[key] = candle

        if candle is None:
            logger.debug(f"No {self.timeframe} candle for {key[1]} on {key[0]}")
        return candle
