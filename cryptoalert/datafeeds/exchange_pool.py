"""
Registry of ccxt exchange connectors.
Connectors are built lazily on first use and reused for the process lifetime.
"""
from typing import Dict, Optional
import ccxt
from loguru import logger


class UnsupportedExchangeError(ValueError):
    """Raised when an exchange id does not name a ccxt connector."""

    def __init__(self, exchange_id: str):
        super().__init__(f'Exchange "{exchange_id}" not supported')
        self.exchange_id = exchange_id


class ExchangePool:
    """Lazily populated map of exchange id -> ccxt connector."""

    def __init__(self, exchange_options: Optional[Dict] = None):
        self.exchange_options = exchange_options or {"enableRateLimit": True}
        self._exchanges: Dict[str, ccxt.Exchange] = {}

    def get(self, exchange_id: str) -> ccxt.Exchange:
        """
        Get (or build) the connector for an exchange.

        Raises:
            UnsupportedExchangeError: if ccxt has no connector with that id
        """
        exchange_id = (exchange_id or "").strip().lower()
        cached = self._exchanges.get(exchange_id)
        if cached is not None:
            return cached

        if exchange_id not in ccxt.exchanges:
            raise UnsupportedExchangeError(exchange_id)

        exchange_class = getattr(ccxt, exchange_id)
        try:
            exchange = exchange_class(dict(self.exchange_options))
        except Exception as e:
            raise UnsupportedExchangeError(exchange_id) from e

        self._exchanges[exchange_id] = exchange
        logger.debug(f"Exchange connector created: {exchange_id}")
        return exchange

    def is_supported(self, exchange_id: str) -> bool:
        try:
            self.get(exchange_id)
            return True
        except UnsupportedExchangeError:
            return False

    def lists_pair(self, exchange_id: str, pair: str) -> bool:
        """
        Check whether an exchange lists a trading pair (e.g. "BTC/EUR").
        Loads markets once per connector (ccxt caches them afterwards).
        """
        exchange = self.get(exchange_id)
        exchange.load_markets()
        return pair.upper() in (exchange.symbols or [])

    def fetch_ticker(self, exchange_id: str, pair: str) -> Optional[Dict]:
        """
        Get the ccxt ticker for a pair.

        Returns:
            Ticker dict (its "last" may be None on quiet markets),
            or None if the exchange does not list the pair
        """
        pair = pair.upper()
        if not self.lists_pair(exchange_id, pair):
            return None
        return self.get(exchange_id).fetch_ticker(pair)


# Global instance
_pool_instance: Optional[ExchangePool] = None


def get_exchange_pool() -> ExchangePool:
    """Get global exchange pool instance (singleton)."""
    global _pool_instance
    if _pool_instance is None:
        _pool_instance = ExchangePool()
    return _pool_instance
