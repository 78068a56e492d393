"""Shared test fixtures and configuration."""
from pathlib import Path
from typing import Dict, List, Optional
import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cryptoalert.datafeeds.exchange_pool import ExchangePool
from cryptoalert.storage.models import Base
from cryptoalert.storage.repo import AlertStore


class FakeExchange:
    """Stands in for a ccxt connector; records every call."""

    def __init__(self, candles: Optional[Dict[str, List[List]]] = None,
                 symbols: Optional[List[str]] = None,
                 tickers: Optional[Dict[str, Dict]] = None):
        self.candles = candles or {}
        self.symbols = symbols if symbols is not None else list(self.candles.keys())
        self.tickers = tickers or {}
        self.ohlcv_calls = []
        self.load_markets_calls = 0

    def fetch_ohlcv(self, symbol, timeframe="1m", since=None, limit=None):
        self.ohlcv_calls.append((symbol, timeframe, since, limit))
        return self.candles.get(symbol, [])

    def load_markets(self):
        self.load_markets_calls += 1
        return {symbol: {} for symbol in self.symbols}

    def fetch_ticker(self, symbol):
        return self.tickers[symbol]


def make_candle(high: float, low: float, open_time: int = 1700000000000) -> List:
    """ccxt OHLCV row with the given extremes."""
    mid = (high + low) / 2
    return [open_time, mid, high, low, mid, 12.5]


@pytest.fixture
def test_config_yaml(tmp_path: Path) -> Path:
    """Create a temporary test config YAML file."""
    config = {
        'bot': {
            'name': 'Crypto Alert Test',
            'username': 'CryptoAlertTestBot',
            'version': '1.0.0'
        },
        'telegram': {
            'webhook': {
                'host': '127.0.0.1',
                'port': 8081,
                'path': '/hook',
                'max_concurrent_requests': 2
            }
        },
        'market': {
            'default_exchange': 'Binance',
            'timeframe': '5m'
        },
        'evaluator': {
            'interval_seconds': 300,
            'timeout_seconds': 30
        }
    }

    config_file = tmp_path / 'test_config.yaml'
    with open(config_file, 'w', encoding='utf-8') as f:
        yaml.dump(config, f)

    return config_file


@pytest.fixture
def store() -> AlertStore:
    """Alert store on a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    return AlertStore(session_factory)


@pytest.fixture
def binance() -> FakeExchange:
    return FakeExchange(
        candles={
            "BTC/USDT": [make_candle(high=50500, low=49000)],
            "ETH/USDT": [make_candle(high=3100, low=2900)],
        },
        symbols=["BTC/USDT", "ETH/USDT", "BTC/EUR"],
        tickers={"BTC/EUR": {"symbol": "BTC/EUR", "last": 30123.45}}
    )


@pytest.fixture
def pool(binance: FakeExchange) -> ExchangePool:
    """Exchange pool with the fake binance connector pre-registered."""
    exchange_pool = ExchangePool()
    exchange_pool._exchanges["binance"] = binance
    return exchange_pool
