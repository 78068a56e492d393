"""Tests for the alert evaluator (threshold rule, trigger, delete, cache use)."""
import asyncio
import pytest
from unittest.mock import AsyncMock

from cryptoalert.datafeeds.exchange_pool import ExchangePool
from cryptoalert.datafeeds.market_cache import Candle
from cryptoalert.rules.engine import AlertEvaluator, check_trigger
from cryptoalert.storage.repo import AlertStore
from tests.conftest import FakeExchange


def candle(high: float, low: float) -> Candle:
    return Candle(open_time=0, open=low, high=high, low=low, close=high, volume=1.0)


@pytest.fixture
def send() -> AsyncMock:
    return AsyncMock(return_value=True)


@pytest.fixture
def evaluator(store: AlertStore, pool: ExchangePool, send: AsyncMock) -> AlertEvaluator:
    return AlertEvaluator(store=store, pool=pool, send=send)


# ==================== TESTS: THRESHOLD RULE ====================

class TestCheckTrigger:
    """Test the above/below rule against candle extremes."""

    def test_above_triggers_at_high(self):
        assert check_trigger("above", 50000, candle(high=50500, low=49000)) == 50500

    def test_above_triggers_on_equal(self):
        assert check_trigger("above", 50000, candle(high=50000, low=49000)) == 50000

    def test_above_not_triggered(self):
        assert check_trigger("above", 51000, candle(high=50500, low=49000)) is None

    def test_below_triggers_at_low(self):
        assert check_trigger("below", 49500, candle(high=50500, low=49000)) == 49000

    def test_below_not_triggered(self):
        assert check_trigger("below", 48000, candle(high=50500, low=49000)) is None

    def test_above_ignores_low(self):
        """Direction above only consults the high."""
        assert check_trigger("above", 60000, candle(high=50500, low=10)) is None

    def test_unknown_direction_is_inert(self):
        assert check_trigger("sideways", 50000, candle(high=99999, low=1)) is None
        assert check_trigger("ABOVE", 50000, candle(high=99999, low=1)) is None


# ==================== TESTS: EVALUATION RUN ====================

class TestEvaluateAll:
    """Test full evaluation runs against the store and a fake exchange."""

    @pytest.mark.asyncio
    async def test_trigger_and_delete(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        """Triggered alert notifies once with the candle high and is deleted."""
        store.ensure_chat(1001)
        store.add_alert(1001, "BTC/USDT", 50000, "above", "binance")

        stats = await evaluator.evaluate_all()

        assert stats == {"checked": 1, "triggered": 1, "failed": 0}
        send.assert_awaited_once()
        chat_id, text = send.await_args.args
        assert chat_id == "1001"
        assert "50500" in text
        assert "BTC has reached the price of 50500 USDT!" in text
        assert store.list_alerts(1001) == []

    @pytest.mark.asyncio
    async def test_trigger_without_delete_on_delivery_failure(self, store: AlertStore, pool: ExchangePool):
        store.ensure_chat(1001)
        store.add_alert(1001, "BTC/USDT", 50000, "above", "binance")
        evaluator = AlertEvaluator(store=store, pool=pool, send=AsyncMock(return_value=False))

        stats = await evaluator.evaluate_all()

        assert stats["triggered"] == 0
        assert len(store.list_alerts(1001)) == 1
        assert evaluator.alerts_triggered == 0

    @pytest.mark.asyncio
    async def test_not_triggered_leaves_alert(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        store.ensure_chat(1001)
        store.add_alert(1001, "BTC/USDT", 51000, "above", "binance")

        await evaluator.evaluate_all()

        send.assert_not_awaited()
        alerts = store.list_alerts(1001)
        assert len(alerts) == 1
        assert alerts[0].price == 51000

    @pytest.mark.asyncio
    async def test_below_alert_triggers_at_low(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        store.ensure_chat(7)
        store.add_alert(7, "ETH/USDT", 2950, "below", "binance")

        await evaluator.evaluate_all()

        text = send.await_args.args[1]
        assert "ETH has reached the price of 2900 USDT!" in text
        assert "goes below 2950 USDT on binance" in text

    @pytest.mark.asyncio
    async def test_shared_pair_fetched_once(self, store: AlertStore, evaluator: AlertEvaluator, binance: FakeExchange):
        """Two alerts on the same (exchange, pair) cause one market fetch."""
        store.ensure_chat(1)
        store.ensure_chat(2)
        store.add_alert(1, "BTC/USDT", 90000, "above", "binance")
        store.add_alert(2, "BTC/USDT", 10000, "below", "binance")

        await evaluator.evaluate_all()

        assert len(binance.ohlcv_calls) == 1

    @pytest.mark.asyncio
    async def test_each_run_fetches_fresh(self, store: AlertStore, evaluator: AlertEvaluator, binance: FakeExchange):
        store.ensure_chat(1)
        store.add_alert(1, "BTC/USDT", 90000, "above", "binance")

        await evaluator.evaluate_all()
        await evaluator.evaluate_all()

        assert len(binance.ohlcv_calls) == 2
        assert evaluator.runs == 2

    @pytest.mark.asyncio
    async def test_empty_candle_skipped(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        """No market data: alert kept, not counted as a failure."""
        store.ensure_chat(1)
        store.add_alert(1, "XRP/USDT", 1, "above", "binance")

        stats = await evaluator.evaluate_all()

        assert stats == {"checked": 1, "triggered": 0, "failed": 0}
        send.assert_not_awaited()
        assert len(store.list_alerts(1)) == 1

    @pytest.mark.asyncio
    async def test_unsupported_exchange_does_not_abort_batch(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        store.ensure_chat(1)
        store.add_alert(1, "BTC/USDT", 50000, "above", "nosuchexchange")
        store.add_alert(1, "BTC/USDT", 50000, "above", "binance")

        stats = await evaluator.evaluate_all()

        assert stats == {"checked": 2, "triggered": 1, "failed": 1}
        remaining = store.list_alerts(1)
        assert [a.exchange for a in remaining] == ["nosuchexchange"]

    @pytest.mark.asyncio
    async def test_missing_chat_fails_single_alert(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        """Alert whose parent chat record is gone fails alone."""
        store.add_alert("orphan", "BTC/USDT", 50000, "above", "binance")
        store.ensure_chat(2)
        store.add_alert(2, "BTC/USDT", 50000, "above", "binance")

        stats = await evaluator.evaluate_all()

        assert stats == {"checked": 2, "triggered": 1, "failed": 1}
        send.assert_awaited_once()
        assert send.await_args.args[0] == "2"
        assert len(store.list_alerts("orphan")) == 1

    @pytest.mark.asyncio
    async def test_fetch_error_does_not_abort_batch(self, store: AlertStore, evaluator: AlertEvaluator, binance: FakeExchange, send: AsyncMock):
        store.ensure_chat(1)
        store.add_alert(1, "BTC/USDT", 50000, "above", "binance")
        store.add_alert(1, "ETH/USDT", 3000, "above", "binance")

        original = binance.fetch_ohlcv

        def flaky(symbol, *args, **kwargs):
            if symbol == "BTC/USDT":
                raise ConnectionError("exchange down")
            return original(symbol, *args, **kwargs)

        binance.fetch_ohlcv = flaky

        stats = await evaluator.evaluate_all()

        assert stats == {"checked": 2, "triggered": 1, "failed": 1}
        assert [a.pair for a in store.list_alerts(1)] == ["BTC/USDT"]


    @pytest.mark.asyncio
    async def test_failing_pair_fetched_once_per_run(self, store: AlertStore, evaluator: AlertEvaluator, binance: FakeExchange, send: AsyncMock):
        """Alerts sharing a failing (exchange, pair) cost one provider call, not one each."""
        for chat_id in (1, 2, 3):
            store.ensure_chat(chat_id)
            store.add_alert(chat_id, "BTC/USDT", 50000, "above", "binance")

        def down(symbol, *args, **kwargs):
            binance.ohlcv_calls.append((symbol,) + args)
            raise ConnectionError("exchange down")

        binance.fetch_ohlcv = down

        stats = await evaluator.evaluate_all()

        assert len(binance.ohlcv_calls) == 1
        assert stats == {"checked": 3, "triggered": 0, "failed": 3}
        send.assert_not_awaited()
        assert len(store.list_all_price_alerts()) == 3

    @pytest.mark.asyncio
    async def test_unknown_direction_never_triggers(self, store: AlertStore, evaluator: AlertEvaluator, send: AsyncMock):
        store.ensure_chat(1)
        store.add_alert(1, "BTC/USDT", 1, "sideways", "binance")

        stats = await evaluator.evaluate_all()

        assert stats["failed"] == 0
        send.assert_not_awaited()


class TestRunOnce:
    """Tests for the wall-clock budget."""

    @pytest.mark.asyncio
    async def test_run_once_returns_stats(self, evaluator: AlertEvaluator):
        assert await evaluator.run_once() == {"checked": 0, "triggered": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_run_over_budget_is_aborted(self, store: AlertStore, pool: ExchangePool):
        store.ensure_chat(1)
        store.add_alert(1, "BTC/USDT", 50000, "above", "binance")

        async def slow_send(chat_id, text):
            await asyncio.sleep(1)
            return True

        evaluator = AlertEvaluator(store=store, pool=pool, send=slow_send, timeout_seconds=0.05)

        assert await evaluator.run_once() is None
        assert len(store.list_alerts(1)) == 1

    @pytest.mark.asyncio
    async def test_runs_never_overlap(self, store: AlertStore, pool: ExchangePool):
        """Two runs started together are serialized by the run lock."""
        store.ensure_chat(1)
        store.add_alert(1, "BTC/USDT", 50000, "above", "binance")
        store.add_alert(1, "ETH/USDT", 3000, "above", "binance")

        in_flight = 0
        max_in_flight = 0

        async def slow_send(chat_id, text):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return False

        evaluator = AlertEvaluator(store=store, pool=pool, send=slow_send)

        first, second = await asyncio.gather(evaluator.evaluate_all(), evaluator.evaluate_all())

        assert max_in_flight == 1
        assert first["checked"] == second["checked"] == 2
        assert evaluator.runs == 2
