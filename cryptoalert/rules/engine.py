"""
Alert Evaluator - checks stored price alerts against the latest candle.
Runs on a fixed interval; each run gets its own market data cache.
"""
import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional
from loguru import logger

from cryptoalert.datafeeds.exchange_pool import ExchangePool, get_exchange_pool
from cryptoalert.datafeeds.market_cache import Candle, MarketDataCache
from cryptoalert.notif.templates import template_price_triggered
from cryptoalert.storage.models import Alert
from cryptoalert.storage.repo import AlertStore, get_alert_store

ABOVE = "above"
BELOW = "below"

SendFunc = Callable[[str, str], Awaitable[bool]]


def check_trigger(direction: str, threshold: float, candle: Candle) -> Optional[float]:
    """
    Apply the threshold rule to a candle.

    Only the extreme on the watched side is consulted: high for "above",
    low for "below". Unknown directions never trigger.

    Returns:
        Trigger price (candle high or low), or None if not triggered
    """
    if direction == ABOVE:
        if candle.high >= threshold:
            return candle.high
    elif direction == BELOW:
        if candle.low <= threshold:
            return candle.low
    return None


class AlertEvaluator:
    """
    Evaluates every price alert once per run and notifies owners of triggered ones.
    """

    def __init__(
        self,
        store: AlertStore,
        pool: ExchangePool,
        send: SendFunc,
        timeframe: str = "5m",
        interval_seconds: int = 300,
        timeout_seconds: float = 60
    ):
        """
        Args:
            store: Alert store gateway
            pool: Exchange connector registry
            send: Coroutine (chat_id, text) -> delivered
            timeframe: Candle interval to evaluate against
            interval_seconds: Time between runs
            timeout_seconds: Wall-clock budget of a single run
        """
        self.store = store
        self.pool = pool
        self.send = send
        self.timeframe = timeframe
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.running = False

        # One run at a time
        self._run_lock = asyncio.Lock()

        # Stats for /status
        self.runs = 0
        self.alerts_triggered = 0
        self.last_run_time: Optional[datetime] = None

    def new_cache(self) -> MarketDataCache:
        return MarketDataCache(self.pool, timeframe=self.timeframe)

    async def _trigger(self, alert: Alert, price: float) -> bool:
        """
        Notify the owning chat and delete the alert once delivery is confirmed.

        Raises:
            MissingChatError: if the alert has no resolvable chat
        """
        chat_id = self.store.resolve_chat_id(alert)
        text = template_price_triggered(alert.to_dict(), price)

        if not await self.send(chat_id, text):
            logger.warning(f"Delivery failed for alert {alert.id} (chat {chat_id}), keeping it for next run")
            return False

        self.store.delete_alert(chat_id, alert.id)
        self.alerts_triggered += 1
        logger.info(f"Alert {alert.id} triggered: {alert.pair} {alert.direction} {alert.price} @ {price} ({alert.exchange})")
        return True

    async def _evaluate_alert(self, alert: Alert, cache: MarketDataCache) -> bool:
        candle = await cache.get_recent_candle(alert.exchange, alert.pair)
        if candle is None:
            logger.debug(f"Alert {alert.id} skipped: no candle for {alert.pair} on {alert.exchange}")
            return False

        price = check_trigger(alert.direction, alert.price, candle)
        if price is None:
            logger.debug(f"Alert {alert.id} not triggered: {alert.pair} {alert.direction} {alert.price} (H={candle.high} L={candle.low})")
            return False

        return await self._trigger(alert, price)

    async def evaluate_all(self) -> Dict[str, int]:
        """
        Run one evaluation pass over every price alert.

        Per-alert failures are logged and skipped; the alert stays stored
        and is picked up again by the next run.

        Returns:
            Run stats: {"checked": 12, "triggered": 1, "failed": 0}
        """
        async with self._run_lock:
            cache = self.new_cache()
            alerts = self.store.list_all_price_alerts()
            stats = {"checked": 0, "triggered": 0, "failed": 0}

            logger.info(f"Evaluating {len(alerts)} price alert(s)")

            for alert in alerts:
                stats["checked"] += 1
                try:
                    if await self._evaluate_alert(alert, cache):
                        stats["triggered"] += 1
                except Exception as e:
                    stats["failed"] += 1
                    logger.error(f"Alert {alert.id} evaluation failed ({alert.pair} on {alert.exchange}): {e}")

            self.runs += 1
            self.last_run_time = datetime.now(timezone.utc)
            logger.info(
                f"Evaluation run complete: {stats['checked']} checked, "
                f"{stats['triggered']} triggered, {stats['failed']} failed, "
                f"{cache.fetch_count} market fetch(es)"
            )
            return stats

    async def run_once(self) -> Optional[Dict[str, int]]:
        """Run one evaluation within the wall-clock budget."""
        try:
            return await asyncio.wait_for(self.evaluate_all(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Evaluation run exceeded {self.timeout_seconds}s budget, aborted")
            return None

    async def run(self):
        """Main evaluator loop (runs until stopped or cancelled)."""
        self.running = True
        logger.info(f"Alert evaluator started (every {self.interval_seconds}s)")

        while self.running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Error in alert evaluator loop: {e}")

            await asyncio.sleep(self.interval_seconds)

    async def stop(self):
        """Stop the evaluator loop."""
        logger.info("Stopping alert evaluator...")
        self.running = False


# Global instance
_evaluator_instance: Optional[AlertEvaluator] = None


def get_alert_evaluator() -> AlertEvaluator:
    """Get global alert evaluator instance (singleton)."""
    global _evaluator_instance

    if _evaluator_instance is None:
        from cryptoalert.config import get_candle_timeframe, get_evaluator_config
        from cryptoalert.telegram_bot import send_message

        evaluator_config = get_evaluator_config()
        _evaluator_instance = AlertEvaluator(
            store=get_alert_store(),
            pool=get_exchange_pool(),
            send=send_message,
            timeframe=get_candle_timeframe(),
            interval_seconds=evaluator_config['interval_seconds'],
            timeout_seconds=evaluator_config['timeout_seconds']
        )

    return _evaluator_instance
