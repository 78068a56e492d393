import argparse
import asyncio
import signal
from loguru import logger

from cryptoalert.config import (
    LOG_LEVEL,
    WEBHOOK_SECRET,
    get_config,
    get_evaluator_config,
    get_bot_name,
    get_bot_version
)
from cryptoalert.utils.logging import setup_logging
from cryptoalert.telegram_bot import send_message, send_error_to_admin, set_webhook
from cryptoalert.storage.db import init_db
from cryptoalert.rules.engine import get_alert_evaluator
from cryptoalert.webhook import get_webhook_server


# Global shutdown event
shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """Handle SIGTERM and SIGINT for graceful shutdown."""
    logger.info(f"Received signal {sig}, initiating graceful shutdown...")
    shutdown_event.set()


async def startup_sequence():
    """
    Execute bot startup sequence:
    1. Initialize database
    2. Load configuration
    """
    logger.info("=" * 60)
    logger.info(f"Starting {get_bot_name()} v{get_bot_version()}")
    logger.info("=" * 60)

    try:
        logger.info("Initializing database...")
        init_db()

        logger.info("Loading configuration...")
        config = get_config()
        logger.info(f"Config loaded: default exchange={config.get('market.default_exchange')}, "
                    f"timeframe={config.get('market.timeframe')}")

        if not WEBHOOK_SECRET:
            logger.warning("No WEBHOOK_SECRET or BOT_TOKEN set, every webhook call will be rejected")

        logger.info("Startup sequence completed successfully")
        return True

    except Exception as e:
        logger.exception(f"Startup sequence failed: {e}")
        await send_error_to_admin("Startup", str(e), "Bot failed to start")
        return False


async def shutdown_sequence():
    """Stop the evaluator loop."""
    logger.info("Starting shutdown sequence...")

    try:
        evaluator = get_alert_evaluator()
        await evaluator.stop()
        logger.info("Shutdown sequence completed")

    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


async def run_bot():
    """
    Main bot runtime - webhook server and evaluator loop in parallel.
    """
    startup_ok = await startup_sequence()
    if not startup_ok:
        logger.error("Startup failed, exiting...")
        return

    evaluator = get_alert_evaluator()
    server = get_webhook_server()

    tasks = [asyncio.create_task(server.run(), name="Webhook")]
    if get_evaluator_config()['enabled']:
        tasks.append(asyncio.create_task(evaluator.run(), name="AlertEvaluator"))
    else:
        logger.info("Alert evaluator disabled in config")
    tasks.append(asyncio.create_task(shutdown_event.wait(), name="ShutdownWatcher"))

    try:
        # Wait for shutdown signal
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        logger.info("Shutdown signal received, stopping tasks...")

        for task in pending:
            task.cancel()

        await asyncio.gather(*pending, return_exceptions=True)

    except Exception as e:
        logger.exception(f"Error in main bot runtime: {e}")
        await send_error_to_admin("Runtime", str(e), "Critical error in main loop")

    finally:
        await shutdown_sequence()


async def evaluate_once():
    init_db()
    stats = await get_alert_evaluator().run_once()
    logger.info(f"Evaluation result: {stats}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--init-db", action="store_true", help="Initialize database tables")
    parser.add_argument("--evaluate-once", action="store_true", help="Run a single alert evaluation and exit")
    parser.add_argument("--set-webhook", metavar="URL", help="Register URL/<secret> as the Telegram webhook")
    parser.add_argument("--ping", metavar="CHAT_ID", help="Send test message to a chat")
    args = parser.parse_args()

    setup_logging(LOG_LEVEL)

    if args.init_db:
        init_db()
        logger.info("Database initialized")
        return

    if args.evaluate_once:
        asyncio.run(evaluate_once())
        return

    if args.set_webhook:
        ok = asyncio.run(set_webhook(args.set_webhook, WEBHOOK_SECRET))
        logger.info(f"Webhook registered? {ok}")
        return

    if args.ping:
        ok = asyncio.run(send_message(args.ping, f"{get_bot_name()}: online"))
        logger.info(f"Ping sent? {ok}")
        return

    # Register signal handlers for graceful shutdown
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        logger.info("Received KeyboardInterrupt, shutting down...")
    except Exception as e:
        logger.exception(f"Unhandled exception in main: {e}")
    finally:
        logger.info("Bot stopped")


if __name__ == "__main__":
    main()
