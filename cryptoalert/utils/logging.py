from loguru import logger
import logging
import sys
import os

# Chatty stdlib loggers of ccxt, python-telegram-bot and aiohttp
QUIET_LOGGERS = ("ccxt", "httpx", "httpcore", "telegram.ext", "aiohttp.access")

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(level: str = "INFO", log_dir: str = None):
    """
    Configure logging:
    - stdout: for container logs
    - file: <log_dir>/alerts.log with rotation (10MB, 7 backups)

    Args:
        level: Minimum level for both sinks
        log_dir: Directory for the file sink (default: <repo>/logs)
    """
    logger.remove()

    logger.add(sys.stdout, level=level, format=LOG_FORMAT, backtrace=False, diagnose=False)

    if log_dir is None:
        log_dir = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, "alerts.log")
    logger.add(
        log_file,
        level=level,
        format=LOG_FORMAT,
        rotation="10 MB",
        retention=7,
        compression="gz",
        backtrace=True,
        diagnose=True,
        enqueue=True
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={level}, file={log_file}")
    return logger
