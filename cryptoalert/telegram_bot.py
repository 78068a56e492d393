from loguru import logger
from telegram import Bot
from telegram.error import TelegramError

from cryptoalert.config import BOT_TOKEN, ADMIN_CHAT_ID


async def _send_message_async(text: str, chat_id: str) -> None:
    """Send message to specific chat."""
    async with Bot(BOT_TOKEN) as bot:
        await bot.send_message(chat_id=chat_id, text=text)


async def send_message(chat_id, text: str) -> bool:
    """
    Send a text message to a chat.

    Args:
        chat_id: Telegram chat id (int or numeric string)
        text: Message text

    Returns:
        True if Telegram accepted the message, False otherwise
    """
    if not BOT_TOKEN:
        logger.info(f"[dry-run] MSG -> {chat_id}: {text}")
        return True

    try:
        await _send_message_async(text, str(chat_id))
        return True
    except TelegramError as e:
        logger.error(f"Telegram rejected message to {chat_id}: {e}")
        return False
    except Exception as e:
        logger.exception(f"Failed to send message to {chat_id}: {e}")
        return False


async def send_error_to_admin(error_type: str, error_msg: str, context: str = "") -> bool:
    """
    Send error report to the admin chat.

    Args:
        error_type: Type of error (e.g., "Startup", "Evaluator")
        error_msg: Error message
        context: Additional context

    Returns:
        True if sent successfully (or no admin chat configured)
    """
    from cryptoalert.notif.templates import template_error_admin

    if not ADMIN_CHAT_ID:
        logger.debug(f"No admin chat configured, error not forwarded: {error_type}")
        return True

    message = template_error_admin(error_type, error_msg, context)
    return await send_message(ADMIN_CHAT_ID, message)


async def set_webhook(url: str, secret: str) -> bool:
    """Register the webhook URL (with secret path suffix) with Telegram."""
    if not BOT_TOKEN:
        logger.info(f"[dry-run] set_webhook -> {url}/<secret>")
        return True

    try:
        async with Bot(BOT_TOKEN) as bot:
            return await bot.set_webhook(url=f"{url.rstrip('/')}/{secret}")
    except TelegramError as e:
        logger.error(f"Failed to set webhook: {e}")
        return False
