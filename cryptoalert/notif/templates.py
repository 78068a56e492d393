# -*- coding: utf-8 -*-
"""
Message templates for the Telegram bot.
Every text the bot sends lives here.
"""
from typing import Dict

from cryptoalert.notif.formatter import format_price, split_pair

HELP = """Possible commands:

/help — Display this help.
/donate — Makes his creator happy 🙂.
/now {pair} — Display the current price of given pair. E.g. /now btc/eur
/setalert — Creates a new alert.
/myalerts — Display all your alerts.
/deletealert — Deletes a alert."""

DONATE_MSG = """Thank you, I really appreciate your help to main my services running.
What currency do you want to transfer?"""

NO_ALERTS = "You don't have alerts yet. You can create one by using /setalert command"

ALERT_KIND_QUESTION = "What kind of alert?"

DELETE_QUESTION = "Which one?"


def template_help_unknown_command() -> str:
    return f"Unknown command. {HELP}"


def template_now_missing_argument() -> str:
    return f"/now command needs 1 argument. {HELP}"


def template_now_price(pair: str, last_price: float) -> str:
    _, quote = split_pair(pair)
    return f"{format_price(last_price)} {quote}"


def template_no_price(pair: str, exchange: str) -> str:
    return f"No recent price for {pair} on {exchange}, try again later."


def template_unknown_pair(pair: str) -> str:
    return f"Unknown pair: {pair}"


def template_welcome(first_name: str, bot_username: str) -> str:
    return f"""Welcome {first_name}, I'm @{bot_username} 🤖.
I'll help to keep you informed about changes in the cryptocurrency world.
If I was useful to you, please consider a donation to his creator at /donate command, I use a backend service that have costs."""


def template_welcome_bot(first_name: str) -> str:
    return f"Welcome brother {first_name}. Together we make this world better 🤖."


def template_alert_line(alert: Dict, index: int) -> str:
    """
    One alert as a numbered line.

    Args:
        alert: {"type", "pair", "price", "direction", "exchange"}
        index: 0-based position; rendered 1-based
    """
    _, quote = split_pair(alert["pair"])
    return (
        f"{index + 1}: {alert['type']} for {alert['pair']}, when price goes "
        f"{alert['direction']} {format_price(alert['price'])} {quote} on {alert['exchange']}"
    )


def template_alert_list(alerts) -> str:
    lines = [template_alert_line(alert, i) for i, alert in enumerate(alerts)]
    return "Your alerts:\n" + "\n".join(lines)


def template_alert_created(alert: Dict) -> str:
    _, quote = split_pair(alert["pair"])
    return (
        f"Created a price alert for {alert['pair']}, when price goes "
        f"{alert['direction']} {format_price(alert['price'])} {quote} on {alert['exchange']}"
    )


def template_alert_deleted(alert: Dict) -> str:
    _, quote = split_pair(alert["pair"])
    return (
        f"Deleted alert for {alert['pair']}, when price goes "
        f"{alert['direction']} {format_price(alert['price'])} {quote} on {alert['exchange']}"
    )


def template_alert_not_found() -> str:
    return "That alert no longer exists, it was already triggered or deleted. Use /myalerts to see your alerts."


def template_price_triggered(alert: Dict, price: float) -> str:
    """
    Notification sent when a price alert fires.

    Args:
        alert: {"type", "pair", "price", "direction", "exchange"}
        price: Candle extreme that crossed the threshold
    """
    base, quote = split_pair(alert["pair"])
    return (
        f"⚠️ {alert['type']}: {base} has reached the price of {format_price(price)} {quote}!\n"
        f"I sent this message because you requested me to inform when {base} goes "
        f"{alert['direction']} {format_price(alert['price'])} {quote} on {alert['exchange']}."
    )


def template_error_admin(error_type: str, error_msg: str, context: str = "") -> str:
    """Template for admin error reports."""
    text = f"🚨 ERROR: {error_type}\n\n{error_msg}"
    if context:
        text += f"\n\nContext: {context}"
    return text
