# -*- coding: utf-8 -*-
"""
Conversation Engine - turns one Telegram update into one reply.

Handles bot commands, inline button callbacks and the 4-step price alert
dialog. Dialog state is rebuilt from the prompt being replied to
(see cryptoalert.conversation.states), so any worker can serve any update.
"""
import asyncio
from dataclasses import replace
from typing import Any, Dict, List, Optional
import ccxt
from loguru import logger

from cryptoalert.conversation.replies import Reply, force_reply, inline_keyboard
from cryptoalert.conversation.states import AlertDraft, Step, parse_prompt, render_prompt
from cryptoalert.datafeeds.exchange_pool import ExchangePool, UnsupportedExchangeError
from cryptoalert.notif import templates
from cryptoalert.notif.formatter import is_valid_pair, normalize_pair, parse_price
from cryptoalert.rules.engine import ABOVE, BELOW
from cryptoalert.storage.repo import AlertStore

CALLBACKS = {
    "price_alert": "priceAlert",
    "above": ABOVE,
    "below": BELOW,
    "delete_alert": "deleteAlert",
    "donate": "donate",
}


class UnrecognizedUpdateError(ValueError):
    """Raised for update payloads that are neither messages nor callbacks."""


class ConversationEngine:

    def __init__(
        self,
        store: AlertStore,
        pool: ExchangePool,
        default_exchange: str = "binance",
        bot_username: str = "CryptoAlertBot",
        donation_assets: Optional[List[Dict[str, str]]] = None
    ):
        self.store = store
        self.pool = pool
        self.default_exchange = default_exchange
        self.bot_username = bot_username
        self.donation_assets = donation_assets or []

    async def handle_update(self, update: Dict[str, Any]) -> Optional[Reply]:
        """
        Handle one inbound update.

        Returns:
            Reply to send back, or None when the update needs no answer

        Raises:
            UnrecognizedUpdateError: if the payload shape is not supported
        """
        message = update.get("message")
        if isinstance(message, dict):
            self._require_chat_id(message)
            if message.get("new_chat_member"):
                return self._welcome_member(message)
            if not message.get("text"):
                return None
            return await self._handle_message(message)

        callback = update.get("callback_query")
        if isinstance(callback, dict) and isinstance(callback.get("message"), dict):
            self._require_chat_id(callback["message"])
            return await self._handle_callback(callback)

        raise UnrecognizedUpdateError(f"Unrecognized update: {sorted(update.keys())}")

    @staticmethod
    def _require_chat_id(message: Dict[str, Any]) -> None:
        chat = message.get("chat")
        if not isinstance(chat, dict) or chat.get("id") is None:
            raise UnrecognizedUpdateError("Update message has no chat id")

    # ==================== MESSAGES ====================

    def _welcome_member(self, message: Dict[str, Any]) -> Reply:
        chat_id = message["chat"]["id"]
        member = message["new_chat_member"]
        first_name = member.get("first_name", "")

        if member.get("is_bot"):
            return Reply(chat_id, templates.template_welcome_bot(first_name))
        return Reply(chat_id, templates.template_welcome(first_name, self.bot_username))

    async def _handle_message(self, message: Dict[str, Any]) -> Optional[Reply]:
        chat_id = message["chat"]["id"]

        # First contact: register the chat and greet, no command handling
        if self.store.ensure_chat(chat_id):
            first_name = (message.get("from") or {}).get("first_name", "")
            return Reply(chat_id, templates.template_welcome(first_name, self.bot_username))

        received = message["text"].strip().lower()

        reply_to = message.get("reply_to_message")
        if isinstance(reply_to, dict):
            reply = await self._handle_prompt_reply(chat_id, reply_to.get("text") or "", received)
            if reply is not None:
                return reply

        return await self._handle_command(chat_id, received)

    async def _handle_command(self, chat_id, received: str) -> Optional[Reply]:
        command, _, rest = received.partition(" ")
        command, _, addressee = command.partition("@")
        rest = rest.strip()

        # Group chats: commands addressed to another bot are not ours
        if addressee and addressee != self.bot_username.lower():
            return None

        if command == "/help":
            return Reply(chat_id, templates.HELP)

        if command == "/now":
            if not rest:
                return Reply(chat_id, templates.template_now_missing_argument())
            return Reply(chat_id, await self._now(rest))

        if command == "/setalert":
            markup = inline_keyboard([[("Price alert", CALLBACKS["price_alert"])]])
            return Reply(chat_id, templates.ALERT_KIND_QUESTION, markup)

        if command == "/myalerts":
            alerts = self.store.list_alerts(chat_id)
            if not alerts:
                return Reply(chat_id, templates.NO_ALERTS)
            return Reply(chat_id, templates.template_alert_list([a.to_dict() for a in alerts]))

        if command == "/deletealert":
            alerts = self.store.list_alerts(chat_id)
            if not alerts:
                return Reply(chat_id, templates.NO_ALERTS)
            rows = [
                [(templates.template_alert_line(alert.to_dict(), i), f"{CALLBACKS['delete_alert']}{alert.id}")]
                for i, alert in enumerate(alerts)
            ]
            return Reply(chat_id, templates.DELETE_QUESTION, inline_keyboard(rows))

        if command == "/donate":
            buttons = [(asset["symbol"], self._donate_token(asset)) for asset in self.donation_assets]
            return Reply(chat_id, templates.DONATE_MSG, inline_keyboard([buttons]))

        logger.debug(f"Unknown command from chat {chat_id}: {command}")
        return Reply(chat_id, templates.template_help_unknown_command())

    async def _now(self, text: str) -> str:
        pair = normalize_pair(text)
        ticker = await asyncio.to_thread(self.pool.fetch_ticker, self.default_exchange, pair)
        if ticker is None:
            return templates.template_unknown_pair(pair)
        if ticker.get("last") is None:
            return templates.template_no_price(pair, self.default_exchange)
        return templates.template_now_price(pair, ticker["last"])

    # ==================== PRICE ALERT DIALOG ====================

    def _prompt(self, chat_id, step: Step, draft: AlertDraft, error: Optional[str] = None) -> Reply:
        text = render_prompt(step, draft, error)
        if step is Step.AWAIT_DIRECTION:
            markup = inline_keyboard([[("Above", CALLBACKS["above"]), ("Below", CALLBACKS["below"])]])
        else:
            markup = force_reply()
        return Reply(chat_id, text, markup)

    async def _handle_prompt_reply(self, chat_id, prompt_text: str, answer: str) -> Optional[Reply]:
        """
        Advance the dialog from the prompt the user replied to.

        Returns:
            Next prompt or confirmation, or None if the replied message is not a dialog prompt
        """
        parsed = parse_prompt(prompt_text)
        if parsed is None:
            return None
        step, draft = parsed

        if step is Step.AWAIT_PAIR:
            pair = normalize_pair(answer)
            if not is_valid_pair(pair):
                return self._prompt(chat_id, step, draft, f'"{answer}" is not a pair, use the BASE/QUOTE form, e.g. BTC/EUR.')
            return self._prompt(chat_id, Step.AWAIT_PRICE, replace(draft, pair=pair))

        if step is Step.AWAIT_PRICE:
            if parse_price(answer) is None:
                return self._prompt(chat_id, step, draft, f'"{answer}" is not a valid price, send a positive number.')
            return self._prompt(chat_id, Step.AWAIT_DIRECTION, replace(draft, price=answer))

        if step is Step.AWAIT_DIRECTION:
            return self._prompt(chat_id, step, draft, "Please choose one of the buttons below.")

        return await self._create_alert(chat_id, draft, answer)

    async def _create_alert(self, chat_id, draft: AlertDraft, exchange: str) -> Reply:
        error = await self._validate_exchange(exchange, draft.pair)
        if error:
            return self._prompt(chat_id, Step.AWAIT_EXCHANGE, draft, error)

        price = parse_price(draft.price)
        if price is None or draft.direction not in (ABOVE, BELOW):
            logger.warning(f"Corrupted price alert prompt in chat {chat_id}: {draft}")
            return Reply(chat_id, "Something went wrong with this alert, please start again with /setalert")

        alert = self.store.add_alert(chat_id, draft.pair, price, draft.direction, exchange)
        return Reply(chat_id, templates.template_alert_created(alert.to_dict()))

    async def _validate_exchange(self, exchange: str, pair: str) -> Optional[str]:
        """
        Check the exchange exists and lists the pair.

        Returns:
            Error text for the user, or None if valid
        """
        try:
            listed = await asyncio.to_thread(self.pool.lists_pair, exchange, pair)
        except UnsupportedExchangeError as e:
            return f"{e}, send an exchange id such as {self.default_exchange}."
        except ccxt.BaseError as e:
            logger.warning(f"Could not load markets of {exchange}: {e}")
            return f"Could not reach {exchange} right now, try again later."

        if not listed:
            return f"{pair} is not listed on {exchange}."
        return None

    # ==================== CALLBACKS ====================

    def _donate_token(self, asset: Dict[str, str]) -> str:
        return f"{CALLBACKS['donate']}{asset['symbol'].capitalize()}"

    async def _handle_callback(self, callback: Dict[str, Any]) -> Optional[Reply]:
        message = callback["message"]
        chat_id = message["chat"]["id"]
        data = callback.get("data") or ""

        if data == CALLBACKS["price_alert"]:
            return self._prompt(chat_id, Step.AWAIT_PAIR, AlertDraft())

        if data in (CALLBACKS["above"], CALLBACKS["below"]):
            parsed = parse_prompt(message.get("text") or "")
            if parsed is None or parsed[0] is not Step.AWAIT_DIRECTION:
                return Reply(chat_id, "This alert setup has expired, please start again with /setalert")
            return self._prompt(chat_id, Step.AWAIT_EXCHANGE, replace(parsed[1], direction=data))

        for asset in self.donation_assets:
            if data == self._donate_token(asset):
                return Reply(chat_id, photo=asset["image"], caption=asset["address"])

        if data.startswith(CALLBACKS["delete_alert"]):
            return self._delete_alert(chat_id, data[len(CALLBACKS["delete_alert"]):])

        logger.debug(f"Ignoring unknown callback from chat {chat_id}: {data}")
        return None

    def _delete_alert(self, chat_id, raw_id: str) -> Reply:
        try:
            alert_id = int(raw_id)
        except ValueError:
            return Reply(chat_id, templates.template_alert_not_found())

        alert = self.store.get_alert(chat_id, alert_id)
        if alert is None or not self.store.delete_alert(chat_id, alert_id):
            return Reply(chat_id, templates.template_alert_not_found())

        logger.info(f"Alert {alert_id} deleted by chat {chat_id}")
        return Reply(chat_id, templates.template_alert_deleted(alert.to_dict()))


# Global instance
_engine_instance: Optional[ConversationEngine] = None


def get_conversation_engine() -> ConversationEngine:
    """Get global conversation engine instance (singleton)."""
    global _engine_instance

    if _engine_instance is None:
        from cryptoalert.config import get_bot_username, get_default_exchange, get_donation_assets
        from cryptoalert.datafeeds.exchange_pool import get_exchange_pool
        from cryptoalert.storage.repo import get_alert_store

        _engine_instance = ConversationEngine(
            store=get_alert_store(),
            pool=get_exchange_pool(),
            default_exchange=get_default_exchange(),
            bot_username=get_bot_username(),
            donation_assets=get_donation_assets()
        )

    return _engine_instance
