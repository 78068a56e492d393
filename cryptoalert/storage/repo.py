"""
Alert store gateway: chats and their price alerts.
Reads return detached snapshots; no transaction spans two calls.
"""
from typing import List, Optional
from loguru import logger
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from .models import Alert, Chat, PRICE_ALERT


class MissingChatError(LookupError):
    """Raised when an alert's owning chat cannot be resolved."""


class AlertStore:

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def chat_exists(self, chat_id) -> bool:
        with self.session_factory() as session:
            return session.get(Chat, str(chat_id)) is not None

    def ensure_chat(self, chat_id) -> bool:
        """
        Create the chat record if missing.

        Returns:
            True if the chat was created by this call
        """
        with self.session_factory() as session:
            if session.get(Chat, str(chat_id)) is not None:
                return False
            session.add(Chat(id=str(chat_id)))
            try:
                session.commit()
            except IntegrityError:
                # Concurrent first messages: another request registered it
                session.rollback()
                return False
            logger.info(f"New chat registered: {chat_id}")
            return True

    def list_all_price_alerts(self) -> List[Alert]:
        """Cross-chat scan of every price alert, oldest first."""
        with self.session_factory() as session:
            stmt = select(Alert).where(Alert.type == PRICE_ALERT).order_by(Alert.id)
            return list(session.scalars(stmt))

    def list_alerts(self, chat_id) -> List[Alert]:
        with self.session_factory() as session:
            stmt = select(Alert).where(Alert.chat_id == str(chat_id)).order_by(Alert.id)
            return list(session.scalars(stmt))

    def get_alert(self, chat_id, alert_id: int) -> Optional[Alert]:
        with self.session_factory() as session:
            alert = session.get(Alert, alert_id)
            if alert is None or alert.chat_id != str(chat_id):
                return None
            return alert

    def add_alert(self, chat_id, pair: str, price: float, direction: str, exchange: str) -> Alert:
        with self.session_factory() as session:
            alert = Alert(
                chat_id=str(chat_id),
                type=PRICE_ALERT,
                pair=pair,
                price=float(price),
                direction=direction,
                exchange=exchange,
            )
            session.add(alert)
            session.commit()
            logger.info(f"Alert created for chat {chat_id}: {pair} {direction} {price} on {exchange}")
            return alert

    def delete_alert(self, chat_id, alert_id: int) -> bool:
        """
        Delete an alert by its store id, scoped to the owning chat.

        Returns:
            True if a record was deleted, False if it no longer exists
        """
        with self.session_factory() as session:
            stmt = delete(Alert).where(Alert.id == alert_id, Alert.chat_id == str(chat_id))
            result = session.execute(stmt)
            session.commit()
            return result.rowcount > 0

    def resolve_chat_id(self, alert: Alert) -> str:
        """
        Resolve the owning chat id of an alert through its parent record.

        Raises:
            MissingChatError: if the parent chat record does not exist
        """
        with self.session_factory() as session:
            chat = session.get(Chat, alert.chat_id) if alert.chat_id else None
            if chat is None:
                raise MissingChatError(f"No chat found for alert {alert.id}")
            return chat.id


# Global instance
_store_instance: Optional[AlertStore] = None


def get_alert_store() -> AlertStore:
    """Get global alert store bound to the configured database (singleton)."""
    global _store_instance
    if _store_instance is None:
        from .db import SessionLocal
        _store_instance = AlertStore(SessionLocal)
    return _store_instance
