from typing import List
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, Float, ForeignKey, Index

PRICE_ALERT = "Price alert"


class Base(DeclarativeBase):
    pass


class Chat(Base):
    __tablename__ = "chats"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)              # stringified telegram chat id

    alerts: Mapped[List["Alert"]] = relationship(
        back_populates="chat", cascade="all, delete-orphan", order_by="Alert.id"
    )


class Alert(Base):
    __tablename__ = "alerts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[str] = mapped_column(ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=PRICE_ALERT)
    pair: Mapped[str] = mapped_column(String(30), nullable=False)              # ex: BTC/USDT
    price: Mapped[float] = mapped_column(Float, nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)         # above | below
    exchange: Mapped[str] = mapped_column(String(30), nullable=False)          # ccxt exchange id

    chat: Mapped["Chat"] = relationship(back_populates="alerts")

    __table_args__ = (
        Index("ix_alert_type", "type"),
        Index("ix_alert_chat", "chat_id"),
    )

    def to_dict(self) -> dict:
        """Persisted alert shape, without store ids."""
        return {
            "type": self.type,
            "pair": self.pair,
            "price": self.price,
            "direction": self.direction,
            "exchange": self.exchange,
        }
