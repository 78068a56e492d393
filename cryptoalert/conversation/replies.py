"""
Outbound chat actions returned in the webhook response body.
Telegram executes the method named in the payload on the bot's behalf.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


def force_reply() -> Dict[str, Any]:
    return {"force_reply": True}


def inline_keyboard(rows: List[List[Tuple[str, str]]]) -> Dict[str, Any]:
    """
    Build an inline keyboard.

    Args:
        rows: Button rows as (text, callback_data) pairs
    """
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data} for text, data in row]
            for row in rows
        ]
    }


@dataclass
class Reply:
    chat_id: Any
    text: Optional[str] = None
    reply_markup: Optional[Dict[str, Any]] = None
    photo: Optional[str] = None
    caption: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.photo:
            payload = {"method": "sendPhoto", "chat_id": self.chat_id, "photo": self.photo}
            if self.caption:
                payload["caption"] = self.caption
            return payload

        payload = {"method": "sendMessage", "chat_id": self.chat_id, "text": self.text}
        if self.reply_markup:
            payload["reply_markup"] = self.reply_markup
        return payload
