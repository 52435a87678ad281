from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ANONYMOUS_ADMIN_USERNAME = "GroupAnonymousBot"


@dataclass(frozen=True, slots=True)
class TelegramIncomingMessage:
    transport: str
    chat_id: int
    message_id: int
    text: str
    sender_id: int | None = None
    sender_username: str | None = None
    chat_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_anonymous_admin(self) -> bool:
        return self.sender_username == ANONYMOUS_ADMIN_USERNAME

    @property
    def is_group(self) -> bool:
        return self.chat_type in {"group", "supergroup"}

    @property
    def identity(self) -> int:
        """Rate-limit identity: the sender, or the chat for anonymous admins."""
        if self.is_anonymous_admin or self.sender_id is None:
            return self.chat_id
        return self.sender_id

    @property
    def sender_label(self) -> str:
        if self.is_anonymous_admin:
            return "Anonymous Admin"
        if self.sender_username:
            return f"@{self.sender_username}"
        return f"user {self.sender_id}"


def parse_incoming_update(update: dict[str, Any]) -> TelegramIncomingMessage | None:
    msg = update.get("message")
    if not isinstance(msg, dict):
        return None
    text = msg.get("text")
    if not isinstance(text, str):
        return None
    chat = msg.get("chat")
    if not isinstance(chat, dict):
        return None
    chat_id = chat.get("id")
    message_id = msg.get("message_id")
    if not isinstance(chat_id, int) or not isinstance(message_id, int):
        return None
    sender = msg.get("from")
    sender_id: int | None = None
    sender_username: str | None = None
    if isinstance(sender, dict):
        raw_id = sender.get("id")
        sender_id = raw_id if isinstance(raw_id, int) else None
        raw_username = sender.get("username")
        sender_username = raw_username if isinstance(raw_username, str) else None
    chat_type = chat.get("type")
    return TelegramIncomingMessage(
        transport="telegram",
        chat_id=chat_id,
        message_id=message_id,
        text=text,
        sender_id=sender_id,
        sender_username=sender_username,
        chat_type=chat_type if isinstance(chat_type, str) else None,
        raw=msg,
    )
