"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to Telethon types or the on-disk log format.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

SELF_SENDER_NAME = "ME"


class ChatType(str, Enum):
    """The single type tag assigned to every chat by the classifier."""

    DM = "dm"
    GROUP = "group"
    CHANNEL = "channel"
    BOT = "bot"


@dataclass(frozen=True)
class EntityInfo:
    """Platform-neutral view of a chat or user entity."""

    id: int
    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    is_broadcast: bool = False
    is_megagroup: bool = False
    is_bot: bool = False
    participant_count: Optional[int] = None
    folder_id: Optional[int] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()

    @property
    def display_name(self) -> str:
        return self.title or self.full_name


@dataclass(frozen=True)
class IncomingMessage:
    """Minimal inbound event consumed by the ingestion pipeline."""

    chat_id: int
    sender_id: Optional[int]
    message_id: int
    text: str
    send_time: int
    is_forwarded: bool = False
    is_outgoing: bool = False
    # Populated only when the platform already shipped the sender with the
    # message (history fetches); live events resolve senders via lookups.
    sender: Optional[EntityInfo] = None

    @property
    def dedup_key(self) -> str:
        return f"{self.chat_id}:{self.message_id}"


@dataclass(frozen=True)
class Decision:
    """Outcome of a filter evaluation with a human-readable reason."""

    included: bool
    reason: str


@dataclass(frozen=True)
class LogEntry:
    """Persisted representation of one accepted message."""

    timestamp: str
    message_id: int
    chat_id: str
    chat_title: str
    chat_type: ChatType
    sender_name: str
    sender_id: str
    text: str
    event_date: int
    is_from_self: bool
    is_mention: bool
    filter_mode_used: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "messageId": self.message_id,
            "chatId": self.chat_id,
            "chatTitle": self.chat_title,
            "chatType": self.chat_type.value,
            "senderName": self.sender_name,
            "senderId": self.sender_id,
            "text": self.text,
            "eventDate": self.event_date,
            "isFromSelf": self.is_from_self,
            "isMention": self.is_mention,
            "filterModeUsed": self.filter_mode_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        """Build an entry from its JSON form.

        Older log files used ``date``, ``isFromMe`` and ``filterMode``; those
        keys are still accepted so historical windows stay readable.
        """

        return cls(
            timestamp=str(data["timestamp"]),
            message_id=int(data["messageId"]),
            chat_id=str(data["chatId"]),
            chat_title=str(data.get("chatTitle") or ""),
            chat_type=ChatType(data.get("chatType", ChatType.DM.value)),
            sender_name=str(data.get("senderName") or ""),
            sender_id=str(data.get("senderId") or ""),
            text=str(data.get("text") or ""),
            event_date=int(data.get("eventDate", data.get("date", 0)) or 0),
            is_from_self=bool(data.get("isFromSelf", data.get("isFromMe", False))),
            is_mention=bool(data.get("isMention", False)),
            filter_mode_used=str(data.get("filterModeUsed", data.get("filterMode", ""))),
        )

    @property
    def dedup_key(self) -> str:
        return f"{self.chat_id}:{self.message_id}"
