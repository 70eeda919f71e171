"""Summary: Domain model dataclasses for ClanBridge.

Importance: Defines the records stored in the remote document tree and their wire shapes.
Alternatives: Use Pydantic models or pass raw dictionaries around.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Principal:
    """Summary: Verified identity of the caller, supplied by the session layer.

    Importance: Services attribute writes to this user and scope reads to it.
    Alternatives: Pass bare user id strings through every call.
    """

    user_id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class UserInfo:
    """Summary: Public display data embedded in notifications and messages.

    Importance: Lets clients render a sender without an extra user lookup.
    Alternatives: Store only the user id and resolve on read.
    """

    username: str
    display_name: str
    avatar: str

    def to_record(self) -> dict[str, str]:
        return {"username": self.username, "displayName": self.display_name, "avatar": self.avatar}

    @staticmethod
    def from_record(record: dict[str, Any] | None) -> "UserInfo":
        record = record or {}
        return UserInfo(
            username=record.get("username") or "Unknown",
            display_name=record.get("displayName") or "Unknown",
            avatar=record.get("avatar") or "",
        )


@dataclass(frozen=True)
class Notification:
    """Summary: Notification stored under `/notifications/{ownerId}/{id}`.

    Importance: Drives the notification inbox; `read` and `readAt` are mutated in place remotely.
    Alternatives: Keep notifications in a relational table with an owner column.
    """

    id: str
    type: str
    from_user_id: str | None
    from_user_info: UserInfo
    data: dict[str, Any]
    read: bool
    read_at: int | None
    timestamp: int
    created_at: int

    def to_record(self) -> dict[str, Any]:
        """Summary: Serialize to the stored layout (the id is the key, not a field).

        Importance: Keeps compatibility with records written by earlier deployments.
        Alternatives: Store the id redundantly inside the record.
        """

        return {
            "type": self.type,
            "fromUserId": self.from_user_id,
            "fromUserInfo": self.from_user_info.to_record(),
            "data": self.data,
            "read": self.read,
            "readAt": self.read_at,
            "timestamp": self.timestamp,
            "createdAt": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_record()}

    @staticmethod
    def from_record(notification_id: str, record: dict[str, Any]) -> "Notification":
        timestamp = record.get("timestamp") or 0
        return Notification(
            id=notification_id,
            type=record.get("type", ""),
            from_user_id=record.get("fromUserId"),
            from_user_info=UserInfo.from_record(record.get("fromUserInfo")),
            data=record.get("data") or {},
            read=bool(record.get("read", False)),
            read_at=record.get("readAt"),
            timestamp=timestamp,
            created_at=record.get("createdAt") or timestamp,
        )


@dataclass(frozen=True)
class Conversation:
    """Summary: Direct-message conversation stored under `/conversations/{id}`.

    Importance: The participants map is the only relation between users and conversations.
    Alternatives: Maintain a per-user index of conversation ids.
    """

    id: str
    participants: dict[str, bool]
    created_at: int | None = None
    updated_at: int | None = None
    last_message_id: str | None = None

    def has_participant(self, user_id: str) -> bool:
        return bool(self.participants.get(user_id))

    def other_participants(self, user_id: str) -> list[str]:
        return [participant for participant in self.participants if participant != user_id]

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "participants": dict(self.participants),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.last_message_id:
            record["lastMessageId"] = self.last_message_id
        return record

    @staticmethod
    def from_record(conversation_id: str, record: dict[str, Any]) -> "Conversation":
        participants = record.get("participants")
        return Conversation(
            id=conversation_id,
            participants=dict(participants) if isinstance(participants, dict) else {},
            created_at=record.get("createdAt"),
            updated_at=record.get("updatedAt"),
            last_message_id=record.get("lastMessageId"),
        )


@dataclass(frozen=True)
class ChatMessage:
    """Summary: Message stored under `/messages/{conversationId}/{messageId}`.

    Importance: Message trees are written independently of their conversation record.
    Alternatives: Embed messages inside the conversation node.
    """

    id: str
    conversation_id: str
    sender_id: str
    content: str
    timestamp: int
    type: str = "text"
    status: str = "sent"
    read: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        record = {
            **self.extra,
            "senderId": self.sender_id,
            "content": self.content,
            "type": self.type,
            "timestamp": self.timestamp,
            "status": self.status,
        }
        if self.read:
            record["read"] = True
        return record

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "conversationId": self.conversation_id, **self.to_record()}

    @staticmethod
    def from_record(message_id: str, conversation_id: str, record: dict[str, Any]) -> "ChatMessage":
        known = {
            "id", "conversationId", "senderId", "content", "type", "timestamp", "status", "read"
        }
        return ChatMessage(
            id=message_id,
            conversation_id=conversation_id,
            sender_id=record.get("senderId", ""),
            content=record.get("content", ""),
            timestamp=record.get("timestamp") or 0,
            type=record.get("type") or "text",
            status=record.get("status") or "sent",
            read=bool(record.get("read", False)),
            extra={key: value for key, value in record.items() if key not in known},
        )
