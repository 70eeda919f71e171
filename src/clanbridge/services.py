"""Summary: Core application services for ClanBridge.

Importance: Builds user, notification, and conversation operations on top of the REST bridge.
Alternatives: Call the bridge directly from HTTP handlers.

The remote store offers no transactions at this boundary. Multi-step operations here are best
effort and their consistency windows are documented on each method.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from clanbridge.cache import EntityCache
from clanbridge.errors import BridgeError, NotFound
from clanbridge.ids import IdGenerator
from clanbridge.models import ChatMessage, Conversation, Notification, Principal, UserInfo
from clanbridge.storage.rest_bridge import RestBridge, build_path


logger = logging.getLogger(__name__)

ONLINE_WINDOW_MS = 5 * 60 * 1000


def now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


@dataclass(frozen=True)
class UserService:
    """Summary: Reads and writes user profiles under `/users/{id}`.

    Importance: The hot entity of the platform; reads go through the entity cache.
    Alternatives: Read profiles straight from the bridge on every request.
    """

    bridge: RestBridge
    cache: EntityCache
    clock: Callable[[], float] = time.time

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Summary: Fetch a user profile, served from cache while fresh.

        Importance: Conversation listings look up the same users many times in one burst.
        Alternatives: Preload all users at startup.
        """

        path = build_path("users", user_id)
        return await self.cache.get_or_fetch(user_id, lambda: self.bridge.get(path))

    async def require_user(self, user_id: str) -> dict[str, Any]:
        user = await self.get_user(user_id)
        if not user:
            raise NotFound("User", user_id)
        return user

    async def set_user(self, user_id: str, data: dict[str, Any]) -> None:
        """Summary: Replace a user profile and drop its cache entry.

        Importance: The next read after a write fetches fresh data.
        Alternatives: Write through to the cache with the new value.
        """

        await self.bridge.put(build_path("users", user_id), data)
        self.cache.invalidate(user_id)
        logger.info("Stored profile for user %s.", user_id)

    async def update_last_seen(self, user_id: str) -> int:
        seen = now_ms(self.clock)
        await self.bridge.put(build_path("users", user_id, "lastSeen"), seen)
        self.cache.invalidate(user_id)
        return seen

    async def register(self, principal: Principal) -> dict[str, Any]:
        """Summary: Create or overwrite the profile of the calling user.

        Importance: Only registered users can be messaged.
        Alternatives: Create profiles lazily on first message.
        """

        now = now_ms(self.clock)
        record = {
            "discordId": principal.user_id,
            "username": principal.name or "Unknown",
            "displayName": principal.name or "Unknown",
            "avatar": principal.image or "",
            "email": principal.email or "",
            "isRegistered": True,
            "lastSeen": now,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.set_user(principal.user_id, record)
        return record

    async def is_registered(self, user_id: str) -> bool:
        user = await self.get_user(user_id)
        return bool(user and user.get("isRegistered") is True)

    async def public_info(self, user_id: str) -> UserInfo:
        return UserInfo.from_record(await self.get_user(user_id))

    def is_online(self, user: dict[str, Any] | None) -> bool:
        last_seen = (user or {}).get("lastSeen") or 0
        return now_ms(self.clock) - last_seen < ONLINE_WINDOW_MS


@dataclass(frozen=True)
class NotificationService:
    """Summary: Manages per-user notifications under `/notifications/{ownerId}`.

    Importance: Notifications are the main fan-out of social activity to users.
    Alternatives: Push notifications through a message queue.
    """

    bridge: RestBridge
    ids: IdGenerator = field(default_factory=IdGenerator)
    clock: Callable[[], float] = time.time

    async def list_notifications(
        self, owner_id: str, limit: int = 50, unread_only: bool = False
    ) -> list[Notification]:
        """Summary: Return the newest notifications of a user.

        Importance: Sorting and limiting happen here because the REST path cannot order results.
        Alternatives: Use the store's orderBy/limitToLast query parameters with an index.
        """

        if limit < 1:
            raise ValueError("limit must be at least 1")
        records = await self.bridge.get(build_path("notifications", owner_id)) or {}
        notifications = [
            Notification.from_record(notification_id, record)
            for notification_id, record in records.items()
            if isinstance(record, dict)
        ]
        notifications.sort(key=lambda notification: notification.timestamp, reverse=True)
        notifications = notifications[:limit]
        if unread_only:
            notifications = [notification for notification in notifications if not notification.read]
        return notifications

    async def summary(
        self, owner_id: str, limit: int = 50, unread_only: bool = False
    ) -> dict[str, Any]:
        """Summary: Notifications plus total and unread counts of the fetched window.

        Importance: Matches the payload the notification bell renders.
        Alternatives: Compute counts client-side.
        """

        notifications = await self.list_notifications(owner_id, limit)
        unread = [notification for notification in notifications if not notification.read]
        returned = unread if unread_only else notifications
        return {
            "notifications": [notification.to_dict() for notification in returned],
            "total": len(notifications),
            "unreadCount": len(unread),
        }

    async def create(
        self,
        owner_id: str,
        notification_type: str,
        from_user_id: str | None = None,
        from_user_info: UserInfo | None = None,
        data: dict[str, Any] | None = None,
    ) -> Notification:
        """Summary: Store a new unread notification for a user.

        Importance: A fresh key is generated locally so the write is a single PUT.
        Alternatives: POST to the owner node and use the store's push id.
        """

        if not notification_type:
            raise ValueError("Notification type is required")
        now = now_ms(self.clock)
        notification = Notification(
            id=self.ids.new_id("notif"),
            type=notification_type,
            from_user_id=from_user_id,
            from_user_info=from_user_info or UserInfo.from_record(None),
            data=data or {},
            read=False,
            read_at=None,
            timestamp=now,
            created_at=now,
        )
        await self.bridge.put(
            build_path("notifications", owner_id, notification.id), notification.to_record()
        )
        logger.info("Created %s notification %s for %s.", notification_type, notification.id, owner_id)
        return notification

    async def mark_read(self, owner_id: str, notification_id: str) -> None:
        """Summary: Set `read` then `readAt` on one notification.

        Importance: Two independent writes; a failure between them leaves read=true with
        readAt=null, which readers tolerate.
        Alternatives: One PATCH on the notification node.
        """

        path = build_path("notifications", owner_id, notification_id)
        await self.bridge.put(f"{path}/read", True)
        await self.bridge.put(f"{path}/readAt", now_ms(self.clock))

    async def mark_all_read(self, owner_id: str) -> int:
        """Summary: Mark every unread notification of a user as read with one PATCH.

        Importance: The PATCH is atomic, but it only covers notifications seen by the preceding
        read. Anything created in between stays unread.
        Alternatives: Compare-and-swap on a version tag, which the store does not offer here.
        """

        path = build_path("notifications", owner_id)
        records = await self.bridge.get(path) or {}
        now = now_ms(self.clock)
        updates: dict[str, Any] = {}
        for notification_id, record in records.items():
            if isinstance(record, dict) and not record.get("read"):
                updates[f"{notification_id}/read"] = True
                updates[f"{notification_id}/readAt"] = now
        if updates:
            await self.bridge.patch(path, updates)
        count = len(updates) // 2
        logger.info("Marked %s notifications read for %s.", count, owner_id)
        return count

    async def delete(self, owner_id: str, notification_id: str) -> None:
        await self.bridge.delete(build_path("notifications", owner_id, notification_id))


@dataclass(frozen=True)
class ConversationService:
    """Summary: Direct-message conversations and their messages.

    Importance: Conversations and messages live in separate trees that are not linked
    transactionally; this service keeps them in step on a best-effort basis.
    Alternatives: Store messages inside the conversation node.
    """

    bridge: RestBridge
    users: UserService
    notifications: NotificationService
    ids: IdGenerator = field(default_factory=IdGenerator)
    clock: Callable[[], float] = time.time

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        """Summary: Return conversations whose participants include the user.

        Importance: The whole conversation tree is read and filtered here because the REST path
        cannot filter by participant. Cost grows with the total number of conversations.
        Alternatives: Maintain `/userConversations/{userId}` as an index.
        """

        records = await self.bridge.get("/conversations") or {}
        conversations = [
            Conversation.from_record(conversation_id, record)
            for conversation_id, record in records.items()
            if isinstance(record, dict)
        ]
        return [conversation for conversation in conversations if conversation.has_participant(user_id)]

    async def get(self, conversation_id: str) -> Conversation | None:
        record = await self.bridge.get(build_path("conversations", conversation_id))
        if not isinstance(record, dict):
            return None
        return Conversation.from_record(conversation_id, record)

    async def require_participant(self, conversation_id: str, user_id: str) -> Conversation:
        """Summary: Load a conversation and check the user takes part in it.

        Importance: Guards message reads and writes against foreign conversations.
        Alternatives: Trust the conversation id supplied by the client.
        """

        conversation = await self.get(conversation_id)
        if conversation is None:
            raise NotFound("Conversation", conversation_id)
        if not conversation.has_participant(user_id):
            raise PermissionError(f"User {user_id} is not a participant of {conversation_id}")
        return conversation

    async def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        records = await self.bridge.get(build_path("messages", conversation_id)) or {}
        messages = [
            ChatMessage.from_record(message_id, conversation_id, record)
            for message_id, record in records.items()
            if isinstance(record, dict)
        ]
        messages.sort(key=lambda message: message.timestamp)
        return messages

    async def create_conversation(self, data: dict[str, Any]) -> str:
        conversation_id = self.ids.new_id("conv")
        await self.bridge.put(build_path("conversations", conversation_id), data)
        logger.info("Created conversation %s.", conversation_id)
        return conversation_id

    async def create_message(self, conversation_id: str, message: dict[str, Any]) -> str:
        message_id = self.ids.new_id("msg")
        await self.bridge.put(build_path("messages", conversation_id, message_id), message)
        return message_id

    async def update_conversation(self, conversation_id: str, patch: dict[str, Any]) -> None:
        """Merge fields into a conversation; concurrent writers race, last one wins."""

        await self.bridge.patch(build_path("conversations", conversation_id), patch)

    async def find_direct(self, user_id: str, other_id: str) -> str | None:
        for conversation in await self.list_conversations(user_id):
            if len(conversation.participants) == 2 and conversation.has_participant(other_id):
                return conversation.id
        return None

    async def open_direct(self, user_id: str, other_id: str) -> str:
        """Summary: Return the two-party conversation with a user, creating it if needed.

        Importance: Keeps a single conversation per pair in the common case.
        Alternatives: Derive a deterministic id from both user ids.

        Two callers opening the same pair at once can both create a conversation.
        """

        if user_id == other_id:
            raise ValueError("Cannot open a conversation with yourself")
        if not await self.users.is_registered(other_id):
            raise NotFound("Registered user", other_id)
        existing = await self.find_direct(user_id, other_id)
        if existing:
            return existing
        now = now_ms(self.clock)
        return await self.create_conversation(
            {
                "participants": {user_id: True, other_id: True},
                "createdAt": now,
                "updatedAt": now,
            }
        )

    async def send_message(
        self,
        sender: Principal,
        content: str,
        conversation_id: str | None = None,
        recipient_id: str | None = None,
        message_type: str = "text",
    ) -> ChatMessage:
        """Summary: Post a message, bump the conversation, and notify the other participants.

        Importance: The message write, the conversation patch, and each notification are separate
        calls. A failed notification is logged and does not fail the send.
        Alternatives: Fan notifications out from a background worker.
        """

        text = content.strip()
        if not text:
            raise ValueError("Message content is required")
        if not conversation_id and recipient_id:
            conversation_id = await self.open_direct(sender.user_id, recipient_id)
        if not conversation_id:
            raise ValueError("No conversation specified")
        conversation = await self.require_participant(conversation_id, sender.user_id)
        timestamp = now_ms(self.clock)
        record = {
            "senderId": sender.user_id,
            "content": text,
            "type": message_type,
            "timestamp": timestamp,
            "status": "sent",
        }
        message_id = await self.create_message(conversation_id, record)
        await self.update_conversation(
            conversation_id, {"lastMessageId": message_id, "updatedAt": now_ms(self.clock)}
        )
        sender_info = await self.users.public_info(sender.user_id)
        for participant_id in conversation.other_participants(sender.user_id):
            try:
                await self.notifications.create(
                    participant_id,
                    "new_message",
                    from_user_id=sender.user_id,
                    from_user_info=sender_info,
                    data={
                        "conversationId": conversation_id,
                        "messageId": message_id,
                        "content": text,
                    },
                )
            except BridgeError as exc:
                logger.warning("Failed to notify %s about %s: %s", participant_id, message_id, exc)
        logger.info("Sent message %s in %s.", message_id, conversation_id)
        return ChatMessage.from_record(message_id, conversation_id, record)

    async def overview(self, user_id: str) -> list[dict[str, Any]]:
        """Summary: Conversation list entries with last message, unread count, and peers.

        Importance: One call renders the inbox sidebar.
        Alternatives: Let clients fetch each conversation separately.
        """

        conversations = await self.list_conversations(user_id)
        entries = await asyncio.gather(
            *(self._overview_entry(conversation, user_id) for conversation in conversations)
        )
        return sorted(entries, key=lambda entry: entry["updatedAt"] or 0, reverse=True)

    async def _overview_entry(self, conversation: Conversation, user_id: str) -> dict[str, Any]:
        messages = await self.get_messages(conversation.id)
        last_message = next(
            (message for message in messages if message.id == conversation.last_message_id), None
        )
        unread_count = sum(
            1 for message in messages if message.sender_id != user_id and not message.read
        )
        participant_info = {}
        for other_id in conversation.other_participants(user_id):
            profile = await self.users.get_user(other_id)
            if profile:
                participant_info[other_id] = {
                    **UserInfo.from_record(profile).to_record(),
                    "isOnline": self.users.is_online(profile),
                }
        return {
            "id": conversation.id,
            "participants": list(conversation.participants),
            "lastMessage": last_message.to_dict() if last_message else None,
            "unreadCount": unread_count,
            "updatedAt": conversation.updated_at or now_ms(self.clock),
            "participantInfo": participant_info,
        }
