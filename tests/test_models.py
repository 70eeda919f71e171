"""Summary: Tests for record keys and model wire shapes.

Importance: Stored layouts must stay compatible with records already in the remote store.
Alternatives: Compare JSON snapshots.
"""

from __future__ import annotations

from clanbridge.ids import IdGenerator
from clanbridge.models import ChatMessage, Conversation, Notification
from clanbridge.storage.rest_bridge import FORBIDDEN_KEY_CHARS


def test_ids_are_unique_within_same_millisecond() -> None:
    generator = IdGenerator(clock=lambda: 1_700_000_000.5)
    ids = {generator.new_id("msg") for _ in range(1000)}
    assert len(ids) == 1000
    sample = next(iter(ids))
    assert sample.startswith("msg_1700000000500_")
    assert not FORBIDDEN_KEY_CHARS.intersection(sample)


def test_notification_record_omits_id() -> None:
    record = {
        "type": "new_message",
        "fromUserId": "u2",
        "fromUserInfo": {"username": "a", "displayName": "A", "avatar": ""},
        "data": {"conversationId": "c1"},
        "read": False,
        "readAt": None,
        "timestamp": 10,
        "createdAt": 10,
    }
    notification = Notification.from_record("n1", record)
    assert notification.to_record() == record
    assert notification.to_dict()["id"] == "n1"


def test_notification_tolerates_sparse_record() -> None:
    notification = Notification.from_record("n1", {"type": "ping", "timestamp": 5})
    assert notification.read is False
    assert notification.created_at == 5
    assert notification.from_user_info.username == "Unknown"


def test_conversation_participants() -> None:
    conversation = Conversation.from_record("c1", {"participants": {"a": True, "b": True, "c": False}})
    assert conversation.has_participant("a")
    assert not conversation.has_participant("c")
    assert conversation.other_participants("a") == ["b", "c"]


def test_message_keeps_unknown_fields() -> None:
    message = ChatMessage.from_record("m1", "c1", {"senderId": "a", "content": "hi", "timestamp": 1, "edited": True})
    assert message.to_record()["edited"] is True
    assert message.to_dict()["conversationId"] == "c1"


def test_message_record_cannot_override_identity() -> None:
    message = ChatMessage.from_record(
        "m1", "c1", {"id": "spoof", "conversationId": "other", "senderId": "a", "content": "hi"}
    )
    payload = message.to_dict()
    assert payload["id"] == "m1"
    assert payload["conversationId"] == "c1"
