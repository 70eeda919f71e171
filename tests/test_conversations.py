"""Summary: Tests for conversation and message operations.

Importance: Ensures client-side participant filtering and the send flow behave correctly.
Alternatives: Cover messaging only through API tests.
"""

from __future__ import annotations

import pytest

from clanbridge.errors import NotFound
from clanbridge.models import Principal


def _conversations(total: int, member_indexes: set[int], user_id: str = "me") -> dict:
    conversations = {}
    for index in range(total):
        participants = {f"other{index}": True, f"third{index}": True}
        if index in member_indexes:
            participants = {user_id: True, f"other{index}": True}
        conversations[f"conv{index}"] = {"participants": participants, "updatedAt": index}
    return conversations


def _registered(*user_ids: str) -> dict:
    return {
        user_id: {"username": user_id, "displayName": user_id.title(), "avatar": "", "isRegistered": True}
        for user_id in user_ids
    }


@pytest.mark.asyncio
async def test_list_filters_by_participant(services, remote) -> None:
    """Summary: Ten stored conversations with three including the user return exactly three.

    Importance: The store cannot filter by participant, so the service must.
    Alternatives: Maintain a per-user conversation index.
    """

    remote.data = {"conversations": _conversations(10, {7, 2, 5})}
    conversations = await services.conversations.list_conversations("me")
    assert sorted(conversation.id for conversation in conversations) == ["conv2", "conv5", "conv7"]


@pytest.mark.asyncio
async def test_list_with_no_conversations(services) -> None:
    assert await services.conversations.list_conversations("me") == []


@pytest.mark.asyncio
async def test_get_messages_sorted_by_timestamp(services, remote) -> None:
    remote.data = {
        "messages": {
            "c1": {
                "m2": {"senderId": "a", "content": "second", "timestamp": 20},
                "m1": {"senderId": "b", "content": "first", "timestamp": 10},
            }
        }
    }
    messages = await services.conversations.get_messages("c1")
    assert [message.content for message in messages] == ["first", "second"]
    assert messages[0].type == "text"


@pytest.mark.asyncio
async def test_update_conversation_merges(services, remote) -> None:
    remote.data = {"conversations": {"c1": {"participants": {"a": True}, "updatedAt": 1}}}
    await services.conversations.update_conversation("c1", {"updatedAt": 2, "lastMessageId": "m"})
    assert remote.data["conversations"]["c1"] == {
        "participants": {"a": True},
        "updatedAt": 2,
        "lastMessageId": "m",
    }


@pytest.mark.asyncio
async def test_open_direct_reuses_existing_conversation(services, remote) -> None:
    remote.data = {
        "users": _registered("you"),
        "conversations": {"c1": {"participants": {"me": True, "you": True}}},
    }
    assert await services.conversations.open_direct("me", "you") == "c1"
    assert remote.calls("PUT") == []


@pytest.mark.asyncio
async def test_open_direct_creates_conversation(services, remote) -> None:
    remote.data = {"users": _registered("you")}
    conversation_id = await services.conversations.open_direct("me", "you")
    stored = remote.data["conversations"][conversation_id]
    assert stored["participants"] == {"me": True, "you": True}
    assert stored["createdAt"] == stored["updatedAt"]


@pytest.mark.asyncio
async def test_open_direct_requires_registered_target(services, remote) -> None:
    remote.data = {"users": {"you": {"username": "you", "isRegistered": False}}}
    with pytest.raises(NotFound):
        await services.conversations.open_direct("me", "you")


@pytest.mark.asyncio
async def test_send_message_updates_conversation_and_notifies(services, remote) -> None:
    """Summary: Sending writes the message, bumps the conversation, and notifies the peer.

    Importance: The three writes are independent; all must land on the happy path.
    Alternatives: Assert only on the returned message.
    """

    remote.data = {
        "users": _registered("me", "you"),
        "conversations": {"c1": {"participants": {"me": True, "you": True}, "updatedAt": 1}},
    }
    message = await services.conversations.send_message(
        Principal(user_id="me"), "  hello there  ", conversation_id="c1"
    )
    assert message.content == "hello there"
    stored = remote.data["messages"]["c1"][message.id]
    assert stored["senderId"] == "me"
    assert stored["status"] == "sent"
    assert remote.data["conversations"]["c1"]["lastMessageId"] == message.id

    notifications = remote.data["notifications"]["you"]
    (notification,) = notifications.values()
    assert notification["type"] == "new_message"
    assert notification["data"]["messageId"] == message.id
    assert notification["fromUserInfo"]["displayName"] == "Me"
    assert "me" not in remote.data["notifications"]


@pytest.mark.asyncio
async def test_send_message_survives_notification_failure(services, remote) -> None:
    remote.data = {
        "users": _registered("me"),
        "conversations": {"c1": {"participants": {"me": True, "you": True}}},
    }
    remote.failing_prefixes.append("/notifications/")
    message = await services.conversations.send_message(
        Principal(user_id="me"), "hi", conversation_id="c1"
    )
    assert message.id in remote.data["messages"]["c1"]
    assert "notifications" not in remote.data


@pytest.mark.asyncio
async def test_send_message_to_recipient_opens_conversation(services, remote) -> None:
    remote.data = {"users": _registered("me", "you")}
    message = await services.conversations.send_message(
        Principal(user_id="me"), "hi", recipient_id="you", message_type="image"
    )
    conversation = remote.data["conversations"][message.conversation_id]
    assert conversation["participants"] == {"me": True, "you": True}
    stored = remote.data["messages"][message.conversation_id][message.id]
    assert stored["type"] == "image"


@pytest.mark.asyncio
async def test_send_message_rejects_non_participant(services, remote) -> None:
    remote.data = {"conversations": {"c1": {"participants": {"a": True, "b": True}}}}
    with pytest.raises(PermissionError):
        await services.conversations.send_message(
            Principal(user_id="me"), "hi", conversation_id="c1"
        )
    assert "messages" not in remote.data


@pytest.mark.asyncio
async def test_send_message_requires_target(services) -> None:
    with pytest.raises(ValueError):
        await services.conversations.send_message(Principal(user_id="me"), "hi")
    with pytest.raises(ValueError):
        await services.conversations.send_message(Principal(user_id="me"), "   ", conversation_id="c1")


@pytest.mark.asyncio
async def test_overview_counts_unread_and_sorts(services, remote) -> None:
    remote.data = {
        "users": _registered("you", "them"),
        "conversations": {
            "old": {"participants": {"me": True, "you": True}, "updatedAt": 10, "lastMessageId": "m2"},
            "new": {"participants": {"me": True, "them": True}, "updatedAt": 20},
        },
        "messages": {
            "old": {
                "m1": {"senderId": "you", "content": "a", "timestamp": 1},
                "m2": {"senderId": "you", "content": "b", "timestamp": 2, "read": True},
                "m3": {"senderId": "me", "content": "c", "timestamp": 3},
            }
        },
    }
    entries = await services.conversations.overview("me")
    assert [entry["id"] for entry in entries] == ["new", "old"]
    old = entries[1]
    assert old["unreadCount"] == 1
    assert old["lastMessage"]["content"] == "b"
    assert old["participantInfo"]["you"]["displayName"] == "You"
    assert entries[0]["lastMessage"] is None
