"""
Tests for the live chat flow.

Tests cover:
- join_chat creating a waiting chat and announcing it
- join_chat reusing an open chat for the same email
- Customer and agent messages (room + global delivery)
- assign_chat with acknowledgement
- Error events for unknown chats and bad payloads
"""

import pytest

from helpdesk_relay.models import LiveChatMessage
from helpdesk_relay.storage import SessionLocal


def stored_chats(email):
    from helpdesk_relay.models import LiveChat
    with SessionLocal() as session:
        return session.query(LiveChat).filter(LiveChat.customer_email == email).all()


def stored_messages(chat_id):
    with SessionLocal() as session:
        return (
            session.query(LiveChatMessage)
            .filter(LiveChatMessage.chat_id == chat_id)
            .order_by(LiveChatMessage.timestamp.asc())
            .all()
        )


async def start_chat(relay, sid="sid-customer", email="a@x.com", message="help"):
    await relay.on_join_chat(sid, {
        "name": "Alice",
        "email": email,
        "department": "Technical Support",
        "message": message,
    })


class TestJoinChat:
    """Test starting and resuming live chats."""

    @pytest.mark.anyio
    async def test_new_chat_is_waiting(self, db, relay, transport, connect):
        await connect("sid-customer")
        await start_chat(relay)

        chats = stored_chats("a@x.com")
        assert len(chats) == 1
        chat = chats[0]
        assert chat.status == "waiting"
        assert chat.department == "Technical Support"

        messages = stored_messages(chat.id)
        assert len(messages) == 1
        assert messages[0].sender_type == "customer"
        assert messages[0].content == "help"

        joined = transport.received("sid-customer", "chat_joined")
        assert joined == [{
            "chatId": chat.id,
            "status": "waiting",
            "message": "Connected! An agent will be with you shortly.",
        }]
        assert "sid-customer" in transport.rooms[f"chat_{chat.id}"]

    @pytest.mark.anyio
    async def test_new_chat_is_announced_to_everyone(self, db, relay, transport, connect):
        await connect("sid-customer")
        await connect("sid-dashboard")
        await start_chat(relay)

        announcements = transport.received("sid-dashboard", "new_chat")
        assert len(announcements) == 1
        assert announcements[0]["customerEmail"] == "a@x.com"
        assert announcements[0]["department"] == "Technical Support"
        assert announcements[0]["message"] == "help"

    @pytest.mark.anyio
    async def test_second_join_reuses_chat(self, db, relay, transport, connect):
        await connect("sid-customer")
        await start_chat(relay)
        await start_chat(relay, sid="sid-customer-tab2", email="A@X.com", message="still there?")

        chats = stored_chats("a@x.com")
        assert len(chats) == 1
        assert [m.content for m in stored_messages(chats[0].id)] == ["help", "still there?"]

        reconnect = transport.events("chat_joined")[-1]
        assert reconnect.target == "sid-customer-tab2"
        assert reconnect.data["message"] == "Reconnected to your existing chat"
        assert reconnect.data["chatId"] == chats[0].id
        assert len(transport.events("new_chat")) == 1

    @pytest.mark.anyio
    async def test_closed_chat_is_not_reused(self, db, relay, transport):
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id
        with SessionLocal() as session:
            from helpdesk_relay.models import LiveChat
            session.query(LiveChat).filter(LiveChat.id == chat_id).update({LiveChat.status: "closed"})
            session.commit()

        await start_chat(relay)
        assert len(stored_chats("a@x.com")) == 2

    @pytest.mark.anyio
    async def test_missing_email_is_an_error(self, db, relay, transport):
        await relay.on_join_chat("sid-customer", {"name": "Alice"})
        errors = transport.received("sid-customer", "error")
        assert errors == [{"message": "name and email are required"}]

    @pytest.mark.anyio
    async def test_non_object_payload_is_an_error(self, db, relay, transport):
        await relay.on_join_chat("sid-customer", "hello")
        assert transport.received("sid-customer", "error") == [{"message": "Invalid payload for join_chat"}]


class TestAssignChat:
    """Test agents claiming chats."""

    @pytest.mark.anyio
    async def test_assign_activates_chat(self, db, relay, transport, connect):
        await connect("sid-customer")
        await connect("sid-agent")
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id

        ack = await relay.on_assign_chat("sid-agent", {"chatId": chat_id, "agentId": "B", "agentName": "Bob"})
        assert ack == {"success": True, "chatId": chat_id}

        chat = stored_chats("a@x.com")[0]
        assert chat.status == "active"
        assert chat.assigned_agent_id == "B"
        assert chat.assigned_agent_name == "Bob"

        assert "sid-agent" in transport.rooms[f"chat_{chat_id}"]
        joined = transport.events("agent_joined")
        assert len(joined) == 1
        assert joined[0].target == f"chat_{chat_id}"
        assert "Bob" in joined[0].data["message"]
        assert transport.received("sid-customer", "agent_joined")

        assigned = transport.events("chat_assigned")
        assert len(assigned) == 1
        assert assigned[0].target is None
        assert assigned[0].data == {"chatId": chat_id, "agentId": "B", "agentName": "Bob", "status": "active"}

    @pytest.mark.anyio
    async def test_assign_unknown_chat_acks_failure(self, db, relay, transport):
        ack = await relay.on_assign_chat("sid-agent", {"chatId": "missing", "agentId": "B", "agentName": "Bob"})
        assert ack == {"success": False, "error": "Chat not found"}
        assert transport.received("sid-agent", "error") == [{"message": "Chat not found"}]
        assert transport.events("chat_assigned") == []


class TestLiveChatMessages:
    """Test customer and agent messages."""

    @pytest.mark.anyio
    async def test_customer_message_goes_to_room_and_everyone(self, db, relay, transport, connect):
        await connect("sid-customer")
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id

        await relay.on_send_message("sid-customer", {"chatId": chat_id, "message": "any update?"})

        deliveries = transport.events("new_message")
        assert [d.target for d in deliveries] == [f"chat_{chat_id}", None]
        data = deliveries[0].data
        assert data["senderType"] == "customer"
        assert data["senderId"] == "a@x.com"
        assert data["senderName"] == "Alice"
        assert data["content"] == "any update?"
        assert data["attachments"] == []
        assert len(stored_messages(chat_id)) == 2

    @pytest.mark.anyio
    async def test_explicit_chat_event_name(self, db, relay, transport):
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id

        await relay.on_send_chat_message("sid-customer", {
            "chatId": chat_id, "message": "hi", "senderName": "Alice B.",
        })
        assert transport.events("new_message")[0].data["senderName"] == "Alice B."

    @pytest.mark.anyio
    async def test_assigned_chat_triggers_notification(self, db, relay, transport):
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id
        await relay.on_assign_chat("sid-agent", {"chatId": chat_id, "agentId": "B", "agentName": "Bob"})

        await relay.on_send_message("sid-customer", {"chatId": chat_id, "message": "thanks"})
        notifications = transport.events("chat_message_notification")
        assert len(notifications) == 1
        assert notifications[0].data["message"] == "thanks"

    @pytest.mark.anyio
    async def test_unassigned_chat_has_no_notification(self, db, relay, transport):
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id
        await relay.on_send_message("sid-customer", {"chatId": chat_id, "message": "hello?"})
        assert transport.events("chat_message_notification") == []

    @pytest.mark.anyio
    async def test_unknown_chat_is_an_error(self, db, relay, transport):
        await relay.on_send_message("sid-customer", {"chatId": "missing", "message": "hi"})
        assert transport.received("sid-customer", "error") == [{"message": "Chat not found"}]
        assert transport.events("new_message") == []

    @pytest.mark.anyio
    async def test_agent_message(self, db, relay, transport, connect):
        await connect("sid-customer")
        await start_chat(relay)
        chat_id = stored_chats("a@x.com")[0].id

        await relay.on_agent_message("sid-agent", {
            "chatId": chat_id, "agentId": "B", "agentName": "Bob", "message": "On it",
        })

        delivered = transport.received("sid-customer", "new_message")
        assert delivered[0]["senderType"] == "agent"
        assert delivered[0]["senderName"] == "Bob"
        assert stored_messages(chat_id)[-1].sender_type == "agent"
