"""
Tests for room membership events, payload parsing and attachment helpers.
"""

import pytest

from helpdesk_relay.attachments import AttachmentDecodeError, decode_base64_payload, unique_filename
from helpdesk_relay.errors import PayloadError
from helpdesk_relay.schemas import LiveChatSend, TicketSend, parse_send_message
from helpdesk_relay.utils import isoformat, looks_like_uuid, sanitize_filename


class TestRoomEvents:
    """Test join/leave handlers."""

    @pytest.mark.anyio
    async def test_join_chat_room(self, relay, transport):
        await relay.on_join_chat_room("sid-admin", {"chatId": "c-1"})
        assert "sid-admin" in transport.rooms["chat_c-1"]

    @pytest.mark.anyio
    async def test_join_room_and_legacy_alias(self, relay, transport):
        await relay.on_join_room("sid-a", {"conversationId": "TKT-1"})
        await relay.on_join_ticket_room("sid-b", {"ticketId": "TKT-1"})
        assert transport.rooms["ticket_TKT-1"] == {"sid-a", "sid-b"}

    @pytest.mark.anyio
    async def test_leave_ticket_room(self, relay, transport):
        await relay.on_join_ticket_room("sid-a", {"ticketId": "TKT-1"})
        await relay.on_leave_ticket_room("sid-a", {"ticketId": "TKT-1"})
        assert transport.rooms["ticket_TKT-1"] == set()

    @pytest.mark.anyio
    async def test_numeric_ids_join_rooms(self, relay, transport):
        await relay.on_join_room("sid-a", {"conversationId": 42})
        await relay.on_join_chat_room("sid-a", {"chatId": 7})
        await relay.on_presence_join("sid-a", {"ticketId": 42, "user": {"id": 5, "name": "Bob"}})

        assert transport.events("error") == []
        assert "sid-a" in transport.rooms["ticket_42"]
        assert "sid-a" in transport.rooms["chat_7"]
        assert [v["id"] for v in relay.presence.viewers("42")] == ["5"]

    @pytest.mark.anyio
    async def test_missing_id_is_ignored(self, relay, transport):
        await relay.on_join_room("sid-a", {})
        await relay.on_join_chat_room("sid-a", None)
        assert not any(transport.rooms.values())
        assert transport.events("error") == []


class TestParseSendMessage:
    """Test the legacy send_message adapter."""

    def test_conversation_id_selects_ticket_flow(self):
        request = parse_send_message({"conversationId": "TKT-1", "content": "hi", "senderType": "customer"})
        assert isinstance(request, TicketSend)
        assert request.kind == "ticket"
        assert request.conversation_id == "TKT-1"

    def test_chat_id_selects_live_chat_flow(self):
        request = parse_send_message({"chatId": "c-1", "message": "hi"})
        assert isinstance(request, LiveChatSend)
        assert request.chat_id == "c-1"

    def test_unknown_sender_type_is_rejected(self):
        with pytest.raises(PayloadError):
            parse_send_message({"conversationId": "TKT-1", "content": "hi", "senderType": "robot"})

    def test_non_object_is_rejected(self):
        with pytest.raises(PayloadError):
            parse_send_message(["not", "a", "dict"])


class TestHelpers:
    """Test attachment and utility helpers."""

    def test_decode_data_url(self):
        assert decode_base64_payload("data:text/plain;base64,aGVsbG8=") == b"hello"

    def test_decode_invalid(self):
        with pytest.raises(AttachmentDecodeError):
            decode_base64_payload("***")

    def test_unique_filename_keeps_extension(self):
        first = unique_filename("report:final.pdf")
        second = unique_filename("report:final.pdf")
        assert first.endswith("_report_final.pdf")
        assert first != second

    def test_sanitize_filename(self):
        assert sanitize_filename('a/b\\c?d%e*f:g|h"i<j>k') == "a_b_c_d_e_f_g_h_i_j_k"

    def test_looks_like_uuid(self):
        assert looks_like_uuid("11111111-1111-4111-8111-111111111111")
        assert not looks_like_uuid("a@x.com")
        assert not looks_like_uuid(None)

    def test_isoformat_naive_is_utc(self):
        from datetime import datetime
        assert isoformat(datetime(2025, 1, 15, 10, 0, 0)) == "2025-01-15T10:00:00.000Z"
        assert isoformat(None) is None
