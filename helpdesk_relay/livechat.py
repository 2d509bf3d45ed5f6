"""
Live chat flow: widget visitors waiting for an agent, before any ticket exists.
"""

import logging
from typing import Any, Dict

from helpdesk_relay.errors import NotFoundError, PayloadError
from helpdesk_relay.rooms import chat_room
from helpdesk_relay.schemas import AgentMessagePayload, AssignChatPayload, JoinChatPayload, LiveChatSend
from helpdesk_relay.utils import isoformat

logger = logging.getLogger(__name__)

RECONNECTED_MESSAGE = "Reconnected to your existing chat"
WAITING_MESSAGE = "Connected! An agent will be with you shortly."


class LiveChatService:
    def __init__(self, transport, repository):
        self.transport = transport
        self.repository = repository

    async def _broadcast_message(self, chat_id: str, message_data: Dict[str, Any]) -> None:
        # Both audiences are needed: sockets focused on this chat get the room
        # emit, dashboard chat lists that never joined the room get the global one.
        await self.transport.emit("new_message", message_data, room=chat_room(chat_id))
        await self.transport.emit("new_message", message_data)

    async def join_chat(self, sid: str, payload: JoinChatPayload) -> Dict[str, Any]:
        """
        Start or resume a customer's live chat.

        A customer has at most one waiting/active chat per email; joining
        again reuses it instead of creating a duplicate.
        """
        if not payload.name or not payload.email:
            raise PayloadError("name and email are required")

        email = payload.email.strip().lower()
        logger.info(f"Chat request from {payload.name} ({email}), department={payload.department}")

        chat = await self.repository.find_open_live_chat(email)
        if chat:
            logger.info(f"Reusing existing chat {chat.id} for {email}")
            if payload.message:
                await self.repository.add_live_chat_message(
                    chat_id=chat.id,
                    sender_id=email,
                    sender_type="customer",
                    sender_name=payload.name,
                    content=payload.message,
                )
            await self.transport.enter_room(sid, chat_room(chat.id))
            joined = {"chatId": chat.id, "status": chat.status, "message": RECONNECTED_MESSAGE}
            await self.transport.emit("chat_joined", joined, to=sid)
            return joined

        chat = await self.repository.create_live_chat(
            customer_name=payload.name,
            customer_email=email,
            department=payload.department,
            metadata=payload.metadata,
            first_message=payload.message,
        )
        await self.transport.enter_room(sid, chat_room(chat.id))

        joined = {"chatId": chat.id, "status": "waiting", "message": WAITING_MESSAGE}
        await self.transport.emit("chat_joined", joined, to=sid)

        # No agent yet, so the queue announcement goes to every socket
        await self.transport.emit("new_chat", {
            "chatId": chat.id,
            "customerName": chat.customer_name,
            "customerEmail": chat.customer_email,
            "department": chat.department,
            "message": payload.message,
            "startedAt": isoformat(chat.started_at),
            "status": chat.status,
        })
        logger.info(f"Chat created: {chat.id}")
        return joined

    async def send_message(self, sid: str, payload: LiveChatSend) -> Dict[str, Any]:
        """Store and deliver a customer's live chat message."""
        chat = await self.repository.get_live_chat(payload.chat_id) if payload.chat_id else None
        if not chat:
            raise NotFoundError("Chat not found")

        sender_name = payload.sender_name or chat.customer_name
        attachments = payload.attachments or []
        message = await self.repository.add_live_chat_message(
            chat_id=chat.id,
            sender_id=chat.customer_email,
            sender_type="customer",
            sender_name=sender_name,
            content=payload.message,
            attachments=attachments,
        )

        message_data = {
            "id": message.id,
            "chatId": chat.id,
            "senderId": chat.customer_email,
            "senderType": "customer",
            "senderName": sender_name,
            "content": payload.message,
            "timestamp": isoformat(message.timestamp),
            "attachments": attachments,
        }
        await self._broadcast_message(chat.id, message_data)

        if chat.assigned_agent_id:
            await self.transport.emit("chat_message_notification", {
                "chatId": chat.id,
                "customerName": chat.customer_name,
                "message": payload.message,
                "attachments": attachments,
            })

        logger.info(f"Customer message sent in chat {chat.id}")
        return message_data

    async def assign_chat(self, sid: str, payload: AssignChatPayload) -> Dict[str, Any]:
        """Let an agent claim a chat; the chat becomes active and the agent joins its room."""
        if not payload.chat_id or not payload.agent_id:
            raise PayloadError("chatId and agentId are required")

        if not await self.repository.assign_live_chat(payload.chat_id, payload.agent_id, payload.agent_name):
            raise NotFoundError("Chat not found")

        room = chat_room(payload.chat_id)
        await self.transport.enter_room(sid, room)

        await self.transport.emit("agent_joined", {
            "chatId": payload.chat_id,
            "agentName": payload.agent_name,
            "message": f"{payload.agent_name} has joined the chat",
        }, room=room)

        await self.transport.emit("chat_assigned", {
            "chatId": payload.chat_id,
            "agentId": payload.agent_id,
            "agentName": payload.agent_name,
            "status": "active",
        })

        logger.info(f"Agent {payload.agent_name} assigned to chat {payload.chat_id}")
        return {"success": True, "chatId": payload.chat_id}

    async def agent_message(self, sid: str, payload: AgentMessagePayload) -> Dict[str, Any]:
        """Store and deliver an agent's live chat message."""
        chat = await self.repository.get_live_chat(payload.chat_id) if payload.chat_id else None
        if not chat:
            raise NotFoundError("Chat not found")

        attachments = payload.attachments or []
        message = await self.repository.add_live_chat_message(
            chat_id=chat.id,
            sender_id=payload.agent_id,
            sender_type="agent",
            sender_name=payload.agent_name,
            content=payload.message,
            attachments=attachments,
        )

        message_data = {
            "id": message.id,
            "chatId": chat.id,
            "senderId": payload.agent_id,
            "senderType": "agent",
            "senderName": payload.agent_name,
            "content": payload.message,
            "timestamp": isoformat(message.timestamp),
            "attachments": attachments,
        }
        await self._broadcast_message(chat.id, message_data)
        logger.info(f"Agent message sent in chat {chat.id}")
        return message_data
