"""
Room naming and join/leave operations.

Three namespaces share the transport's room table:
- chat_{chatId}: live chat rooms (customer, assigned agent, watching dashboards)
- ticket_{ticketNumber}: ticket conversation rooms
- agent_{id} / admin_{id}: personal rooms for private notifications

Membership lives only in the socket layer and ends with the connection.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

PERSONAL_ROOM_ROLES = ("agent", "admin")


def chat_room(chat_id: str) -> str:
    return f"chat_{chat_id}"


def ticket_room(ticket_id: str) -> str:
    return f"ticket_{ticket_id}"


def presence_room(ticket_id: str) -> str:
    return f"ticket_presence:{ticket_id}"


def personal_room(role: str, identity: str) -> str:
    return f"{role}_{identity}"


class RoomRouter:
    def __init__(self, transport):
        self.transport = transport

    async def join_chat_room(self, sid: str, chat_id: Optional[str]) -> Optional[str]:
        """Listener-only join used by dashboards watching a chat they are not assigned to."""
        if not chat_id:
            return None
        room = chat_room(chat_id)
        await self.transport.enter_room(sid, room)
        logger.info(f"Socket {sid} joined chat room: {room}")
        return room

    async def join_ticket_room(self, sid: str, ticket_id: Optional[str]) -> Optional[str]:
        if not ticket_id:
            return None
        room = ticket_room(ticket_id)
        await self.transport.enter_room(sid, room)
        logger.info(f"Socket {sid} joined ticket room: {room}")
        return room

    async def leave_ticket_room(self, sid: str, ticket_id: Optional[str]) -> Optional[str]:
        if not ticket_id:
            return None
        room = ticket_room(ticket_id)
        await self.transport.leave_room(sid, room)
        logger.info(f"Socket {sid} left ticket room: {room}")
        return room

    async def join_personal_room(self, sid: str, role: str, identity: Optional[str]) -> Optional[str]:
        """Join agents and admins to their own room; customers have none."""
        if role not in PERSONAL_ROOM_ROLES or not identity:
            return None
        room = personal_room(role, identity)
        await self.transport.enter_room(sid, room)
        logger.info(f"Socket {sid} joined personal room: {room}")
        return room
