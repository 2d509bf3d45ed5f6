"""
Socket event surface of the relay.

Every inbound event runs through `socket_event`, which tags logs with the
socket id, records metrics and turns failures into an `error` emission to
the sender. A single bad event never drops the socket or the process.
"""

import functools
import logging
from typing import Any, Dict, Optional

import socketio

from helpdesk_relay import metrics
from helpdesk_relay.attachments import AttachmentStore
from helpdesk_relay.auth import admit, authenticate, extract_token
from helpdesk_relay.errors import RelayError
from helpdesk_relay.livechat import LiveChatService
from helpdesk_relay.logging_utils import socket_event_context
from helpdesk_relay.notifications import NotificationFanout
from helpdesk_relay.presence import PresenceRegistry
from helpdesk_relay.repository import Repository
from helpdesk_relay.rooms import RoomRouter
from helpdesk_relay.schemas import (
    AgentMessagePayload,
    AssignChatPayload,
    ChatRoomPayload,
    JoinChatPayload,
    LiveChatSend,
    PresencePayload,
    TicketAssignment,
    TicketRoomPayload,
    TicketSend,
    parse_payload,
    parse_send_message,
)
from helpdesk_relay.tickets import TicketMessageService
from helpdesk_relay.transport import SocketIOTransport

logger = logging.getLogger(__name__)


def socket_event(name: str, failure_message: Optional[str] = None, acknowledges: bool = False):
    """
    Wrap a Relay event handler.

    Args:
        name: Event name, used for logging and metrics
        failure_message: Client-facing message for unexpected exceptions;
            None means unexpected failures are only logged
        acknowledges: Return {"success": False, "error"} as the ack on failure
    """
    def decorator(handler):
        @functools.wraps(handler)
        async def wrapper(self, sid: str, *args):
            with socket_event_context(sid, name):
                try:
                    result = await handler(self, sid, *args)
                except RelayError as e:
                    logger.warning(f"{name} rejected: {e.message}", extra={"result": "error"})
                    metrics.record_socket_event(name, "error")
                    await self.transport.emit("error", {"message": e.message}, to=sid)
                    return {"success": False, "error": e.message} if acknowledges else None
                except Exception as e:
                    logger.exception(f"Error in {name}", extra={"result": "failed"})
                    metrics.record_socket_event(name, "failed")
                    if failure_message:
                        await self.transport.emit("error", {"message": failure_message}, to=sid)
                    return {"success": False, "error": str(e)} if acknowledges else None
                metrics.record_socket_event(name, "ok")
                logger.info(f"{name} handled", extra={"result": "ok"})
                return result
        wrapper.event_name = name
        return wrapper
    return decorator


class Relay:
    """
    Connects the socket layer to the chat, ticket, room, presence and
    notification components. All of them share the injected transport.
    """

    def __init__(self, transport, repository: Repository, attachment_store: AttachmentStore, jwt_secret: str):
        self.transport = transport
        self.jwt_secret = jwt_secret
        self.rooms = RoomRouter(transport)
        self.notifications = NotificationFanout(transport)
        self.presence = PresenceRegistry(transport)
        self.live_chat = LiveChatService(transport, repository)
        self.tickets = TicketMessageService(transport, repository, attachment_store, self.notifications)

    @classmethod
    def create(cls, server: socketio.AsyncServer, repository: Repository,
               attachment_store: AttachmentStore, jwt_secret: str) -> "Relay":
        relay = cls(SocketIOTransport(server), repository, attachment_store, jwt_secret)
        relay.attach(server)
        return relay

    def attach(self, server: socketio.AsyncServer) -> None:
        """Register every handler on the server under its wire event name."""
        server.on("connect", self.connect)
        server.on("disconnect", self.disconnect)
        for attr in dir(type(self)):
            handler = getattr(self, attr)
            event = getattr(handler, "event_name", None)
            if event:
                server.on(event, handler)
        logger.info("Chat relay initialized")

    async def _session(self, sid: str) -> Dict[str, Any]:
        return await self.transport.get_session(sid)

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, sid: str, environ: dict, auth: Any = None) -> bool:
        """Admit the socket and join agents/admins to their personal room."""
        with socket_event_context(sid, "connect"):
            identity = admit(authenticate(extract_token(auth), self.jwt_secret))
            await self.transport.save_session(sid, identity.to_session())
            await self.rooms.join_personal_room(sid, identity.role, identity.identity)
            metrics.record_connect(identity.role)
            logger.info(f"Client connected: role={identity.role}, identity={identity.identity}")
            return True

    async def disconnect(self, sid: str, *args) -> None:
        with socket_event_context(sid, "disconnect"):
            metrics.record_disconnect()
            try:
                await self.presence.disconnect(sid)
            except Exception:
                logger.exception("Presence cleanup failed")
            logger.info("Client disconnected")

    # =========================================================================
    # Rooms
    # =========================================================================

    @socket_event("join_chat_room")
    async def on_join_chat_room(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(ChatRoomPayload, data, "join_chat_room")
        await self.rooms.join_chat_room(sid, payload.chat_id)

    @socket_event("join_room")
    async def on_join_room(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(TicketRoomPayload, data, "join_room")
        await self.rooms.join_ticket_room(sid, payload.room_id)

    @socket_event("join_ticket_room")
    async def on_join_ticket_room(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(TicketRoomPayload, data, "join_ticket_room")
        await self.rooms.join_ticket_room(sid, payload.room_id)

    @socket_event("leave_ticket_room")
    async def on_leave_ticket_room(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(TicketRoomPayload, data, "leave_ticket_room")
        await self.rooms.leave_ticket_room(sid, payload.room_id)

    # =========================================================================
    # Live chat
    # =========================================================================

    @socket_event("join_chat", failure_message="Failed to join chat")
    async def on_join_chat(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(JoinChatPayload, data, "join_chat")
        await self.live_chat.join_chat(sid, payload)

    @socket_event("send_chat_message", failure_message="Failed to send message")
    async def on_send_chat_message(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(LiveChatSend, data, "send_chat_message")
        await self.live_chat.send_message(sid, payload)

    @socket_event("assign_chat", failure_message="Failed to assign chat", acknowledges=True)
    async def on_assign_chat(self, sid: str, data: Any = None) -> Dict[str, Any]:
        payload = parse_payload(AssignChatPayload, data, "assign_chat")
        return await self.live_chat.assign_chat(sid, payload)

    @socket_event("agent_message", failure_message="Failed to send message")
    async def on_agent_message(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(AgentMessagePayload, data, "agent_message")
        await self.live_chat.agent_message(sid, payload)

    # =========================================================================
    # Tickets
    # =========================================================================

    @socket_event("send_ticket_message", failure_message="Failed to send message")
    async def on_send_ticket_message(self, sid: str, data: Any = None) -> None:
        payload = parse_payload(TicketSend, data, "send_ticket_message")
        await self.tickets.send(sid, payload, await self._session(sid))

    @socket_event("send_message", failure_message="Failed to send message")
    async def on_send_message(self, sid: str, data: Any = None) -> None:
        """Legacy single event for both flows; the payload shape picks the flow."""
        request = parse_send_message(data)
        if isinstance(request, TicketSend):
            await self.tickets.send(sid, request, await self._session(sid))
        else:
            await self.live_chat.send_message(sid, request)

    # =========================================================================
    # Presence
    # =========================================================================

    @socket_event("presence:join")
    async def on_presence_join(self, sid: str, data: Any = None) -> None:
        await self.presence.join(sid, parse_payload(PresencePayload, data, "presence:join"))

    @socket_event("presence:leave")
    async def on_presence_leave(self, sid: str, data: Any = None) -> None:
        await self.presence.leave(sid, parse_payload(PresencePayload, data, "presence:leave"))

    # =========================================================================
    # Server-invoked
    # =========================================================================

    async def emit_ticket_assignment(self, assignment: TicketAssignment | Dict[str, Any]) -> bool:
        """Entry point for the ticket-assignment code path."""
        return await self.notifications.emit_ticket_assignment(assignment)
