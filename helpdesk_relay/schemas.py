"""
Pydantic schemas for socket event payloads and HTTP responses.

Payloads arrive with camelCase keys from the widget and the agent panel;
models expose snake_case attributes and accept either spelling. Unknown
keys are ignored so older clients sending extra fields keep working.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from helpdesk_relay.errors import PayloadError


class EventPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


# =============================================================================
# Room Payloads
# =============================================================================

class ChatRoomPayload(EventPayload):
    chat_id: Optional[str] = None


class TicketRoomPayload(EventPayload):
    """Accepts both conversationId (join_room) and ticketId (legacy events)."""
    conversation_id: Optional[str] = None
    ticket_id: Optional[str] = None

    @property
    def room_id(self) -> Optional[str]:
        return self.conversation_id or self.ticket_id


# =============================================================================
# Live Chat Payloads
# =============================================================================

class JoinChatPayload(EventPayload):
    name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class LiveChatSend(EventPayload):
    """Customer message inside a live chat."""
    kind: Literal["live_chat"] = "live_chat"
    chat_id: Optional[str] = None
    message: Optional[str] = None
    sender_name: Optional[str] = None
    attachments: Optional[List[Any]] = None


class AssignChatPayload(EventPayload):
    chat_id: Optional[str] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None


class AgentMessagePayload(EventPayload):
    chat_id: Optional[str] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    message: Optional[str] = None
    attachments: Optional[List[Any]] = None


# =============================================================================
# Ticket Payloads
# =============================================================================

class AttachmentIn(EventPayload):
    """
    An attachment sent with a ticket message.

    Either carries the file inline (base64, optionally as a data URL) or
    points at a file uploaded earlier (url).
    """
    base64: Optional[str] = None
    url: Optional[str] = None
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None

    @property
    def is_inline(self) -> bool:
        return bool(self.base64 and self.filename and self.mime_type)


class TicketSend(EventPayload):
    kind: Literal["ticket"] = "ticket"
    conversation_id: Optional[str] = None
    content: Optional[str] = None
    sender_id: Optional[str] = None
    sender_type: Optional[Literal["customer", "agent", "admin"]] = None
    sender_name: Optional[str] = None
    socket_id: Optional[str] = None
    # Validated per item by TicketMessageService.save_attachments
    attachments: Optional[List[Any]] = None
    reply_to_id: Optional[str] = None
    reply_to: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


SendRequest = Annotated[Union[LiveChatSend, TicketSend], Field(discriminator="kind")]

_send_request_adapter = TypeAdapter(SendRequest)


# =============================================================================
# Presence Payloads
# =============================================================================

class PresenceUser(EventPayload):
    id: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None


class PresencePayload(EventPayload):
    ticket_id: Optional[str] = None
    user: Optional[PresenceUser] = None


# =============================================================================
# Server-side Payloads
# =============================================================================

class TicketAssignment(EventPayload):
    """Input of NotificationFanout.emit_ticket_assignment."""
    ticket_id: str
    assignee_id: str
    assignee_name: Optional[str] = None
    assigned_by: Optional[str] = None
    ticket: Optional[Dict[str, Any]] = None


# =============================================================================
# HTTP Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason for not ready status")


# =============================================================================
# Parsing Helpers
# =============================================================================

def parse_payload(model: type, data: Any, event: str):
    """
    Validate a raw event payload against a model.

    Raises:
        PayloadError: if the payload is not an object or fields have the wrong type
    """
    if data is None:
        data = {}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PayloadError(f"Invalid payload for {event}") from e


def parse_send_message(data: Any) -> SendRequest:
    """
    Decide which flow a legacy send_message payload belongs to.

    Old clients send both kinds under one event name; a conversationId
    marks a ticket message, anything else is a live-chat message.
    """
    if not isinstance(data, dict):
        raise PayloadError("Invalid payload for send_message")
    kind = "ticket" if data.get("conversationId") or data.get("conversation_id") else "live_chat"
    try:
        return _send_request_adapter.validate_python({**data, "kind": kind})
    except ValidationError as e:
        raise PayloadError("Invalid payload for send_message") from e
