"""
Ticket message flow.

Messages are validated against the ticket's state, stored with their
attachments, then broadcast to the ticket room without echoing back to the
sender, whose client already shows an optimistic copy.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from helpdesk_relay.attachments import AttachmentStore, decode_base64_payload
from helpdesk_relay.errors import NotFoundError, PayloadError, PermissionDeniedError, TicketClosedError
from helpdesk_relay.notifications import NotificationFanout
from helpdesk_relay.rooms import ticket_room
from helpdesk_relay.schemas import AttachmentIn, TicketSend
from helpdesk_relay.utils import isoformat, looks_like_uuid

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("closed", "resolved")
DEFAULT_SENDER_NAMES = {"customer": "Customer", "admin": "Admin", "agent": "Agent"}


class TicketMessageService:
    def __init__(self, transport, repository, attachment_store: AttachmentStore, notifications: NotificationFanout):
        self.transport = transport
        self.repository = repository
        self.attachment_store = attachment_store
        self.notifications = notifications

    # =========================================================================
    # Identity resolution
    # =========================================================================

    async def resolve_sender_id(self, sender_type: str, sender_id: Optional[str]) -> Optional[str]:
        """
        Map a customer email to the customer's internal id.

        Widget clients often only know the visitor's email when sending.
        """
        if sender_type != "customer" or not sender_id or looks_like_uuid(sender_id):
            return sender_id
        customer = await self.repository.find_customer_by_email(sender_id)
        if customer:
            return customer.id
        return sender_id

    async def lookup_display_name(self, sender_type: str, sender_id: Optional[str]) -> Optional[str]:
        """Name of a customer, admin or agent record, None when the lookup misses."""
        if not sender_id:
            return None
        try:
            if sender_type == "customer":
                record = await self.repository.get_customer(sender_id)
            elif sender_type == "admin":
                record = await self.repository.get_admin(sender_id)
            elif sender_type == "agent":
                record = await self.repository.get_agent(sender_id)
            else:
                return None
        except Exception:
            logger.exception(f"Failed to look up {sender_type} {sender_id}")
            return None
        return getattr(record, "name", None) if record else None

    async def resolve_sender_name(self, conversation, sender_type: str, sender_id: Optional[str]) -> str:
        if sender_type == "customer":
            customer = conversation.customer
            return (customer.name if customer else None) or DEFAULT_SENDER_NAMES["customer"]

        name = await self.lookup_display_name(sender_type, sender_id)
        if not name and sender_type == "agent" and conversation.assignee:
            name = conversation.assignee.name
        return name or DEFAULT_SENDER_NAMES.get(sender_type, "Unknown")

    async def resolve_reply(self, payload: TicketSend) -> Optional[Dict[str, Any]]:
        """
        Build the replyTo block of the broadcast.

        A full replyTo object from the client is used as-is; a bare
        replyToId is looked up. Lookup failures leave replyTo empty.
        """
        if payload.reply_to:
            return payload.reply_to
        if not payload.reply_to_id:
            return None

        try:
            replied = await self.repository.get_message(payload.reply_to_id)
        except Exception:
            logger.exception(f"Failed to fetch replyTo message {payload.reply_to_id}")
            return None
        if not replied:
            return None

        name = await self.lookup_display_name(replied.sender_type, replied.sender_id)
        return {
            "id": replied.id,
            "content": replied.content,
            "senderType": replied.sender_type,
            "senderName": name or DEFAULT_SENDER_NAMES.get(replied.sender_type, "Unknown"),
        }

    # =========================================================================
    # Attachments
    # =========================================================================

    async def save_attachments(self, message_id: str, conversation_id: str,
                               attachments: List[Any]) -> List[Dict[str, Any]]:
        """
        Store each attachment and create its row.

        A failing or malformed attachment is logged and skipped; the message
        stays sent. There is no dedup, a retried send creates new rows.
        """
        saved = []
        for index, item in enumerate(attachments):
            try:
                attachment = AttachmentIn.model_validate(item)
            except ValidationError:
                logger.warning(f"Skipping malformed attachment #{index} on message {message_id}")
                continue

            try:
                if attachment.is_inline:
                    data = decode_base64_payload(attachment.base64)
                    url = await self.attachment_store.write(data, conversation_id, attachment.filename)
                    row = await self.repository.create_attachment(
                        message_id=message_id,
                        url=url,
                        filename=attachment.filename,
                        mime_type=attachment.mime_type,
                        size=len(data),
                    )
                elif attachment.url:
                    row = await self.repository.create_attachment(
                        message_id=message_id,
                        url=attachment.url,
                        filename=attachment.filename or "file",
                        mime_type=attachment.mime_type or "application/octet-stream",
                        size=attachment.size or 0,
                    )
                else:
                    logger.warning(f"Skipping attachment without data or url on message {message_id}")
                    continue
            except Exception:
                logger.exception(f"Error saving attachment {attachment.filename!r} for message {message_id}")
                continue

            saved.append({
                "id": row.id,
                "url": row.url,
                "filename": row.filename,
                "mimeType": row.mime_type,
                "size": row.size,
            })
        return saved

    # =========================================================================
    # Send
    # =========================================================================

    async def send(self, sid: str, payload: TicketSend, session: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate, store and broadcast a ticket message.

        Args:
            sid: Originating connection
            payload: Parsed ticket message
            session: Socket session written by the gatekeeper

        Returns:
            The broadcast payload

        Raises:
            PayloadError, NotFoundError, TicketClosedError, PermissionDeniedError
        """
        session = session or {}
        if not payload.conversation_id or not payload.sender_type or (not payload.content and payload.metadata is None):
            raise PayloadError("conversationId, senderType, and either content or metadata are required")

        conversation = await self.repository.get_conversation(payload.conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")

        if conversation.status in TERMINAL_STATUSES:
            raise TicketClosedError("Cannot send messages to closed or resolved tickets")

        sender_type = payload.sender_type
        sender_id = payload.sender_id
        session_role, session_identity = session.get("role"), session.get("identity")
        if sender_type == "agent" and session_role == "agent" and session_identity:
            # An authenticated agent always sends as itself
            if sender_id and sender_id != session_identity:
                logger.warning(f"senderId {sender_id} ignored, socket is authenticated as agent {session_identity}")
            sender_id = session_identity
        elif not sender_id and session_role == sender_type:
            sender_id = session_identity

        if sender_type == "agent" and conversation.assignee_id and conversation.assignee_id != sender_id:
            raise PermissionDeniedError(
                "This ticket is assigned to another agent. You have read-only access."
            )

        sender_id = await self.resolve_sender_id(sender_type, sender_id)
        sender_name = payload.sender_name or await self.resolve_sender_name(conversation, sender_type, sender_id)

        metadata = dict(payload.metadata) if payload.metadata is not None else None
        if payload.reply_to_id:
            metadata = {**(metadata or {}), "replyTo": payload.reply_to_id}

        message = await self.repository.create_message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            sender_type=sender_type,
            content=(payload.content or "").strip(),
            metadata=metadata,
        )

        attachments = []
        if payload.attachments:
            attachments = await self.save_attachments(message.id, conversation.id, payload.attachments)

        reply_to = await self.resolve_reply(payload)
        await self.repository.touch_conversation(conversation.id)

        final_message = {
            "id": message.id,
            "conversationId": conversation.id,
            "senderId": sender_id,
            "senderType": sender_type,
            "senderName": sender_name,
            "content": message.content,
            "createdAt": isoformat(message.created_at),
            "attachments": attachments,
            "metadata": message.metadata_,
            "replyTo": reply_to,
            "socketId": payload.socket_id,
        }

        room = ticket_room(conversation.id)
        logger.info(f"Broadcasting message {message.id} to {room} (excluding {payload.socket_id or sid})")
        await self.transport.emit(
            "receive_message", final_message, room=room, skip_sid=[sid, payload.socket_id]
        )
        await self.transport.emit(
            "message_sent", {"id": message.id, "conversationId": conversation.id, "success": True}, to=sid
        )

        if sender_type == "customer":
            await self.notifications.notify_assignee_of_message(conversation, final_message)

        logger.info(f"Message saved and broadcast: {message.id} in conversation {conversation.id}")
        return final_message
