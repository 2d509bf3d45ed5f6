"""
Notification fan-out to personal rooms.

Assignment notices and new-message alerts go to agent_{id} rooms, which
every agent socket joins on connect, so the assignee hears about them
while looking at a different ticket or none at all.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from helpdesk_relay.metrics import record_notification
from helpdesk_relay.rooms import personal_room
from helpdesk_relay.schemas import TicketAssignment
from helpdesk_relay.utils import isoformat

logger = logging.getLogger(__name__)

TICKET_ASSIGNED = "ticket:assigned"
AGENT_NOTIFICATION = "agent:notification"


class NotificationFanout:
    def __init__(self, transport=None):
        self.transport = transport

    async def emit_ticket_assignment(self, assignment: TicketAssignment | Dict[str, Any]) -> bool:
        """
        Tell an agent a ticket was assigned to them.

        Called by the ticket-assignment code path, not by clients. The event
        goes to the assignee's personal room only.

        Returns:
            True if emitted, False when there is no transport yet or the
            assignment is malformed
        """
        if not isinstance(assignment, TicketAssignment):
            try:
                assignment = TicketAssignment.model_validate(assignment)
            except ValidationError:
                logger.warning(f"Malformed ticket assignment, ticket:assigned not delivered: {assignment!r}")
                return False

        if self.transport is None:
            logger.warning(
                f"No socket transport available, ticket:assigned for {assignment.ticket_id} not delivered"
            )
            return False

        room = personal_room("agent", assignment.assignee_id)
        payload = {
            "ticketId": assignment.ticket_id,
            "assigneeId": assignment.assignee_id,
            "assignee": {"id": assignment.assignee_id, "name": assignment.assignee_name},
            "assignedBy": assignment.assigned_by,
            "ticket": assignment.ticket,
            "timestamp": isoformat(datetime.now(timezone.utc)),
        }
        await self.transport.emit(TICKET_ASSIGNED, payload, room=room)
        record_notification(TICKET_ASSIGNED)
        logger.info(f"ticket:assigned emitted to {room} for ticket {assignment.ticket_id}")
        return True

    async def notify_assignee_of_message(self, conversation, message: Dict[str, Any]) -> bool:
        """
        Alert a ticket's assignee about a new customer message.

        Failures are logged and swallowed; the message itself is already
        stored and broadcast by the time this runs.
        """
        assignee_id: Optional[str] = getattr(conversation, "assignee_id", None)
        if self.transport is None or not assignee_id:
            return False

        try:
            customer = getattr(conversation, "customer", None)
            customer_name = getattr(customer, "name", None) or message.get("senderName") or "Customer"
            payload = {
                "type": "new_message",
                "ticketId": conversation.id,
                "ticketNumber": conversation.id,
                "conversationId": conversation.id,
                "subject": getattr(conversation, "subject", None),
                "customerName": customer_name,
                "senderName": message.get("senderName"),
                "content": message.get("content"),
                "message": message.get("content"),
                "messageId": message.get("id"),
                "createdAt": message.get("createdAt"),
            }
            room = personal_room("agent", assignee_id)
            await self.transport.emit(AGENT_NOTIFICATION, payload, room=room)
            record_notification(AGENT_NOTIFICATION)
            logger.info(f"agent:notification emitted to {room} for ticket {conversation.id}")
            return True
        except Exception:
            logger.exception(f"Failed to notify assignee {assignee_id} for ticket {conversation.id}")
            return False
