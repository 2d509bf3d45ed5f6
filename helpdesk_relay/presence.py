"""
Who is looking at which ticket.

Agents and admins announce themselves with presence:join / presence:leave
and every viewer of the ticket receives the refreshed viewer list. Entries
are keyed by user id so a user with two tabs shows up once.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

from helpdesk_relay.rooms import presence_room
from helpdesk_relay.schemas import PresencePayload

logger = logging.getLogger(__name__)

PRESENCE_SYNC = "presence:sync"


@dataclass
class Viewer:
    sid: str
    user: Dict[str, str]


class PresenceRegistry:
    def __init__(self, transport):
        self.transport = transport
        self._viewers: Dict[str, List[Viewer]] = {}

    def viewers(self, ticket_id: str) -> List[Dict[str, str]]:
        return [v.user for v in self._viewers.get(ticket_id, [])]

    async def _sync(self, ticket_id: str) -> None:
        await self.transport.emit(
            PRESENCE_SYNC,
            {"ticketId": ticket_id, "activeViewers": self.viewers(ticket_id)},
            room=presence_room(ticket_id),
        )

    def _remove(self, ticket_id: str, predicate) -> bool:
        viewers = self._viewers.get(ticket_id, [])
        remaining = [v for v in viewers if not predicate(v)]
        if len(remaining) == len(viewers):
            return False
        if remaining:
            self._viewers[ticket_id] = remaining
        else:
            self._viewers.pop(ticket_id, None)
        return True

    async def join(self, sid: str, payload: PresencePayload) -> bool:
        if not payload.ticket_id or not payload.user or not payload.user.id:
            logger.warning("presence:join missing ticketId or user.id")
            return False

        user = {"id": payload.user.id, "name": payload.user.name, "role": payload.user.role}
        self._remove(payload.ticket_id, lambda v: v.user["id"] == user["id"])
        self._viewers.setdefault(payload.ticket_id, []).append(Viewer(sid=sid, user=user))

        await self.transport.enter_room(sid, presence_room(payload.ticket_id))
        await self._sync(payload.ticket_id)
        logger.info(f"{user['name']} ({user['role']}) viewing ticket {payload.ticket_id}")
        return True

    async def leave(self, sid: str, payload: PresencePayload) -> bool:
        if not payload.ticket_id or not payload.user or not payload.user.id:
            return False

        user_id = payload.user.id
        removed = self._remove(payload.ticket_id, lambda v: v.user["id"] == user_id)
        await self.transport.leave_room(sid, presence_room(payload.ticket_id))
        if removed:
            await self._sync(payload.ticket_id)
        return removed

    async def disconnect(self, sid: str) -> List[str]:
        """Drop every viewer entry owned by a closed socket and re-sync those tickets."""
        affected = [
            ticket_id
            for ticket_id in list(self._viewers)
            if self._remove(ticket_id, lambda v: v.sid == sid)
        ]
        for ticket_id in affected:
            await self._sync(ticket_id)
        if affected:
            logger.info(f"Cleaned up presence for {sid} on tickets {affected}")
        return affected
