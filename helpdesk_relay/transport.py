"""
Thin wrapper around the python-socketio server.

Components receive a transport in their constructor instead of reaching
for a process-wide server object. Only the operations the relay needs are
exposed, which also keeps test doubles small.
"""

from typing import Any, Dict, Iterable, Optional, Union

import socketio


SkipSid = Union[str, Iterable[str], None]


class SocketIOTransport:
    def __init__(self, server: socketio.AsyncServer):
        self.server = server

    async def emit(
        self,
        event: str,
        data: Any,
        *,
        room: Optional[str] = None,
        to: Optional[str] = None,
        skip_sid: SkipSid = None,
    ) -> None:
        """
        Emit an event.

        With neither room nor to the event goes to every connected socket.
        skip_sid excludes one or several socket ids from a room broadcast.
        """
        if skip_sid is not None and not isinstance(skip_sid, str):
            skip_sid = [sid for sid in skip_sid if sid]
        await self.server.emit(event, data, room=to or room, skip_sid=skip_sid or None)

    async def enter_room(self, sid: str, room: str) -> None:
        await self.server.enter_room(sid, room)

    async def leave_room(self, sid: str, room: str) -> None:
        await self.server.leave_room(sid, room)

    async def save_session(self, sid: str, session: Dict[str, Any]) -> None:
        await self.server.save_session(sid, session)

    async def get_session(self, sid: str) -> Dict[str, Any]:
        try:
            return await self.server.get_session(sid)
        except KeyError:
            # Session gone (socket disconnected mid-handler)
            return {}
