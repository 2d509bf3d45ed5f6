"""
Errors raised inside event handlers.

Each error carries the message shown to the client in the `error` event.
The event wrapper in relay.py turns them into emissions; nothing here
escapes to the socket layer.
"""


class RelayError(Exception):
    """Base class for failures reported back to the sending socket."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PayloadError(RelayError):
    """Missing or malformed fields in an event payload."""


class NotFoundError(RelayError):
    """The chat or conversation referenced by the payload does not exist."""


class PermissionDeniedError(RelayError):
    """The ticket is assigned to another agent."""


class TicketClosedError(RelayError):
    """The ticket is closed or resolved and accepts no new messages."""
