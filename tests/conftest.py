"""
Pytest configuration and shared fixtures.

Test settings are forced into the environment before any relay module is
imported, then the settings cache is cleared so they take effect.
"""

import os

os.environ["DATABASE_URL"] = "sqlite:///./test_helpdesk_relay.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["UPLOADS_DIR"] = "./test_uploads"

from helpdesk_relay.config import get_settings  # noqa: E402
get_settings.cache_clear()

from collections import defaultdict  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from typing import Any, Optional, Set  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402

from helpdesk_relay import models  # noqa: E402
from helpdesk_relay.attachments import AttachmentStore  # noqa: E402
from helpdesk_relay.relay import Relay  # noqa: E402
from helpdesk_relay.repository import Repository  # noqa: E402
from helpdesk_relay.storage import Base, SessionLocal, add_all, engine  # noqa: E402

TEST_JWT_SECRET = "test-secret"

CUSTOMER_ID = "11111111-1111-4111-8111-111111111111"
AGENT_ID = "22222222-2222-4222-8222-222222222222"
OTHER_AGENT_ID = "33333333-3333-4333-8333-333333333333"
ADMIN_ID = "44444444-4444-4444-8444-444444444444"
TICKET_ID = "TKT-1001"
UNASSIGNED_TICKET_ID = "TKT-1002"


@dataclass
class Emission:
    event: str
    data: Any
    target: Optional[str]
    skip: Set[str] = field(default_factory=set)


class RecordingTransport:
    """Transport double that records emissions and tracks room membership."""

    def __init__(self):
        self.emitted = []
        self.rooms = defaultdict(set)
        self.sessions = {}

    async def emit(self, event, data, *, room=None, to=None, skip_sid=None):
        if skip_sid is None:
            skip = set()
        elif isinstance(skip_sid, str):
            skip = {skip_sid}
        else:
            skip = {sid for sid in skip_sid if sid}
        self.emitted.append(Emission(event, data, to or room, skip))

    async def enter_room(self, sid, room):
        self.rooms[room].add(sid)

    async def leave_room(self, sid, room):
        self.rooms[room].discard(sid)

    async def save_session(self, sid, session):
        self.sessions[sid] = dict(session)

    async def get_session(self, sid):
        return self.sessions.get(sid, {})

    def events(self, name):
        return [e for e in self.emitted if e.event == name]

    def recipients(self, emission):
        """Socket ids an emission reaches, given current rooms and sessions."""
        if emission.target is None:
            audience = set(self.sessions)
        elif emission.target in self.rooms:
            audience = set(self.rooms[emission.target])
        else:
            audience = {emission.target}
        return audience - emission.skip

    def received(self, sid, name):
        return [e.data for e in self.events(name) if sid in self.recipients(e)]


def make_token(claims, secret=TEST_JWT_SECRET):
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="function")
def db():
    """Fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded_db(db):
    """Customer, two agents, an admin, one assigned and one unassigned ticket."""
    with SessionLocal() as session:
        add_all(session, [
            models.Customer(id=CUSTOMER_ID, name="Alice Customer", email="a@x.com"),
            models.Agent(id=AGENT_ID, name="Bob Agent", email="bob@helpdesk.test"),
            models.Agent(id=OTHER_AGENT_ID, name="Carol Agent", email="carol@helpdesk.test"),
            models.Admin(id=ADMIN_ID, name="Dana Admin", email="dana@helpdesk.test"),
        ])
        add_all(session, [
            models.Conversation(
                id=TICKET_ID, status="open", subject="Printer on fire",
                customer_id=CUSTOMER_ID, assignee_id=AGENT_ID,
            ),
            models.Conversation(
                id=UNASSIGNED_TICKET_ID, status="open", subject="Password reset",
                customer_id=CUSTOMER_ID, assignee_id=None,
            ),
        ])


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def attachment_store(tmp_path):
    return AttachmentStore(str(tmp_path / "uploads"), "/api/uploads")


@pytest.fixture
def relay(transport, attachment_store):
    return Relay(transport, Repository(), attachment_store, TEST_JWT_SECRET)


@pytest.fixture
def connect(relay):
    """Connect a socket through the gatekeeper, optionally with a token."""
    async def _connect(sid, token=None):
        auth = {"token": token} if token else None
        await relay.connect(sid, {}, auth)
        return sid
    return _connect
