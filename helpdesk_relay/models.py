"""
SQLAlchemy ORM models for the records the relay reads and writes.

The helpdesk application owns these tables; the relay only touches the
columns it needs for chat routing, permission checks and message storage.
For event payload schemas, see schemas.py.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from helpdesk_relay.storage import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=True)
    email = Column(String, nullable=False, unique=True, index=True)


class Agent(Base):
    __tablename__ = "agents"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, unique=True)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, unique=True)


class LiveChat(Base):
    """
    Pre-ticket chat session started from the widget.

    status: waiting -> active (agent self-assigns) -> closed (outside the relay)
    """
    __tablename__ = "live_chats"

    id = Column(String, primary_key=True, default=_uuid)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    department = Column(String, nullable=True)
    status = Column(String, nullable=False, default="waiting", index=True)
    assigned_agent_id = Column(String, nullable=True)
    assigned_agent_name = Column(String, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    last_message_at = Column(DateTime(timezone=True), nullable=True)


class LiveChatMessage(Base):
    """Append-only message inside a live chat."""
    __tablename__ = "live_chat_messages"

    id = Column(String, primary_key=True, default=_uuid)
    chat_id = Column(String, ForeignKey("live_chats.id"), nullable=False, index=True)
    sender_id = Column(String, nullable=True)
    sender_type = Column(String, nullable=False)  # customer | agent
    sender_name = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_now)
    read = Column(Boolean, nullable=False, default=False)
    attachments = Column(JSON, nullable=True)


class Conversation(Base):
    """
    A support ticket. The ticket number is the primary key and the
    identifier used in ticket room names.
    """
    __tablename__ = "conversations"

    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default="open")
    subject = Column(String, nullable=True)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=True)
    assignee_id = Column(String, ForeignKey("agents.id"), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    customer = relationship("Customer", lazy="joined")
    assignee = relationship("Agent", lazy="joined")


class Message(Base):
    """Append-only ticket message."""
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=_uuid)
    conversation_id = Column(String, ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = Column(String, nullable=True)
    sender_type = Column(String, nullable=False)  # customer | agent | admin
    content = Column(Text, nullable=False, default="")
    type = Column(String, nullable=False, default="text")
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String, ForeignKey("messages.id"), nullable=False, index=True)
    url = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    size = Column(Integer, nullable=False, default=0)
