import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from helpdesk_relay.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required because storage calls run in the thread pool
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    echo=False,
)

# Records are handed back to async handlers after the session closes,
# so they must not expire on commit.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

OPEN_CHAT_STATUSES = ("waiting", "active")
REQUIRED_TABLES = ("live_chats", "live_chat_messages", "conversations", "messages", "attachments")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from helpdesk_relay import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and every relay table exists, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        existing = set(inspect(engine).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Live Chat Functions
# =============================================================================

def find_open_live_chat(db: Session, email: str):
    """
    Find the waiting or active live chat for a customer email.

    Args:
        db: Database session
        email: Customer email (already lower-cased)

    Returns:
        LiveChat if one is open, None otherwise
    """
    from helpdesk_relay.models import LiveChat

    return (
        db.query(LiveChat)
        .filter(LiveChat.customer_email == email, LiveChat.status.in_(OPEN_CHAT_STATUSES))
        .order_by(LiveChat.started_at.desc())
        .first()
    )


def get_live_chat(db: Session, chat_id: str):
    from helpdesk_relay.models import LiveChat

    return db.query(LiveChat).filter(LiveChat.id == chat_id).first()


def create_live_chat(
    db: Session,
    customer_name: str,
    customer_email: str,
    department: Optional[str],
    metadata: Optional[Dict[str, Any]] = None,
    first_message: Optional[str] = None,
):
    """
    Create a waiting live chat, optionally with the customer's first message.

    Args:
        db: Database session
        customer_name: Display name typed into the widget
        customer_email: Lower-cased customer email
        department: Department the customer picked
        metadata: Opaque widget metadata (page URL, browser, ...)
        first_message: Message typed before starting the chat

    Returns:
        The created LiveChat
    """
    from helpdesk_relay.models import LiveChat, LiveChatMessage

    now = _now()
    chat = LiveChat(
        customer_name=customer_name,
        customer_email=customer_email,
        department=department,
        status="waiting",
        metadata_=metadata or {},
        started_at=now,
        last_message_at=now if first_message else None,
    )
    db.add(chat)
    db.flush()

    if first_message:
        db.add(LiveChatMessage(
            chat_id=chat.id,
            sender_id=customer_email,
            sender_type="customer",
            sender_name=customer_name,
            content=first_message,
            timestamp=now,
            read=False,
        ))

    db.commit()
    logger.info(f"Live chat created: id={chat.id}, department={department}")
    return chat


def add_live_chat_message(
    db: Session,
    chat_id: str,
    sender_id: Optional[str],
    sender_type: str,
    sender_name: Optional[str],
    content: Optional[str],
    attachments: Optional[list] = None,
):
    """
    Append a message to a live chat and bump the chat's lastMessageAt.

    Returns:
        The created LiveChatMessage
    """
    from helpdesk_relay.models import LiveChat, LiveChatMessage

    now = _now()
    message = LiveChatMessage(
        chat_id=chat_id,
        sender_id=sender_id,
        sender_type=sender_type,
        sender_name=sender_name,
        content=content,
        timestamp=now,
        read=False,
        attachments=attachments or None,
    )
    db.add(message)
    db.query(LiveChat).filter(LiveChat.id == chat_id).update({LiveChat.last_message_at: now})
    db.commit()
    logger.debug(f"Live chat message stored: chat={chat_id}, sender_type={sender_type}")
    return message


def assign_live_chat(db: Session, chat_id: str, agent_id: str, agent_name: Optional[str]) -> bool:
    """
    Hand a live chat to an agent and mark it active.

    A single-row update, so concurrent claims resolve to the last writer.

    Returns:
        True if the chat existed, False otherwise
    """
    from helpdesk_relay.models import LiveChat

    updated = (
        db.query(LiveChat)
        .filter(LiveChat.id == chat_id)
        .update({
            LiveChat.assigned_agent_id: agent_id,
            LiveChat.assigned_agent_name: agent_name,
            LiveChat.status: "active",
        })
    )
    db.commit()
    return updated > 0


# =============================================================================
# Ticket Functions
# =============================================================================

def get_conversation(db: Session, conversation_id: str):
    """Fetch a ticket with its customer and assignee loaded."""
    from helpdesk_relay.models import Conversation

    return db.query(Conversation).filter(Conversation.id == conversation_id).first()


def touch_conversation(db: Session, conversation_id: str) -> None:
    from helpdesk_relay.models import Conversation

    db.query(Conversation).filter(Conversation.id == conversation_id).update(
        {Conversation.last_message_at: _now()}
    )
    db.commit()


def create_message(
    db: Session,
    conversation_id: str,
    sender_id: Optional[str],
    sender_type: str,
    content: str,
    metadata: Optional[Dict[str, Any]] = None,
):
    """
    Create a ticket message.

    Args:
        db: Database session
        conversation_id: Ticket number
        sender_id: Resolved internal sender id
        sender_type: customer, agent or admin
        content: Trimmed message text (may be empty for attachment-only messages)
        metadata: Caller metadata merged with the replyTo pointer

    Returns:
        The created Message
    """
    from helpdesk_relay.models import Message

    message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_type=sender_type,
        content=content,
        type="text",
        metadata_=metadata,
        created_at=_now(),
    )
    db.add(message)
    db.commit()
    logger.info(f"Message created: id={message.id}, conversation={conversation_id}")
    return message


def get_message(db: Session, message_id: str):
    from helpdesk_relay.models import Message

    return db.query(Message).filter(Message.id == message_id).first()


def create_attachment(
    db: Session,
    message_id: str,
    url: str,
    filename: str,
    mime_type: str,
    size: int,
):
    from helpdesk_relay.models import Attachment

    attachment = Attachment(
        message_id=message_id,
        url=url,
        filename=filename,
        mime_type=mime_type,
        size=size,
    )
    db.add(attachment)
    db.commit()
    return attachment


# =============================================================================
# Identity Lookups
# =============================================================================

def find_customer_by_email(db: Session, email: str):
    from helpdesk_relay.models import Customer

    return db.query(Customer).filter(Customer.email == email.lower()).first()


def get_customer(db: Session, customer_id: str):
    from helpdesk_relay.models import Customer

    return db.query(Customer).filter(Customer.id == customer_id).first()


def get_agent(db: Session, agent_id: str):
    from helpdesk_relay.models import Agent

    return db.query(Agent).filter(Agent.id == agent_id).first()


def get_admin(db: Session, admin_id: str):
    from helpdesk_relay.models import Admin

    return db.query(Admin).filter(Admin.id == admin_id).first()


def add_all(db: Session, records: Iterable) -> None:
    """Persist a batch of records (seeding and tests)."""
    db.add_all(list(records))
    db.commit()
