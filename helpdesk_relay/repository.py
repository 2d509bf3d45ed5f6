"""
Async facade over the storage functions.

Each call opens its own session and runs in the thread pool, so socket
handlers suspend at the database boundary instead of blocking the loop.
"""

from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from helpdesk_relay import storage


class Repository:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or storage.SessionLocal

    async def _run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        def call():
            db: Session = self._session_factory()
            try:
                return fn(db, *args, **kwargs)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        return await run_in_threadpool(call)

    # Live chats

    async def find_open_live_chat(self, email: str):
        return await self._run(storage.find_open_live_chat, email)

    async def get_live_chat(self, chat_id: str):
        return await self._run(storage.get_live_chat, chat_id)

    async def create_live_chat(self, **fields):
        return await self._run(storage.create_live_chat, **fields)

    async def add_live_chat_message(self, **fields):
        return await self._run(storage.add_live_chat_message, **fields)

    async def assign_live_chat(self, chat_id: str, agent_id: str, agent_name: Optional[str]) -> bool:
        return await self._run(storage.assign_live_chat, chat_id, agent_id, agent_name)

    # Tickets

    async def get_conversation(self, conversation_id: str):
        return await self._run(storage.get_conversation, conversation_id)

    async def touch_conversation(self, conversation_id: str) -> None:
        await self._run(storage.touch_conversation, conversation_id)

    async def create_message(self, **fields):
        return await self._run(storage.create_message, **fields)

    async def get_message(self, message_id: str):
        return await self._run(storage.get_message, message_id)

    async def create_attachment(self, **fields):
        return await self._run(storage.create_attachment, **fields)

    # Identities

    async def find_customer_by_email(self, email: str):
        return await self._run(storage.find_customer_by_email, email)

    async def get_customer(self, customer_id: str):
        return await self._run(storage.get_customer, customer_id)

    async def get_agent(self, agent_id: str):
        return await self._run(storage.get_agent, agent_id)

    async def get_admin(self, admin_id: str):
        return await self._run(storage.get_admin, admin_id)
