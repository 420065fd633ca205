# backend/leadflow/workflow/events.py
"""
Event Bus - durable, at-least-once event delivery backed by workflow_events.

send() returns once the event row is stored ("fire and confirm"). Passing an
open session enqueues inside the caller's transaction, so a submission and
its lead/submitted event commit or roll back together.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadflow.database import dialect_insert
from leadflow.models import WorkflowEvent

logger = logging.getLogger(__name__)


class EventBus:

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def send(
        self,
        name: str,
        data: Dict[str, Any],
        idempotency_key: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> str:
        """
        Store an event and return its id.

        Events sharing an idempotency key are stored once; later sends return
        the original id.
        """
        if db is not None:
            return await self._enqueue(db, name, data, idempotency_key)

        async with self.session_factory() as session:
            event_id = await self._enqueue(session, name, data, idempotency_key)
            await session.commit()
            return event_id

    async def _enqueue(self, db: AsyncSession, name: str, data: Dict[str, Any], idempotency_key: Optional[str]) -> str:
        table = WorkflowEvent.__table__
        event_id = uuid.uuid4()
        now = datetime.utcnow()

        stmt = dialect_insert(db, table).values(
            id=event_id,
            name=name,
            data=to_jsonable_python(data),
            idempotency_key=idempotency_key,
            status="pending",
            attempts=0,
            available_at=now,
            received_at=now,
        ).on_conflict_do_nothing(index_elements=[table.c.idempotency_key])
        await db.execute(stmt)

        if idempotency_key:
            stored_id = (await db.execute(
                select(WorkflowEvent.id).where(WorkflowEvent.idempotency_key == idempotency_key)
            )).scalar_one()
            if stored_id != event_id:
                logger.info(f"↩️ Event {name} with key {idempotency_key} already stored as {stored_id}")
            return str(stored_id)

        logger.info(f"📨 Event {name} stored as {event_id}")
        return str(event_id)
