# backend/leadflow/workflow/engine.py
"""
Durable workflow engine.

Functions subscribe to event names. Each delivery of an event runs the
function under a run identified by (function id, run key); the run key comes
from the payload (e.g. the submission id), so duplicate deliveries land on
the same run. Inside a run, `step.run(name, fn)` stores each step's JSON
output once it succeeds. A retried or replayed run returns the stored output
instead of executing the step again, so provider calls and writes are not
repeated after a crash.

Failure handling:
- NonRetriableError fails the run at once.
- Any other exception re-queues the event with exponential backoff until the
  function's retry budget is spent, then fails the run.
- A payload that does not validate is recorded as a skipped run, once per
  event however often it is delivered.
- An unexpected crash while handling one event marks that event failed and
  leaves the rest of the batch running.

Concurrency:
- Events are claimed with a conditional UPDATE, so two workers never claim
  the same event.
- Runs are claimed with a lease. A worker that dies mid-run leaves a lease
  that expires, and its event becomes claimable again after the lease window.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from leadflow.database import dialect_insert
from leadflow.exceptions import MalformedEvent, NonRetriableError
from leadflow.models import WorkflowEvent, WorkflowRun, WorkflowStep
from leadflow.workflow.events import EventBus

logger = logging.getLogger(__name__)


@dataclass
class WorkflowFunction:
    """A handler subscribed to one event name."""
    id: str
    trigger: str
    handler: Callable[["WorkflowContext"], Awaitable[Any]]
    payload_model: Optional[Type[BaseModel]] = None
    run_key: Optional[Callable[[Any], Optional[str]]] = None
    retries: int = 3
    on_failure: Optional[Callable[["WorkflowContext", Exception], Awaitable[None]]] = None

    @property
    def max_attempts(self) -> int:
        return self.retries + 1


@dataclass
class WorkflowContext:
    run_id: str
    function_id: str
    event_id: str
    event_name: str
    data: Dict[str, Any]
    payload: Any
    attempt: int
    step: "StepTools"


class StepTools:
    """Memoized step execution for one run."""

    def __init__(self, engine: "WorkflowEngine", run_id: uuid.UUID):
        self.engine = engine
        self.run_id = run_id
        self.executed: List[str] = []
        self.replayed: List[str] = []

    async def run(self, name: str, fn: Callable[[], Awaitable[Any]], state: Optional[str] = None) -> Any:
        found, output = await self.engine._load_step(self.run_id, name)
        if found:
            logger.debug(f"↩️ Replaying step {name} for run {self.run_id}")
            self.replayed.append(name)
            return output

        output = to_jsonable_python(await fn())
        await self.engine._save_step(self.run_id, name, output, state)
        self.executed.append(name)
        return output

    async def send_event(self, name: str, event_name: str, data: Dict[str, Any], state: Optional[str] = None) -> Dict[str, str]:
        """Memoized event send. The idempotency key makes a crashed send safe to redo."""
        idempotency_key = f"{self.run_id}:{name}"

        async def _send():
            event_id = await self.engine.event_bus.send(event_name, data, idempotency_key=idempotency_key)
            return {"event_id": event_id, "name": event_name}

        return await self.run(name, _send, state=state)

    async def set_state(self, state: str):
        """Record progress inside a step that spans more than one state."""
        await self.engine._set_state(self.run_id, state)


class WorkflowEngine:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        event_bus: Optional[EventBus] = None,
        concurrency: int = 4,
        batch_size: int = 20,
        lease_seconds: int = 300,
        retry_backoff_seconds: float = 10.0
    ):
        self.session_factory = session_factory
        self.event_bus = event_bus or EventBus(session_factory)
        self.concurrency = max(1, concurrency)
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self.retry_backoff_seconds = retry_backoff_seconds
        self.functions: Dict[str, WorkflowFunction] = {}

    # ============================================
    # REGISTRATION
    # ============================================

    def register(self, function: WorkflowFunction) -> WorkflowFunction:
        if function.id in self.functions:
            raise ValueError(f"Workflow function already registered: {function.id}")
        self.functions[function.id] = function
        logger.info(f"Registered workflow function {function.id} on {function.trigger}")
        return function

    def functions_for(self, event_name: str) -> List[WorkflowFunction]:
        return [f for f in self.functions.values() if f.trigger == event_name]

    # ============================================
    # WORKER LOOP
    # ============================================

    async def process_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Claim a batch of due events and run them with bounded concurrency."""
        event_ids = await self._claim_events(limit or self.batch_size)
        stats = {"claimed": len(event_ids), "completed": 0, "retrying": 0, "failed": 0}
        if not event_ids:
            return stats

        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(event_id):
            async with semaphore:
                try:
                    return await self._process_event(event_id)
                except Exception as e:
                    logger.error(f"❌ Event {event_id} crashed its worker: {e}", exc_info=True)
                    await self._abandon_event(event_id, f"{type(e).__name__}: {e}")
                    return "failed"

        outcomes = await asyncio.gather(*[worker(event_id) for event_id in event_ids], return_exceptions=True)
        for event_id, outcome in zip(event_ids, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"❌ Event {event_id} aborted: {outcome!r}")
                outcome = "failed"
            stats[outcome] += 1

        logger.info(f"⚙️ Workflow batch: {stats}")
        return stats

    async def drain(self, max_cycles: int = 50) -> Dict[str, int]:
        """Process until nothing is due. Used by tests and one-off replays."""
        totals = {"claimed": 0, "completed": 0, "retrying": 0, "failed": 0}
        for _ in range(max_cycles):
            stats = await self.process_pending()
            for key, value in stats.items():
                totals[key] += value
            if stats["claimed"] == 0:
                break
        return totals

    def _claimable(self, now: datetime):
        stale_before = now - timedelta(seconds=self.lease_seconds)
        return or_(
            and_(WorkflowEvent.status == "pending", WorkflowEvent.available_at <= now),
            and_(WorkflowEvent.status == "processing", WorkflowEvent.locked_at < stale_before),
        )

    async def _claim_events(self, limit: int) -> List[uuid.UUID]:
        now = datetime.utcnow()
        claimed = []

        async with self.session_factory() as db:
            candidates = (await db.execute(
                select(WorkflowEvent.id)
                .where(self._claimable(now))
                .order_by(WorkflowEvent.available_at.asc())
                .limit(limit)
            )).scalars().all()

            for event_id in candidates:
                result = await db.execute(
                    update(WorkflowEvent)
                    .where(WorkflowEvent.id == event_id, self._claimable(now))
                    .values(status="processing", locked_at=now, attempts=WorkflowEvent.attempts + 1)
                )
                if result.rowcount == 1:
                    claimed.append(event_id)
            await db.commit()

        return claimed

    async def _process_event(self, event_id: uuid.UUID) -> str:
        async with self.session_factory() as db:
            event = await db.get(WorkflowEvent, event_id)
            name, data, attempts = event.name, dict(event.data or {}), event.attempts

        functions = self.functions_for(name)
        if not functions:
            logger.warning(f"No workflow functions subscribed to {name}; event {event_id} acknowledged")
            await self._finish_event(event_id, "completed")
            return "completed"

        outcomes = []
        errors = []
        for function in functions:
            outcome, error = await self._execute(function, event_id, name, data, attempts)
            outcomes.append(outcome)
            if error:
                errors.append(f"{function.id}: {error}")

        if "retry" in outcomes:
            await self._requeue_event(event_id, attempts, "; ".join(errors))
            return "retrying"
        if "busy" in outcomes:
            await self._requeue_event(event_id, attempts, "run in progress elsewhere", count_attempt=False)
            return "retrying"
        if "failed" in outcomes:
            await self._finish_event(event_id, "failed", "; ".join(errors))
            return "failed"

        await self._finish_event(event_id, "completed")
        return "completed"

    # ============================================
    # RUN EXECUTION
    # ============================================

    async def _execute(
        self,
        function: WorkflowFunction,
        event_id: uuid.UUID,
        event_name: str,
        data: Dict[str, Any],
        attempts: int
    ) -> Tuple[str, Optional[str]]:
        """Returns (outcome, error) where outcome is completed | retry | busy | failed."""
        payload = data
        if function.payload_model is not None:
            try:
                payload = function.payload_model.model_validate(data)
            except ValidationError as e:
                error = MalformedEvent(
                    f"Malformed {event_name} payload: {e.error_count()} validation errors",
                    {"fields": [".".join(str(part) for part in err["loc"]) for err in e.errors()]}
                )
                logger.error(f"❌ {function.id}: {error} (event {event_id}, fields {error.details['fields']})")
                await self._record_skipped(function, event_id, str(error))
                return "failed", str(error)

        run_key = function.run_key(payload) if function.run_key else None
        run_key = str(run_key) if run_key else str(event_id)

        claim, run_id = await self._claim_run(function, run_key, event_id)
        if claim == "duplicate":
            logger.info(f"↩️ {function.id} run {run_key} already finished; duplicate event {event_id} ignored")
            return "completed", None
        if claim == "busy":
            logger.info(f"⏳ {function.id} run {run_key} is leased by another worker")
            return "busy", None

        step = StepTools(self, run_id)
        ctx = WorkflowContext(
            run_id=str(run_id),
            function_id=function.id,
            event_id=str(event_id),
            event_name=event_name,
            data=data,
            payload=payload,
            attempt=attempts,
            step=step,
        )

        start_time = time.time()
        try:
            output = await function.handler(ctx)
        except NonRetriableError as e:
            logger.error(f"❌ {function.id} run {run_key} failed permanently: {e}")
            await self._finish_run(run_id, "failed", error=str(e))
            await self._notify_failure(function, ctx, e)
            return "failed", str(e)
        except Exception as e:
            if attempts >= function.max_attempts:
                logger.error(f"❌ {function.id} run {run_key} failed after {attempts} attempts: {e}", exc_info=True)
                await self._finish_run(run_id, "failed", error=str(e))
                await self._notify_failure(function, ctx, e)
                return "failed", str(e)

            logger.warning(f"⚠️ {function.id} run {run_key} attempt {attempts}/{function.max_attempts} failed: {e}")
            await self._release_run(run_id, error=str(e))
            return "retry", str(e)

        elapsed_ms = int((time.time() - start_time) * 1000)
        await self._finish_run(run_id, "completed", output=to_jsonable_python(output))
        logger.info(
            f"✅ {function.id} run {run_key} completed in {elapsed_ms}ms "
            f"(executed={len(step.executed)}, replayed={len(step.replayed)})"
        )
        return "completed", None

    async def _notify_failure(self, function: WorkflowFunction, ctx: WorkflowContext, error: Exception):
        if function.on_failure is None:
            return
        try:
            await function.on_failure(ctx, error)
        except Exception as e:
            logger.error(f"❌ on_failure hook for {function.id} raised: {e}")

    async def _claim_run(self, function: WorkflowFunction, run_key: str, event_id: uuid.UUID) -> Tuple[str, Optional[uuid.UUID]]:
        table = WorkflowRun.__table__
        now = datetime.utcnow()

        async with self.session_factory() as db:
            await db.execute(
                dialect_insert(db, table).values(
                    id=uuid.uuid4(),
                    function_id=function.id,
                    run_key=run_key,
                    event_id=event_id,
                    status="running",
                    current_state="RECEIVED",
                    attempts=0,
                    started_at=now,
                ).on_conflict_do_nothing(index_elements=[table.c.function_id, table.c.run_key])
            )
            run = (await db.execute(
                select(WorkflowRun).where(WorkflowRun.function_id == function.id, WorkflowRun.run_key == run_key)
            )).scalar_one()

            if run.status in ("completed", "skipped"):
                await db.commit()
                return "duplicate", run.id

            result = await db.execute(
                update(WorkflowRun)
                .where(
                    WorkflowRun.id == run.id,
                    or_(WorkflowRun.lease_until.is_(None), WorkflowRun.lease_until < now)
                )
                .values(
                    status="running",
                    event_id=event_id,
                    attempts=WorkflowRun.attempts + 1,
                    lease_until=now + timedelta(seconds=self.lease_seconds),
                )
            )
            await db.commit()

            if result.rowcount != 1:
                return "busy", run.id
            return "claimed", run.id

    async def _record_skipped(self, function: WorkflowFunction, event_id: uuid.UUID, diagnostic: str):
        # A redelivered malformed event keeps its first skipped run
        table = WorkflowRun.__table__
        now = datetime.utcnow()

        async with self.session_factory() as db:
            await db.execute(
                dialect_insert(db, table).values(
                    id=uuid.uuid4(),
                    function_id=function.id,
                    run_key=f"invalid:{event_id}",
                    event_id=event_id,
                    status="skipped",
                    current_state="REJECTED",
                    attempts=1,
                    error=diagnostic,
                    started_at=now,
                    completed_at=now,
                ).on_conflict_do_nothing(index_elements=[table.c.function_id, table.c.run_key])
            )
            await db.commit()

    async def _release_run(self, run_id: uuid.UUID, error: str):
        async with self.session_factory() as db:
            await db.execute(
                update(WorkflowRun).where(WorkflowRun.id == run_id).values(lease_until=None, error=error)
            )
            await db.commit()

    async def _finish_run(self, run_id: uuid.UUID, status: str, output: Any = None, error: Optional[str] = None):
        async with self.session_factory() as db:
            await db.execute(
                update(WorkflowRun).where(WorkflowRun.id == run_id).values(
                    status=status,
                    current_state="DONE" if status == "completed" else "FAILED",
                    output=output,
                    error=error,
                    lease_until=None,
                    completed_at=datetime.utcnow(),
                )
            )
            await db.commit()

    async def _finish_event(self, event_id: uuid.UUID, status: str, error: Optional[str] = None):
        async with self.session_factory() as db:
            await db.execute(
                update(WorkflowEvent).where(WorkflowEvent.id == event_id).values(
                    status=status,
                    last_error=error,
                    locked_at=None,
                    completed_at=datetime.utcnow(),
                )
            )
            await db.commit()

    async def _abandon_event(self, event_id: uuid.UUID, error: str):
        """Mark an event failed after an unexpected crash so it is not reclaimed forever."""
        try:
            await self._finish_event(event_id, "failed", error)
        except Exception as e:
            logger.error(f"❌ Could not mark event {event_id} failed: {e}")

    async def _requeue_event(self, event_id: uuid.UUID, attempts: int, error: str, count_attempt: bool = True):
        delay = self.retry_backoff_seconds * (2 ** max(0, attempts - 1)) if count_attempt else self.retry_backoff_seconds
        values = {
            "status": "pending",
            "locked_at": None,
            "last_error": error,
            "available_at": datetime.utcnow() + timedelta(seconds=delay),
        }
        if not count_attempt:
            values["attempts"] = WorkflowEvent.attempts - 1

        async with self.session_factory() as db:
            await db.execute(update(WorkflowEvent).where(WorkflowEvent.id == event_id).values(**values))
            await db.commit()

    # ============================================
    # STEP MEMOIZATION
    # ============================================

    async def _load_step(self, run_id: uuid.UUID, name: str) -> Tuple[bool, Any]:
        async with self.session_factory() as db:
            row = (await db.execute(
                select(WorkflowStep).where(WorkflowStep.run_id == run_id, WorkflowStep.step_name == name)
            )).scalar_one_or_none()
            if row is None:
                return False, None
            return True, row.output

    async def _save_step(self, run_id: uuid.UUID, name: str, output: Any, state: Optional[str]):
        table = WorkflowStep.__table__
        async with self.session_factory() as db:
            await db.execute(
                dialect_insert(db, table).values(
                    id=uuid.uuid4(),
                    run_id=run_id,
                    step_name=name,
                    output=output,
                    completed_at=datetime.utcnow(),
                ).on_conflict_do_nothing(index_elements=[table.c.run_id, table.c.step_name])
            )
            if state:
                await db.execute(
                    update(WorkflowRun).where(WorkflowRun.id == run_id).values(current_state=state)
                )
            await db.commit()

    async def _set_state(self, run_id: uuid.UUID, state: str):
        async with self.session_factory() as db:
            await db.execute(update(WorkflowRun).where(WorkflowRun.id == run_id).values(current_state=state))
            await db.commit()

    # ============================================
    # INSPECTION
    # ============================================

    async def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        try:
            key = uuid.UUID(str(run_id))
        except ValueError:
            return None

        async with self.session_factory() as db:
            run = await db.get(WorkflowRun, key)
            if run is None:
                return None
            steps = (await db.execute(
                select(WorkflowStep).where(WorkflowStep.run_id == key).order_by(WorkflowStep.completed_at.asc())
            )).scalars().all()

            data = run.to_dict()
            data["steps"] = [s.to_dict() for s in steps]
            return data

    async def find_run(self, function_id: str, run_key: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as db:
            run = (await db.execute(
                select(WorkflowRun).where(WorkflowRun.function_id == function_id, WorkflowRun.run_key == run_key)
            )).scalar_one_or_none()
            return await self.get_run(str(run.id)) if run else None
