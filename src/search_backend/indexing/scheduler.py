"""Per-type refresh scheduler.

Every registered type gets its own asyncio task running a simple loop: wait for
the interval (or a "run now" trigger), run one cycle, repeat. Because the loop
awaits the cycle before waiting again, cycles of one type never overlap and the
next one starts no earlier than a full interval after the previous finished.
Types are independent of each other; a slow or failing collator only delays its
own type.

A cycle is ``produce_documents`` -> ``IndexBatch`` -> ``engine.index``. Any
failure is contained inside the cycle: it is logged, counted on the type's
``SchedulerTask`` and in ``index_cycles_total``, and the previously committed
index stays queryable.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
import time

from opentelemetry.trace import SpanKind

from search_backend.collators.base import Collator
from search_backend.domain.model import IndexBatch
from search_backend.errors import CollationError, IndexCommitError, SchedulerStateError
from search_backend.observability import INDEX_CYCLE_DURATION, INDEX_CYCLES, create_span, document_type_context
from search_backend.search.engine import SearchEngine


logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class SchedulerTask:
    """Bookkeeping for one type; snapshots are exposed through ``Scheduler.tasks``."""

    type: str
    interval_seconds: float
    next_run_at: str | None = None
    running: bool = False
    total_cycles: int = 0
    failed_cycles: int = 0
    last_run_at: str | None = None
    last_error: str | None = None
    last_document_count: int | None = None


@dataclass(frozen=True)
class ScheduledCollator:
    type: str
    collator: Collator
    interval_seconds: float


@dataclass
class _Slot:
    binding: ScheduledCollator
    task: SchedulerTask
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    trigger: asyncio.Event = field(default_factory=asyncio.Event)
    loop_task: asyncio.Task | None = None


def _utcnow_iso(offset_seconds: float = 0.0) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)).isoformat()


class Scheduler:
    """Drives periodic refresh cycles for every registered type.

    Lifecycle is ``IDLE -> RUNNING -> STOPPED``; ``STOPPED`` is terminal.
    """

    def __init__(
        self,
        search_engine: SearchEngine,
        collators: list[ScheduledCollator],
        *,
        start_delay_seconds: float = 0.0,
        cycle_timeout_seconds: float | None = None,
    ) -> None:
        self.search_engine = search_engine
        self.start_delay_seconds = max(0.0, start_delay_seconds)
        self.cycle_timeout_seconds = cycle_timeout_seconds
        self._state = SchedulerState.IDLE
        self._stop_event = asyncio.Event()
        self._slots: dict[str, _Slot] = {
            binding.type: _Slot(
                binding=binding, task=SchedulerTask(type=binding.type, interval_seconds=binding.interval_seconds)
            )
            for binding in collators
        }

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def document_types(self) -> list[str]:
        return list(self._slots)

    @property
    def tasks(self) -> dict[str, SchedulerTask]:
        return {document_type: replace(slot.task) for document_type, slot in self._slots.items()}

    @property
    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "types": {document_type: asdict(task) for document_type, task in self.tasks.items()},
        }

    def _slot(self, document_type: str) -> _Slot:
        try:
            return self._slots[document_type]
        except KeyError:
            raise KeyError(f"No collator registered for document type '{document_type}'") from None

    # --- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """Arm one refresh loop per type.

        Raises:
            SchedulerStateError: the scheduler was already started or stopped
        """
        if self._state is not SchedulerState.IDLE:
            raise SchedulerStateError(f"Cannot start scheduler in state '{self._state.value}'")
        self._state = SchedulerState.RUNNING
        for document_type, slot in self._slots.items():
            slot.task.next_run_at = _utcnow_iso(self.start_delay_seconds + slot.binding.interval_seconds)
            slot.loop_task = asyncio.create_task(self._run_loop(slot), name=f"index-refresh:{document_type}")
        logger.info(
            "Scheduler started with %d types (start delay %.1fs)", len(self._slots), self.start_delay_seconds
        )

    async def stop(self, drain_timeout: float | None = None) -> None:
        """Stop scheduling new cycles and wait for in-flight ones to finish.

        Pending timers are cancelled immediately. A cycle that is already
        running completes its commit; with ``drain_timeout`` set, loops still
        busy after that many seconds are cancelled. Calling ``stop`` again is a
        no-op.
        """
        if self._state is SchedulerState.STOPPED:
            return
        previous = self._state
        self._state = SchedulerState.STOPPED
        for slot in self._slots.values():
            slot.task.next_run_at = None
        if previous is SchedulerState.IDLE:
            logger.info("Scheduler stopped before it was started")
            return

        self._stop_event.set()
        for slot in self._slots.values():
            slot.trigger.set()

        loops = [slot.loop_task for slot in self._slots.values() if slot.loop_task is not None]
        if loops:
            _, pending = await asyncio.wait(loops, timeout=drain_timeout)
            if pending:
                logger.warning("Cancelling %d refresh loops still busy after %.1fs", len(pending), drain_timeout)
                for loop_task in pending:
                    loop_task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Scheduler stopped")

    def trigger_refresh(self, document_type: str) -> bool:
        """Ask the type's loop to run a cycle now.

        If a cycle is already running the request is deferred until it
        finishes. Returns False when the scheduler is not running.
        """
        slot = self._slot(document_type)
        if self._state is not SchedulerState.RUNNING:
            return False
        slot.trigger.set()
        logger.info("Refresh requested for type '%s'", document_type)
        return True

    # --- cycles -----------------------------------------------------------

    async def _run_loop(self, slot: _Slot) -> None:
        document_type = slot.binding.type
        if self.start_delay_seconds:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.start_delay_seconds)
                return
            except TimeoutError:
                pass

        while self._state is SchedulerState.RUNNING:
            slot.task.next_run_at = _utcnow_iso(slot.binding.interval_seconds)
            try:
                await asyncio.wait_for(slot.trigger.wait(), timeout=slot.binding.interval_seconds)
            except TimeoutError:
                pass
            if self._state is not SchedulerState.RUNNING:
                break
            slot.trigger.clear()
            await self.run_cycle(document_type)
        logger.debug("Refresh loop for type '%s' exited", document_type)

    async def run_cycle(self, document_type: str) -> bool:
        """Run one refresh cycle for ``document_type`` right away.

        Returns False without doing anything when a cycle for the type is
        already in flight or the scheduler has been stopped.
        """
        slot = self._slot(document_type)
        if self._state is SchedulerState.STOPPED:
            logger.info("Scheduler stopped; not running a cycle for type '%s'", document_type)
            return False
        if slot.lock.locked():
            logger.info("Cycle for type '%s' already in flight; skipping", document_type)
            return False
        async with slot.lock:
            await self._execute_cycle(slot)
        return True

    async def _collect(self, binding: ScheduledCollator) -> IndexBatch:
        async def drain() -> list:
            return [document async for document in binding.collator.produce_documents()]

        if self.cycle_timeout_seconds is None:
            documents = await drain()
        else:
            documents = await asyncio.wait_for(drain(), timeout=self.cycle_timeout_seconds)
        return IndexBatch(type=binding.type, documents=tuple(documents))

    async def _execute_cycle(self, slot: _Slot) -> None:
        binding, task = slot.binding, slot.task
        started = time.perf_counter()
        task.running = True
        task.last_run_at = _utcnow_iso()
        status = "success"

        with (
            document_type_context(binding.type),
            create_span("index.cycle", kind=SpanKind.INTERNAL, attributes={"index.type": binding.type}) as span,
        ):
            logger.info("Starting refresh cycle for type '%s'", binding.type)
            try:
                try:
                    batch = await self._collect(binding)
                except TimeoutError:
                    status = "timeout"
                    task.last_error = f"Collection timed out after {self.cycle_timeout_seconds}s"
                    logger.warning("Refresh cycle for type '%s' abandoned: %s", binding.type, task.last_error)
                    return
                # The commit is never cancelled by the cycle timeout.
                await self.search_engine.index(binding.type, batch)
                task.last_document_count = len(batch)
                task.last_error = None
                span.set_attribute("index.document_count", len(batch))
                logger.info(
                    "Refresh cycle for type '%s' committed %d documents in %.2fs",
                    binding.type,
                    len(batch),
                    time.perf_counter() - started,
                )
            except asyncio.CancelledError:
                status = "cancelled"
                task.last_error = "Cycle cancelled during shutdown"
                raise
            except CollationError as exc:
                status = "collation_error"
                task.last_error = str(exc)
                logger.warning("Collation failed for type '%s'; keeping previous index: %s", binding.type, exc)
            except IndexCommitError as exc:
                status = "commit_error"
                task.last_error = str(exc)
                logger.error("Index commit failed for type '%s'; keeping previous index: %s", binding.type, exc)
            except Exception as exc:
                status = "error"
                task.last_error = f"{type(exc).__name__}: {exc}"
                logger.exception("Unexpected error in refresh cycle for type '%s'", binding.type)
            finally:
                duration = time.perf_counter() - started
                task.running = False
                task.total_cycles += 1
                if status != "success":
                    task.failed_cycles += 1
                span.set_attribute("index.status", status)
                INDEX_CYCLES.labels(type=binding.type, status=status).inc()
                INDEX_CYCLE_DURATION.labels(type=binding.type).observe(duration)
