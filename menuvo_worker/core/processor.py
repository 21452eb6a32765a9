"""Processor: the long-running consumer loop for one job class.

The processor:
- Blocks on the job class's queue for the next event id
- Loads the record from the event store (the only source of truth)
- Dispatches it through the handler registry
- Converts handler failures into retry / dead-letter bookkeeping

Handler errors never escape the loop. Transport and store errors are logged,
the loop backs off, and resumes.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable

from menuvo_worker.backends.base import check_poll_timeout
from menuvo_worker.core.logging import get_logger
from menuvo_worker.core.registry import HandlerRegistry, PermanentHandlerError
from menuvo_worker.core.retry import BackoffPolicy, RetryPolicy

if TYPE_CHECKING:
    from menuvo_worker.backends.base import QueueTransport
    from menuvo_worker.core.event import EventRecord
    from menuvo_worker.stores.base import EventStore


@dataclass
class ProcessorStats:
    """Statistics from a processor run."""

    events_processed: int = 0
    events_succeeded: int = 0
    events_unhandled: int = 0
    events_skipped: int = 0
    events_missing: int = 0
    events_retried: int = 0
    events_dead_lettered: int = 0
    handler_errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    transport_errors: int = 0


class Processor:
    """Consumer loop bound to a single queue."""

    def __init__(
        self,
        queue_name: str,
        store: "EventStore",
        transport: "QueueTransport",
        registry: HandlerRegistry,
        retry_policy: RetryPolicy | None = None,
        backoff_policy: BackoffPolicy | None = None,
        poll_timeout: float | None = None,
        handler_timeout: float | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            queue_name: Queue this processor consumes.
            store: Event store holding the records.
            transport: Queue transport carrying event ids.
            registry: Handler lookup table.
            retry_policy: Bound and delay for handler retries.
            backoff_policy: Sleep policy after transport/store failures.
            poll_timeout: Seconds per blocking pop; None blocks forever.
            handler_timeout: Optional cap on a single handler run.
            name: Display name used in logs. Defaults to the queue name.

        Raises:
            ValueError: If ``poll_timeout`` is zero or negative.
        """
        check_poll_timeout(poll_timeout)
        self.queue_name = queue_name
        self.store = store
        self.transport = transport
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()
        self.backoff_policy = backoff_policy or BackoffPolicy()
        self.poll_timeout = poll_timeout
        self.handler_timeout = handler_timeout
        self.name = name or queue_name
        self._log = get_logger("processor")
        self._stop_event = asyncio.Event()
        self._running = False
        self._stats = ProcessorStats()
        self._consecutive_failures = 0
        self._delayed: dict[str, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Signal the loop to exit after the item in hand is finished."""
        self._stop_event.set()

    def get_stats(self) -> ProcessorStats:
        """Return a copy of current statistics."""
        return ProcessorStats(
            events_processed=self._stats.events_processed,
            events_succeeded=self._stats.events_succeeded,
            events_unhandled=self._stats.events_unhandled,
            events_skipped=self._stats.events_skipped,
            events_missing=self._stats.events_missing,
            events_retried=self._stats.events_retried,
            events_dead_lettered=self._stats.events_dead_lettered,
            handler_errors=defaultdict(int, self._stats.handler_errors),
            transport_errors=self._stats.transport_errors,
        )

    async def run(self) -> ProcessorStats:
        """Consume the queue until :meth:`stop` is called."""
        self._stats = ProcessorStats()
        self._stop_event.clear()
        self._running = True
        self._consecutive_failures = 0
        self._log.info(f"Processor {self.name} started", extra={"queue": self.queue_name})

        try:
            while not self._stop_event.is_set():
                try:
                    event_id = await self._next_id()
                except Exception as e:
                    await self._on_infrastructure_error(e)
                    continue

                self._consecutive_failures = 0
                if event_id is None:
                    continue

                try:
                    await self.process_event(event_id)
                except Exception as e:
                    await self._on_infrastructure_error(e, event_id)
        finally:
            await self._flush_delayed_retries()
            self._running = False
            self._log.info(f"Processor {self.name} stopped", extra={"queue": self.queue_name})

        return self._stats

    async def _next_id(self) -> str | None:
        """Blocking pop that a stop signal can interrupt.

        An id that arrives at the same moment as the stop signal is still
        returned so it gets processed rather than dropped.
        """
        pop = asyncio.ensure_future(
            self.transport.dequeue_blocking(self.queue_name, self.poll_timeout)
        )
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait({pop, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            pop.cancel()
            raise
        finally:
            stopper.cancel()

        if pop in done:
            return pop.result()

        pop.cancel()
        await asyncio.wait({pop})
        if pop.cancelled() or pop.exception() is not None:
            return None
        return pop.result()

    async def process_event(self, event_id: str) -> None:
        """Run one event through load, dispatch and status bookkeeping.

        Raises only transport/store errors; handler errors are absorbed.
        """
        record = await self.store.get_by_id(event_id)
        if record is None:
            self._stats.events_missing += 1
            self._log.warning(
                f"Event {event_id} not found in store, dropping reference",
                extra={"event_id": event_id, "queue": self.queue_name},
            )
            return

        if record.processing_status.is_terminal:
            self._stats.events_skipped += 1
            self._log.debug(
                f"Event {event_id} already {record.processing_status.value}, skipping",
                extra={"event_id": event_id, "event_type": record.type, "queue": self.queue_name},
            )
            return

        if self.retry_policy.exhausted(record.retry_count):
            # Retry budget was spent but the FAILED write never landed.
            await self._dead_letter(record, record.last_error or "retry budget exhausted")
            return

        if not await self.store.mark_processing(event_id):
            # Another consumer finished it between the load and now.
            self._stats.events_skipped += 1
            return
        self._stats.events_processed += 1

        try:
            outcome = self.registry.dispatch(
                record.type, record.dispatch_resource_id, record.payload
            )
            if outcome is None:
                self._stats.events_unhandled += 1
                self._log.info(
                    f"No handler registered for {record.type}, marking processed",
                    extra={"event_id": event_id, "event_type": record.type, "queue": self.queue_name},
                )
            else:
                await self._await_handler(outcome, record)
                self._stats.events_succeeded += 1
        except Exception as e:
            await self._on_handler_error(record, e)
            return

        await self.store.mark_processed(event_id)
        self._log.info(
            f"Processed {record.type}",
            extra={
                "event_id": event_id,
                "event_type": record.type,
                "queue": self.queue_name,
                "retry_count": record.retry_count,
            },
        )

    async def _await_handler(self, outcome: Awaitable[None], record: "EventRecord") -> None:
        if self.handler_timeout is None:
            await outcome
            return
        try:
            await asyncio.wait_for(outcome, timeout=self.handler_timeout)
        except TimeoutError:
            raise TimeoutError(
                f"Handler for {record.type} timed out after {self.handler_timeout}s"
            )

    async def _on_handler_error(self, record: "EventRecord", error: Exception) -> None:
        error_text = f"{type(error).__name__}: {error}"
        self._stats.handler_errors[record.type] += 1
        retry_count = await self.store.increment_retry(record.id, error_text)

        permanent = isinstance(error, PermanentHandlerError)
        log_extra = {
            "event_id": record.id,
            "event_type": record.type,
            "queue": self.queue_name,
            "retry_count": retry_count,
            "error": error_text,
        }

        if permanent or self.retry_policy.exhausted(retry_count):
            self._log.error(
                f"Handler for {record.type} failed "
                f"({'permanent' if permanent else f'{retry_count}/{self.retry_policy.max_retries}'}), "
                f"dead-lettering",
                extra=log_extra,
            )
            await self._dead_letter(record, error_text)
            return

        await self.store.mark_pending(record.id)
        delay = self.retry_policy.delay_for(retry_count)
        self._stats.events_retried += 1
        self._log.warning(
            f"Handler for {record.type} failed ({retry_count}/{self.retry_policy.max_retries}), "
            f"retrying in {delay}s",
            extra={**log_extra, "delay": delay},
        )
        if delay <= 0:
            await self.transport.enqueue(self.queue_name, record.id)
        else:
            self._schedule_retry(record.id, delay)

    async def _dead_letter(self, record: "EventRecord", error_text: str) -> None:
        await self.transport.dead_letter(self.queue_name, record.id)
        await self.store.mark_failed(record.id, error_text)
        self._stats.events_dead_lettered += 1

    def _schedule_retry(self, event_id: str, delay: float) -> None:
        existing = self._delayed.pop(event_id, None)
        if existing is not None:
            existing.cancel()
        task = asyncio.create_task(self._enqueue_later(event_id, delay))
        self._delayed[event_id] = task
        task.add_done_callback(lambda t, eid=event_id: self._forget_delayed(eid, t))

    def _forget_delayed(self, event_id: str, task: "asyncio.Task[None]") -> None:
        if self._delayed.get(event_id) is task:
            del self._delayed[event_id]

    async def _enqueue_later(self, event_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        attempt = 0
        while True:
            try:
                await self.transport.enqueue(self.queue_name, event_id)
                return
            except Exception as e:
                attempt += 1
                self._log.error(
                    f"Delayed re-enqueue of {event_id} failed: {e}",
                    extra={"event_id": event_id, "queue": self.queue_name, "error": str(e)},
                )
                await asyncio.sleep(self.backoff_policy.delay_for(attempt))

    async def _flush_delayed_retries(self) -> None:
        """Push pending delayed retries onto the queue now instead of dropping them."""
        pending = list(self._delayed.items())
        self._delayed.clear()
        for event_id, task in pending:
            task.cancel()
        for event_id, task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
            if task.cancelled():
                try:
                    await self.transport.enqueue(self.queue_name, event_id)
                except Exception as e:
                    self._log.error(
                        f"Could not flush delayed retry for {event_id}: {e}",
                        extra={"event_id": event_id, "queue": self.queue_name, "error": str(e)},
                    )

    async def _on_infrastructure_error(self, error: Exception, event_id: str | None = None) -> None:
        """Log, back off, and try to put a popped id back on the queue."""
        self._consecutive_failures += 1
        self._stats.transport_errors += 1
        delay = self.backoff_policy.delay_for(self._consecutive_failures)
        self._log.error(
            f"Transport/store failure on {self.queue_name} "
            f"({self._consecutive_failures} consecutive), retrying in {delay:.2f}s: {error}",
            extra={
                "queue": self.queue_name,
                "event_id": event_id,
                "error": str(error),
                "consecutive_failures": self._consecutive_failures,
            },
        )
        await self._sleep(delay)

        if event_id is None:
            return
        try:
            await self.transport.enqueue(self.queue_name, event_id)
        except Exception as e:
            self._log.error(
                f"Could not re-enqueue {event_id}; redispatch it manually: {e}",
                extra={"event_id": event_id, "queue": self.queue_name, "error": str(e)},
            )

    async def _sleep(self, delay: float) -> None:
        """Sleep that returns early when stop is requested."""
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            pass
