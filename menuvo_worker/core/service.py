"""Worker service: owns the clients and one processor per job class.

Clients are constructed by the caller and injected; the service manages the
processors' lifecycle explicitly through ``start()`` and ``stop()``.

A stale-event sweep runs next to the processors. It re-enqueues PENDING records
that have sat unclaimed for longer than ``stale_after`` seconds, which covers
ingestions that stored a record but timed out or failed before the enqueue.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from menuvo_worker.core.event import ProcessingStatus
from menuvo_worker.core.ingestion import DEFAULT_INGEST_TIMEOUT, Ingestor
from menuvo_worker.core.logging import get_logger
from menuvo_worker.core.processor import Processor, ProcessorStats
from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.core.retry import BackoffPolicy, RetryPolicy

if TYPE_CHECKING:
    from menuvo_worker.backends.base import QueueTransport
    from menuvo_worker.config import WorkerSettings
    from menuvo_worker.stores.base import EventStore


@dataclass(frozen=True)
class JobClass:
    """A category of work with its own queue and processor."""

    name: str
    queue_name: str


def job_classes_from_settings(settings: "WorkerSettings") -> list[JobClass]:
    return [
        JobClass("stripe", settings.stripe_queue),
        JobClass("mollie", settings.mollie_queue),
        JobClass("paypal", settings.paypal_queue),
        JobClass("images", settings.images_queue),
        JobClass("imports", settings.imports_queue),
    ]


DEFAULT_JOB_CLASSES: tuple[JobClass, ...] = (
    JobClass("stripe", "queue:stripe-events"),
    JobClass("mollie", "queue:mollie-events"),
    JobClass("paypal", "queue:paypal-events"),
    JobClass("images", "queue:images"),
    JobClass("imports", "queue:menu-imports"),
)

DEFAULT_STALE_AFTER = 300.0


class WorkerService:
    """Top-level owner of the store, transport, registry and processors."""

    def __init__(
        self,
        store: "EventStore",
        transport: "QueueTransport",
        registry: HandlerRegistry,
        job_classes: list[JobClass] | tuple[JobClass, ...] = DEFAULT_JOB_CLASSES,
        retry_policy: RetryPolicy | None = None,
        backoff_policy: BackoffPolicy | None = None,
        poll_timeout: float | None = None,
        handler_timeout: float | None = None,
        ingest_timeout: float | None = DEFAULT_INGEST_TIMEOUT,
        sweep_interval: float | None = None,
        stale_after: float = DEFAULT_STALE_AFTER,
    ) -> None:
        names = [jc.name for jc in job_classes]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate job class names: {names}")

        self.store = store
        self.transport = transport
        self.registry = registry
        self.job_classes = {jc.name: jc for jc in job_classes}
        self.retry_policy = retry_policy or RetryPolicy()
        self.backoff_policy = backoff_policy or BackoffPolicy()
        self.poll_timeout = poll_timeout
        self.handler_timeout = handler_timeout
        self.ingest_timeout = ingest_timeout
        self.sweep_interval = sweep_interval
        self.stale_after = stale_after
        self._log = get_logger("service")
        self._processors: dict[str, Processor] = {}
        self._tasks: dict[str, asyncio.Task[ProcessorStats]] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._sweep_stop = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        settings: "WorkerSettings",
        store: "EventStore",
        transport: "QueueTransport",
        registry: HandlerRegistry,
    ) -> "WorkerService":
        return cls(
            store=store,
            transport=transport,
            registry=registry,
            job_classes=job_classes_from_settings(settings),
            retry_policy=settings.retry_policy(),
            backoff_policy=settings.backoff_policy(),
            poll_timeout=settings.poll_timeout,
            handler_timeout=settings.handler_timeout,
            ingest_timeout=settings.ingest_timeout,
            sweep_interval=settings.sweep_interval,
            stale_after=settings.stale_after,
        )

    def job_class(self, name: str) -> JobClass:
        try:
            return self.job_classes[name]
        except KeyError:
            raise KeyError(f"unknown job class {name!r}; known: {sorted(self.job_classes)}") from None

    def ingestor(self, job_class: str) -> Ingestor:
        """Build an ingestor that enqueues onto ``job_class``'s queue."""
        return Ingestor(
            self.store,
            self.transport,
            self.job_class(job_class).queue_name,
            timeout=self.ingest_timeout,
        )

    def processor(self, job_class: str) -> Processor:
        """Return the processor for a job class, creating it on first use."""
        processor = self._processors.get(job_class)
        if processor is None:
            jc = self.job_class(job_class)
            processor = Processor(
                queue_name=jc.queue_name,
                store=self.store,
                transport=self.transport,
                registry=self.registry,
                retry_policy=self.retry_policy,
                backoff_policy=self.backoff_policy,
                poll_timeout=self.poll_timeout,
                handler_timeout=self.handler_timeout,
                name=jc.name,
            )
            self._processors[job_class] = processor
        return processor

    @property
    def running(self) -> list[str]:
        return [name for name, task in self._tasks.items() if not task.done()]

    def start(self, job_classes: list[str] | None = None) -> None:
        """Spawn one processor task per job class (all by default)."""
        for name in job_classes or list(self.job_classes):
            task = self._tasks.get(name)
            if task is not None and not task.done():
                continue
            processor = self.processor(name)
            self._log.info(f"Starting {name} processor", extra={"queue": processor.queue_name})
            self._tasks[name] = asyncio.create_task(processor.run(), name=f"processor:{name}")

        if self.sweep_interval is not None and (self._sweeper is None or self._sweeper.done()):
            self._sweep_stop.clear()
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="sweeper")

    async def stop(self) -> dict[str, ProcessorStats]:
        """Signal every processor and wait for them to drain."""
        if self._sweeper is not None:
            self._sweep_stop.set()
            await self._sweeper
            self._sweeper = None

        for name in self._tasks:
            self._processors[name].stop()

        results: dict[str, ProcessorStats] = {}
        for name, task in list(self._tasks.items()):
            try:
                results[name] = await task
            except Exception as e:
                self._log.error(f"Processor {name} exited with error: {e}", extra={"error": str(e)})
        self._tasks.clear()
        self._log.info("All processors stopped")
        return results

    async def wait(self) -> None:
        """Block until every running processor task finishes."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def redispatch(self, event_id: str, job_class: str) -> bool:
        """Re-enqueue a stored, non-terminal event (e.g. after a crash).

        Returns:
            True if the id was enqueued, False if it is missing or terminal.
        """
        record = await self.store.get_by_id(event_id)
        if record is None or record.processing_status.is_terminal:
            return False
        await self.transport.enqueue(self.job_class(job_class).queue_name, event_id)
        self._log.info(
            f"Redispatched {event_id}",
            extra={"event_id": event_id, "event_type": record.type, "job_class": job_class},
        )
        return True

    async def sweep_stale(self, older_than: float | None = None, limit: int = 100) -> int:
        """Re-enqueue PENDING records nobody has picked up.

        A record stays PENDING without a queue entry when ingestion stored it
        but timed out or failed before the enqueue. Records still waiting in a
        backlog may be enqueued twice; the processor skips the second copy
        once the first has finished.

        Args:
            older_than: Minimum age in seconds. Defaults to ``stale_after``.
            limit: Maximum number of records handled in one sweep.

        Returns:
            Number of records re-enqueued.
        """
        age = self.stale_after if older_than is None else older_than
        stale = await self.store.list_by_status(
            ProcessingStatus.PENDING, older_than=timedelta(seconds=age), limit=limit
        )
        swept = 0
        for record in stale:
            if record.queue_name is None:
                self._log.warning(
                    f"Stale event {record.id} has no queue; redispatch it manually",
                    extra={"event_id": record.id, "event_type": record.type},
                )
                continue
            await self.transport.enqueue(record.queue_name, record.id)
            swept += 1
            self._log.info(
                f"Swept stale event {record.id}",
                extra={"event_id": record.id, "event_type": record.type, "queue": record.queue_name},
            )
        return swept

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._sweep_stop.wait(), timeout=self.sweep_interval)
                return
            except TimeoutError:
                pass
            try:
                await self.sweep_stale()
            except Exception as e:
                self._log.error(f"Stale event sweep failed: {e}", extra={"error": str(e)})

    async def dead_letters(self, job_class: str, limit: int = 100) -> list[str]:
        return await self.transport.list_dead_letters(self.job_class(job_class).queue_name, limit)

    async def health(self) -> dict[str, Any]:
        transport = await self.transport.health(
            [jc.queue_name for jc in self.job_classes.values()]
        )
        return {
            "healthy": transport.healthy,
            "transport": {"latency_ms": transport.latency_ms, **transport.details},
            "processors": {name: name in self.running for name in self.job_classes},
            "sweeper": self._sweeper is not None and not self._sweeper.done(),
        }

    async def close(self) -> None:
        await self.stop()
        await self.transport.close()
        await self.store.close()
