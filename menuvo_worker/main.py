"""Background worker entrypoint.

Runs the queue processors for one job class or all of them:

    python -m menuvo_worker.main --services myapp.worker:services
    python -m menuvo_worker.main --type stripe --services myapp.worker:services

``--services`` names a zero-argument callable returning a mapping with any of
the keys ``stripe``, ``mollie``, ``paypal``, ``images``, ``imports``, each bound
to the business-logic collaborator for that job class. Only job classes with a
collaborator get handlers; SIGINT/SIGTERM drain the processors and exit.
"""

import argparse
import asyncio
import importlib
import signal
import sys
from collections.abc import Callable, Mapping
from typing import Any

from menuvo_worker.backends.connection import RedisConnection
from menuvo_worker.backends.redis_backend import RedisTransport
from menuvo_worker.config import WorkerSettings, WorkerType, get_settings
from menuvo_worker.core.logging import configure_worker_logger, get_logger
from menuvo_worker.core.service import WorkerService
from menuvo_worker.handlers import build_registry
from menuvo_worker.stores.redis_store import RedisEventStore

logger = get_logger("main")

# Start order for ``--type all``.
SERVICE_KEYS = ("images", "imports", "stripe", "mollie", "paypal")


def load_services(spec: str) -> Mapping[str, Any]:
    """Resolve ``"package.module:callable"`` and call it."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"--services must look like 'package.module:callable', got {spec!r}")
    factory: Callable[[], Mapping[str, Any]] = getattr(importlib.import_module(module_name), attr)
    services = factory()
    unknown = set(services) - set(SERVICE_KEYS)
    if unknown:
        raise ValueError(f"unknown service keys: {sorted(unknown)}")
    return services


def selected_job_classes(worker_type: WorkerType, services: Mapping[str, Any]) -> list[str]:
    names = [worker_type.value] if worker_type != WorkerType.ALL else list(SERVICE_KEYS)
    missing = [name for name in names if name not in services]
    if missing and worker_type != WorkerType.ALL:
        raise ValueError(f"no service configured for job class {worker_type.value!r}")
    return [name for name in names if name in services]


def build_service(settings: WorkerSettings, services: Mapping[str, Any]) -> WorkerService:
    connection = RedisConnection(settings.redis_url, pool_size=settings.redis_pool_size)
    registry = build_registry(
        stripe_service=services.get("stripe"),
        mollie_service=services.get("mollie"),
        image_service=services.get("images"),
        import_service=services.get("imports"),
        paypal_service=services.get("paypal"),
    )
    return WorkerService.from_settings(
        settings,
        store=RedisEventStore(connection, key_prefix=settings.event_key_prefix),
        transport=RedisTransport(connection),
        registry=registry,
    )


async def run_worker(settings: WorkerSettings, services: Mapping[str, Any]) -> None:
    job_classes = selected_job_classes(settings.worker_type, services)
    if not job_classes:
        raise ValueError("no job classes to run; provide at least one service")

    service = build_service(settings, services)
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    logger.info(
        "Starting background worker...",
        extra={"worker_type": settings.worker_type.value, "job_classes": job_classes},
    )
    service.start(job_classes)

    await shutdown.wait()
    logger.info("Shutting down worker...")
    await service.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the menuvo background worker")
    parser.add_argument(
        "--type",
        dest="worker_type",
        choices=[t.value for t in WorkerType],
        default=None,
        help="Job class to process (default: MENUVO_WORKER_TYPE or 'all')",
    )
    parser.add_argument("--services", required=True, help="package.module:callable")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.worker_type is not None:
        settings = settings.model_copy(update={"worker_type": WorkerType(args.worker_type)})

    configure_worker_logger(settings.log_level_value)

    try:
        services = load_services(args.services)
        asyncio.run(run_worker(settings, services))
    except ValueError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
