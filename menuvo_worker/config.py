"""Worker configuration loaded from environment variables.

Every setting can be overridden with a ``MENUVO_``-prefixed environment
variable or a ``.env`` file, e.g. ``MENUVO_REDIS_URL`` or
``MENUVO_MAX_RETRIES``.
"""

import logging
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from menuvo_worker.core.retry import DEFAULT_MAX_RETRIES, BackoffPolicy, RetryPolicy


class WorkerType(str, Enum):
    """Which processors a worker process runs."""

    IMAGES = "images"
    IMPORTS = "imports"
    STRIPE = "stripe"
    MOLLIE = "mollie"
    PAYPAL = "paypal"
    ALL = "all"


class WorkerSettings(BaseSettings):
    """Settings for the worker process."""

    model_config = SettingsConfigDict(
        env_prefix="MENUVO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Connections
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    redis_pool_size: int = Field(default=10, ge=1)
    event_key_prefix: str = Field(default="menuvo", description="Namespace for event store keys")

    # Queues
    stripe_queue: str = "queue:stripe-events"
    mollie_queue: str = "queue:mollie-events"
    paypal_queue: str = "queue:paypal-events"
    images_queue: str = "queue:images"
    imports_queue: str = "queue:menu-imports"

    # Retry policy
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    retry_base_delay: float = Field(default=0.0, ge=0, description="0 re-enqueues immediately")
    retry_multiplier: float = Field(default=2.0, ge=1)
    retry_max_delay: float = Field(default=60.0, ge=0)

    # Transport backoff
    transport_backoff_base: float = Field(default=0.5, ge=0)
    transport_backoff_max: float = Field(default=30.0, ge=0)
    transport_backoff_jitter: bool = True

    # Timeouts
    poll_timeout: float | None = Field(default=None, gt=0, description="None blocks forever")
    handler_timeout: float | None = None
    ingest_timeout: float = Field(default=5.0, gt=0)

    # Stale PENDING sweep
    sweep_interval: float | None = Field(default=60.0, gt=0, description="None disables the sweep")
    stale_after: float = Field(default=300.0, gt=0)

    # Stripe webhook verification
    stripe_webhook_secret: str | None = None
    stripe_webhook_secret_thin: str | None = None
    stripe_signature_tolerance: int = Field(default=300, ge=0)

    # PayPal webhook verification
    paypal_webhook_id: str | None = None

    # Process
    worker_type: WorkerType = WorkerType.ALL
    log_level: str = "INFO"

    @field_validator("worker_type", mode="before")
    @classmethod
    def validate_worker_type(cls, v: str) -> WorkerType:
        if isinstance(v, WorkerType):
            return v
        try:
            return WorkerType(v.lower())
        except ValueError:
            valid = [e.value for e in WorkerType]
            raise ValueError(f"Invalid worker_type. Must be one of: {valid}")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return v

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            max_delay=self.retry_max_delay,
        )

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            base_delay=self.transport_backoff_base,
            max_delay=self.transport_backoff_max,
            jitter=self.transport_backoff_jitter,
        )

    @property
    def log_level_value(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


@lru_cache()
def get_settings() -> WorkerSettings:
    """Get cached worker settings."""
    return WorkerSettings()
