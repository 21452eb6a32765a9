"""Handler registry mapping event types to async handlers.

Handler modules expose a ``register(registry, ...)`` function that is called
once at startup (see ``menuvo_worker.handlers.build_registry``). Adding a new
event type means adding a registration call, never touching the processor.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

Handler = Callable[[str, Any], Awaitable[None]]


class HandlerRegistrationError(Exception):
    """Raised when an event type is registered twice or with a bad handler."""


class PermanentHandlerError(Exception):
    """Raised by a handler to signal that retrying cannot succeed.

    The processor dead-letters the event immediately instead of spending the
    remaining retry budget.
    """


@dataclass(frozen=True)
class Registration:
    """A handler bound to an event type."""

    event_type: str
    handler: Handler
    payload_model: type[BaseModel] | None = None

    @property
    def name(self) -> str:
        return getattr(self.handler, "__qualname__", repr(self.handler))


class HandlerRegistry:
    """Event type -> handler lookup table."""

    def __init__(self) -> None:
        self._registrations: dict[str, Registration] = {}

    def register(
        self,
        event_type: str,
        handler: Handler,
        payload_model: type[BaseModel] | None = None,
    ) -> None:
        """Associate ``handler`` with ``event_type``.

        Args:
            event_type: Type tag, e.g. "checkout.session.completed".
            handler: ``async handle(resource_id, payload) -> None``.
            payload_model: Optional pydantic model the payload dict is decoded
                into before the handler sees it.

        Raises:
            HandlerRegistrationError: If the type is blank, already registered,
                or the handler is not callable.
        """
        if not isinstance(event_type, str) or not event_type.strip():
            raise HandlerRegistrationError(f"event_type must be a non-empty string, got {event_type!r}")
        if not callable(handler):
            raise HandlerRegistrationError(
                f"handler for {event_type!r} must be callable, got {type(handler).__name__}"
            )
        if event_type in self._registrations:
            existing = self._registrations[event_type].name
            raise HandlerRegistrationError(
                f"event_type {event_type!r} is already registered to {existing}"
            )
        self._registrations[event_type] = Registration(event_type, handler, payload_model)

    def handles(
        self, event_type: str, payload_model: type[BaseModel] | None = None
    ) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: Handler) -> Handler:
            self.register(event_type, handler, payload_model)
            return handler

        return decorator

    def get(self, event_type: str) -> Registration | None:
        return self._registrations.get(event_type)

    def event_types(self) -> list[str]:
        return sorted(self._registrations)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    def dispatch(
        self, event_type: str, resource_id: str, payload: dict[str, Any]
    ) -> Awaitable[None] | None:
        """Look up and invoke the handler for ``event_type``.

        Returns:
            The handler's awaitable, or None when no handler is registered
            (unhandled but not an error).

        Raises:
            PermanentHandlerError: If the payload does not match the
                registered payload model.
        """
        registration = self._registrations.get(event_type)
        if registration is None:
            return None

        decoded: Any = payload
        if registration.payload_model is not None:
            try:
                decoded = registration.payload_model.model_validate(payload)
            except ValidationError as e:
                raise PermanentHandlerError(
                    f"payload for {event_type!r} does not match "
                    f"{registration.payload_model.__name__}: {e.error_count()} error(s)"
                ) from e

        result = registration.handler(resource_id, decoded)
        if inspect.isawaitable(result):
            return result
        return _completed()


async def _completed() -> None:
    """Awaitable stand-in for a synchronous handler that already ran."""
    return None
