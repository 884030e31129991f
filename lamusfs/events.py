"""Event dispatcher - dispatches typed storage events to registered handlers.

Replaces shared observable state: UI panes subscribe to the events they care
about (providers appearing or going away, directories whose contents changed)
instead of watching a global store. Events are not persisted.
"""

import asyncio
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, TypeVar, Union

from pydantic import BaseModel, Field

from .logger import logger
from .types import Location


class EventType(str, Enum):
    """All event types in the storage layer."""

    PROVIDER_ADDED = "provider.added"
    PROVIDER_REMOVED = "provider.removed"
    LOCATION_CHANGED = "location.changed"


class BaseEvent(BaseModel):
    """Base class for all events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProviderAddedEvent(BaseEvent):
    """Fired when a provider is registered."""

    event_type: EventType = EventType.PROVIDER_ADDED
    provider_id: str = Field(..., description="Provider identifier")
    name: str = Field(..., description="Display name of the provider")
    is_cloud: bool = False


class ProviderRemovedEvent(BaseEvent):
    """Fired when a provider is unregistered."""

    event_type: EventType = EventType.PROVIDER_REMOVED
    provider_id: str = Field(..., description="Provider identifier")


class LocationChangedEvent(BaseEvent):
    """Fired when the contents of a directory were changed by an operation."""

    event_type: EventType = EventType.LOCATION_CHANGED
    location: Location


# Generic type variable for event types
EventT = TypeVar("EventT", bound=BaseEvent)

# Generic handler type that can be sync or async for any event type
EventHandler = Union[Callable[[EventT], None], Callable[[EventT], Awaitable[None]]]


class EventDispatcher:
    """Dispatches events to registered handlers.

    Each event type has specific handler functions with proper typing.
    A failing handler is logged and does not affect the others.
    """

    def __init__(self):
        self._handlers: Dict[EventType, List[Callable]] = {
            event_type: [] for event_type in EventType
        }

    # Registration methods - one per event type for type safety

    def on_provider_added(self, handler: EventHandler[ProviderAddedEvent]) -> None:
        """Register handler for provider added events."""
        self._handlers[EventType.PROVIDER_ADDED].append(handler)

    def on_provider_removed(
        self, handler: EventHandler[ProviderRemovedEvent]
    ) -> None:
        """Register handler for provider removed events."""
        self._handlers[EventType.PROVIDER_REMOVED].append(handler)

    def on_location_changed(
        self, handler: EventHandler[LocationChangedEvent]
    ) -> None:
        """Register handler for location changed events."""
        self._handlers[EventType.LOCATION_CHANGED].append(handler)

    # Dispatch methods - one per event type for type safety

    async def dispatch_provider_added(self, event: ProviderAddedEvent) -> None:
        await self._dispatch_event(event)

    async def dispatch_provider_removed(self, event: ProviderRemovedEvent) -> None:
        await self._dispatch_event(event)

    async def dispatch_location_changed(self, event: LocationChangedEvent) -> None:
        await self._dispatch_event(event)

    async def _dispatch_event(self, event: BaseEvent) -> None:
        """Dispatch event to all registered handlers concurrently."""
        handlers = self._handlers.get(event.event_type, [])

        if not handlers:
            logger.debug(f"No handlers registered for event: {event.event_type}")
            return

        tasks = []
        for handler in handlers:
            # Support both async and sync handlers
            if inspect.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(event)))
            else:
                tasks.append(asyncio.create_task(asyncio.to_thread(handler, event)))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                handler_name = getattr(handler, "__name__", repr(handler))
                logger.error(
                    f"Handler {handler_name} failed for event {event.event_type}: {result}",
                    exc_info=result,
                )
