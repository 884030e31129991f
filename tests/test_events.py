"""Tests for the storage event dispatcher."""

import asyncio
from typing import List

import pytest

from lamusfs.events import (
    EventDispatcher,
    EventType,
    LocationChangedEvent,
    ProviderAddedEvent,
    ProviderRemovedEvent,
)
from lamusfs.types import Location


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_dispatch_provider_added_event(self):
        dispatcher = EventDispatcher()
        received: List[ProviderAddedEvent] = []

        async def handler(event: ProviderAddedEvent) -> None:
            received.append(event)

        dispatcher.on_provider_added(handler)
        await dispatcher.dispatch_provider_added(
            ProviderAddedEvent(provider_id="A", name="Private Storage")
        )

        assert len(received) == 1
        assert received[0].provider_id == "A"
        assert received[0].event_type == EventType.PROVIDER_ADDED

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        dispatcher = EventDispatcher()
        sync_calls = []
        async_calls = []

        def sync_handler(event: LocationChangedEvent) -> None:
            sync_calls.append(event.location)

        async def async_handler(event: LocationChangedEvent) -> None:
            await asyncio.sleep(0)
            async_calls.append(event.location)

        dispatcher.on_location_changed(sync_handler)
        dispatcher.on_location_changed(async_handler)

        location = Location(provider_id="A", path=["docs"])
        await dispatcher.dispatch_location_changed(
            LocationChangedEvent(location=location)
        )

        assert sync_calls == [location]
        assert async_calls == [location]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, caplog):
        dispatcher = EventDispatcher()
        calls = []

        async def broken(event: ProviderRemovedEvent) -> None:
            raise RuntimeError("handler bug")

        async def working(event: ProviderRemovedEvent) -> None:
            calls.append(event.provider_id)

        dispatcher.on_provider_removed(broken)
        dispatcher.on_provider_removed(working)

        await dispatcher.dispatch_provider_removed(ProviderRemovedEvent(provider_id="A"))

        assert calls == ["A"]
        assert "Handler broken failed" in caplog.text

    @pytest.mark.asyncio
    async def test_only_matching_handlers_called(self):
        dispatcher = EventDispatcher()
        calls = []

        async def on_removed(event: ProviderRemovedEvent) -> None:
            calls.append(event)

        dispatcher.on_provider_removed(on_removed)
        await dispatcher.dispatch_provider_added(
            ProviderAddedEvent(provider_id="A", name="A")
        )

        assert calls == []

    @pytest.mark.asyncio
    async def test_dispatch_without_handlers(self):
        dispatcher = EventDispatcher()
        await dispatcher.dispatch_location_changed(
            LocationChangedEvent(location=Location(provider_id="A"))
        )
