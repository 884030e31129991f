"""
Provider registry.

Maps provider identifiers to initialized adapters and routes storage calls to
them. A registry is constructed explicitly and handed to whoever needs it;
there is no process-wide instance.
"""

import asyncio
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .events import EventDispatcher, ProviderAddedEvent, ProviderRemovedEvent
from .errors import ProviderExistsError, ProviderNotFoundError
from .logger import logger
from .paths import PathT
from .providers.base import StorageProvider
from .types import (
    AccessResult,
    DeleteResult,
    InitResult,
    ListResult,
    Location,
    MkDirResult,
    Payload,
    ReadResult,
    RenameResult,
    WriteResult,
)

UNKNOWN_LOCATION_LABEL = "(unknown)"


class ProviderRegistry:
    def __init__(self, dispatcher: Optional[EventDispatcher] = None):
        self._providers: dict[str, StorageProvider] = {}
        self._dispatcher = dispatcher
        self._connect_lock = asyncio.Lock()

    @property
    def providers(self) -> Mapping[str, StorageProvider]:
        """Read-only view of the registered providers."""
        return MappingProxyType(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def get_provider(self, provider_id: str) -> StorageProvider:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise ProviderNotFoundError(provider_id) from None

    async def add_provider(self, provider_id: str, provider: StorageProvider) -> None:
        """
        Register an initialized adapter under ``provider_id``.

        Raises:
            ProviderExistsError: If the identifier is already bound, or the
                adapter belongs to another registry
        """
        if provider_id in self._providers:
            raise ProviderExistsError(f'Provider "{provider_id}" already exists!')
        if provider._owner is not None and provider._owner is not self:
            raise ProviderExistsError(
                f"Provider {provider.name!r} is owned by another registry"
            )

        provider._owner = self
        self._providers[provider_id] = provider
        logger.info(f"Registered provider {provider_id!r} ({provider.name})")

        if self._dispatcher is not None:
            await self._dispatcher.dispatch_provider_added(
                ProviderAddedEvent(
                    provider_id=provider_id,
                    name=provider.name,
                    is_cloud=provider.is_cloud,
                )
            )

    async def connect(self, provider_id: str, provider: StorageProvider) -> InitResult:
        """
        Initialize ``provider`` and register it if that succeeds.

        Connections are serialized, so the same identifier is never being
        set up twice at once. A failed init leaves the registry unchanged.
        """
        async with self._connect_lock:
            if provider_id in self._providers:
                raise ProviderExistsError(f'Provider "{provider_id}" already exists!')

            result = await provider.init()
            if not result.ok:
                logger.warning(
                    f"Provider {provider_id!r} failed to initialize: {result.error}"
                )
                return result

            await self.add_provider(provider_id, provider)
            return result

    async def remove_provider(self, provider_id: str) -> bool:
        """Unregister and close a provider. Returns False if it wasn't registered."""
        provider = self._providers.pop(provider_id, None)
        if provider is None:
            return False

        provider._owner = None
        await provider.close()
        logger.info(f"Removed provider {provider_id!r}")

        if self._dispatcher is not None:
            await self._dispatcher.dispatch_provider_removed(
                ProviderRemovedEvent(provider_id=provider_id)
            )
        return True

    async def clear(self) -> None:
        for provider_id in list(self._providers):
            await self.remove_provider(provider_id)

    async def close(self) -> None:
        """Close every registered adapter. Registrations are kept."""
        await asyncio.gather(
            *(provider.close() for provider in self._providers.values())
        )

    def location_label(self, location: Location) -> str:
        """Short label for a location, as shown in pane headers."""
        provider = self._providers.get(location.provider_id)
        if provider is None:
            return UNKNOWN_LOCATION_LABEL
        if not location.path:
            return f"{provider.name}:"
        return location.path[-1]

    # Routing

    async def list_files(self, provider_id: str, path: PathT) -> ListResult:
        return await self.get_provider(provider_id).list(list(path))

    async def access(self, provider_id: str, path: PathT, name: str) -> AccessResult:
        return await self.get_provider(provider_id).access(list(path), name)

    async def mkdir(self, provider_id: str, path: PathT, name: str) -> MkDirResult:
        return await self.get_provider(provider_id).mkdir(list(path), name)

    async def unlink(
        self, provider_id: str, path: PathT, file_name: str
    ) -> DeleteResult:
        return await self.get_provider(provider_id).unlink(list(path), file_name)

    async def rename(
        self, provider_id: str, path: PathT, old_name: str, new_name: str
    ) -> RenameResult:
        return await self.get_provider(provider_id).rename(
            list(path), old_name, new_name
        )

    async def read(self, provider_id: str, path: PathT, file_name: str) -> ReadResult:
        return await self.get_provider(provider_id).read(list(path), file_name)

    async def write(
        self,
        provider_id: str,
        path: PathT,
        file_name: str,
        data: Payload,
        meta: Any = None,
    ) -> WriteResult:
        return await self.get_provider(provider_id).write(
            list(path), file_name, data, meta
        )
