"""
Local private storage provider.

Storage private to the device, exposed by a host as a tree of directory
handles. Whether the host offers such storage at all is answered up front by
``PrivateStorageProvider.availability``; ``init`` only acquires the root and
asks the host to keep the data around.
"""

import os
from abc import ABC, abstractmethod
from contextlib import aclosing
from pathlib import Path
from typing import Any, Optional

from aiofiles import os as aioos

from ..config import settings
from ..errors import BackendError, ErrorKind
from ..logger import log_failure, logger
from ..paths import PathT, path_to_string
from ..types import (
    AccessResult,
    AccessSuccess,
    Availability,
    DeleteResult,
    DeleteSuccess,
    FileEntry,
    InitResult,
    InitSuccess,
    ListResult,
    ListSuccess,
    MkDirResult,
    MkDirSuccess,
    Payload,
    ReadResult,
    ReadSuccess,
    RenameResult,
    RenameSuccess,
    WriteResult,
    WriteSuccess,
)
from .base import StorageProvider
from .handles import DirectoryHandle, FileHandle


class StorageHost(ABC):
    """What the environment offers for private storage."""

    @abstractmethod
    def is_supported(self) -> bool: ...

    @abstractmethod
    async def get_directory(self) -> DirectoryHandle:
        """Return the root directory handle."""

    @abstractmethod
    async def persisted(self) -> bool: ...

    @abstractmethod
    async def persist(self) -> bool:
        """Request that stored data survives eviction. Returns the grant."""


class LocalStorageHost(StorageHost):
    """Private storage in a directory of the local file system."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root if root is not None else settings.private_storage.root)
        self._persisted = False

    def is_supported(self) -> bool:
        if self.root.exists():
            return self.root.is_dir() and os.access(self.root, os.W_OK)
        # the root is created on first use; its nearest existing ancestor must allow it
        for ancestor in self.root.absolute().parents:
            if ancestor.exists():
                return ancestor.is_dir() and os.access(ancestor, os.W_OK)
        return False

    async def get_directory(self) -> DirectoryHandle:
        await aioos.makedirs(self.root, exist_ok=True)
        return DirectoryHandle(self.root)

    async def persisted(self) -> bool:
        return self._persisted

    async def persist(self) -> bool:
        await aioos.makedirs(self.root, exist_ok=True)
        self._persisted = True
        return True


class PrivateStorageProvider(StorageProvider):
    """Provider over a ``StorageHost`` handle tree. Single writer, no revisions."""

    def __init__(
        self, host: Optional[StorageHost] = None, name: str = "Private Storage"
    ):
        self.name = name
        self.host = host or LocalStorageHost()
        self._root: Optional[DirectoryHandle] = None

    @classmethod
    def availability(cls, host: Optional[StorageHost] = None) -> Availability:
        host = host or LocalStorageHost()
        if host.is_supported():
            return Availability(supported=True)
        return Availability(
            supported=False, reason="Private storage is not available on this host"
        )

    def is_initialized(self) -> bool:
        return self._root is not None

    async def resolve_path(self, path: PathT) -> DirectoryHandle:
        self._require_initialized()
        assert self._root is not None

        handle = await self._root.resolve(list(path))
        if handle is None:
            raise BackendError(
                ErrorKind.NOT_FOUND, f"Path not found: {path_to_string(path)}"
            )
        return handle

    @log_failure("Private storage init")
    async def init(self) -> InitResult:
        root = await self.host.get_directory()
        if not await self.host.persisted():
            granted = await self.host.persist()
            if not granted:
                logger.warning("Persistent storage was not granted")
        self._root = root
        return InitSuccess()

    @log_failure("Private storage list {path}")
    async def list(self, path: PathT) -> ListResult:
        directory = await self.resolve_path(path)

        files = []
        async with aclosing(directory.entries()) as entries:
            async for name, handle in entries:
                if isinstance(handle, FileHandle):
                    snapshot = await handle.get_file()
                    files.append(
                        FileEntry(
                            file_name=name,
                            size=snapshot.size,
                            created=snapshot.created,
                            modified=snapshot.modified,
                        )
                    )
                else:
                    files.append(FileEntry(file_name=name, dir=True))
        return ListSuccess(files=files)

    @log_failure("Private storage access {path}/{name}")
    async def access(self, path: PathT, name: str) -> AccessResult:
        directory = await self.resolve_path(path)

        try:
            await directory.get_directory_handle(name)
            return AccessSuccess(found=True, dir=True)
        except NotADirectoryError:
            return AccessSuccess(found=True, dir=False)
        except FileNotFoundError:
            return AccessSuccess(found=False)

    @log_failure("Private storage mkdir {path}/{name}")
    async def mkdir(self, path: PathT, name: str) -> MkDirResult:
        directory = await self.resolve_path(path)

        await directory.get_directory_handle(name, create=True)
        return MkDirSuccess()

    @log_failure("Private storage unlink {path}/{file_name}")
    async def unlink(self, path: PathT, file_name: str) -> DeleteResult:
        directory = await self.resolve_path(path)

        await directory.remove_entry(file_name, recursive=True)
        return DeleteSuccess()

    @log_failure("Private storage rename {path}/{old_name}")
    async def rename(self, path: PathT, old_name: str, new_name: str) -> RenameResult:
        directory = await self.resolve_path(path)

        await directory.move_entry(old_name, new_name)
        return RenameSuccess()

    @log_failure("Private storage read {path}/{file_name}")
    async def read(self, path: PathT, file_name: str) -> ReadResult:
        directory = await self.resolve_path(path)

        handle = await directory.get_file_handle(file_name)
        snapshot = await handle.get_file()
        return ReadSuccess(
            data=Payload(
                lambda: handle.chunks(settings.chunk_size), size=snapshot.size
            ),
        )

    @log_failure("Private storage write {path}/{file_name}")
    async def write(
        self,
        path: PathT,
        file_name: str,
        data: Payload,
        meta: Any = None,
    ) -> WriteResult:
        directory = await self.resolve_path(path)

        handle = await directory.get_file_handle(file_name, create=True)
        async with await handle.create_writable() as writable:
            async with aclosing(data.stream()) as chunks:
                async for chunk in chunks:
                    await writable.write(chunk)
        return WriteSuccess(file_name=file_name)
