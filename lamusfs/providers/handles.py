"""
Handle tree over a local directory.

Private storage is addressed through nested handles rather than flat paths:
a directory handle hands out child handles one level at a time. Writes go to
a swap file next to the target and replace it atomically on close.
"""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, NamedTuple, Optional, Union

import aiofiles
from aiofiles import os as aioos
from aiofiles.threadpool.binary import AsyncBufferedIOBase
from asyncer import asyncify

from ..errors import BackendError, ErrorKind

SWAP_SUFFIX = ".crswap"


class FileSnapshot(NamedTuple):
    name: str
    size: int
    modified: datetime
    created: datetime


def _check_name(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or os.sep in name:
        raise BackendError(ErrorKind.NOT_FOUND, f"Invalid entry name: {name!r}")


# Async utility functions
@asyncify
def _rmtree_async(path: Path):
    """Asynchronously remove a directory tree."""
    shutil.rmtree(path)


@asyncify
def _touch_async(path: Path):
    """Asynchronously create an empty file."""
    Path.touch(path, exist_ok=True)


class WritableFileStream:
    """Buffered writer that only becomes visible at ``close()``."""

    def __init__(
        self,
        target: Path,
        swap: Path,
        file: AsyncBufferedIOBase,
        placeholder: bool = False,
    ):
        self._target = target
        self._swap = swap
        self._file = file
        # target is an empty file created only to be written here
        self._placeholder = placeholder
        self.closed = False

    @classmethod
    async def open(cls, target: Path, placeholder: bool = False) -> "WritableFileStream":
        swap = target.with_name(target.name + SWAP_SUFFIX)
        file = await aiofiles.open(swap, "wb")
        return cls(target, swap, file, placeholder)

    async def write(self, chunk: bytes) -> None:
        await self._file.write(chunk)

    async def close(self) -> None:
        """Commit the written content to the target file."""
        if self.closed:
            return
        self.closed = True
        await self._file.close()
        await aioos.replace(self._swap, self._target)

    async def abort(self) -> None:
        """
        Discard everything written so far.

        An existing target keeps its previous content. A target that only
        exists as the empty placeholder of this write is removed again.
        """
        if self.closed:
            return
        self.closed = True
        await self._file.close()
        if await aioos.path.exists(self._swap):
            await aioos.remove(self._swap)
        if self._placeholder and await aioos.path.isfile(self._target):
            if (await aioos.stat(self._target)).st_size == 0:
                await aioos.remove(self._target)

    async def __aenter__(self) -> "WritableFileStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.close()
        else:
            await self.abort()


class FileHandle:
    kind = "file"

    def __init__(self, path: Path, created: bool = False):
        self.path = path
        self.name = path.name
        self.created = created

    async def get_file(self) -> FileSnapshot:
        stat_result = await aioos.stat(self.path)
        return FileSnapshot(
            name=self.name,
            size=stat_result.st_size,
            modified=datetime.fromtimestamp(stat_result.st_mtime, timezone.utc),
            created=datetime.fromtimestamp(stat_result.st_ctime, timezone.utc),
        )

    async def create_writable(self) -> WritableFileStream:
        return await WritableFileStream.open(self.path, placeholder=self.created)

    async def chunks(self, chunk_size: int) -> AsyncGenerator[bytes, None]:
        async with aiofiles.open(self.path, "rb") as f:
            while chunk := await f.read(chunk_size):
                yield chunk


class DirectoryHandle:
    kind = "directory"

    def __init__(self, path: Path):
        self.path = path
        self.name = path.name

    async def get_directory_handle(
        self, name: str, create: bool = False
    ) -> "DirectoryHandle":
        _check_name(name)
        child = self.path / name

        if await aioos.path.isdir(child):
            return DirectoryHandle(child)
        if await aioos.path.exists(child):
            if create:
                raise FileExistsError(f"A file named {name!r} already exists")
            raise NotADirectoryError(f"Not a directory: {name!r}")
        if not create:
            raise FileNotFoundError(f"Directory not found: {name!r}")

        try:
            await aioos.mkdir(child)
        except FileExistsError:
            # created concurrently
            if not await aioos.path.isdir(child):
                raise
        return DirectoryHandle(child)

    async def get_file_handle(self, name: str, create: bool = False) -> FileHandle:
        _check_name(name)
        child = self.path / name

        if await aioos.path.isfile(child):
            return FileHandle(child)
        if await aioos.path.isdir(child):
            raise IsADirectoryError(f"Is a directory: {name!r}")
        if not create:
            raise FileNotFoundError(f"File not found: {name!r}")

        await _touch_async(child)
        return FileHandle(child, created=True)

    async def entries(
        self,
    ) -> AsyncGenerator[tuple[str, Union["DirectoryHandle", FileHandle]], None]:
        """Yield ``(name, handle)`` pairs in name order, skipping swap files."""
        for name in sorted(await aioos.listdir(self.path)):
            if name.endswith(SWAP_SUFFIX):
                continue
            child = self.path / name
            if await aioos.path.isdir(child):
                yield name, DirectoryHandle(child)
            else:
                yield name, FileHandle(child)

    async def remove_entry(self, name: str, recursive: bool = False) -> None:
        _check_name(name)
        child = self.path / name

        if await aioos.path.isdir(child):
            if recursive:
                await _rmtree_async(child)
            else:
                await aioos.rmdir(child)
        else:
            await aioos.remove(child)

    async def move_entry(self, old_name: str, new_name: str) -> None:
        _check_name(old_name)
        _check_name(new_name)
        source = self.path / old_name
        target = self.path / new_name

        if not await aioos.path.exists(source):
            raise FileNotFoundError(f"Entry not found: {old_name!r}")
        if await aioos.path.exists(target):
            raise FileExistsError(f"Entry already exists: {new_name!r}")
        await aioos.rename(source, target)

    async def resolve(self, segments: list[str]) -> Optional["DirectoryHandle"]:
        """Walk ``segments`` one directory level at a time; None if any is missing."""
        handle = self
        for segment in segments:
            try:
                handle = await handle.get_directory_handle(segment)
            except (FileNotFoundError, NotADirectoryError):
                return None
        return handle
