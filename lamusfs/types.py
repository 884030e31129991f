"""
Storage type definitions and Pydantic models.
"""

from contextlib import aclosing
from datetime import datetime
from typing import Any, AsyncGenerator, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import settings
from .errors import ErrorKind
from .paths import normalize, serialize

ProviderId = str

PARENT_DIR_NAME = "..."


# Locations
class Location(BaseModel):
    """A directory on a provider. Immutable, path always normalized."""

    model_config = ConfigDict(frozen=True)

    provider_id: ProviderId
    path: tuple[str, ...] = ()

    @field_validator("path", mode="before")
    @classmethod
    def _normalize_path(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            raise ValueError("path must be a sequence of segments, not a string")
        return tuple(normalize(list(value)))

    @property
    def address(self) -> str:
        return serialize(self.provider_id, self.path)

    def child(self, name: str) -> "Location":
        return self.resolve(name)

    def parent(self) -> "Location":
        return self.resolve("..")

    def resolve(self, *segments: str) -> "Location":
        return Location(provider_id=self.provider_id, path=[*self.path, *segments])

    def __str__(self) -> str:
        return self.address


class FileHandle(BaseModel):
    """An open file: where it lives plus the revision it was read at."""

    model_config = ConfigDict(frozen=True)

    provider_id: ProviderId
    path: tuple[str, ...] = ()
    file_name: str
    meta: Any = None

    @property
    def location(self) -> Location:
        return Location(provider_id=self.provider_id, path=self.path)

    @property
    def address(self) -> str:
        return serialize(self.provider_id, self.path, self.file_name)


# Listing entries
class FileEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    dir: bool = False
    size: int = Field(default=0, ge=0)
    created: Optional[datetime] = None
    modified: Optional[datetime] = None


class ListingEntry(FileEntry):
    """Entry as shown by UI panes, which may add synthetic entries."""

    parent_dir: bool = False  # the "..." link to the parent directory
    virtual: bool = False  # not backed by a real backend object


def parent_dir_entry() -> ListingEntry:
    return ListingEntry(
        file_name=PARENT_DIR_NAME, dir=True, size=0, parent_dir=True, virtual=True
    )


def is_real_entry(entry: FileEntry) -> bool:
    if isinstance(entry, ListingEntry):
        return not (entry.parent_dir or entry.virtual)
    return True


# Payloads
ChunkOpener = Callable[[], AsyncGenerator[bytes, None]]


class Payload:
    """
    Lazily-materialized file content.

    Nothing is fetched until ``read()`` or ``stream()`` is called. Every
    ``stream()`` call opens a fresh chunk generator that the consumer has to
    close, e.g. with ``contextlib.aclosing``.
    """

    def __init__(self, opener: ChunkOpener, size: Optional[int] = None):
        self._opener = opener
        self.size = size

    @classmethod
    def from_bytes(cls, data: bytes, chunk_size: Optional[int] = None) -> "Payload":
        step = chunk_size or settings.chunk_size

        async def chunks() -> AsyncGenerator[bytes, None]:
            for offset in range(0, len(data), step):
                yield data[offset : offset + step]

        return cls(chunks, size=len(data))

    def stream(self) -> AsyncGenerator[bytes, None]:
        return self._opener()

    async def read(self) -> bytes:
        buffer = bytearray()
        async with aclosing(self.stream()) as chunks:
            async for chunk in chunks:
                buffer.extend(chunk)
        return bytes(buffer)


# Results
class Failure(BaseModel):
    ok: Literal[False] = False
    kind: ErrorKind
    error: str


class InitSuccess(BaseModel):
    ok: Literal[True] = True


class ListSuccess(BaseModel):
    ok: Literal[True] = True
    files: list[FileEntry]


class AccessSuccess(BaseModel):
    ok: Literal[True] = True
    found: bool
    dir: bool = False
    meta: Any = None


class MkDirSuccess(BaseModel):
    ok: Literal[True] = True


class DeleteSuccess(BaseModel):
    ok: Literal[True] = True


class RenameSuccess(BaseModel):
    ok: Literal[True] = True


class ReadSuccess(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    ok: Literal[True] = True
    data: Payload
    meta: Any = None


class WriteSuccess(BaseModel):
    ok: Literal[True] = True
    file_name: str  # final name, may differ from the requested one
    meta: Any = None


InitResult = InitSuccess | Failure
ListResult = ListSuccess | Failure
AccessResult = AccessSuccess | Failure
MkDirResult = MkDirSuccess | Failure
DeleteResult = DeleteSuccess | Failure
RenameResult = RenameSuccess | Failure
ReadResult = ReadSuccess | Failure
WriteResult = WriteSuccess | Failure


class Availability(BaseModel):
    """Outcome of a provider's capability query."""

    supported: bool
    reason: Optional[str] = None
