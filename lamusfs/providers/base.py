from abc import ABC, abstractmethod
from typing import Any, Optional

from ..errors import NotInitializedError
from ..paths import PathT
from ..types import (
    AccessResult,
    DeleteResult,
    InitResult,
    ListResult,
    MkDirResult,
    Payload,
    ReadResult,
    RenameResult,
    WriteResult,
)


class StorageProvider(ABC):
    """
    Abstract base class for storage providers.

    Every I/O method returns a result model instead of raising for backend
    conditions. Calling any of them before a successful ``init()`` raises
    ``NotInitializedError``.
    """

    name: str = "storage"
    is_cloud: bool = False

    # Set by the registry that owns this adapter
    _owner: Optional[object] = None

    @abstractmethod
    def is_initialized(self) -> bool: ...

    def _require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError(self.name)

    @abstractmethod
    async def init(self) -> InitResult:
        """Connect to the backend. Must succeed before any other call."""

    @abstractmethod
    async def list(self, path: PathT) -> ListResult:
        """List the immediate children of a directory."""

    @abstractmethod
    async def access(self, path: PathT, name: str) -> AccessResult:
        """Check whether ``name`` exists in the directory at ``path``."""

    @abstractmethod
    async def mkdir(self, path: PathT, name: str) -> MkDirResult:
        """Create directory ``name`` under ``path``. Existing is fine."""

    @abstractmethod
    async def unlink(self, path: PathT, file_name: str) -> DeleteResult: ...

    @abstractmethod
    async def rename(
        self, path: PathT, old_name: str, new_name: str
    ) -> RenameResult: ...

    @abstractmethod
    async def read(self, path: PathT, file_name: str) -> ReadResult:
        """
        Open a file for reading.

        Returns:
            ReadSuccess with a lazy payload and the backend revision (meta),
            or a Failure
        """

    @abstractmethod
    async def write(
        self,
        path: PathT,
        file_name: str,
        data: Payload,
        meta: Any = None,
    ) -> WriteResult:
        """
        Store ``data`` as ``file_name``.

        If ``meta`` is given and the backend tracks revisions, the write
        fails with a conflict instead of overwriting a newer revision.

        Returns:
            WriteSuccess with the final file name and new meta, or a Failure
        """

    async def close(self) -> None:
        """Release client sessions held by the adapter."""
