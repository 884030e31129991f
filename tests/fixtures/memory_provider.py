"""
In-memory storage provider for planner, executor and registry tests.

Directories are dicts, files are bytes. Individual calls can be made to fail
with ``fail(method, target)``, where target is the slash-joined path (for
``list``) or the entry name (for everything else).
"""

from typing import Any, Optional

from lamusfs.errors import ErrorKind
from lamusfs.paths import PathT
from lamusfs.providers.base import StorageProvider
from lamusfs.types import (
    AccessSuccess,
    DeleteSuccess,
    Failure,
    FileEntry,
    InitSuccess,
    ListSuccess,
    MkDirSuccess,
    Payload,
    ReadSuccess,
    RenameSuccess,
    WriteSuccess,
)


class MemoryProvider(StorageProvider):
    def __init__(self, name: str = "Memory", init_failure: Optional[Failure] = None):
        self.name = name
        self.root: dict[str, Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False
        self._failures: dict[tuple[str, str], Failure] = {}
        self._init_failure = init_failure
        self._initialized = False

    # Test setup helpers

    def add_dir(self, path: PathT, name: str) -> None:
        self._node(path)[name] = {}

    def add_file(self, path: PathT, name: str, data: bytes = b"") -> None:
        self._node(path)[name] = data

    def get(self, path: PathT, name: str) -> Any:
        node = self._node(path)
        return node.get(name) if node is not None else None

    def fail(
        self,
        method: str,
        target: str,
        kind: ErrorKind = ErrorKind.TRANSPORT,
        error: str = "backend unavailable",
    ) -> None:
        self._failures[(method, target)] = Failure(kind=kind, error=error)

    def _node(self, path: PathT) -> Optional[dict[str, Any]]:
        node: Any = self.root
        for segment in path:
            node = node.get(segment) if isinstance(node, dict) else None
        return node if isinstance(node, dict) else None

    def _enter(self, method: str, target: str) -> Optional[Failure]:
        self._require_initialized()
        self.calls.append((method, target))
        return self._failures.get((method, target))

    # Provider contract

    def is_initialized(self) -> bool:
        return self._initialized

    async def init(self):
        if self._init_failure is not None:
            return self._init_failure
        self._initialized = True
        return InitSuccess()

    async def list(self, path: PathT):
        if failure := self._enter("list", "/".join(path)):
            return failure
        node = self._node(path)
        if node is None:
            return Failure(kind=ErrorKind.NOT_FOUND, error="directory not found")
        return ListSuccess(
            files=[
                FileEntry(
                    file_name=name,
                    dir=isinstance(child, dict),
                    size=0 if isinstance(child, dict) else len(child),
                )
                for name, child in node.items()
            ]
        )

    async def access(self, path: PathT, name: str):
        if failure := self._enter("access", name):
            return failure
        child = self.get(path, name)
        return AccessSuccess(found=child is not None, dir=isinstance(child, dict))

    async def mkdir(self, path: PathT, name: str):
        if failure := self._enter("mkdir", name):
            return failure
        node = self._node(path)
        if node is None:
            return Failure(kind=ErrorKind.NOT_FOUND, error="parent not found")
        if not isinstance(node.setdefault(name, {}), dict):
            return Failure(kind=ErrorKind.ALREADY_EXISTS, error="file exists")
        return MkDirSuccess()

    async def unlink(self, path: PathT, file_name: str):
        if failure := self._enter("unlink", file_name):
            return failure
        node = self._node(path)
        if node is None or file_name not in node:
            return Failure(kind=ErrorKind.NOT_FOUND, error="not found")
        del node[file_name]
        return DeleteSuccess()

    async def rename(self, path: PathT, old_name: str, new_name: str):
        if failure := self._enter("rename", old_name):
            return failure
        node = self._node(path)
        if node is None or old_name not in node:
            return Failure(kind=ErrorKind.NOT_FOUND, error="not found")
        node[new_name] = node.pop(old_name)
        return RenameSuccess()

    async def read(self, path: PathT, file_name: str):
        if failure := self._enter("read", file_name):
            return failure
        data = self.get(path, file_name)
        if not isinstance(data, bytes):
            return Failure(kind=ErrorKind.NOT_FOUND, error="file not found")
        return ReadSuccess(data=Payload.from_bytes(data))

    async def write(self, path: PathT, file_name: str, data: Payload, meta: Any = None):
        if failure := self._enter("write", file_name):
            return failure
        node = self._node(path)
        if node is None:
            return Failure(kind=ErrorKind.NOT_FOUND, error="parent not found")
        node[file_name] = await data.read()
        return WriteSuccess(file_name=file_name)

    async def close(self) -> None:
        self.closed = True
