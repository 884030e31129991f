"""
Virtual file system layer.

Files are addressed by ``(provider_id, path, file_name)`` across storage
providers registered in a ``ProviderRegistry``. Tree copies and deletes are
planned into primitive operations and executed one step at a time.
"""

from .errors import (
    BackendError,
    ErrorKind,
    NotInitializedError,
    PlanningError,
    ProviderExistsError,
    ProviderNotFoundError,
    StorageError,
)
from .events import EventDispatcher
from .paths import deserialize, normalize, serialize
from .registry import ProviderRegistry
from .types import FileEntry, Location, Payload

__all__ = [
    "BackendError",
    "ErrorKind",
    "EventDispatcher",
    "FileEntry",
    "Location",
    "NotInitializedError",
    "Payload",
    "PlanningError",
    "ProviderExistsError",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "StorageError",
    "deserialize",
    "normalize",
    "serialize",
]
