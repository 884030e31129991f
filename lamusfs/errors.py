"""
Error taxonomy for the storage layer.

Expected conditions (missing entries, collisions, transport and auth
problems) travel as ``Failure`` results tagged with an ``ErrorKind``.
Exceptions are reserved for caller bugs: talking to an adapter that was
never initialized, or to a provider identifier the registry doesn't know.
"""

from enum import Enum


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    CONFLICT = "conflict"


class StorageError(Exception):
    """Base exception for storage operations."""


class BackendError(StorageError):
    """A backend condition, raised inside adapters and returned as a Failure."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class DefectError(StorageError):
    """Caller misuse. Never converted into a Failure result."""


class NotInitializedError(DefectError):
    def __init__(self, provider_name: str):
        super().__init__(f"Provider {provider_name!r} is not initialized")
        self.provider_name = provider_name


class ProviderNotFoundError(DefectError, LookupError):
    def __init__(self, provider_id: str):
        super().__init__(f'Provider "{provider_id}" not found!')
        self.provider_id = provider_id


class ProviderExistsError(DefectError):
    pass


class PlanningError(StorageError):
    """Raised by the planner when a source directory cannot be listed."""

    def __init__(self, message: str, kind: ErrorKind, address: str):
        super().__init__(message)
        self.kind = kind
        self.address = address
