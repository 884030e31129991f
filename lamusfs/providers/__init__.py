"""
Storage provider adapters.
"""

from .base import StorageProvider
from .dropbox import AccessTokenSource, DropboxProvider
from .private import LocalStorageHost, PrivateStorageProvider, StorageHost
from .webdav import WebDAVProvider

__all__ = [
    "AccessTokenSource",
    "DropboxProvider",
    "LocalStorageHost",
    "PrivateStorageProvider",
    "StorageHost",
    "StorageProvider",
    "WebDAVProvider",
]
