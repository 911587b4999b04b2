"""
Storage package for FitHub Sync.

Provides the on-device cache, the remote document store adapter and the
cache key namespace they share.
"""

from database.errors import (
    AuthenticationError,
    ConnectivityError,
    SessionError,
    StorageError,
    SyncError,
)
from database.local_cache import LocalCache
from database.remote_store import RedisRemoteStore, RemoteStore

__all__ = [
    'AuthenticationError',
    'ConnectivityError',
    'SessionError',
    'StorageError',
    'SyncError',
    'LocalCache',
    'RedisRemoteStore',
    'RemoteStore',
]
