class SyncError(Exception):
    """Base class for errors raised by the sync layer."""


class StorageError(SyncError):
    """A LocalCache read or write failed. Fatal for the operation only."""


class ConnectivityError(SyncError):
    """The remote store could not be reached, or the remote call failed."""


class AuthenticationError(SyncError):
    pass


class SessionError(SyncError):
    pass
