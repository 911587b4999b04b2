"""
FitHub Network Package.

Reachability tracking that drives offline queue replay.
"""

from network.connectivity import ConnectivityMonitor, ConnectivityProbe, ConnectivityStatus

__all__ = [
    'ConnectivityMonitor',
    'ConnectivityProbe',
    'ConnectivityStatus',
]
